from __future__ import annotations

import contextlib
from http import HTTPStatus
from typing import TYPE_CHECKING, cast

import structlog
from starlette.applications import Starlette
from starlette.exceptions import HTTPException
from starlette.middleware.authentication import AuthenticationMiddleware
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Route

from bots.exceptions import DuplicateBotError
from bots.registry import BotRegistry
from lobby.auth import ApiKeyBackend, protected_api, public_route, validate_route_auth_policy
from lobby.dispatcher.service import LobbyDispatcher
from lobby.server.middleware import (
    RequestTimeoutMiddleware,
    SecurityHeadersMiddleware,
    SlashNormalizationMiddleware,
)
from lobby.server.settings import LobbyServerSettings
from lobby.views.handlers import create_lobby, health, list_bots, lobby_info

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from starlette.requests import Request

    from bots.client.protocol import ClientFactory


async def _http_error_handler(_request: Request, exc: Exception) -> Response:
    """Render HTTP errors as plain text, keeping any headers (WWW-Authenticate, Allow)."""
    http_exc = cast("HTTPException", exc)
    if http_exc.status_code in {HTTPStatus.NO_CONTENT, HTTPStatus.NOT_MODIFIED}:
        return Response(status_code=http_exc.status_code, headers=http_exc.headers)
    return PlainTextResponse(http_exc.detail or "", status_code=http_exc.status_code, headers=http_exc.headers)


def _register_bots(registry: BotRegistry, settings: LobbyServerSettings) -> int:
    """Seed the registry from configuration; returns how many bots were added."""
    skipped = [bot.username for bot in settings.bots if not bot.enabled]
    if skipped:
        logger.info("skipping disabled bots", bots=skipped)

    added = 0
    for bot in settings.enabled_bots:
        try:
            registry.add(bot.username, bot.password.get_secret_value())
        except (DuplicateBotError, ValueError) as e:
            logger.error("failed to add bot", bot=bot.username, error=str(e))
            continue
        added += 1

    if added == 0:
        logger.warning("no bots configured, lobby requests will be rejected until bots are added")
    return added


def create_app(
    settings: LobbyServerSettings | None = None,
    registry: BotRegistry | None = None,
    client_factory: ClientFactory | None = None,
) -> Starlette:
    """Build the lobby API application.

    Pass either a prepared ``registry`` or a ``client_factory`` to build one
    from. Configured bots are added when the app starts up and the registry is
    drained when it shuts down.
    """
    if settings is None:  # pragma: no cover
        settings = LobbyServerSettings()
    if registry is None:
        if client_factory is None:
            msg = "create_app needs a registry or a client_factory"
            raise ValueError(msg)
        registry = BotRegistry(client_factory, settings.supervisor)

    routes = [
        # Protected API routes (401 plain text when the key is wrong)
        Route("/bots", protected_api(list_bots), methods=["GET"], name="list_bots"),
        Route("/lobby/create", protected_api(create_lobby), methods=["POST"], name="create_lobby"),
        Route("/lobby/info", protected_api(lobby_info), methods=["GET", "POST"], name="lobby_info"),
        # Public routes
        Route("/health", public_route(health), methods=["GET"], name="health"),
    ]
    validate_route_auth_policy(routes)

    auth_backend = ApiKeyBackend(settings.server.api_key.get_secret_value())
    if not auth_backend.enabled:
        logger.warning("no API key configured, protected endpoints are open to everyone")

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncGenerator[None]:
        _register_bots(registry, settings)
        yield
        logger.info("shutting down bot registry")
        await registry.shutdown()

    app = Starlette(
        routes=routes,
        lifespan=lifespan,
        exception_handlers={HTTPException: _http_error_handler},
    )
    app.add_middleware(SlashNormalizationMiddleware)  # type: ignore[arg-type]
    app.add_middleware(AuthenticationMiddleware, backend=auth_backend)  # type: ignore[arg-type]
    app.add_middleware(RequestTimeoutMiddleware)  # type: ignore[arg-type]
    app.add_middleware(SecurityHeadersMiddleware)  # type: ignore[arg-type]

    app.state.settings = settings
    app.state.registry = registry
    app.state.dispatcher = LobbyDispatcher(registry, gc_timeout=settings.steam.gc_timeout)

    logger.info("lobby server ready", auth_enabled=auth_backend.enabled)
    return app
