"""Route lobby operations to an available bot's game coordinator."""

from __future__ import annotations

import asyncio
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from bots.client.protocol import GameCoordinatorError, LobbyBusyError, LobbyOptions, LobbyOptionsError
from bots.exceptions import BotNotReadyError, NoAvailableBotError
from lobby.dispatcher.types import (
    CreateLobbyRequest,
    CreateLobbyResponse,
    LobbyInfoRequest,
    LobbyInfoResponse,
)

if TYPE_CHECKING:
    from bots.client.protocol import GameCoordinatorProtocol
    from bots.registry import BotRegistry
    from bots.supervisor import BotSupervisor

DEFAULT_GC_TIMEOUT_SECONDS = 30.0

logger = structlog.get_logger()


class LobbyError(Exception):
    """Base exception for lobby dispatch failures.

    Each subclass carries the HTTP status it maps to. The message is safe to
    return to API callers; library details are only logged.
    """

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BadRequestError(LobbyError):
    status_code = HTTPStatus.BAD_REQUEST


class NoBotAvailableError(LobbyError):
    status_code = HTTPStatus.SERVICE_UNAVAILABLE

    def __init__(self) -> None:
        super().__init__("No available bots")


class BotUnavailableError(LobbyError):
    status_code = HTTPStatus.SERVICE_UNAVAILABLE

    def __init__(self) -> None:
        super().__init__("Bot not ready")


class LobbyNotFoundError(LobbyError):
    status_code = HTTPStatus.NOT_FOUND

    def __init__(self) -> None:
        super().__init__("Lobby not found")


class UpstreamGCError(LobbyError):
    status_code = HTTPStatus.BAD_GATEWAY

    def __init__(self) -> None:
        super().__init__("Lobby operation failed")


def _describe_validation_error(error: ValidationError) -> str:
    """Turn the first pydantic error into a caller-facing sentence."""
    first = error.errors()[0]
    field = ".".join(str(part) for part in first["loc"]) or "body"
    kind = first["type"]
    if kind in {"missing", "string_too_short"}:
        return f"{field} is required"
    if kind == "string_too_long":
        return f"{field} must be {first['ctx']['max_length']} characters or less"
    if kind == "string_type":
        return f"{field} must be a string"
    if kind == "extra_forbidden":
        return f"unexpected field: {field}"
    if kind == "model_type":
        return "request body must be a JSON object"
    return f"{field}: {first['msg']}"


class LobbyDispatcher:
    def __init__(self, registry: BotRegistry, gc_timeout: float = DEFAULT_GC_TIMEOUT_SECONDS) -> None:
        self._registry = registry
        self._gc_timeout = gc_timeout

    async def create_lobby(self, payload: Any) -> CreateLobbyResponse:  # noqa: ANN401
        try:
            req = CreateLobbyRequest.model_validate(payload)
        except ValidationError as e:
            raise BadRequestError(_describe_validation_error(e)) from e

        options = LobbyOptions(
            name=req.lobby_name,
            password=req.password,
            server_region=req.server_region,
            game_mode=req.game_mode,
        )
        tried: set[str] = set()
        while True:
            bot, gc = self._acquire_bot()
            if bot.username in tried:
                # the rotation came back round: every ready bot already hosts a lobby
                raise NoBotAvailableError
            tried.add(bot.username)
            try:
                async with asyncio.timeout(self._gc_timeout):
                    details = await gc.create_lobby(options)
            except LobbyBusyError:
                logger.info("bot already hosts a lobby", bot=bot.username)
                continue
            except LobbyOptionsError as e:
                raise BadRequestError(str(e)) from e
            except (GameCoordinatorError, TimeoutError) as e:
                logger.error("lobby creation failed", bot=bot.username, lobby_name=req.lobby_name, error=repr(e))
                raise UpstreamGCError from e
            break

        logger.info("lobby created", bot=bot.username, lobby_name=req.lobby_name, lobby_id=details.lobby_id)
        return CreateLobbyResponse(lobby_name=req.lobby_name, lobby_id=details.lobby_id, bot_used=bot.username)

    async def lobby_info(self, lobby_id: Any) -> LobbyInfoResponse:  # noqa: ANN401
        try:
            req = LobbyInfoRequest(lobby_id=lobby_id)
        except ValidationError as e:
            raise BadRequestError(_describe_validation_error(e)) from e

        bots = self._registry.ready_bots()
        if not bots:
            raise NoBotAvailableError

        # Each bot only sees the lobby it hosts, so ask every ready bot.
        asked = 0
        failed = False
        for bot in bots:
            try:
                gc = bot.get_gc_handle()
            except BotNotReadyError:
                continue
            asked += 1
            try:
                async with asyncio.timeout(self._gc_timeout):
                    details = await gc.lobby_info(req.lobby_id)
            except (GameCoordinatorError, TimeoutError) as e:
                logger.error("lobby lookup failed", bot=bot.username, lobby_id=req.lobby_id, error=repr(e))
                failed = True
                continue
            if details is not None:
                return LobbyInfoResponse(lobby_id=req.lobby_id, bot_used=bot.username, lobby=details)

        if not asked:
            raise BotUnavailableError
        if failed:
            # the lobby may live on a bot whose lookup failed
            raise UpstreamGCError
        raise LobbyNotFoundError

    def _acquire_bot(self) -> tuple[BotSupervisor, GameCoordinatorProtocol]:
        """Select a READY bot and fetch its GC handle.

        The bot may drop out of READY between selection and the handle fetch;
        that race surfaces as BotUnavailableError.
        """
        try:
            bot = self._registry.pick_available()
        except NoAvailableBotError as e:
            raise NoBotAvailableError from e
        try:
            gc = bot.get_gc_handle()
        except BotNotReadyError as e:
            logger.info("selected bot dropped before use", bot=bot.username, state=e.state)
            raise BotUnavailableError from e
        return bot, gc
