"""Process entry point: ``dota-lobby`` console script.

Loads configuration, starts the HTTP server and the bot pool, and exits
non-zero when the configuration is invalid.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

import structlog
import uvicorn
import yaml
from pydantic import ValidationError

from lobby.server.app import create_app
from lobby.server.settings import LobbyServerSettings
from shared.build_info import APP_VERSION, BUILD_DATE, GIT_COMMIT
from shared.logging import setup_logging

if TYPE_CHECKING:
    from bots.client.protocol import ClientFactory

KEEP_ALIVE_TIMEOUT_SECONDS = 60
GRACEFUL_SHUTDOWN_TIMEOUT_SECONDS = 10

logger = structlog.get_logger()


def load_settings() -> LobbyServerSettings:
    """Load settings, printing the problem and exiting 1 if they are invalid."""
    try:
        return LobbyServerSettings()
    except (ValidationError, yaml.YAMLError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)


def build_client_factory(settings: LobbyServerSettings) -> ClientFactory:
    if settings.steam.backend == "mock":
        from bots.client.mock import MockClientFactory  # noqa: PLC0415

        logger.warning("using in-memory mock Steam clients, lobbies are not real")
        return MockClientFactory()

    # The Valve backend pulls in gevent, so only import it when selected.
    from bots.client.valve import ValveClientFactory  # noqa: PLC0415

    return ValveClientFactory(gc_timeout=settings.steam.gc_timeout)


def main() -> None:
    settings = load_settings()
    log_file = setup_logging(log_dir=settings.server.log_dir)
    logger.info(
        "starting dota lobby server",
        version=APP_VERSION,
        commit=GIT_COMMIT,
        build_date=BUILD_DATE,
        log_file=str(log_file) if log_file else None,
    )

    client_factory = build_client_factory(settings)
    app = create_app(settings=settings, client_factory=client_factory)
    try:
        uvicorn.run(
            app,
            host=settings.server.host,
            port=settings.server.port,
            timeout_keep_alive=KEEP_ALIVE_TIMEOUT_SECONDS,
            timeout_graceful_shutdown=GRACEFUL_SHUTDOWN_TIMEOUT_SECONDS,
            log_config=None,
        )
    finally:
        close = getattr(client_factory, "close", None)
        if close is not None:
            close()
    logger.info("server stopped")


if __name__ == "__main__":
    main()
