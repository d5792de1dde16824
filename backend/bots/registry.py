"""Keyed pool of bot supervisors with fair availability selection."""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING

import structlog

from bots.backoff import BackoffPolicy
from bots.exceptions import BotNotFoundError, DuplicateBotError, NoAvailableBotError
from bots.record import BotRecord
from bots.supervisor import BotSupervisor

if TYPE_CHECKING:
    from bots.client.protocol import ClientFactory
    from bots.types import BotStatus

DEFAULT_DRAIN_TIMEOUT_SECONDS = 10.0

logger = structlog.get_logger()


class BotRegistry:
    """
    Registry of bot supervisors keyed by username.

    The registry lock guards membership and the selection cursor. It is the
    outer lock: per-record locks are only taken while holding it, never the
    other way round, and neither is held across network calls.
    """

    def __init__(
        self,
        client_factory: ClientFactory,
        policy: BackoffPolicy | None = None,
    ) -> None:
        self._client_factory = client_factory
        self._policy = policy or BackoffPolicy()
        self._lock = threading.Lock()
        self._bots: dict[str, BotSupervisor] = {}
        self._cursor = 0
        self._closed = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._bots)

    def add(self, username: str, password: str) -> BotSupervisor:
        """Register a bot and start its supervisor; returns before it connects."""
        record = BotRecord(username, password)
        with self._lock:
            if self._closed:
                raise RuntimeError("registry is shut down")
            if username in self._bots:
                raise DuplicateBotError(username)
            supervisor = BotSupervisor(record, self._client_factory(username), self._policy)
            self._bots[username] = supervisor
        supervisor.start()
        logger.info("bot added", bot=username)
        return supervisor

    def get(self, username: str) -> BotSupervisor:
        with self._lock:
            supervisor = self._bots.get(username)
        if supervisor is None:
            raise BotNotFoundError(username)
        return supervisor

    def pick_available(self) -> BotSupervisor:
        """Return a READY bot, rotating the starting point on every call.

        The scan starts one past the previously returned bot, so repeated
        calls spread lobbies across all ready bots in registration order.
        """
        with self._lock:
            bots = list(self._bots.values())
            count = len(bots)
            for offset in range(count):
                index = (self._cursor + offset) % count
                candidate = bots[index]
                if candidate.is_ready:
                    self._cursor = (index + 1) % count
                    return candidate
        raise NoAvailableBotError

    def ready_bots(self) -> list[BotSupervisor]:
        """Every READY bot in registration order, without moving the cursor."""
        with self._lock:
            return [bot for bot in self._bots.values() if bot.is_ready]

    def snapshot(self) -> dict[str, bool]:
        """Map every username to whether that bot is READY."""
        with self._lock:
            return {username: bot.is_ready for username, bot in self._bots.items()}

    def statuses(self) -> list[BotStatus]:
        with self._lock:
            return [bot.status() for bot in self._bots.values()]

    async def shutdown(self, drain_timeout: float = DEFAULT_DRAIN_TIMEOUT_SECONDS) -> None:
        """Cancel every supervisor, wait up to drain_timeout for them, then clear the pool."""
        with self._lock:
            self._closed = True
            bots = list(self._bots.values())

        if bots:
            logger.info("shutting down bots", count=len(bots))
            for bot in bots:
                bot.cancel()
            _, pending = await asyncio.wait(
                [asyncio.ensure_future(bot.wait()) for bot in bots],
                timeout=drain_timeout,
            )
            if pending:
                logger.warning("bots did not stop within drain window", count=len(pending))
                for waiter in pending:
                    waiter.cancel()

        with self._lock:
            self._bots.clear()
            self._cursor = 0
