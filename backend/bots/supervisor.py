"""Per-account session supervisor.

One BotSupervisor owns one BotRecord and one Steam client and drives the
connect -> login -> ready -> backoff loop as a single asyncio task:

    INITIAL -> CONNECTING -> AUTHENTICATING -> READY
                   |              |              |
                   +------> BACKOFF <------------+
                              |
                              +--> CONNECTING (after the retry delay)

Any state moves to STOPPED on cancellation. Every connect attempt is issued
from the loop in run(); event handlers only decide which failure kind ended
the session.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog

from bots.backoff import BackoffPolicy, FailureKind
from bots.client.protocol import (
    Connected,
    Disconnected,
    GameCoordinatorError,
    LoggedOff,
    LoggedOn,
    LogOnFailed,
)
from bots.types import BotState

if TYPE_CHECKING:
    import random
    from collections.abc import Awaitable, Callable

    from bots.client.protocol import GameCoordinatorProtocol, SteamClientProtocol, SteamEvent
    from bots.record import BotRecord
    from bots.types import BotStatus

logger = structlog.get_logger()


class BotSupervisor:
    def __init__(
        self,
        record: BotRecord,
        client: SteamClientProtocol,
        policy: BackoffPolicy | None = None,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        self._record = record
        self._client = client
        self._policy = policy or BackoffPolicy()
        self._sleep = sleep
        self._rng = rng
        self._task: asyncio.Task[None] | None = None
        self._log = logger.bind(bot=record.username)

    @property
    def username(self) -> str:
        return self._record.username

    @property
    def record(self) -> BotRecord:
        return self._record

    @property
    def is_ready(self) -> bool:
        return self._record.is_ready

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    def status(self) -> BotStatus:
        return self._record.status()

    def get_gc_handle(self) -> GameCoordinatorProtocol:
        """Return the live GC handle or raise BotNotReadyError."""
        return self._record.gc_handle()

    def start(self) -> None:
        """Spawn the supervisor task on the running event loop."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self.run(), name=f"bot-supervisor:{self.username}")

    def cancel(self) -> None:
        """Request cancellation without waiting for it."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def stop(self) -> None:
        """Cancel the supervisor task and wait for it to finish."""
        self.cancel()
        await self.wait()

    async def wait(self) -> None:
        """Wait for an already cancelled task to finish and leave the record STOPPED."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        # A task cancelled before its first step never reaches run()'s cleanup.
        if (self._task is None or self._task.done()) and self._record.state != BotState.STOPPED:
            self._record.transition(BotState.STOPPED)

    async def run(self) -> None:
        self._log.info("supervisor started")
        try:
            while True:
                try:
                    kind = await self._run_session()
                except Exception:
                    self._log.exception("supervisor session failed unexpectedly")
                    self._enter_backoff()
                    await self._disconnect()
                    kind = FailureKind.TRANSPORT

                attempt = self._record.attempts()
                delay = self._policy.delay(kind, attempt, self._rng)
                self._log.info("retrying after backoff", reason=kind, attempt=attempt, delay=round(delay, 2))
                await self._sleep(delay)
        finally:
            await self._shutdown_session()

    async def _run_session(self) -> FailureKind:
        """Drive one connection from CONNECTING until it fails; return the failure kind."""
        self._record.transition(BotState.CONNECTING)
        self._log.info("connecting to steam")
        try:
            await self._client.connect()
        except (ConnectionError, OSError) as e:
            self._log.warning("steam connect failed", error=str(e))
            self._enter_backoff()
            await self._disconnect()
            return FailureKind.TRANSPORT

        while True:
            event = await self._client.next_event()
            kind = await self._handle_event(event)
            if kind is not None:
                return kind

    async def _handle_event(self, event: SteamEvent) -> FailureKind | None:
        state = self._record.state
        match event:
            case Connected() if state == BotState.CONNECTING:
                return await self._on_connected()
            case LoggedOn() if state == BotState.AUTHENTICATING:
                return await self._on_logged_on()
            case LogOnFailed(reason=reason) if state == BotState.AUTHENTICATING:
                self._log.warning("steam logon failed", result=reason)
                self._enter_backoff()
                await self._disconnect()
                return FailureKind.LOGIN
            case Disconnected():
                self._log.warning("disconnected from steam", state=state)
                self._enter_backoff()
                return FailureKind.TRANSPORT
            case LoggedOff(reason=reason) if state in {BotState.AUTHENTICATING, BotState.READY}:
                self._log.warning("logged off from steam", result=reason)
                self._enter_backoff()
                await self._disconnect()
                return FailureKind.TRANSPORT
            case _:
                self._log.debug("ignoring steam event", steam_event=type(event).__name__, state=state)
                return None

    async def _on_connected(self) -> FailureKind | None:
        self._record.transition(BotState.AUTHENTICATING)
        self._log.info("connected to steam, logging on")
        try:
            await self._client.login(self._record.username, self._record.password)
        except (ConnectionError, OSError) as e:
            self._log.warning("steam logon request failed", error=str(e))
            self._enter_backoff()
            await self._disconnect()
            return FailureKind.TRANSPORT
        return None

    async def _on_logged_on(self) -> FailureKind | None:
        self._log.info("logged on to steam, starting game coordinator")
        try:
            gc = await self._client.open_game_coordinator()
        except (GameCoordinatorError, TimeoutError) as e:
            self._log.warning("game coordinator unavailable", error=str(e))
            self._enter_backoff()
            await self._disconnect()
            return FailureKind.LOGIN

        self._record.transition(BotState.READY, gc=gc)
        self._log.info("bot ready")
        try:
            await self._client.set_presence_online()
        except (ConnectionError, OSError) as e:
            self._log.warning("failed to set presence", error=str(e))
        return None

    def _enter_backoff(self) -> None:
        if self._record.state not in {BotState.BACKOFF, BotState.STOPPED}:
            self._record.transition(BotState.BACKOFF)

    async def _disconnect(self) -> None:
        try:
            await self._client.disconnect()
        except (ConnectionError, OSError) as e:
            self._log.warning("steam disconnect failed", error=str(e))

    async def _shutdown_session(self) -> None:
        if self._record.state != BotState.STOPPED:
            self._record.transition(BotState.STOPPED)
        await self._disconnect()
        self._log.info("supervisor stopped")
