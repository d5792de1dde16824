"""Authoritative per-account state shared between a supervisor and its readers."""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from bots.exceptions import BotNotReadyError, InvalidTransitionError
from bots.types import ALLOWED_TRANSITIONS, BotState, BotStatus

if TYPE_CHECKING:
    from bots.client.protocol import GameCoordinatorProtocol


class BotRecord:
    """
    Mutable state of one bot account.

    Only the owning supervisor calls transition(). Readers go through
    status(), is_ready and gc_handle(), which sample state and handle under
    the same lock so a handle is never observed without READY or vice versa.
    The lock is never held across an await.
    """

    def __init__(self, username: str, password: str) -> None:
        if not username:
            raise ValueError("username must not be empty")
        if not password:
            raise ValueError("password must not be empty")
        self._username = username
        self._password = password
        self._lock = threading.Lock()
        self._state = BotState.INITIAL
        self._gc: GameCoordinatorProtocol | None = None
        self._attempts = 0
        self._changed_at = datetime.now(tz=UTC)

    def __repr__(self) -> str:
        return f"BotRecord(username={self._username!r}, state={self._state})"

    @property
    def username(self) -> str:
        return self._username

    @property
    def password(self) -> str:
        return self._password

    @property
    def state(self) -> BotState:
        with self._lock:
            return self._state

    @property
    def is_ready(self) -> bool:
        with self._lock:
            return self._state == BotState.READY

    def status(self) -> BotStatus:
        with self._lock:
            return BotStatus(
                username=self._username,
                state=self._state,
                attempts=self._attempts,
                changed_at=self._changed_at,
            )

    def gc_handle(self) -> GameCoordinatorProtocol:
        """Return the GC handle, or raise BotNotReadyError outside READY."""
        with self._lock:
            if self._state != BotState.READY or self._gc is None:
                raise BotNotReadyError(self._username, self._state)
            return self._gc

    def transition(
        self,
        target: BotState,
        gc: GameCoordinatorProtocol | None = None,
    ) -> BotState:
        """Move to target and return the previous state.

        Entering READY requires a GC handle; every other state clears it.
        Entering BACKOFF counts a failed attempt, entering READY resets the
        counter.
        """
        if (target == BotState.READY) != (gc is not None):
            msg = "a GC handle must be supplied exactly when entering READY"
            raise ValueError(msg)
        with self._lock:
            previous = self._state
            if target not in ALLOWED_TRANSITIONS[previous]:
                raise InvalidTransitionError(self._username, previous, target)
            self._state = target
            self._gc = gc
            if target == BotState.BACKOFF:
                self._attempts += 1
            elif target == BotState.READY:
                self._attempts = 0
            self._changed_at = datetime.now(tz=UTC)
            return previous

    def attempts(self) -> int:
        with self._lock:
            return self._attempts
