"""Test helpers for driving bot supervisors without real time passing."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from bots.backoff import BackoffPolicy

if TYPE_CHECKING:
    from collections.abc import Callable

# Deterministic policy: no jitter, so delays equal the exponential base.
NO_JITTER_POLICY = BackoffPolicy(jitter=0)


class GatedSleep:
    """Replacement for asyncio.sleep that records delays and blocks until released.

    Lets a test observe the bot while it sits in BACKOFF, then let the retry
    proceed with release().
    """

    def __init__(self) -> None:
        self.delays: list[float] = []
        self._gate = asyncio.Event()
        self.waiting = asyncio.Event()

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        self.waiting.set()
        try:
            await self._gate.wait()
        finally:
            self.waiting.clear()
            self._gate.clear()

    def release(self) -> None:
        self._gate.set()


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the event loop until predicate() holds or the timeout expires."""
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0)
