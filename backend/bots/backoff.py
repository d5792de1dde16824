"""Retry delays for the supervisor's BACKOFF state."""

from __future__ import annotations

import random
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator

LOGIN_RETRY_DELAY_SECONDS = 30.0
RECONNECT_DELAY_SECONDS = 5.0
MAX_DELAY_SECONDS = 300.0
DEFAULT_JITTER = 0.1


class FailureKind(StrEnum):
    LOGIN = "login"  # credential rejection or GC bring-up failure
    TRANSPORT = "transport"  # socket drop, failed connect, logoff


class BackoffPolicy(BaseModel):
    """Exponential backoff with a per-failure-kind floor.

    The n-th consecutive failure waits base * 2**(n-1), capped at max_delay,
    plus up to jitter * delay of random extra time. The cap never goes below
    the base, so the first retry after each kind of failure honours its floor.
    """

    model_config = ConfigDict(frozen=True)

    login_retry_delay: float = Field(default=LOGIN_RETRY_DELAY_SECONDS, gt=0)
    reconnect_delay: float = Field(default=RECONNECT_DELAY_SECONDS, gt=0)
    max_delay: float = Field(default=MAX_DELAY_SECONDS, gt=0)
    jitter: float = Field(default=DEFAULT_JITTER, ge=0, le=1)

    @model_validator(mode="after")
    def _check_cap(self) -> BackoffPolicy:
        if self.max_delay < max(self.login_retry_delay, self.reconnect_delay):
            raise ValueError("max_delay must not be below either base delay")
        return self

    def base_delay(self, kind: FailureKind) -> float:
        if kind == FailureKind.LOGIN:
            return self.login_retry_delay
        return self.reconnect_delay

    def delay(self, kind: FailureKind, attempt: int, rng: random.Random | None = None) -> float:
        """Seconds to wait before the connect attempt following failure number `attempt` (1-based)."""
        base = self.base_delay(kind)
        exponent = max(attempt, 1) - 1
        # cap the exponent before multiplying to avoid float overflow on long outages
        delay = min(base * 2 ** min(exponent, 32), self.max_delay)
        if self.jitter:
            delay += (rng or random).uniform(0, self.jitter * delay)
        return delay
