from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel


class BotState(StrEnum):
    INITIAL = "initial"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    BACKOFF = "backoff"
    STOPPED = "stopped"


# Legal state transitions. Recovery from READY always goes through BACKOFF,
# and STOPPED is terminal.
ALLOWED_TRANSITIONS: dict[BotState, frozenset[BotState]] = {
    BotState.INITIAL: frozenset({BotState.CONNECTING, BotState.STOPPED}),
    BotState.CONNECTING: frozenset({BotState.AUTHENTICATING, BotState.BACKOFF, BotState.STOPPED}),
    BotState.AUTHENTICATING: frozenset({BotState.READY, BotState.BACKOFF, BotState.STOPPED}),
    BotState.READY: frozenset({BotState.BACKOFF, BotState.STOPPED}),
    BotState.BACKOFF: frozenset({BotState.CONNECTING, BotState.STOPPED}),
    BotState.STOPPED: frozenset(),
}


class BotStatus(BaseModel):
    """Point-in-time view of a bot record, safe to hand out to readers."""

    username: str
    state: BotState
    attempts: int
    changed_at: datetime

    @property
    def ready(self) -> bool:
        return self.state == BotState.READY
