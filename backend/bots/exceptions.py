"""Typed exceptions for bot pool and session supervision.

Registry and supervisor operations raise subclasses of BotError. The lobby
dispatcher catches them at its boundary and converts them to HTTP-facing
errors.
"""

from bots.types import BotState


class BotError(Exception):
    """Base exception for bot pool errors."""


class DuplicateBotError(BotError):
    """A bot with the same username is already registered."""

    def __init__(self, username: str) -> None:
        super().__init__(f"bot with username {username} already exists")
        self.username = username


class BotNotFoundError(BotError):
    """No bot is registered under the requested username."""

    def __init__(self, username: str) -> None:
        super().__init__(f"bot with username {username} not found")
        self.username = username


class NoAvailableBotError(BotError):
    """No registered bot is currently ready."""

    def __init__(self) -> None:
        super().__init__("no available bots")


class BotNotReadyError(BotError):
    """The selected bot dropped out of READY before its GC handle was fetched."""

    def __init__(self, username: str, state: BotState) -> None:
        super().__init__(f"bot {username} is not ready (state: {state})")
        self.username = username
        self.state = state


class InvalidTransitionError(BotError):
    """A supervisor attempted a state transition the state machine forbids."""

    def __init__(self, username: str, current: BotState, target: BotState) -> None:
        super().__init__(f"bot {username}: illegal transition {current} -> {target}")
        self.username = username
        self.current = current
        self.target = target
