"""Abstract Steam and Dota game-coordinator client interfaces.

The supervisor drives a SteamClientProtocol and never talks to the Steam
network directly. Implementations wrap a real client library (see
bots.client.valve) or simulate one in memory (see bots.client.mock).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass

from pydantic import BaseModel


@dataclass(frozen=True)
class Connected:
    pass


@dataclass(frozen=True)
class LoggedOn:
    pass


@dataclass(frozen=True)
class LogOnFailed:
    reason: str


@dataclass(frozen=True)
class Disconnected:
    pass


@dataclass(frozen=True)
class LoggedOff:
    reason: str


SteamEvent = Connected | LoggedOn | LogOnFailed | Disconnected | LoggedOff


class GameCoordinatorError(Exception):
    """A game-coordinator call failed inside the client library."""


class LobbyBusyError(GameCoordinatorError):
    """The bot already hosts a lobby; a bot hosts at most one at a time."""


class LobbyOptionsError(ValueError):
    """The options name a region or game mode the game coordinator does not know."""


class LobbyOptions(BaseModel):
    name: str
    password: str | None = None
    server_region: str | None = None
    game_mode: str | None = None


class LobbyDetails(BaseModel):
    lobby_id: str
    name: str
    server_region: str | None = None
    game_mode: str | None = None
    has_password: bool = False
    member_count: int = 0
    state: str | None = None


class GameCoordinatorProtocol(ABC):
    """Dota 2 game-coordinator session bound to a logged-on Steam client."""

    @abstractmethod
    async def create_lobby(self, options: LobbyOptions) -> LobbyDetails:
        """
        Create a private practice lobby hosted by this bot. Raises
        LobbyBusyError when the bot already hosts one and LobbyOptionsError
        for options that cannot be expressed.
        """
        ...

    @abstractmethod
    async def lobby_info(self, lobby_id: str) -> LobbyDetails | None:
        """
        Look up a lobby visible to this bot. None when it is unknown.
        """
        ...


class SteamClientProtocol(ABC):
    """
    Long-lived Steam session for one account.

    Connection outcomes are reported through next_event() in arrival order;
    connect() and login() only initiate the corresponding step.
    """

    @abstractmethod
    async def connect(self) -> None:
        """
        Begin connecting. Raises ConnectionError or OSError when the attempt
        cannot be started at all. Events left over from a previous session
        are discarded.
        """
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """
        Close the session. Safe to call when already disconnected. A
        disconnect requested here is not reported back as an event.
        """
        ...

    @abstractmethod
    async def next_event(self) -> SteamEvent:
        """Wait for the next event from the Steam session."""
        ...

    @abstractmethod
    async def login(self, username: str, password: str) -> None:
        """
        Submit credentials on a connected session. A refused logon is
        reported as LogOnFailed, never as Disconnected, even when the library
        drops the connection on its own afterwards.
        """
        ...

    @abstractmethod
    async def set_presence_online(self) -> None: ...

    @abstractmethod
    async def open_game_coordinator(self) -> GameCoordinatorProtocol:
        """
        Bring up the Dota 2 GC session on a logged-on client. Raises
        GameCoordinatorError when the GC does not become ready.
        """
        ...


# Builds one client per bot username.
ClientFactory = Callable[[str], SteamClientProtocol]
