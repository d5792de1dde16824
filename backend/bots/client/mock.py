"""In-memory Steam client for tests and local development without Steam."""

from __future__ import annotations

import asyncio
import itertools

from bots.client.protocol import (
    Connected,
    Disconnected,
    GameCoordinatorError,
    GameCoordinatorProtocol,
    LobbyBusyError,
    LobbyDetails,
    LobbyOptions,
    LoggedOff,
    LoggedOn,
    LogOnFailed,
    SteamClientProtocol,
    SteamEvent,
)

_lobby_ids = itertools.count(24_000_000_000)


class MockGameCoordinator(GameCoordinatorProtocol):
    def __init__(self) -> None:
        self._lobbies: dict[str, LobbyDetails] = {}
        self._created: list[LobbyOptions] = []
        self.fail_with: Exception | None = None
        # True applies the Valve client's one-lobby-per-bot rule
        self.single_lobby = False

    @property
    def created_lobbies(self) -> list[LobbyOptions]:
        return self._created.copy()

    async def create_lobby(self, options: LobbyOptions) -> LobbyDetails:
        if self.fail_with is not None:
            raise self.fail_with
        if self.single_lobby and self._lobbies:
            raise LobbyBusyError(f"already hosting lobby {next(iter(self._lobbies))}")
        self._created.append(options)
        details = LobbyDetails(
            lobby_id=str(next(_lobby_ids)),
            name=options.name,
            server_region=options.server_region,
            game_mode=options.game_mode,
            has_password=bool(options.password),
            member_count=1,
            state="UI",
        )
        self._lobbies[details.lobby_id] = details
        return details

    async def lobby_info(self, lobby_id: str) -> LobbyDetails | None:
        if self.fail_with is not None:
            raise self.fail_with
        return self._lobbies.get(lobby_id)


class MockSteamClient(SteamClientProtocol):
    """
    Scripted Steam client.

    By default every connect succeeds and every login is accepted. Tests
    flip the public knobs to make connects raise or logins fail, and push
    arbitrary events with simulate_event().
    """

    def __init__(self, username: str = "") -> None:
        self.username = username
        self._events: asyncio.Queue[SteamEvent] = asyncio.Queue()
        self._connected = False
        self._logged_on = False
        self.connect_error: Exception | None = None
        self.login_failure: str | None = None
        self.gc_error: str | None = None
        self.connect_calls = 0
        self.disconnect_calls = 0
        self.logins: list[str] = []
        self.presence_online = False
        self.gc = MockGameCoordinator()

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.connect_error is not None:
            raise self.connect_error
        # a new session starts with an empty event stream
        self._events = asyncio.Queue()
        self._connected = True
        self._events.put_nowait(Connected())

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        self._connected = False
        self._logged_on = False
        self.presence_online = False

    async def next_event(self) -> SteamEvent:
        return await self._events.get()

    async def login(self, username: str, password: str) -> None:
        if not self._connected:
            raise ConnectionError("not connected")
        self.logins.append(username)
        if self.login_failure is not None:
            self._events.put_nowait(LogOnFailed(reason=self.login_failure))
            return
        self._logged_on = True
        self._events.put_nowait(LoggedOn())

    async def set_presence_online(self) -> None:
        self.presence_online = True

    async def open_game_coordinator(self) -> GameCoordinatorProtocol:
        if not self._logged_on:
            raise GameCoordinatorError("steam client is not logged on")
        if self.gc_error is not None:
            raise GameCoordinatorError(self.gc_error)
        return self.gc

    def simulate_event(self, event: SteamEvent) -> None:
        """Inject an event as if it came from the Steam network."""
        if isinstance(event, (Disconnected, LoggedOff)):
            self._logged_on = False
        if isinstance(event, Disconnected):
            self._connected = False
        self._events.put_nowait(event)


class MockClientFactory:
    """ClientFactory that keeps every MockSteamClient it builds, keyed by username."""

    def __init__(self) -> None:
        self.clients: dict[str, MockSteamClient] = {}

    def __call__(self, username: str) -> MockSteamClient:
        client = MockSteamClient(username)
        self.clients[username] = client
        return client
