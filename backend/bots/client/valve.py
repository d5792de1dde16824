"""Steam client backed by the ValvePython ``steam`` and ``dota2`` libraries.

Those libraries are gevent based, so each bot runs its SteamClient and
Dota2Client on a dedicated thread with its own gevent hub. The asyncio side
talks to that thread through a command queue and receives Steam events via
``loop.call_soon_threadsafe``.

Install with the ``steam`` extra: ``pip install dota-lobby[steam]``.
"""

from __future__ import annotations

import asyncio
import queue
import threading
from concurrent.futures import Future
from typing import TYPE_CHECKING, Any

import gevent
import structlog
from dota2.client import Dota2Client
from dota2.enums import DOTA_GameMode, EServerRegion
from steam.client import SteamClient
from steam.enums import EPersonaState, EResult
from steam.enums.emsg import EMsg

from bots.client.protocol import (
    Connected,
    Disconnected,
    GameCoordinatorError,
    GameCoordinatorProtocol,
    LobbyBusyError,
    LobbyDetails,
    LobbyOptions,
    LobbyOptionsError,
    LoggedOff,
    LoggedOn,
    LogOnFailed,
    SteamClientProtocol,
    SteamEvent,
)

if TYPE_CHECKING:
    from collections.abc import Callable

COMMAND_POLL_INTERVAL = 0.05  # seconds the gevent hub sleeps between command queue checks
CONNECT_RETRIES = 3
DEFAULT_GC_TIMEOUT = 30.0

logger = structlog.get_logger()


def _parse_region(value: str | None) -> int:
    if not value:
        return int(EServerRegion.Unspecified)
    if value.isdigit():
        return int(value)
    try:
        return int(EServerRegion[value])
    except KeyError as e:
        raise LobbyOptionsError(f"unknown server region: {value}") from e


def _parse_game_mode(value: str | None) -> int:
    if not value:
        return int(DOTA_GameMode.DOTA_GAMEMODE_AP)
    if value.isdigit():
        return int(value)
    name = value if value.startswith("DOTA_GAMEMODE_") else f"DOTA_GAMEMODE_{value.upper()}"
    try:
        return int(DOTA_GameMode[name])
    except KeyError as e:
        raise LobbyOptionsError(f"unknown game mode: {value}") from e


def _lobby_details(lobby: Any) -> LobbyDetails:  # noqa: ANN401
    return LobbyDetails(
        lobby_id=str(lobby.lobby_id),
        name=lobby.game_name,
        server_region=str(lobby.server_region),
        game_mode=str(lobby.game_mode),
        has_password=bool(lobby.pass_key),
        member_count=len(lobby.all_members),
        state=str(lobby.state),
    )


class _GeventWorker:
    """Thread that owns the gevent hub for one bot and runs submitted commands on it."""

    def __init__(self, name: str) -> None:
        self._commands: queue.Queue[tuple[Callable[[], Any], Future[Any]] | None] = queue.Queue()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._started = False
        self._lock = threading.Lock()

    def submit(self, fn: Callable[[], Any]) -> Future[Any]:
        with self._lock:
            if not self._started:
                self._thread.start()
                self._started = True
        future: Future[Any] = Future()
        self._commands.put((fn, future))
        return future

    def close(self) -> None:
        self._commands.put(None)

    def _run(self) -> None:
        while True:
            try:
                item = self._commands.get_nowait()
            except queue.Empty:
                gevent.sleep(COMMAND_POLL_INTERVAL)
                continue
            if item is None:
                return
            gevent.spawn(self._execute, *item)

    @staticmethod
    def _execute(fn: Callable[[], Any], future: Future[Any]) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(fn())
        except BaseException as e:  # noqa: BLE001
            future.set_exception(e)


class ValveGameCoordinator(GameCoordinatorProtocol):
    def __init__(self, client: ValveSteamClient, dota: Dota2Client, timeout: float) -> None:
        self._client = client
        self._dota = dota
        self._timeout = timeout

    async def create_lobby(self, options: LobbyOptions) -> LobbyDetails:
        lobby_options = {
            "game_name": options.name,
            "pass_key": options.password or "",
            "server_region": _parse_region(options.server_region),
            "game_mode": _parse_game_mode(options.game_mode),
        }

        def _create() -> LobbyDetails:
            if self._dota.lobby is not None:
                raise LobbyBusyError(f"already hosting lobby {self._dota.lobby.lobby_id}")
            self._dota.create_practice_lobby(password=options.password or "", options=lobby_options)
            result = self._dota.wait_event(self._dota.EVENT_LOBBY_NEW, timeout=self._timeout)
            if result is None:
                raise GameCoordinatorError("timed out waiting for lobby creation")
            return _lobby_details(result[0])

        return await self._client.call(_create)

    async def lobby_info(self, lobby_id: str) -> LobbyDetails | None:
        def _info() -> LobbyDetails | None:
            lobby = self._dota.lobby
            if lobby is None or str(lobby.lobby_id) != lobby_id:
                return None
            return _lobby_details(lobby)

        return await self._client.call(_info)


class ValveSteamClient(SteamClientProtocol):
    def __init__(self, username: str, gc_timeout: float = DEFAULT_GC_TIMEOUT) -> None:
        self._username = username
        self._gc_timeout = gc_timeout
        self._worker = _GeventWorker(name=f"steam:{username}")
        self._loop: asyncio.AbstractEventLoop | None = None
        self._events: asyncio.Queue[SteamEvent] = asyncio.Queue()
        self._closing = False
        self._logon_pending = False
        self._steam: SteamClient | None = None
        self._dota: Dota2Client | None = None

    async def call(self, fn: Callable[[], Any]) -> Any:  # noqa: ANN401
        """Run fn on the gevent thread and await its result."""
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        try:
            return await asyncio.wrap_future(self._worker.submit(fn))
        except (gevent.Timeout, RuntimeError) as e:
            raise GameCoordinatorError(str(e)) from e

    def _post(self, event: SteamEvent) -> None:
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._events.put_nowait, event)

    def _ensure_client(self) -> SteamClient:
        if self._steam is not None:
            return self._steam
        steam = SteamClient()
        steam.on(SteamClient.EVENT_CONNECTED, lambda *_: self._post(Connected()))
        steam.on(SteamClient.EVENT_LOGGED_ON, lambda *_: self._post(LoggedOn()))
        steam.on(SteamClient.EVENT_DISCONNECTED, self._on_disconnected)
        steam.on(EMsg.ClientLoggedOff, self._on_logged_off)
        self._steam = steam
        return steam

    def _on_disconnected(self, *_: Any) -> None:  # noqa: ANN401
        if not self._closing and not self._logon_pending:
            self._post(Disconnected())

    def _on_logged_off(self, msg: Any) -> None:  # noqa: ANN401
        self._post(LoggedOff(reason=EResult(msg.body.eresult).name))

    async def connect(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._events = asyncio.Queue()
        self._closing = False
        self._logon_pending = False

        def _connect() -> bool:
            return self._ensure_client().connect(retry=CONNECT_RETRIES)

        if not await asyncio.wrap_future(self._worker.submit(_connect)):
            raise ConnectionError(f"could not reach a steam CM server for {self._username}")

    async def disconnect(self) -> None:
        self._closing = True

        def _disconnect() -> None:
            if self._dota is not None:
                self._dota.exit()
                self._dota = None
            if self._steam is not None and self._steam.connected:
                self._steam.logout()
                self._steam.disconnect()

        await asyncio.wrap_future(self._worker.submit(_disconnect))

    async def next_event(self) -> SteamEvent:
        return await self._events.get()

    async def login(self, username: str, password: str) -> None:
        def _login() -> None:
            # On a refused logon the library drops the connection before login()
            # returns; that disconnect stays suppressed until the next connect().
            self._logon_pending = True
            try:
                result = self._ensure_client().login(username=username, password=password)
            except BaseException:
                self._logon_pending = False
                raise
            if result == EResult.OK:
                self._logon_pending = False
            else:
                self._post(LogOnFailed(reason=EResult(result).name))

        # A successful logon is reported by the logged_on handler.
        await asyncio.wrap_future(self._worker.submit(_login))

    async def set_presence_online(self) -> None:
        def _presence() -> None:
            self._ensure_client().change_status(persona_state=EPersonaState.Online)

        await asyncio.wrap_future(self._worker.submit(_presence))

    async def open_game_coordinator(self) -> GameCoordinatorProtocol:
        def _launch() -> Dota2Client:
            dota = Dota2Client(self._ensure_client())
            dota.launch()
            if dota.wait_event("ready", timeout=self._gc_timeout) is None:
                dota.exit()
                raise GameCoordinatorError("dota 2 game coordinator did not become ready")
            self._dota = dota
            return dota

        dota = await self.call(_launch)
        return ValveGameCoordinator(self, dota, self._gc_timeout)

    def close(self) -> None:
        self._worker.close()


class ValveClientFactory:
    """ClientFactory producing ValveSteamClient instances; close() stops their threads."""

    def __init__(self, gc_timeout: float = DEFAULT_GC_TIMEOUT) -> None:
        self._gc_timeout = gc_timeout
        self._clients: list[ValveSteamClient] = []

    def __call__(self, username: str) -> ValveSteamClient:
        client = ValveSteamClient(username, gc_timeout=self._gc_timeout)
        self._clients.append(client)
        return client

    def close(self) -> None:
        for client in self._clients:
            client.close()
        logger.debug("steam worker threads released", count=len(self._clients))
