import pytest

from bots.client.mock import MockClientFactory, MockGameCoordinator, MockSteamClient
from bots.client.protocol import (
    Connected,
    Disconnected,
    GameCoordinatorError,
    LobbyOptions,
    LoggedOn,
    LogOnFailed,
)


class TestMockSteamClient:
    async def test_connect_then_login_emits_events(self):
        client = MockSteamClient("bot1")
        await client.connect()
        assert await client.next_event() == Connected()

        await client.login("bot1", "pw")
        assert await client.next_event() == LoggedOn()
        assert client.logins == ["bot1"]

    async def test_login_failure_emits_logon_failed(self):
        client = MockSteamClient("bot1")
        client.login_failure = "InvalidPassword"
        await client.connect()
        await client.next_event()

        await client.login("bot1", "pw")
        assert await client.next_event() == LogOnFailed(reason="InvalidPassword")

    async def test_login_requires_connection(self):
        with pytest.raises(ConnectionError):
            await MockSteamClient().login("bot1", "pw")

    async def test_connect_discards_stale_events(self):
        client = MockSteamClient("bot1")
        client.simulate_event(Disconnected())

        await client.connect()

        assert await client.next_event() == Connected()

    async def test_game_coordinator_requires_logon(self):
        client = MockSteamClient("bot1")
        await client.connect()
        with pytest.raises(GameCoordinatorError):
            await client.open_game_coordinator()

    async def test_disconnect_resets_session(self):
        client = MockSteamClient("bot1")
        await client.connect()
        await client.login("bot1", "pw")
        await client.set_presence_online()

        await client.disconnect()

        assert not client.is_connected
        assert not client.presence_online
        assert client.disconnect_calls == 1


class TestMockGameCoordinator:
    async def test_created_lobby_can_be_looked_up(self):
        gc = MockGameCoordinator()
        details = await gc.create_lobby(LobbyOptions(name="Inhouse", password="secret"))

        assert details.name == "Inhouse"
        assert details.has_password
        assert await gc.lobby_info(details.lobby_id) == details
        assert [o.name for o in gc.created_lobbies] == ["Inhouse"]

    async def test_unknown_lobby_returns_none(self):
        assert await MockGameCoordinator().lobby_info("123") is None

    async def test_fail_with_raises(self):
        gc = MockGameCoordinator()
        gc.fail_with = GameCoordinatorError("GC timeout")

        with pytest.raises(GameCoordinatorError, match="GC timeout"):
            await gc.create_lobby(LobbyOptions(name="Inhouse"))


def test_factory_keeps_clients_by_username():
    factory = MockClientFactory()
    client = factory("bot1")

    assert isinstance(client, MockSteamClient)
    assert factory.clients == {"bot1": client}
    assert client.username == "bot1"
