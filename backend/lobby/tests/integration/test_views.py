"""End-to-end tests of the lobby API over Starlette's TestClient with mock Steam clients."""

from __future__ import annotations

import time
from datetime import datetime

import pytest
from starlette.testclient import TestClient

from bots.client.mock import MockClientFactory
from lobby.auth.policy import UNAUTHORIZED_DETAIL
from lobby.server.app import create_app
from lobby.tests.helpers import AUTH_HEADERS, make_settings
from lobby.views import handlers
from lobby.views.handlers import MAX_BODY_BYTES

API_KEY = "k-secret"  # noqa: S105


def _wait_for_ready(client: TestClient, headers: dict[str, str], timeout: float = 2.0) -> dict[str, bool]:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        bots = client.get("/bots", headers=headers).json()["bots"]
        if bots and all(bots.values()):
            return bots
        time.sleep(0.01)
    raise AssertionError("bots did not become ready")


@pytest.fixture
def factory() -> MockClientFactory:
    return MockClientFactory()


@pytest.fixture
def empty_client(factory):
    app = create_app(make_settings(api_key=API_KEY), client_factory=factory)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def bot_client(factory):
    app = create_app(make_settings("bot1"), client_factory=factory)
    with TestClient(app) as client:
        _wait_for_ready(client, AUTH_HEADERS)
        yield client


class TestHealth:
    def test_health_is_public(self, empty_client):
        response = empty_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["time"].endswith("Z")
        assert datetime.fromisoformat(body["time"]).utcoffset().total_seconds() == 0
        assert body["version"] == handlers.APP_VERSION
        assert body["commit"] == handlers.GIT_COMMIT

    def test_health_time_never_goes_back(self, empty_client):
        times = [empty_client.get("/health").json()["time"] for _ in range(3)]
        assert times == sorted(times)

    def test_health_rejects_post(self, empty_client):
        response = empty_client.post("/health")

        assert response.status_code == 405
        assert "GET" in response.headers["allow"]


class TestAuth:
    def test_missing_key_denied(self, empty_client):
        response = empty_client.get("/bots")

        assert response.status_code == 401
        assert response.text == UNAUTHORIZED_DETAIL
        assert response.headers["www-authenticate"] == "Bearer"

    def test_wrong_key_denied(self, empty_client):
        response = empty_client.get("/bots", headers={"X-API-Key": "k-secre"})
        assert response.status_code == 401

    def test_bearer_accepted(self, empty_client):
        response = empty_client.get("/bots", headers={"Authorization": f"Bearer {API_KEY}"})

        assert response.status_code == 200
        assert response.json() == {"bots": {}}

    def test_trailing_slash_still_requires_auth(self, empty_client):
        assert empty_client.get("/bots/").status_code == 401
        assert empty_client.get("/bots/", headers={"X-API-Key": API_KEY}).status_code == 200

    def test_empty_api_key_opens_protected_routes(self, factory, caplog):
        app = create_app(make_settings(api_key=""), client_factory=factory)
        with TestClient(app) as client:
            response = client.get("/bots")

        assert response.status_code == 200
        assert "no API key configured" in caplog.text


class TestCreateLobby:
    def test_no_bots_available(self, empty_client):
        response = empty_client.post(
            "/lobby/create",
            headers={"X-API-Key": API_KEY},
            json={"lobby_name": "semifinals"},
        )

        assert response.status_code == 503
        assert "No available bots" in response.text

    def test_creates_lobby_with_ready_bot(self, bot_client, factory):
        response = bot_client.post("/lobby/create", headers=AUTH_HEADERS, json={"lobby_name": "semifinals"})

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "success"
        assert body["lobby_name"] == "semifinals"
        assert body["bot_used"] == "bot1"
        assert body["lobby_id"]
        assert [o.name for o in factory.clients["bot1"].gc.created_lobbies] == ["semifinals"]

    @pytest.mark.parametrize(
        ("payload", "status"),
        [
            ({"lobby_name": "x" * 100}, 201),
            ({"lobby_name": "x" * 101}, 400),
            ({"lobby_name": "ok", "password": "p" * 50}, 201),
            ({"lobby_name": "ok", "password": "p" * 51}, 400),
            ({}, 400),
        ],
    )
    def test_field_limits(self, bot_client, payload, status):
        response = bot_client.post("/lobby/create", headers=AUTH_HEADERS, json=payload)
        assert response.status_code == status

    def test_malformed_json(self, bot_client):
        response = bot_client.post(
            "/lobby/create",
            headers={**AUTH_HEADERS, "Content-Type": "application/json"},
            content=b'{"lobby_name": ',
        )

        assert response.status_code == 400
        assert response.text.startswith("Invalid request body")

    def test_oversized_body(self, bot_client):
        payload = b'{"lobby_name": "' + b"x" * MAX_BODY_BYTES + b'"}'
        response = bot_client.post("/lobby/create", headers=AUTH_HEADERS, content=payload)

        assert response.status_code == 413

    def test_requires_post(self, bot_client):
        assert bot_client.get("/lobby/create", headers=AUTH_HEADERS).status_code == 405

    def test_requires_auth(self, bot_client):
        response = bot_client.post("/lobby/create", json={"lobby_name": "semifinals"})
        assert response.status_code == 401


class TestLobbyInfo:
    def _create(self, client: TestClient) -> str:
        response = client.post("/lobby/create", headers=AUTH_HEADERS, json={"lobby_name": "finals"})
        return response.json()["lobby_id"]

    def test_get_by_query(self, bot_client):
        lobby_id = self._create(bot_client)

        response = bot_client.get("/lobby/info", headers=AUTH_HEADERS, params={"lobby_id": lobby_id})

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "success"
        assert body["bot_used"] == "bot1"
        assert body["lobby"]["name"] == "finals"

    def test_post_by_body(self, bot_client):
        lobby_id = self._create(bot_client)

        response = bot_client.post("/lobby/info", headers=AUTH_HEADERS, json={"lobby_id": lobby_id})

        assert response.status_code == 200
        assert response.json()["lobby_id"] == lobby_id

    def test_empty_lobby_id_rejected_on_get(self, bot_client):
        response = bot_client.get("/lobby/info", headers=AUTH_HEADERS)

        assert response.status_code == 400
        assert response.text == "lobby_id is required"

    def test_empty_lobby_id_rejected_on_post(self, bot_client):
        response = bot_client.post("/lobby/info", headers=AUTH_HEADERS, json={"lobby_id": ""})

        assert response.status_code == 400
        assert response.text == "lobby_id is required"

    def test_post_body_must_be_object(self, bot_client):
        response = bot_client.post("/lobby/info", headers=AUTH_HEADERS, json=["123"])
        assert response.status_code == 400

    def test_finds_lobby_hosted_by_either_bot(self, factory):
        app = create_app(make_settings("bot1", "bot2"), client_factory=factory)
        with TestClient(app) as client:
            _wait_for_ready(client, AUTH_HEADERS)
            created = [
                client.post("/lobby/create", headers=AUTH_HEADERS, json={"lobby_name": name}).json()
                for name in ("semifinals", "finals")
            ]
            infos = [
                client.get("/lobby/info", headers=AUTH_HEADERS, params={"lobby_id": c["lobby_id"]}) for c in created
            ]

        assert [r.status_code for r in infos] == [200, 200]
        assert [r.json()["bot_used"] for r in infos] == [c["bot_used"] for c in created]
        assert {c["bot_used"] for c in created} == {"bot1", "bot2"}

    def test_unknown_lobby(self, bot_client):
        response = bot_client.get("/lobby/info", headers=AUTH_HEADERS, params={"lobby_id": "1"})

        assert response.status_code == 404
        assert response.text == "Lobby not found"


class TestLifecycle:
    def test_disabled_and_duplicate_bots_skipped(self, factory):
        settings = make_settings(
            bots=[
                {"username": "bot1", "password": "pw"},
                {"username": "bot1", "password": "pw-again"},
                {"username": "bot2", "password": "pw", "enabled": False},
            ],
        )
        app = create_app(settings, client_factory=factory)
        with TestClient(app) as client:
            bots = _wait_for_ready(client, AUTH_HEADERS)

        assert bots == {"bot1": True}
        assert set(factory.clients) == {"bot1"}

    def test_shutdown_stops_bots(self, factory):
        app = create_app(make_settings("bot1", "bot2"), client_factory=factory)
        with TestClient(app) as client:
            _wait_for_ready(client, AUTH_HEADERS)

        assert all(not c.is_connected for c in factory.clients.values())
        assert len(app.state.registry) == 0

    def test_unknown_path(self, empty_client):
        assert empty_client.get("/lobbies", headers={"X-API-Key": API_KEY}).status_code == 404

    def test_requires_registry_or_factory(self):
        with pytest.raises(ValueError, match="registry or a client_factory"):
            create_app(make_settings())
