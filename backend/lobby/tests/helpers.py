"""Test helpers for building the lobby app against mock Steam clients."""

from __future__ import annotations

from typing import Any

from lobby.server.settings import LobbyServerSettings

TEST_API_KEY = "test-api-key"  # noqa: S105

AUTH_HEADERS = {"X-API-Key": TEST_API_KEY}


def make_settings(*bot_names: str, api_key: str = TEST_API_KEY, **overrides: Any) -> LobbyServerSettings:  # noqa: ANN401
    """Settings with the mock Steam backend and one enabled bot per name."""
    values: dict[str, Any] = {
        "server": {"api_key": api_key},
        "bots": [{"username": name, "password": f"{name}-pw"} for name in bot_names],
        "steam": {"backend": "mock"},
    }
    values.update(overrides)
    return LobbyServerSettings(**values)
