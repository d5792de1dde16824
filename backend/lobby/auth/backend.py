"""Starlette AuthenticationBackend that validates the shared API key."""

from __future__ import annotations

import hmac
from typing import TYPE_CHECKING

from starlette.authentication import AuthCredentials, AuthenticationBackend

from lobby.auth.models import ApiClient

if TYPE_CHECKING:
    from starlette.requests import HTTPConnection

BEARER_PREFIX = "Bearer "


def extract_api_key(conn: HTTPConnection) -> str:
    """Return the key from X-API-Key, falling back to an Authorization bearer token."""
    api_key = conn.headers.get("x-api-key", "")
    if api_key:
        return api_key
    authorization = conn.headers.get("authorization", "")
    if len(authorization) > len(BEARER_PREFIX) and authorization.startswith(BEARER_PREFIX):
        return authorization[len(BEARER_PREFIX) :]
    return ""


def api_key_matches(provided: str, expected: str) -> bool:
    """Compare keys in constant time over their UTF-8 bytes."""
    return hmac.compare_digest(provided.encode(), expected.encode())


class ApiKeyBackend(AuthenticationBackend):
    """Authenticate requests against a single shared API key.

    When no key is configured every request is authenticated as an anonymous
    client, which opens all protected routes. The app factory warns about
    that at startup.
    """

    def __init__(self, api_key: str) -> None:
        self._api_key = api_key

    @property
    def enabled(self) -> bool:
        return bool(self._api_key)

    async def authenticate(self, conn: HTTPConnection) -> tuple[AuthCredentials, ApiClient] | None:
        if not self._api_key:
            return AuthCredentials(["authenticated"]), ApiClient(anonymous=True)

        provided = extract_api_key(conn)
        if not api_key_matches(provided, self._api_key):
            return None
        return AuthCredentials(["authenticated"]), ApiClient()
