"""Lobby authentication: shared API key backend, client model, and route policy."""

from lobby.auth.backend import ApiKeyBackend, api_key_matches, extract_api_key
from lobby.auth.models import ApiClient
from lobby.auth.policy import (
    UNAUTHORIZED_DETAIL,
    protected_api,
    public_route,
    validate_route_auth_policy,
)

__all__ = [
    "UNAUTHORIZED_DETAIL",
    "ApiClient",
    "ApiKeyBackend",
    "api_key_matches",
    "extract_api_key",
    "protected_api",
    "public_route",
    "validate_route_auth_policy",
]
