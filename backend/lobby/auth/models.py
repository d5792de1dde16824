"""User model for Starlette AuthenticationMiddleware integration."""

from __future__ import annotations

from starlette.authentication import BaseUser


class ApiClient(BaseUser):
    """Caller authenticated by the shared API key.

    There is a single credential, so every client shares one identity.
    Anonymous clients appear only when authentication is disabled.
    """

    def __init__(self, *, anonymous: bool = False) -> None:
        self._anonymous = anonymous

    @property
    def is_authenticated(self) -> bool:  # pragma: no cover
        return True

    @property
    def display_name(self) -> str:
        return "anonymous" if self._anonymous else "api-client"

    @property
    def identity(self) -> str:  # pragma: no cover
        return self.display_name

    @property
    def anonymous(self) -> bool:
        return self._anonymous
