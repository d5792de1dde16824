"""Service configuration from environment variables and YAML files.

Sources, highest precedence first:

1. keyword arguments passed to ``LobbyServerSettings(...)``
2. environment variables prefixed ``DOTA_LOBBY_`` (``DOTA_LOBBY_SERVER_PORT``,
   ``DOTA_LOBBY_SERVER_API_KEY``, ``DOTA_LOBBY_BOTS='[...]'``)
3. ``secrets.yaml`` (bot credentials, API key)
4. ``config.yaml``
5. field defaults

Each YAML file is taken from the first search directory that contains it.
``DOTA_LOBBY_CONFIG_DIR`` replaces the search list with a single directory.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, YamlConfigSettingsSource

from bots.backoff import BackoffPolicy

if TYPE_CHECKING:
    from pydantic_settings import PydanticBaseSettingsSource

ENV_PREFIX = "DOTA_LOBBY_"
CONFIG_DIR_ENV = f"{ENV_PREFIX}CONFIG_DIR"
CONFIG_FILE_NAME = "config.yaml"
SECRETS_FILE_NAME = "secrets.yaml"


def default_search_paths() -> list[Path]:
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return [Path(override)]
    return [
        Path(),
        Path("config"),
        Path("/etc/dota_lobby"),
        Path.home() / ".config" / "dota_lobby",
    ]


def find_config_file(name: str, search_paths: list[Path] | None = None) -> Path | None:
    """Return the first existing ``<dir>/<name>`` across the search paths."""
    for directory in search_paths if search_paths is not None else default_search_paths():
        candidate = directory / name
        if candidate.is_file():
            return candidate
    return None


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"  # noqa: S104
    port: int = Field(default=8080, ge=1, le=65535)
    api_key: SecretStr = SecretStr("")
    log_dir: str | None = None


class BotSettings(BaseModel):
    username: str = Field(min_length=1)
    password: SecretStr
    enabled: bool = True

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError("password is required")
        return v


class SteamSettings(BaseModel):
    backend: Literal["valve", "mock"] = "valve"
    gc_timeout: float = Field(default=30.0, gt=0)


class LobbyServerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_nested_delimiter="_",
        env_nested_max_split=1,
        frozen=True,
    )

    server: ServerSettings = ServerSettings()
    bots: list[BotSettings] = []
    steam: SteamSettings = SteamSettings()
    supervisor: BackoffPolicy = BackoffPolicy()

    @property
    def enabled_bots(self) -> list[BotSettings]:
        return [bot for bot in self.bots if bot.enabled]

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        search_paths = default_search_paths()
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=find_config_file(SECRETS_FILE_NAME, search_paths)),
            YamlConfigSettingsSource(settings_cls, yaml_file=find_config_file(CONFIG_FILE_NAME, search_paths)),
        )
