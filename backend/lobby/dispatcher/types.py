from pydantic import BaseModel, ConfigDict, Field

from bots.client.protocol import LobbyDetails

MAX_LOBBY_NAME_LENGTH = 100
MAX_LOBBY_PASSWORD_LENGTH = 50


class CreateLobbyRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    lobby_name: str = Field(min_length=1, max_length=MAX_LOBBY_NAME_LENGTH, strict=True)
    password: str | None = Field(default=None, max_length=MAX_LOBBY_PASSWORD_LENGTH, strict=True)
    server_region: str | None = Field(default=None, strict=True)
    game_mode: str | None = Field(default=None, strict=True)


class LobbyInfoRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    lobby_id: str = Field(min_length=1, strict=True)


class CreateLobbyResponse(BaseModel):
    status: str = "success"
    lobby_name: str
    lobby_id: str
    bot_used: str


class LobbyInfoResponse(BaseModel):
    status: str = "success"
    lobby_id: str
    bot_used: str
    lobby: LobbyDetails
