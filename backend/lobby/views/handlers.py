"""JSON endpoints for the lobby control plane."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from http import HTTPStatus
from typing import TYPE_CHECKING, Any

from starlette.exceptions import HTTPException
from starlette.responses import JSONResponse, PlainTextResponse, Response

from lobby.dispatcher.service import BadRequestError, LobbyError
from shared.build_info import APP_VERSION, GIT_COMMIT

if TYPE_CHECKING:
    from starlette.requests import Request

    from bots.registry import BotRegistry
    from lobby.dispatcher.service import LobbyDispatcher

MAX_BODY_BYTES = 64 * 1024


def _utc_timestamp() -> str:
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


async def _read_json_body(request: Request) -> Any:  # noqa: ANN401
    """Decode the request body, enforcing the size limit.

    Raises HTTPException(413) for oversized bodies and BadRequestError for
    anything that is not valid JSON.
    """
    declared = request.headers.get("content-length")
    if declared is not None and declared.isdigit() and int(declared) > MAX_BODY_BYTES:
        raise HTTPException(status_code=HTTPStatus.REQUEST_ENTITY_TOO_LARGE, detail="Request body too large")

    chunks: list[bytes] = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > MAX_BODY_BYTES:
            raise HTTPException(status_code=HTTPStatus.REQUEST_ENTITY_TOO_LARGE, detail="Request body too large")
        chunks.append(chunk)

    raw = b"".join(chunks)
    if not raw.strip():
        raise BadRequestError("Invalid request body: empty body")
    try:
        return json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise BadRequestError(f"Invalid request body: {e}") from e


def _error_response(error: LobbyError) -> Response:
    return PlainTextResponse(error.message, status_code=error.status_code)


async def health(_request: Request) -> JSONResponse:
    return JSONResponse(
        {
            "status": "healthy",
            "time": _utc_timestamp(),
            "version": APP_VERSION,
            "commit": GIT_COMMIT,
        },
    )


async def list_bots(request: Request) -> JSONResponse:
    registry: BotRegistry = request.app.state.registry
    return JSONResponse({"bots": registry.snapshot()})


async def create_lobby(request: Request) -> Response:
    dispatcher: LobbyDispatcher = request.app.state.dispatcher
    try:
        body = await _read_json_body(request)
        result = await dispatcher.create_lobby(body)
    except LobbyError as e:
        return _error_response(e)
    return JSONResponse(result.model_dump(), status_code=HTTPStatus.CREATED)


async def lobby_info(request: Request) -> Response:
    """GET reads ``lobby_id`` from the query string, POST from the JSON body."""
    dispatcher: LobbyDispatcher = request.app.state.dispatcher
    try:
        if request.method == "GET":
            lobby_id = request.query_params.get("lobby_id", "")
        else:
            body = await _read_json_body(request)
            if not isinstance(body, dict):
                raise BadRequestError("Invalid request body: expected a JSON object")
            lobby_id = body.get("lobby_id", "")
        result = await dispatcher.lobby_info(lobby_id)
    except LobbyError as e:
        return _error_response(e)
    return JSONResponse(result.model_dump(mode="json"))
