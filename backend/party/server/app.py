from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any, TypeVar, cast

import structlog
from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute

from party.logic.enums import AlbumSort
from party.logic.exceptions import (
    AlbumNotFoundError,
    PartyError,
    PartyValidationError,
    ProfileNotFoundError,
    RoomNotFoundError,
)
from party.metadata.spotify import SpotifyClient
from party.server.settings import PartyServerSettings
from party.server.types import (
    BingoToggleRequest,
    ChatRequest,
    CreatePartyRequest,
    InterludeRequest,
    JoinRequest,
    LpcAdjustRequest,
    NextTrackRequest,
    PredictionResultsRequest,
    PredictionsRequest,
    ProfileRequest,
    RatingRequest,
)
from party.server.websocket import websocket_endpoint
from party.session.service import PartyService, placeholder_tracks
from shared.build_info import build_info
from shared.dal.ops import StoreError
from shared.db import Database, MemoryDocumentStore, SqliteDocumentStore, StoreAlbumRepository, StoreParticipantRepository
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from starlette.requests import Request
    from starlette.websockets import WebSocket

    from shared.dal.document_store import DocumentStore

_MAX_REQUEST_BODY_SIZE = 64 * 1024
_DEFAULT_TOP_ALBUMS = 10
_MAX_TOP_ALBUMS = 100

_NOT_FOUND_ERRORS = (RoomNotFoundError, ProfileNotFoundError, AlbumNotFoundError)

_BodyT = TypeVar("_BodyT", bound=BaseModel)


class RequestError(Exception):
    """Malformed or oversized request body."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def _error(code: str, message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": code, "message": message}, status_code=status_code)


def _status_for(exc: PartyError) -> int:
    if isinstance(exc, _NOT_FOUND_ERRORS):
        return 404
    if isinstance(exc, PartyValidationError):
        return 400
    return 409


async def _party_error(_request: Request, exc: Exception) -> JSONResponse:
    party_exc = cast("PartyError", exc)
    return _error(party_exc.code.value, party_exc.message, _status_for(party_exc))


async def _request_error(_request: Request, exc: Exception) -> JSONResponse:
    request_exc = cast("RequestError", exc)
    return _error("invalid_request", request_exc.message, request_exc.status_code)


async def _store_error(_request: Request, exc: Exception) -> JSONResponse:
    logger.error("store error", error=str(exc))
    return _error("store_unavailable", "Storage is temporarily unavailable", 503)


async def _read_body(request: Request, model: type[_BodyT]) -> _BodyT:
    raw = await request.body()
    if len(raw) > _MAX_REQUEST_BODY_SIZE:
        raise RequestError("Request body too large", status_code=413)
    try:
        return model.model_validate_json(raw or b"{}")
    except ValidationError as e:
        details = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise RequestError(details or "Invalid request body") from e


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


def _service(request: Request) -> PartyService:
    return request.app.state.service


async def health(_request: Request) -> JSONResponse:
    return JSONResponse({"status": "ok", **build_info()})


# --- parties ---


async def create_party(request: Request) -> JSONResponse:
    service = _service(request)
    body = await _read_body(request, CreatePartyRequest)

    details = await service.load_album_metadata(body.metadata_album_id) if body.metadata_album_id else None
    if details is not None:
        tracks = details.tracks
    elif body.tracks:
        tracks = tuple(body.tracks)
    else:
        tracks = placeholder_tracks(body.track_count or 0)

    session = await service.create_party(
        album_title=body.album_title or (details.title if details else ""),
        artist_name=body.artist_name or (details.artist if details else ""),
        album_cover=body.album_cover or (details.cover_url if details else ""),
        tracks=tracks,
        bingo_tile_pool=body.bingo_tiles,
        predictions_container_id=body.predictions_container_id,
        prediction_questions=body.prediction_questions,
    )
    return JSONResponse(session.to_document(), status_code=201)


async def get_party(request: Request) -> JSONResponse:
    session = await _service(request).get_session(request.path_params["room_code"])
    return JSONResponse(session.to_document())


async def join_party(request: Request) -> JSONResponse:
    body = await _read_body(request, JoinRequest)
    entry = await _service(request).join(request.path_params["room_code"], name=body.name, profile_ref=body.profile_ref)
    return JSONResponse(entry.to_document(), status_code=201)


async def start_party(request: Request) -> JSONResponse:
    session = await _service(request).start_party(request.path_params["room_code"])
    return JSONResponse(session.to_document())


async def start_rating(request: Request) -> JSONResponse:
    session = await _service(request).start_rating(request.path_params["room_code"])
    return JSONResponse(session.to_document())


async def next_track(request: Request) -> JSONResponse:
    body = await _read_body(request, NextTrackRequest)
    advance = await _service(request).next_track(request.path_params["room_code"], body.expected_index)
    return JSONResponse(_dump(advance))


async def set_interlude(request: Request) -> JSONResponse:
    body = await _read_body(request, InterludeRequest)
    session = await _service(request).set_interlude(
        request.path_params["room_code"],
        body.track_number,
        body.is_interlude,
    )
    return JSONResponse(session.to_document())


async def finish_party(request: Request) -> JSONResponse:
    outcome = await _service(request).finish_party(request.path_params["room_code"])
    return JSONResponse(_dump(outcome))


async def submit_rating(request: Request) -> JSONResponse:
    body = await _read_body(request, RatingRequest)
    await _service(request).submit_rating(
        request.path_params["room_code"],
        body.participant_id,
        body.track_number,
        body.value,
    )
    return JSONResponse({"status": "ok"})


async def toggle_bingo(request: Request) -> JSONResponse:
    body = await _read_body(request, BingoToggleRequest)
    toggle = await _service(request).toggle_bingo_tile(request.path_params["room_code"], body.participant_id, body.index)
    return JSONResponse(_dump(toggle))


async def submit_predictions(request: Request) -> JSONResponse:
    body = await _read_body(request, PredictionsRequest)
    entry = await _service(request).submit_predictions(
        request.path_params["room_code"],
        body.participant_id,
        body.answers,
    )
    return JSONResponse(entry.to_document())


async def resolve_predictions(request: Request) -> JSONResponse:
    body = await _read_body(request, PredictionResultsRequest)
    outcome = await _service(request).resolve_predictions(request.path_params["room_code"], body.results, body.strategy)
    return JSONResponse(_dump(outcome))


async def send_chat(request: Request) -> JSONResponse:
    body = await _read_body(request, ChatRequest)
    message = await _service(request).send_chat(request.path_params["room_code"], body.participant_id, body.message)
    return JSONResponse(message.to_document(), status_code=201)


async def list_chat(request: Request) -> JSONResponse:
    messages = await _service(request).list_chat(request.path_params["room_code"])
    return JSONResponse({"messages": [m.to_document() for m in messages]})


# --- albums, profiles, metadata ---


async def top_albums(request: Request) -> JSONResponse:
    try:
        limit = int(request.query_params.get("limit", _DEFAULT_TOP_ALBUMS))
    except ValueError:
        raise RequestError("limit must be an integer") from None
    if not 1 <= limit <= _MAX_TOP_ALBUMS:
        raise RequestError(f"limit must be between 1 and {_MAX_TOP_ALBUMS}")
    albums = await _service(request).top_albums(limit)
    return JSONResponse({"albums": [_dump(a) for a in albums]})


async def list_albums(request: Request) -> JSONResponse:
    try:
        order = AlbumSort(request.query_params.get("sort", AlbumSort.DATE_DESC))
    except ValueError:
        raise RequestError(f"sort must be one of {', '.join(AlbumSort)}") from None
    albums = await _service(request).list_albums(order, participant=request.query_params.get("participant"))
    return JSONResponse({"albums": [_dump(a) for a in albums]})


async def album_detail(request: Request) -> JSONResponse:
    detail = await _service(request).get_album_detail(request.path_params["album_id"])
    return JSONResponse(_dump(detail))


async def delete_album(request: Request) -> JSONResponse:
    await _service(request).delete_album(request.path_params["album_id"])
    return JSONResponse({"status": "ok"})


async def create_profile(request: Request) -> JSONResponse:
    body = await _read_body(request, ProfileRequest)
    profile = await _service(request).create_profile(body.username, body.profile_picture)
    return JSONResponse(profile.to_document(), status_code=201)


async def adjust_lpc(request: Request) -> JSONResponse:
    body = await _read_body(request, LpcAdjustRequest)
    balance = await _service(request).adjust_lpc(
        request.path_params["profile_id"],
        body.amount,
        deduct=body.mode == "deduct",
    )
    return JSONResponse({"lpc": balance})


async def profile_stats(request: Request) -> JSONResponse:
    stats = await _service(request).participant_stats(request.path_params["profile_id"])
    return JSONResponse(_dump(stats))


async def profile_achievements(request: Request) -> JSONResponse:
    progress = await _service(request).achievement_progress(request.path_params["profile_id"])
    return JSONResponse(
        {
            "achievements": [
                {
                    "id": p.achievement.id,
                    "name": p.achievement.name,
                    "type": p.achievement.type.value,
                    "target": p.achievement.target,
                    "reward": p.achievement.reward,
                    "current": p.current,
                    "percentage": p.percentage,
                    "unlocked": p.unlocked,
                    "unlockedAt": p.unlocked_at,
                }
                for p in progress
            ],
        },
    )


async def search_metadata(request: Request) -> JSONResponse:
    albums = await _service(request).search_albums(request.query_params.get("q", ""))
    return JSONResponse({"albums": [_dump(a) for a in albums]})


def _build_store(settings: PartyServerSettings) -> tuple[DocumentStore, Database | None]:
    if settings.memory_store:
        return MemoryDocumentStore(), None
    db = Database(settings.database_path)
    db.connect()
    return SqliteDocumentStore(db), db


def create_app(
    settings: PartyServerSettings | None = None,
    service: PartyService | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = PartyServerSettings()

    # When the app builds its own service, it owns the DB and HTTP client lifecycles.
    owned_db: Database | None = None
    owned_metadata: SpotifyClient | None = None

    if service is None:
        store, owned_db = _build_store(settings)
        if settings.metadata_enabled:
            owned_metadata = SpotifyClient(settings.spotify_client_id or "", settings.spotify_client_secret or "")
        service = PartyService(
            store,
            StoreParticipantRepository(store),
            StoreAlbumRepository(store),
            metadata=owned_metadata,
        )

    async def ws_endpoint(websocket: WebSocket) -> None:
        await websocket_endpoint(websocket, service)

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/parties", create_party, methods=["POST"]),
        Route("/parties/{room_code}", get_party, methods=["GET"]),
        Route("/parties/{room_code}/join", join_party, methods=["POST"]),
        Route("/parties/{room_code}/start", start_party, methods=["POST"]),
        Route("/parties/{room_code}/start-rating", start_rating, methods=["POST"]),
        Route("/parties/{room_code}/next-track", next_track, methods=["POST"]),
        Route("/parties/{room_code}/interlude", set_interlude, methods=["POST"]),
        Route("/parties/{room_code}/finish", finish_party, methods=["POST"]),
        Route("/parties/{room_code}/ratings", submit_rating, methods=["POST"]),
        Route("/parties/{room_code}/bingo", toggle_bingo, methods=["POST"]),
        Route("/parties/{room_code}/predictions", submit_predictions, methods=["POST"]),
        Route("/parties/{room_code}/prediction-results", resolve_predictions, methods=["POST"]),
        Route("/parties/{room_code}/chat", send_chat, methods=["POST"]),
        Route("/parties/{room_code}/chat", list_chat, methods=["GET"]),
        Route("/albums", list_albums, methods=["GET"]),
        Route("/albums/top", top_albums, methods=["GET"]),
        Route("/albums/{album_id}", album_detail, methods=["GET"]),
        Route("/albums/{album_id}", delete_album, methods=["DELETE"]),
        Route("/profiles", create_profile, methods=["POST"]),
        Route("/profiles/{profile_id}/lpc", adjust_lpc, methods=["POST"]),
        Route("/profiles/{profile_id}/stats", profile_stats, methods=["GET"]),
        Route("/profiles/{profile_id}/achievements", profile_achievements, methods=["GET"]),
        Route("/metadata/search", search_metadata, methods=["GET"]),
        WebSocketRoute("/ws/{room_code}", ws_endpoint),
    ]

    @contextlib.asynccontextmanager
    async def lifespan(_app: Starlette) -> AsyncIterator[None]:
        yield
        if owned_metadata is not None:
            await owned_metadata.close()
        if owned_db is not None:
            owned_db.close()

    app = Starlette(
        routes=routes,
        lifespan=lifespan,
        exception_handlers={
            PartyError: _party_error,
            RequestError: _request_error,
            StoreError: _store_error,
        },
    )
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["Content-Type"],
    )
    app.state.settings = settings
    app.state.service = service

    logger.info("party server ready", memory_store=settings.memory_store, metadata=settings.metadata_enabled)
    return app


def get_app() -> Starlette:  # pragma: no cover
    """ASGI application factory for production use (e.g., uvicorn --factory)."""
    _settings = PartyServerSettings()
    setup_logging(log_dir=_settings.log_dir)
    return create_app(settings=_settings)
