from __future__ import annotations

import asyncio
import contextlib
import re
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog
from starlette.websockets import WebSocket, WebSocketDisconnect

from party.logic.exceptions import PartyError
from party.messaging.encoder import DecodeError, decode, encode
from party.messaging.types import ChannelErrorCode, ErrorFrame, FrameType, session_frame
from party.session.sync import SessionSync
from shared.logging import bind_party_context

logger = structlog.get_logger()

if TYPE_CHECKING:
    from party.logic.reducer import Effect, PartyView
    from party.session.service import PartyService

_ROOM_CODE_PATTERN = re.compile(r"^[a-zA-Z0-9]+$")
_MAX_ROOM_CODE_LENGTH = 12

# Disconnect after this many consecutive decode errors
_MAX_DECODE_ERRORS = 5


class SessionConnection:
    """One subscriber socket. Sends are serialized between the push task and the receive loop."""

    def __init__(self, websocket: WebSocket, room_code: str) -> None:
        self._websocket = websocket
        self._room_code = room_code
        self._connection_id = str(uuid4())
        self._send_lock = asyncio.Lock()

    @property
    def connection_id(self) -> str:
        return self._connection_id

    async def send_message(self, message: dict[str, Any]) -> None:
        async with self._send_lock:
            try:
                await self._websocket.send_bytes(encode(message))
            except WebSocketDisconnect:
                raise ConnectionError("WebSocket already disconnected") from None

    async def push(self, view: PartyView, effects: tuple[Effect, ...]) -> None:
        await self.send_message(session_frame(view, effects))

    async def receive_bytes(self) -> bytes:
        try:
            return await self._websocket.receive_bytes()
        except WebSocketDisconnect:
            raise ConnectionError("WebSocket already disconnected") from None

    async def close(self, code: int = 1000, reason: str = "") -> None:
        with contextlib.suppress(WebSocketDisconnect, RuntimeError):
            await self._websocket.close(code=code, reason=reason)


async def websocket_endpoint(websocket: WebSocket, service: PartyService) -> None:
    room_code = websocket.path_params["room_code"]
    if not _ROOM_CODE_PATTERN.match(room_code) or len(room_code) > _MAX_ROOM_CODE_LENGTH:
        await websocket.close(code=4000, reason="invalid_room_code")
        return
    try:
        session = await service.get_session(room_code)
    except PartyError as e:
        await websocket.close(code=4404, reason=e.code.value)
        return

    await websocket.accept()
    bind_party_context(session.room_code)
    connection = SessionConnection(websocket, session.room_code)
    logger.info("websocket connected", connection_id=connection.connection_id)

    sync = SessionSync(service.store, session.room_code, on_change=connection.push)
    await sync.start()
    decode_errors = 0

    try:
        while True:
            raw = await connection.receive_bytes()
            try:
                data = decode(raw)
            except DecodeError as e:
                decode_errors += 1
                logger.warning("decode error", error=str(e), strikes=decode_errors)
                await connection.send_message(
                    ErrorFrame(code=ChannelErrorCode.INVALID_MESSAGE, message=str(e)).model_dump(mode="json"),
                )
                if decode_errors >= _MAX_DECODE_ERRORS:
                    logger.info("too many decode errors, disconnecting", connection_id=connection.connection_id)
                    await connection.close(code=4004, reason="too_many_decode_errors")
                    return
                continue

            decode_errors = 0
            if data.get("type") == FrameType.PING:
                await connection.send_message({"type": FrameType.PONG.value})
            else:
                await connection.send_message(
                    ErrorFrame(
                        code=ChannelErrorCode.UNKNOWN_MESSAGE,
                        message=f"unknown message type: {data.get('type')!r}",
                    ).model_dump(mode="json"),
                )
    except (WebSocketDisconnect, RuntimeError, ConnectionError):  # fmt: skip
        pass
    finally:
        await sync.stop()
        logger.info("websocket disconnected", connection_id=connection.connection_id)
        structlog.contextvars.clear_contextvars()
