"""Frames exchanged on the live session channel."""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel

if TYPE_CHECKING:
    from party.logic.reducer import Effect, PartyView


class FrameType(StrEnum):
    SESSION = "session"
    PING = "ping"
    PONG = "pong"
    ERROR = "error"


class ChannelErrorCode(StrEnum):
    INVALID_MESSAGE = "invalid_message"
    UNKNOWN_MESSAGE = "unknown_message"


class ErrorFrame(BaseModel):
    type: FrameType = FrameType.ERROR
    code: ChannelErrorCode
    message: str


def session_frame(view: PartyView, effects: tuple[Effect, ...]) -> dict[str, Any]:
    """Whole-document snapshot plus the effects it produced. session is None once the room is gone."""
    return {
        "type": FrameType.SESSION.value,
        "session": view.session.to_document() if view.session is not None else None,
        "effects": [effect.model_dump(mode="json") for effect in effects],
    }
