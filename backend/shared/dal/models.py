"""Persistence models for the data access layer.

Stored documents use camelCase field names; models expose snake_case
attributes and accept either spelling on input.
"""

from typing import Any, Self

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class DocumentModel(BaseModel):
    """Frozen base model that round-trips through camelCase store documents."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_document(cls, data: dict[str, Any]) -> Self:
        return cls.model_validate(data)


class Track(DocumentModel):
    number: int = Field(ge=1)  # 1-based, dense within an album
    title: str
    is_interlude: bool = False
    duration_ms: int | None = None


class AchievementState(DocumentModel):
    unlocked: bool = True
    unlocked_at: int | None = None  # epoch ms


class ParticipantProfile(DocumentModel):
    """Persistent participant profile with its LPC balance and unlocked achievements."""

    id: str
    username: str
    profile_picture: str = ""
    lpc: int = Field(default=0, ge=0)
    achievements: dict[str, AchievementState] = Field(default_factory=dict)
    created_at: int = 0


class Album(DocumentModel):
    """Immutable snapshot of a finished listening party."""

    id: str
    title: str
    artist: str
    cover_image: str = ""
    track_count: int = 0
    tracks: tuple[Track, ...] = ()
    participants: tuple[str, ...] = ()  # persistent profile ids only
    # track number -> profile id -> rating
    ratings: dict[int, dict[str, float]] = Field(default_factory=dict)
    average_score: float = 0.0
    is_completed: bool = True
    party_mode: bool = True
    room_code: str = ""
    created_at: int = 0


class ChatMessage(DocumentModel):
    participant_id: str
    participant_name: str
    message: str
    created_at: int
