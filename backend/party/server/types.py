"""HTTP request bodies. JSON keys are camelCase, matching stored documents."""

from typing import Any, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from party.logic.enums import ScoringStrategy
from party.logic.state import BingoTile, PredictionQuestion
from shared.dal.models import Track


class RequestBody(BaseModel):
    model_config = ConfigDict(extra="forbid", alias_generator=to_camel, populate_by_name=True)


class CreatePartyRequest(RequestBody):
    """New party. Tracks come from the metadata album, an explicit list, or numbered placeholders."""

    album_title: str = Field(default="", max_length=200)
    artist_name: str = Field(default="", max_length=200)
    album_cover: str = Field(default="", max_length=2000)
    metadata_album_id: str | None = Field(default=None, max_length=100)
    tracks: list[Track] = Field(default_factory=list, max_length=200)
    track_count: int | None = Field(default=None, ge=1, le=200)
    bingo_tiles: list[BingoTile] = Field(default_factory=list, max_length=200)
    predictions_container_id: str | None = Field(default=None, max_length=100)
    prediction_questions: list[PredictionQuestion] = Field(default_factory=list, max_length=50)

    @model_validator(mode="after")
    def _validate_track_source(self) -> Self:
        if self.metadata_album_id is None and not self.tracks and self.track_count is None:
            raise ValueError("Provide metadataAlbumId, tracks or trackCount")
        if self.metadata_album_id is None and not self.album_title.strip():
            raise ValueError("albumTitle is required without metadataAlbumId")
        return self


class JoinRequest(RequestBody):
    name: str | None = Field(default=None, max_length=100)
    profile_ref: str | None = Field(default=None, max_length=100)


class RatingRequest(RequestBody):
    participant_id: str = Field(min_length=1, max_length=100)
    track_number: int
    value: Any = None


class NextTrackRequest(RequestBody):
    expected_index: int = Field(ge=0)


class InterludeRequest(RequestBody):
    track_number: int = Field(ge=1)
    is_interlude: bool


class BingoToggleRequest(RequestBody):
    participant_id: str = Field(min_length=1, max_length=100)
    index: int


class PredictionsRequest(RequestBody):
    participant_id: str = Field(min_length=1, max_length=100)
    answers: dict[str, Any]


class PredictionResultsRequest(RequestBody):
    results: dict[str, Any]
    strategy: ScoringStrategy = ScoringStrategy.LINEAR


class ChatRequest(RequestBody):
    participant_id: str = Field(min_length=1, max_length=100)
    message: str = Field(max_length=2000)


class ProfileRequest(RequestBody):
    username: str = Field(max_length=100)
    profile_picture: str = Field(default="", max_length=2000)


class LpcAdjustRequest(RequestBody):
    amount: int = Field(ge=0, strict=True)
    mode: Literal["add", "deduct"] = "add"
