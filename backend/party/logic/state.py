"""Immutable session state models.

A PartySession is parsed from the stored session document on every
snapshot and never mutated in place; changes are expressed as patches
(see party.logic.patches) and written back to the store.
"""

from __future__ import annotations

from typing import Self

from pydantic import Field, computed_field, model_validator

from party.logic.enums import Diagonal, QuestionType, SessionPhase
from shared.dal.models import DocumentModel, Track

BOARD_SIZE = 16

PredictionAnswer = bool | float


class RosterEntry(DocumentModel):
    """One seat in a party: a persistent profile or an ephemeral guest."""

    id: str
    name: str
    profile_ref: str | None = None  # persistent profile id, None for guests
    is_guest: bool = True
    joined_at: int = 0  # epoch ms


class BingoTile(DocumentModel):
    id: str
    text: str
    emoji: str = ""


class BingoBoard(DocumentModel):
    """A participant's 4x4 board. Completion sets are append-only."""

    tiles: tuple[BingoTile, ...] = Field(min_length=BOARD_SIZE, max_length=BOARD_SIZE)
    marked: tuple[bool, ...] = Field(default=(False,) * BOARD_SIZE, min_length=BOARD_SIZE, max_length=BOARD_SIZE)
    completed_rows: tuple[int, ...] = ()
    completed_cols: tuple[int, ...] = ()
    completed_diagonals: tuple[Diagonal, ...] = ()
    reward_issued: bool = False

    @computed_field
    @property
    def has_bingo(self) -> bool:
        return bool(self.completed_rows or self.completed_cols or self.completed_diagonals)


class PredictionQuestion(DocumentModel):
    id: str
    text: str
    type: QuestionType
    min_value: float = 0
    max_value: float = 100
    step: float = 1

    @model_validator(mode="after")
    def _check_range(self) -> Self:
        if self.type == QuestionType.NUMBER and self.max_value <= self.min_value:
            raise ValueError(f"question {self.id}: maxValue must be greater than minValue")
        return self


class PredictionEntry(DocumentModel):
    answers: dict[str, PredictionAnswer] = Field(default_factory=dict)
    submitted: bool = False
    submitted_at: int | None = None


class PartySession(DocumentModel):
    """Snapshot of one listening party, keyed by room code."""

    room_code: str
    phase: SessionPhase = SessionPhase.LOBBY
    album_title: str = ""
    artist_name: str = ""
    album_cover: str = ""
    tracks: tuple[Track, ...] = ()
    participants: tuple[RosterEntry, ...] = ()
    current_track_index: int = Field(default=0, ge=0)
    # track number -> participant id -> rating (None or absent means unrated)
    ratings: dict[int, dict[str, float | None]] = Field(default_factory=dict)
    bingo_tile_pool: tuple[BingoTile, ...] = ()
    bingo_boards: dict[str, BingoBoard] = Field(default_factory=dict)
    predictions_container_id: str | None = None
    prediction_questions: tuple[PredictionQuestion, ...] = ()
    predictions: dict[str, PredictionEntry] = Field(default_factory=dict)
    prediction_results: dict[str, PredictionAnswer] | None = None
    prediction_scores: dict[str, float] | None = None
    prediction_winner: str | None = None
    album_id: str | None = None
    average_score: float | None = None
    created_at: int = 0

    @property
    def current_track(self) -> Track | None:
        if 0 <= self.current_track_index < len(self.tracks):
            return self.tracks[self.current_track_index]
        return None

    @property
    def is_last_track(self) -> bool:
        return self.current_track_index >= len(self.tracks) - 1

    @property
    def bingo_enabled(self) -> bool:
        return bool(self.bingo_tile_pool)

    @property
    def profile_ids(self) -> list[str]:
        return [p.profile_ref for p in self.participants if not p.is_guest and p.profile_ref]

    def track(self, number: int) -> Track | None:
        for track in self.tracks:
            if track.number == number:
                return track
        return None

    def participant(self, participant_id: str) -> RosterEntry | None:
        for entry in self.participants:
            if entry.id == participant_id:
                return entry
        return None

    def seat_for_profile(self, profile_ref: str) -> RosterEntry | None:
        for entry in self.participants:
            if not entry.is_guest and entry.profile_ref == profile_ref:
                return entry
        return None

    def rating(self, track_number: int, participant_id: str) -> float | None:
        return self.ratings.get(track_number, {}).get(participant_id)
