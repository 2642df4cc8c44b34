"""Typed patches against the session document.

Each patch is validated when constructed and flattens itself to store
field operations. Patches touching collections shared between writers
(the roster, LPC balances) use array-union or increment operations so
concurrent writers do not clobber each other.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field

from party.logic.enums import SessionPhase
from party.logic.state import BingoBoard, PredictionAnswer, PredictionEntry, RosterEntry
from shared.dal.models import Track
from shared.dal.ops import ArrayUnion, FieldOp, SetField


class SessionPatch(BaseModel, ABC, frozen=True):
    @abstractmethod
    def to_ops(self) -> list[FieldOp]: ...


class RatingPatch(SessionPatch, frozen=True):
    track_number: int = Field(ge=1)
    participant_id: str = Field(min_length=1)
    value: float = Field(ge=0, le=10)

    def to_ops(self) -> list[FieldOp]:
        return [SetField(path=("ratings", str(self.track_number), self.participant_id), value=self.value)]


class PhasePatch(SessionPatch, frozen=True):
    phase: SessionPhase

    def to_ops(self) -> list[FieldOp]:
        return [SetField(path=("phase",), value=self.phase.value)]


class TrackAdvancePatch(SessionPatch, frozen=True):
    index: int = Field(ge=0)

    def to_ops(self) -> list[FieldOp]:
        return [SetField(path=("currentTrackIndex",), value=self.index)]


class TracksPatch(SessionPatch, frozen=True):
    """Rewrite the whole track list. The host is its only writer."""

    tracks: tuple[Track, ...] = Field(min_length=1)

    def to_ops(self) -> list[FieldOp]:
        return [SetField(path=("tracks",), value=[t.to_document() for t in self.tracks])]


class JoinPatch(SessionPatch, frozen=True):
    entry: RosterEntry

    def to_ops(self) -> list[FieldOp]:
        return [ArrayUnion(path=("participants",), values=(self.entry.to_document(),))]


class BingoBoardPatch(SessionPatch, frozen=True):
    participant_id: str = Field(min_length=1)
    board: BingoBoard

    def to_ops(self) -> list[FieldOp]:
        return [SetField(path=("bingoBoards", self.participant_id), value=self.board.to_document())]


class PredictionEntryPatch(SessionPatch, frozen=True):
    participant_id: str = Field(min_length=1)
    entry: PredictionEntry

    def to_ops(self) -> list[FieldOp]:
        return [SetField(path=("predictions", self.participant_id), value=self.entry.to_document())]


class PredictionResultsPatch(SessionPatch, frozen=True):
    results: dict[str, PredictionAnswer]
    scores: dict[str, float]
    winner: str | None = None

    def to_ops(self) -> list[FieldOp]:
        return [
            SetField(path=("predictionResults",), value=dict(self.results)),
            SetField(path=("predictionScores",), value=dict(self.scores)),
            SetField(path=("predictionWinner",), value=self.winner),
        ]


class FinishPatch(SessionPatch, frozen=True):
    """Single write that moves the party to results and links the persisted album."""

    album_id: str = Field(min_length=1)
    average_score: float

    def to_ops(self) -> list[FieldOp]:
        return [
            SetField(path=("phase",), value=SessionPhase.RESULTS.value),
            SetField(path=("albumId",), value=self.album_id),
            SetField(path=("averageScore",), value=self.average_score),
        ]


def flatten(*patches: SessionPatch) -> list[FieldOp]:
    """Combine patches into one op list for a single atomic update."""
    ops: list[FieldOp] = []
    for patch in patches:
        ops.extend(patch.to_ops())
    return ops
