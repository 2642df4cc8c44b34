from __future__ import annotations

import random
from typing import TYPE_CHECKING

import pytest

from party.logic.enums import QuestionType, SessionPhase
from party.logic.state import BingoTile, PartySession, PredictionQuestion, RosterEntry
from party.session.service import PartyService
from shared.dal.models import Track
from shared.db import MemoryDocumentStore, StoreAlbumRepository, StoreParticipantRepository

if TYPE_CHECKING:
    from collections.abc import Sequence

# ============================================================================
# Session builders
# ============================================================================


def make_tracks(count: int = 3, *, interludes: Sequence[int] = ()) -> tuple[Track, ...]:
    return tuple(Track(number=n, title=f"Song {n}", is_interlude=n in interludes) for n in range(1, count + 1))


def make_pool(size: int = 24) -> tuple[BingoTile, ...]:
    return tuple(BingoTile(id=f"t{i}", text=f"Moment {i}") for i in range(size))


def guest(participant_id: str = "guest_1_aaaaaaaaa", name: str = "Guest") -> RosterEntry:
    return RosterEntry(id=participant_id, name=name, is_guest=True)


def member(profile_id: str = "p1", name: str = "Mia") -> RosterEntry:
    return RosterEntry(id=profile_id, name=name, profile_ref=profile_id, is_guest=False)


def number_question(question_id: str = "q_score", lo: float = 0, hi: float = 100) -> PredictionQuestion:
    return PredictionQuestion(
        id=question_id,
        text="Average album score x10?",
        type=QuestionType.NUMBER,
        min_value=lo,
        max_value=hi,
    )


def yesno_question(question_id: str = "q_ten") -> PredictionQuestion:
    return PredictionQuestion(id=question_id, text="Will anyone give a 10?", type=QuestionType.YESNO)


def make_session(
    *,
    phase: SessionPhase = SessionPhase.ACTIVE,
    tracks: Sequence[Track] | None = None,
    participants: Sequence[RosterEntry] = (),
    ratings: dict[int, dict[str, float | None]] | None = None,
    current_track_index: int = 0,
    **extra,
) -> PartySession:
    return PartySession(
        room_code="ABC123",
        phase=phase,
        album_title="Test Album",
        artist_name="Test Artist",
        tracks=tuple(tracks) if tracks is not None else make_tracks(),
        participants=tuple(participants),
        ratings=ratings or {},
        current_track_index=current_track_index,
        created_at=1_700_000_000_000,
        **extra,
    )


# ============================================================================
# Service fixtures
# ============================================================================


class FakeClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        self.now += 1
        return self.now


@pytest.fixture
def store():
    return MemoryDocumentStore()


@pytest.fixture
def participants(store):
    return StoreParticipantRepository(store)


@pytest.fixture
def albums(store):
    return StoreAlbumRepository(store)


@pytest.fixture
def service(store, participants, albums):
    return PartyService(store, participants, albums, rng=random.Random(7), clock=FakeClock())
