"""Pure reducer from session snapshots to an immutable client view.

Every snapshot carries the whole session document, so the reducer
re-derives the view from it and emits effects only for what changed
against the previous view. Reducing the same snapshot twice yields no
effects the second time. A snapshot whose phase or track index is behind
the current view is treated as stale and dropped.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel

from party.logic.enums import SessionPhase
from party.logic.phases import phase_reached
from party.logic.state import PartySession


class SessionChanged(BaseModel, frozen=True):
    """A snapshot arrived. session is None when the document no longer exists."""

    session: PartySession | None


class PhaseEntered(BaseModel, frozen=True):
    kind: Literal["phase_entered"] = "phase_entered"
    phase: SessionPhase


class TrackChanged(BaseModel, frozen=True):
    kind: Literal["track_changed"] = "track_changed"
    index: int
    track_number: int


class RatingRevealed(BaseModel, frozen=True):
    kind: Literal["rating_revealed"] = "rating_revealed"
    track_number: int
    participant_id: str
    value: float


class PartyFinished(BaseModel, frozen=True):
    kind: Literal["party_finished"] = "party_finished"
    album_id: str | None
    average_score: float | None


class SessionClosed(BaseModel, frozen=True):
    kind: Literal["session_closed"] = "session_closed"


Effect = PhaseEntered | TrackChanged | RatingRevealed | PartyFinished | SessionClosed


class PartyView(BaseModel, frozen=True):
    session: PartySession | None = None
    closed: bool = False
    # (track number, participant id) pairs already revealed
    revealed: frozenset[tuple[int, str]] = frozenset()


def _rated_pairs(session: PartySession) -> dict[tuple[int, str], float]:
    return {
        (track_number, pid): value
        for track_number, by_participant in session.ratings.items()
        for pid, value in by_participant.items()
        if value is not None
    }


def _is_stale(current: PartySession, incoming: PartySession) -> bool:
    if not phase_reached(incoming, current.phase):
        return True
    return incoming.phase == current.phase and incoming.current_track_index < current.current_track_index


def _track_effect(session: PartySession) -> list[Effect]:
    track = session.current_track
    if session.phase != SessionPhase.ACTIVE or track is None:
        return []
    return [TrackChanged(index=session.current_track_index, track_number=track.number)]


def _phase_effects(session: PartySession) -> list[Effect]:
    effects: list[Effect] = [PhaseEntered(phase=session.phase)]
    if session.phase == SessionPhase.RESULTS:
        effects.append(PartyFinished(album_id=session.album_id, average_score=session.average_score))
    return effects


def reduce(view: PartyView, event: SessionChanged) -> tuple[PartyView, tuple[Effect, ...]]:
    incoming = event.session
    if incoming is None:
        if view.closed:
            return view, ()
        return PartyView(closed=True, revealed=view.revealed), (SessionClosed(),)

    current = view.session
    if current is None:
        # First snapshot: existing ratings become the baseline without a reveal.
        initial = _phase_effects(incoming) + _track_effect(incoming)
        baseline = frozenset(_rated_pairs(incoming))
        return PartyView(session=incoming, revealed=view.revealed | baseline), tuple(initial)

    if _is_stale(current, incoming):
        return view, ()

    effects: list[Effect] = []
    if incoming.phase != current.phase:
        effects.extend(_phase_effects(incoming))
        effects.extend(_track_effect(incoming))
    elif incoming.current_track_index != current.current_track_index:
        effects.extend(_track_effect(incoming))

    revealed = set(view.revealed)
    for (track_number, pid), value in sorted(_rated_pairs(incoming).items()):
        if (track_number, pid) not in revealed:
            revealed.add((track_number, pid))
            effects.append(RatingRevealed(track_number=track_number, participant_id=pid, value=value))

    return PartyView(session=incoming, revealed=frozenset(revealed)), tuple(effects)
