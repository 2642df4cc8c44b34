"""Rating validation and aggregation.

Score tiers on the 0-10 scale, used wherever a tier-classified score is shown:
legendary >= 9, epic >= 8, good >= 7, mid >= 6, trash below.

Averages return None when there is no data; unrated values never count as zero.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from party.logic.enums import ScoreTier, SessionPhase
from party.logic.exceptions import (
    InvalidRatingError,
    NotInRosterError,
    PartyEndedError,
    TrackIndexError,
)
from party.logic.patches import RatingPatch, TracksPatch
from party.logic.settings import PartySettings
from shared.dal.models import DocumentModel

if TYPE_CHECKING:
    from party.logic.state import PartySession, RosterEntry

_DEFAULT_SETTINGS = PartySettings()

_SCORE_TIERS = (
    (9.0, ScoreTier.LEGENDARY),
    (8.0, ScoreTier.EPIC),
    (7.0, ScoreTier.GOOD),
    (6.0, ScoreTier.MID),
)


def validate_rating(value: object, settings: PartySettings = _DEFAULT_SETTINGS) -> float:
    """Return value as a float if it is a legal rating, else raise InvalidRatingError."""
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise InvalidRatingError(f"rating must be a number, got {value!r}")
    if value < 0 or value > settings.max_rating:
        raise InvalidRatingError(f"rating must be between 0 and {settings.max_rating:g}")
    steps = value / settings.rating_step
    if not math.isclose(steps, round(steps)):
        raise InvalidRatingError(f"rating must be a multiple of {settings.rating_step:g}")
    return float(value)


def build_rating_patch(
    session: PartySession,
    participant_id: str,
    track_number: int,
    value: object,
    settings: PartySettings = _DEFAULT_SETTINGS,
) -> RatingPatch:
    """Validate a rating submission against the snapshot and return the patch to write."""
    if session.phase == SessionPhase.RESULTS:
        raise PartyEndedError("ratings are closed, the party has ended")
    if session.phase != SessionPhase.ACTIVE:
        raise InvalidRatingError("ratings open once the party is in the active phase")
    if session.participant(participant_id) is None:
        raise NotInRosterError(f"participant {participant_id} is not in this party")
    if session.track(track_number) is None:
        raise InvalidRatingError(f"track {track_number} does not exist")
    rating = validate_rating(value, settings)
    return RatingPatch(track_number=track_number, participant_id=participant_id, value=rating)


def _track_values(session: PartySession, track_number: int) -> list[float]:
    return [v for v in session.ratings.get(track_number, {}).values() if v is not None]


def track_average(session: PartySession, track_number: int) -> float | None:
    """Mean of submitted ratings for one track, or None if nobody rated it."""
    values = _track_values(session, track_number)
    if not values:
        return None
    return sum(values) / len(values)


def album_average(session: PartySession) -> float | None:
    """Mean of track averages over rated, non-interlude tracks, or None if none qualify."""
    averages = []
    for track in session.tracks:
        if track.is_interlude:
            continue
        avg = track_average(session, track.number)
        if avg is not None:
            averages.append(avg)
    if not averages:
        return None
    return sum(averages) / len(averages)


def round_score(value: float) -> float:
    return round(value, 2)


def score_tier(score: float) -> ScoreTier:
    for threshold, tier in _SCORE_TIERS:
        if score >= threshold:
            return tier
    return ScoreTier.TRASH


def format_score(score: float | None) -> str:
    """Whole numbers print without decimals, anything else with one."""
    if score is None:
        return "-"
    if float(score).is_integer():
        return str(int(score))
    return f"{score:.1f}"


def unrated_participants(session: PartySession, track_number: int) -> list[RosterEntry]:
    return [p for p in session.participants if session.rating(track_number, p.id) is None]


def next_track_index(session: PartySession, expected_index: int) -> int | None:
    """Index to advance to from expected_index.

    Returns None when the stored index has already moved past
    expected_index (a retried advance). Raises TrackIndexError when
    advancing past the last track or from an index the session never reached.
    """
    current = session.current_track_index
    if current > expected_index:
        return None
    if expected_index != current:
        raise TrackIndexError(f"track index {expected_index} does not match current index {current}")
    if session.is_last_track:
        raise TrackIndexError("already on the last track")
    return current + 1


class ScoreDisplay(DocumentModel):
    """A score as shown to participants: rounded value, short text and tier."""

    value: float | None = None
    text: str = "-"
    tier: ScoreTier | None = None


def display_score(score: float | None) -> ScoreDisplay:
    if score is None:
        return ScoreDisplay()
    rounded = round_score(score)
    return ScoreDisplay(value=rounded, text=format_score(rounded), tier=score_tier(rounded))


def build_interlude_patch(session: PartySession, track_number: int, is_interlude: bool) -> TracksPatch:
    """Flag or unflag a track as an interlude. Interludes drop out of the album average."""
    if session.phase == SessionPhase.RESULTS:
        raise PartyEndedError("the party has ended")
    if session.track(track_number) is None:
        raise TrackIndexError(f"track {track_number} does not exist")
    tracks = tuple(
        track.model_copy(update={"is_interlude": is_interlude}) if track.number == track_number else track
        for track in session.tracks
    )
    return TracksPatch(tracks=tracks)
