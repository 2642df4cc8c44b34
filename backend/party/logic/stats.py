"""Per-participant rating statistics across finished albums."""

from __future__ import annotations

import statistics
from typing import TYPE_CHECKING

from pydantic import Field

from party.logic.achievements import RatingRecord, rating_history
from party.logic.ratings import ScoreDisplay, display_score, round_score
from shared.dal.models import DocumentModel

if TYPE_CHECKING:
    from collections.abc import Sequence

    from shared.dal.models import Album

CONSISTENT_SPREAD = 1.5
MODERATE_SPREAD = 2.5
GENEROUS_AVERAGE = 7.0
CRITICAL_AVERAGE = 5.0


class FavoriteAlbum(DocumentModel):
    album_id: str
    title: str
    artist: str
    score: float
    score_display: ScoreDisplay = ScoreDisplay()


class ParticipantStats(DocumentModel):
    average: float = 0.0
    average_display: ScoreDisplay = ScoreDisplay()
    albums_rated: int = 0
    tracks_rated: int = 0
    distribution: dict[float, int] = Field(default_factory=dict)
    favorite_album: FavoriteAlbum | None = None
    highest: RatingRecord | None = None
    lowest: RatingRecord | None = None
    most_common: float | None = None
    style: str = "No data"


def rating_style(values: Sequence[float]) -> str:
    """Spread label from the standard deviation, plus a leaning from the mean."""
    spread = statistics.pstdev(values)
    if spread < CONSISTENT_SPREAD:
        label = "Consistent"
    elif spread < MODERATE_SPREAD:
        label = "Moderate"
    else:
        label = "Varied"

    average = statistics.fmean(values)
    if average >= GENEROUS_AVERAGE:
        leaning = "Generous"
    elif average <= CRITICAL_AVERAGE:
        leaning = "Critical"
    else:
        leaning = "Balanced"
    return f"{label} - {leaning}"


def _favorite(albums: Sequence[Album], profile_id: str) -> FavoriteAlbum | None:
    best: FavoriteAlbum | None = None
    for album in albums:
        own = [r[profile_id] for r in album.ratings.values() if r.get(profile_id) is not None]
        if not own:
            continue
        avg = statistics.fmean(own)
        if best is None or avg > best.score:
            best = FavoriteAlbum(
                album_id=album.id,
                title=album.title,
                artist=album.artist,
                score=round_score(avg),
                score_display=display_score(avg),
            )
    return best


def participant_stats(albums: Sequence[Album], profile_id: str) -> ParticipantStats:
    mine = [album for album in albums if profile_id in album.participants]
    history = rating_history(mine, profile_id)
    if not history:
        return ParticipantStats(albums_rated=len(mine))

    values = [r.rating for r in history]
    distribution: dict[float, int] = {float(i): 0 for i in range(11)}
    for value in values:
        distribution[value] = distribution.get(value, 0) + 1

    # max() keeps the first of equal counts, so ties go to the lower rating
    most_common = max(sorted(distribution), key=lambda value: distribution[value])
    ordered = sorted(history, key=lambda r: r.rating, reverse=True)

    return ParticipantStats(
        average=round_score(statistics.fmean(values)),
        average_display=display_score(statistics.fmean(values)),
        albums_rated=len(mine),
        tracks_rated=len(values),
        distribution=dict(sorted(distribution.items())),
        favorite_album=_favorite(mine, profile_id),
        highest=ordered[0],
        lowest=ordered[-1],
        most_common=most_common,
        style=rating_style(values),
    )
