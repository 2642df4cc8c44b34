"""Achievement evaluation over a participant's full rating history.

Unlocks are monotonic: an achievement already marked unlocked on the
profile is never re-evaluated, so evaluating the same history twice
unlocks and pays nothing the second time.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from party.logic.enums import AchievementType
from party.logic.settings import PartySettings
from shared.dal.models import DocumentModel

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence

    from shared.dal.models import AchievementState, Album

_DEFAULT_SETTINGS = PartySettings()

FULL_SPECTRUM_ID = "rating_range"
# every integer rating 0 through 10
FULL_SPECTRUM_TARGET = 11


class RatingRecord(DocumentModel):
    album_id: str
    track_number: int
    rating: float


class UserStats(BaseModel, frozen=True):
    tracks_rated: int = 0
    albums_rated: int = 0
    perfect_10s: int = 0
    harsh_ratings: int = 0
    # integer values only; half points do not count toward full spectrum
    distinct_values: frozenset[int] = frozenset()


class AchievementDefinition(BaseModel, frozen=True):
    id: str
    name: str
    type: AchievementType
    target: int = Field(ge=1)
    reward: int = Field(default=5, ge=0)


class AchievementProgress(BaseModel, frozen=True):
    achievement: AchievementDefinition
    current: int
    unlocked: bool
    unlocked_at: int | None = None

    @property
    def percentage(self) -> int:
        return min(100, round(self.current / self.achievement.target * 100))


class EvaluationResult(BaseModel, frozen=True):
    stats: UserStats
    unlocked: tuple[AchievementDefinition, ...] = ()

    @property
    def reward(self) -> int:
        return sum(a.reward for a in self.unlocked)


def _ladder(
    achievement_type: AchievementType,
    prefix: str,
    label: str,
    targets: Sequence[int],
) -> list[AchievementDefinition]:
    return [
        AchievementDefinition(id=f"{prefix}_{t}", name=f"{label} {t}", type=achievement_type, target=t)
        for t in targets
    ]


DEFAULT_ACHIEVEMENTS: tuple[AchievementDefinition, ...] = (
    *_ladder(AchievementType.TRACKS, "tracks", "Tracks rated", (1, 10, 25, 50, 100, 150, 200, 300, 400, 500)),
    *_ladder(AchievementType.ALBUMS, "albums", "Albums rated", (1, 3, 5, 10, 20, 50)),
    *_ladder(AchievementType.PERFECT_10S, "perfect10s", "Perfect 10s", (1, 5, 10, 15, 20)),
    *_ladder(AchievementType.HARSH, "harsh_critic", "Harsh ratings", (1, 5, 10, 20, 50)),
    AchievementDefinition(
        id=FULL_SPECTRUM_ID,
        name="Full Spectrum",
        type=AchievementType.SPECIAL,
        target=FULL_SPECTRUM_TARGET,
        reward=10,
    ),
)


def rating_history(albums: Iterable[Album], profile_id: str) -> list[RatingRecord]:
    """Every rating profile_id has on record across albums."""
    records = []
    for album in albums:
        for track_number, by_participant in album.ratings.items():
            rating = by_participant.get(profile_id)
            if rating is not None:
                records.append(RatingRecord(album_id=album.id, track_number=track_number, rating=rating))
    return records


def extract_stats(
    history: Sequence[RatingRecord],
    albums: Iterable[Album],
    profile_id: str,
    settings: PartySettings = _DEFAULT_SETTINGS,
) -> UserStats:
    values = [r.rating for r in history]
    return UserStats(
        tracks_rated=len(values),
        albums_rated=sum(1 for album in albums if profile_id in album.participants),
        perfect_10s=sum(1 for v in values if v == settings.max_rating),
        harsh_ratings=sum(1 for v in values if v < settings.harsh_threshold),
        distinct_values=frozenset(int(v) for v in values if float(v).is_integer()),
    )


def stat_for(definition: AchievementDefinition, stats: UserStats) -> int:
    if definition.type == AchievementType.TRACKS:
        return stats.tracks_rated
    if definition.type == AchievementType.ALBUMS:
        return stats.albums_rated
    if definition.type == AchievementType.PERFECT_10S:
        return stats.perfect_10s
    if definition.type == AchievementType.HARSH:
        return stats.harsh_ratings
    if definition.id == FULL_SPECTRUM_ID:
        return len(stats.distinct_values)
    return 0


def _is_unlocked(existing: Mapping[str, AchievementState], achievement_id: str) -> bool:
    state = existing.get(achievement_id)
    return state is not None and state.unlocked


def evaluate(
    stats: UserStats,
    existing: Mapping[str, AchievementState],
    definitions: Sequence[AchievementDefinition] = DEFAULT_ACHIEVEMENTS,
) -> EvaluationResult:
    """Return the achievements that newly qualify. Already-unlocked ones are skipped."""
    unlocked = tuple(
        d for d in definitions if not _is_unlocked(existing, d.id) and stat_for(d, stats) >= d.target
    )
    return EvaluationResult(stats=stats, unlocked=unlocked)


def progress(
    stats: UserStats,
    existing: Mapping[str, AchievementState],
    definitions: Sequence[AchievementDefinition] = DEFAULT_ACHIEVEMENTS,
) -> list[AchievementProgress]:
    report = []
    for definition in definitions:
        state = existing.get(definition.id)
        report.append(
            AchievementProgress(
                achievement=definition,
                current=stat_for(definition, stats),
                unlocked=state is not None and state.unlocked,
                unlocked_at=state.unlocked_at if state is not None else None,
            ),
        )
    return report
