"""Persisted album records: the snapshot written on finish, browsing and the rating matrix."""

from __future__ import annotations

import statistics
from typing import TYPE_CHECKING

from party.logic.enums import AlbumSort
from party.logic.ids import album_id_for
from party.logic.ratings import ScoreDisplay, album_average, display_score, round_score
from shared.dal.models import Album, DocumentModel

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from party.logic.state import PartySession


class AlbumParticipant(DocumentModel):
    id: str
    name: str


class AlbumRow(DocumentModel):
    number: int
    title: str
    is_interlude: bool = False
    # one slot per AlbumDetail.participants entry, None where unrated
    ratings: tuple[float | None, ...] = ()
    average: ScoreDisplay = ScoreDisplay()


class AlbumDetail(DocumentModel):
    album: Album
    score: ScoreDisplay
    participants: tuple[AlbumParticipant, ...] = ()
    rows: tuple[AlbumRow, ...] = ()


class AlbumListing(DocumentModel):
    album: Album
    score: ScoreDisplay


def build_album(session: PartySession) -> Album:
    """Build the album for a finished party.

    Ratings are re-keyed by persistent profile id. Guest seats are dropped,
    since guest ids do not outlive the session, as are unrated slots.
    """
    profile_by_seat = {p.id: p.profile_ref for p in session.participants if not p.is_guest and p.profile_ref}
    ratings: dict[int, dict[str, float]] = {}
    for track_number, by_participant in session.ratings.items():
        kept = {
            profile_by_seat[pid]: value
            for pid, value in by_participant.items()
            if value is not None and pid in profile_by_seat
        }
        if kept:
            ratings[track_number] = kept

    average = album_average(session)
    return Album(
        id=album_id_for(session.room_code, session.created_at),
        title=session.album_title,
        artist=session.artist_name,
        cover_image=session.album_cover,
        track_count=len(session.tracks),
        tracks=session.tracks,
        participants=tuple(profile_by_seat.values()),
        ratings=ratings,
        average_score=round_score(average) if average is not None else 0.0,
        is_completed=True,
        party_mode=True,
        room_code=session.room_code,
        created_at=session.created_at,
    )


def sort_albums(albums: Sequence[Album], order: AlbumSort = AlbumSort.DATE_DESC) -> list[Album]:
    """Albums in the requested order. Equal keys keep their stored order."""
    if order == AlbumSort.DATE_DESC:
        return sorted(albums, key=lambda a: a.created_at, reverse=True)
    if order == AlbumSort.DATE_ASC:
        return sorted(albums, key=lambda a: a.created_at)
    if order == AlbumSort.SCORE_DESC:
        return sorted(albums, key=lambda a: a.average_score, reverse=True)
    if order == AlbumSort.SCORE_ASC:
        return sorted(albums, key=lambda a: a.average_score)
    if order == AlbumSort.TITLE:
        return sorted(albums, key=lambda a: a.title.casefold())
    return sorted(albums, key=lambda a: a.artist.casefold())


def album_score(album: Album) -> ScoreDisplay:
    """Displayed album score. Unfinished albums and a zero average show as no data."""
    if not album.is_completed or not album.average_score:
        return display_score(None)
    return display_score(album.average_score)


def album_listing(album: Album) -> AlbumListing:
    return AlbumListing(album=album, score=album_score(album))


def album_detail(album: Album, names: Mapping[str, str]) -> AlbumDetail:
    """Track x participant rating matrix for one album.

    Columns follow album.participants. A profile missing from names (for
    example one deleted since) keeps its column under its id.
    """
    participants = tuple(AlbumParticipant(id=pid, name=names.get(pid, pid)) for pid in album.participants)
    rows = []
    for track in album.tracks:
        by_profile = album.ratings.get(track.number, {})
        values = [v for v in by_profile.values() if v is not None]
        rows.append(
            AlbumRow(
                number=track.number,
                title=track.title,
                is_interlude=track.is_interlude,
                ratings=tuple(by_profile.get(p.id) for p in participants),
                average=display_score(statistics.fmean(values) if values else None),
            ),
        )
    return AlbumDetail(
        album=album,
        score=album_score(album),
        participants=participants,
        rows=tuple(rows),
    )
