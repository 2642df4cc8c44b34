"""Album metadata lookup against the Spotify Web API.

Uses the client-credentials grant. The bearer token is cached and reused
until five minutes before it expires. Search degrades to an empty result
on any failure; album details raise MetadataError so the caller can fall
back to manual track entry.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from shared.dal.models import DocumentModel, Track

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger()

TOKEN_URL = "https://accounts.spotify.com/api/token"
API_BASE_URL = "https://api.spotify.com/v1"
TOKEN_EXPIRY_MARGIN_SECONDS = 300
SEARCH_LIMIT = 10
MIN_QUERY_LENGTH = 2

_INTERLUDE_KEYWORDS = ("interlude", "intro", "outro", "skit", "prelude")
_INTERLUDE_MAX_DURATION_MS = 60_000


class MetadataError(Exception):
    """Metadata lookup failed (auth, network or unexpected payload)."""


class AlbumSummary(DocumentModel):
    id: str
    title: str
    artist: str
    cover_url: str = ""
    release_date: str = ""
    total_tracks: int = 0


class AlbumDetails(DocumentModel):
    id: str
    title: str
    artist: str
    cover_url: str = ""
    tracks: tuple[Track, ...] = ()


def looks_like_interlude(title: str, duration_ms: int | None) -> bool:
    """Heuristic: interlude-style keyword in the title, or under a minute long."""
    lowered = title.lower()
    if any(keyword in lowered for keyword in _INTERLUDE_KEYWORDS):
        return True
    return duration_ms is not None and duration_ms < _INTERLUDE_MAX_DURATION_MS


def _artist_names(item: dict[str, Any]) -> str:
    return ", ".join(artist["name"] for artist in item.get("artists", []))


def _cover_url(item: dict[str, Any]) -> str:
    images = item.get("images") or []
    return images[0]["url"] if images else ""


class SpotifyClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._http = http_client or httpx.AsyncClient(timeout=10.0)
        self._clock = clock
        self._token: str | None = None
        self._token_expires_at = 0.0

    async def close(self) -> None:
        await self._http.aclose()

    async def _access_token(self) -> str:
        if self._token is not None and self._clock() < self._token_expires_at:
            return self._token
        try:
            response = await self._http.post(
                TOKEN_URL,
                data={"grant_type": "client_credentials"},
                auth=(self._client_id, self._client_secret),
            )
            response.raise_for_status()
            payload = response.json()
            token = payload["access_token"]
            expires_in = int(payload["expires_in"])
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            raise MetadataError(f"token exchange failed: {exc}") from exc
        self._token = token
        self._token_expires_at = self._clock() + expires_in - TOKEN_EXPIRY_MARGIN_SECONDS
        logger.debug("metadata token refreshed", expires_in=expires_in)
        return token

    async def _get(self, path: str, params: dict[str, str | int] | None = None) -> dict[str, Any]:
        token = await self._access_token()
        try:
            response = await self._http.get(
                f"{API_BASE_URL}{path}",
                params=params,
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise MetadataError(f"request to {path} failed: {exc}") from exc

    async def search_albums(self, query: str) -> list[AlbumSummary]:
        """Search albums by free text. Returns [] for short queries and on failure."""
        if len(query.strip()) < MIN_QUERY_LENGTH:
            return []
        try:
            payload = await self._get("/search", {"q": query, "type": "album", "limit": SEARCH_LIMIT})
            items = payload["albums"]["items"]
            return [
                AlbumSummary(
                    id=item["id"],
                    title=item["name"],
                    artist=_artist_names(item),
                    cover_url=_cover_url(item),
                    release_date=item.get("release_date", ""),
                    total_tracks=item.get("total_tracks", 0),
                )
                for item in items
            ]
        except (MetadataError, KeyError, TypeError) as exc:
            logger.warning("album search failed", query=query, error=str(exc))
            return []

    async def get_album_details(self, album_id: str) -> AlbumDetails:
        """Fetch album title, artist, cover and tracks. Raises MetadataError on failure."""
        payload = await self._get(f"/albums/{album_id}")
        try:
            tracks = tuple(
                Track(
                    number=position,
                    title=item["name"],
                    duration_ms=item.get("duration_ms"),
                    is_interlude=looks_like_interlude(item["name"], item.get("duration_ms")),
                )
                for position, item in enumerate(payload["tracks"]["items"], start=1)
            )
            return AlbumDetails(
                id=payload["id"],
                title=payload["name"],
                artist=_artist_names(payload),
                cover_url=_cover_url(payload),
                tracks=tracks,
            )
        except (KeyError, TypeError) as exc:
            raise MetadataError(f"unexpected album payload for {album_id}: {exc}") from exc
