"""Document-store-backed album repository."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from shared.dal.album_repository import AlbumRepository
from shared.dal.models import Album

if TYPE_CHECKING:
    from shared.dal.document_store import DocumentStore

logger = structlog.get_logger()

ALBUMS_COLLECTION = "albums"


class StoreAlbumRepository(AlbumRepository):
    """AlbumRepository over a DocumentStore.

    Album ids are deterministic per party, so create-if-absent makes a
    retried finish land on the same record.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    async def create_album(self, album: Album) -> bool:
        """Insert an album. Logs a warning and returns False on duplicate id."""
        created = await self._store.create(ALBUMS_COLLECTION, album.id, album.to_document())
        if not created:
            logger.warning("album already exists, ignoring duplicate create", album_id=album.id)
        return created

    async def get_album(self, album_id: str) -> Album | None:
        document = await self._store.get(ALBUMS_COLLECTION, album_id)
        if document is None:
            return None
        return Album.from_document({**document, "id": album_id})

    async def list_albums(self) -> list[Album]:
        documents = await self._store.list_documents(ALBUMS_COLLECTION)
        return [Album.from_document({**doc, "id": key}) for key, doc in documents]

    async def get_albums_for_participant(self, profile_id: str) -> list[Album]:
        """Return albums whose participant list includes profile_id."""
        return [album for album in await self.list_albums() if profile_id in album.participants]

    async def get_top_albums(self, limit: int = 10) -> list[Album]:
        """Return completed albums ordered by averageScore, highest first."""
        completed = [album for album in await self.list_albums() if album.is_completed]
        completed.sort(key=lambda album: album.average_score, reverse=True)
        return completed[:limit]

    async def delete_album(self, album_id: str) -> None:
        await self._store.delete(ALBUMS_COLLECTION, album_id)
        logger.info("album deleted", album_id=album_id)
