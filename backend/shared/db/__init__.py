"""Storage layer: SQLite connection, document stores and repository implementations."""

from shared.db.album_repository import ALBUMS_COLLECTION, StoreAlbumRepository
from shared.db.connection import Database
from shared.db.memory_store import MemoryDocumentStore
from shared.db.participant_repository import PARTICIPANTS_COLLECTION, StoreParticipantRepository
from shared.db.sqlite_store import SqliteDocumentStore

__all__ = [
    "ALBUMS_COLLECTION",
    "PARTICIPANTS_COLLECTION",
    "Database",
    "MemoryDocumentStore",
    "SqliteDocumentStore",
    "StoreAlbumRepository",
    "StoreParticipantRepository",
]
