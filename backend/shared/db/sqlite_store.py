"""SQLite-backed document store."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from typing import TYPE_CHECKING

import structlog

from shared.dal.document_store import Document, DocumentStore
from shared.dal.ops import DocumentNotFoundError, StoreError, apply_ops

if TYPE_CHECKING:
    from shared.dal.ops import FieldOp
    from shared.db.connection import Database

logger = structlog.get_logger()


class SqliteDocumentStore(DocumentStore):
    """SQLite implementation of DocumentStore.

    Documents are stored as JSON text. Updates read, apply field ops and
    write back in one transaction under an asyncio lock, so each update is
    atomic per document.
    """

    def __init__(self, db: Database) -> None:
        super().__init__()
        self._db = db
        self._lock = asyncio.Lock()

    async def get(self, collection: str, key: str) -> Document | None:
        row = self._db.connection.execute(
            "SELECT data FROM documents WHERE collection = ? AND key = ?",
            (collection, key),
        ).fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    async def set(self, collection: str, key: str, data: Document) -> None:
        async with self._lock:
            self._execute(
                "INSERT INTO documents (collection, key, data) VALUES (?, ?, ?) "
                "ON CONFLICT (collection, key) DO UPDATE SET data = excluded.data",
                (collection, key, json.dumps(data)),
            )
        self._notify(collection, key, data)

    async def create(self, collection: str, key: str, data: Document) -> bool:
        async with self._lock:
            try:
                self._db.connection.execute(
                    "INSERT INTO documents (collection, key, data) VALUES (?, ?, ?)",
                    (collection, key, json.dumps(data)),
                )
                self._db.connection.commit()
            except sqlite3.IntegrityError:
                self._db.connection.rollback()
                return False
            except sqlite3.Error as exc:
                self._db.connection.rollback()
                logger.exception("document create failed", collection=collection)
                raise StoreError(str(exc)) from exc
        self._notify(collection, key, data)
        return True

    async def update(self, collection: str, key: str, ops: list[FieldOp]) -> Document:
        async with self._lock:
            current = await self.get(collection, key)
            if current is None:
                raise DocumentNotFoundError(collection, key)
            updated = apply_ops(current, ops)
            self._execute(
                "UPDATE documents SET data = ? WHERE collection = ? AND key = ?",
                (json.dumps(updated), collection, key),
            )
        self._notify(collection, key, updated)
        return updated

    async def delete(self, collection: str, key: str) -> None:
        async with self._lock:
            cursor = self._execute(
                "DELETE FROM documents WHERE collection = ? AND key = ?",
                (collection, key),
            )
        if cursor.rowcount:
            self._notify(collection, key, None)

    async def list_documents(self, collection: str) -> list[tuple[str, Document]]:
        rows = self._db.connection.execute(
            "SELECT key, data FROM documents WHERE collection = ? ORDER BY rowid",
            (collection,),
        ).fetchall()
        return [(row[0], json.loads(row[1])) for row in rows]

    def _execute(self, sql: str, params: tuple[str, ...]) -> sqlite3.Cursor:
        try:
            cursor = self._db.connection.execute(sql, params)
            self._db.connection.commit()
        except sqlite3.Error as exc:
            self._db.connection.rollback()
            logger.exception("document write failed", sql=sql.split(" ", 1)[0])
            raise StoreError(str(exc)) from exc
        return cursor
