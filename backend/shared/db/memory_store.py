"""In-process document store, used for tests and single-process deployments."""

from __future__ import annotations

import asyncio
import copy
from typing import TYPE_CHECKING

from shared.dal.document_store import Document, DocumentStore
from shared.dal.ops import DocumentNotFoundError, apply_ops

if TYPE_CHECKING:
    from shared.dal.ops import FieldOp


class MemoryDocumentStore(DocumentStore):
    """Dict-backed DocumentStore. Writes are serialized by an asyncio lock."""

    def __init__(self) -> None:
        super().__init__()
        self._collections: dict[str, dict[str, Document]] = {}
        self._lock = asyncio.Lock()

    async def get(self, collection: str, key: str) -> Document | None:
        document = self._collections.get(collection, {}).get(key)
        return copy.deepcopy(document)

    async def set(self, collection: str, key: str, data: Document) -> None:
        async with self._lock:
            self._collections.setdefault(collection, {})[key] = copy.deepcopy(data)
        self._notify(collection, key, data)

    async def create(self, collection: str, key: str, data: Document) -> bool:
        async with self._lock:
            documents = self._collections.setdefault(collection, {})
            if key in documents:
                return False
            documents[key] = copy.deepcopy(data)
        self._notify(collection, key, data)
        return True

    async def update(self, collection: str, key: str, ops: list[FieldOp]) -> Document:
        async with self._lock:
            documents = self._collections.get(collection, {})
            if key not in documents:
                raise DocumentNotFoundError(collection, key)
            updated = apply_ops(documents[key], ops)
            documents[key] = updated
        self._notify(collection, key, updated)
        return copy.deepcopy(updated)

    async def delete(self, collection: str, key: str) -> None:
        async with self._lock:
            removed = self._collections.get(collection, {}).pop(key, None)
        if removed is not None:
            self._notify(collection, key, None)

    async def list_documents(self, collection: str) -> list[tuple[str, Document]]:
        return [(key, copy.deepcopy(doc)) for key, doc in self._collections.get(collection, {}).items()]
