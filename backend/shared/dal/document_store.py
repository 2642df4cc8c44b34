"""Abstract interface for the subscribable document store."""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from collections.abc import Callable

    from shared.dal.ops import FieldOp

logger = structlog.get_logger()

Document = dict[str, Any]


class DocumentStore(ABC):
    """Document store keyed by (collection, key) with change subscriptions.

    Subscribers receive the full current document (or None once deleted)
    immediately on subscribe and again after every write to that document.
    Each delivered snapshot is an independent copy. Implementations call
    _notify after every successful write.
    """

    def __init__(self) -> None:
        self._listeners: dict[tuple[str, str], list[Callable[[Document | None], None]]] = {}

    @abstractmethod
    async def get(self, collection: str, key: str) -> Document | None: ...

    @abstractmethod
    async def set(self, collection: str, key: str, data: Document) -> None: ...

    @abstractmethod
    async def create(self, collection: str, key: str, data: Document) -> bool:
        """Write data only if no document exists at key. Returns False when one did."""

    @abstractmethod
    async def update(self, collection: str, key: str, ops: list[FieldOp]) -> Document:
        """Apply ops atomically and return the updated document.

        Raises DocumentNotFoundError when the document does not exist.
        """

    @abstractmethod
    async def delete(self, collection: str, key: str) -> None: ...

    @abstractmethod
    async def list_documents(self, collection: str) -> list[tuple[str, Document]]:
        """Return (key, document) pairs in insertion order."""

    async def add(self, collection: str, data: Document) -> str:
        """Create a document under a generated key and return the key."""
        key = uuid4().hex
        await self.create(collection, key, data)
        return key

    async def subscribe(
        self,
        collection: str,
        key: str,
        listener: Callable[[Document | None], None],
    ) -> Callable[[], None]:
        """Register listener for snapshots of one document. Returns an unsubscribe callable."""
        slot = (collection, key)
        self._listeners.setdefault(slot, []).append(listener)
        snapshot = await self.get(collection, key)
        listener(snapshot)

        def unsubscribe() -> None:
            listeners = self._listeners.get(slot)
            if listeners and listener in listeners:
                listeners.remove(listener)
                if not listeners:
                    del self._listeners[slot]

        return unsubscribe

    def subscriber_count(self, collection: str, key: str) -> int:
        return len(self._listeners.get((collection, key), []))

    def _notify(self, collection: str, key: str, document: Document | None) -> None:
        for listener in list(self._listeners.get((collection, key), [])):
            try:
                listener(copy.deepcopy(document))
            except Exception:
                logger.exception("snapshot listener failed", collection=collection, key=key)
