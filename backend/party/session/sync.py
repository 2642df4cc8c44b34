"""Live session subscription feeding the pure reducer.

The store delivers snapshots synchronously from inside its write path, so
the listener only stores them. Snapshots that arrive while the consumer is
busy replace each other; the reducer diffs the latest one against the
current view, so a slow listener costs at most one pending document. A
single consumer task reduces each snapshot and hands the result to the
on_change callback, which keeps effect delivery in snapshot order.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from party.logic.reducer import PartyView, SessionChanged, reduce
from party.logic.state import PartySession
from party.session.service import SESSIONS_COLLECTION

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from party.logic.reducer import Effect
    from shared.dal.document_store import Document, DocumentStore

logger = structlog.get_logger()


class SessionSync:
    """Follow one session document and maintain its reduced view."""

    def __init__(
        self,
        store: DocumentStore,
        room_code: str,
        on_change: Callable[[PartyView, tuple[Effect, ...]], Awaitable[None]] | None = None,
    ) -> None:
        self._store = store
        self._room_code = room_code
        self._on_change = on_change
        self._view = PartyView()
        self._pending: Document | None = None
        self._wakeup = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        self._unsubscribe: Callable[[], None] | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def view(self) -> PartyView:
        return self._view

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._consume())
        self._unsubscribe = await self._store.subscribe(SESSIONS_COLLECTION, self._room_code, self._receive)
        logger.debug("session sync started", room_code=self._room_code)

    async def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.debug("session sync stopped", room_code=self._room_code)

    async def wait_idle(self) -> None:
        """Block until the latest snapshot delivered so far has been reduced."""
        await self._idle.wait()

    def _receive(self, document: Document | None) -> None:
        self._pending = document
        self._idle.clear()
        self._wakeup.set()

    async def _consume(self) -> None:
        while True:
            await self._wakeup.wait()
            self._wakeup.clear()
            document, self._pending = self._pending, None
            try:
                await self._apply(document)
            finally:
                if not self._wakeup.is_set():
                    self._idle.set()

    async def _apply(self, document: Document | None) -> None:
        try:
            session = PartySession.from_document(document) if document is not None else None
        except ValidationError:
            logger.warning("dropping malformed session snapshot", room_code=self._room_code)
            return

        previous = self._view
        self._view, effects = reduce(previous, SessionChanged(session=session))
        if self._on_change is None or (self._view == previous and not effects):
            return
        try:
            await self._on_change(self._view, effects)
        except (ConnectionError, RuntimeError):
            logger.info("session sync listener gone, stopping delivery", room_code=self._room_code)
            self._on_change = None
