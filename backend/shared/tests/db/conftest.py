from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from shared.db.connection import Database
from shared.db.memory_store import MemoryDocumentStore
from shared.db.sqlite_store import SqliteDocumentStore

if TYPE_CHECKING:
    from pathlib import Path


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path: Path):
    """Every store test runs against both adapters."""
    if request.param == "memory":
        yield MemoryDocumentStore()
        return
    db = Database(tmp_path / "test.db")
    db.connect()
    yield SqliteDocumentStore(db)
    db.close()
