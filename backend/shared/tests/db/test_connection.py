from __future__ import annotations

import stat
import sys
from typing import TYPE_CHECKING

import pytest

from shared.db.connection import Database

if TYPE_CHECKING:
    from pathlib import Path


class TestConnect:
    def test_creates_documents_table(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        db.connect()

        tables = db.connection.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
        assert ("documents",) in tables
        db.close()

    def test_reconnect_keeps_data(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        db.connect()
        db.connection.execute("INSERT INTO documents VALUES ('c', 'k', '{}')")
        db.connection.commit()
        db.close()

        db.connect()
        assert db.connection.execute("SELECT COUNT(*) FROM documents").fetchone() == (1,)
        db.close()

    def test_connection_raises_when_disconnected(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        with pytest.raises(RuntimeError, match="not connected"):
            _ = db.connection

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "nested" / "dir" / "test.db")
        db.connect()

        assert (tmp_path / "nested" / "dir" / "test.db").exists()
        db.close()

    def test_in_memory_database(self) -> None:
        db = Database(":memory:")
        db.connect()

        assert db.connection.execute("SELECT COUNT(*) FROM documents").fetchone() == (0,)
        db.close()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_file_permissions_restricted(self, tmp_path: Path) -> None:
        db = Database(tmp_path / "test.db")
        db.connect()

        mode = stat.S_IMODE((tmp_path / "test.db").stat().st_mode)
        assert mode == 0o600
        db.close()
