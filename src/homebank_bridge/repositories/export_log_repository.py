from __future__ import annotations

import sqlite3

from homebank_bridge.core.errors import NotFoundError
from homebank_bridge.models import ExportLogEntry
from homebank_bridge.repositories.base_repository import BaseRepository


class ExportLogRepository(BaseRepository):
    TABLE = "export_log"
    ENTITY = "Export log"

    def list_all(self) -> list[ExportLogEntry]:
        rows = self._db.fetch_all("SELECT id, timestamp, filename, count FROM export_log ORDER BY id DESC")
        return [ExportLogEntry(**dict(row)) for row in rows]

    def create(self, filename: str, count: int, csv_content: str) -> int:
        return self._db.insert(
            "INSERT INTO export_log (filename, count, csv_content) VALUES (?, ?, ?)",
            (filename, count, csv_content),
        )

    def get_content(self, entry_id: int) -> sqlite3.Row:
        row = self._db.fetch_one("SELECT filename, csv_content FROM export_log WHERE id = ?", (entry_id,))
        if row is None:
            raise NotFoundError("Log not found")
        return row

    def delete(self, entry_id: int) -> int:
        return self._db.execute("DELETE FROM export_log WHERE id = ?", (entry_id,)).rowcount

    def delete_all(self) -> int:
        return self._db.execute("DELETE FROM export_log").rowcount
