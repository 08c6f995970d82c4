"""
Base Repository.

Shared plumbing for the table repositories: the owned :class:`Database`,
existence checks, and partial updates.

Partial updates never assemble SQL at runtime. Each repository declares one
static parameterized ``UPDATE`` per updatable column in ``UPDATE_STATEMENTS``;
:meth:`apply_changes` runs the statements for the columns present in the
request inside a single transaction.
"""

from __future__ import annotations

from typing import Any, ClassVar

from homebank_bridge.core.errors import NotFoundError, ValidationError
from homebank_bridge.db.database import Database


class BaseRepository:
    TABLE: ClassVar[str] = ""
    ENTITY: ClassVar[str] = "Record"
    UPDATE_STATEMENTS: ClassVar[dict[str, str]] = {}

    def __init__(self, db: Database) -> None:
        self._db = db

    @property
    def db(self) -> Database:
        return self._db

    def exists(self, entity_id: int) -> bool:
        row = self._db.fetch_one(f"SELECT 1 FROM {self.TABLE} WHERE id = ?", (entity_id,))
        return row is not None

    def require(self, entity_id: int) -> None:
        if not self.exists(entity_id):
            raise NotFoundError(f"{self.ENTITY} not found")

    def apply_changes(self, entity_id: int, changes: dict[str, Any]) -> int:
        """Apply ``changes`` (column -> value) to one row; return columns changed."""
        unknown = [column for column in changes if column not in self.UPDATE_STATEMENTS]
        if unknown:
            raise ValidationError(
                "Unknown fields in update",
                details=[{"field": column, "message": "Field cannot be updated"} for column in unknown],
            )
        with self._db.transaction():
            for column, value in changes.items():
                self._db.execute(self.UPDATE_STATEMENTS[column], (value, entity_id))
        return len(changes)
