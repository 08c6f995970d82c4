from __future__ import annotations

import sqlite3
from typing import Any

from homebank_bridge.core.errors import ConflictError
from homebank_bridge.logger import get_logger
from homebank_bridge.models import Payee
from homebank_bridge.repositories.base_repository import BaseRepository

logger = get_logger(__name__)


class PayeeRepository(BaseRepository):
    TABLE = "payees"
    ENTITY = "Payee"
    UPDATE_STATEMENTS = {
        "name": "UPDATE payees SET name = ? WHERE id = ?",
        "default_category_id": "UPDATE payees SET default_category_id = ? WHERE id = ?",
        "default_payment_type": "UPDATE payees SET default_payment_type = ? WHERE id = ?",
    }

    def list_all(self) -> list[Payee]:
        rows = self._db.fetch_all(
            """
            SELECT
                p.id,
                p.name,
                p.default_category_id,
                c.name AS category_name,
                p.default_payment_type,
                (SELECT COUNT(*) FROM transactions t WHERE t.payee = p.name) AS usage_count,
                (SELECT SUM(t.amount) FROM transactions t WHERE t.payee = p.name) AS total_amount
            FROM payees p
            LEFT JOIN categories c ON p.default_category_id = c.id
            ORDER BY p.name ASC
            """
        )
        return [Payee(**dict(row)) for row in rows]

    def find_id_by_name(self, name: str) -> int | None:
        row = self._db.fetch_one("SELECT id FROM payees WHERE name = ?", (name,))
        return row["id"] if row else None

    def _ensure_name_free(self, name: str, payee_id: int | None = None) -> None:
        existing = self.find_id_by_name(name)
        if existing is not None and existing != payee_id:
            raise ConflictError(f"Payee '{name}' already exists")

    def create(
        self,
        name: str,
        default_category_id: int | None = None,
        default_payment_type: int | None = None,
    ) -> int:
        with self._db.transaction():
            self._ensure_name_free(name)
            return self._db.insert(
                "INSERT INTO payees (name, default_category_id, default_payment_type) VALUES (?, ?, ?)",
                (name, default_category_id, default_payment_type),
            )

    def update(self, payee_id: int, changes: dict[str, Any]) -> None:
        with self._db.transaction():
            self.require(payee_id)
            if "name" in changes:
                self._ensure_name_free(changes["name"], payee_id)
            self.apply_changes(payee_id, changes)

    def set_defaults(self, name: str, category_id: int | None, payment_type: int | None) -> None:
        """Create the payee, or overwrite its default category and payment mode."""
        self._db.execute(
            """
            INSERT INTO payees (name, default_category_id, default_payment_type)
            VALUES (?, ?, ?)
            ON CONFLICT(name) DO UPDATE SET
                default_category_id = excluded.default_category_id,
                default_payment_type = excluded.default_payment_type
            """,
            (name, category_id, payment_type),
        )

    def delete(self, payee_id: int) -> None:
        with self._db.transaction():
            self.require(payee_id)
            self._db.execute("DELETE FROM payees WHERE id = ?", (payee_id,))
        logger.info("[PAYEES] Deleted payee %s.", payee_id)

    def export_rows(self) -> list[sqlite3.Row]:
        return self._db.fetch_all(
            """
            SELECT
                p.name,
                p.default_payment_type,
                c.name AS category_name,
                pc.name AS parent_category_name
            FROM payees p
            LEFT JOIN categories c ON p.default_category_id = c.id
            LEFT JOIN categories pc ON c.parent_id = pc.id
            ORDER BY p.name
            """
        )
