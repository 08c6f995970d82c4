from __future__ import annotations

import json
import sqlite3

from homebank_bridge.domain.csv_codec import ExportRow
from homebank_bridge.models import Transaction
from homebank_bridge.repositories.base_repository import BaseRepository

DUPLICATE_TOLERANCE = 0.001


class TransactionRepository(BaseRepository):
    TABLE = "transactions"
    ENTITY = "Transaction"
    UPDATE_STATEMENTS = {
        "date": "UPDATE transactions SET date = ? WHERE id = ?",
        "payee": "UPDATE transactions SET payee = ? WHERE id = ?",
        "amount": "UPDATE transactions SET amount = ? WHERE id = ?",
        "category_id": "UPDATE transactions SET category_id = ? WHERE id = ?",
        "payment_type": "UPDATE transactions SET payment_type = ? WHERE id = ?",
        "memo": "UPDATE transactions SET memo = ? WHERE id = ?",
        "account_id": "UPDATE transactions SET account_id = ? WHERE id = ?",
    }

    def list(
        self,
        account_id: int | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
    ) -> list[Transaction]:
        rows = self._db.fetch_all(
            """
            SELECT
                t.id, t.date, t.payee, t.amount,
                c.name AS category_name,
                a.name AS account_name,
                t.payment_type, t.memo, t.category_id, t.account_id,
                t.transfer_id, t.exported, t.export_log_id
            FROM transactions t
            LEFT JOIN categories c ON t.category_id = c.id
            LEFT JOIN accounts a ON t.account_id = a.id
            WHERE (? IS NULL OR t.account_id = ?)
              AND (? IS NULL OR t.date >= ?)
              AND (? IS NULL OR t.date <= ?)
            ORDER BY t.date DESC, t.id DESC
            """,
            (account_id, account_id, date_from, date_from, date_to, date_to),
        )
        return [Transaction(**dict(row)) for row in rows]

    def get(self, transaction_id: int) -> sqlite3.Row | None:
        return self._db.fetch_one("SELECT * FROM transactions WHERE id = ?", (transaction_id,))

    def insert(
        self,
        *,
        account_id: int,
        date: str,
        payee: str | None,
        amount: float,
        category_id: int | None = None,
        payment_type: int | None = 0,
        memo: str | None = "",
        transfer_id: str | None = None,
    ) -> int:
        return self._db.insert(
            """
            INSERT INTO transactions
                (account_id, date, payee, amount, category_id, payment_type, memo, transfer_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (account_id, date, payee, amount, category_id, payment_type, memo, transfer_id),
        )

    def find_sibling(self, transfer_id: str, transaction_id: int) -> sqlite3.Row | None:
        return self._db.fetch_one(
            "SELECT * FROM transactions WHERE transfer_id = ? AND id != ? LIMIT 1",
            (transfer_id, transaction_id),
        )

    def delete_ids(self, ids: list[int]) -> int:
        deleted = 0
        for transaction_id in ids:
            deleted += self._db.execute("DELETE FROM transactions WHERE id = ?", (transaction_id,)).rowcount
        return deleted

    def is_duplicate(self, date: str, payee: str, amount: float) -> bool:
        row = self._db.fetch_one(
            """
            SELECT id FROM transactions
            WHERE date = ? AND payee = ? AND ABS(amount - ?) < ?
            LIMIT 1
            """,
            (date, payee, amount, DUPLICATE_TOLERANCE),
        )
        return row is not None

    def export_rows(
        self,
        *,
        ids: list[int] | None = None,
        account_id: int | None = None,
        date_from: str | None = None,
        date_to: str | None = None,
        category_id: int | None = None,
        payee: str | None = None,
    ) -> list[ExportRow]:
        """Rows for CSV export, grouped by account name then newest first.

        ``category_id`` also matches its direct children; ``payee`` is a
        case-insensitive substring.
        """
        ids_json = json.dumps(ids) if ids else None
        payee_pattern = f"%{payee.lower()}%" if payee else None
        rows = self._db.fetch_all(
            """
            SELECT
                t.date, t.payment_type, t.payee, t.memo, t.amount,
                t.account_id,
                a.name AS account_name,
                c.name AS category_name,
                pc.name AS parent_category_name
            FROM transactions t
            JOIN accounts a ON t.account_id = a.id
            LEFT JOIN categories c ON t.category_id = c.id
            LEFT JOIN categories pc ON c.parent_id = pc.id
            WHERE (? IS NULL OR t.id IN (SELECT value FROM json_each(?)))
              AND (? IS NULL OR t.account_id = ?)
              AND (? IS NULL OR t.date >= ?)
              AND (? IS NULL OR t.date <= ?)
              AND (? IS NULL OR t.category_id = ? OR c.parent_id = ?)
              AND (? IS NULL OR LOWER(t.payee) LIKE ?)
            ORDER BY a.name ASC, t.date DESC, t.id DESC
            """,
            (
                ids_json, ids_json,
                account_id, account_id,
                date_from, date_from,
                date_to, date_to,
                category_id, category_id, category_id,
                payee_pattern, payee_pattern,
            ),
        )
        return [ExportRow(**dict(row)) for row in rows]
