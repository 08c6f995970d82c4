from __future__ import annotations

from typing import Any

from homebank_bridge.logger import get_logger
from homebank_bridge.models import Account
from homebank_bridge.repositories.base_repository import BaseRepository

logger = get_logger(__name__)


class AccountRepository(BaseRepository):
    TABLE = "accounts"
    ENTITY = "Account"
    UPDATE_STATEMENTS = {
        "name": "UPDATE accounts SET name = ? WHERE id = ?",
        "currency": "UPDATE accounts SET currency = ? WHERE id = ?",
        "initial_balance": "UPDATE accounts SET initial_balance = ? WHERE id = ?",
    }

    def list_all(self) -> list[Account]:
        rows = self._db.fetch_all(
            """
            SELECT
                a.id,
                a.name,
                a.currency,
                IFNULL(a.initial_balance, 0) AS initial_balance,
                IFNULL(a.initial_balance, 0) + IFNULL(SUM(t.amount), 0) AS current_balance
            FROM accounts a
            LEFT JOIN transactions t ON a.id = t.account_id
            GROUP BY a.id
            ORDER BY a.name
            """
        )
        return [Account(**dict(row)) for row in rows]

    def get_name(self, account_id: int) -> str | None:
        row = self._db.fetch_one("SELECT name FROM accounts WHERE id = ?", (account_id,))
        return row["name"] if row else None

    def create(self, name: str, currency: str, initial_balance: float = 0.0) -> int:
        account_id = self._db.insert(
            "INSERT INTO accounts (name, currency, initial_balance) VALUES (?, ?, ?)",
            (name, currency, initial_balance),
        )
        logger.info("[ACCOUNTS] Created account %s (%s).", account_id, name)
        return account_id

    def update(self, account_id: int, changes: dict[str, Any]) -> None:
        with self._db.transaction():
            self.require(account_id)
            self.apply_changes(account_id, changes)

    def delete(self, account_id: int) -> None:
        """Delete the account and its transactions.

        Transfers that touched the account lose their other half, so the
        surviving rows are detached from the transfer group first.
        """
        with self._db.transaction():
            self.require(account_id)
            detached = self._db.execute(
                """
                UPDATE transactions SET transfer_id = NULL
                WHERE account_id != ?
                  AND transfer_id IN (
                      SELECT transfer_id FROM transactions
                      WHERE account_id = ? AND transfer_id IS NOT NULL
                  )
                """,
                (account_id, account_id),
            ).rowcount
            self._db.execute("DELETE FROM transactions WHERE account_id = ?", (account_id,))
            self._db.execute("DELETE FROM accounts WHERE id = ?", (account_id,))
        logger.info(
            "[ACCOUNTS] Deleted account %s (%d transfer sibling(s) detached).",
            account_id,
            detached,
        )

    def rename_currency(self, old_code: str, new_code: str) -> int:
        with self._db.transaction():
            renamed = self._db.execute(
                "UPDATE accounts SET currency = ? WHERE currency = ?",
                (new_code, old_code),
            ).rowcount
        logger.info("[ACCOUNTS] Renamed currency %s -> %s on %d account(s).", old_code, new_code, renamed)
        return renamed
