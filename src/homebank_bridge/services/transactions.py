import datetime as dt
from typing import Any

from homebank_bridge.api.schemas import DuplicateCandidate, TransactionCreate
from homebank_bridge.core.errors import NotFoundError, ValidationError
from homebank_bridge.db.database import Database
from homebank_bridge.logger import get_logger
from homebank_bridge.models import TransactionKind, TransferResult
from homebank_bridge.repositories.account_repository import AccountRepository
from homebank_bridge.repositories.payee_repository import PayeeRepository
from homebank_bridge.repositories.transaction_repository import TransactionRepository
from homebank_bridge.services.transfers import TransferWriter

logger = get_logger(__name__)

_TRANSFER_ONLY_FIELDS = ("target_account_id", "target_amount")


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, dt.date) else value


class TransactionService:
    def __init__(
        self,
        db: Database,
        accounts: AccountRepository,
        payees: PayeeRepository,
        transactions: TransactionRepository,
        transfers: TransferWriter,
    ) -> None:
        self.db = db
        self.accounts = accounts
        self.payees = payees
        self.transactions = transactions
        self.transfers = transfers

    def create(self, req: TransactionCreate) -> int | TransferResult:
        """Create an expense, income or transfer.

        Expenses and incomes return the new row id; transfers return both ids
        and the shared group id.
        """
        date = req.date.isoformat()
        if req.type is TransactionKind.TRANSFER:
            return self.transfers.create(
                source_account_id=req.account_id,
                destination_account_id=req.target_account_id,
                date=date,
                amount=req.amount,
                target_amount=req.target_amount,
                memo=req.memo,
            )

        amount = -req.amount if req.type is TransactionKind.EXPENSE else req.amount
        with self.db.transaction():
            if not self.accounts.exists(req.account_id):
                raise NotFoundError("Account not found")
            transaction_id = self.transactions.insert(
                account_id=req.account_id,
                date=date,
                payee=req.payee or "",
                amount=amount,
                category_id=req.category_id,
                payment_type=req.payment_type or 0,
                memo=req.memo or "",
            )
            if req.payee and req.category_id:
                self.payees.set_defaults(req.payee, req.category_id, req.payment_type or None)
        return transaction_id

    def update(self, transaction_id: int, changes: dict[str, Any]) -> None:
        changes = {field: _iso(value) for field, value in changes.items()}
        with self.db.transaction():
            row = self.transactions.get(transaction_id)
            if row is None:
                raise NotFoundError("Transaction not found")

            sibling = None
            if row["transfer_id"]:
                sibling = self.transactions.find_sibling(row["transfer_id"], transaction_id)
            if sibling is not None:
                self.transfers.edit(row, sibling, changes)
                return

            stray = [field for field in _TRANSFER_ONLY_FIELDS if field in changes]
            if stray:
                raise ValidationError(
                    "Fields only apply to transfers",
                    details=[{"field": field, "message": "Only valid for transfers"} for field in stray],
                )
            if "account_id" in changes and not self.accounts.exists(changes["account_id"]):
                raise NotFoundError("Account not found")
            self.transactions.apply_changes(transaction_id, changes)

    def delete(self, transaction_id: int) -> int:
        """Delete a row; a transfer row takes its sibling with it."""
        with self.db.transaction():
            row = self.transactions.get(transaction_id)
            if row is None:
                raise NotFoundError("Transaction not found")
            ids = [transaction_id]
            if row["transfer_id"]:
                sibling = self.transactions.find_sibling(row["transfer_id"], transaction_id)
                if sibling is not None:
                    ids.append(sibling["id"])
            deleted = self.transactions.delete_ids(ids)
        if deleted > 1:
            logger.info("[TRANSFER] Deleted transfer %s (%d rows).", row["transfer_id"], deleted)
        return deleted

    def find_duplicates(self, candidates: list[DuplicateCandidate]) -> list[DuplicateCandidate]:
        return [
            candidate
            for candidate in candidates
            if self.transactions.is_duplicate(candidate.date, candidate.payee, candidate.amount)
        ]
