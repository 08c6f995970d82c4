"""
Double-entry transfers.

A transfer is two transaction rows sharing a ``transfer_id``: the source row
carries the negated amount in the source account, the destination row the
positive amount in the destination account. Both rows are written, edited
and deleted together inside one store transaction.
"""

import secrets
import sqlite3
import string
import time
from typing import Any

from homebank_bridge.core.errors import NotFoundError, ValidationError
from homebank_bridge.db.database import Database
from homebank_bridge.domain.payment_modes import INTERNAL_TRANSFER
from homebank_bridge.logger import get_logger
from homebank_bridge.models import TransferResult
from homebank_bridge.repositories.account_repository import AccountRepository
from homebank_bridge.repositories.category_repository import (
    INTERNAL_TRANSFER_CATEGORY,
    CategoryRepository,
)
from homebank_bridge.repositories.transaction_repository import TransactionRepository

logger = get_logger(__name__)

_ID_ALPHABET = string.ascii_lowercase + string.digits
_MIRRORED_FIELDS = ("date", "memo", "category_id")


def new_transfer_id() -> str:
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
    return f"tr-{int(time.time() * 1000)}-{suffix}"


def outgoing_payee(destination_name: str | None) -> str:
    return f"Transfer to {destination_name or 'Account'}"


def incoming_payee(source_name: str | None) -> str:
    return f"Transfer from {source_name or 'Account'}"


class TransferWriter:
    def __init__(
        self,
        db: Database,
        accounts: AccountRepository,
        categories: CategoryRepository,
        transactions: TransactionRepository,
    ) -> None:
        self.db = db
        self.accounts = accounts
        self.categories = categories
        self.transactions = transactions

    def _account_name(self, account_id: int) -> str:
        name = self.accounts.get_name(account_id)
        if name is None:
            raise NotFoundError(f"Account {account_id} not found")
        return name

    @staticmethod
    def _check_distinct(source_account_id: int, destination_account_id: int) -> None:
        if source_account_id == destination_account_id:
            raise ValidationError.for_field("target_account_id", "Cannot transfer to the same account")

    def create(
        self,
        *,
        source_account_id: int,
        destination_account_id: int | None,
        date: str,
        amount: float,
        target_amount: float | None = None,
        memo: str | None = None,
    ) -> TransferResult:
        if destination_account_id is None:
            raise ValidationError.for_field("target_account_id", "Target account required for transfers")
        self._check_distinct(source_account_id, destination_account_id)

        transfer_id = new_transfer_id()
        destination_amount = abs(target_amount or amount)
        with self.db.transaction():
            source_name = self._account_name(source_account_id)
            destination_name = self._account_name(destination_account_id)
            category_id = self.categories.find_by_name(INTERNAL_TRANSFER_CATEGORY)

            source_id = self.transactions.insert(
                account_id=source_account_id,
                date=date,
                payee=outgoing_payee(destination_name),
                amount=-abs(amount),
                category_id=category_id,
                payment_type=INTERNAL_TRANSFER,
                memo=memo or "",
                transfer_id=transfer_id,
            )
            destination_id = self.transactions.insert(
                account_id=destination_account_id,
                date=date,
                payee=incoming_payee(source_name),
                amount=destination_amount,
                category_id=category_id,
                payment_type=INTERNAL_TRANSFER,
                memo=memo or "",
                transfer_id=transfer_id,
            )

        logger.info(
            "[TRANSFER] Created %s: %s -> %s (%.2f).",
            transfer_id,
            source_account_id,
            destination_account_id,
            abs(amount),
        )
        return TransferResult(transfer_id=transfer_id, source_id=source_id, destination_id=destination_id)

    def edit(self, row: sqlite3.Row, sibling: sqlite3.Row, changes: dict[str, Any]) -> None:
        """Apply an edit to both halves of a transfer.

        Sides are decided by sign, not by which row the caller addressed: the
        negative row is the source. ``account_id`` moves the source,
        ``target_account_id`` the destination.
        """
        if row["amount"] < 0 or sibling["amount"] > 0:
            source, destination = row, sibling
        else:
            source, destination = sibling, row

        source_changes: dict[str, Any] = {}
        destination_changes: dict[str, Any] = {}
        for field in _MIRRORED_FIELDS:
            if field in changes:
                source_changes[field] = changes[field]
                destination_changes[field] = changes[field]

        if "amount" in changes:
            source_changes["amount"] = -abs(changes["amount"])
        if changes.get("target_amount"):
            destination_changes["amount"] = abs(changes["target_amount"])
        elif "amount" in changes:
            destination_changes["amount"] = abs(changes["amount"])

        source_account_id = changes.get("account_id", source["account_id"])
        destination_account_id = changes.get("target_account_id", destination["account_id"])
        accounts_changed = (
            source_account_id != source["account_id"]
            or destination_account_id != destination["account_id"]
        )

        with self.db.transaction():
            if accounts_changed:
                self._check_distinct(source_account_id, destination_account_id)
                source_name = self._account_name(source_account_id)
                destination_name = self._account_name(destination_account_id)
                source_changes["account_id"] = source_account_id
                source_changes["payee"] = outgoing_payee(destination_name)
                destination_changes["account_id"] = destination_account_id
                destination_changes["payee"] = incoming_payee(source_name)

            self.transactions.apply_changes(source["id"], source_changes)
            self.transactions.apply_changes(destination["id"], destination_changes)

        logger.info("[TRANSFER] Updated %s (rows %s, %s).", row["transfer_id"], source["id"], destination["id"])
