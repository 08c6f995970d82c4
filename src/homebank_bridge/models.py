from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class CategoryType(str, Enum):
    INCOME = "+"
    EXPENSE = "-"
    NEUTRAL = " "

    @classmethod
    def for_amount(cls, amount: float | None) -> CategoryType:
        if amount is None or amount < 0:
            return cls.EXPENSE
        if amount > 0:
            return cls.INCOME
        return cls.NEUTRAL


class TransactionKind(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"
    TRANSFER = "transfer"


class Account(BaseModel):
    id: int
    name: str
    currency: str
    initial_balance: float = 0.0
    current_balance: float = 0.0


class Category(BaseModel):
    id: int
    name: str
    type: CategoryType
    parent_id: int | None = None
    usage_count: int = 0
    total_amount: float | None = None
    children: list[Category] = Field(default_factory=list)


class Payee(BaseModel):
    id: int
    name: str
    default_category_id: int | None = None
    category_name: str | None = None
    default_payment_type: int | None = None
    usage_count: int = 0
    total_amount: float | None = None


class Transaction(BaseModel):
    id: int
    date: str
    payee: str | None = None
    amount: float
    category_name: str | None = None
    account_name: str | None = None
    payment_type: int | None = None
    memo: str | None = None
    category_id: int | None = None
    account_id: int
    transfer_id: str | None = None
    exported: int = 0
    export_log_id: int | None = None


class ExportLogEntry(BaseModel):
    id: int
    timestamp: str | None = None
    filename: str
    count: int


class User(BaseModel):
    id: int
    username: str
    is_admin: bool = False
    created_at: str | None = None
    last_login: str | None = None


class TransferResult(BaseModel):
    transfer_id: str
    source_id: int
    destination_id: int


class ImportResult(BaseModel):
    message: str
    count: int
    skipped: int = 0
