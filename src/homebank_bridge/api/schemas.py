import datetime as dt
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from homebank_bridge.domain.csv_codec import DateFormat
from homebank_bridge.models import CategoryType, TransactionKind

USERNAME_PATTERN = r"^[a-zA-Z0-9._-]+$"


class RequestModel(BaseModel):
    """Accepts both ``snake_case`` and ``camelCase`` keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


class UpdateModel(RequestModel):
    """Partial update: only keys present in the request are applied.

    Keys listed in ``nullable`` may be sent as ``null`` to clear the column;
    every other key rejects ``null``.
    """

    nullable: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_nulls(self) -> "UpdateModel":
        for name in self.model_fields_set:
            if name not in self.nullable and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.model_fields_set}


# -- accounts ------------------------------------------------------------

class AccountCreate(RequestModel):
    name: str = Field(min_length=1)
    currency: str = Field(min_length=1, max_length=10)
    initial_balance: float = 0.0


class AccountUpdate(UpdateModel):
    name: str | None = Field(default=None, min_length=1)
    currency: str | None = Field(default=None, min_length=1, max_length=10)
    initial_balance: float | None = None


class CurrencyRename(RequestModel):
    old_code: str = Field(min_length=1)
    new_code: str = Field(min_length=2, max_length=10)


# -- categories ----------------------------------------------------------

class CategoryCreate(RequestModel):
    name: str = Field(min_length=1)
    type: CategoryType
    parent_id: int | None = None


class CategoryUpdate(UpdateModel):
    nullable: ClassVar[frozenset[str]] = frozenset({"parent_id"})

    name: str | None = Field(default=None, min_length=1)
    type: CategoryType | None = None
    parent_id: int | None = None


# -- payees --------------------------------------------------------------

class PayeeCreate(RequestModel):
    name: str = Field(min_length=1)
    default_category_id: int | None = None
    default_payment_type: int | None = None


class PayeeUpdate(UpdateModel):
    nullable: ClassVar[frozenset[str]] = frozenset({"default_category_id", "default_payment_type"})

    name: str | None = Field(default=None, min_length=1)
    default_category_id: int | None = None
    default_payment_type: int | None = None


class PayeeCandidate(RequestModel):
    name: str


class PayeeImportCheck(RequestModel):
    candidates: list[PayeeCandidate]


class PayeeImportRequest(RequestModel):
    csv_data: str = Field(min_length=1)
    skip_duplicates: bool = False


# -- transactions --------------------------------------------------------

class TransactionCreate(RequestModel):
    type: TransactionKind
    account_id: int
    amount: float = Field(ge=0)
    date: dt.date
    payee: str | None = None
    memo: str | None = None
    category_id: int | None = None
    payment_type: int | None = None
    target_account_id: int | None = None
    target_amount: float | None = Field(default=None, ge=0)


class TransactionUpdate(UpdateModel):
    nullable: ClassVar[frozenset[str]] = frozenset({"category_id", "payment_type", "memo", "payee"})

    date: dt.date | None = None
    payee: str | None = None
    amount: float | None = None
    category_id: int | None = None
    payment_type: int | None = None
    memo: str | None = None
    account_id: int | None = None
    target_account_id: int | None = None
    target_amount: float | None = None


class DuplicateCandidate(RequestModel):
    date: str
    payee: str
    amount: float


class TransactionImportCheck(RequestModel):
    candidates: list[DuplicateCandidate]


class TransactionImportRequest(RequestModel):
    csv_data: str = Field(min_length=1)
    account_id: int
    skip_duplicates: bool = False
    date_format: DateFormat = DateFormat.DAY_MONTH_YEAR


class TransactionExportRequest(RequestModel):
    ids: list[int] | None = None
    account_id: int | None = None
    from_date: dt.date | None = Field(default=None, alias="from")
    to_date: dt.date | None = Field(default=None, alias="to")
    category_id: int | None = None
    payee: str | None = None
    grouped: bool = False
    date_format: DateFormat = DateFormat.DAY_MONTH_YEAR
    decimal_separator: str = Field(default=",", min_length=1, max_length=1)


# -- export log ----------------------------------------------------------

class ExportLogCreate(RequestModel):
    model_config = ConfigDict(str_strip_whitespace=False)

    filename: str = Field(min_length=1)
    count: int = Field(ge=0)
    csv_content: str


# -- auth / system -------------------------------------------------------

class Credentials(BaseModel):
    # Passwords are taken verbatim; only the username is stripped.
    username: str = Field(min_length=3, max_length=32, pattern=USERNAME_PATTERN)
    password: str = Field(min_length=8)

    @field_validator("username", mode="before")
    @classmethod
    def _strip_username(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class SettingUpdate(RequestModel):
    value: str
