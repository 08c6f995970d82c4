"""
HomeBank-compatible CSV rows.

Transactions use eight semicolon-separated columns::

    date;payment-mode;number;payee;memo;amount;category;tags

Payees use ``name;category;payment-mode`` and categories ``level;type;name``.
Rows are joined with CRLF. Everything here is pure: no store access.
"""

from __future__ import annotations

import csv
import math
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date
from enum import Enum

from homebank_bridge.domain.payment_modes import parse_payment_code

DELIMITER = ";"
ROW_TERMINATOR = "\r\n"
CATEGORY_SEPARATOR = ":"

_NEEDS_QUOTES = (DELIMITER, '"', "\n", "\r")
_LINE_BREAK = re.compile(r"\r?\n")


class DateFormat(str, Enum):
    DAY_MONTH_YEAR = "DD-MM-YYYY"
    MONTH_DAY_YEAR = "MM-DD-YYYY"
    YEAR_MONTH_DAY = "YYYY-MM-DD"


@dataclass(frozen=True)
class ExportRow:
    date: str
    payment_type: int | None
    payee: str | None
    memo: str | None
    amount: float | None
    category_name: str | None = None
    parent_category_name: str | None = None
    account_id: int | None = None
    account_name: str | None = None


@dataclass(frozen=True)
class ImportLine:
    date: str
    payment_type: int
    number: str
    payee: str
    memo: str
    amount: float
    category: str
    tags: str


@dataclass(frozen=True)
class PayeeLine:
    name: str
    category: str
    payment_mode: str


@dataclass(frozen=True)
class CategoryLine:
    level: int
    type: str
    name: str


# ----------------------------------------------------------------------
# Export
# ----------------------------------------------------------------------

def escape_field(value: object) -> str:
    if value is None:
        return ""
    text = str(value)
    if any(marker in text for marker in _NEEDS_QUOTES):
        return '"' + text.replace('"', '""') + '"'
    return text


def join_fields(fields: Iterable[object]) -> str:
    return DELIMITER.join(escape_field(field) for field in fields)


def join_rows(lines: Iterable[str]) -> str:
    return ROW_TERMINATOR.join(lines)


def format_date(value: str | None, date_format: DateFormat = DateFormat.DAY_MONTH_YEAR) -> str:
    date_format = DateFormat(date_format)
    if not value:
        return ""
    if "-" not in value:
        return value
    parts = value[:10].split("-")
    if len(parts) != 3:
        return value
    year, month, day = parts
    if date_format is DateFormat.MONTH_DAY_YEAR:
        return f"{month}-{day}-{year}"
    if date_format is DateFormat.YEAR_MONTH_DAY:
        return f"{year}-{month}-{day}"
    return f"{day}-{month}-{year}"


def format_amount(amount: float | None, decimal_separator: str = ",") -> str:
    return f"{(amount or 0.0):.2f}".replace(".", decimal_separator)


def format_category_path(category_name: str | None, parent_category_name: str | None = None) -> str:
    if not category_name:
        return ""
    if parent_category_name:
        return f"{parent_category_name}{CATEGORY_SEPARATOR}{category_name}"
    return category_name


def format_transaction_row(
    row: ExportRow,
    *,
    date_format: DateFormat = DateFormat.DAY_MONTH_YEAR,
    decimal_separator: str = ",",
) -> str:
    fields = (
        format_date(row.date, date_format),
        row.payment_type or 0,
        "",
        row.payee,
        row.memo,
        format_amount(row.amount, decimal_separator),
        format_category_path(row.category_name, row.parent_category_name),
        "",
    )
    return join_fields(fields)


def format_transactions(
    rows: Iterable[ExportRow],
    *,
    date_format: DateFormat = DateFormat.DAY_MONTH_YEAR,
    decimal_separator: str = ",",
) -> str:
    return join_rows(
        format_transaction_row(row, date_format=date_format, decimal_separator=decimal_separator)
        for row in rows
    )


def format_payee_row(name: str, category_path: str, payment_mode: str) -> str:
    return join_fields((name, category_path, payment_mode))


def format_category_row(level: int, category_type: str, name: str) -> str:
    return join_fields((level, category_type, name))


# ----------------------------------------------------------------------
# Import
# ----------------------------------------------------------------------

def iter_records(text: str) -> Iterator[list[str]]:
    """Yield the semicolon fields of each non-blank line.

    Lines are split on CRLF/LF first and parsed one at a time, so a stray
    quote cannot run into the next line. A line the reader rejects is
    yielded as an empty list.
    """
    for line in _LINE_BREAK.split(text):
        if not line.strip():
            continue
        try:
            fields = next(csv.reader([line], delimiter=DELIMITER, quotechar='"', strict=True), [])
        except csv.Error:
            fields = []
        if fields and not any(field.strip() for field in fields):
            continue
        yield fields


def _is_header(fields: list[str], names: tuple[str, ...]) -> bool:
    return bool(fields) and fields[0].strip().lower() in names


def parse_date(raw: str | None, date_format: DateFormat = DateFormat.DAY_MONTH_YEAR) -> str | None:
    """Normalise an imported date to ``YYYY-MM-DD``.

    A four-digit first group means year-first; a four-digit last group means
    day/month-first, ordered by ``date_format``. Returns ``None`` otherwise.
    """
    date_format = DateFormat(date_format)
    if not raw:
        return None
    parts = raw.strip().replace(".", "-").replace("/", "-").split("-")
    if len(parts) != 3:
        return None
    if len(parts[0]) == 4:
        year, month, day = parts
    elif len(parts[2]) == 4:
        if date_format is DateFormat.MONTH_DAY_YEAR:
            month, day, year = parts
        else:
            day, month, year = parts
    else:
        return None
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def parse_amount(raw: str | None) -> float | None:
    if raw is None:
        return None
    text = raw.strip().replace(" ", "").replace(",", ".")
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    return value


def parse_transaction_lines(
    text: str,
    date_format: DateFormat = DateFormat.DAY_MONTH_YEAR,
) -> tuple[list[ImportLine], int]:
    """Parse transaction rows; return the good lines and how many were skipped."""
    lines: list[ImportLine] = []
    skipped = 0
    for fields in iter_records(text):
        if _is_header(fields, ("date", "data")):
            continue
        if len(fields) < 5:
            skipped += 1
            continue
        padded = [field.strip() for field in fields] + [""] * (8 - len(fields))
        date_str, pay_code, number, payee, memo, amount_str, category, tags = padded[:8]

        parsed_date = parse_date(date_str, date_format)
        amount = parse_amount(amount_str)
        if parsed_date is None or amount is None:
            skipped += 1
            continue

        lines.append(ImportLine(
            date=parsed_date,
            payment_type=parse_payment_code(pay_code),
            number=number,
            payee=payee,
            memo=memo,
            amount=amount,
            category=category,
            tags=tags,
        ))
    return lines, skipped


def parse_payee_lines(text: str) -> list[PayeeLine]:
    lines: list[PayeeLine] = []
    for fields in iter_records(text):
        if _is_header(fields, ("name", "payee")):
            continue
        padded = [field.strip() for field in fields] + [""] * (3 - len(fields))
        name, category, payment_mode = padded[:3]
        if not name:
            continue
        lines.append(PayeeLine(name=name, category=category, payment_mode=payment_mode))
    return lines


def parse_category_lines(text: str) -> list[CategoryLine]:
    lines: list[CategoryLine] = []
    for fields in iter_records(text):
        if _is_header(fields, ("level", "lvl")):
            continue
        padded = [field.strip() for field in fields] + [""] * (3 - len(fields))
        level_str, category_type, name = padded[:3]
        if not name or not level_str.isdigit():
            continue
        if category_type not in ("+", "-"):
            category_type = " "
        lines.append(CategoryLine(level=int(level_str), type=category_type, name=name))
    return lines
