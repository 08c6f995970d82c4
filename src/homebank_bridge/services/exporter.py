from typing import Any

from homebank_bridge.domain import csv_codec
from homebank_bridge.domain.csv_codec import DateFormat, ExportRow
from homebank_bridge.domain.payment_modes import payment_mode_name
from homebank_bridge.models import Category, CategoryType
from homebank_bridge.repositories.category_repository import CategoryRepository, build_tree
from homebank_bridge.repositories.payee_repository import PayeeRepository


def group_by_account(
    rows: list[ExportRow],
    *,
    date_format: DateFormat = DateFormat.DAY_MONTH_YEAR,
    decimal_separator: str = ",",
) -> dict[str, dict[str, Any]]:
    """One CSV document per account, keyed by account id."""
    grouped: dict[str, list[ExportRow]] = {}
    names: dict[str, str | None] = {}
    for row in rows:
        key = str(row.account_id)
        grouped.setdefault(key, []).append(row)
        names[key] = row.account_name

    return {
        key: {
            "name": names[key],
            "csv": csv_codec.format_transactions(
                account_rows,
                date_format=date_format,
                decimal_separator=decimal_separator,
            ),
            "count": len(account_rows),
        }
        for key, account_rows in grouped.items()
    }


def export_payees(payees: PayeeRepository) -> str:
    return csv_codec.join_rows(
        csv_codec.format_payee_row(
            row["name"],
            csv_codec.format_category_path(row["category_name"], row["parent_category_name"]),
            payment_mode_name(row["default_payment_type"]),
        )
        for row in payees.export_rows()
    )


def _walk(nodes: list[Category], level: int, lines: list[str]) -> None:
    for node in nodes:
        # HomeBank only knows income and expense.
        category_type = "+" if node.type is CategoryType.INCOME else "-"
        lines.append(csv_codec.format_category_row(level, category_type, node.name))
        _walk(node.children, level + 1, lines)


def export_categories(categories: CategoryRepository) -> str:
    rows = sorted(categories.list_rows(), key=lambda row: row["name"])
    lines: list[str] = []
    _walk(build_tree(rows), 1, lines)
    return csv_codec.join_rows(lines)
