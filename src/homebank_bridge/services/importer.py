"""
CSV imports for transactions, payees and categories.

Each import runs inside one store transaction: either every accepted line is
written or none is. Malformed lines are counted and skipped; a missing target
account aborts the whole import.
"""

from homebank_bridge.core.errors import NotFoundError
from homebank_bridge.db.database import Database
from homebank_bridge.domain import csv_codec
from homebank_bridge.domain.csv_codec import DateFormat
from homebank_bridge.domain.payment_modes import payment_mode_code
from homebank_bridge.logger import get_logger
from homebank_bridge.models import ImportResult
from homebank_bridge.repositories.account_repository import AccountRepository
from homebank_bridge.repositories.category_repository import CategoryRepository
from homebank_bridge.repositories.payee_repository import PayeeRepository
from homebank_bridge.repositories.transaction_repository import TransactionRepository
from homebank_bridge.services.category_resolver import CategoryResolver

logger = get_logger(__name__)


class Importer:
    def __init__(
        self,
        db: Database,
        accounts: AccountRepository,
        categories: CategoryRepository,
        payees: PayeeRepository,
        transactions: TransactionRepository,
    ) -> None:
        self.db = db
        self.accounts = accounts
        self.categories = categories
        self.payees = payees
        self.transactions = transactions

    def import_transactions(
        self,
        csv_data: str,
        account_id: int,
        *,
        skip_duplicates: bool = False,
        date_format: DateFormat = DateFormat.DAY_MONTH_YEAR,
    ) -> ImportResult:
        lines, skipped = csv_codec.parse_transaction_lines(csv_data, date_format)
        imported = 0
        duplicates = 0

        with self.db.transaction():
            if not self.accounts.exists(account_id):
                raise NotFoundError("Target account not found")
            resolver = CategoryResolver(self.categories)
            for line in lines:
                if skip_duplicates and self.transactions.is_duplicate(line.date, line.payee, line.amount):
                    duplicates += 1
                    continue
                self.transactions.insert(
                    account_id=account_id,
                    date=line.date,
                    payee=line.payee,
                    amount=line.amount,
                    category_id=resolver.resolve(line.category, line.amount),
                    payment_type=line.payment_type,
                    memo=line.memo,
                )
                imported += 1

        logger.info(
            "[IMPORT] Transactions into account %s: imported=%d skipped=%d duplicates=%d new_categories=%d",
            account_id,
            imported,
            skipped,
            duplicates,
            resolver.created,
        )
        return ImportResult(
            message="Transactions imported successfully",
            count=imported,
            skipped=skipped + duplicates,
        )

    def import_payees(self, csv_data: str, *, skip_duplicates: bool = False) -> ImportResult:
        imported = 0
        skipped = 0
        with self.db.transaction():
            resolver = CategoryResolver(self.categories)
            for line in csv_codec.parse_payee_lines(csv_data):
                if skip_duplicates and self.payees.find_id_by_name(line.name) is not None:
                    skipped += 1
                    continue
                category_id = resolver.resolve(line.category)
                self.payees.set_defaults(line.name, category_id, payment_mode_code(line.payment_mode))
                imported += 1

        logger.info("[IMPORT] Payees: imported=%d skipped=%d", imported, skipped)
        return ImportResult(message="Payees imported successfully", count=imported, skipped=skipped)

    def import_categories(self, csv_data: str) -> ImportResult:
        """Level 1 rows attach at the root, level 2 rows under the last level 1."""
        imported = 0
        skipped = 0
        with self.db.transaction():
            parent_id: int | None = None
            for line in csv_codec.parse_category_lines(csv_data):
                if line.level == 1:
                    target_parent = None
                elif line.level == 2 and parent_id is not None:
                    target_parent = parent_id
                else:
                    skipped += 1
                    continue

                category_id = self.categories.find_child(line.name, target_parent)
                if category_id is None:
                    category_id = self.categories.insert(line.name, line.type, target_parent)
                    imported += 1
                if line.level == 1:
                    parent_id = category_id

        logger.info("[IMPORT] Categories: created=%d skipped=%d", imported, skipped)
        return ImportResult(message="Categories imported successfully", count=imported, skipped=skipped)
