"""
Versioned schema migrations.

Each migration is applied once, inside its own transaction, and recorded in
``schema_migrations``. Migrations that alter existing tables guard
themselves so re-running them against a restored file is harmless.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Callable
from dataclasses import dataclass

from homebank_bridge.db.database import Database
from homebank_bridge.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    apply: Callable[[sqlite3.Connection], None]


def _run_all(conn: sqlite3.Connection, statements: list[str]) -> None:
    for statement in statements:
        conn.execute(statement)


def _column_exists(conn: sqlite3.Connection, table: str, column: str) -> bool:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return any(row["name"] == column for row in rows)


def _initial_schema(conn: sqlite3.Connection) -> None:
    _run_all(conn, [
        """
        CREATE TABLE IF NOT EXISTS accounts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            currency TEXT NOT NULL,
            initial_balance REAL DEFAULT 0
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS categories (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            type TEXT NOT NULL CHECK(type IN ('+', '-', ' ')),
            parent_id INTEGER,
            FOREIGN KEY (parent_id) REFERENCES categories(id)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS payees (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT UNIQUE NOT NULL,
            default_category_id INTEGER,
            default_payment_type INTEGER,
            FOREIGN KEY (default_category_id) REFERENCES categories(id)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS transactions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            account_id INTEGER NOT NULL,
            date TEXT NOT NULL,
            payee TEXT,
            amount REAL NOT NULL,
            category_id INTEGER,
            payment_type INTEGER,
            memo TEXT,
            transfer_id TEXT,
            exported INTEGER DEFAULT 0,
            export_log_id INTEGER,
            FOREIGN KEY (account_id) REFERENCES accounts(id) ON DELETE CASCADE,
            FOREIGN KEY (category_id) REFERENCES categories(id)
        )
        """,
        """
        CREATE TABLE IF NOT EXISTS export_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            timestamp DATETIME DEFAULT CURRENT_TIMESTAMP,
            filename TEXT NOT NULL,
            count INTEGER NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_transactions_account ON transactions(account_id)",
        "CREATE INDEX IF NOT EXISTS idx_transactions_date ON transactions(date)",
        "CREATE INDEX IF NOT EXISTS idx_transactions_transfer ON transactions(transfer_id)",
    ])


def _export_log_content(conn: sqlite3.Connection) -> None:
    if not _column_exists(conn, "export_log", "csv_content"):
        conn.execute("ALTER TABLE export_log ADD COLUMN csv_content TEXT")


def _users(conn: sqlite3.Connection) -> None:
    _run_all(conn, [
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT UNIQUE NOT NULL,
            password_hash TEXT NOT NULL,
            is_admin INTEGER NOT NULL DEFAULT 0,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            last_login DATETIME NULL
        )
        """,
        "CREATE UNIQUE INDEX IF NOT EXISTS idx_users_username ON users(username)",
    ])


def _app_settings(conn: sqlite3.Connection) -> None:
    _run_all(conn, [
        """
        CREATE TABLE IF NOT EXISTS app_settings (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
        """,
        "INSERT OR IGNORE INTO app_settings (key, value) VALUES ('allow_registration', 'false')",
    ])


MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, "initial_schema", _initial_schema),
    Migration(2, "add_csv_content_to_export_log", _export_log_content),
    Migration(3, "create_users_table", _users),
    Migration(4, "create_app_settings", _app_settings),
)


def applied_versions(db: Database) -> set[int]:
    db.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version INTEGER PRIMARY KEY,
            applied_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    return {row["version"] for row in db.fetch_all("SELECT version FROM schema_migrations")}


def run_migrations(db: Database) -> int:
    """Apply pending migrations in version order; return how many ran."""
    done = applied_versions(db)
    applied = 0
    for migration in sorted(MIGRATIONS, key=lambda m: m.version):
        if migration.version in done:
            logger.debug("[DB] Migration %s already applied, skipping.", migration.version)
            continue
        logger.info("[DB] Applying migration %s: %s", migration.version, migration.name)
        with db.transaction() as conn:
            migration.apply(conn)
            conn.execute("INSERT INTO schema_migrations (version) VALUES (?)", (migration.version,))
        applied += 1
    if applied:
        logger.info("[DB] %d migration(s) applied.", applied)
    return applied
