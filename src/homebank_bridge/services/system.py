"""
Administrative operations on the whole store: backup, restore, reset and
application settings.
"""

import os
import shutil
import sqlite3
import tempfile
from datetime import datetime
from pathlib import Path

from homebank_bridge.core.errors import ValidationError
from homebank_bridge.db.database import Database, is_sqlite_file
from homebank_bridge.db.migrations import run_migrations
from homebank_bridge.logger import get_logger
from homebank_bridge.repositories.settings_repository import SettingsRepository

logger = get_logger(__name__)

# Children before parents.
RESET_TABLES = ("transactions", "payees", "accounts", "categories", "export_log")

_SIDECAR_SUFFIXES = ("-wal", "-shm")


def backup_filename(now: datetime | None = None) -> str:
    return (now or datetime.now()).strftime("database-%d-%m-%Y.db")


def _remove_sidecars(db_path: Path) -> None:
    for suffix in _SIDECAR_SUFFIXES:
        sidecar = db_path.with_name(db_path.name + suffix)
        if sidecar.exists():
            sidecar.unlink()


class SystemService:
    def __init__(self, db: Database, app_settings: SettingsRepository) -> None:
        self.db = db
        self.app_settings = app_settings

    @property
    def backup_path(self) -> Path:
        return self.db.path.with_name(self.db.path.name + ".bak")

    def backup(self) -> Path:
        """Snapshot the store into a temporary file; the caller removes it."""
        fd, temp_name = tempfile.mkstemp(prefix="homebank-backup-", suffix=".db")
        os.close(fd)
        try:
            return self.db.snapshot(temp_name)
        except sqlite3.Error:
            os.unlink(temp_name)
            raise

    def _swap_files(self, upload_path: Path) -> None:
        db_path = self.db.path
        try:
            if db_path.exists():
                shutil.copyfile(db_path, self.backup_path)
            shutil.copyfile(upload_path, db_path)
            _remove_sidecars(db_path)
        except OSError:
            logger.exception("[SYSTEM] File operation failed during restore; putting the backup back.")
            self._put_back()
            raise

    def _put_back(self) -> None:
        if self.backup_path.exists():
            shutil.copyfile(self.backup_path, self.db.path)
            _remove_sidecars(self.db.path)

    def restore(self, upload_path: str | Path) -> None:
        """Replace the live database with an uploaded SQLite file.

        The connection is released for the swap and always reacquired. A file
        that passes the header check but cannot be opened or migrated is
        rolled back to ``<db>.bak``.
        """
        upload_path = Path(upload_path)
        with open(upload_path, "rb") as handle:
            header = handle.read(16)
        if not is_sqlite_file(header):
            raise ValidationError.for_field("database", "Invalid database file format")

        logger.info("[SYSTEM] Restoring database from upload (%d bytes).", upload_path.stat().st_size)
        try:
            with self.db.released(after=run_migrations):
                self._swap_files(upload_path)
        except sqlite3.DatabaseError as exc:
            logger.error("[SYSTEM] Restored database is unusable (%s); reverting.", exc)
            with self.db.released(after=run_migrations):
                self._put_back()
            raise ValidationError.for_field("database", "Uploaded file is not a usable database") from exc
        logger.info("[SYSTEM] Database restored successfully.")

    def reset(self) -> None:
        with self.db.foreign_keys_disabled():
            with self.db.transaction():
                for table in RESET_TABLES:
                    self.db.execute(f"DELETE FROM {table}")
                    self.db.execute("DELETE FROM sqlite_sequence WHERE name = ?", (table,))
        logger.warning("[SYSTEM] Hard reset executed: %s cleared.", ", ".join(RESET_TABLES))

    def get_settings(self) -> dict[str, str]:
        return self.app_settings.all()

    def update_setting(self, key: str, value: str) -> dict[str, str]:
        self.app_settings.set(key, value)
        logger.info("[SYSTEM] Setting updated: %s = %s", key, value)
        return {"key": key, "value": value}
