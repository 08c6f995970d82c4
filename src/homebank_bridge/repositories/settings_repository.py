from __future__ import annotations

from homebank_bridge.core.errors import ValidationError
from homebank_bridge.db.database import Database

ALLOWED_SETTINGS = frozenset({"allow_registration", "privacy_mode", "date_format"})


class SettingsRepository:
    """Key/value application settings limited to :data:`ALLOWED_SETTINGS`."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def all(self) -> dict[str, str]:
        rows = self._db.fetch_all("SELECT key, value FROM app_settings ORDER BY key")
        return {row["key"]: row["value"] for row in rows}

    def get(self, key: str) -> str | None:
        return self._db.scalar("SELECT value FROM app_settings WHERE key = ?", (key,))

    def set(self, key: str, value: str) -> None:
        if key not in ALLOWED_SETTINGS:
            raise ValidationError.for_field("key", "Invalid setting key")
        self._db.execute(
            """
            INSERT INTO app_settings (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """,
            (key, value),
        )
