from __future__ import annotations

import sqlite3

from homebank_bridge.models import User
from homebank_bridge.repositories.base_repository import BaseRepository


class UserRepository(BaseRepository):
    TABLE = "users"
    ENTITY = "User"

    def count(self) -> int:
        return int(self._db.scalar("SELECT COUNT(*) FROM users"))

    def get(self, user_id: int) -> User | None:
        row = self._db.fetch_one(
            "SELECT id, username, is_admin, created_at, last_login FROM users WHERE id = ?",
            (user_id,),
        )
        return User(**dict(row)) if row else None

    def get_credentials(self, username: str) -> sqlite3.Row | None:
        return self._db.fetch_one(
            "SELECT id, username, password_hash, is_admin FROM users WHERE username = ?",
            (username,),
        )

    def username_taken(self, username: str) -> bool:
        return self._db.fetch_one("SELECT 1 FROM users WHERE username = ?", (username,)) is not None

    def create(self, username: str, password_hash: str, is_admin: bool) -> int:
        return self._db.insert(
            "INSERT INTO users (username, password_hash, is_admin) VALUES (?, ?, ?)",
            (username, password_hash, 1 if is_admin else 0),
        )

    def touch_last_login(self, user_id: int) -> None:
        self._db.execute("UPDATE users SET last_login = CURRENT_TIMESTAMP WHERE id = ?", (user_id,))
