import asyncio

import bcrypt

from homebank_bridge.core import settings
from homebank_bridge.core.errors import AuthenticationError, ConflictError, PermissionDeniedError
from homebank_bridge.db.database import Database
from homebank_bridge.logger import get_logger
from homebank_bridge.models import User
from homebank_bridge.repositories.settings_repository import SettingsRepository
from homebank_bridge.repositories.user_repository import UserRepository

logger = get_logger(__name__)

INVALID_CREDENTIALS = "Invalid username or password"


def hash_password(password: str, rounds: int) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


class AuthService:
    def __init__(self, db: Database, users: UserRepository, app_settings: SettingsRepository) -> None:
        self.db = db
        self.users = users
        self.app_settings = app_settings

    @staticmethod
    def bcrypt_rounds() -> int:
        return settings.get_env_int("BCRYPT_ROUNDS", settings.DEFAULT_BCRYPT_ROUNDS, min_value=4)

    def registration_allowed(self, has_users: bool) -> bool:
        """The first identity may always register; after that the stored
        ``allow_registration`` setting decides, then the environment flag."""
        if not has_users:
            return True
        stored = self.app_settings.get("allow_registration")
        if stored is not None:
            return stored == "true"
        return settings.registration_allowed_by_env()

    def status(self) -> dict[str, bool]:
        has_users = self.users.count() > 0
        return {"has_users": has_users, "registration_allowed": self.registration_allowed(has_users)}

    async def register(self, username: str, password: str) -> User:
        password_hash = await asyncio.to_thread(hash_password, password, self.bcrypt_rounds())

        with self.db.transaction(immediate=True):
            has_users = self.users.count() > 0
            if not self.registration_allowed(has_users):
                raise PermissionDeniedError("Registration is disabled")
            if self.users.username_taken(username):
                raise ConflictError("Username already exists")
            user_id = self.users.create(username, password_hash, is_admin=not has_users)
            self.users.touch_last_login(user_id)

        user = self.users.get(user_id)
        if user is None:
            raise AuthenticationError("User not found")
        logger.info("[AUTH] Registered user '%s' (admin=%s).", username, user.is_admin)
        return user

    async def login(self, username: str, password: str) -> User:
        row = self.users.get_credentials(username)
        if row is None:
            logger.info("[AUTH] Login failed for unknown user.")
            raise AuthenticationError(INVALID_CREDENTIALS)

        valid = await asyncio.to_thread(verify_password, password, row["password_hash"])
        if not valid:
            logger.info("[AUTH] Login failed for '%s'.", username)
            raise AuthenticationError(INVALID_CREDENTIALS)

        self.users.touch_last_login(row["id"])
        user = self.users.get(row["id"])
        if user is None:
            raise AuthenticationError(INVALID_CREDENTIALS)
        logger.info("[AUTH] User '%s' logged in.", username)
        return user
