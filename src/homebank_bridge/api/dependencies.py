from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request

from homebank_bridge.core.errors import AuthenticationError, PermissionDeniedError
from homebank_bridge.models import User
from homebank_bridge.repositories.account_repository import AccountRepository
from homebank_bridge.repositories.category_repository import CategoryRepository
from homebank_bridge.repositories.export_log_repository import ExportLogRepository
from homebank_bridge.repositories.payee_repository import PayeeRepository
from homebank_bridge.repositories.transaction_repository import TransactionRepository
from homebank_bridge.repositories.user_repository import UserRepository
from homebank_bridge.services.auth import AuthService
from homebank_bridge.services.importer import Importer
from homebank_bridge.services.system import SystemService
from homebank_bridge.services.transactions import TransactionService

SESSION_USER_KEY = "user_id"


def _from_state(request: Request, name: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return value


def get_accounts(request: Request) -> AccountRepository:
    return _from_state(request, "accounts")


def get_categories(request: Request) -> CategoryRepository:
    return _from_state(request, "categories")


def get_payees(request: Request) -> PayeeRepository:
    return _from_state(request, "payees")


def get_transactions(request: Request) -> TransactionRepository:
    return _from_state(request, "transactions")


def get_export_log(request: Request) -> ExportLogRepository:
    return _from_state(request, "export_log")


def get_users(request: Request) -> UserRepository:
    return _from_state(request, "users")


def get_transaction_service(request: Request) -> TransactionService:
    return _from_state(request, "transaction_service")


def get_importer(request: Request) -> Importer:
    return _from_state(request, "importer")


def get_auth_service(request: Request) -> AuthService:
    return _from_state(request, "auth_service")


def get_system_service(request: Request) -> SystemService:
    return _from_state(request, "system_service")


def get_session_user_id(request: Request) -> int | None:
    user_id = request.session.get(SESSION_USER_KEY)
    return int(user_id) if user_id is not None else None


def require_auth(
    request: Request,
    users: Annotated[UserRepository, Depends(get_users)],
) -> User:
    user_id = get_session_user_id(request)
    if user_id is None:
        raise AuthenticationError("Not authenticated")
    user = users.get(user_id)
    if user is None:
        request.session.clear()
        raise AuthenticationError("User not found")
    return user


def require_admin(user: Annotated[User, Depends(require_auth)]) -> User:
    if not user.is_admin:
        raise PermissionDeniedError("Admin privileges required")
    return user
