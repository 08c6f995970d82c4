import sqlite3
from collections.abc import AsyncGenerator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.sessions import SessionMiddleware

from homebank_bridge.api.routes import accounts, auth, categories, export_log, payees, system, transactions
from homebank_bridge.core import settings
from homebank_bridge.core.errors import InternalError, LedgerError
from homebank_bridge.db.database import Database
from homebank_bridge.db.migrations import run_migrations
from homebank_bridge.logger import get_logger, setup_logging
from homebank_bridge.repositories.account_repository import AccountRepository
from homebank_bridge.repositories.category_repository import CategoryRepository
from homebank_bridge.repositories.export_log_repository import ExportLogRepository
from homebank_bridge.repositories.payee_repository import PayeeRepository
from homebank_bridge.repositories.settings_repository import SettingsRepository
from homebank_bridge.repositories.transaction_repository import TransactionRepository
from homebank_bridge.repositories.user_repository import UserRepository
from homebank_bridge.services.auth import AuthService
from homebank_bridge.services.importer import Importer
from homebank_bridge.services.system import SystemService
from homebank_bridge.services.transactions import TransactionService
from homebank_bridge.services.transfers import TransferWriter

logger = get_logger(__name__)

SESSION_COOKIE = "homebank_session"


def _wire_services(app: FastAPI, db: Database) -> None:
    accounts_repo = AccountRepository(db)
    categories_repo = CategoryRepository(db)
    payees_repo = PayeeRepository(db)
    transactions_repo = TransactionRepository(db)
    users_repo = UserRepository(db)
    settings_repo = SettingsRepository(db)
    transfers = TransferWriter(db, accounts_repo, categories_repo, transactions_repo)

    app.state.db = db
    app.state.accounts = accounts_repo
    app.state.categories = categories_repo
    app.state.payees = payees_repo
    app.state.transactions = transactions_repo
    app.state.export_log = ExportLogRepository(db)
    app.state.users = users_repo
    app.state.app_settings = settings_repo
    app.state.transaction_service = TransactionService(db, accounts_repo, payees_repo, transactions_repo, transfers)
    app.state.importer = Importer(db, accounts_repo, categories_repo, payees_repo, transactions_repo)
    app.state.auth_service = AuthService(db, users_repo, settings_repo)
    app.state.system_service = SystemService(db, settings_repo)


def _validation_details(exc: RequestValidationError) -> list[dict[str, str]]:
    details = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        details.append({"field": ".".join(location), "message": error.get("msg", "Invalid value")})
    return details


def _install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("[HTTP] %s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"error": "Validation failed", "details": _validation_details(exc)},
        )

    @app.exception_handler(sqlite3.IntegrityError)
    async def integrity_error_handler(request: Request, exc: sqlite3.IntegrityError) -> JSONResponse:
        logger.warning("[DB] Constraint violation on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=409, content={"error": "Constraint violation", "message": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("[HTTP] Unhandled error on %s %s", request.method, request.url.path)
        error = InternalError(str(exc))
        content = error.to_payload() if settings.is_debug() else {"error": error.error}
        return JSONResponse(status_code=error.status_code, content=content)


def create_app(db_path: str | Path | None = None) -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Initializing services...")
        settings.log_environment()

        path = Path(db_path or settings.get_db_path())
        db = Database(
            path,
            busy_timeout_ms=settings.get_env_int(
                "DB_BUSY_TIMEOUT_MS",
                settings.DEFAULT_BUSY_TIMEOUT_MS,
                min_value=0,
            ),
        )
        db.open()
        run_migrations(db)
        _wire_services(app, db)

        logger.info("Services initialized.")
        try:
            yield
        finally:
            logger.info("Service shutting down.")
            db.close()

    app = FastAPI(title="HomeBank Bridge", lifespan=lifespan)

    app.add_middleware(
        SessionMiddleware,
        secret_key=settings.get_session_secret(),
        session_cookie=SESSION_COOKIE,
        max_age=settings.get_env_int("SESSION_MAX_AGE", settings.DEFAULT_SESSION_MAX_AGE, min_value=60),
        same_site="lax",
        https_only=settings.get_env_bool("SESSION_COOKIE_SECURE", False),
    )

    @app.middleware("http")
    async def log_api_requests(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.url.path.startswith("/api"):
            logger.info("[HTTP] %s %s", request.method, request.url.path)
        return await call_next(request)

    _install_error_handlers(app)

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}

    app.include_router(auth.router)
    app.include_router(accounts.router)
    app.include_router(categories.router)
    app.include_router(payees.router)
    app.include_router(transactions.router)
    app.include_router(export_log.router)
    app.include_router(system.router)

    return app


app = create_app()
