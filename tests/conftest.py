from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from homebank_bridge.app import create_app
from homebank_bridge.db.database import Database
from homebank_bridge.db.migrations import run_migrations

ADMIN = {"username": "admin", "password": "correct-horse"}


@pytest.fixture
def db(tmp_path) -> Generator[Database, None, None]:
    database = Database(tmp_path / "ledger.db")
    database.open()
    run_migrations(database)
    yield database
    database.close()


@pytest.fixture
def client(tmp_path, monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient, None, None]:
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.delenv("ALLOW_REGISTRATION", raising=False)
    monkeypatch.delenv("EXPORT_LOG_MAX_BYTES", raising=False)
    app = create_app(db_path=tmp_path / "api.db")
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_client(client: TestClient) -> TestClient:
    response = client.post("/api/auth/register", json=ADMIN)
    assert response.status_code == 201
    return client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
