import sqlite3
import threading

import pytest

from homebank_bridge.core.errors import StoreUnavailableError
from homebank_bridge.db.database import Database, is_sqlite_file
from homebank_bridge.db.migrations import MIGRATIONS, run_migrations


def _account_count(db: Database) -> int:
    return db.scalar("SELECT COUNT(*) FROM accounts")


def test_migrations_applied_once(db):
    versions = [row["version"] for row in db.fetch_all("SELECT version FROM schema_migrations ORDER BY version")]
    assert versions == [m.version for m in MIGRATIONS]
    assert run_migrations(db) == 0


def test_registration_setting_seeded(db):
    assert db.scalar("SELECT value FROM app_settings WHERE key = 'allow_registration'") == "false"


def test_transaction_rolls_back_on_error(db):
    with pytest.raises(RuntimeError):
        with db.transaction():
            db.execute("INSERT INTO accounts (name, currency) VALUES ('Cash', 'EUR')")
            raise RuntimeError("boom")
    assert _account_count(db) == 0


def test_nested_transaction_joins_outer(db):
    with pytest.raises(ValueError):
        with db.transaction():
            db.execute("INSERT INTO accounts (name, currency) VALUES ('Outer', 'EUR')")
            with db.transaction():
                db.execute("INSERT INTO accounts (name, currency) VALUES ('Inner', 'EUR')")
            raise ValueError("outer fails after inner finished")
    assert _account_count(db) == 0
    assert not db.in_transaction


def test_transaction_commits(db):
    with db.transaction():
        db.execute("INSERT INTO accounts (name, currency) VALUES ('Cash', 'EUR')")
    assert _account_count(db) == 1


def test_foreign_keys_enforced(db):
    with pytest.raises(sqlite3.IntegrityError):
        db.execute(
            "INSERT INTO transactions (account_id, date, amount) VALUES (999, '2024-01-01', 1.0)"
        )


def test_closed_store_is_unavailable(db):
    db.close()
    with pytest.raises(StoreUnavailableError):
        db.fetch_all("SELECT 1")
    db.open()
    assert db.scalar("SELECT 1") == 1


def test_released_reopens_connection(db):
    with db.released():
        assert not db.is_open
    assert db.is_open
    assert _account_count(db) == 0


def test_released_runs_after_hook_before_other_callers(db):
    seen = []
    workers = []

    def reader():
        seen.append(("reader", _account_count(db)))

    def after(reopened):
        worker = threading.Thread(target=reader)
        worker.start()
        worker.join(timeout=0.2)
        assert worker.is_alive()
        reopened.execute("INSERT INTO accounts (name, currency) VALUES ('Cash', 'EUR')")
        seen.append(("after", None))
        workers.append(worker)

    with db.released(after=after):
        pass
    workers[0].join(timeout=5)

    assert seen == [("after", None), ("reader", 1)]


def test_released_skips_after_hook_when_block_fails(db):
    calls = []
    with pytest.raises(OSError):
        with db.released(after=calls.append):
            raise OSError("swap failed")
    assert calls == []
    assert db.is_open


def test_release_refused_inside_transaction(db):
    with db.transaction():
        with pytest.raises(RuntimeError):
            with db.released():
                pass


def test_foreign_keys_toggle_refused_inside_transaction(db):
    with db.transaction():
        with pytest.raises(RuntimeError):
            with db.foreign_keys_disabled():
                pass


def test_snapshot_is_sqlite_file(db, tmp_path):
    db.execute("INSERT INTO accounts (name, currency) VALUES ('Cash', 'EUR')")
    target = db.snapshot(tmp_path / "copy.db")
    with open(target, "rb") as handle:
        assert is_sqlite_file(handle.read(16))

    copy = Database(target)
    copy.open()
    try:
        assert copy.scalar("SELECT name FROM accounts") == "Cash"
    finally:
        copy.close()


def test_is_sqlite_file_rejects_other_content():
    assert not is_sqlite_file(b"PK\x03\x04 zip archive")
    assert not is_sqlite_file(b"")
