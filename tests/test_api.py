from fastapi.testclient import TestClient

from homebank_bridge.domain import csv_codec

from conftest import ADMIN


def _create_account(client: TestClient, name: str = "Checking", **extra) -> int:
    response = client.post("/api/accounts", json={"name": name, "currency": "EUR", **extra})
    assert response.status_code == 201
    return response.json()["id"]


def _create_category(client: TestClient, name: str, type_: str = "-", parent_id: int | None = None) -> int:
    response = client.post("/api/categories", json={"name": name, "type": type_, "parentId": parent_id})
    assert response.status_code == 201
    return response.json()["id"]


def _add_transaction(client: TestClient, account_id: int, **fields) -> int:
    payload = {"type": "expense", "accountId": account_id, "amount": 10, "date": "2024-01-05", **fields}
    response = client.post("/api/transactions", json=payload)
    assert response.status_code == 201, response.text
    return response.json()["id"]


def _transactions(client: TestClient, account_id: int | None = None) -> list[dict]:
    params = {"accountId": account_id} if account_id is not None else {}
    response = client.get("/api/transactions", params=params)
    assert response.status_code == 200
    return response.json()


# -- health / auth -------------------------------------------------------

def test_health_needs_no_session(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "timestamp" in response.json()


def test_routes_require_session(client):
    response = client.get("/api/accounts")
    assert response.status_code == 401
    assert response.json()["error"] == "Authentication required"


def test_status_before_and_after_first_user(client):
    assert client.get("/api/auth/status").json() == {"has_users": False, "registration_allowed": True}
    client.post("/api/auth/register", json=ADMIN)
    assert client.get("/api/auth/status").json() == {"has_users": True, "registration_allowed": False}


def test_first_registration_is_admin_and_logs_in(client):
    response = client.post("/api/auth/register", json=ADMIN)
    assert response.status_code == 201
    assert response.json()["is_admin"] is True

    me = client.get("/api/auth/me")
    assert me.status_code == 200
    assert me.json()["username"] == "admin"


def test_second_registration_gated_by_setting(admin_client):
    admin_client.post("/api/auth/logout")
    rejected = admin_client.post("/api/auth/register", json={"username": "guest", "password": "guest-pass"})
    assert rejected.status_code == 403

    admin_client.post("/api/auth/login", json=ADMIN)
    assert admin_client.put("/api/system/settings/allow_registration", json={"value": "true"}).status_code == 200
    admin_client.post("/api/auth/logout")

    accepted = admin_client.post("/api/auth/register", json={"username": "guest", "password": "guest-pass"})
    assert accepted.status_code == 201
    assert accepted.json()["is_admin"] is False

    duplicate = admin_client.post("/api/auth/register", json={"username": "guest", "password": "guest-pass"})
    assert duplicate.status_code == 409


def test_non_admin_cannot_reach_system_routes(admin_client):
    admin_client.put("/api/system/settings/allow_registration", json={"value": "true"})
    admin_client.post("/api/auth/register", json={"username": "guest", "password": "guest-pass"})

    assert admin_client.get("/api/accounts").status_code == 200
    assert admin_client.get("/api/system/settings").status_code == 403


def test_register_validation_details(client):
    response = client.post("/api/auth/register", json={"username": "a b", "password": "short"})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation failed"
    assert {detail["field"] for detail in body["details"]} == {"username", "password"}


def test_login_logout(admin_client):
    admin_client.post("/api/auth/logout")
    assert admin_client.get("/api/auth/me").status_code == 401

    bad = admin_client.post("/api/auth/login", json={"username": "admin", "password": "not-the-one"})
    unknown = admin_client.post("/api/auth/login", json={"username": "nobody", "password": "not-the-one"})
    assert bad.status_code == unknown.status_code == 401
    assert bad.json() == unknown.json()

    good = admin_client.post("/api/auth/login", json=ADMIN)
    assert good.status_code == 200
    assert admin_client.get("/api/auth/me").json()["last_login"] is not None


# -- accounts ------------------------------------------------------------

def test_account_crud_and_balance(admin_client):
    account_id = _create_account(admin_client, initialBalance=100)
    _add_transaction(admin_client, account_id, amount=30)
    _add_transaction(admin_client, account_id, type="income", amount=5.5)

    [account] = admin_client.get("/api/accounts").json()
    assert account["initial_balance"] == 100
    assert account["current_balance"] == 75.5

    assert admin_client.put(f"/api/accounts/{account_id}", json={"name": "Main"}).status_code == 200
    assert admin_client.get("/api/accounts").json()[0]["name"] == "Main"
    assert admin_client.put(f"/api/accounts/{account_id}", json={"name": None}).status_code == 400
    assert admin_client.put("/api/accounts/999", json={"name": "x"}).status_code == 404

    assert admin_client.delete(f"/api/accounts/{account_id}").status_code == 204
    assert admin_client.delete(f"/api/accounts/{account_id}").status_code == 404
    assert _transactions(admin_client) == []


def test_rename_currency(admin_client):
    _create_account(admin_client, "A")
    _create_account(admin_client, "B")
    response = admin_client.post("/api/accounts/rename-currency", json={"oldCode": "EUR", "newCode": "CHF"})
    assert response.json()["count"] == 2
    assert {a["currency"] for a in admin_client.get("/api/accounts").json()} == {"CHF"}

    too_short = admin_client.post("/api/accounts/rename-currency", json={"oldCode": "CHF", "newCode": "X"})
    assert too_short.status_code == 400


# -- categories ----------------------------------------------------------

def test_category_tree(admin_client):
    home = _create_category(admin_client, "Home")
    _create_category(admin_client, "Food", parent_id=home)
    _create_category(admin_client, "Salary", "+")

    tree = admin_client.get("/api/categories").json()
    by_name = {node["name"]: node for node in tree}
    assert set(by_name) == {"Home", "Salary"}
    assert [child["name"] for child in by_name["Home"]["children"]] == ["Food"]

    assert admin_client.post("/api/categories", json={"name": "X", "type": "-", "parentId": 999}).status_code == 400
    assert admin_client.put(f"/api/categories/{home}", json={"parentId": home}).status_code == 400


def test_deleting_category_nulls_references(admin_client):
    account_id = _create_account(admin_client)
    home = _create_category(admin_client, "Home")
    food = _create_category(admin_client, "Food", parent_id=home)
    garden = _create_category(admin_client, "Garden", parent_id=home)
    _add_transaction(admin_client, account_id, payee="Market", categoryId=food)

    [payee] = admin_client.get("/api/payees").json()
    assert payee["default_category_id"] == food

    assert admin_client.delete(f"/api/categories/{food}").status_code == 204
    assert _transactions(admin_client)[0]["category_id"] is None
    assert admin_client.get("/api/payees").json()[0]["default_category_id"] is None

    assert admin_client.delete(f"/api/categories/{home}").status_code == 204
    tree = admin_client.get("/api/categories").json()
    assert [(node["id"], node["parent_id"]) for node in tree] == [(garden, None)]


def test_category_csv_export_and_import(admin_client):
    income = _create_category(admin_client, "Income", "+")
    _create_category(admin_client, "Salary", "+", parent_id=income)
    _create_category(admin_client, "Misc", " ")

    exported = admin_client.get("/api/categories/export")
    assert exported.headers["content-type"].startswith("text/csv")
    assert exported.text == "1;+;Income\r\n2;+;Salary\r\n1;-;Misc"

    body = "level;type;name\n1;+;Income\n2;+;Bonus\n1;-;Travel\n2;-;Hotels\n"
    response = admin_client.post("/api/categories/import", content=body, headers={"Content-Type": "text/csv"})
    assert response.status_code == 201
    assert response.json()["count"] == 3

    tree = {node["name"]: node for node in admin_client.get("/api/categories").json()}
    assert sorted(child["name"] for child in tree["Income"]["children"]) == ["Bonus", "Salary"]
    assert [child["name"] for child in tree["Travel"]["children"]] == ["Hotels"]


# -- payees --------------------------------------------------------------

def test_payee_crud_and_conflicts(admin_client):
    response = admin_client.post("/api/payees", json={"name": "Acme"})
    assert response.status_code == 201
    acme = response.json()["id"]
    assert admin_client.post("/api/payees", json={"name": "Acme"}).status_code == 409

    other = admin_client.post("/api/payees", json={"name": "Other"}).json()["id"]
    assert admin_client.put(f"/api/payees/{other}", json={"name": "Acme"}).status_code == 409
    assert admin_client.put(f"/api/payees/{acme}", json={"defaultPaymentType": 3}).status_code == 200
    assert admin_client.delete(f"/api/payees/{other}").status_code == 204
    assert admin_client.delete(f"/api/payees/{other}").status_code == 404

    [payee] = admin_client.get("/api/payees").json()
    assert payee["default_payment_type"] == 3


def test_payee_csv_roundtrip(admin_client):
    home = _create_category(admin_client, "Home")
    food = _create_category(admin_client, "Food", parent_id=home)
    admin_client.post("/api/payees", json={"name": "Acme", "defaultCategoryId": food, "defaultPaymentType": 1})

    exported = admin_client.get("/api/payees/export").text
    assert exported == "Acme;Home:Food;Credit Card"

    csv_data = "name;category;paymode\nAcme;Travel;cash\nShop;Groceries:Fruit;Debit Card\n"
    check = admin_client.post("/api/payees/import-check", json={"candidates": [{"name": "Acme"}, {"name": "Shop"}]})
    assert check.json() == {"duplicates": [{"name": "Acme"}]}

    skipped = admin_client.post("/api/payees/import", json={"csvData": csv_data, "skipDuplicates": True})
    assert skipped.status_code == 201
    assert skipped.json()["count"] == 1
    assert skipped.json()["skipped"] == 1

    updated = admin_client.post("/api/payees/import", json={"csvData": csv_data})
    assert updated.json()["count"] == 2

    payees = {p["name"]: p for p in admin_client.get("/api/payees").json()}
    assert payees["Acme"]["category_name"] == "Travel"
    assert payees["Acme"]["default_payment_type"] == 3
    assert payees["Shop"]["category_name"] == "Fruit"
    assert payees["Shop"]["default_payment_type"] == 6


# -- transactions --------------------------------------------------------

def test_typed_create_signs_amounts(admin_client):
    account_id = _create_account(admin_client)
    _add_transaction(admin_client, account_id, type="expense", amount=12.5)
    _add_transaction(admin_client, account_id, type="income", amount=40, date="2024-01-06")

    amounts = [row["amount"] for row in _transactions(admin_client, account_id)]
    assert amounts == [40, -12.5]

    negative = admin_client.post(
        "/api/transactions",
        json={"type": "expense", "accountId": account_id, "amount": -1, "date": "2024-01-05"},
    )
    assert negative.status_code == 400
    missing_account = admin_client.post(
        "/api/transactions",
        json={"type": "expense", "accountId": 999, "amount": 1, "date": "2024-01-05"},
    )
    assert missing_account.status_code == 404


def test_list_filters_by_date_range(admin_client):
    account_id = _create_account(admin_client)
    for day in ("2024-01-01", "2024-01-15", "2024-02-01"):
        _add_transaction(admin_client, account_id, date=day)

    response = admin_client.get("/api/transactions", params={"from": "2024-01-10", "to": "2024-02-01"})
    assert [row["date"] for row in response.json()] == ["2024-02-01", "2024-01-15"]


def test_partial_update_changes_only_given_fields(admin_client):
    account_id = _create_account(admin_client)
    transaction_id = _add_transaction(admin_client, account_id, payee="Acme", memo="keep")

    response = admin_client.put(f"/api/transactions/{transaction_id}", json={"amount": -99})
    assert response.status_code == 200
    [row] = _transactions(admin_client)
    assert row["amount"] == -99
    assert row["memo"] == "keep"
    assert row["payee"] == "Acme"

    stray = admin_client.put(f"/api/transactions/{transaction_id}", json={"targetAmount": 5})
    assert stray.status_code == 400
    assert admin_client.put("/api/transactions/999", json={"memo": "x"}).status_code == 404


def test_transfer_lifecycle(admin_client):
    checking = _create_account(admin_client, "Checking")
    savings = _create_account(admin_client, "Savings")

    response = admin_client.post(
        "/api/transactions",
        json={"type": "transfer", "accountId": checking, "targetAccountId": savings, "amount": 100,
              "date": "2024-03-01", "memo": "save"},
    )
    assert response.status_code == 201
    body = response.json()
    assert body["transfer_id"].startswith("tr-")

    rows = [row for row in _transactions(admin_client) if row["transfer_id"] == body["transfer_id"]]
    assert sorted(row["amount"] for row in rows) == [-100, 100]
    assert {row["account_id"] for row in rows} == {checking, savings}

    edit = admin_client.put(f"/api/transactions/{body['destination_id']}", json={"amount": 60})
    assert edit.status_code == 200
    balances = {a["name"]: a["current_balance"] for a in admin_client.get("/api/accounts").json()}
    assert balances == {"Checking": -60, "Savings": 60}

    assert admin_client.delete(f"/api/transactions/{body['source_id']}").status_code == 204
    assert _transactions(admin_client) == []

    same = admin_client.post(
        "/api/transactions",
        json={"type": "transfer", "accountId": checking, "targetAccountId": checking, "amount": 1,
              "date": "2024-03-01"},
    )
    assert same.status_code == 400
    no_target = admin_client.post(
        "/api/transactions",
        json={"type": "transfer", "accountId": checking, "amount": 1, "date": "2024-03-01"},
    )
    assert no_target.status_code == 400


def test_duplicate_check_tolerance(admin_client):
    account_id = _create_account(admin_client)
    _add_transaction(admin_client, account_id, type="income", amount=12.50, payee="Acme", date="2024-01-05")

    hit = {"date": "2024-01-05", "payee": "Acme", "amount": 12.50}
    miss = {"date": "2024-01-05", "payee": "Acme", "amount": 12.51}
    assert admin_client.post("/api/transactions/import-check", json={"candidates": [hit]}).json() == {
        "duplicates": [hit]
    }
    assert admin_client.post("/api/transactions/import-check", json={"candidates": [miss]}).json() == {
        "duplicates": []
    }


IMPORT_CSV = (
    "date;paymode;info;payee;memo;amount;category;tags\r\n"
    "05-01-2024;1;;Acme;lunch;-12,50;Home:Food;\r\n"
    '06-01-2024;0;;"Boss; Inc";salary;1000,00;Income:Salary;\r\n'
    "garbage line\r\n"
    "07-01-2024;0;;Nobody;;oops;;\r\n"
)


def _tuples(client: TestClient, account_id: int) -> set[tuple]:
    exported = client.post("/api/transactions/export", json={"accountId": account_id}).text
    lines, _ = csv_codec.parse_transaction_lines(exported)
    return {(line.date, line.payee, line.amount, line.category) for line in lines}


def test_import_then_export_roundtrip(admin_client):
    first = _create_account(admin_client, "First")
    second = _create_account(admin_client, "Second")

    response = admin_client.post("/api/transactions/import", json={"csvData": IMPORT_CSV, "accountId": first})
    assert response.status_code == 201
    assert response.json() == {"message": "Transactions imported successfully", "count": 2, "skipped": 2}

    expected = {
        ("2024-01-05", "Acme", -12.5, "Home:Food"),
        ("2024-01-06", "Boss; Inc", 1000.0, "Income:Salary"),
    }
    assert _tuples(admin_client, first) == expected

    exported = admin_client.post("/api/transactions/export", json={"accountId": first})
    assert exported.headers["content-type"].startswith("text/csv")
    assert "attachment" in exported.headers["content-disposition"]

    category_count = len(admin_client.get("/api/categories").json())
    reimport = admin_client.post(
        "/api/transactions/import",
        json={"csvData": exported.text, "accountId": second},
    )
    assert reimport.json()["count"] == 2
    assert _tuples(admin_client, second) == expected
    assert len(admin_client.get("/api/categories").json()) == category_count


def test_import_skip_duplicates_and_missing_account(admin_client):
    account_id = _create_account(admin_client)
    admin_client.post("/api/transactions/import", json={"csvData": IMPORT_CSV, "accountId": account_id})

    again = admin_client.post(
        "/api/transactions/import",
        json={"csvData": IMPORT_CSV, "accountId": account_id, "skipDuplicates": True},
    )
    assert again.json()["count"] == 0
    assert len(_transactions(admin_client)) == 2

    missing = admin_client.post("/api/transactions/import", json={"csvData": IMPORT_CSV, "accountId": 999})
    assert missing.status_code == 404
    assert len(_transactions(admin_client)) == 2


def test_export_filters_and_grouping(admin_client):
    first = _create_account(admin_client, "Alpha")
    second = _create_account(admin_client, "Beta")
    home = _create_category(admin_client, "Home")
    food = _create_category(admin_client, "Food", parent_id=home)
    kept = _add_transaction(admin_client, first, payee="Corner SHOP", categoryId=food)
    _add_transaction(admin_client, first, payee="Elsewhere")
    _add_transaction(admin_client, second, payee="Beta shop", amount=3.25, date="2024-02-29")

    by_parent = admin_client.post("/api/transactions/export", json={"categoryId": home}).text
    assert by_parent.count("\r\n") == 0
    assert "Corner SHOP" in by_parent

    by_ids = admin_client.post("/api/transactions/export", json={"ids": [kept]}).text
    assert by_ids == "05-01-2024;0;;Corner SHOP;;-10,00;Home:Food;"

    grouped = admin_client.post(
        "/api/transactions/export",
        json={"payee": "shop", "grouped": True, "dateFormat": "YYYY-MM-DD", "decimalSeparator": "."},
    ).json()
    assert grouped == {
        str(first): {"name": "Alpha", "csv": "2024-01-05;0;;Corner SHOP;;-10.00;Home:Food;", "count": 1},
        str(second): {"name": "Beta", "csv": "2024-02-29;0;;Beta shop;;-3.25;;", "count": 1},
    }


# -- export log ----------------------------------------------------------

def test_export_log_lifecycle(admin_client):
    content = "05-01-2024;0;;Acme;;-1,00;;\r\n"
    created = admin_client.post(
        "/api/export-log",
        json={"filename": 'bad"name\r\n.csv', "count": 1, "csv_content": content},
    )
    assert created.status_code == 200
    entry_id = created.json()["id"]

    [entry] = admin_client.get("/api/export-log").json()
    assert entry["filename"] == 'bad"name\r\n.csv'
    assert "csv_content" not in entry

    assert admin_client.get(f"/api/export-log/{entry_id}/preview").json() == {"content": content}
    download = admin_client.get(f"/api/export-log/{entry_id}/download")
    assert download.text == content
    assert download.headers["content-disposition"] == 'attachment; filename="bad_name.csv"'
    assert admin_client.get("/api/export-log/999/preview").status_code == 404

    admin_client.post("/api/export-log", json={"filename": "b.csv", "count": 0, "csvContent": ""})
    assert admin_client.delete(f"/api/export-log/{entry_id}").json() == {"success": True}
    assert len(admin_client.get("/api/export-log").json()) == 1
    admin_client.delete("/api/export-log")
    assert admin_client.get("/api/export-log").json() == []


def test_export_log_size_limit(admin_client, monkeypatch):
    monkeypatch.setenv("EXPORT_LOG_MAX_BYTES", "10")
    response = admin_client.post(
        "/api/export-log",
        json={"filename": "big.csv", "count": 1, "csv_content": "x" * 11},
    )
    assert response.status_code == 413


# -- system --------------------------------------------------------------

def test_settings_whitelist(admin_client):
    settings = admin_client.get("/api/system/settings").json()
    assert settings["allow_registration"] == "false"

    ok = admin_client.put("/api/system/settings/privacy_mode", json={"value": "true"})
    assert ok.json() == {"key": "privacy_mode", "value": "true"}
    assert admin_client.put("/api/system/settings/evil", json={"value": "1"}).status_code == 400
    assert admin_client.put("/api/system/settings/date_format", json={"value": 5}).status_code == 400
    assert admin_client.get("/api/system/settings").json()["privacy_mode"] == "true"


def test_reset_clears_ledger_but_keeps_users(admin_client):
    account_id = _create_account(admin_client)
    _create_category(admin_client, "Home")
    _add_transaction(admin_client, account_id, payee="Acme", categoryId=None)
    admin_client.post("/api/payees", json={"name": "Acme"})

    assert admin_client.post("/api/system/reset").status_code == 200
    assert admin_client.get("/api/accounts").json() == []
    assert admin_client.get("/api/categories").json() == []
    assert admin_client.get("/api/payees").json() == []
    assert _transactions(admin_client) == []

    # Sequences restart after the reset.
    assert _create_account(admin_client) == 1
    assert admin_client.get("/api/auth/me").status_code == 200


def test_backup_download(admin_client):
    response = admin_client.get("/api/system/backup")
    assert response.status_code == 200
    assert response.content.startswith(b"SQLite format 3")
    assert "database-" in response.headers["content-disposition"]


def test_restore_rejects_non_sqlite_upload(admin_client):
    response = admin_client.post(
        "/api/system/restore",
        files={"database": ("evil.db", b"definitely not sqlite", "application/octet-stream")},
    )
    assert response.status_code == 400
    assert admin_client.get("/api/accounts").status_code == 200


def test_restore_replaces_database(admin_client):
    _create_account(admin_client, "Before")
    backup = admin_client.get("/api/system/backup").content
    _create_account(admin_client, "After")

    response = admin_client.post(
        "/api/system/restore",
        files={"database": ("database.db", backup, "application/octet-stream")},
    )
    assert response.status_code == 200
    assert [a["name"] for a in admin_client.get("/api/accounts").json()] == ["Before"]
