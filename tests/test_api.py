import dataclasses

import bankfeed.deps as deps

STATEMENT = (
    b"Date,Description,Reference,Debit,Credit,Balance\n"
    b"01/08/2025,NEFT FROM CLIENT,REF1,,500.00,1500.00\n"
    b"02/08/2025,Paper invoice 77,REF2,300.00,,1200.00\n"
)


def _create_account(client, opening="1000.00"):
    resp = client.post("/bank-accounts", json={"account_name": "Operating", "opening_balance": opening})
    assert resp.status_code == 201
    return resp.json()["id"]


def _import(client, account_id, content=STATEMENT, filename="statement.csv"):
    return client.post(
        "/statements/import",
        files={"file": (filename, content, "text/csv")},
        data={"bank_account_id": str(account_id)},
    )


def test_healthz_and_root_redirect(client):
    assert client.get("/healthz").json() == {"status": "ok"}

    resp = client.get("/", follow_redirects=False)
    assert resp.status_code == 302
    assert resp.headers["location"] == "/dashboard"


def test_preview_then_import(client):
    account_id = _create_account(client)

    preview = client.post("/statements/preview", files={"file": ("statement.csv", STATEMENT, "text/csv")})
    assert preview.status_code == 200
    body = preview.json()
    assert body["parsed_count"] == 2
    assert body["detected_format"] == "GENERIC"
    assert body["errors"] == []

    resp = _import(client, account_id)
    assert resp.status_code == 200
    body = resp.json()
    assert (body["imported_count"], body["skipped_count"], body["total_count"]) == (2, 0, 2)

    again = _import(client, account_id).json()
    assert (again["imported_count"], again["skipped_count"]) == (0, 2)

    account = client.get(f"/bank-accounts/{account_id}").json()
    assert account["current_balance"] == 1200.0

    listed = client.get("/bank-transactions", params={"bank_account_id": account_id}).json()
    assert listed["total"] == 2


def test_upload_boundary_checks(client, monkeypatch):
    account_id = _create_account(client)

    resp = _import(client, account_id, filename="statement.exe")
    assert resp.status_code == 400
    assert "Unsupported file type" in resp.json()["error"]

    resp = _import(client, account_id, content=b"")
    assert resp.status_code == 400

    monkeypatch.setattr(deps, "settings", dataclasses.replace(deps.settings, max_upload_mb=0))
    resp = _import(client, account_id)
    assert resp.status_code == 400
    assert "upload limit" in resp.json()["error"]


def test_unknown_format_and_missing_account(client):
    account_id = _create_account(client)

    resp = client.post(
        "/statements/import",
        files={"file": ("statement.csv", STATEMENT, "text/csv")},
        data={"bank_account_id": str(account_id), "bank_format": "NOPE"},
    )
    assert resp.status_code == 400

    assert _import(client, 999).status_code == 404


def test_unreadable_file_is_422(client):
    account_id = _create_account(client)

    resp = _import(client, account_id, content=b"PK\x03\x04 broken", filename="statement.xlsx")

    assert resp.status_code == 422


def test_categorize_flow_over_http(client, make_vendor, make_bill):
    account_id = _create_account(client)
    vendor_id = make_vendor()
    bill_id = make_bill(vendor_id, "300.00")
    _import(client, account_id)
    rent = client.get("/bank-transactions", params={"search": "Paper"}).json()["data"][0]

    pickers = client.get("/vendors-with-bills").json()["data"]
    assert [v["id"] for v in pickers] == [vendor_id]

    resp = client.put(
        f"/bank-transactions/{rent['id']}/categorize",
        json={"category": "vendor_payment", "vendor_id": vendor_id, "bill_ids": [bill_id]},
    )
    assert resp.status_code == 200
    assert resp.json()["categorization_status"] == "categorized"
    assert client.get("/vendors-with-bills").json()["data"] == []

    resp = client.put(f"/bank-transactions/{rent['id']}/uncategorize")
    assert resp.status_code == 200
    assert client.get("/vendors-with-bills").json()["data"][0]["bills"][0]["balance_due"] == 300.0


def test_categorize_errors_over_http(client):
    account_id = _create_account(client)
    txn = client.post(
        "/bank-transactions",
        json={"bank_account_id": account_id, "transaction_date": "2025-08-01", "deposit_amount": "10"},
    ).json()

    assert client.put(f"/bank-transactions/{txn['id']}/categorize", json={}).status_code == 400
    assert client.put(f"/bank-transactions/{txn['id']}/categorize", json={"category": "expense"}).status_code == 400
    assert client.put("/bank-transactions/9999/categorize", json={"category": "payroll"}).status_code == 404


def test_reconciled_row_conflicts(client):
    account_id = _create_account(client)
    txn = client.post(
        "/bank-transactions",
        json={"bank_account_id": account_id, "transaction_date": "2025-08-01", "withdrawal_amount": "5"},
    ).json()
    client.put(f"/bank-transactions/{txn['id']}", json={"is_reconciled": True})

    resp = client.delete(f"/bank-transactions/{txn['id']}")
    assert resp.status_code == 409
    assert "reconciled" in resp.json()["error"]
    assert client.put(f"/bank-transactions/{txn['id']}/categorize", json={"category": "payroll"}).status_code == 409


def test_non_numeric_account_id_is_400(client):
    resp = client.post(
        "/bank-transactions",
        json={"bank_account_id": "abc", "transaction_date": "2025-08-01", "deposit_amount": "10"},
    )

    assert resp.status_code == 400
    assert resp.json() == {"error": "bank_account_id must be an integer id"}


def test_duplicate_manual_entry_is_409(client):
    account_id = _create_account(client)
    payload = {
        "bank_account_id": account_id,
        "transaction_date": "2025-08-01",
        "deposit_amount": "10",
        "reference_number": "UTR1",
    }

    assert client.post("/bank-transactions", json=payload).status_code == 201
    assert client.post("/bank-transactions", json=payload).status_code == 409


def test_batch_delete_endpoint(client):
    account_id = _create_account(client)
    batch_id = _import(client, account_id).json()["import_batch_id"]

    resp = client.delete(f"/bank-transactions/batch/{batch_id}")

    assert resp.status_code == 200
    assert resp.json()["deleted_count"] == 2
    assert client.get(f"/bank-accounts/{account_id}").json()["current_balance"] == 1000.0
    assert client.delete(f"/bank-transactions/batch/{batch_id}").status_code == 404


def test_lookups(client):
    options = client.get("/bank-transactions/categorization-options").json()
    assert {"deposit", "withdrawal"} == set(options)
    assert "customer_payment" in [c["key"] for c in options["deposit"]]
    assert "vendor_payment" in [c["key"] for c in options["withdrawal"]]

    formats = client.get("/bank-transactions/bank-formats").json()["data"]
    assert formats[0]["key"] == "AUTO"


def test_dashboard(client):
    account_id = _create_account(client)
    _import(client, account_id)

    summary = client.get("/dashboard").json()

    assert summary["amount_in_books"] == 1200.0
    assert summary["amount_in_bank"] == 1200.0
    assert summary["last_feed_date"] == "2025-08-02"
    (row,) = summary["accounts"]
    assert row["transaction_count"] == 2
    assert row["uncategorized_count"] == 2
    assert row["unreconciled_count"] == 2


def test_not_found_shape(client):
    resp = client.get("/bank-transactions/4242")

    assert resp.status_code == 404
    assert resp.json() == {"error": "Bank transaction 4242 not found"}
