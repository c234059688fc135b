import os
import tempfile

# Point the app at a throwaway SQLite file before anything imports bankfeed.config
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(tempfile.gettempdir(), "bankfeed_test.db")
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("AUTO_CATEGORIZE", "true")

from datetime import date
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from bankfeed.db import Base, SessionLocal, engine
from bankfeed.main import app
from bankfeed.models import (
    BankAccount,
    BankTransaction,
    Bill,
    ChartOfAccount,
    Customer,
    Invoice,
    Vendor,
)


@pytest.fixture(autouse=True)
def _reset_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def client():
    return TestClient(app)


# ---- factories (each returns the new row id) ----


@pytest.fixture()
def make_account(db):
    def _make(name="Operating", opening="1000.00", bank_name="Test Bank"):
        opening = Decimal(opening)
        account = BankAccount(
            account_name=name,
            bank_name=bank_name,
            opening_balance=opening,
            current_balance=opening,
        )
        db.add(account)
        db.commit()
        return account.id

    return _make


@pytest.fixture()
def make_customer(db):
    def _make(name="Acme Corp"):
        customer = Customer(display_name=name)
        db.add(customer)
        db.commit()
        return customer.id

    return _make


@pytest.fixture()
def make_vendor(db):
    def _make(name="Paper Supplies Ltd"):
        vendor = Vendor(display_name=name)
        db.add(vendor)
        db.commit()
        return vendor.id

    return _make


@pytest.fixture()
def make_sub_account(db):
    def _make(name="Office Expenses", account_type="Expense"):
        coa = ChartOfAccount(account_name=name, account_type=account_type)
        db.add(coa)
        db.commit()
        return coa.id

    return _make


@pytest.fixture()
def make_invoice(db):
    def _make(customer_id, total, paid="0.00", status="Final", number=None, invoice_date=date(2025, 7, 1)):
        total, paid = Decimal(total), Decimal(paid)
        invoice = Invoice(
            invoice_number=number or f"INV-{invoice_date:%m%d}-{total}",
            customer_id=customer_id,
            invoice_date=invoice_date,
            total_amount=total,
            amount_paid=paid,
            balance_due=total - paid,
            status=status,
        )
        db.add(invoice)
        db.commit()
        return invoice.id

    return _make


@pytest.fixture()
def make_bill(db):
    def _make(vendor_id, total, paid="0.00", status="Pending", number=None, bill_date=date(2025, 7, 1)):
        total, paid = Decimal(total), Decimal(paid)
        bill = Bill(
            bill_number=number or f"BILL-{bill_date:%m%d}-{total}",
            vendor_id=vendor_id,
            bill_date=bill_date,
            total_amount=total,
            amount_paid=paid,
            balance_due=total - paid,
            status=status,
        )
        db.add(bill)
        db.commit()
        return bill.id

    return _make


@pytest.fixture()
def make_transaction(db):
    def _make(
        account_id,
        deposit="0.00",
        withdrawal="0.00",
        txn_date=date(2025, 8, 1),
        description="Bank line",
        reference=None,
        reconciled=False,
    ):
        txn = BankTransaction(
            bank_account_id=account_id,
            transaction_date=txn_date,
            value_date=txn_date,
            description=description,
            reference_number=reference,
            deposit_amount=Decimal(deposit),
            withdrawal_amount=Decimal(withdrawal),
            categorization_status="uncategorized",
            linked_invoice_ids=[],
            linked_bill_ids=[],
            is_reconciled=reconciled,
        )
        db.add(txn)
        db.commit()
        return txn.id

    return _make
