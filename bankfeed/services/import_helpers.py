# bankfeed/services/import_helpers.py
#
# Import Helper Functions
# Converts parsed statement records into BankTransaction ORM objects and
# generates import batch ids.

import secrets
from datetime import date, datetime
from typing import Optional

from bankfeed.models import BankTransaction
from bankfeed.services.normalize import to_money


# ---- Batch ids ----

def new_import_batch_id() -> str:
    """IMP-<utc timestamp>-<random hex>, unique per import call."""
    return f"IMP-{datetime.utcnow():%Y%m%d%H%M%S}-{secrets.token_hex(4)}"


# ---- Transaction Conversion ----

def _as_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value), "%Y-%m-%d").date()


def build_transaction_from_dict(
    tx: dict,
    bank_account_id: int,
    import_batch_id: Optional[str] = None,
) -> BankTransaction:
    """
    Convert one parsed record (statement_parser output) into a
    BankTransaction ORM object. The object is not added to any session.
    """
    txn_date = _as_date(tx.get("transaction_date"))
    balance = tx.get("balance")

    return BankTransaction(
        bank_account_id=bank_account_id,
        transaction_date=txn_date,
        value_date=_as_date(tx.get("value_date")) or txn_date,
        description=tx.get("description") or "",
        reference_number=(tx.get("reference_number") or "").strip() or None,
        deposit_amount=to_money(tx.get("deposit_amount") or 0),
        withdrawal_amount=to_money(tx.get("withdrawal_amount") or 0),
        balance=to_money(balance) if balance is not None else None,
        import_batch_id=import_batch_id,
        suggested_category=tx.get("category") or None,
        categorization_status="uncategorized",
        linked_invoice_ids=[],
        linked_bill_ids=[],
        is_reconciled=False,
    )
