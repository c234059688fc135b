# bankfeed/services/transactions.py
#
# Manual bank transaction entry: list, fetch, strict insert, edit, delete.
# Every write ends with a balance recompute for the owning account.

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from bankfeed.errors import Conflict, NotFound, ValidationFailed
from bankfeed.models import BankTransaction
from bankfeed.services.account_locks import locked_account
from bankfeed.services.auto_categorize import suggest_category
from bankfeed.services.balance import recompute_balance
from bankfeed.services.categorization import clear_categorization, reverse
from bankfeed.services.duplicates import find_reference_match
from bankfeed.services.normalize import ZERO, parse_balance, parse_statement_date, to_money
from bankfeed.services.serializers import transaction_to_dict

logger = logging.getLogger(__name__)

# Fields a caller may edit directly; categorization has its own operations
EDITABLE_FIELDS = (
    "transaction_date",
    "value_date",
    "description",
    "reference_number",
    "deposit_amount",
    "withdrawal_amount",
    "balance",
    "is_reconciled",
    "reconciled_date",
    "notes",
)
AMOUNT_FIELDS = ("transaction_date", "deposit_amount", "withdrawal_amount")

SORT_COLUMNS = {
    "date": BankTransaction.transaction_date,
    "deposit": BankTransaction.deposit_amount,
    "withdrawal": BankTransaction.withdrawal_amount,
}


def _money_field(data: Dict[str, Any], key: str) -> Decimal:
    raw = data.get(key)
    if raw in (None, ""):
        return ZERO
    try:
        value = to_money(Decimal(str(raw)))
    except InvalidOperation:
        raise ValidationFailed(f"{key} must be a number")
    if value < 0:
        raise ValidationFailed(f"{key} must not be negative")
    return value


def _date_field(data: Dict[str, Any], key: str, required: bool = False) -> Optional[date]:
    raw = data.get(key)
    if raw in (None, ""):
        if required:
            raise ValidationFailed(f"{key} is required")
        return None
    parsed = parse_statement_date(raw)
    if parsed is None:
        raise ValidationFailed(f"{key} is not a valid date: {raw!r}")
    return parsed


def _get(db: Session, transaction_id: int) -> BankTransaction:
    txn = db.get(BankTransaction, transaction_id)
    if txn is None:
        raise NotFound(f"Bank transaction {transaction_id} not found")
    return txn


# ---- Read ----

def list_transactions(
    db: Session,
    bank_account_id: Optional[int] = None,
    category: Optional[str] = None,
    categorization_status: Optional[str] = None,
    is_reconciled: Optional[bool] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    search: Optional[str] = None,
    sort: str = "date",
    order: str = "desc",
    limit: int = 100,
    offset: int = 0,
) -> Dict[str, Any]:
    q = db.query(BankTransaction)
    if bank_account_id is not None:
        q = q.filter(BankTransaction.bank_account_id == bank_account_id)
    if category:
        q = q.filter(BankTransaction.category == category)
    if categorization_status:
        q = q.filter(BankTransaction.categorization_status == categorization_status)
    if is_reconciled is not None:
        q = q.filter(BankTransaction.is_reconciled == is_reconciled)
    if date_from:
        q = q.filter(BankTransaction.transaction_date >= date_from)
    if date_to:
        q = q.filter(BankTransaction.transaction_date <= date_to)
    if search:
        like = f"%{search}%"
        q = q.filter(
            or_(BankTransaction.description.ilike(like), BankTransaction.reference_number.ilike(like))
        )

    column = SORT_COLUMNS.get(sort, BankTransaction.transaction_date)
    ordering = column.asc() if order == "asc" else column.desc()

    total = q.count()
    rows = q.order_by(ordering, BankTransaction.id.desc()).offset(offset).limit(limit).all()
    return {"total": total, "data": [transaction_to_dict(t) for t in rows]}


def get_transaction(db: Session, transaction_id: int) -> Dict[str, Any]:
    return transaction_to_dict(_get(db, transaction_id))


# ---- Write ----

def create_transaction(db: Session, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Strict insert: a row that matches an existing one on date, amounts and
    reference is rejected with Conflict instead of being skipped.
    """
    account_id = data.get("bank_account_id")
    if account_id in (None, ""):
        raise ValidationFailed("bank_account_id is required")
    try:
        account_id = int(account_id)
    except (TypeError, ValueError):
        raise ValidationFailed("bank_account_id must be an integer id")

    txn_date = _date_field(data, "transaction_date", required=True)
    deposit = _money_field(data, "deposit_amount")
    withdrawal = _money_field(data, "withdrawal_amount")
    if deposit and withdrawal:
        raise ValidationFailed("Only one of deposit_amount / withdrawal_amount may be set")
    if not deposit and not withdrawal:
        raise ValidationFailed("Either deposit_amount or withdrawal_amount is required")

    description = " ".join(str(data.get("description") or "").split())
    candidate = {
        "transaction_date": txn_date,
        "deposit_amount": deposit,
        "withdrawal_amount": withdrawal,
        "reference_number": data.get("reference_number"),
        "description": description,
    }

    with locked_account(db, account_id):
        if find_reference_match(db, account_id, candidate) is not None:
            raise Conflict("Duplicate transaction: same date, amount and reference already exists")

        balance = data.get("balance")
        txn = BankTransaction(
            bank_account_id=account_id,
            transaction_date=txn_date,
            value_date=_date_field(data, "value_date") or txn_date,
            description=description,
            reference_number=(data.get("reference_number") or "").strip() or None,
            deposit_amount=deposit,
            withdrawal_amount=withdrawal,
            balance=parse_balance(balance),
            suggested_category=suggest_category(description),
            categorization_status="uncategorized",
            linked_invoice_ids=[],
            linked_bill_ids=[],
            notes=data.get("notes"),
        )
        db.add(txn)
        db.flush()
        new_id = txn.id
        recompute_balance(db, account_id)

    logger.info("Created bank transaction %s in account %s", new_id, account_id)
    return get_transaction(db, new_id)


def update_transaction(db: Session, transaction_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Edit plain fields. Reconciled rows refuse date/amount edits.

    Changing the amounts of a categorized row reverses its categorization
    first.
    """
    account_id = _get(db, transaction_id).bank_account_id

    with locked_account(db, account_id):
        txn = _get(db, transaction_id)
        changes = {k: data[k] for k in EDITABLE_FIELDS if k in data}

        if txn.is_reconciled and any(k in changes for k in AMOUNT_FIELDS):
            raise Conflict("Cannot change the date or amounts of a reconciled transaction")

        if "transaction_date" in changes:
            txn.transaction_date = _date_field(changes, "transaction_date", required=True)
        if "value_date" in changes:
            txn.value_date = _date_field(changes, "value_date")
        if "reconciled_date" in changes:
            txn.reconciled_date = _date_field(changes, "reconciled_date")
        if "description" in changes:
            txn.description = " ".join(str(changes["description"] or "").split())
        if "reference_number" in changes:
            txn.reference_number = (changes["reference_number"] or "").strip() or None
        if "balance" in changes:
            txn.balance = parse_balance(changes["balance"])
        if "notes" in changes:
            txn.notes = changes["notes"]
        if "is_reconciled" in changes:
            txn.is_reconciled = bool(changes["is_reconciled"])
            if txn.is_reconciled and txn.reconciled_date is None:
                txn.reconciled_date = date.today()

        if "deposit_amount" in changes or "withdrawal_amount" in changes:
            deposit = _money_field(changes, "deposit_amount") if "deposit_amount" in changes else to_money(txn.deposit_amount)
            withdrawal = (
                _money_field(changes, "withdrawal_amount")
                if "withdrawal_amount" in changes
                else to_money(txn.withdrawal_amount)
            )
            if deposit and withdrawal:
                raise ValidationFailed("Only one of deposit_amount / withdrawal_amount may be set")
            if not deposit and not withdrawal:
                raise ValidationFailed("Either deposit_amount or withdrawal_amount must be non-zero")
            if (deposit, withdrawal) != (to_money(txn.deposit_amount), to_money(txn.withdrawal_amount)):
                if txn.categorization_status == "categorized":
                    logger.info("Amount edit on categorized transaction %s: reversing categorization", txn.id)
                    reverse(db, txn)
                    clear_categorization(txn)
                txn.deposit_amount = deposit
                txn.withdrawal_amount = withdrawal

        txn.updated_at = datetime.utcnow()
        recompute_balance(db, account_id)

    return get_transaction(db, transaction_id)


def delete_transaction(db: Session, transaction_id: int) -> Dict[str, Any]:
    account_id = _get(db, transaction_id).bank_account_id

    with locked_account(db, account_id):
        txn = _get(db, transaction_id)
        if txn.is_reconciled:
            logger.warning("Refusing to delete reconciled transaction %s", transaction_id)
            raise Conflict("Cannot delete a reconciled transaction")

        reverse(db, txn)
        db.delete(txn)
        current = recompute_balance(db, account_id)

    logger.info("Deleted bank transaction %s from account %s", transaction_id, account_id)
    return {"deleted": True, "id": transaction_id, "current_balance": current}

