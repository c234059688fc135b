# bankfeed/services/accounts.py
#
# Bank account maintenance and the banking summary shown on the dashboard.

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from bankfeed.errors import NotFound, ValidationFailed
from bankfeed.models import BankAccount, BankTransaction
from bankfeed.services.account_locks import locked_account
from bankfeed.services.balance import recompute_balance
from bankfeed.services.normalize import ZERO, parse_statement_date, to_money
from bankfeed.services.serializers import account_to_dict

logger = logging.getLogger(__name__)

ACCOUNT_FIELDS = (
    "account_name",
    "account_number",
    "bank_name",
    "ifsc_code",
    "account_type",
    "currency_code",
    "notes",
    "is_active",
)


def _opening_balance(data: Dict[str, Any]) -> Decimal:
    raw = data.get("opening_balance")
    if raw in (None, ""):
        return ZERO
    try:
        return to_money(Decimal(str(raw)))
    except InvalidOperation:
        raise ValidationFailed("opening_balance must be a number")


def _get(db: Session, account_id: int) -> BankAccount:
    account = db.get(BankAccount, account_id)
    if account is None:
        raise NotFound(f"Bank account {account_id} not found")
    return account


def list_accounts(db: Session, include_inactive: bool = False) -> List[Dict[str, Any]]:
    q = db.query(BankAccount)
    if not include_inactive:
        q = q.filter(BankAccount.is_active.is_(True))
    return [account_to_dict(a) for a in q.order_by(BankAccount.account_name).all()]


def get_account(db: Session, account_id: int) -> Dict[str, Any]:
    return account_to_dict(_get(db, account_id))


def create_account(db: Session, data: Dict[str, Any]) -> Dict[str, Any]:
    """New account; its current balance starts at the opening balance."""
    name = (data.get("account_name") or "").strip()
    if not name:
        raise ValidationFailed("account_name is required")

    opening = _opening_balance(data)
    account = BankAccount(
        account_name=name,
        account_number=data.get("account_number"),
        bank_name=data.get("bank_name"),
        ifsc_code=data.get("ifsc_code"),
        account_type=data.get("account_type") or "Current",
        currency_code=(data.get("currency_code") or "INR").upper(),
        opening_balance=opening,
        opening_balance_date=parse_statement_date(data.get("opening_balance_date")),
        current_balance=opening,
        is_active=True,
        notes=data.get("notes"),
    )
    db.add(account)
    db.commit()
    logger.info("Created bank account %s (%s)", account.id, name)
    return account_to_dict(account)


def update_account(db: Session, account_id: int, data: Dict[str, Any]) -> Dict[str, Any]:
    _get(db, account_id)

    with locked_account(db, account_id) as account:
        for key in ACCOUNT_FIELDS:
            if key in data:
                setattr(account, key, data[key])
        if "opening_balance_date" in data:
            account.opening_balance_date = parse_statement_date(data["opening_balance_date"])

        if "opening_balance" in data:
            account.opening_balance = _opening_balance(data)
        account.updated_at = datetime.utcnow()
        recompute_balance(db, account_id)

    return get_account(db, account_id)


def delete_account(db: Session, account_id: int) -> Dict[str, Any]:
    """Deactivate an account that has transactions; delete an empty one."""
    _get(db, account_id)

    with locked_account(db, account_id) as account:
        count = (
            db.query(func.count(BankTransaction.id))
            .filter(BankTransaction.bank_account_id == account_id)
            .scalar()
        )
        if count:
            account.is_active = False
            account.updated_at = datetime.utcnow()
            action = "deactivated"
        else:
            db.delete(account)
            action = "deleted"

    logger.info("Bank account %s %s", account_id, action)
    return {"id": account_id, "action": action}


def recompute_account_balance(db: Session, account_id: int) -> Dict[str, Any]:
    with locked_account(db, account_id):
        recompute_balance(db, account_id)
    return get_account(db, account_id)


# ---- Dashboard ----

def banking_summary(db: Session) -> Dict[str, Any]:
    """
    Book balance vs. statement balance across active accounts.

    amount_in_bank uses each account's latest statement-reported balance and
    falls back to the book balance for accounts whose statements carry none.
    """
    accounts = (
        db.query(BankAccount)
        .filter(BankAccount.is_active.is_(True))
        .order_by(BankAccount.account_name)
        .all()
    )

    counts = {
        row.bank_account_id: row
        for row in db.query(
            BankTransaction.bank_account_id,
            func.count(BankTransaction.id).label("total"),
            func.sum(case((BankTransaction.categorization_status == "uncategorized", 1), else_=0)).label(
                "uncategorized"
            ),
            func.sum(case((BankTransaction.is_reconciled.is_(False), 1), else_=0)).label("unreconciled"),
            func.max(BankTransaction.transaction_date).label("last_date"),
        )
        .group_by(BankTransaction.bank_account_id)
        .all()
    }

    in_books = ZERO
    in_bank = ZERO
    last_feed = None
    breakdown = []

    for account in accounts:
        book = to_money(account.current_balance)
        latest = (
            db.query(BankTransaction.balance)
            .filter(BankTransaction.bank_account_id == account.id, BankTransaction.balance.isnot(None))
            .order_by(BankTransaction.transaction_date.desc(), BankTransaction.id.desc())
            .first()
        )
        bank = to_money(latest[0]) if latest else book

        stats = counts.get(account.id)
        last_date = stats.last_date if stats else None
        if last_date and (last_feed is None or last_date > last_feed):
            last_feed = last_date

        in_books += book
        in_bank += bank
        breakdown.append(
            {
                "id": account.id,
                "account_name": account.account_name,
                "bank_name": account.bank_name,
                "amount_in_books": book,
                "amount_in_bank": bank,
                "transaction_count": int(stats.total) if stats else 0,
                "uncategorized_count": int(stats.uncategorized or 0) if stats else 0,
                "unreconciled_count": int(stats.unreconciled or 0) if stats else 0,
                "last_transaction_date": last_date.isoformat() if last_date else None,
            }
        )

    return {
        "amount_in_books": in_books,
        "amount_in_bank": in_bank,
        "last_feed_date": last_feed.isoformat() if last_feed else None,
        "accounts": breakdown,
    }
