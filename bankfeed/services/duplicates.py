# bankfeed/services/duplicates.py
#
# Duplicate Detector
# Decides whether a parsed statement row already exists in an account.
#
#   Tier 1: account + date + deposit + withdrawal + trimmed reference
#   Tier 2: account + date + deposit + withdrawal + first 80 chars of description
#
# Tier 2 runs when the row has no reference or Tier 1 finds nothing.

from sqlalchemy import func
from sqlalchemy.orm import Session

from bankfeed.models import BankTransaction
from bankfeed.services.normalize import to_money

DESCRIPTION_PREFIX = 80


def _same_day_and_amounts(db: Session, account_id: int, candidate: dict):
    return db.query(BankTransaction.id).filter(
        BankTransaction.bank_account_id == account_id,
        BankTransaction.transaction_date == candidate["transaction_date"],
        BankTransaction.deposit_amount == to_money(candidate.get("deposit_amount")),
        BankTransaction.withdrawal_amount == to_money(candidate.get("withdrawal_amount")),
    )


def find_reference_match(db: Session, account_id: int, candidate: dict):
    """Tier 1 only. Used by the strict manual-insert path."""
    reference = (candidate.get("reference_number") or "").strip()
    if not reference:
        return None
    return (
        _same_day_and_amounts(db, account_id, candidate)
        .filter(func.trim(BankTransaction.reference_number) == reference)
        .first()
    )


def is_duplicate(db: Session, account_id: int, candidate: dict) -> bool:
    if find_reference_match(db, account_id, candidate) is not None:
        return True

    prefix = (candidate.get("description") or "")[:DESCRIPTION_PREFIX]
    match = (
        _same_day_and_amounts(db, account_id, candidate)
        .filter(func.substr(BankTransaction.description, 1, DESCRIPTION_PREFIX) == prefix)
        .first()
    )
    return match is not None
