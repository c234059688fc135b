# bankfeed/services/balance.py
#
# Balance Recomputation
# The only place that writes BankAccount.current_balance:
#
#     current_balance = opening_balance + SUM(deposits) - SUM(withdrawals)
#
# The per-row statement `balance` is display-only and never consulted.

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from bankfeed.errors import NotFound
from bankfeed.models import BankAccount, BankTransaction
from bankfeed.services.normalize import to_money

logger = logging.getLogger(__name__)


def recompute_balance(db: Session, account_id: int) -> Decimal:
    """Recompute and store the account's current balance. Idempotent."""
    # Pending inserts/deletes must be visible to the aggregate
    db.flush()

    account = db.get(BankAccount, account_id)
    if account is None:
        raise NotFound(f"Bank account {account_id} not found")

    deposits, withdrawals = (
        db.query(
            func.coalesce(func.sum(BankTransaction.deposit_amount), 0),
            func.coalesce(func.sum(BankTransaction.withdrawal_amount), 0),
        )
        .filter(BankTransaction.bank_account_id == account_id)
        .one()
    )

    balance = to_money(account.opening_balance) + to_money(deposits) - to_money(withdrawals)
    account.current_balance = to_money(balance)
    account.updated_at = datetime.utcnow()
    db.flush()

    logger.debug("Account %s balance recomputed: %s", account_id, account.current_balance)
    return account.current_balance
