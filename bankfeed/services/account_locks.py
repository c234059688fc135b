# bankfeed/services/account_locks.py
#
# Per-account serialization for operations that touch an account's balance
# or its invoices/bills: import, batch delete, categorize, uncategorize.
#
# In-process: one threading.Lock per account id.
# Across processes: SELECT ... FOR UPDATE on the account row (PostgreSQL;
# SQLite ignores it and serializes writers on its own).

import threading
import weakref
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.orm import Session

from bankfeed.errors import NotFound
from bankfeed.models import BankAccount

# An entry lives only while some caller holds a reference to its lock
_locks: "weakref.WeakValueDictionary[int, threading.Lock]" = weakref.WeakValueDictionary()
_registry_lock = threading.Lock()


def _lock_for(account_id: int) -> threading.Lock:
    with _registry_lock:
        lock = _locks.get(account_id)
        if lock is None:
            lock = _locks[account_id] = threading.Lock()
        return lock


@contextmanager
def locked_account(db: Session, account_id: int) -> Iterator[BankAccount]:
    """
    Hold the account lock for the duration of one unit of work.

    Commits when the block finishes, rolls back when it raises.
    """
    lock = _lock_for(account_id)
    with lock:
        try:
            account = (
                db.query(BankAccount)
                .filter(BankAccount.id == account_id)
                .with_for_update()
                .first()
            )
            if account is None:
                raise NotFound(f"Bank account {account_id} not found")
            yield account
            db.commit()
        except Exception:
            db.rollback()
            raise
