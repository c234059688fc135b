# bankfeed/routes_accounts.py
"""
Bank account maintenance.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from bankfeed.deps import get_db
from bankfeed.services import accounts

router = APIRouter(prefix="/bank-accounts")


@router.get("")
def list_bank_accounts(
    include_inactive: bool = Query(False),
    db: Session = Depends(get_db),
):
    return {"data": accounts.list_accounts(db, include_inactive=include_inactive)}


@router.post("", status_code=201)
def create_bank_account(payload: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    return accounts.create_account(db, payload)


@router.get("/{account_id}")
def get_bank_account(account_id: int, db: Session = Depends(get_db)):
    return accounts.get_account(db, account_id)


@router.put("/{account_id}")
def update_bank_account(account_id: int, payload: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    """
    Update account details. Changing opening_balance recomputes current_balance.
    """
    return accounts.update_account(db, account_id, payload)


@router.delete("/{account_id}")
def delete_bank_account(account_id: int, db: Session = Depends(get_db)):
    return accounts.delete_account(db, account_id)


@router.post("/{account_id}/recompute-balance")
def recompute_bank_account_balance(account_id: int, db: Session = Depends(get_db)):
    return accounts.recompute_account_balance(db, account_id)
