# bankfeed/routes_transactions.py
"""
Routes for bank transactions: list/detail, manual entry, categorization
and batch undo.
"""

from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from bankfeed.deps import get_db
from bankfeed.services import transactions
from bankfeed.services.bank_formats import bank_format_options
from bankfeed.services.bank_import import delete_batch
from bankfeed.services.categories import categorization_options
from bankfeed.services.categorization import CategorizeRequest, categorize, uncategorize

router = APIRouter(prefix="/bank-transactions")


# -------------------------------------------------------------------
# Lookups (declared before /{transaction_id})
# -------------------------------------------------------------------


@router.get("/categorization-options")
def get_categorization_options():
    return categorization_options()


@router.get("/bank-formats")
def get_bank_formats():
    return {"data": bank_format_options()}


@router.delete("/batch/{batch_id}")
def delete_import_batch(batch_id: str, db: Session = Depends(get_db)):
    """
    Undo an import. Reconciled rows are kept and reported in skipped_reconciled.
    """
    return delete_batch(db, batch_id)


# -------------------------------------------------------------------
# List / detail
# -------------------------------------------------------------------


@router.get("")
def list_bank_transactions(
    bank_account_id: Optional[int] = Query(None),
    category: Optional[str] = Query(None),
    categorization_status: Optional[str] = Query(None),
    is_reconciled: Optional[bool] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    search: Optional[str] = Query(None),
    sort: str = Query("date"),
    dir: str = Query("desc"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return transactions.list_transactions(
        db,
        bank_account_id=bank_account_id,
        category=category,
        categorization_status=categorization_status,
        is_reconciled=is_reconciled,
        date_from=start_date,
        date_to=end_date,
        search=search,
        sort=sort,
        order=dir,
        limit=limit,
        offset=offset,
    )


@router.get("/{transaction_id}")
def get_bank_transaction(transaction_id: int, db: Session = Depends(get_db)):
    return transactions.get_transaction(db, transaction_id)


# -------------------------------------------------------------------
# Manual entry
# -------------------------------------------------------------------


@router.post("", status_code=201)
def create_bank_transaction(payload: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    """
    Strict insert: a duplicate (same date, amount and reference) is a 409.
    """
    return transactions.create_transaction(db, payload)


@router.put("/{transaction_id}")
def update_bank_transaction(
    transaction_id: int,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
):
    return transactions.update_transaction(db, transaction_id, payload)


@router.delete("/{transaction_id}")
def delete_bank_transaction(transaction_id: int, db: Session = Depends(get_db)):
    return transactions.delete_transaction(db, transaction_id)


# -------------------------------------------------------------------
# Categorization
# -------------------------------------------------------------------


@router.put("/{transaction_id}/categorize")
def categorize_bank_transaction(
    transaction_id: int,
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
):
    return categorize(db, transaction_id, CategorizeRequest.from_dict(payload))


@router.put("/{transaction_id}/uncategorize")
def uncategorize_bank_transaction(transaction_id: int, db: Session = Depends(get_db)):
    return uncategorize(db, transaction_id)
