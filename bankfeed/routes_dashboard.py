# bankfeed/routes_dashboard.py
"""
Banking overview and the counterparty pickers used by the categorize form.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from bankfeed.deps import get_db
from bankfeed.services.accounts import banking_summary
from bankfeed.services.categorization import customers_with_invoices, vendors_with_bills

router = APIRouter()


@router.get("/dashboard")
def dashboard(db: Session = Depends(get_db)):
    """
    Book vs. bank balance per account, last feed date and how many
    transactions still need categorizing or reconciling.
    """
    return banking_summary(db)


@router.get("/customers-with-invoices")
def list_customers_with_invoices(db: Session = Depends(get_db)):
    return {"data": customers_with_invoices(db)}


@router.get("/vendors-with-bills")
def list_vendors_with_bills(db: Session = Depends(get_db)):
    return {"data": vendors_with_bills(db)}
