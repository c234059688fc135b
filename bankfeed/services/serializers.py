# bankfeed/services/serializers.py
#
# Plain-dict views of ORM rows. Services return these so routes, the CLI
# and tests never depend on live ORM objects.

from decimal import Decimal
from typing import Any, Dict, Optional

from bankfeed.models import BankAccount, BankTransaction, Bill, Invoice
from bankfeed.services.normalize import to_money


def _money(value) -> Optional[Decimal]:
    return to_money(value) if value is not None else None


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def transaction_to_dict(t: BankTransaction) -> Dict[str, Any]:
    return {
        "id": t.id,
        "bank_account_id": t.bank_account_id,
        "transaction_date": _iso(t.transaction_date),
        "value_date": _iso(t.value_date),
        "description": t.description,
        "reference_number": t.reference_number,
        "deposit_amount": _money(t.deposit_amount),
        "withdrawal_amount": _money(t.withdrawal_amount),
        "balance": _money(t.balance),
        "import_batch_id": t.import_batch_id,
        "category": t.category,
        "category_type": t.category_type,
        "suggested_category": t.suggested_category,
        "categorization_status": t.categorization_status,
        "sub_account_id": t.sub_account_id,
        "customer_id": t.customer_id,
        "vendor_id": t.vendor_id,
        "transfer_account_id": t.transfer_account_id,
        "store_as_advance": bool(t.store_as_advance),
        "advance_amount": _money(t.advance_amount),
        "linked_invoice_ids": list(t.linked_invoice_ids or []),
        "linked_bill_ids": list(t.linked_bill_ids or []),
        "is_reconciled": bool(t.is_reconciled),
        "reconciled_date": _iso(t.reconciled_date),
        "notes": t.notes,
    }


def account_to_dict(a: BankAccount) -> Dict[str, Any]:
    return {
        "id": a.id,
        "account_name": a.account_name,
        "account_number": a.account_number,
        "bank_name": a.bank_name,
        "ifsc_code": a.ifsc_code,
        "account_type": a.account_type,
        "currency_code": a.currency_code,
        "opening_balance": _money(a.opening_balance),
        "opening_balance_date": _iso(a.opening_balance_date),
        "current_balance": _money(a.current_balance),
        "is_active": bool(a.is_active),
        "notes": a.notes,
    }


def invoice_to_dict(inv: Invoice) -> Dict[str, Any]:
    return {
        "id": inv.id,
        "invoice_number": inv.invoice_number,
        "customer_id": inv.customer_id,
        "invoice_date": _iso(inv.invoice_date),
        "due_date": _iso(inv.due_date),
        "total_amount": _money(inv.total_amount),
        "amount_paid": _money(inv.amount_paid),
        "balance_due": _money(inv.balance_due),
        "status": inv.status,
    }


def bill_to_dict(bill: Bill) -> Dict[str, Any]:
    return {
        "id": bill.id,
        "bill_number": bill.bill_number,
        "vendor_id": bill.vendor_id,
        "bill_date": _iso(bill.bill_date),
        "due_date": _iso(bill.due_date),
        "total_amount": _money(bill.total_amount),
        "amount_paid": _money(bill.amount_paid),
        "balance_due": _money(bill.balance_due),
        "status": bill.status,
    }
