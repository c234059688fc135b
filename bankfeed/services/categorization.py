# bankfeed/services/categorization.py
#
# Categorization State Machine
#
#   uncategorized --categorize--> categorized --uncategorize--> uncategorized
#
# Re-categorizing is always reverse() followed by apply(), run as one unit of
# work under the account lock. reverse() undoes every invoice/bill allocation
# made by the payment this transaction spawned and deletes that payment;
# apply() validates the new category, allocates and creates the new payment.

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

from sqlalchemy.orm import Session

from bankfeed.errors import Conflict, NotFound, ValidationFailed
from bankfeed.models import (
    BankAccount,
    BankTransaction,
    Bill,
    ChartOfAccount,
    Customer,
    Invoice,
    PaymentMade,
    PaymentMadeAllocation,
    PaymentReceived,
    PaymentReceivedAllocation,
    Vendor,
)
from bankfeed.services.account_locks import locked_account
from bankfeed.services.balance import recompute_balance
from bankfeed.services.categories import (
    CATEGORY_BY_KEY,
    CUSTOMER_PAYMENT,
    VENDOR_PAYMENT,
    CategoryDefinition,
    Direction,
    LinkType,
)
from bankfeed.services.normalize import ZERO, to_money
from bankfeed.services.serializers import bill_to_dict, invoice_to_dict, transaction_to_dict

logger = logging.getLogger(__name__)

# Status a document falls back to once nothing is paid on it
INVOICE_BASE_STATUS = "Final"
BILL_BASE_STATUS = "Pending"
PAYMENT_STATUSES = ("Paid", "Partial")

OPEN_INVOICE_STATUSES = ("Draft", "Final", "Partial", "Overdue")
OPEN_BILL_STATUSES = ("Pending", "Partial", "Overdue")

PAYMENT_MODE = "Bank Transfer"


# -------------------------------------------------------------------
# Request model
# -------------------------------------------------------------------


@dataclass
class AllocationRequest:
    target_id: int
    amount: Optional[Decimal] = None


@dataclass
class CategorizeRequest:
    category: str
    sub_account_id: Optional[int] = None
    customer_id: Optional[int] = None
    vendor_id: Optional[int] = None
    transfer_account_id: Optional[int] = None
    invoice_allocations: List[AllocationRequest] = field(default_factory=list)
    bill_allocations: List[AllocationRequest] = field(default_factory=list)
    store_as_advance: bool = False
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CategorizeRequest":
        """
        Build a request from a JSON body.

        Allocations may be given as `invoice_allocations` / `bill_allocations`
        or as `invoice_ids` / `bill_ids`; each entry is either a bare id or
        {"id": .., "amount": ..}.
        """
        category = (data.get("category") or "").strip()
        if not category:
            raise ValidationFailed("Category is required")

        return cls(
            category=category,
            sub_account_id=_optional_id(data, "sub_account_id"),
            customer_id=_optional_id(data, "customer_id"),
            vendor_id=_optional_id(data, "vendor_id"),
            transfer_account_id=_optional_id(data, "transfer_account_id"),
            invoice_allocations=_parse_allocations(
                data.get("invoice_allocations", data.get("invoice_ids")), "invoice"
            ),
            bill_allocations=_parse_allocations(data.get("bill_allocations", data.get("bill_ids")), "bill"),
            store_as_advance=bool(data.get("store_as_advance", False)),
            notes=data.get("notes"),
        )


def _optional_id(data: Dict[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{key} must be an integer id")


def _parse_allocations(raw: Optional[List[Union[int, str, dict]]], kind: str) -> List[AllocationRequest]:
    if raw in (None, ""):
        return []
    if not isinstance(raw, list):
        raise ValidationFailed(f"{kind} allocations must be a list")

    out: List[AllocationRequest] = []
    for entry in raw:
        if isinstance(entry, dict):
            target, amount = entry.get("id", entry.get(f"{kind}_id")), entry.get("amount")
        else:
            target, amount = entry, None
        try:
            target_id = int(target)
        except (TypeError, ValueError):
            raise ValidationFailed(f"Malformed {kind} allocation: {entry!r}")

        parsed_amount = None
        if amount not in (None, ""):
            try:
                parsed_amount = to_money(Decimal(str(amount)))
            except InvalidOperation:
                raise ValidationFailed(f"Malformed {kind} allocation amount: {amount!r}")
            if parsed_amount <= 0:
                raise ValidationFailed(f"Allocation amount for {kind} {target_id} must be positive")
        out.append(AllocationRequest(target_id, parsed_amount))

    ids = [a.target_id for a in out]
    if len(ids) != len(set(ids)):
        raise ValidationFailed(f"Each {kind} may appear only once in the allocation list")
    return out


# -------------------------------------------------------------------
# Invoice / bill payment arithmetic
# -------------------------------------------------------------------


def _add_payment(doc: Union[Invoice, Bill], amount: Decimal) -> None:
    doc.amount_paid = to_money(to_money(doc.amount_paid) + amount)
    doc.balance_due = max(to_money(doc.total_amount) - doc.amount_paid, ZERO)
    doc.status = "Paid" if doc.balance_due <= 0 else "Partial"
    doc.updated_at = datetime.utcnow()


def _remove_payment(doc: Union[Invoice, Bill], amount: Decimal, previous_status: Optional[str], base: str) -> None:
    total = to_money(doc.total_amount)
    doc.amount_paid = max(to_money(doc.amount_paid) - amount, ZERO)
    doc.balance_due = max(total - doc.amount_paid, ZERO)

    if total > 0 and doc.amount_paid >= total:
        doc.status = "Paid"
    elif doc.amount_paid > 0:
        doc.status = "Partial"
    elif previous_status and previous_status not in PAYMENT_STATUSES:
        # Fully unpaid again: restore what it was before any payment, e.g. Overdue
        doc.status = previous_status
    else:
        doc.status = base
    doc.updated_at = datetime.utcnow()


# -------------------------------------------------------------------
# Phase 1: reverse
# -------------------------------------------------------------------


def reverse(db: Session, txn: BankTransaction) -> int:
    """
    Undo the payment (and its allocations) spawned by this transaction.

    Safe to call on an uncategorized transaction. Returns the number of
    allocations reversed.
    """
    reversed_count = 0

    received = db.query(PaymentReceived).filter(PaymentReceived.bank_transaction_id == txn.id).first()
    if received is not None:
        for alloc in reversed(received.allocations):
            invoice = db.get(Invoice, alloc.invoice_id)
            if invoice is not None:
                _remove_payment(invoice, to_money(alloc.allocated_amount), alloc.previous_status, INVOICE_BASE_STATUS)
            reversed_count += 1
        logger.info("Reversing payment %s for bank transaction %s", received.payment_number, txn.id)
        db.delete(received)

    made = db.query(PaymentMade).filter(PaymentMade.bank_transaction_id == txn.id).first()
    if made is not None:
        for alloc in reversed(made.allocations):
            bill = db.get(Bill, alloc.bill_id)
            if bill is not None:
                _remove_payment(bill, to_money(alloc.allocated_amount), alloc.previous_status, BILL_BASE_STATUS)
            reversed_count += 1
        logger.info("Reversing payment %s for bank transaction %s", made.payment_number, txn.id)
        db.delete(made)

    db.flush()
    return reversed_count


def clear_categorization(txn: BankTransaction) -> None:
    txn.category = None
    txn.category_type = None
    txn.categorization_status = "uncategorized"
    txn.sub_account_id = None
    txn.customer_id = None
    txn.vendor_id = None
    txn.transfer_account_id = None
    txn.store_as_advance = False
    txn.advance_amount = None
    txn.linked_invoice_ids = []
    txn.linked_bill_ids = []
    txn.updated_at = datetime.utcnow()


# -------------------------------------------------------------------
# Phase 2: apply
# -------------------------------------------------------------------


def _definition(req: CategorizeRequest) -> CategoryDefinition:
    definition = CATEGORY_BY_KEY.get(req.category)
    if definition is None:
        raise ValidationFailed(f"Unknown category '{req.category}'")
    return definition


def _check_direction(txn: BankTransaction, definition: CategoryDefinition) -> Decimal:
    deposit = to_money(txn.deposit_amount)
    withdrawal = to_money(txn.withdrawal_amount)
    if definition.direction is Direction.DEPOSIT:
        if deposit <= 0:
            raise ValidationFailed(f"'{definition.key}' is a deposit category but the transaction is not a deposit")
        return deposit
    if withdrawal <= 0:
        raise ValidationFailed(f"'{definition.key}' is a withdrawal category but the transaction is not a withdrawal")
    return withdrawal


def _require(db: Session, model, ident: Optional[int], field_name: str, label: str):
    if ident is None:
        raise ValidationFailed(f"{field_name} is required for this category")
    obj = db.get(model, ident)
    if obj is None:
        raise NotFound(f"{label} {ident} not found")
    return obj


def _link(db: Session, txn: BankTransaction, definition: CategoryDefinition, req: CategorizeRequest) -> None:
    """Validate the counterparty the category requires and store it on the transaction."""
    txn.sub_account_id = txn.customer_id = txn.vendor_id = txn.transfer_account_id = None

    if definition.link is LinkType.CUSTOMER:
        _require(db, Customer, req.customer_id, "customer_id", "Customer")
        txn.customer_id = req.customer_id
    elif definition.link is LinkType.VENDOR:
        _require(db, Vendor, req.vendor_id, "vendor_id", "Vendor")
        txn.vendor_id = req.vendor_id
    elif definition.link is LinkType.SUB_ACCOUNT:
        _require(db, ChartOfAccount, req.sub_account_id, "sub_account_id", "Sub-account")
        txn.sub_account_id = req.sub_account_id
    elif definition.link is LinkType.BANK_ACCOUNT:
        _require(db, BankAccount, req.transfer_account_id, "transfer_account_id", "Bank account")
        if req.transfer_account_id == txn.bank_account_id:
            raise ValidationFailed("A transfer must name a different bank account")
        txn.transfer_account_id = req.transfer_account_id
    elif definition.link is LinkType.SIMPLE:
        pass
    else:  # pragma: no cover
        raise ValidationFailed(f"Unhandled link type {definition.link}")


def _allocate(
    db: Session,
    model,
    allocations: List[AllocationRequest],
    total: Decimal,
    owner_field: str,
    owner_id: int,
    label: str,
) -> List[tuple]:
    """
    Apply allocations in caller order against invoices or bills.

    Returns [(document, applied_amount, previous_status)] for what was applied.
    """
    remaining = total
    applied: List[tuple] = []

    for req in allocations:
        if remaining <= 0:
            logger.debug("Payment amount fully allocated; skipping %s %s", label, req.target_id)
            break

        doc = db.get(model, req.target_id)
        if doc is None:
            raise NotFound(f"{label} {req.target_id} not found")
        if getattr(doc, owner_field) != owner_id:
            raise ValidationFailed(f"{label} {req.target_id} does not belong to the selected counterparty")

        balance_due = to_money(doc.balance_due)
        if req.amount is not None:
            if req.amount > remaining:
                raise ValidationFailed(
                    f"Allocation of {req.amount} to {label.lower()} {req.target_id} exceeds the unallocated amount {remaining}"
                )
            if req.amount > balance_due:
                raise ValidationFailed(
                    f"Allocation of {req.amount} to {label.lower()} {req.target_id} exceeds its balance due {balance_due}"
                )
            amount = req.amount
        else:
            amount = min(remaining, balance_due)

        if amount <= 0:
            continue

        previous_status = doc.status
        _add_payment(doc, amount)
        applied.append((doc, amount, previous_status))
        remaining -= amount

    return applied


def _reference_for(txn: BankTransaction) -> str:
    return txn.reference_number or f"Bank Txn: {(txn.description or '')[:100]}"


def _payment_notes(txn: BankTransaction, excess: Decimal, excess_label: str) -> str:
    notes = f"Auto-created from bank transaction categorization. Bank: {txn.description or ''}"
    if excess > 0:
        notes += f" | {excess_label}: {excess}"
    return notes


def _create_payment_received(
    db: Session, txn: BankTransaction, req: CategorizeRequest, amount: Decimal
) -> PaymentReceived:
    applied = _allocate(db, Invoice, req.invoice_allocations, amount, "customer_id", req.customer_id, "Invoice")
    allocated = sum((a for _, a, _ in applied), ZERO)
    excess = amount - allocated if req.store_as_advance else ZERO

    payment = PaymentReceived(
        payment_number=f"PMT-R-BNK-{txn.id:06d}",
        customer_id=req.customer_id,
        payment_date=txn.transaction_date,
        amount=amount,
        original_amount=amount,
        excess_amount=excess,
        payment_mode=PAYMENT_MODE,
        reference_number=_reference_for(txn),
        status="Received",
        currency_code="INR",
        notes=_payment_notes(txn, excess, "Advance"),
        bank_transaction_id=txn.id,
    )
    for invoice, applied_amount, previous_status in applied:
        payment.allocations.append(
            PaymentReceivedAllocation(
                invoice_id=invoice.id, allocated_amount=applied_amount, previous_status=previous_status
            )
        )
    db.add(payment)

    txn.linked_invoice_ids = [{"id": inv.id, "amount": str(a)} for inv, a, _ in applied]
    txn.advance_amount = excess if req.store_as_advance else None
    logger.info(
        "Payment %s: %s received from customer %s, %s allocated to %d invoice(s), excess %s",
        payment.payment_number, amount, req.customer_id, allocated, len(applied), excess,
    )
    return payment


def _create_payment_made(db: Session, txn: BankTransaction, req: CategorizeRequest, amount: Decimal) -> PaymentMade:
    applied = _allocate(db, Bill, req.bill_allocations, amount, "vendor_id", req.vendor_id, "Bill")
    allocated = sum((a for _, a, _ in applied), ZERO)
    excess = amount - allocated if req.store_as_advance else ZERO

    payment = PaymentMade(
        payment_number=f"PMT-M-BNK-{txn.id:06d}",
        vendor_id=req.vendor_id,
        payment_date=txn.transaction_date,
        amount=amount,
        original_amount=amount,
        excess_amount=excess,
        payment_mode=PAYMENT_MODE,
        reference_number=_reference_for(txn),
        status="Paid",
        currency_code="INR",
        notes=_payment_notes(txn, excess, "Vendor Credit"),
        bank_transaction_id=txn.id,
    )
    for bill, applied_amount, previous_status in applied:
        payment.allocations.append(
            PaymentMadeAllocation(bill_id=bill.id, allocated_amount=applied_amount, previous_status=previous_status)
        )
    db.add(payment)

    txn.linked_bill_ids = [{"id": bill.id, "amount": str(a)} for bill, a, _ in applied]
    txn.advance_amount = excess if req.store_as_advance else None
    logger.info(
        "Payment %s: %s paid to vendor %s, %s allocated to %d bill(s), excess %s",
        payment.payment_number, amount, req.vendor_id, allocated, len(applied), excess,
    )
    return payment


def apply(db: Session, txn: BankTransaction, req: CategorizeRequest) -> None:
    """Categorize an already-reversed transaction."""
    definition = _definition(req)
    amount = _check_direction(txn, definition)

    if req.invoice_allocations and definition.key != CUSTOMER_PAYMENT:
        raise ValidationFailed("Invoice allocations are only allowed for customer payments")
    if req.bill_allocations and definition.key != VENDOR_PAYMENT:
        raise ValidationFailed("Bill allocations are only allowed for vendor payments")

    _link(db, txn, definition, req)

    txn.linked_invoice_ids = []
    txn.linked_bill_ids = []
    txn.advance_amount = None
    txn.store_as_advance = bool(req.store_as_advance)

    if definition.key == CUSTOMER_PAYMENT:
        _create_payment_received(db, txn, req, amount)
    elif definition.key == VENDOR_PAYMENT:
        _create_payment_made(db, txn, req, amount)

    txn.category = definition.key
    txn.category_type = definition.direction.value
    txn.categorization_status = "categorized"
    if req.notes is not None:
        txn.notes = req.notes
    txn.updated_at = datetime.utcnow()
    db.flush()


# -------------------------------------------------------------------
# Public operations
# -------------------------------------------------------------------


def _account_id_of(db: Session, transaction_id: int) -> int:
    account_id = (
        db.query(BankTransaction.bank_account_id).filter(BankTransaction.id == transaction_id).scalar()
    )
    if account_id is None:
        raise NotFound(f"Bank transaction {transaction_id} not found")
    return account_id


def _load_for_update(db: Session, transaction_id: int) -> BankTransaction:
    txn = (
        db.query(BankTransaction)
        .filter(BankTransaction.id == transaction_id)
        .populate_existing()
        .with_for_update()
        .first()
    )
    if txn is None:
        raise NotFound(f"Bank transaction {transaction_id} not found")
    return txn


def categorize(db: Session, transaction_id: int, req: CategorizeRequest) -> Dict[str, Any]:
    """
    Reverse any previous categorization, then apply `req`, atomically.

    Raises Conflict for reconciled transactions, NotFound / ValidationFailed
    for bad input. Nothing is persisted when an error is raised.
    """
    # Fail fast on an unknown category before taking the lock
    _definition(req)

    account_id = _account_id_of(db, transaction_id)
    with locked_account(db, account_id):
        txn = _load_for_update(db, transaction_id)
        if txn.is_reconciled:
            logger.warning("Refusing to categorize reconciled transaction %s", transaction_id)
            raise Conflict("Cannot categorize a reconciled transaction")

        reverse(db, txn)
        apply(db, txn, req)
        recompute_balance(db, account_id)

    logger.info("Transaction %s categorized as %s", transaction_id, req.category)
    return transaction_to_dict(db.get(BankTransaction, transaction_id))


def uncategorize(db: Session, transaction_id: int) -> Dict[str, Any]:
    """Reverse and clear categorization. Idempotent for uncategorized rows."""
    account_id = _account_id_of(db, transaction_id)
    with locked_account(db, account_id):
        txn = _load_for_update(db, transaction_id)
        if txn.is_reconciled:
            logger.warning("Refusing to uncategorize reconciled transaction %s", transaction_id)
            raise Conflict("Cannot uncategorize a reconciled transaction")

        reverse(db, txn)
        clear_categorization(txn)
        recompute_balance(db, account_id)

    logger.info("Transaction %s uncategorized", transaction_id)
    return transaction_to_dict(db.get(BankTransaction, transaction_id))


# -------------------------------------------------------------------
# Outstanding documents for allocation pickers
# -------------------------------------------------------------------


def list_outstanding_invoices(db: Session, customer_id: Optional[int] = None) -> List[Dict[str, Any]]:
    q = db.query(Invoice).filter(Invoice.status.in_(OPEN_INVOICE_STATUSES), Invoice.balance_due > 0)
    if customer_id is not None:
        q = q.filter(Invoice.customer_id == customer_id)
    return [invoice_to_dict(inv) for inv in q.order_by(Invoice.invoice_date, Invoice.id).all()]


def list_outstanding_bills(db: Session, vendor_id: Optional[int] = None) -> List[Dict[str, Any]]:
    q = db.query(Bill).filter(Bill.status.in_(OPEN_BILL_STATUSES), Bill.balance_due > 0)
    if vendor_id is not None:
        q = q.filter(Bill.vendor_id == vendor_id)
    return [bill_to_dict(bill) for bill in q.order_by(Bill.bill_date, Bill.id).all()]


def customers_with_invoices(db: Session) -> List[Dict[str, Any]]:
    """Active customers that have at least one outstanding invoice."""
    out = []
    for customer in db.query(Customer).order_by(Customer.display_name).all():
        if customer.is_active is False:
            continue
        invoices = list_outstanding_invoices(db, customer.id)
        if invoices:
            out.append({"id": customer.id, "display_name": customer.display_name, "invoices": invoices})
    return out


def vendors_with_bills(db: Session) -> List[Dict[str, Any]]:
    """Active vendors that have at least one outstanding bill."""
    out = []
    for vendor in db.query(Vendor).order_by(Vendor.display_name).all():
        if vendor.is_active is False:
            continue
        bills = list_outstanding_bills(db, vendor.id)
        if bills:
            out.append({"id": vendor.id, "display_name": vendor.display_name, "bills": bills})
    return out
