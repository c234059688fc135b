# bankfeed/models.py
# Role: SQLAlchemy ORM models for the banking domain.
#       BankAccount owns its BankTransactions; a categorized transaction may own
#       one PaymentReceived / PaymentMade row, which owns its allocations.
#       Invoice, Bill, Customer, Vendor and ChartOfAccount are collaborator
#       tables: the engine reads them and updates only the payment fields.

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from bankfeed.db import Base

# Fixed-point money column: 18 digits, 2 decimal places
Money = Numeric(18, 2, asdecimal=True)

ZERO = Decimal("0.00")


class BankAccount(Base):
    """
    A bank (or cash) account whose transactions are imported from statements.

    current_balance is a cached, derived value. It is only ever written by
    services.balance.recompute_balance.
    """

    __tablename__ = "bank_accounts"

    id = Column(Integer, primary_key=True, index=True)
    account_name = Column(String, nullable=False)
    account_number = Column(String, nullable=True)
    bank_name = Column(String, nullable=True)
    ifsc_code = Column(String, nullable=True)
    account_type = Column(String, nullable=False, default="Current")
    currency_code = Column(String(3), nullable=False, default="INR")

    opening_balance = Column(Money, nullable=False, default=ZERO)
    opening_balance_date = Column(Date, nullable=True)
    current_balance = Column(Money, nullable=False, default=ZERO)

    is_active = Column(Boolean, nullable=False, default=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    transactions = relationship(
        "BankTransaction",
        back_populates="bank_account",
        cascade="all, delete-orphan",
        foreign_keys="BankTransaction.bank_account_id",
    )


class BankTransaction(Base):
    """
    One normalized line of a bank statement.

    Exactly one of deposit_amount / withdrawal_amount is normally non-zero.
    `balance` is the statement-reported running balance and is display-only.
    """

    __tablename__ = "bank_transactions"

    id = Column(Integer, primary_key=True, index=True)
    bank_account_id = Column(
        Integer, ForeignKey("bank_accounts.id", ondelete="CASCADE"), nullable=False
    )

    transaction_date = Column(Date, nullable=False)
    value_date = Column(Date, nullable=True)
    description = Column(Text, nullable=False, default="")
    reference_number = Column(String, nullable=True)

    deposit_amount = Column(Money, nullable=False, default=ZERO)
    withdrawal_amount = Column(Money, nullable=False, default=ZERO)
    balance = Column(Money, nullable=True)

    # Import provenance (batch-scoped undo)
    import_batch_id = Column(String, nullable=True, index=True)

    # Categorization
    category = Column(String, nullable=True)
    category_type = Column(String, nullable=True)  # Deposit | Withdrawal
    suggested_category = Column(String, nullable=True)
    categorization_status = Column(String, nullable=False, default="uncategorized")

    sub_account_id = Column(
        Integer, ForeignKey("chart_of_accounts.id", ondelete="SET NULL"), nullable=True
    )
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True)
    transfer_account_id = Column(
        Integer, ForeignKey("bank_accounts.id", ondelete="SET NULL"), nullable=True
    )

    store_as_advance = Column(Boolean, nullable=False, default=False)
    advance_amount = Column(Money, nullable=True)

    # Serialized allocation summary: [{"id": .., "amount": ".."}]
    linked_invoice_ids = Column(JSON, nullable=False, default=list)
    linked_bill_ids = Column(JSON, nullable=False, default=list)

    # Reconciliation
    is_reconciled = Column(Boolean, nullable=False, default=False)
    reconciled_date = Column(Date, nullable=True)

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    bank_account = relationship(
        "BankAccount", back_populates="transactions", foreign_keys=[bank_account_id]
    )

    __table_args__ = (
        Index("ix_bank_transactions_account_date", "bank_account_id", "transaction_date"),
        Index("ix_bank_transactions_categorization_status", "categorization_status"),
    )

    @property
    def amount(self) -> Decimal:
        """The non-zero side of the transaction."""
        return Decimal(self.deposit_amount or 0) or Decimal(self.withdrawal_amount or 0)


# -------------------------------------------------------------------
# Collaborator tables (CRUD lives elsewhere)
# -------------------------------------------------------------------


class ChartOfAccount(Base):
    __tablename__ = "chart_of_accounts"

    id = Column(Integer, primary_key=True, index=True)
    account_code = Column(String, nullable=True)
    account_name = Column(String, nullable=False)
    account_type = Column(String, nullable=True)  # Income, Expense, Equity, ...
    is_active = Column(Boolean, nullable=True, default=True)


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    display_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=True, default=True)


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True)
    display_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=True, default=True)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True)
    invoice_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True)

    total_amount = Column(Money, nullable=False, default=ZERO)
    amount_paid = Column(Money, nullable=False, default=ZERO)
    balance_due = Column(Money, nullable=False, default=ZERO)
    status = Column(String, nullable=False, default="Final")

    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class Bill(Base):
    __tablename__ = "bills"

    id = Column(Integer, primary_key=True, index=True)
    bill_number = Column(String, nullable=False)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True)
    bill_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True)

    total_amount = Column(Money, nullable=False, default=ZERO)
    amount_paid = Column(Money, nullable=False, default=ZERO)
    balance_due = Column(Money, nullable=False, default=ZERO)
    status = Column(String, nullable=False, default="Pending")

    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)


# -------------------------------------------------------------------
# Payments spawned by categorization
# -------------------------------------------------------------------


class PaymentReceived(Base):
    __tablename__ = "payments_received"

    id = Column(Integer, primary_key=True, index=True)
    payment_number = Column(String, nullable=False)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    payment_date = Column(Date, nullable=False)

    amount = Column(Money, nullable=False)
    original_amount = Column(Money, nullable=False)
    excess_amount = Column(Money, nullable=False, default=ZERO)

    payment_mode = Column(String, nullable=False, default="Bank Transfer")
    reference_number = Column(String, nullable=True)
    status = Column(String, nullable=False, default="Received")
    currency_code = Column(String(3), nullable=False, default="INR")
    notes = Column(Text, nullable=True)

    bank_transaction_id = Column(
        Integer,
        ForeignKey("bank_transactions.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    allocations = relationship(
        "PaymentReceivedAllocation",
        back_populates="payment",
        cascade="all, delete-orphan",
    )


class PaymentReceivedAllocation(Base):
    __tablename__ = "payment_received_allocations"

    id = Column(Integer, primary_key=True, index=True)
    payment_received_id = Column(
        Integer, ForeignKey("payments_received.id", ondelete="CASCADE"), nullable=False
    )
    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=False)
    allocated_amount = Column(Money, nullable=False)

    # Invoice status before this allocation was applied (restored on reversal)
    previous_status = Column(String, nullable=True)

    payment = relationship("PaymentReceived", back_populates="allocations")


class PaymentMade(Base):
    __tablename__ = "payments_made"

    id = Column(Integer, primary_key=True, index=True)
    payment_number = Column(String, nullable=False)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False)
    payment_date = Column(Date, nullable=False)

    amount = Column(Money, nullable=False)
    original_amount = Column(Money, nullable=False)
    excess_amount = Column(Money, nullable=False, default=ZERO)

    payment_mode = Column(String, nullable=False, default="Bank Transfer")
    reference_number = Column(String, nullable=True)
    status = Column(String, nullable=False, default="Paid")
    currency_code = Column(String(3), nullable=False, default="INR")
    notes = Column(Text, nullable=True)

    bank_transaction_id = Column(
        Integer,
        ForeignKey("bank_transactions.id", ondelete="SET NULL"),
        nullable=True,
        unique=True,
    )

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    allocations = relationship(
        "PaymentMadeAllocation",
        back_populates="payment",
        cascade="all, delete-orphan",
    )


class PaymentMadeAllocation(Base):
    __tablename__ = "payment_made_allocations"

    id = Column(Integer, primary_key=True, index=True)
    payment_made_id = Column(
        Integer, ForeignKey("payments_made.id", ondelete="CASCADE"), nullable=False
    )
    bill_id = Column(Integer, ForeignKey("bills.id"), nullable=False)
    allocated_amount = Column(Money, nullable=False)

    previous_status = Column(String, nullable=True)

    payment = relationship("PaymentMade", back_populates="allocations")
