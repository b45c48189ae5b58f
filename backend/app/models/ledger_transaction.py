"""
Ledger transaction models for vendor and customer accounts.

Rows are created by booking flows (invoices, payments, manual adjustments)
and only their balance pair is rewritten by a recalculation.
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import TransactionType


class LedgerTransactionMixin:
    """Columns shared by vendor and customer ledger transactions."""

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Entry details
    type = Column(Enum(TransactionType), nullable=False)  # DEBIT or CREDIT
    amount = Column(Numeric(14, 2), nullable=False)  # Always non-negative
    description = Column(String(500), nullable=True)
    reference = Column(String(100), nullable=True, index=True)
    invoice = Column(String(50), nullable=True, index=True)  # Invoice.invoice_number

    # Insertion time, not the accounting date
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    # Written by the ledger service only
    previous_balance = Column(Numeric(14, 2), nullable=False, default=0)
    new_balance = Column(Numeric(14, 2), nullable=False, default=0)


class VendorTransaction(LedgerTransactionMixin, Base):
    """Ledger transaction on a vendor account."""
    __tablename__ = "vendor_transactions"

    vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=False, index=True)

    def __repr__(self):
        return f"<VendorTransaction(id={self.id}, type='{self.type.value}', amount={self.amount})>"


class CustomerTransaction(LedgerTransactionMixin, Base):
    """Ledger transaction on a customer account."""
    __tablename__ = "customer_transactions"

    customer_id = Column(Integer, ForeignKey('customers.id'), nullable=False, index=True)

    def __repr__(self):
        return f"<CustomerTransaction(id={self.id}, type='{self.type.value}', amount={self.amount})>"
