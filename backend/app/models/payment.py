"""
Payment, debit note and credit note database models.
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import PaymentTransactionType


class Payment(Base):
    """
    Payment model.

    EXPENSE payments go out to a vendor, INCOME payments come in from a
    customer. `date` is when the cash moved.
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    invoice = Column(String(50), nullable=True, index=True)
    to_vendor_id = Column(Integer, ForeignKey('vendors.id'), nullable=True, index=True)
    from_customer_id = Column(Integer, ForeignKey('customers.id'), nullable=True, index=True)
    transaction_type = Column(Enum(PaymentTransactionType), nullable=False)

    amount = Column(Numeric(14, 2), nullable=False)
    date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Payment(id={self.id}, invoice='{self.invoice}', type='{self.transaction_type.value}')>"


class DebitNote(Base):
    """Debit note; matched to ledger rows whose reference equals its number."""
    __tablename__ = "debit_notes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    debit_note_number = Column(String(100), unique=True, nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=True)
    date = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<DebitNote(id={self.id}, number='{self.debit_note_number}')>"


class CreditNote(Base):
    """Credit note; matched to ledger rows whose reference equals its number."""
    __tablename__ = "credit_notes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    credit_note_number = Column(String(100), unique=True, nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=True)
    date = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<CreditNote(id={self.id}, number='{self.credit_note_number}')>"
