"""
Vendor and Customer account models.

Both carry a running ledger balance that only the ledger service mutates.
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AccountColumnsMixin:
    """Columns shared by vendor and customer accounts."""

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    company_name = Column(String(200), nullable=False)
    person_name = Column(String(200), nullable=True)
    address = Column(String(500), nullable=True)
    city = Column(String(100), nullable=True)
    country = Column(String(100), nullable=True)

    # Financials
    current_balance = Column(Numeric(14, 2), nullable=False, default=0)
    credit_limit = Column(Numeric(14, 2), nullable=False, default=0)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Vendor(AccountColumnsMixin, Base):
    """
    Vendor (carrier/agent) account.

    A positive balance is what we owe the vendor.
    """
    __tablename__ = "vendors"

    def __repr__(self):
        return f"<Vendor(id={self.id}, company='{self.company_name}', balance={self.current_balance})>"


class Customer(AccountColumnsMixin, Base):
    """
    Customer (shipper) account.

    Stored with the mirrored sign: CREDIT raises the balance, so a
    negative balance is what the customer owes us.
    """
    __tablename__ = "customers"

    def __repr__(self):
        return f"<Customer(id={self.id}, company='{self.company_name}', balance={self.current_balance})>"
