"""
Journal entry models.

Double-entry postings mirroring ledger transactions.
"""

from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base


class JournalEntry(Base):
    """
    Journal entry header.

    Each entry has balanced lines (sum of debits == sum of credits).
    """
    __tablename__ = "journal_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    transaction_type = Column(String(50), nullable=False)
    reference = Column(String(100), nullable=True, index=True)
    description = Column(String(500), nullable=True)
    date = Column(DateTime(timezone=True), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    lines = relationship("JournalEntryLine", back_populates="entry", lazy="selectin")

    def __repr__(self):
        return f"<JournalEntry(id={self.id}, type='{self.transaction_type}', ref='{self.reference}')>"


class JournalEntryLine(Base):
    """Single debit or credit line of a journal entry."""
    __tablename__ = "journal_entry_lines"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    journal_entry_id = Column(Integer, ForeignKey('journal_entries.id'), nullable=False, index=True)

    account_code = Column(String(20), nullable=False)
    account_name = Column(String(100), nullable=False)
    debit = Column(Numeric(14, 2), nullable=False, default=0)
    credit = Column(Numeric(14, 2), nullable=False, default=0)

    entry = relationship("JournalEntry", back_populates="lines")

    def __repr__(self):
        return f"<JournalEntryLine(id={self.id}, account='{self.account_code}', dr={self.debit}, cr={self.credit})>"
