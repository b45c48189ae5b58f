"""
Audit Log Database Model.

Tracks ledger-affecting actions for reconciliation and compliance.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for ledger actions.

    Events logged:
    - LEDGER_RECALCULATED
    - LEDGER_TRANSACTION_ADDED
    - STARTING_BALANCE_SET
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor = Column(String(100), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which ledger account was affected
    account_type = Column(String(20), nullable=True, index=True)
    account_id = Column(Integer, nullable=True, index=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Request correlation for tracing
    correlation_id = Column(String(64), nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', account={self.account_type}:{self.account_id})>"
