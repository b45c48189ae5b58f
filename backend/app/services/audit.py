"""
Audit logging service for ledger actions.

Provides centralized logging for reconciliation and compliance.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    LEDGER_RECALCULATED = "LEDGER_RECALCULATED"
    LEDGER_TRANSACTION_ADDED = "LEDGER_TRANSACTION_ADDED"
    STARTING_BALANCE_SET = "STARTING_BALANCE_SET"


async def log_event(
    db: AsyncSession,
    action: str,
    account_type: Optional[str] = None,
    account_id: Optional[int] = None,
    actor: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    correlation_id: Optional[str] = None
) -> AuditLog:
    """
    Add an audit event to the current unit of work.

    The row is flushed, not committed: it lands in the same database
    transaction as the ledger change it describes.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        account_type: "vendor" or "customer"
        account_id: Affected account
        actor: Who triggered the action (None for system)
        metadata: Additional context as JSON
        correlation_id: Request correlation ID

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor=actor,
        action=action,
        account_type=account_type,
        account_id=account_id,
        meta_data=metadata,
        correlation_id=correlation_id
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_account_audit_trail(
    db: AsyncSession,
    account_type: str,
    account_id: int,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve the audit trail of one ledger account, most recent first.

    Args:
        db: Database session
        account_type: "vendor" or "customer"
        account_id: Account to get history for
        action: Filter by action type
        limit: Maximum number of records to return
    """
    query = select(AuditLog).where(
        AuditLog.account_type == account_type,
        AuditLog.account_id == account_id
    ).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
