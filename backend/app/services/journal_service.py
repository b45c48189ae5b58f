"""
Journal posting for ledger transactions.

Every vendor/customer transaction is mirrored by a balanced two-line
journal entry.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.journal import JournalEntry, JournalEntryLine
from backend.app.models.ledger_enums import JournalTransactionType

CASH = ("1000", "Cash")
ACCOUNTS_RECEIVABLE = ("1200", "Accounts Receivable")
ACCOUNTS_PAYABLE = ("2100", "Accounts Payable")
COURIER_REVENUE = ("4100", "Courier Revenue")
FREIGHT_EXPENSE = ("5100", "Freight Expense")

# (debit account, credit account) per posting type
POSTING_RULES = {
    JournalTransactionType.VENDOR_DEBIT: (FREIGHT_EXPENSE, ACCOUNTS_PAYABLE),
    JournalTransactionType.VENDOR_CREDIT: (ACCOUNTS_PAYABLE, CASH),
    JournalTransactionType.CUSTOMER_DEBIT: (ACCOUNTS_RECEIVABLE, COURIER_REVENUE),
    JournalTransactionType.CUSTOMER_CREDIT: (CASH, ACCOUNTS_RECEIVABLE),
}


async def create_journal_entry_for_transaction(
    db: AsyncSession,
    journal_type: JournalTransactionType,
    amount: Decimal,
    description: Optional[str],
    reference: Optional[str] = None,
    date: Optional[datetime] = None
) -> JournalEntry:
    """
    Post a balanced journal entry for a ledger transaction.

    Args:
        db: Database session (flushed, caller commits)
        journal_type: Posting template
        amount: Non-negative amount
        description: Narration
        reference: Ledger reference the entry belongs to
        date: Accounting date (defaults to now)

    Returns:
        Created JournalEntry
    """
    (debit_code, debit_name), (credit_code, credit_name) = POSTING_RULES[journal_type]

    entry = JournalEntry(
        transaction_type=journal_type.value,
        reference=reference,
        description=description,
        date=date or datetime.now(timezone.utc),
    )
    db.add(entry)
    await db.flush()

    db.add_all([
        JournalEntryLine(
            journal_entry_id=entry.id,
            account_code=debit_code,
            account_name=debit_name,
            debit=amount,
            credit=Decimal("0"),
        ),
        JournalEntryLine(
            journal_entry_id=entry.id,
            account_code=credit_code,
            account_name=credit_name,
            debit=Decimal("0"),
            credit=amount,
        ),
    ])
    await db.flush()
    return entry


async def delete_journal_entries_for_reference(db: AsyncSession, reference: str) -> int:
    """
    Delete every journal entry (and its lines) posted under `reference`.

    Returns:
        Number of entries deleted
    """
    result = await db.execute(select(JournalEntry.id).where(JournalEntry.reference == reference))
    entry_ids = list(result.scalars().all())
    if not entry_ids:
        return 0

    await db.execute(delete(JournalEntryLine).where(JournalEntryLine.journal_entry_id.in_(entry_ids)))
    await db.execute(delete(JournalEntry).where(JournalEntry.id.in_(entry_ids)))
    return len(entry_ids)


async def list_journal_entries(db: AsyncSession, reference: str) -> list[JournalEntry]:
    """Journal entries posted under `reference`, oldest first."""
    result = await db.execute(
        select(JournalEntry).where(JournalEntry.reference == reference).order_by(JournalEntry.id)
    )
    return list(result.scalars().all())
