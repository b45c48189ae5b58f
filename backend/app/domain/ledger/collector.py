"""
Event Collector.

Gathers everything that dates or moves one account's ledger, with one
batched query per source table.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from backend.app.domain.ledger.conventions import LedgerEvent, PartyRef, SignConvention
from backend.app.domain.ledger.stores import LedgerStore
from backend.app.models.ledger_enums import TransactionType

logger = logging.getLogger("courier_ledger.ledger.collector")


@dataclass
class CollectedEvents:
    """
    Raw material for one recalculation.

    Attributes:
        account: the vendor/customer row
        rows: transaction rows in collection order
        events: LedgerEvent per row, same order
        invoice_dates: invoice_number -> shipment date
        note_dates: note reference -> note date
        payment_dates: invoice_number -> latest payment date
    """
    account: Any
    rows: List[Any] = field(default_factory=list)
    events: List[LedgerEvent] = field(default_factory=list)
    invoice_dates: Dict[str, Optional[datetime]] = field(default_factory=dict)
    note_dates: Dict[str, datetime] = field(default_factory=dict)
    payment_dates: Dict[str, datetime] = field(default_factory=dict)


def unique(values) -> List[str]:
    """Drop empty values and duplicates, keeping first-seen order."""
    return list(dict.fromkeys(value for value in values if value))


def latest_payment_dates(payments) -> Dict[str, datetime]:
    """invoice -> the maximum payment date recorded for it."""
    latest: Dict[str, datetime] = {}
    for payment in payments:
        if payment.invoice and payment.date is not None:
            current = latest.get(payment.invoice)
            if current is None or current < payment.date:
                latest[payment.invoice] = payment.date
    return latest


class EventCollector:
    """Reads one account's ledger and its dating sources from a LedgerStore."""

    def __init__(self, store: LedgerStore, convention: SignConvention):
        self.store = store
        self.convention = convention

    async def load_account(self, party: PartyRef, for_update: bool = False):
        return await self.store.get_account(party, for_update=for_update)

    async def collect(self, party: PartyRef, account: Any) -> CollectedEvents:
        """Collect the full history of an account already loaded by the caller."""
        rows = await self.store.list_transactions(party)
        collected = CollectedEvents(account=account, rows=list(rows))
        collected.events = [LedgerEvent.from_row(row, position) for position, row in enumerate(rows)]
        await self.collect_dates(party, collected.events, collected)

        logger.debug(
            "Collected ledger events",
            extra={
                "account": str(party),
                "transactions": len(collected.events),
                "invoices": len(collected.invoice_dates),
                "payments": len(collected.payment_dates),
                "notes": len(collected.note_dates),
            },
        )
        return collected

    async def collect_dates(
        self,
        party: PartyRef,
        events: Sequence[LedgerEvent],
        into: CollectedEvents,
    ) -> CollectedEvents:
        """
        Batch-load the invoice, payment and note dates referenced by `events`.

        Statements run one after another: a single AsyncSession does not
        accept concurrent statements.
        """
        invoice_numbers = unique(event.invoice for event in events)
        credit_invoices = unique(
            event.invoice for event in events if event.type == TransactionType.CREDIT
        )
        note_references = unique(event.reference for event in events if event.is_note)

        into.invoice_dates = await self.store.list_invoices_by_numbers(invoice_numbers)

        payments = await self.store.list_payments(
            credit_invoices, party, self.convention.payment_type
        )
        into.payment_dates = latest_payment_dates(payments)

        notes = await self.store.list_notes_by_numbers(note_references)
        into.note_dates = {note.number: note.date for note in notes if note.date is not None}
        return into
