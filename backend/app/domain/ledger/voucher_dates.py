"""
Voucher date resolution.

A ledger row is dated by the economic event behind it (goods shipped,
cash moved, note issued), not by when someone keyed it in.
"""

from datetime import datetime, timezone
from typing import Dict, Iterable, Mapping, Optional

from backend.app.domain.ledger.conventions import LedgerEvent
from backend.app.models.ledger_enums import TransactionType


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize to an aware UTC datetime; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def resolve_voucher_date(
    event: LedgerEvent,
    invoice_dates: Mapping[str, Optional[datetime]],
    note_dates: Mapping[str, datetime],
    payment_dates: Mapping[str, datetime],
) -> datetime:
    """
    Pick the voucher date of one transaction.

    First match wins:
    1. debit/credit note reference with a known note date
    2. DEBIT on an invoice whose shipment has a shipment date
    3. CREDIT on an invoice with a recorded payment
    4. the row's created_at
    """
    if event.is_note and event.reference:
        note_date = note_dates.get(event.reference)
        if note_date is not None:
            return as_utc(note_date)

    if event.invoice:
        if event.type == TransactionType.DEBIT:
            shipment_date = invoice_dates.get(event.invoice)
            if shipment_date is not None:
                return as_utc(shipment_date)
        elif event.type == TransactionType.CREDIT:
            payment_date = payment_dates.get(event.invoice)
            if payment_date is not None:
                return as_utc(payment_date)

    return as_utc(event.created_at)


def resolve_all(
    events: Iterable[LedgerEvent],
    invoice_dates: Mapping[str, Optional[datetime]],
    note_dates: Mapping[str, datetime],
    payment_dates: Mapping[str, datetime],
) -> Dict[int, datetime]:
    """Stamp `voucher_date` on every event; returns id -> voucher date."""
    resolved = {}
    for event in events:
        event.voucher_date = resolve_voucher_date(event, invoice_dates, note_dates, payment_dates)
        resolved[event.id] = event.voucher_date
    return resolved
