"""
Balance Sequencer.

Orders a ledger by voucher date and rebuilds the running balance.
Pure functions: no I/O, Decimal arithmetic only.
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from backend.app.domain.ledger.conventions import (
    ZERO,
    BalanceUpdate,
    LedgerEvent,
    SignConvention,
)
from backend.app.models.ledger_enums import TransactionType

logger = logging.getLogger("courier_ledger.ledger.sequencer")

_NUMERIC_INVOICE = re.compile(r"^\s*[+-]?\d+\s*$")


class LedgerIntegrityError(ValueError):
    """A ledger violates a data-integrity rule the sequencer cannot recover from."""

    def __init__(self, message: str, details: dict = None):
        self.details = details or {}
        super().__init__(message)


@dataclass
class SequencedLedger:
    """
    Result of sequencing one account's ledger.

    Attributes:
        opening_balance: balance encoded by the starting-balance row (0 if none)
        final_balance: balance after the last sequenced transaction
        starting_balance: the starting-balance row in effect, if any
        ordered: non-starting-balance events in voucher order
        updates: balance pair for every event, starting balance included
        duplicate_sentinels: extra starting-balance rows that were ignored
    """
    opening_balance: Decimal
    final_balance: Decimal
    starting_balance: Optional[LedgerEvent] = None
    ordered: List[LedgerEvent] = field(default_factory=list)
    updates: List[BalanceUpdate] = field(default_factory=list)
    duplicate_sentinels: List[LedgerEvent] = field(default_factory=list)


def extract_starting_balance(
    events: Iterable[LedgerEvent],
    convention: SignConvention,
    strict: bool = False,
) -> Tuple[Optional[LedgerEvent], List[LedgerEvent], Decimal]:
    """
    Find the starting-balance row and the opening balance it encodes.

    The first sentinel in collection order wins. Any further sentinel is a
    data-integrity problem: logged, or raised when `strict` is set.

    Returns:
        (starting event or None, duplicate sentinels, opening balance)
    """
    sentinels = sorted(
        (event for event in events if event.is_starting_balance),
        key=lambda event: event.position,
    )
    if not sentinels:
        return None, [], ZERO

    starting, duplicates = sentinels[0], sentinels[1:]
    if duplicates:
        details = {
            "kept_transaction_id": starting.id,
            "duplicate_transaction_ids": [event.id for event in duplicates],
        }
        if strict:
            raise LedgerIntegrityError("Multiple starting-balance transactions found", details)
        logger.warning("Multiple starting-balance transactions, keeping the first", extra=details)

    return starting, duplicates, convention.opening_balance(starting.type, _amount_of(starting))


def parse_invoice_number(invoice: Optional[str]) -> Optional[int]:
    """Integer value of a purely numeric invoice number, else None."""
    if invoice and _NUMERIC_INVOICE.match(invoice):
        return int(invoice)
    return None


def invoice_sort_key(invoice: Optional[str]) -> Tuple[int, int, str]:
    """Numeric invoices first by value, then other invoices as text, then none."""
    if not invoice:
        return 2, 0, ""
    number = parse_invoice_number(invoice)
    if number is not None:
        return 0, number, ""
    return 1, 0, invoice


def voucher_sort_key(event: LedgerEvent) -> tuple:
    """
    Voucher ordering.

    Voucher date ascending; on the same date CREDIT before DEBIT; on the
    same date and type, by invoice_sort_key. Full ties keep collection
    order.
    """
    return (
        event.voucher_date,
        0 if event.type == TransactionType.CREDIT else 1,
        invoice_sort_key(event.invoice),
        event.position,
    )


def sort_events(events: Iterable[LedgerEvent]) -> List[LedgerEvent]:
    """Sort events into voucher order. Every event needs a voucher_date."""
    return sorted(events, key=voucher_sort_key)


def accumulate(
    ordered: Iterable[LedgerEvent],
    opening_balance: Decimal,
    convention: SignConvention,
) -> Tuple[List[BalanceUpdate], Decimal]:
    """
    Walk the ordered events carrying the running balance.

    Stamps previous/new balance on each event and returns the updates
    with the final balance.
    """
    running = opening_balance
    updates = []
    for event in ordered:
        previous = running
        running = convention.apply(running, event.type, _amount_of(event))
        event.previous_balance = previous
        event.new_balance = running
        updates.append(BalanceUpdate(id=event.id, previous_balance=previous, new_balance=running))
    return updates, running


def sequence(
    events: Iterable[LedgerEvent],
    convention: SignConvention,
    strict: bool = False,
) -> SequencedLedger:
    """
    Rebuild the balances of one account's full history.

    The starting-balance row is written as 0 -> opening balance and kept out
    of the date ordering. Ignored duplicate sentinels are written as 0 -> 0
    so they never carry a stale balance.
    """
    events = list(events)
    starting, duplicates, opening = extract_starting_balance(events, convention, strict)

    excluded = {event.id for event in duplicates}
    if starting is not None:
        excluded.add(starting.id)
    ordered = sort_events(event for event in events if event.id not in excluded)

    updates, final_balance = accumulate(ordered, opening, convention)

    if starting is not None:
        starting.previous_balance = ZERO
        starting.new_balance = opening
        updates.append(BalanceUpdate(id=starting.id, previous_balance=ZERO, new_balance=opening))
    for duplicate in duplicates:
        duplicate.previous_balance = ZERO
        duplicate.new_balance = ZERO
        updates.append(BalanceUpdate(id=duplicate.id, previous_balance=ZERO, new_balance=ZERO))

    return SequencedLedger(
        opening_balance=opening,
        final_balance=final_balance,
        starting_balance=starting,
        ordered=ordered,
        updates=updates,
        duplicate_sentinels=duplicates,
    )


def _amount_of(event: LedgerEvent) -> Decimal:
    if event.amount is None:
        logger.warning(
            "Transaction without amount treated as zero",
            extra={"transaction_id": event.id, "type": event.type.value},
        )
        return ZERO
    return event.amount
