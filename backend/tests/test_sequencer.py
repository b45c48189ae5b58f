"""
Balance Sequencer Tests.

Validates voucher ordering and the running balance rebuild.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from backend.app.domain.ledger.conventions import (
    CUSTOMER_CONVENTION,
    VENDOR_CONVENTION,
    LedgerEvent,
    classify_reference,
)
from backend.app.domain.ledger.sequencer import (
    LedgerIntegrityError,
    parse_invoice_number,
    sequence,
    sort_events,
)
from backend.app.models.ledger_enums import TransactionType

UTC = timezone.utc
EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def make_event(id, type_, amount, voucher_date, reference=None, invoice=None, position=None):
    return LedgerEvent(
        id=id,
        type=TransactionType(type_),
        kind=classify_reference(reference, invoice),
        amount=None if amount is None else Decimal(amount),
        created_at=voucher_date,
        position=id if position is None else position,
        reference=reference,
        invoice=invoice,
        voucher_date=voucher_date,
    )


def starting_balance(id, type_, amount, position=None):
    return make_event(id, type_, amount, EPOCH, reference=f"STARTING-BALANCE-{id}", position=position)


def test_only_starting_balance():
    """Scenario: starting DEBIT 5000 and nothing else."""
    start = starting_balance(1, "DEBIT", "5000")

    ledger = sequence([start], VENDOR_CONVENTION)

    assert ledger.opening_balance == Decimal("5000")
    assert ledger.final_balance == Decimal("5000")
    assert ledger.ordered == []
    assert (start.previous_balance, start.new_balance) == (Decimal("0"), Decimal("5000"))
    assert [(u.id, u.previous_balance, u.new_balance) for u in ledger.updates] == [
        (1, Decimal("0"), Decimal("5000"))
    ]


def test_invoice_then_payment_after_starting_balance():
    """Scenario: starting 5000, DEBIT 1200 shipped 2024-03-01, CREDIT 1200 paid 2024-03-10."""
    start = starting_balance(1, "DEBIT", "5000")
    credit = make_event(2, "CREDIT", "1200", datetime(2024, 3, 10, tzinfo=UTC), invoice="1001")
    debit = make_event(3, "DEBIT", "1200", datetime(2024, 3, 1, tzinfo=UTC), invoice="1001")

    ledger = sequence([start, credit, debit], VENDOR_CONVENTION)

    assert [event.id for event in ledger.ordered] == [3, 2]
    assert (debit.previous_balance, debit.new_balance) == (Decimal("5000"), Decimal("6200"))
    assert (credit.previous_balance, credit.new_balance) == (Decimal("6200"), Decimal("5000"))
    assert ledger.final_balance == Decimal("5000")


def test_numeric_invoices_sort_numerically():
    same_day = datetime(2024, 3, 1, tzinfo=UTC)
    events = [
        make_event(1, "DEBIT", "10", same_day, invoice="105"),
        make_event(2, "DEBIT", "10", same_day, invoice="98"),
        make_event(3, "DEBIT", "10", same_day, invoice="10"),
        make_event(4, "DEBIT", "10", same_day, invoice="9"),
    ]

    assert [event.invoice for event in sort_events(events)] == ["9", "10", "98", "105"]


def test_non_numeric_invoices_sort_as_strings():
    same_day = datetime(2024, 3, 1, tzinfo=UTC)
    events = [
        make_event(1, "DEBIT", "10", same_day, invoice="INV-9"),
        make_event(2, "DEBIT", "10", same_day, invoice="10"),
        make_event(3, "DEBIT", "10", same_day, invoice="INV-10"),
    ]

    assert [event.invoice for event in sort_events(events)] == ["10", "INV-10", "INV-9"]


def test_credit_before_debit_on_same_voucher_date():
    same_day = datetime(2024, 3, 1, tzinfo=UTC)
    debit = make_event(1, "DEBIT", "300", same_day, invoice="1")
    credit = make_event(2, "CREDIT", "100", same_day, invoice="2")

    ledger = sequence([debit, credit], VENDOR_CONVENTION)

    assert [event.id for event in ledger.ordered] == [2, 1]
    assert (credit.previous_balance, credit.new_balance) == (Decimal("0"), Decimal("-100"))
    assert (debit.previous_balance, debit.new_balance) == (Decimal("-100"), Decimal("200"))


def test_full_ties_keep_collection_order():
    same_day = datetime(2024, 3, 1, tzinfo=UTC)
    events = [
        make_event(10, "DEBIT", "1", same_day, position=2),
        make_event(11, "DEBIT", "1", same_day, position=0),
        make_event(12, "DEBIT", "1", same_day, position=1),
    ]

    assert [event.id for event in sort_events(events)] == [11, 12, 10]


def test_mixed_invoices_have_one_order():
    same_day = datetime(2024, 3, 1, tzinfo=UTC)
    events = [
        make_event(1, "DEBIT", "1", same_day, position=0),
        make_event(2, "DEBIT", "1", same_day, invoice="1a", position=1),
        make_event(3, "DEBIT", "1", same_day, invoice="10", position=2),
        make_event(4, "DEBIT", "1", same_day, invoice="9", position=3),
    ]
    expected = ["9", "10", "1a", None]

    # Numeric first, then text, then rows without an invoice, whatever the input order
    assert [event.invoice for event in sort_events(events)] == expected
    assert [event.invoice for event in sort_events(reversed(events))] == expected


def test_empty_ledger_balance_is_zero():
    ledger = sequence([], VENDOR_CONVENTION)

    assert ledger.opening_balance == Decimal("0")
    assert ledger.final_balance == Decimal("0")
    assert ledger.starting_balance is None
    assert ledger.updates == []


def test_continuity_and_conservation():
    events = [
        starting_balance(1, "CREDIT", "250.50"),
        make_event(2, "DEBIT", "1200.00", datetime(2024, 1, 5, tzinfo=UTC), invoice="12"),
        make_event(3, "CREDIT", "400.25", datetime(2024, 1, 3, tzinfo=UTC), invoice="11"),
        make_event(4, "DEBIT", "99.99", datetime(2024, 1, 5, tzinfo=UTC), invoice="3"),
        make_event(5, "CREDIT", "10.00", datetime(2024, 2, 1, tzinfo=UTC), reference="#CREDIT-1"),
        make_event(6, "DEBIT", "0.01", datetime(2023, 12, 31, tzinfo=UTC)),
    ]

    ledger = sequence(events, VENDOR_CONVENTION)
    ordered = ledger.ordered

    assert ledger.opening_balance == Decimal("-250.50")
    assert ordered[0].previous_balance == ledger.opening_balance
    for current, following in zip(ordered, ordered[1:]):
        assert current.new_balance == following.previous_balance
        assert current.voucher_date <= following.voucher_date
    assert ordered[-1].new_balance == ledger.final_balance

    debits = sum(e.amount for e in ordered if e.type == TransactionType.DEBIT)
    credits = sum(e.amount for e in ordered if e.type == TransactionType.CREDIT)
    assert ledger.final_balance == ledger.opening_balance + debits - credits
    assert ledger.final_balance == Decimal("639.25")


def test_sequencing_is_idempotent():
    def build():
        return [
            starting_balance(1, "DEBIT", "5000"),
            make_event(2, "DEBIT", "1200", datetime(2024, 3, 1, tzinfo=UTC), invoice="1001"),
            make_event(3, "CREDIT", "700", datetime(2024, 3, 10, tzinfo=UTC), invoice="1001"),
        ]

    first = sequence(build(), VENDOR_CONVENTION)
    second = sequence(build(), VENDOR_CONVENTION)

    assert first.updates == second.updates
    assert first.final_balance == second.final_balance == Decimal("5500")


def test_customer_convention_is_mirrored():
    start = starting_balance(1, "CREDIT", "300")
    debit = make_event(2, "DEBIT", "1000", datetime(2024, 3, 1, tzinfo=UTC), invoice="1")
    credit = make_event(3, "CREDIT", "400", datetime(2024, 3, 5, tzinfo=UTC), invoice="1")

    ledger = sequence([start, debit, credit], CUSTOMER_CONVENTION)

    assert ledger.opening_balance == Decimal("300")
    assert debit.new_balance == Decimal("-700")
    assert credit.new_balance == Decimal("-300")
    assert ledger.final_balance == Decimal("-300")


def test_duplicate_starting_balances_keep_the_first():
    first = starting_balance(1, "DEBIT", "5000", position=0)
    second = starting_balance(2, "DEBIT", "9999", position=2)
    debit = make_event(3, "DEBIT", "100", datetime(2024, 3, 1, tzinfo=UTC), position=1)

    ledger = sequence([second, debit, first], VENDOR_CONVENTION)

    assert ledger.starting_balance is first
    assert ledger.duplicate_sentinels == [second]
    assert ledger.final_balance == Decimal("5100")
    assert (second.previous_balance, second.new_balance) == (Decimal("0"), Decimal("0"))
    assert [event.id for event in ledger.ordered] == [3]


def test_duplicate_starting_balances_rejected_when_strict():
    events = [starting_balance(1, "DEBIT", "5000"), starting_balance(2, "CREDIT", "10")]

    with pytest.raises(LedgerIntegrityError) as exc_info:
        sequence(events, VENDOR_CONVENTION, strict=True)

    assert exc_info.value.details["kept_transaction_id"] == 1
    assert exc_info.value.details["duplicate_transaction_ids"] == [2]


def test_missing_amount_counts_as_zero():
    events = [
        make_event(1, "DEBIT", "100", datetime(2024, 1, 1, tzinfo=UTC)),
        make_event(2, "DEBIT", None, datetime(2024, 1, 2, tzinfo=UTC)),
    ]

    ledger = sequence(events, VENDOR_CONVENTION)

    assert events[1].previous_balance == events[1].new_balance == Decimal("100")
    assert ledger.final_balance == Decimal("100")


def test_parse_invoice_number():
    assert parse_invoice_number("98") == 98
    assert parse_invoice_number(" 105 ") == 105
    assert parse_invoice_number("INV-98") is None
    assert parse_invoice_number("1e3") is None
    assert parse_invoice_number(None) is None
