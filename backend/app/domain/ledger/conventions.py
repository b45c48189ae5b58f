"""
Ledger sign conventions and in-memory event types.

Vendor and customer ledgers run the same recalculation; they differ only
in which transaction type raises the balance and in how the account is
referenced by the stores.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from backend.app.models.ledger_enums import (
    AccountType,
    PaymentTransactionType,
    TransactionKind,
    TransactionType,
    STARTING_BALANCE_PREFIX,
    DEBIT_NOTE_PREFIX,
    CREDIT_NOTE_PREFIX,
)

ZERO = Decimal("0")


@dataclass(frozen=True)
class SignConvention:
    """
    Which transaction type increases an account balance.

    Attributes:
        increasing_type: type that adds its amount to the running balance
        payment_type: payment direction that dates CREDIT rows of this ledger
    """
    increasing_type: TransactionType
    payment_type: PaymentTransactionType

    def signed(self, type_: TransactionType, amount: Decimal) -> Decimal:
        return amount if type_ == self.increasing_type else -amount

    def apply(self, balance: Decimal, type_: TransactionType, amount: Decimal) -> Decimal:
        return balance + self.signed(type_, amount)

    def opening_balance(self, type_: TransactionType, amount: Decimal) -> Decimal:
        """Balance encoded by a starting-balance row."""
        return self.signed(type_, amount)


VENDOR_CONVENTION = SignConvention(
    increasing_type=TransactionType.DEBIT,
    payment_type=PaymentTransactionType.EXPENSE,
)

CUSTOMER_CONVENTION = SignConvention(
    increasing_type=TransactionType.CREDIT,
    payment_type=PaymentTransactionType.INCOME,
)

CONVENTIONS = {
    AccountType.VENDOR: VENDOR_CONVENTION,
    AccountType.CUSTOMER: CUSTOMER_CONVENTION,
}


@dataclass(frozen=True)
class PartyRef:
    """Identifies the vendor or customer whose ledger is processed."""
    account_type: AccountType
    account_id: int

    def __str__(self) -> str:
        return f"{self.account_type.value}:{self.account_id}"


def classify_reference(reference: Optional[str], invoice: Optional[str]) -> TransactionKind:
    """Resolve the sentinel reference prefixes into a TransactionKind."""
    if reference:
        if reference.startswith(STARTING_BALANCE_PREFIX):
            return TransactionKind.STARTING_BALANCE
        if reference.startswith(DEBIT_NOTE_PREFIX):
            return TransactionKind.DEBIT_NOTE
        if reference.startswith(CREDIT_NOTE_PREFIX):
            return TransactionKind.CREDIT_NOTE
    if invoice:
        return TransactionKind.INVOICE
    return TransactionKind.MANUAL


@dataclass
class LedgerEvent:
    """
    One ledger transaction as seen by the recalculation.

    `position` is the collection order (created_at, id) and keeps the
    sort stable when every other key ties.
    """
    id: int
    type: TransactionType
    kind: TransactionKind
    amount: Optional[Decimal]
    created_at: datetime
    position: int
    reference: Optional[str] = None
    invoice: Optional[str] = None
    description: Optional[str] = None
    voucher_date: Optional[datetime] = None
    previous_balance: Optional[Decimal] = None
    new_balance: Optional[Decimal] = None

    @property
    def is_starting_balance(self) -> bool:
        return self.kind == TransactionKind.STARTING_BALANCE

    @property
    def is_note(self) -> bool:
        return self.kind in (TransactionKind.DEBIT_NOTE, TransactionKind.CREDIT_NOTE)

    @classmethod
    def from_row(cls, row, position: int) -> "LedgerEvent":
        """Build an event from a VendorTransaction/CustomerTransaction row."""
        amount = row.amount
        if amount is not None and not isinstance(amount, Decimal):
            amount = Decimal(str(amount))
        return cls(
            id=row.id,
            type=TransactionType(row.type),
            kind=classify_reference(row.reference, row.invoice),
            amount=amount,
            created_at=row.created_at,
            position=position,
            reference=row.reference,
            invoice=row.invoice,
            description=row.description,
            previous_balance=row.previous_balance,
            new_balance=row.new_balance,
        )


@dataclass(frozen=True)
class BalanceUpdate:
    """Recomputed balance pair for one transaction."""
    id: int
    previous_balance: Decimal
    new_balance: Decimal
