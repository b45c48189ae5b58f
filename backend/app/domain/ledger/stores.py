"""
Store adapters for the ledger recalculation.

The engine talks to a `LedgerStore`; `SqlAlchemyLedgerStore` implements it
on an AsyncSession for either vendor or customer ledgers.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.app.domain.ledger.conventions import (
    CONVENTIONS,
    BalanceUpdate,
    PartyRef,
    SignConvention,
)
from backend.app.models.account import Customer, Vendor
from backend.app.models.ledger_enums import AccountType, PaymentTransactionType, STARTING_BALANCE_PREFIX
from backend.app.models.ledger_transaction import CustomerTransaction, VendorTransaction
from backend.app.models.payment import CreditNote, DebitNote, Payment
from backend.app.models.shipment import Invoice


@dataclass(frozen=True)
class PaymentRecord:
    invoice: str
    date: Optional[datetime]


@dataclass(frozen=True)
class NoteRecord:
    number: str
    date: Optional[datetime]


class LedgerStore(Protocol):
    """Data contract the recalculation engine depends on."""

    async def get_account(self, party: PartyRef, for_update: bool = False) -> Optional[Any]:
        ...

    async def list_transactions(self, party: PartyRef) -> Sequence[Any]:
        ...

    async def list_invoices_by_numbers(self, numbers: Sequence[str]) -> Dict[str, Optional[datetime]]:
        ...

    async def list_payments(
        self,
        invoice_in: Sequence[str],
        party: PartyRef,
        transaction_type: PaymentTransactionType,
    ) -> List[PaymentRecord]:
        ...

    async def list_notes_by_numbers(self, numbers: Sequence[str]) -> List[NoteRecord]:
        ...

    async def update_transactions(self, updates: Iterable[BalanceUpdate]) -> None:
        ...

    async def update_account(self, party: PartyRef, current_balance: Decimal) -> None:
        ...


class SqlAlchemyLedgerStore:
    """
    LedgerStore backed by the vendor or customer tables.

    Args:
        db: Session carrying the caller's transaction
        account_model: Vendor or Customer
        transaction_model: VendorTransaction or CustomerTransaction
        owner_column: FK column on the transaction model
        payment_party_column: Payment column pointing at the account
        convention: sign convention of this ledger
    """

    def __init__(
        self,
        db: AsyncSession,
        account_model,
        transaction_model,
        owner_column,
        payment_party_column,
        convention: SignConvention,
    ):
        self.db = db
        self.account_model = account_model
        self.transaction_model = transaction_model
        self.owner_column = owner_column
        self.payment_party_column = payment_party_column
        self.convention = convention

    async def get_account(self, party: PartyRef, for_update: bool = False):
        stmt = select(self.account_model).where(self.account_model.id == party.account_id)
        if for_update:
            # Row lock on the account serializes recalculations in the database
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_transactions(self, party: PartyRef):
        result = await self.db.execute(
            select(self.transaction_model)
            .where(self.owner_column == party.account_id)
            .order_by(self.transaction_model.created_at.asc(), self.transaction_model.id.asc())
        )
        return list(result.scalars().all())

    async def list_transactions_page(
        self,
        party: PartyRef,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
        descending: bool = True,
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Tuple[list, int]:
        """Stored rows filtered on created_at, with the unpaginated total."""
        model = self.transaction_model
        conditions = [self.owner_column == party.account_id]
        if created_from is not None:
            conditions.append(model.created_at >= created_from)
        if created_to is not None:
            conditions.append(model.created_at <= created_to)

        total = await self.db.scalar(select(func.count(model.id)).where(*conditions))

        order = (model.created_at.desc(), model.id.desc()) if descending else (model.created_at.asc(), model.id.asc())
        stmt = select(model).where(*conditions).order_by(*order).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self.db.execute(stmt)
        return list(result.scalars().all()), total or 0

    async def find_starting_balance(self, party: PartyRef):
        """First starting-balance row of the account, if any."""
        model = self.transaction_model
        result = await self.db.execute(
            select(model)
            .where(
                self.owner_column == party.account_id,
                model.reference.startswith(STARTING_BALANCE_PREFIX),
            )
            .order_by(model.created_at.asc(), model.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    def new_transaction(self, party: PartyRef, **values):
        """Unsaved transaction row owned by the account."""
        values[self.owner_column.key] = party.account_id
        return self.transaction_model(**values)

    async def list_invoices_by_numbers(self, numbers: Sequence[str]) -> Dict[str, Optional[datetime]]:
        """invoice_number -> shipment_date (None when no shipment is linked)."""
        if not numbers:
            return {}
        result = await self.db.execute(
            select(Invoice)
            .options(selectinload(Invoice.shipment))
            .where(Invoice.invoice_number.in_(list(numbers)))
        )
        return {
            invoice.invoice_number: invoice.shipment.shipment_date if invoice.shipment else None
            for invoice in result.scalars().all()
        }

    async def list_payments(
        self,
        invoice_in: Sequence[str],
        party: PartyRef,
        transaction_type: PaymentTransactionType,
    ) -> List[PaymentRecord]:
        if not invoice_in:
            return []
        result = await self.db.execute(
            select(Payment.invoice, Payment.date)
            .where(
                Payment.invoice.in_(list(invoice_in)),
                self.payment_party_column == party.account_id,
                Payment.transaction_type == transaction_type,
            )
            .order_by(Payment.date.desc())
        )
        return [PaymentRecord(invoice=row.invoice, date=row.date) for row in result.all()]

    async def list_notes_by_numbers(self, numbers: Sequence[str]) -> List[NoteRecord]:
        """Debit and credit notes whose number is one of `numbers`."""
        if not numbers:
            return []
        numbers = list(numbers)
        debit_rows = await self.db.execute(
            select(DebitNote.debit_note_number, DebitNote.date)
            .where(DebitNote.debit_note_number.in_(numbers))
        )
        credit_rows = await self.db.execute(
            select(CreditNote.credit_note_number, CreditNote.date)
            .where(CreditNote.credit_note_number.in_(numbers))
        )
        notes = [NoteRecord(number=number, date=date) for number, date in debit_rows.all()]
        notes.extend(NoteRecord(number=number, date=date) for number, date in credit_rows.all())
        return notes

    async def update_transactions(self, updates: Iterable[BalanceUpdate]) -> None:
        for update in updates:
            # Rows are already in the identity map from list_transactions
            row = await self.db.get(self.transaction_model, update.id)
            if row is None:
                raise LookupError(f"{self.transaction_model.__name__} {update.id} disappeared during recalculation")
            row.previous_balance = update.previous_balance
            row.new_balance = update.new_balance
        await self.db.flush()

    async def update_account(self, party: PartyRef, current_balance: Decimal) -> None:
        account = await self.get_account(party)
        if account is None:
            raise LookupError(f"{party} disappeared during recalculation")
        account.current_balance = current_balance
        await self.db.flush()


def store_for(db: AsyncSession, account_type: AccountType) -> SqlAlchemyLedgerStore:
    """Build the store adapter for a vendor or customer ledger."""
    account_type = AccountType(account_type)
    if account_type == AccountType.VENDOR:
        return SqlAlchemyLedgerStore(
            db,
            account_model=Vendor,
            transaction_model=VendorTransaction,
            owner_column=VendorTransaction.vendor_id,
            payment_party_column=Payment.to_vendor_id,
            convention=CONVENTIONS[account_type],
        )
    return SqlAlchemyLedgerStore(
        db,
        account_model=Customer,
        transaction_model=CustomerTransaction,
        owner_column=CustomerTransaction.customer_id,
        payment_party_column=Payment.from_customer_id,
        convention=CONVENTIONS[account_type],
    )
