"""
Ledger Service.

Request-scoped ledger operations on vendor and customer accounts:
full-history recalculation, ledger listing, and the booking paths that
append transactions or set the starting balance.

Every operation commits exactly once. A failure (or a cancelled request,
whose session is closed without commit) leaves the ledger untouched.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.exceptions import AccountNotFoundError, PersistenceFailureError
from backend.app.domain.ledger.collector import CollectedEvents, EventCollector
from backend.app.domain.ledger.conventions import (
    CONVENTIONS,
    ZERO,
    LedgerEvent,
    PartyRef,
    classify_reference,
)
from backend.app.domain.ledger.engine import LedgerRecalculationEngine, RecalculationResult
from backend.app.domain.ledger.stores import store_for
from backend.app.domain.ledger.voucher_dates import as_utc, resolve_all
from backend.app.models.ledger_enums import (
    AccountType,
    JournalTransactionType,
    TransactionKind,
    TransactionType,
)
from backend.app.schemas.ledger import AccountSummary, LedgerTransactionResponse
from backend.app.services.account_locking import AccountLock
from backend.app.services.audit import AuditAction, log_event
from backend.app.services.journal_service import (
    create_journal_entry_for_transaction,
    delete_journal_entries_for_reference,
)

logger = logging.getLogger("courier_ledger.ledger.service")


@dataclass
class LedgerPage:
    """One page of a ledger listing."""
    account: Any
    account_type: AccountType
    lines: List[LedgerTransactionResponse] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 0
    total_pages: int = 0
    recalculated: bool = False


def account_summary(account, account_type: AccountType) -> AccountSummary:
    return AccountSummary(
        id=account.id,
        account_type=AccountType(account_type).value,
        company_name=account.company_name,
        person_name=account.person_name,
        current_balance=account.current_balance,
        credit_limit=account.credit_limit,
    )


CENTS = Decimal("0.01")


def money(value) -> str:
    """Audit representation of an amount, always to the cent."""
    return str(Decimal(value).quantize(CENTS))


def journal_type_for(account_type: AccountType, type_: TransactionType) -> JournalTransactionType:
    return JournalTransactionType(f"{AccountType(account_type).value.upper()}_{TransactionType(type_).value}")


def paginate(items: Sequence, page: int, limit: Optional[int]) -> Tuple[list, int, int, int]:
    """
    Slice one page out of `items`.

    `limit=None` returns everything as a single page.

    Returns:
        (page items, total, effective limit, total pages)
    """
    total = len(items)
    if limit is None:
        return list(items), total, total, 1
    offset = (page - 1) * limit
    return list(items[offset:offset + limit]), total, limit, math.ceil(total / limit)


def ledger_line(event: LedgerEvent, invoice_dates, payment_dates, note_dates) -> LedgerTransactionResponse:
    """Display row for an event whose voucher date has been resolved."""
    shipment_date = None
    payment_date = None
    if event.invoice:
        shipment_date = invoice_dates.get(event.invoice)
        if event.type == TransactionType.CREDIT:
            payment_date = payment_dates.get(event.invoice)
    note_date = note_dates.get(event.reference) if event.is_note else None

    return LedgerTransactionResponse(
        id=event.id,
        type=event.type,
        kind=event.kind,
        amount=event.amount,
        description=event.description,
        reference=event.reference,
        invoice=event.invoice,
        created_at=event.created_at,
        voucher_date=event.voucher_date,
        shipment_date=shipment_date,
        payment_date=payment_date,
        note_date=note_date,
        previous_balance=event.previous_balance,
        new_balance=event.new_balance,
    )


class LedgerService:

    @staticmethod
    def engine_for(db: AsyncSession, account_type: AccountType) -> LedgerRecalculationEngine:
        account_type = AccountType(account_type)
        return LedgerRecalculationEngine(
            store_for(db, account_type),
            CONVENTIONS[account_type],
            strict_starting_balance=settings.ledger_strict_starting_balance,
        )

    @staticmethod
    async def recalculate(
        db: AsyncSession,
        redis,
        account_type: AccountType,
        account_id: int,
        correlation_id: Optional[str] = None
    ) -> RecalculationResult:
        """
        Rebuild the balances of an account's full history.

        Flow:
        1. Take the per-account lock (fails with 409 if another run holds it)
        2. Collect, resolve, sequence and write inside one DB transaction
        3. Record the audit event in the same transaction
        4. Commit once, or roll back everything

        Args:
            db: Database session
            redis: Redis client holding the account locks
            account_type: "vendor" or "customer"
            account_id: Account to recalculate

        Returns:
            RecalculationResult with every transaction in voucher order
        """
        party = PartyRef(AccountType(account_type), account_id)
        engine = LedgerService.engine_for(db, party.account_type)

        async with AccountLock(redis, party.account_type.value, account_id):
            try:
                result = await engine.recalculate(party)
                await log_event(
                    db,
                    AuditAction.LEDGER_RECALCULATED,
                    account_type=party.account_type.value,
                    account_id=account_id,
                    metadata={
                        "transactions": result.transaction_count,
                        "opening_balance": money(result.opening_balance),
                        "final_balance": money(result.final_balance),
                    },
                    correlation_id=correlation_id,
                )
            except Exception:
                await db.rollback()
                raise
            await LedgerService._commit(db, party)

        return result

    @staticmethod
    async def list_transactions(
        db: AsyncSession,
        redis,
        account_type: AccountType,
        account_id: int,
        *,
        recalc: bool = False,
        page: int = 1,
        limit: Optional[int] = None,
        from_date: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
        sort_order: str = "desc",
        correlation_id: Optional[str] = None
    ) -> LedgerPage:
        """
        List an account's ledger for display.

        With `recalc` the full history is recalculated first and the date
        range applies to voucher dates; rows come out in voucher order
        (reversed for "desc"). Without it the stored balances are listed,
        filtered and ordered on created_at.

        The date range only narrows what is displayed, never what is
        recalculated.
        """
        account_type = AccountType(account_type)
        descending = sort_order != "asc"
        start, end = as_utc(from_date), as_utc(to_date)

        if recalc:
            result = await LedgerService.recalculate(
                db, redis, account_type, account_id, correlation_id=correlation_id
            )
            events = [
                event for event in result.events
                if (start is None or event.voucher_date >= start)
                and (end is None or event.voucher_date <= end)
            ]
            if descending:
                events.reverse()
            window, total, effective_limit, total_pages = paginate(events, page, limit)
            lines = [
                ledger_line(event, result.invoice_dates, result.payment_dates, result.note_dates)
                for event in window
            ]
            return LedgerPage(
                account=result.account,
                account_type=account_type,
                lines=lines,
                total=total,
                page=page,
                limit=effective_limit,
                total_pages=total_pages,
                recalculated=True,
            )

        party = PartyRef(account_type, account_id)
        store = store_for(db, account_type)
        account = await store.get_account(party)
        if account is None:
            raise AccountNotFoundError(account_type.value, account_id)

        rows, total = await store.list_transactions_page(
            party,
            created_from=start,
            created_to=end,
            descending=descending,
            offset=(page - 1) * limit if limit else 0,
            limit=limit,
        )
        events = [LedgerEvent.from_row(row, position) for position, row in enumerate(rows)]
        dates = await EventCollector(store, CONVENTIONS[account_type]).collect_dates(
            party, events, CollectedEvents(account=account)
        )
        resolve_all(events, dates.invoice_dates, dates.note_dates, dates.payment_dates)

        effective_limit = limit if limit is not None else total
        return LedgerPage(
            account=account,
            account_type=account_type,
            lines=[
                ledger_line(event, dates.invoice_dates, dates.payment_dates, dates.note_dates)
                for event in events
            ],
            total=total,
            page=page,
            limit=effective_limit,
            total_pages=math.ceil(total / limit) if limit else 1,
            recalculated=False,
        )

    @staticmethod
    async def append_transaction(
        db: AsyncSession,
        account_type: AccountType,
        account_id: int,
        type_: TransactionType,
        amount: Decimal,
        description: str,
        reference: Optional[str] = None,
        invoice: Optional[str] = None,
        date: Optional[datetime] = None,
        correlation_id: Optional[str] = None
    ):
        """
        Book one transaction on top of the current balance.

        previous_balance is the account's current balance and new_balance
        applies the ledger's sign convention: the same step the sequencer
        takes, so a ledger appended in voucher order needs no
        recalculation. Starting-balance references go to
        upsert_starting_balance.

        Returns:
            The created transaction row
        """
        type_ = TransactionType(type_)
        if classify_reference(reference, invoice) == TransactionKind.STARTING_BALANCE:
            return await LedgerService.upsert_starting_balance(
                db, account_type, account_id, type_, amount, description, reference,
                date=date, correlation_id=correlation_id,
            )

        party = PartyRef(AccountType(account_type), account_id)
        store = store_for(db, party.account_type)
        convention = CONVENTIONS[party.account_type]

        account = await store.get_account(party, for_update=True)
        if account is None:
            raise AccountNotFoundError(party.account_type.value, account_id)

        previous_balance = Decimal(account.current_balance or 0)
        new_balance = convention.apply(previous_balance, type_, amount)

        values = dict(
            type=type_,
            amount=amount,
            description=description,
            reference=reference,
            invoice=invoice,
            previous_balance=previous_balance,
            new_balance=new_balance,
        )
        if date is not None:
            values["created_at"] = date
        transaction = store.new_transaction(party, **values)
        db.add(transaction)
        account.current_balance = new_balance

        try:
            await db.flush()
            await create_journal_entry_for_transaction(
                db, journal_type_for(party.account_type, type_), amount, description, reference, date
            )
            await log_event(
                db,
                AuditAction.LEDGER_TRANSACTION_ADDED,
                account_type=party.account_type.value,
                account_id=account_id,
                metadata={
                    "transaction_id": transaction.id,
                    "type": type_.value,
                    "amount": money(amount),
                },
                correlation_id=correlation_id,
            )
        except SQLAlchemyError as exc:
            await db.rollback()
            raise PersistenceFailureError(party.account_type.value, account_id, str(exc)) from exc
        await LedgerService._commit(db, party)

        logger.info(
            "Ledger transaction added",
            extra={
                "account_type": party.account_type.value,
                "account_id": account_id,
                "transaction_id": transaction.id,
                "new_balance": str(new_balance),
            },
        )
        return transaction

    @staticmethod
    async def upsert_starting_balance(
        db: AsyncSession,
        account_type: AccountType,
        account_id: int,
        type_: TransactionType,
        amount: Decimal,
        description: str,
        reference: str,
        date: Optional[datetime] = None,
        correlation_id: Optional[str] = None
    ):
        """
        Create or replace the account's single starting-balance row.

        The row is dated `date` (default: the configured epoch) so it sorts
        before every real transaction. Journal entries of the previous
        starting balance are deleted and re-posted. A new row moves the
        account balance like any booking; replacing an existing one leaves
        the account and the other rows as they are until the next
        recalculation.

        Returns:
            The starting-balance transaction row
        """
        type_ = TransactionType(type_)
        party = PartyRef(AccountType(account_type), account_id)
        store = store_for(db, party.account_type)
        convention = CONVENTIONS[party.account_type]

        account = await store.get_account(party, for_update=True)
        if account is None:
            raise AccountNotFoundError(party.account_type.value, account_id)

        effective_date = date or settings.starting_balance_default_date
        opening_balance = convention.opening_balance(type_, amount)

        try:
            transaction = await store.find_starting_balance(party)
            created = transaction is None
            if created:
                transaction = store.new_transaction(party, type=type_, amount=amount)
                db.add(transaction)
                account.current_balance = convention.apply(
                    Decimal(account.current_balance or 0), type_, amount
                )
            elif transaction.reference:
                await delete_journal_entries_for_reference(db, transaction.reference)

            transaction.type = type_
            transaction.amount = amount
            transaction.description = description
            transaction.reference = reference
            transaction.created_at = effective_date
            transaction.previous_balance = ZERO
            transaction.new_balance = opening_balance
            await db.flush()

            # Only the balance-raising side is posted to the journal
            if type_ == convention.increasing_type:
                await create_journal_entry_for_transaction(
                    db, journal_type_for(party.account_type, type_), amount, description, reference, effective_date
                )

            await log_event(
                db,
                AuditAction.STARTING_BALANCE_SET,
                account_type=party.account_type.value,
                account_id=account_id,
                metadata={
                    "transaction_id": transaction.id,
                    "created": created,
                    "opening_balance": money(opening_balance),
                },
                correlation_id=correlation_id,
            )
        except SQLAlchemyError as exc:
            await db.rollback()
            raise PersistenceFailureError(party.account_type.value, account_id, str(exc)) from exc
        await LedgerService._commit(db, party)

        return transaction

    @staticmethod
    async def _commit(db: AsyncSession, party: PartyRef) -> None:
        try:
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.error(
                "Ledger commit failed",
                extra={"account_type": party.account_type.value, "account_id": party.account_id},
            )
            raise PersistenceFailureError(party.account_type.value, party.account_id, str(exc)) from exc
