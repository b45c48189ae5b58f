"""
Ledger Recalculation Engine.

Rebuilds the running balance of one vendor or customer ledger:

1. Collect  - account, transactions, invoice/payment/note dates
2. Resolve  - voucher date per transaction
3. Sequence - voucher ordering and running balance
4. Write    - balance pair per transaction, account current balance

The engine does not commit. Every write goes through the caller's
database transaction so the caller can commit once or roll back all.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from backend.app.core.exceptions import (
    AccountNotFoundError,
    InvalidTransactionStateError,
    LedgerRecalculationError,
    PersistenceFailureError,
)
from backend.app.domain.ledger.collector import EventCollector
from backend.app.domain.ledger.conventions import LedgerEvent, PartyRef, SignConvention
from backend.app.domain.ledger.sequencer import LedgerIntegrityError, sequence
from backend.app.domain.ledger.stores import LedgerStore
from backend.app.domain.ledger.voucher_dates import resolve_all
from backend.app.models.ledger_enums import RecalculationStage

logger = logging.getLogger("courier_ledger.ledger.engine")


@dataclass
class RecalculationResult:
    """
    Outcome of one recalculation.

    `events` holds the starting balance first (if any), then every other
    transaction in voucher order, each carrying its recomputed balances.
    """
    party: PartyRef
    account: Any
    opening_balance: Decimal
    final_balance: Decimal
    events: List[LedgerEvent] = field(default_factory=list)
    invoice_dates: Dict[str, Optional[datetime]] = field(default_factory=dict)
    payment_dates: Dict[str, datetime] = field(default_factory=dict)
    note_dates: Dict[str, datetime] = field(default_factory=dict)

    @property
    def transaction_count(self) -> int:
        return len(self.events)


class LedgerRecalculationEngine:
    """
    Full-history balance recalculation for one account at a time.

    Args:
        store: data access for one ledger family (vendor or customer)
        convention: which transaction type raises the balance
        strict_starting_balance: reject ledgers with several starting balances
    """

    def __init__(self, store: LedgerStore, convention: SignConvention, strict_starting_balance: bool = False):
        self.store = store
        self.convention = convention
        self.strict_starting_balance = strict_starting_balance
        self.collector = EventCollector(store, convention)

    async def recalculate(self, party: PartyRef) -> RecalculationResult:
        with self._stage(RecalculationStage.COLLECT, party):
            account = await self.collector.load_account(party, for_update=True)
            if account is None:
                raise AccountNotFoundError(party.account_type.value, party.account_id)
            collected = await self.collector.collect(party, account)

        with self._stage(RecalculationStage.RESOLVE, party):
            resolve_all(
                collected.events,
                collected.invoice_dates,
                collected.note_dates,
                collected.payment_dates,
            )

        with self._stage(RecalculationStage.SEQUENCE, party):
            ledger = sequence(collected.events, self.convention, strict=self.strict_starting_balance)

        with self._stage(RecalculationStage.WRITE, party):
            await self.store.update_transactions(ledger.updates)
            await self.store.update_account(party, ledger.final_balance)

        events = []
        if ledger.starting_balance is not None:
            events.append(ledger.starting_balance)
        events.extend(ledger.ordered)
        events.extend(ledger.duplicate_sentinels)

        logger.info(
            "Ledger recalculated",
            extra={
                "account_type": party.account_type.value,
                "account_id": party.account_id,
                "transactions": len(events),
                "opening_balance": str(ledger.opening_balance),
                "final_balance": str(ledger.final_balance),
            },
        )

        return RecalculationResult(
            party=party,
            account=account,
            opening_balance=ledger.opening_balance,
            final_balance=ledger.final_balance,
            events=events,
            invoice_dates=collected.invoice_dates,
            payment_dates=collected.payment_dates,
            note_dates=collected.note_dates,
        )

    @contextmanager
    def _stage(self, stage: RecalculationStage, party: PartyRef):
        """Translate failures inside a stage into the ledger error taxonomy."""
        account_type = party.account_type.value
        try:
            yield
        except LedgerRecalculationError:
            raise
        except LedgerIntegrityError as exc:
            logger.warning(
                "Ledger data-integrity violation",
                extra={"account_type": account_type, "account_id": party.account_id, "stage": stage.value},
            )
            raise InvalidTransactionStateError(
                account_type, party.account_id, stage.value, str(exc), details=exc.details
            ) from exc
        except (SQLAlchemyError, LookupError) as exc:
            logger.error(
                "Ledger recalculation storage failure",
                extra={"account_type": account_type, "account_id": party.account_id, "stage": stage.value},
            )
            if stage == RecalculationStage.WRITE:
                raise PersistenceFailureError(account_type, party.account_id, str(exc)) from exc
            raise LedgerRecalculationError(account_type, party.account_id, stage.value, str(exc)) from exc
        except Exception as exc:
            logger.exception(
                "Ledger recalculation failed",
                extra={"account_type": account_type, "account_id": party.account_id, "stage": stage.value},
            )
            raise LedgerRecalculationError(account_type, party.account_id, stage.value, str(exc)) from exc
