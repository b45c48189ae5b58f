"""
Ledger API Endpoints.

Vendor and customer ledgers: listing, full-history recalculation and
manual bookings. Both account types share the same routes and differ only
in their sign convention.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.redis_client import get_redis
from backend.app.db.session import get_db
from backend.app.models.ledger_enums import AccountType
from backend.app.schemas.ledger import (
    LedgerPageResponse,
    LedgerTransactionCreate,
    LedgerTransactionCreateResponse,
    RecalculationResponse,
)
from backend.app.services.ledger_service import LedgerService, account_summary

router = APIRouter(prefix="/accounts", tags=["Ledger"])


def parse_limit(limit: Optional[str]) -> Optional[int]:
    """Page size from the query string: a positive integer or "all" (None)."""
    if limit is None:
        return settings.ledger_default_page_size
    if limit.strip().lower() == "all":
        return None
    try:
        value = int(limit)
    except ValueError:
        value = 0
    if value < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="limit must be a positive integer or 'all'"
        )
    return value


def correlation_id_of(request: Request) -> Optional[str]:
    return getattr(request.state, "correlation_id", None)


@router.get("/{account_type}/{account_id}/transactions", response_model=LedgerPageResponse)
async def list_ledger_transactions(
    request: Request,
    account_type: AccountType,
    account_id: int,
    recalc: bool = Query(False, description="Recalculate the full history before listing"),
    page: int = Query(1, ge=1),
    limit: Optional[str] = Query(None, description="Page size or 'all'"),
    from_date: Optional[datetime] = Query(None),
    to_date: Optional[datetime] = Query(None),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    List an account's ledger.

    With `recalc=true` the balances are rebuilt first and the rows are
    listed in voucher order; otherwise the stored balances are listed by
    creation date.
    """
    ledger = await LedgerService.list_transactions(
        db,
        redis,
        account_type,
        account_id,
        recalc=recalc,
        page=page,
        limit=parse_limit(limit),
        from_date=from_date,
        to_date=to_date,
        sort_order=sort_order,
        correlation_id=correlation_id_of(request),
    )
    return LedgerPageResponse(
        account=account_summary(ledger.account, account_type),
        transactions=ledger.lines,
        total=ledger.total,
        page=ledger.page,
        limit=ledger.limit,
        total_pages=ledger.total_pages,
        recalculated=ledger.recalculated,
    )


@router.post("/{account_type}/{account_id}/recalculate", response_model=RecalculationResponse)
async def recalculate_ledger(
    request: Request,
    account_type: AccountType,
    account_id: int,
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """Rebuild every balance of the account from its full history."""
    result = await LedgerService.recalculate(
        db, redis, account_type, account_id, correlation_id=correlation_id_of(request)
    )
    return RecalculationResponse(
        account=account_summary(result.account, account_type),
        opening_balance=result.opening_balance,
        final_balance=result.final_balance,
        transaction_count=result.transaction_count,
    )


@router.post(
    "/{account_type}/{account_id}/transactions",
    response_model=LedgerTransactionCreateResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_ledger_transaction(
    request: Request,
    account_type: AccountType,
    account_id: int,
    payload: LedgerTransactionCreate,
    db: AsyncSession = Depends(get_db)
):
    """
    Book a transaction on the account.

    A reference starting with STARTING-BALANCE creates or replaces the
    account's starting balance instead of appending a new row.
    """
    transaction = await LedgerService.append_transaction(
        db,
        account_type,
        account_id,
        payload.type,
        payload.amount,
        payload.description,
        reference=payload.reference,
        invoice=payload.invoice,
        date=payload.date,
        correlation_id=correlation_id_of(request),
    )
    return LedgerTransactionCreateResponse(
        success=True,
        message="Transaction added successfully",
        transaction_id=transaction.id,
        previous_balance=transaction.previous_balance,
        new_balance=transaction.new_balance,
    )
