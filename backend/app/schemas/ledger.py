"""
Ledger Schemas.
"""

from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from decimal import Decimal
from typing import Optional, List
from backend.app.models.ledger_enums import TransactionKind, TransactionType


class AccountSummary(BaseModel):
    """Schema for displaying a vendor/customer account balance."""
    id: int
    account_type: str
    company_name: str
    person_name: Optional[str] = None
    current_balance: Decimal
    credit_limit: Decimal


class LedgerTransactionResponse(BaseModel):
    """One ledger row with its resolved dates."""
    id: int
    type: TransactionType
    kind: TransactionKind
    amount: Optional[Decimal]
    description: Optional[str] = None
    reference: Optional[str] = None
    invoice: Optional[str] = None
    created_at: datetime
    voucher_date: datetime
    shipment_date: Optional[datetime] = None
    payment_date: Optional[datetime] = None
    note_date: Optional[datetime] = None
    previous_balance: Optional[Decimal] = None
    new_balance: Optional[Decimal] = None


class LedgerPageResponse(BaseModel):
    """Paginated ledger listing."""
    account: AccountSummary
    transactions: List[LedgerTransactionResponse]
    total: int
    page: int
    limit: int
    total_pages: int
    recalculated: bool


class RecalculationResponse(BaseModel):
    """Result of a full-history recalculation."""
    account: AccountSummary
    opening_balance: Decimal
    final_balance: Decimal
    transaction_count: int


class LedgerTransactionCreate(BaseModel):
    """Schema for adding a manual ledger transaction or a starting balance."""
    type: TransactionType
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)
    reference: Optional[str] = Field(None, max_length=100)
    invoice: Optional[str] = Field(None, max_length=50)
    date: Optional[datetime] = None

    @field_validator("reference", "invoice")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value


class LedgerTransactionCreateResponse(BaseModel):
    """Response after adding a transaction."""
    success: bool
    message: str
    transaction_id: int
    previous_balance: Decimal
    new_balance: Decimal
