"""
Ledger Schemas (accounts and transactions).
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List

from backend.app.models.ledger_enums import TransactionKind, TransactionOrigin, TransactionStatus


class AccountCreate(BaseModel):
    """Schema for opening a ledger account."""
    label: str = Field(..., min_length=1, max_length=150)
    bank_name: Optional[str] = Field(None, max_length=150)
    account_type: Optional[str] = Field(None, max_length=50)
    initial_balance: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)


class AccountResponse(BaseModel):
    """Schema for displaying a ledger account."""
    id: int
    label: str
    bank_name: Optional[str]
    account_type: Optional[str]
    initial_balance: Decimal
    current_balance: Decimal
    is_active: bool
    archived_at: Optional[datetime]

    class Config:
        from_attributes = True


class AccountArchiveRequest(BaseModel):
    """Where a remaining positive balance goes before archiving."""
    transfer_to_account_id: Optional[int] = None


class MovementCreate(BaseModel):
    """Schema for a standalone account movement."""
    kind: TransactionKind
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    description: str = Field(..., min_length=1, max_length=255)
    reference: Optional[str] = Field(None, max_length=255)
    booking_id: Optional[int] = None
    occurred_on: Optional[date] = None
    destination_account_id: Optional[int] = None


class TransactionResponse(BaseModel):
    """Schema for displaying a transaction."""
    id: int
    account_id: int
    kind: TransactionKind
    origin: TransactionOrigin
    amount: Decimal
    description: str
    reference: Optional[str]
    booking_id: Optional[int]
    destination_account_id: Optional[int]
    paired_transaction_id: Optional[int]
    occurred_on: date
    status: TransactionStatus
    cancelled_at: Optional[datetime]

    class Config:
        from_attributes = True


class TransactionPage(BaseModel):
    """Paginated transaction list."""
    items: List[TransactionResponse]
    total: int
    page: int
    limit: int
    total_pages: int
