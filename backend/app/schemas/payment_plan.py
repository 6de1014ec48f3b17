"""
Payment Plan Schemas (bookings, installments, customer payments).
"""

from pydantic import BaseModel, Field
from datetime import date
from decimal import Decimal
from typing import Optional, List

from backend.app.models.ledger_enums import (
    BookingStatus,
    InstallmentFrequency,
    InstallmentStatus,
    PaymentType,
)


class BookingItemCreate(BaseModel):
    item_type: str = Field(..., min_length=1, max_length=30)
    cost: Decimal = Field(..., ge=0, decimal_places=2)
    supplier_id: Optional[int] = None
    supplier_deadline: Optional[date] = None
    description: Optional[str] = Field(None, max_length=255)


class BookingTermsUpdate(BaseModel):
    """Priced terms of a booking."""
    total_price: Decimal = Field(..., gt=0, decimal_places=2)
    payment_type: PaymentType
    net_cost: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    down_payment: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    installment_count: int = Field(0, ge=0, le=120)
    installment_frequency: InstallmentFrequency = InstallmentFrequency.SEMIMONTHLY
    payment_start_date: Optional[date] = None
    sale_date: Optional[date] = None
    supplier_id: Optional[int] = None
    supplier_deadline: Optional[date] = None


class BookingCreate(BookingTermsUpdate):
    """Booking terms plus optional items and the account receiving the down payment."""
    items: List[BookingItemCreate] = Field(default_factory=list)
    down_payment_account_id: Optional[int] = None


class BookingResponse(BaseModel):
    id: int
    total_price: Decimal
    net_cost: Decimal
    payment_type: PaymentType
    down_payment: Decimal
    installment_count: int
    installment_frequency: InstallmentFrequency
    payment_start_date: Optional[date]
    supplier_id: Optional[int]
    supplier_deadline: Optional[date]
    sale_date: date
    status: BookingStatus

    class Config:
        from_attributes = True


class InstallmentResponse(BaseModel):
    id: int
    booking_id: int
    sequence_number: int
    due_date: date
    amount: Decimal
    paid_amount: Decimal
    status: InstallmentStatus
    paid_date: Optional[date]
    notes: Optional[str]

    class Config:
        from_attributes = True


class PaymentCreate(BaseModel):
    """Customer payment applied from one installment forward."""
    installment_id: int
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    account_id: int
    notes: Optional[str] = Field(None, max_length=500)
    paid_on: Optional[date] = None


class PaymentResponse(BaseModel):
    booking_id: int
    booking_status: BookingStatus
    transaction_id: int
    installments: List[InstallmentResponse]
    undistributed: Decimal
