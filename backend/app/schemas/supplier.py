"""
Supplier Debt Schemas.
"""

from pydantic import BaseModel, Field
from datetime import date
from decimal import Decimal
from typing import Optional, List

from backend.app.models.ledger_enums import SupplierPaymentStatus, TrafficLight


class SupplierPaymentCreate(BaseModel):
    booking_id: int
    account_id: int
    amount: Decimal = Field(..., gt=0, decimal_places=2)
    notes: Optional[str] = Field(None, max_length=500)
    paid_on: Optional[date] = None


class SupplierPaymentResponse(BaseModel):
    id: int
    booking_id: int
    supplier_id: int
    account_id: int
    transaction_id: int
    amount: Decimal
    notes: Optional[str]
    paid_on: date
    status: SupplierPaymentStatus

    class Config:
        from_attributes = True


class BookingDebt(BaseModel):
    """What the agency still owes a supplier for one booking."""
    booking_id: int
    sale_date: Optional[date]
    net_cost: Decimal
    total_paid: Decimal
    remaining: Decimal
    supplier_deadline: Optional[date]
    days_left: Optional[int]
    traffic_light: TrafficLight


class DebtTotals(BaseModel):
    net_cost: Decimal
    total_paid: Decimal
    remaining: Decimal
    booking_count: int
    overdue_count: int


class SupplierExposure(BaseModel):
    """Per-booking breakdown for one supplier."""
    supplier_id: int
    supplier_name: str
    bookings: List[BookingDebt]
    totals: DebtTotals


class SupplierDebtSummary(BaseModel):
    """Rollup of one supplier's debt."""
    supplier_id: int
    supplier_name: str
    service_type: Optional[str]
    net_cost: Decimal
    total_paid: Decimal
    remaining: Decimal
    booking_count: int
    overdue_count: int


class SuppliersExposure(BaseModel):
    """Per-supplier rollups plus global totals."""
    suppliers: List[SupplierDebtSummary]
    totals: DebtTotals
