"""
Booking Payment Plan API Endpoints.

Booking terms, installment schedules and customer payments.
"""

from typing import List

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import TenantContext, get_tenant_context
from backend.app.db.session import get_db, atomic
from backend.app.domain.payment_plan.payment_applier import PaymentApplier
from backend.app.domain.payment_plan.schedule_service import (
    BookingItemTerms,
    BookingTerms,
    PaymentPlanService,
)
from backend.app.schemas.payment_plan import (
    BookingCreate,
    BookingResponse,
    BookingTermsUpdate,
    InstallmentResponse,
    PaymentCreate,
    PaymentResponse,
)

router = APIRouter(prefix="/bookings", tags=["Bookings - Payment Plan"])


def _terms_from(payload: BookingTermsUpdate) -> BookingTerms:
    return BookingTerms(
        total_price=payload.total_price,
        payment_type=payload.payment_type,
        net_cost=payload.net_cost,
        down_payment=payload.down_payment,
        installment_count=payload.installment_count,
        installment_frequency=payload.installment_frequency,
        payment_start_date=payload.payment_start_date,
        sale_date=payload.sale_date,
        supplier_id=payload.supplier_id,
        supplier_deadline=payload.supplier_deadline,
    )


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a booking. CREDIT bookings get their installment schedule; a down
    payment is booked as income when `down_payment_account_id` is given.
    """
    terms = _terms_from(payload)
    terms.items = [
        BookingItemTerms(
            item_type=item.item_type,
            cost=item.cost,
            supplier_id=item.supplier_id,
            supplier_deadline=item.supplier_deadline,
            description=item.description,
        )
        for item in payload.items
    ]
    async with atomic(db):
        booking = await PaymentPlanService.create_booking(
            db, ctx, terms, down_payment_account_id=payload.down_payment_account_id
        )
    await db.refresh(booking)
    return booking


@router.put("/{booking_id}/terms", response_model=BookingResponse)
async def update_booking_terms(
    payload: BookingTermsUpdate,
    booking_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    """Replace the priced terms; the schedule is rebuilt if they changed."""
    async with atomic(db):
        booking = await PaymentPlanService.update_booking_terms(db, ctx, booking_id, _terms_from(payload))
    await db.refresh(booking)
    return booking


@router.post("/{booking_id}/schedule/regenerate", response_model=List[InstallmentResponse])
async def regenerate_schedule(
    booking_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    async with atomic(db):
        await PaymentPlanService.regenerate_schedule(db, ctx, booking_id)
    return await PaymentPlanService.list_installments(db, ctx, booking_id)


@router.get("/{booking_id}/installments", response_model=List[InstallmentResponse])
async def list_installments(
    booking_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    return await PaymentPlanService.list_installments(db, ctx, booking_id)


@router.post("/{booking_id}/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
async def apply_payment(
    payload: PaymentCreate,
    booking_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Apply a customer payment from `installment_id` forward.

    The whole amount lands on the account as one income; anything beyond
    what the installments still owe comes back as `undistributed`.
    """
    async with atomic(db):
        result = await PaymentApplier.apply_payment(
            db, ctx,
            booking_id=booking_id,
            starting_installment_id=payload.installment_id,
            amount=payload.amount,
            account_id=payload.account_id,
            notes=payload.notes,
            paid_on=payload.paid_on,
        )

    return PaymentResponse(
        booking_id=result.booking.id,
        booking_status=result.booking.status,
        transaction_id=result.transaction.id,
        installments=[InstallmentResponse.model_validate(row) for row in result.installments],
        undistributed=result.undistributed,
    )
