"""
Payment Plan Service (Domain Logic).

Stores the schedule produced by the Amortization Scheduler. A booking's
installments are always regenerated wholesale when its priced terms change;
they are never patched field by field, so due dates cannot drift.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import TenantContext
from backend.app.core.exceptions import InvalidStateError, ResourceNotFoundError, ValidationError
from backend.app.domain.ledger.recorder import TransactionRecorder
from backend.app.domain.money import ZERO, to_money
from backend.app.domain.payment_plan.amortization import build_schedule
from backend.app.models.booking import Booking
from backend.app.models.booking_item import BookingItem
from backend.app.models.installment import Installment
from backend.app.models.ledger_enums import (
    BookingStatus,
    InstallmentFrequency,
    InstallmentStatus,
    PaymentType,
    TransactionOrigin,
)
from backend.app.models.supplier import Supplier
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("travel_ledger.payments")


@dataclass
class BookingItemTerms:
    item_type: str
    cost: Decimal
    supplier_id: Optional[int] = None
    supplier_deadline: Optional[date] = None
    description: Optional[str] = None


@dataclass
class BookingTerms:
    """Priced terms handed over by the booking CRUD surface."""
    total_price: Decimal
    payment_type: PaymentType
    net_cost: Decimal = ZERO
    down_payment: Decimal = ZERO
    installment_count: int = 0
    installment_frequency: InstallmentFrequency = InstallmentFrequency.SEMIMONTHLY
    payment_start_date: Optional[date] = None
    sale_date: Optional[date] = None
    supplier_id: Optional[int] = None
    supplier_deadline: Optional[date] = None
    items: Optional[List[BookingItemTerms]] = None


# Terms whose change invalidates the stored schedule
SCHEDULE_FIELDS = ("total_price", "payment_type", "installment_count", "down_payment", "installment_frequency")


def _validate_terms(terms: BookingTerms) -> None:
    total = to_money(terms.total_price)
    if total <= ZERO:
        raise ValidationError("Total price must be greater than 0", {"total_price": str(total)})
    if to_money(terms.net_cost) < ZERO:
        raise ValidationError("Net cost cannot be negative")
    if terms.payment_type == PaymentType.CREDIT and terms.installment_count < 1:
        raise ValidationError(
            "Credit sales need at least one installment",
            {"installment_count": terms.installment_count},
        )


class PaymentPlanService:

    @staticmethod
    async def lock_booking(db: AsyncSession, ctx: TenantContext, booking_id: int) -> Booking:
        """Load a booking of the caller's tenant with a row lock (serializes plan changes)."""
        result = await db.execute(
            select(Booking)
            .where(Booking.id == booking_id, Booking.tenant_id == ctx.tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        if booking is None:
            raise ResourceNotFoundError("Booking", booking_id)
        return booking

    @staticmethod
    async def _ensure_supplier(db: AsyncSession, ctx: TenantContext, supplier_id: Optional[int]) -> None:
        if supplier_id is None:
            return
        found = (await db.execute(
            select(Supplier.id).where(Supplier.id == supplier_id, Supplier.tenant_id == ctx.tenant_id)
        )).scalar_one_or_none()
        if found is None:
            raise ResourceNotFoundError("Supplier", supplier_id)

    @staticmethod
    async def create_booking(
        db: AsyncSession,
        ctx: TenantContext,
        terms: BookingTerms,
        down_payment_account_id: Optional[int] = None,
    ) -> Booking:
        """
        Persist a booking and its payment plan.

        CASH sales are COMPLETED with no installments; CREDIT sales start ACTIVE
        with a generated schedule. If `down_payment_account_id` is given and the
        down payment is positive, it is recorded as income on that account.
        """
        _validate_terms(terms)
        await PaymentPlanService._ensure_supplier(db, ctx, terms.supplier_id)
        for item in terms.items or []:
            await PaymentPlanService._ensure_supplier(db, ctx, item.supplier_id)

        booking = Booking(
            tenant_id=ctx.tenant_id,
            total_price=to_money(terms.total_price),
            net_cost=to_money(terms.net_cost),
            payment_type=terms.payment_type,
            down_payment=to_money(terms.down_payment),
            installment_count=terms.installment_count if terms.payment_type == PaymentType.CREDIT else 0,
            installment_frequency=terms.installment_frequency,
            payment_start_date=terms.payment_start_date,
            supplier_id=terms.supplier_id,
            supplier_deadline=terms.supplier_deadline,
            sale_date=terms.sale_date or date.today(),
            status=BookingStatus.ACTIVE,
        )
        db.add(booking)
        await db.flush()

        for item in terms.items or []:
            db.add(BookingItem(
                tenant_id=ctx.tenant_id,
                booking_id=booking.id,
                item_type=item.item_type,
                description=item.description,
                supplier_id=item.supplier_id,
                cost=to_money(item.cost),
                supplier_deadline=item.supplier_deadline,
            ))

        installments = await PaymentPlanService._write_schedule(db, booking)

        if down_payment_account_id is not None and booking.down_payment > ZERO:
            await TransactionRecorder.record_income(
                db, ctx, down_payment_account_id, booking.down_payment,
                f"Down payment - booking {booking.id}",
                booking_id=booking.id,
                reference="Down payment",
                origin=TransactionOrigin.DOWN_PAYMENT,
            )

        await log_event(
            db, ctx, AuditAction.BOOKING_CREATED, "bookings", booking.id,
            {
                "payment_type": booking.payment_type.value,
                "total_price": str(booking.total_price),
                "installments": len(installments),
            },
        )
        logger.info(
            "Booking created",
            extra={"tenant_id": ctx.tenant_id, "booking_id": booking.id, "installments": len(installments)},
        )
        return booking

    @staticmethod
    async def update_booking_terms(
        db: AsyncSession, ctx: TenantContext, booking_id: int, terms: BookingTerms
    ) -> Booking:
        """
        Apply new priced terms; regenerate the schedule when any of them changed.
        """
        _validate_terms(terms)
        await PaymentPlanService._ensure_supplier(db, ctx, terms.supplier_id)
        booking = await PaymentPlanService.lock_booking(db, ctx, booking_id)
        if booking.status == BookingStatus.CANCELLED:
            raise InvalidStateError("Booking is cancelled", {"booking_id": booking_id})

        new_values = {
            "total_price": to_money(terms.total_price),
            "payment_type": terms.payment_type,
            "installment_count": terms.installment_count if terms.payment_type == PaymentType.CREDIT else 0,
            "down_payment": to_money(terms.down_payment),
            "installment_frequency": terms.installment_frequency,
        }
        changed = [name for name in SCHEDULE_FIELDS if getattr(booking, name) != new_values[name]]

        for name, value in new_values.items():
            setattr(booking, name, value)
        booking.net_cost = to_money(terms.net_cost)
        booking.payment_start_date = terms.payment_start_date
        booking.supplier_id = terms.supplier_id
        booking.supplier_deadline = terms.supplier_deadline
        if terms.sale_date is not None:
            booking.sale_date = terms.sale_date
        await db.flush()

        if changed:
            await PaymentPlanService.regenerate_schedule(db, ctx, booking.id)
        return booking

    @staticmethod
    async def regenerate_schedule(db: AsyncSession, ctx: TenantContext, booking_id: int) -> List[Installment]:
        """
        Discard the booking's installments and rebuild them from its current terms.

        Raises:
            InvalidStateError: booking is cancelled
        """
        booking = await PaymentPlanService.lock_booking(db, ctx, booking_id)
        if booking.status == BookingStatus.CANCELLED:
            raise InvalidStateError("Booking is cancelled", {"booking_id": booking_id})

        await db.execute(delete(Installment).where(Installment.booking_id == booking.id))
        installments = await PaymentPlanService._write_schedule(db, booking)

        await log_event(
            db, ctx, AuditAction.SCHEDULE_REGENERATED, "bookings", booking.id,
            {"installments": len(installments), "status": booking.status.value},
        )
        logger.info(
            "Schedule regenerated",
            extra={"tenant_id": ctx.tenant_id, "booking_id": booking.id, "installments": len(installments)},
        )
        return installments

    @staticmethod
    async def _write_schedule(db: AsyncSession, booking: Booking) -> List[Installment]:
        if booking.payment_type == PaymentType.CASH or booking.installment_count < 1:
            booking.status = BookingStatus.COMPLETED if booking.payment_type == PaymentType.CASH else booking.status
            await db.flush()
            return []

        schedule = build_schedule(
            booking.total_price,
            booking.down_payment,
            booking.installment_count,
            booking.installment_frequency,
            booking.payment_start_date or date.today(),
        )
        rows = [
            Installment(
                booking_id=booking.id,
                sequence_number=entry.sequence_number,
                due_date=entry.due_date,
                amount=entry.amount,
                paid_amount=ZERO,
                paid_date=None,
                notes=None,
                status=InstallmentStatus.PAID if entry.amount <= ZERO else InstallmentStatus.PENDING,
            )
            for entry in schedule
        ]
        db.add_all(rows)
        booking.status = BookingStatus.ACTIVE
        await db.flush()
        return rows

    @staticmethod
    async def list_installments(db: AsyncSession, ctx: TenantContext, booking_id: int) -> List[Installment]:
        booking = (await db.execute(
            select(Booking.id).where(Booking.id == booking_id, Booking.tenant_id == ctx.tenant_id)
        )).scalar_one_or_none()
        if booking is None:
            raise ResourceNotFoundError("Booking", booking_id)

        result = await db.execute(
            select(Installment)
            .where(Installment.booking_id == booking_id)
            .order_by(Installment.sequence_number)
        )
        return list(result.scalars().all())
