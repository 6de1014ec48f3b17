"""
Supplier payments.

A supplier payment is an EXPENSE on an agency account plus a SupplierPayment
row pointing at it. Both are created in one atomic unit and cancelled together
through the Reversal Engine.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.dependencies import TenantContext
from backend.app.core.exceptions import (
    InsufficientFundsError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationError,
)
from backend.app.domain.ledger.recorder import TransactionRecorder
from backend.app.domain.ledger.reversal import ReversalEngine
from backend.app.domain.money import ZERO, Number, to_money
from backend.app.domain.payment_plan.schedule_service import PaymentPlanService
from backend.app.domain.suppliers.debt_aggregator import SupplierDebtService
from backend.app.models.booking_item import BookingItem
from backend.app.models.ledger_enums import BookingStatus, SupplierPaymentStatus, TransactionOrigin
from backend.app.models.supplier_payment import SupplierPayment
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("travel_ledger.suppliers")


class SupplierPaymentService:

    @staticmethod
    async def record_supplier_payment(
        db: AsyncSession,
        ctx: TenantContext,
        booking_id: int,
        supplier_id: int,
        account_id: int,
        amount: Number,
        notes: Optional[str] = None,
        paid_on: Optional[date] = None,
    ) -> SupplierPayment:
        """
        Pay a supplier for a booking out of an account.

        Raises:
            ValidationError: amount <= 0, booking not linked to the supplier
            ResourceNotFoundError: booking, supplier or account missing
            InvalidStateError: booking cancelled, account archived
            InsufficientFundsError: amount above the remaining debt, or above the account balance
        """
        value = to_money(amount)
        if value <= ZERO:
            raise ValidationError("Payment amount must be greater than 0", {"amount": str(value)})

        supplier = await SupplierDebtService.get_supplier(db, ctx, supplier_id)
        booking = await PaymentPlanService.lock_booking(db, ctx, booking_id)
        if booking.status == BookingStatus.CANCELLED:
            raise InvalidStateError("Booking is cancelled", {"booking_id": booking_id})

        if booking.supplier_id != supplier.id:
            item_link = (await db.execute(
                select(BookingItem.id).where(
                    BookingItem.booking_id == booking.id,
                    BookingItem.supplier_id == supplier.id,
                ).limit(1)
            )).scalar_one_or_none()
            if item_link is None:
                raise ValidationError(
                    "Booking is not linked to this supplier",
                    {"booking_id": booking.id, "supplier_id": supplier.id},
                )

        lines = await SupplierDebtService.collect_debt_lines(
            db, ctx, supplier_id=supplier.id, booking_id=booking.id
        )
        remaining = lines[0].remaining if lines else ZERO
        if value > remaining + settings.supplier_payment_tolerance:
            raise InsufficientFundsError(
                "Payment exceeds the remaining supplier debt",
                {"remaining": str(remaining), "requested": str(value)},
            )

        paid_on = paid_on or date.today()
        transaction = await TransactionRecorder.record_expense(
            db, ctx, account_id, value,
            f"Supplier payment: {supplier.name}",
            booking_id=booking.id,
            reference=notes,
            occurred_on=paid_on,
            origin=TransactionOrigin.SUPPLIER_PAYMENT,
        )

        payment = SupplierPayment(
            tenant_id=ctx.tenant_id,
            booking_id=booking.id,
            supplier_id=supplier.id,
            account_id=transaction.account_id,
            transaction_id=transaction.id,
            amount=value,
            notes=notes,
            paid_on=paid_on,
            status=SupplierPaymentStatus.ACTIVE,
            created_by=ctx.user_id,
        )
        db.add(payment)
        await db.flush()

        await log_event(
            db, ctx, AuditAction.SUPPLIER_PAYMENT_RECORDED, "supplier_payments", payment.id,
            {
                "booking_id": booking.id,
                "supplier_id": supplier.id,
                "transaction_id": transaction.id,
                "amount": str(value),
            },
        )
        logger.info(
            "Supplier payment recorded",
            extra={
                "tenant_id": ctx.tenant_id,
                "supplier_id": supplier.id,
                "booking_id": booking.id,
                "amount": str(value),
                "remaining_before": str(remaining),
            },
        )
        return payment

    @staticmethod
    async def cancel_supplier_payment(db: AsyncSession, ctx: TenantContext, payment_id: int) -> SupplierPayment:
        """
        Cancel a supplier payment by cancelling its backing expense.

        Raises:
            ResourceNotFoundError: no such payment for this tenant
            InvalidStateError: payment already cancelled
        """
        payment = (await db.execute(
            select(SupplierPayment).where(
                SupplierPayment.id == payment_id,
                SupplierPayment.tenant_id == ctx.tenant_id,
            )
        )).scalar_one_or_none()
        if payment is None:
            raise ResourceNotFoundError("Supplier payment", payment_id)
        if payment.status == SupplierPaymentStatus.CANCELLED:
            raise InvalidStateError("Supplier payment is already cancelled", {"payment_id": payment.id})

        await ReversalEngine.cancel_transaction(db, ctx, payment.transaction_id)

        await log_event(
            db, ctx, AuditAction.SUPPLIER_PAYMENT_CANCELLED, "supplier_payments", payment.id,
            {"transaction_id": payment.transaction_id, "amount": str(payment.amount)},
        )
        logger.info(
            "Supplier payment cancelled",
            extra={"tenant_id": ctx.tenant_id, "payment_id": payment.id, "amount": str(payment.amount)},
        )
        return payment
