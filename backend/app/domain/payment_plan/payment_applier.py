"""
Payment Applier (Domain Logic).

Turns one customer payment into installment progress plus a single INCOME on
the chosen account. The installment cascade and the money movement share the
caller's atomic unit: either both persist or neither does.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import TenantContext
from backend.app.core.exceptions import InvalidStateError, ValidationError
from backend.app.domain.ledger.recorder import TransactionRecorder
from backend.app.domain.money import ZERO, Number, to_money
from backend.app.domain.payment_plan.installment_state import (
    InstallmentSnapshot,
    distribute_payment,
    resolve_booking_status,
)
from backend.app.domain.payment_plan.schedule_service import PaymentPlanService
from backend.app.models.booking import Booking
from backend.app.models.installment import Installment
from backend.app.models.ledger_enums import BookingStatus, TransactionOrigin
from backend.app.models.ledger_transaction import LedgerTransaction
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("travel_ledger.payments")


@dataclass
class PaymentResult:
    booking: Booking
    installments: List[Installment]  # Rows touched by the cascade, sequence order
    transaction: LedgerTransaction
    undistributed: Decimal  # Recorded as income but not matched to any installment


class PaymentApplier:

    @staticmethod
    async def apply_payment(
        db: AsyncSession,
        ctx: TenantContext,
        booking_id: int,
        starting_installment_id: int,
        amount: Number,
        account_id: Optional[int],
        notes: Optional[str] = None,
        paid_on: Optional[date] = None,
    ) -> PaymentResult:
        """
        Apply a payment starting at one installment and spilling forward.

        The full amount is recorded as INCOME on `account_id`, linked to the
        booking. An amount larger than everything still owed from the starting
        installment on is accepted; the excess is reported as `undistributed`.

        Raises:
            ValidationError: amount <= 0 or no account given
            ResourceNotFoundError: booking, installment or account missing
            InvalidStateError: booking cancelled, account archived
        """
        value = to_money(amount)
        if value <= ZERO:
            raise ValidationError("Payment amount must be greater than 0", {"amount": str(value)})
        if account_id is None:
            raise ValidationError("An account is required to record the payment")
        paid_on = paid_on or date.today()

        booking = await PaymentPlanService.lock_booking(db, ctx, booking_id)
        if booking.status == BookingStatus.CANCELLED:
            raise InvalidStateError("Booking is cancelled", {"booking_id": booking_id})

        rows = list((await db.execute(
            select(Installment)
            .where(Installment.booking_id == booking.id)
            .order_by(Installment.sequence_number)
            .with_for_update()
            .execution_options(populate_existing=True)
        )).scalars().all())

        result = distribute_payment(
            [InstallmentSnapshot.from_row(row) for row in rows],
            starting_installment_id,
            value,
            paid_on,
            notes,
        )

        by_id = {row.id: row for row in rows}
        touched = []
        for snapshot in result.changed:
            row = by_id[snapshot.id]
            row.paid_amount = snapshot.paid_amount
            row.status = snapshot.status
            row.paid_date = snapshot.paid_date
            row.notes = snapshot.notes
            touched.append(row)

        previous_status = booking.status
        booking.status = resolve_booking_status(booking.status, booking.payment_type, result.all_paid)
        await db.flush()

        transaction = await TransactionRecorder.record_income(
            db, ctx, account_id, value,
            f"Installment payment - booking {booking.id}",
            booking_id=booking.id,
            reference=notes,
            occurred_on=paid_on,
            origin=TransactionOrigin.INSTALLMENT_PAYMENT,
        )

        await log_event(
            db, ctx, AuditAction.PAYMENT_APPLIED, "bookings", booking.id,
            {
                "transaction_id": transaction.id,
                "amount": str(value),
                "installments": [row.id for row in touched],
                "undistributed": str(result.leftover),
                "booking_status": booking.status.value,
            },
        )

        if result.leftover > ZERO:
            logger.warning(
                "Payment exceeds pending installments",
                extra={
                    "tenant_id": ctx.tenant_id,
                    "booking_id": booking.id,
                    "transaction_id": transaction.id,
                    "undistributed": str(result.leftover),
                },
            )
        logger.info(
            "Payment applied",
            extra={
                "tenant_id": ctx.tenant_id,
                "booking_id": booking.id,
                "amount": str(value),
                "booking_status": f"{previous_status.value}->{booking.status.value}",
            },
        )

        return PaymentResult(
            booking=booking,
            installments=touched,
            transaction=transaction,
            undistributed=result.leftover,
        )
