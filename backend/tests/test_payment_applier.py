"""
Payment Applier Tests.

Validates spillover persistence, booking completion, income recording and
all-or-nothing behaviour.
"""

import pytest
from datetime import date
from decimal import Decimal
from sqlalchemy import select, func

from backend.app.core.exceptions import (
    InvalidStateError,
    ResourceNotFoundError,
    ValidationError,
)
from backend.app.db.session import atomic
from backend.app.domain.ledger.recorder import TransactionRecorder
from backend.app.domain.payment_plan.payment_applier import PaymentApplier
from backend.app.domain.payment_plan.schedule_service import PaymentPlanService
from backend.app.models.booking import Booking
from backend.app.models.ledger_enums import (
    BookingStatus,
    InstallmentStatus,
    TransactionKind,
    TransactionOrigin,
)
from backend.app.models.ledger_transaction import LedgerTransaction


async def _booking_status(db, booking_id):
    return (await db.execute(select(Booking.status).where(Booking.id == booking_id))).scalar_one()


@pytest.mark.asyncio
async def test_payment_spills_over_and_records_income(db_session, ctx, make_account, make_credit_booking):
    account_id = await make_account("Main", "0")
    booking_id, installment_ids = await make_credit_booking(total="300", count=3)

    async with atomic(db_session):
        result = await PaymentApplier.apply_payment(
            db_session, ctx, booking_id, installment_ids[0], "250", account_id,
            notes="Deposit slip 44", paid_on=date(2025, 3, 20),
        )

    assert [row.id for row in result.installments] == installment_ids
    assert result.undistributed == Decimal("0")

    installments = await PaymentPlanService.list_installments(db_session, ctx, booking_id)
    assert [inst.status for inst in installments] == [
        InstallmentStatus.PAID, InstallmentStatus.PAID, InstallmentStatus.PENDING,
    ]
    assert installments[2].paid_amount == Decimal("50.00")
    assert installments[0].paid_date == date(2025, 3, 20)
    assert installments[0].notes == "Deposit slip 44"

    transaction = result.transaction
    assert transaction.kind == TransactionKind.INCOME
    assert transaction.origin == TransactionOrigin.INSTALLMENT_PAYMENT
    assert transaction.booking_id == booking_id
    assert transaction.amount == Decimal("250.00")
    assert (await TransactionRecorder.get_account(db_session, ctx, account_id)).current_balance == Decimal("250.00")
    assert await _booking_status(db_session, booking_id) == BookingStatus.ACTIVE


@pytest.mark.asyncio
async def test_last_payment_completes_booking(db_session, ctx, make_account, make_credit_booking):
    account_id = await make_account()
    booking_id, installment_ids = await make_credit_booking(total="300", count=3)

    async with atomic(db_session):
        await PaymentApplier.apply_payment(db_session, ctx, booking_id, installment_ids[0], "200", account_id)
    async with atomic(db_session):
        result = await PaymentApplier.apply_payment(db_session, ctx, booking_id, installment_ids[2], "100", account_id)

    assert result.booking.status == BookingStatus.COMPLETED
    assert await _booking_status(db_session, booking_id) == BookingStatus.COMPLETED


@pytest.mark.asyncio
async def test_overpayment_is_recorded_in_full(db_session, ctx, make_account, make_credit_booking):
    account_id = await make_account()
    booking_id, installment_ids = await make_credit_booking(total="300", count=3)

    async with atomic(db_session):
        result = await PaymentApplier.apply_payment(db_session, ctx, booking_id, installment_ids[1], "250", account_id)

    assert result.undistributed == Decimal("50.00")
    assert result.transaction.amount == Decimal("250.00")
    assert result.booking.status == BookingStatus.ACTIVE  # first installment still open


@pytest.mark.asyncio
async def test_invalid_payments_leave_no_trace(db_session, ctx, make_account, make_credit_booking):
    account_id = await make_account()
    booking_id, installment_ids = await make_credit_booking()

    with pytest.raises(ValidationError):
        async with atomic(db_session):
            await PaymentApplier.apply_payment(db_session, ctx, booking_id, installment_ids[0], "0", account_id)

    with pytest.raises(ValidationError):
        async with atomic(db_session):
            await PaymentApplier.apply_payment(db_session, ctx, booking_id, installment_ids[0], "10", None)

    with pytest.raises(ResourceNotFoundError):
        async with atomic(db_session):
            await PaymentApplier.apply_payment(db_session, ctx, booking_id, 9999, "10", account_id)

    # Account lookup fails after installments were touched; everything rolls back.
    with pytest.raises(ResourceNotFoundError):
        async with atomic(db_session):
            await PaymentApplier.apply_payment(db_session, ctx, booking_id, installment_ids[0], "100", 9999)

    installments = await PaymentPlanService.list_installments(db_session, ctx, booking_id)
    assert all(inst.paid_amount == Decimal("0.00") for inst in installments)
    count = (await db_session.execute(select(func.count(LedgerTransaction.id)))).scalar()
    assert count == 0


@pytest.mark.asyncio
async def test_payment_into_archived_account_is_rejected(db_session, ctx, make_account, make_credit_booking):
    account_id = await make_account("Closed", "0")
    booking_id, installment_ids = await make_credit_booking()
    async with atomic(db_session):
        await TransactionRecorder.archive_account(db_session, ctx, account_id)

    with pytest.raises(InvalidStateError):
        async with atomic(db_session):
            await PaymentApplier.apply_payment(db_session, ctx, booking_id, installment_ids[0], "100", account_id)


@pytest.mark.asyncio
async def test_other_tenant_cannot_pay_booking(db_session, other_ctx, make_account, make_credit_booking):
    account_id = await make_account()
    booking_id, installment_ids = await make_credit_booking()

    with pytest.raises(ResourceNotFoundError):
        async with atomic(db_session):
            await PaymentApplier.apply_payment(db_session, other_ctx, booking_id, installment_ids[0], "100", account_id)
