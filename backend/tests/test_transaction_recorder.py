"""
Transaction Recorder Tests.

Validates balance bookkeeping, overdraft protection, transfers and
account archiving.
"""

import pytest
from decimal import Decimal
from sqlalchemy import select, func

from backend.app.core.exceptions import (
    InsufficientFundsError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationError,
)
from backend.app.db.session import atomic
from backend.app.domain.ledger.recorder import TransactionRecorder
from backend.app.domain.payment_plan.schedule_service import BookingTerms, PaymentPlanService
from backend.app.models.audit_log import AuditLog
from backend.app.models.ledger_enums import PaymentType, TransactionKind, TransactionOrigin, TransactionStatus
from backend.app.models.ledger_transaction import LedgerTransaction
from backend.app.services.audit import get_audit_trail


async def _open(db, ctx, label, balance):
    async with atomic(db):
        account = await TransactionRecorder.open_account(db, ctx, label, initial_balance=balance)
    return account.id


async def _active_sum(db, account_id, kind):
    total = (await db.execute(
        select(func.coalesce(func.sum(LedgerTransaction.amount), 0)).where(
            LedgerTransaction.account_id == account_id,
            LedgerTransaction.kind == kind,
            LedgerTransaction.status == TransactionStatus.ACTIVE,
        )
    )).scalar()
    return Decimal(str(total))


@pytest.mark.asyncio
async def test_balance_equals_initial_plus_active_movements(db_session, ctx):
    account_id = await _open(db_session, ctx, "Main", "1000")
    other_id = await _open(db_session, ctx, "Petty cash", "0")

    async with atomic(db_session):
        await TransactionRecorder.record_income(db_session, ctx, account_id, "250.50", "Deposit")
        await TransactionRecorder.record_expense(db_session, ctx, account_id, "100", "Office rent")
        await TransactionRecorder.record_transfer(db_session, ctx, account_id, other_id, "50", "Float")

    refreshed = await TransactionRecorder.get_account(db_session, ctx, account_id)
    income = await _active_sum(db_session, account_id, TransactionKind.INCOME)
    expense = await _active_sum(db_session, account_id, TransactionKind.EXPENSE)
    transfer = await _active_sum(db_session, account_id, TransactionKind.TRANSFER)

    assert refreshed.current_balance == Decimal("1100.50")
    assert refreshed.current_balance == refreshed.initial_balance + income - expense - transfer


@pytest.mark.asyncio
async def test_expense_cannot_overdraw(db_session, ctx):
    account_id = await _open(db_session, ctx, "Main", "100")

    with pytest.raises(InsufficientFundsError):
        async with atomic(db_session):
            await TransactionRecorder.record_expense(db_session, ctx, account_id, "100.01", "Too much")

    refreshed = await TransactionRecorder.get_account(db_session, ctx, account_id)
    count = (await db_session.execute(select(func.count(LedgerTransaction.id)))).scalar()
    assert refreshed.current_balance == Decimal("100.00")
    assert count == 0


@pytest.mark.asyncio
async def test_expense_of_exact_balance_is_allowed(db_session, ctx):
    account_id = await _open(db_session, ctx, "Main", "100")

    async with atomic(db_session):
        await TransactionRecorder.record_expense(db_session, ctx, account_id, "100", "All of it")

    refreshed = await TransactionRecorder.get_account(db_session, ctx, account_id)
    assert refreshed.current_balance == Decimal("0.00")


@pytest.mark.asyncio
async def test_rejects_non_positive_amount_and_blank_description(db_session, ctx):
    account_id = await _open(db_session, ctx, "Main", "100")

    with pytest.raises(ValidationError):
        async with atomic(db_session):
            await TransactionRecorder.record_income(db_session, ctx, account_id, "0", "Nothing")

    with pytest.raises(ValidationError):
        async with atomic(db_session):
            await TransactionRecorder.record_income(db_session, ctx, account_id, "10", "   ")


@pytest.mark.asyncio
async def test_transfer_creates_linked_pair(db_session, ctx):
    source_id = await _open(db_session, ctx, "Main", "500")
    destination_id = await _open(db_session, ctx, "Savings", "0")

    async with atomic(db_session):
        outgoing = await TransactionRecorder.record_transfer(
            db_session, ctx, source_id, destination_id, "200", "Monthly savings"
        )

    incoming = (await db_session.execute(
        select(LedgerTransaction).where(LedgerTransaction.id == outgoing.paired_transaction_id)
    )).scalar_one()

    assert outgoing.kind == TransactionKind.TRANSFER
    assert outgoing.destination_account_id == destination_id
    assert incoming.kind == TransactionKind.INCOME
    assert incoming.origin == TransactionOrigin.TRANSFER_IN
    assert incoming.account_id == destination_id
    assert incoming.paired_transaction_id == outgoing.id
    assert incoming.description == "Transfer from Main"

    assert (await TransactionRecorder.get_account(db_session, ctx, source_id)).current_balance == Decimal("300.00")
    assert (await TransactionRecorder.get_account(db_session, ctx, destination_id)).current_balance == Decimal("200.00")


@pytest.mark.asyncio
async def test_transfer_errors(db_session, ctx):
    source_id = await _open(db_session, ctx, "Main", "100")
    destination_id = await _open(db_session, ctx, "Savings", "0")

    with pytest.raises(InvalidStateError):
        async with atomic(db_session):
            await TransactionRecorder.record_transfer(db_session, ctx, source_id, source_id, "10", "Self")

    with pytest.raises(InvalidStateError):
        async with atomic(db_session):
            await TransactionRecorder.record_transfer(db_session, ctx, source_id, 9999, "10", "Nowhere")

    with pytest.raises(ValidationError):
        async with atomic(db_session):
            await TransactionRecorder.record_transfer(db_session, ctx, source_id, None, "10", "Missing")

    with pytest.raises(InsufficientFundsError):
        async with atomic(db_session):
            await TransactionRecorder.record_transfer(db_session, ctx, source_id, destination_id, "100.01", "Short")

    assert (await TransactionRecorder.get_account(db_session, ctx, source_id)).current_balance == Decimal("100.00")


@pytest.mark.asyncio
async def test_other_tenant_accounts_are_invisible(db_session, ctx, other_ctx):
    account_id = await _open(db_session, ctx, "Main", "100")

    with pytest.raises(ResourceNotFoundError):
        await TransactionRecorder.get_account(db_session, other_ctx, account_id)

    with pytest.raises(ResourceNotFoundError):
        async with atomic(db_session):
            await TransactionRecorder.record_income(db_session, other_ctx, account_id, "10", "Sneaky")


@pytest.mark.asyncio
async def test_archive_requires_target_for_positive_balance(db_session, ctx):
    account_id = await _open(db_session, ctx, "Old bank", "75")
    target_id = await _open(db_session, ctx, "New bank", "0")

    with pytest.raises(InvalidStateError) as exc_info:
        async with atomic(db_session):
            await TransactionRecorder.archive_account(db_session, ctx, account_id)
    assert exc_info.value.details["needs_transfer"] is True

    async with atomic(db_session):
        archived = await TransactionRecorder.archive_account(
            db_session, ctx, account_id, transfer_to_account_id=target_id
        )

    assert archived.is_active is False
    assert archived.current_balance == Decimal("0.00")
    assert (await TransactionRecorder.get_account(db_session, ctx, target_id)).current_balance == Decimal("75.00")

    with pytest.raises(InvalidStateError):
        async with atomic(db_session):
            await TransactionRecorder.record_income(db_session, ctx, account_id, "5", "Late deposit")

    visible = await TransactionRecorder.list_accounts(db_session, ctx)
    assert [a.id for a in visible] == [target_id]


@pytest.mark.asyncio
async def test_list_transactions_pages_newest_first(db_session, ctx):
    account_id = await _open(db_session, ctx, "Main", "0")

    async with atomic(db_session):
        for n in range(5):
            await TransactionRecorder.record_income(db_session, ctx, account_id, str(n + 1), f"Deposit {n + 1}")

    rows, total = await TransactionRecorder.list_transactions(db_session, ctx, account_id, page=1, limit=2)
    assert total == 5
    assert [row.description for row in rows] == ["Deposit 5", "Deposit 4"]

    rows, _ = await TransactionRecorder.list_transactions(db_session, ctx, account_id, page=3, limit=2)
    assert [row.description for row in rows] == ["Deposit 1"]


@pytest.mark.asyncio
async def test_movements_are_audited(db_session, ctx):
    account_id = await _open(db_session, ctx, "Main", "0")

    async with atomic(db_session):
        await TransactionRecorder.record_movement(
            db_session, ctx, account_id, TransactionKind.INCOME, "40", "Walk-in sale"
        )

    actions = (await db_session.execute(
        select(AuditLog.action).where(AuditLog.tenant_id == ctx.tenant_id).order_by(AuditLog.id)
    )).scalars().all()
    assert actions == ["ACCOUNT_OPENED", "MOVEMENT_RECORDED"]

    trail = await get_audit_trail(db_session, ctx, entity="ledger_accounts", entity_id=account_id)
    assert [entry.action for entry in trail] == ["ACCOUNT_OPENED"]


@pytest.mark.asyncio
async def test_audit_trail_is_tenant_scoped(db_session, ctx, other_ctx):
    await _open(db_session, ctx, "Main", "0")

    assert await get_audit_trail(db_session, other_ctx) == []


@pytest.mark.asyncio
@pytest.mark.parametrize("kind", [TransactionKind.INCOME, TransactionKind.EXPENSE])
async def test_movement_for_unknown_booking_is_not_found(db_session, ctx, kind):
    account_id = await _open(db_session, ctx, "Main", "500")

    with pytest.raises(ResourceNotFoundError):
        async with atomic(db_session):
            await TransactionRecorder.record_movement(
                db_session, ctx, account_id, kind, "100", "Counter sale", booking_id=9999
            )

    assert (await TransactionRecorder.get_account(db_session, ctx, account_id)).current_balance == Decimal("500.00")


@pytest.mark.asyncio
async def test_movement_cannot_link_another_tenants_booking(db_session, ctx, other_ctx):
    account_id = await _open(db_session, ctx, "Main", "0")
    async with atomic(db_session):
        foreign = await PaymentPlanService.create_booking(
            db_session, other_ctx, BookingTerms(total_price=Decimal("800"), payment_type=PaymentType.CASH)
        )
        foreign_id = foreign.id

    with pytest.raises(ResourceNotFoundError):
        async with atomic(db_session):
            await TransactionRecorder.record_income(
                db_session, ctx, account_id, "100", "Counter sale", booking_id=foreign_id
            )

    count = (await db_session.execute(
        select(func.count(LedgerTransaction.id)).where(LedgerTransaction.booking_id == foreign_id)
    )).scalar()
    assert count == 0
