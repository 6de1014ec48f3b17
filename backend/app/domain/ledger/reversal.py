"""
Reversal Engine (Domain Logic).

Cancels a previously recorded transaction and unwinds everything that hung on
it, as one atomic unit:

- INCOME from an installment payment: balance given back, installments
  unwound from the highest sequence number down, booking reopened if it had
  auto-completed.
- Any other INCOME (down payment, standalone movement): balance only.
- EXPENSE: balance returned; a supplier payment it backed is cancelled too.
- TRANSFER (either half): both halves cancelled, both balances restored.

A transaction is cancelled at most once; a second attempt is an error so a
balance can never be reversed twice. Row locks follow the payment path:
booking before account.
"""

import logging
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import TenantContext
from backend.app.core.exceptions import InvalidStateError, ResourceNotFoundError
from backend.app.domain.ledger.recorder import TransactionRecorder
from backend.app.domain.payment_plan.installment_state import (
    InstallmentSnapshot,
    reverse_payment,
    resolve_booking_status,
)
from backend.app.domain.payment_plan.schedule_service import PaymentPlanService
from backend.app.models.booking import Booking
from backend.app.models.installment import Installment
from backend.app.models.ledger_enums import (
    SupplierPaymentStatus,
    TransactionKind,
    TransactionOrigin,
    TransactionStatus,
)
from backend.app.models.ledger_transaction import LedgerTransaction
from backend.app.models.supplier_payment import SupplierPayment
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("travel_ledger.ledger")


class ReversalEngine:

    @staticmethod
    async def _load_transaction(db: AsyncSession, ctx: TenantContext, transaction_id: int) -> LedgerTransaction:
        result = await db.execute(
            select(LedgerTransaction)
            .where(
                LedgerTransaction.id == transaction_id,
                LedgerTransaction.tenant_id == ctx.tenant_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        transaction = result.scalar_one_or_none()
        if transaction is None:
            raise ResourceNotFoundError("Transaction", transaction_id)
        return transaction

    @staticmethod
    async def cancel_transaction(db: AsyncSession, ctx: TenantContext, transaction_id: int) -> LedgerTransaction:
        """
        Cancel a transaction and cascade its reversal.

        Returns the cancelled transaction (for a transfer, the half that was asked for).

        Raises:
            ResourceNotFoundError: no such transaction for this tenant
            InvalidStateError: transaction already cancelled
        """
        transaction = await ReversalEngine._load_transaction(db, ctx, transaction_id)
        if transaction.status == TransactionStatus.CANCELLED:
            raise InvalidStateError(
                "Transaction is already cancelled",
                {"transaction_id": transaction.id},
            )

        if transaction.kind == TransactionKind.TRANSFER or transaction.origin == TransactionOrigin.TRANSFER_IN:
            await ReversalEngine._cancel_transfer_pair(db, ctx, transaction)
        elif transaction.kind == TransactionKind.INCOME:
            await ReversalEngine._cancel_income(db, ctx, transaction)
        else:
            await ReversalEngine._cancel_expense(db, ctx, transaction)

        await log_event(
            db, ctx, AuditAction.TRANSACTION_CANCELLED, "ledger_transactions", transaction.id,
            {
                "kind": transaction.kind.value,
                "origin": transaction.origin.value,
                "amount": str(transaction.amount),
                "booking_id": transaction.booking_id,
            },
        )
        logger.info(
            "Transaction cancelled",
            extra={
                "tenant_id": ctx.tenant_id,
                "transaction_id": transaction.id,
                "kind": transaction.kind.value,
                "amount": str(transaction.amount),
            },
        )
        return transaction

    @staticmethod
    async def _cancel_income(db: AsyncSession, ctx: TenantContext, transaction: LedgerTransaction) -> None:
        if transaction.booking_id is None or transaction.origin != TransactionOrigin.INSTALLMENT_PAYMENT:
            await TransactionRecorder.void(db, ctx, transaction)
            return

        booking = await PaymentPlanService.lock_booking(db, ctx, transaction.booking_id)
        await TransactionRecorder.void(db, ctx, transaction)
        await ReversalEngine._unwind_installments(db, ctx, booking, transaction)

    @staticmethod
    async def _unwind_installments(
        db: AsyncSession, ctx: TenantContext, booking: Booking, transaction: LedgerTransaction
    ) -> None:
        rows = list((await db.execute(
            select(Installment)
            .where(Installment.booking_id == booking.id)
            .order_by(Installment.sequence_number)
            .with_for_update()
            .execution_options(populate_existing=True)
        )).scalars().all())
        if not rows:
            return

        result = reverse_payment([InstallmentSnapshot.from_row(row) for row in rows], transaction.amount)
        by_id = {row.id: row for row in rows}
        for snapshot in result.changed:
            row = by_id[snapshot.id]
            row.paid_amount = snapshot.paid_amount
            row.status = snapshot.status
            row.paid_date = snapshot.paid_date

        previous_status = booking.status
        booking.status = resolve_booking_status(booking.status, booking.payment_type, result.all_paid)
        await db.flush()

        logger.info(
            "Installments unwound",
            extra={
                "tenant_id": ctx.tenant_id,
                "booking_id": booking.id,
                "transaction_id": transaction.id,
                "installments": [snapshot.id for snapshot in result.changed],
                "booking_status": f"{previous_status.value}->{booking.status.value}",
            },
        )

    @staticmethod
    async def _cancel_expense(db: AsyncSession, ctx: TenantContext, transaction: LedgerTransaction) -> None:
        await TransactionRecorder.void(db, ctx, transaction)
        if transaction.origin != TransactionOrigin.SUPPLIER_PAYMENT:
            return

        payment = (await db.execute(
            select(SupplierPayment).where(
                SupplierPayment.transaction_id == transaction.id,
                SupplierPayment.tenant_id == ctx.tenant_id,
            )
        )).scalar_one_or_none()
        if payment is not None and payment.status == SupplierPaymentStatus.ACTIVE:
            payment.status = SupplierPaymentStatus.CANCELLED
            payment.cancelled_at = datetime.now(timezone.utc)
            await db.flush()

    @staticmethod
    async def _cancel_transfer_pair(db: AsyncSession, ctx: TenantContext, transaction: LedgerTransaction) -> None:
        outgoing, incoming = await ReversalEngine._resolve_pair(db, ctx, transaction)

        account_ids = [outgoing.account_id]
        if incoming is not None:
            account_ids.append(incoming.account_id)
        await TransactionRecorder.lock_accounts(db, ctx, account_ids)

        await TransactionRecorder.void(db, ctx, outgoing)
        if incoming is not None:
            await TransactionRecorder.void(db, ctx, incoming)

    @staticmethod
    async def _resolve_pair(
        db: AsyncSession, ctx: TenantContext, transaction: LedgerTransaction
    ) -> Tuple[LedgerTransaction, Optional[LedgerTransaction]]:
        """Return (source-side TRANSFER, destination-side INCOME) for either half."""
        if transaction.kind == TransactionKind.TRANSFER:
            outgoing = transaction
            incoming = await ReversalEngine._find_incoming_half(db, ctx, outgoing)
            return outgoing, incoming

        if transaction.paired_transaction_id is None:
            raise InvalidStateError(
                "Transfer income has no source movement to cancel with",
                {"transaction_id": transaction.id},
            )
        outgoing = await ReversalEngine._load_transaction(db, ctx, transaction.paired_transaction_id)
        if outgoing.status == TransactionStatus.CANCELLED:
            raise InvalidStateError(
                "Transaction is already cancelled",
                {"transaction_id": outgoing.id},
            )
        return outgoing, transaction

    @staticmethod
    async def _find_incoming_half(
        db: AsyncSession, ctx: TenantContext, outgoing: LedgerTransaction
    ) -> Optional[LedgerTransaction]:
        """
        Destination-side INCOME of a transfer.

        Follows the stored pair link; rows recorded without one are matched on
        destination account, amount, date and the transfer-in marker.
        """
        query = select(LedgerTransaction).where(
            LedgerTransaction.tenant_id == ctx.tenant_id,
            LedgerTransaction.status == TransactionStatus.ACTIVE,
            LedgerTransaction.kind == TransactionKind.INCOME,
            LedgerTransaction.origin == TransactionOrigin.TRANSFER_IN,
        )
        if outgoing.paired_transaction_id is not None:
            query = query.where(LedgerTransaction.id == outgoing.paired_transaction_id)
        else:
            query = query.where(
                LedgerTransaction.account_id == outgoing.destination_account_id,
                LedgerTransaction.amount == outgoing.amount,
                LedgerTransaction.occurred_on == outgoing.occurred_on,
            ).order_by(LedgerTransaction.id)

        result = await db.execute(
            query.limit(1).with_for_update().execution_options(populate_existing=True)
        )
        incoming = result.scalars().first()
        if incoming is None:
            logger.warning(
                "Transfer has no active destination half",
                extra={"tenant_id": ctx.tenant_id, "transaction_id": outgoing.id},
            )
        return incoming
