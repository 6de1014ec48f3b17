"""
Transaction Recorder (Domain Logic).

Records typed movements against Ledger Accounts and keeps `current_balance` in
step with them. This module is the only place balances are written: the three
record operations add a transaction and its balance effect, `void` removes
one. Callers run these inside `atomic(db)` so the transaction row and the
balance change persist together or not at all.

Accounts are loaded with SELECT ... FOR UPDATE so concurrent movements on the
same account serialize and the funds check never reads a stale balance.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.dependencies import TenantContext
from backend.app.core.exceptions import (
    InsufficientFundsError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationError,
)
from backend.app.domain.money import ZERO, to_money, Number
from backend.app.models.booking import Booking
from backend.app.models.ledger_account import LedgerAccount
from backend.app.models.ledger_transaction import LedgerTransaction
from backend.app.models.ledger_enums import TransactionKind, TransactionOrigin, TransactionStatus
from backend.app.services.audit import log_event, AuditAction

logger = logging.getLogger("travel_ledger.ledger")


def _positive_amount(amount: Number) -> Decimal:
    value = to_money(amount)
    if value <= ZERO:
        raise ValidationError("Amount must be greater than 0", {"amount": str(value)})
    return value


def _required_description(description: Optional[str]) -> str:
    if not description or not description.strip():
        raise ValidationError("Description is required")
    return description.strip()


# Balance mutators. Nothing outside this module touches current_balance.

def _credit(account: LedgerAccount, amount: Decimal) -> None:
    account.current_balance = account.current_balance + amount


def _debit(account: LedgerAccount, amount: Decimal) -> None:
    account.current_balance = account.current_balance - amount


def _ensure_funds(account: LedgerAccount, amount: Decimal, message: str) -> None:
    if amount > account.current_balance:
        raise InsufficientFundsError(
            message,
            {
                "account_id": account.id,
                "available": str(account.current_balance),
                "requested": str(amount),
            },
        )


class TransactionRecorder:

    @staticmethod
    async def lock_account(
        db: AsyncSession,
        ctx: TenantContext,
        account_id: int,
        require_active: bool = True,
    ) -> LedgerAccount:
        """
        Load an account of the caller's tenant with a row lock.

        Raises:
            ResourceNotFoundError: no such account for this tenant
            InvalidStateError: account archived and `require_active`
        """
        result = await db.execute(
            select(LedgerAccount)
            .where(LedgerAccount.id == account_id, LedgerAccount.tenant_id == ctx.tenant_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise ResourceNotFoundError("Account", account_id)
        if require_active and not account.is_active:
            raise InvalidStateError("Account is archived", {"account_id": account_id})
        return account

    @staticmethod
    async def lock_accounts(db: AsyncSession, ctx: TenantContext, account_ids: Iterable[int]) -> None:
        """Lock several accounts in ascending id order (deadlock-free ordering)."""
        for account_id in sorted(set(account_ids)):
            await TransactionRecorder.lock_account(db, ctx, account_id, require_active=False)

    @staticmethod
    async def _ensure_booking(db: AsyncSession, ctx: TenantContext, booking_id: Optional[int]) -> None:
        if booking_id is None:
            return
        found = (await db.execute(
            select(Booking.id).where(Booking.id == booking_id, Booking.tenant_id == ctx.tenant_id)
        )).scalar_one_or_none()
        if found is None:
            raise ResourceNotFoundError("Booking", booking_id)

    @staticmethod
    async def record_income(
        db: AsyncSession,
        ctx: TenantContext,
        account_id: int,
        amount: Number,
        description: str,
        booking_id: Optional[int] = None,
        reference: Optional[str] = None,
        occurred_on: Optional[date] = None,
        origin: TransactionOrigin = TransactionOrigin.MANUAL,
    ) -> LedgerTransaction:
        """Record an INCOME and increment the account balance."""
        value = _positive_amount(amount)
        description = _required_description(description)
        await TransactionRecorder._ensure_booking(db, ctx, booking_id)
        account = await TransactionRecorder.lock_account(db, ctx, account_id)

        transaction = LedgerTransaction(
            tenant_id=ctx.tenant_id,
            account_id=account.id,
            kind=TransactionKind.INCOME,
            origin=origin,
            amount=value,
            description=description,
            reference=reference,
            booking_id=booking_id,
            occurred_on=occurred_on or date.today(),
            status=TransactionStatus.ACTIVE,
        )
        db.add(transaction)
        _credit(account, value)
        await db.flush()

        logger.info(
            "Income recorded",
            extra={
                "tenant_id": ctx.tenant_id,
                "account_id": account.id,
                "transaction_id": transaction.id,
                "amount": str(value),
                "booking_id": booking_id,
                "origin": origin.value,
            },
        )
        return transaction

    @staticmethod
    async def record_expense(
        db: AsyncSession,
        ctx: TenantContext,
        account_id: int,
        amount: Number,
        description: str,
        booking_id: Optional[int] = None,
        reference: Optional[str] = None,
        occurred_on: Optional[date] = None,
        origin: TransactionOrigin = TransactionOrigin.MANUAL,
    ) -> LedgerTransaction:
        """
        Record an EXPENSE and decrement the account balance.

        Raises:
            InsufficientFundsError: amount exceeds the current balance
        """
        value = _positive_amount(amount)
        description = _required_description(description)
        await TransactionRecorder._ensure_booking(db, ctx, booking_id)
        account = await TransactionRecorder.lock_account(db, ctx, account_id)
        _ensure_funds(account, value, "Insufficient balance in account")

        transaction = LedgerTransaction(
            tenant_id=ctx.tenant_id,
            account_id=account.id,
            kind=TransactionKind.EXPENSE,
            origin=origin,
            amount=value,
            description=description,
            reference=reference,
            booking_id=booking_id,
            occurred_on=occurred_on or date.today(),
            status=TransactionStatus.ACTIVE,
        )
        db.add(transaction)
        _debit(account, value)
        await db.flush()

        logger.info(
            "Expense recorded",
            extra={
                "tenant_id": ctx.tenant_id,
                "account_id": account.id,
                "transaction_id": transaction.id,
                "amount": str(value),
                "booking_id": booking_id,
                "origin": origin.value,
            },
        )
        return transaction

    @staticmethod
    async def record_transfer(
        db: AsyncSession,
        ctx: TenantContext,
        source_account_id: int,
        destination_account_id: Optional[int],
        amount: Number,
        description: str,
        reference: Optional[str] = None,
        occurred_on: Optional[date] = None,
    ) -> LedgerTransaction:
        """
        Move money between two accounts of the same tenant.

        Creates the linked pair (TRANSFER on the source, INCOME/TRANSFER_IN on the
        destination) and updates both balances. Returns the source-side row.

        Raises:
            ValidationError: bad amount/description or no destination given
            InvalidStateError: destination equals source, or is missing/archived
            InsufficientFundsError: source balance below amount
        """
        value = _positive_amount(amount)
        description = _required_description(description)
        if destination_account_id is None:
            raise ValidationError("Destination account is required for a transfer")
        if destination_account_id == source_account_id:
            raise InvalidStateError(
                "Destination account must differ from source account",
                {"account_id": source_account_id},
            )

        await TransactionRecorder.get_account(db, ctx, source_account_id)
        destination_found = (await db.execute(
            select(LedgerAccount.id).where(
                LedgerAccount.id == destination_account_id,
                LedgerAccount.tenant_id == ctx.tenant_id,
            )
        )).scalar_one_or_none()
        if destination_found is None:
            raise InvalidStateError(
                "Destination account not found",
                {"destination_account_id": destination_account_id},
            )

        # Lock both rows in id order before reading either balance.
        await TransactionRecorder.lock_accounts(db, ctx, [source_account_id, destination_account_id])
        source = await TransactionRecorder.lock_account(db, ctx, source_account_id)
        destination = await TransactionRecorder.lock_account(db, ctx, destination_account_id, require_active=False)
        if not destination.is_active:
            raise InvalidStateError(
                "Destination account is archived",
                {"destination_account_id": destination_account_id},
            )
        _ensure_funds(source, value, "Insufficient balance in source account")

        when = occurred_on or date.today()
        outgoing = LedgerTransaction(
            tenant_id=ctx.tenant_id,
            account_id=source.id,
            kind=TransactionKind.TRANSFER,
            origin=TransactionOrigin.MANUAL,
            amount=value,
            description=description,
            reference=reference,
            destination_account_id=destination.id,
            occurred_on=when,
            status=TransactionStatus.ACTIVE,
        )
        incoming = LedgerTransaction(
            tenant_id=ctx.tenant_id,
            account_id=destination.id,
            kind=TransactionKind.INCOME,
            origin=TransactionOrigin.TRANSFER_IN,
            amount=value,
            description=f"Transfer from {source.label}",
            reference=reference,
            occurred_on=when,
            status=TransactionStatus.ACTIVE,
        )
        db.add_all([outgoing, incoming])
        await db.flush()
        outgoing.paired_transaction_id = incoming.id
        incoming.paired_transaction_id = outgoing.id

        _debit(source, value)
        _credit(destination, value)
        await db.flush()

        logger.info(
            "Transfer recorded",
            extra={
                "tenant_id": ctx.tenant_id,
                "source_account_id": source.id,
                "destination_account_id": destination.id,
                "transaction_id": outgoing.id,
                "paired_transaction_id": incoming.id,
                "amount": str(value),
            },
        )
        return outgoing

    @staticmethod
    async def void(db: AsyncSession, ctx: TenantContext, transaction: LedgerTransaction) -> LedgerTransaction:
        """
        Cancel one transaction row and undo its own balance effect.

        INCOME rows give the amount back (the balance may go below zero), EXPENSE
        and TRANSFER rows return it to their account. Paired rows and cascades are
        the Reversal Engine's job.

        Raises:
            InvalidStateError: transaction already CANCELLED
        """
        if transaction.status == TransactionStatus.CANCELLED:
            raise InvalidStateError(
                "Transaction is already cancelled",
                {"transaction_id": transaction.id},
            )

        account = await TransactionRecorder.lock_account(db, ctx, transaction.account_id, require_active=False)
        if transaction.kind == TransactionKind.INCOME:
            _debit(account, transaction.amount)
        else:
            _credit(account, transaction.amount)

        transaction.status = TransactionStatus.CANCELLED
        transaction.cancelled_at = datetime.now(timezone.utc)
        await db.flush()
        return transaction

    @staticmethod
    async def record_movement(
        db: AsyncSession,
        ctx: TenantContext,
        account_id: int,
        kind: TransactionKind,
        amount: Number,
        description: str,
        reference: Optional[str] = None,
        booking_id: Optional[int] = None,
        occurred_on: Optional[date] = None,
        destination_account_id: Optional[int] = None,
    ) -> LedgerTransaction:
        """Standalone account movement, dispatched on kind. Audited."""
        if kind == TransactionKind.INCOME:
            transaction = await TransactionRecorder.record_income(
                db, ctx, account_id, amount, description,
                booking_id=booking_id, reference=reference, occurred_on=occurred_on,
            )
        elif kind == TransactionKind.EXPENSE:
            transaction = await TransactionRecorder.record_expense(
                db, ctx, account_id, amount, description,
                booking_id=booking_id, reference=reference, occurred_on=occurred_on,
            )
        elif kind == TransactionKind.TRANSFER:
            transaction = await TransactionRecorder.record_transfer(
                db, ctx, account_id, destination_account_id, amount, description,
                reference=reference, occurred_on=occurred_on,
            )
        else:
            raise ValidationError("Invalid movement kind", {"kind": str(kind)})

        await log_event(
            db, ctx, AuditAction.MOVEMENT_RECORDED, "ledger_transactions", transaction.id,
            {
                "kind": transaction.kind.value,
                "amount": str(transaction.amount),
                "account_id": account_id,
                "destination_account_id": destination_account_id,
            },
        )
        return transaction

    # Account lifecycle and reads

    @staticmethod
    async def open_account(
        db: AsyncSession,
        ctx: TenantContext,
        label: str,
        initial_balance: Number = 0,
        bank_name: Optional[str] = None,
        account_type: Optional[str] = None,
    ) -> LedgerAccount:
        """Create an account whose current balance starts at its initial balance."""
        if not label or not label.strip():
            raise ValidationError("Account label is required")
        opening = to_money(initial_balance)

        account = LedgerAccount(
            tenant_id=ctx.tenant_id,
            label=label.strip(),
            bank_name=bank_name,
            account_type=account_type,
            initial_balance=opening,
            current_balance=opening,
            is_active=True,
        )
        db.add(account)
        await db.flush()

        await log_event(
            db, ctx, AuditAction.ACCOUNT_OPENED, "ledger_accounts", account.id,
            {"label": account.label, "initial_balance": str(opening)},
        )
        return account

    @staticmethod
    async def archive_account(
        db: AsyncSession,
        ctx: TenantContext,
        account_id: int,
        transfer_to_account_id: Optional[int] = None,
    ) -> LedgerAccount:
        """
        Archive an account, moving a positive balance out first.

        The leftover balance leaves through `record_transfer`, so the archived
        account ends at zero with its history intact.

        Raises:
            InvalidStateError: positive balance and no transfer target
        """
        account = await TransactionRecorder.lock_account(db, ctx, account_id)
        balance = account.current_balance

        if balance > ZERO:
            if transfer_to_account_id is None:
                raise InvalidStateError(
                    "Account still holds a balance; choose an account to transfer it to",
                    {"account_id": account_id, "balance": str(balance), "needs_transfer": True},
                )
            await TransactionRecorder.record_transfer(
                db, ctx, account_id, transfer_to_account_id, balance,
                f"Balance moved out of archived account {account.label}",
            )

        account.is_active = False
        account.archived_at = datetime.now(timezone.utc)
        await db.flush()

        await log_event(
            db, ctx, AuditAction.ACCOUNT_ARCHIVED, "ledger_accounts", account.id,
            {"moved_balance": str(balance) if balance > ZERO else "0.00",
             "transfer_to_account_id": transfer_to_account_id},
        )
        logger.info(
            "Account archived",
            extra={"tenant_id": ctx.tenant_id, "account_id": account.id, "moved_balance": str(balance)},
        )
        return account

    @staticmethod
    async def get_account(db: AsyncSession, ctx: TenantContext, account_id: int) -> LedgerAccount:
        result = await db.execute(
            select(LedgerAccount).where(
                LedgerAccount.id == account_id, LedgerAccount.tenant_id == ctx.tenant_id
            )
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise ResourceNotFoundError("Account", account_id)
        return account

    @staticmethod
    async def list_accounts(
        db: AsyncSession, ctx: TenantContext, include_archived: bool = False
    ) -> List[LedgerAccount]:
        query = select(LedgerAccount).where(LedgerAccount.tenant_id == ctx.tenant_id)
        if not include_archived:
            query = query.where(LedgerAccount.is_active.is_(True))
        result = await db.execute(query.order_by(LedgerAccount.label))
        return list(result.scalars().all())

    @staticmethod
    async def list_transactions(
        db: AsyncSession,
        ctx: TenantContext,
        account_id: int,
        kind: Optional[TransactionKind] = None,
        page: int = 1,
        limit: Optional[int] = None,
    ) -> Tuple[List[LedgerTransaction], int]:
        """Newest-first page of an account's transactions plus the total count."""
        await TransactionRecorder.get_account(db, ctx, account_id)

        limit = min(limit or settings.default_page_size, settings.max_page_size)
        page = max(page, 1)

        filters = [
            LedgerTransaction.tenant_id == ctx.tenant_id,
            LedgerTransaction.account_id == account_id,
        ]
        if kind is not None:
            filters.append(LedgerTransaction.kind == kind)

        total = (await db.execute(select(func.count(LedgerTransaction.id)).where(*filters))).scalar() or 0
        result = await db.execute(
            select(LedgerTransaction)
            .where(*filters)
            .order_by(LedgerTransaction.occurred_on.desc(), LedgerTransaction.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total
