"""
Ledger Account API Endpoints.

Accounts, standalone movements, transaction history and cancellation.
"""

import math
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import TenantContext, get_tenant_context
from backend.app.db.session import get_db, atomic
from backend.app.domain.ledger.recorder import TransactionRecorder
from backend.app.domain.ledger.reversal import ReversalEngine
from backend.app.core.config import settings
from backend.app.models.ledger_enums import TransactionKind
from backend.app.schemas.ledger import (
    AccountArchiveRequest,
    AccountCreate,
    AccountResponse,
    MovementCreate,
    TransactionPage,
    TransactionResponse,
)

router = APIRouter(tags=["Ledger - Accounts"])


@router.post("/accounts", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def open_account(
    payload: AccountCreate,
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    """Open a ledger account with its initial balance."""
    async with atomic(db):
        account = await TransactionRecorder.open_account(
            db, ctx,
            label=payload.label,
            initial_balance=payload.initial_balance,
            bank_name=payload.bank_name,
            account_type=payload.account_type,
        )
    await db.refresh(account)
    return account


@router.get("/accounts", response_model=List[AccountResponse])
async def list_accounts(
    include_archived: bool = Query(False),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    return await TransactionRecorder.list_accounts(db, ctx, include_archived=include_archived)


@router.get("/accounts/{account_id}", response_model=AccountResponse)
async def get_account(
    account_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    return await TransactionRecorder.get_account(db, ctx, account_id)


@router.post(
    "/accounts/{account_id}/transactions",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_movement(
    payload: MovementCreate,
    account_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Record an income, expense or transfer on the account.

    Transfers need `destination_account_id`; the matching income on the
    destination is created in the same unit.
    """
    async with atomic(db):
        transaction = await TransactionRecorder.record_movement(
            db, ctx,
            account_id=account_id,
            kind=payload.kind,
            amount=payload.amount,
            description=payload.description,
            reference=payload.reference,
            booking_id=payload.booking_id,
            occurred_on=payload.occurred_on,
            destination_account_id=payload.destination_account_id,
        )
    await db.refresh(transaction)
    return transaction


@router.get("/accounts/{account_id}/transactions", response_model=TransactionPage)
async def list_transactions(
    account_id: int = Path(..., ge=1),
    kind: Optional[TransactionKind] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(settings.default_page_size, ge=1, le=settings.max_page_size),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    """Account history, newest first."""
    rows, total = await TransactionRecorder.list_transactions(
        db, ctx, account_id, kind=kind, page=page, limit=limit
    )
    return TransactionPage(
        items=[TransactionResponse.model_validate(row) for row in rows],
        total=total,
        page=page,
        limit=limit,
        total_pages=math.ceil(total / limit) if total else 0,
    )


@router.post("/transactions/{transaction_id}/cancel", response_model=TransactionResponse)
async def cancel_transaction(
    transaction_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Cancel a transaction, restoring balances and unwinding installment
    payments, supplier payments or the other half of a transfer.
    """
    async with atomic(db):
        transaction = await ReversalEngine.cancel_transaction(db, ctx, transaction_id)
    await db.refresh(transaction)
    return transaction


@router.post("/accounts/{account_id}/archive", response_model=AccountResponse)
async def archive_account(
    account_id: int = Path(..., ge=1),
    payload: Optional[AccountArchiveRequest] = Body(None),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    async with atomic(db):
        account = await TransactionRecorder.archive_account(
            db, ctx, account_id, transfer_to_account_id=payload.transfer_to_account_id if payload else None
        )
    await db.refresh(account)
    return account
