"""
Supplier Debt API Endpoints.

Outstanding supplier exposure and supplier payments.
"""

from fastapi import APIRouter, Depends, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import TenantContext, get_tenant_context
from backend.app.db.session import get_db, atomic
from backend.app.domain.suppliers.debt_aggregator import SupplierDebtService
from backend.app.domain.suppliers.supplier_payments import SupplierPaymentService
from backend.app.schemas.supplier import (
    SupplierExposure,
    SupplierPaymentCreate,
    SupplierPaymentResponse,
    SuppliersExposure,
)

router = APIRouter(tags=["Suppliers - Debt"])


@router.get("/suppliers/debts", response_model=SuppliersExposure)
async def list_supplier_debts(
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    """Per-supplier debt rollups, largest remaining first."""
    return await SupplierDebtService.get_supplier_exposure(db, ctx)


@router.get("/suppliers/{supplier_id}/debts", response_model=SupplierExposure)
async def get_supplier_debts(
    supplier_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    """Per-booking breakdown with traffic light for one supplier."""
    return await SupplierDebtService.get_supplier_exposure(db, ctx, supplier_id=supplier_id)


@router.post(
    "/suppliers/{supplier_id}/payments",
    response_model=SupplierPaymentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def record_supplier_payment(
    payload: SupplierPaymentCreate,
    supplier_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    async with atomic(db):
        payment = await SupplierPaymentService.record_supplier_payment(
            db, ctx,
            booking_id=payload.booking_id,
            supplier_id=supplier_id,
            account_id=payload.account_id,
            amount=payload.amount,
            notes=payload.notes,
            paid_on=payload.paid_on,
        )
    await db.refresh(payment)
    return payment


@router.post("/supplier-payments/{payment_id}/cancel", response_model=SupplierPaymentResponse)
async def cancel_supplier_payment(
    payment_id: int = Path(..., ge=1),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    async with atomic(db):
        payment = await SupplierPaymentService.cancel_supplier_payment(db, ctx, payment_id)
    await db.refresh(payment)
    return payment
