"""
Audit Trail API Endpoints.

Read-only view of the money-moving actions recorded for the caller's tenant.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.dependencies import TenantContext, get_tenant_context
from backend.app.db.session import get_db
from backend.app.schemas.audit import AuditLogResponse, AuditTrailResponse
from backend.app.services.audit import get_audit_trail

router = APIRouter(prefix="/audit", tags=["Audit"])


@router.get("", response_model=AuditTrailResponse)
async def get_audit_logs(
    entity: Optional[str] = Query(None, description="e.g. ledger_transactions, bookings"),
    entity_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    ctx: TenantContext = Depends(get_tenant_context),
    db: AsyncSession = Depends(get_db)
):
    """
    Recent audit entries, most recent first.

    Filter by entity, or by entity and id to follow one account, booking or
    transaction.
    """
    logs = await get_audit_trail(db, ctx, entity=entity, entity_id=entity_id, limit=limit)

    return AuditTrailResponse(
        logs=[AuditLogResponse.model_validate(log) for log in logs],
        total=len(logs)
    )
