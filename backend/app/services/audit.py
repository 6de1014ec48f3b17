"""
Audit logging service for money-moving actions.

Audit rows are written inside the caller's atomic unit, so an action and its
audit trail persist or roll back together.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc

from backend.app.core.dependencies import TenantContext
from backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    ACCOUNT_OPENED = "ACCOUNT_OPENED"
    ACCOUNT_ARCHIVED = "ACCOUNT_ARCHIVED"
    MOVEMENT_RECORDED = "MOVEMENT_RECORDED"
    TRANSACTION_CANCELLED = "TRANSACTION_CANCELLED"

    BOOKING_CREATED = "BOOKING_CREATED"
    SCHEDULE_REGENERATED = "SCHEDULE_REGENERATED"
    PAYMENT_APPLIED = "PAYMENT_APPLIED"

    SUPPLIER_PAYMENT_RECORDED = "SUPPLIER_PAYMENT_RECORDED"
    SUPPLIER_PAYMENT_CANCELLED = "SUPPLIER_PAYMENT_CANCELLED"


async def log_event(
    db: AsyncSession,
    ctx: TenantContext,
    action: str,
    entity: str,
    entity_id: Optional[int] = None,
    changes: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Record an audit event.

    Args:
        db: Database session (not committed here)
        ctx: Tenant context of the caller
        action: Action being performed (use AuditAction constants)
        entity: Entity name, e.g. "ledger_transactions"
        entity_id: ID of the entity acted upon
        changes: Additional context as JSON (amounts as strings)

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        tenant_id=ctx.tenant_id,
        actor_id=ctx.user_id,
        actor_username=ctx.username,
        action=action,
        entity=entity,
        entity_id=entity_id,
        changes=changes
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    ctx: TenantContext,
    entity: Optional[str] = None,
    entity_id: Optional[int] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve the tenant's audit trail, most recent first.
    """
    query = select(AuditLog).where(AuditLog.tenant_id == ctx.tenant_id)

    if entity:
        query = query.where(AuditLog.entity == entity)

    if entity_id is not None:
        query = query.where(AuditLog.entity_id == entity_id)

    query = query.order_by(desc(AuditLog.id)).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
