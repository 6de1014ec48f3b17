"""
Audit Log Database Model.

Tracks every money-moving action for operator follow-up.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Events logged:
    - ACCOUNT_OPENED / ACCOUNT_ARCHIVED
    - MOVEMENT_RECORDED / TRANSACTION_CANCELLED
    - BOOKING_CREATED / SCHEDULE_REGENERATED / PAYMENT_APPLIED
    - SUPPLIER_PAYMENT_RECORDED / SUPPLIER_PAYMENT_CANCELLED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    # What action was performed, on what
    action = Column(String(100), nullable=False, index=True)
    entity = Column(String(50), nullable=False)
    entity_id = Column(Integer, nullable=True)

    # Additional context (JSON for flexibility)
    changes = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', entity={self.entity}:{self.entity_id})>"
