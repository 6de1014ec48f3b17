"""
Supplier Payment database model.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, Enum, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import SupplierPaymentStatus


class SupplierPayment(Base):
    """
    Supplier Payment model.

    Always created together with its backing EXPENSE transaction and cancelled
    together with it.
    """
    __tablename__ = "supplier_payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)

    booking_id = Column(Integer, ForeignKey('bookings.id'), nullable=False, index=True)
    supplier_id = Column(Integer, ForeignKey('suppliers.id'), nullable=False, index=True)
    account_id = Column(Integer, ForeignKey('ledger_accounts.id'), nullable=False)
    transaction_id = Column(
        Integer, ForeignKey('ledger_transactions.id'), nullable=False, unique=True
    )

    amount = Column(Numeric(12, 2), nullable=False)
    notes = Column(String(500), nullable=True)
    paid_on = Column(Date, nullable=False)

    status = Column(Enum(SupplierPaymentStatus), default=SupplierPaymentStatus.ACTIVE, nullable=False, index=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<SupplierPayment(id={self.id}, amount={self.amount}, status='{self.status.value}')>"
