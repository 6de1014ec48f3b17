"""
Booking database model.

Only the priced terms the ledger engine needs; trip details, client and
destination data belong to the CRUD surface.
"""

from sqlalchemy import Column, Integer, Date, DateTime, Numeric, Enum, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import BookingStatus, PaymentType, InstallmentFrequency


class Booking(Base):
    """
    Booking model (credit or cash sale).

    CASH bookings carry no installments and are created COMPLETED.
    CREDIT bookings are ACTIVE until every installment is PAID.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)

    # Pricing terms
    total_price = Column(Numeric(12, 2), nullable=False)
    net_cost = Column(Numeric(12, 2), nullable=False, default=0)
    payment_type = Column(Enum(PaymentType), nullable=False)
    down_payment = Column(Numeric(12, 2), nullable=False, default=0)
    installment_count = Column(Integer, nullable=False, default=0)
    installment_frequency = Column(
        Enum(InstallmentFrequency), nullable=False, default=InstallmentFrequency.SEMIMONTHLY
    )
    payment_start_date = Column(Date, nullable=True)

    # Supplier exposure
    supplier_id = Column(Integer, ForeignKey('suppliers.id'), nullable=True, index=True)
    supplier_deadline = Column(Date, nullable=True)

    sale_date = Column(Date, nullable=False)
    status = Column(Enum(BookingStatus), default=BookingStatus.ACTIVE, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Booking(id={self.id}, type='{self.payment_type.value}', status='{self.status.value}')>"
