"""
Installment database model.

One scheduled payment within a credit booking's payment plan.
"""

from sqlalchemy import Column, Integer, String, Date, Numeric, Enum, ForeignKey, UniqueConstraint
from backend.app.db.session import Base
from backend.app.models.ledger_enums import InstallmentStatus


class Installment(Base):
    """
    Installment model.

    `sequence_number` is 1-based and defines payment application order.
    status is PAID iff paid_amount >= amount. Rows are regenerated wholesale when
    the booking's priced terms change, never patched field by field.
    """
    __tablename__ = "installments"
    __table_args__ = (
        UniqueConstraint("booking_id", "sequence_number", name="uq_installment_booking_sequence"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey('bookings.id'), nullable=False, index=True)

    sequence_number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)

    status = Column(Enum(InstallmentStatus), default=InstallmentStatus.PENDING, nullable=False)
    paid_date = Column(Date, nullable=True)
    notes = Column(String(500), nullable=True)

    def __repr__(self):
        return (
            f"<Installment(id={self.id}, seq={self.sequence_number}, "
            f"paid={self.paid_amount}/{self.amount}, status='{self.status.value}')>"
        )
