"""
Booking Item database model.

A line of a booking (hotel, flight, tour) bought from its own supplier.
"""

from sqlalchemy import Column, Integer, String, Date, Numeric, ForeignKey
from backend.app.db.session import Base


class BookingItem(Base):
    """
    Booking Item model.

    When a booking has items with a supplier and a positive cost, supplier
    exposure is computed per item instead of from the booking's own net cost.
    """
    __tablename__ = "booking_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey('bookings.id'), nullable=False, index=True)

    item_type = Column(String(30), nullable=False)  # HOTEL, FLIGHT, TOUR, ...
    description = Column(String(255), nullable=True)

    supplier_id = Column(Integer, ForeignKey('suppliers.id'), nullable=True, index=True)
    cost = Column(Numeric(12, 2), nullable=False, default=0)
    supplier_deadline = Column(Date, nullable=True)

    def __repr__(self):
        return f"<BookingItem(id={self.id}, booking_id={self.booking_id}, cost={self.cost})>"
