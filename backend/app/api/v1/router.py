"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import accounts, audit, bookings, suppliers

router = APIRouter()

# Ledger accounts, movements and cancellations
router.include_router(accounts.router)

# Booking payment plans and customer payments
router.include_router(bookings.router)

# Supplier debt and supplier payments
router.include_router(suppliers.router)

# Audit trail of money-moving actions
router.include_router(audit.router)
