"""
Supplier Debt Aggregator (read-side).

For every live booking a supplier takes part in, compares what the agency
owes (the booking's net cost, or the cost of that supplier's items) with the
ACTIVE supplier payments recorded against it, and labels what is left by how
close its deadline is.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.core.dependencies import TenantContext
from backend.app.core.exceptions import ResourceNotFoundError
from backend.app.domain.money import ZERO, to_money
from backend.app.models.booking import Booking
from backend.app.models.booking_item import BookingItem
from backend.app.models.ledger_enums import BookingStatus, SupplierPaymentStatus, TrafficLight
from backend.app.models.supplier import Supplier
from backend.app.models.supplier_payment import SupplierPayment
from backend.app.schemas.supplier import (
    BookingDebt,
    DebtTotals,
    SupplierDebtSummary,
    SupplierExposure,
    SuppliersExposure,
)

LIVE_BOOKING_STATUSES = (BookingStatus.ACTIVE, BookingStatus.COMPLETED)


def classify_traffic_light(
    remaining: Decimal,
    deadline: Optional[date],
    today: date,
    warning_days: int = 7,
) -> TrafficLight:
    """
    Settled debt is GREEN whatever its deadline; otherwise GRAY without a
    deadline, RED once it passed, YELLOW within `warning_days`, else GREEN.
    """
    if remaining <= ZERO:
        return TrafficLight.GREEN
    if deadline is None:
        return TrafficLight.GRAY
    days_left = (deadline - today).days
    if days_left < 0:
        return TrafficLight.RED
    if days_left <= warning_days:
        return TrafficLight.YELLOW
    return TrafficLight.GREEN


@dataclass
class DebtLine:
    """Cost owed to one supplier for one booking."""
    booking_id: int
    supplier_id: int
    sale_date: Optional[date]
    net_cost: Decimal = ZERO
    deadline: Optional[date] = None
    total_paid: Decimal = ZERO

    @property
    def remaining(self) -> Decimal:
        return max(ZERO, self.net_cost - self.total_paid)

    def is_overdue(self, today: date) -> bool:
        return self.remaining > ZERO and self.deadline is not None and self.deadline < today


@dataclass
class _Rollup:
    net_cost: Decimal = ZERO
    total_paid: Decimal = ZERO
    remaining: Decimal = ZERO
    booking_ids: set = field(default_factory=set)
    overdue_count: int = 0

    def add(self, line: DebtLine, today: date) -> None:
        self.net_cost += line.net_cost
        self.total_paid += line.total_paid
        self.remaining += line.remaining
        self.booking_ids.add(line.booking_id)
        if line.is_overdue(today):
            self.overdue_count += 1

    def totals(self) -> DebtTotals:
        return DebtTotals(
            net_cost=self.net_cost,
            total_paid=self.total_paid,
            remaining=self.remaining,
            booking_count=len(self.booking_ids),
            overdue_count=self.overdue_count,
        )


def _earliest(current: Optional[date], candidate: Optional[date]) -> Optional[date]:
    if current is None:
        return candidate
    if candidate is None:
        return current
    return min(current, candidate)


class SupplierDebtService:

    @staticmethod
    async def get_supplier(db: AsyncSession, ctx: TenantContext, supplier_id: int) -> Supplier:
        supplier = (await db.execute(
            select(Supplier).where(Supplier.id == supplier_id, Supplier.tenant_id == ctx.tenant_id)
        )).scalar_one_or_none()
        if supplier is None:
            raise ResourceNotFoundError("Supplier", supplier_id)
        return supplier

    @staticmethod
    async def collect_debt_lines(
        db: AsyncSession,
        ctx: TenantContext,
        supplier_id: Optional[int] = None,
        booking_id: Optional[int] = None,
    ) -> List[DebtLine]:
        """
        Build one line per (booking, supplier) with its cost and ACTIVE payments.

        A booking with supplier items (positive cost) owes each item's supplier
        the item cost; a booking without them owes its own supplier its net cost.
        """
        booking_query = select(Booking).where(
            Booking.tenant_id == ctx.tenant_id,
            Booking.status.in_(LIVE_BOOKING_STATUSES),
        )
        if booking_id is not None:
            booking_query = booking_query.where(Booking.id == booking_id)
        bookings = {b.id: b for b in (await db.execute(booking_query)).scalars().all()}
        if not bookings:
            return []

        items = (await db.execute(
            select(BookingItem).where(
                BookingItem.tenant_id == ctx.tenant_id,
                BookingItem.booking_id.in_(list(bookings)),
                BookingItem.supplier_id.is_not(None),
                BookingItem.cost > 0,
            )
        )).scalars().all()

        lines: Dict[Tuple[int, int], DebtLine] = {}
        itemized = set()
        for item in items:
            itemized.add(item.booking_id)
            key = (item.booking_id, item.supplier_id)
            line = lines.get(key)
            if line is None:
                line = lines[key] = DebtLine(
                    booking_id=item.booking_id,
                    supplier_id=item.supplier_id,
                    sale_date=bookings[item.booking_id].sale_date,
                )
            line.net_cost += to_money(item.cost)
            line.deadline = _earliest(line.deadline, item.supplier_deadline)

        for booking in bookings.values():
            if booking.id in itemized or booking.supplier_id is None:
                continue
            if to_money(booking.net_cost) <= ZERO:
                continue
            lines[(booking.id, booking.supplier_id)] = DebtLine(
                booking_id=booking.id,
                supplier_id=booking.supplier_id,
                sale_date=booking.sale_date,
                net_cost=to_money(booking.net_cost),
                deadline=booking.supplier_deadline,
            )

        if supplier_id is not None:
            lines = {key: line for key, line in lines.items() if key[1] == supplier_id}
        if not lines:
            return []

        paid_rows = (await db.execute(
            select(
                SupplierPayment.booking_id,
                SupplierPayment.supplier_id,
                func.coalesce(func.sum(SupplierPayment.amount), 0),
            )
            .where(
                SupplierPayment.tenant_id == ctx.tenant_id,
                SupplierPayment.status == SupplierPaymentStatus.ACTIVE,
                SupplierPayment.booking_id.in_([key[0] for key in lines]),
            )
            .group_by(SupplierPayment.booking_id, SupplierPayment.supplier_id)
        )).all()
        for paid_booking_id, paid_supplier_id, total in paid_rows:
            line = lines.get((paid_booking_id, paid_supplier_id))
            if line is not None:
                line.total_paid = to_money(total)

        return sorted(lines.values(), key=lambda line: (line.supplier_id, line.booking_id))

    @staticmethod
    async def get_supplier_exposure(
        db: AsyncSession,
        ctx: TenantContext,
        supplier_id: Optional[int] = None,
        today: Optional[date] = None,
    ):
        """
        Supplier exposure.

        With `supplier_id`: that supplier's per-booking breakdown and totals.
        Without: one rollup per supplier that has debt lines, plus global totals.
        """
        today = today or date.today()
        warning_days = settings.supplier_warning_days

        if supplier_id is not None:
            supplier = await SupplierDebtService.get_supplier(db, ctx, supplier_id)
            lines = await SupplierDebtService.collect_debt_lines(db, ctx, supplier_id=supplier.id)
            rollup = _Rollup()
            breakdown = []
            for line in lines:
                rollup.add(line, today)
                breakdown.append(BookingDebt(
                    booking_id=line.booking_id,
                    sale_date=line.sale_date,
                    net_cost=line.net_cost,
                    total_paid=line.total_paid,
                    remaining=line.remaining,
                    supplier_deadline=line.deadline,
                    days_left=(line.deadline - today).days if line.deadline is not None else None,
                    traffic_light=classify_traffic_light(line.remaining, line.deadline, today, warning_days),
                ))
            return SupplierExposure(
                supplier_id=supplier.id,
                supplier_name=supplier.name,
                bookings=breakdown,
                totals=rollup.totals(),
            )

        lines = await SupplierDebtService.collect_debt_lines(db, ctx)
        per_supplier: Dict[int, _Rollup] = {}
        overall = _Rollup()
        for line in lines:
            per_supplier.setdefault(line.supplier_id, _Rollup()).add(line, today)
            overall.add(line, today)

        suppliers = {}
        if per_supplier:
            suppliers = {s.id: s for s in (await db.execute(
                select(Supplier).where(
                    Supplier.tenant_id == ctx.tenant_id,
                    Supplier.id.in_(list(per_supplier)),
                )
            )).scalars().all()}

        summaries = []
        for sid, rollup in per_supplier.items():
            supplier = suppliers.get(sid)
            summaries.append(SupplierDebtSummary(
                supplier_id=sid,
                supplier_name=supplier.name if supplier else f"Supplier {sid}",
                service_type=supplier.service_type if supplier else None,
                net_cost=rollup.net_cost,
                total_paid=rollup.total_paid,
                remaining=rollup.remaining,
                booking_count=len(rollup.booking_ids),
                overdue_count=rollup.overdue_count,
            ))
        summaries.sort(key=lambda summary: summary.remaining, reverse=True)

        return SuppliersExposure(suppliers=summaries, totals=overall.totals())
