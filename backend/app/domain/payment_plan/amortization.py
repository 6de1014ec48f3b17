"""
Amortization Scheduler.

Pure functions turning a credit sale's priced terms into an ordered list of
installments. No persistence here; `schedule_service` stores the result.

Due-date rules:
- SEMIMONTHLY: from the previous due date (the start date for the first one),
  move to the 15th if the day is before the 15th, else to the last day of the
  month if the day is before it, else to the 15th of the next month.
- MONTHLY: installment i (0-indexed) falls on the last day of the start
  month + i months.
"""

import calendar
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_FLOOR
from typing import List

from backend.app.core.exceptions import ValidationError
from backend.app.domain.money import ZERO, to_money, Number
from backend.app.models.ledger_enums import InstallmentFrequency

SEMIMONTHLY_ANCHOR_DAY = 15


@dataclass(frozen=True)
class ScheduledInstallment:
    sequence_number: int
    due_date: date
    amount: Decimal


def month_end(year: int, month: int) -> date:
    """Last calendar day of the given month."""
    return date(year, month, calendar.monthrange(year, month)[1])


def next_semimonthly_date(current: date) -> date:
    """Next 15th / last-day-of-month billing date strictly driven by `current`."""
    last_day = month_end(current.year, current.month)
    if current.day < SEMIMONTHLY_ANCHOR_DAY:
        return current.replace(day=SEMIMONTHLY_ANCHOR_DAY)
    if current.day < last_day.day:
        return last_day
    if current.month == 12:
        return date(current.year + 1, 1, SEMIMONTHLY_ANCHOR_DAY)
    return date(current.year, current.month + 1, SEMIMONTHLY_ANCHOR_DAY)


def semimonthly_due_dates(start: date, count: int) -> List[date]:
    dates = []
    current = start
    for _ in range(count):
        current = next_semimonthly_date(current)
        dates.append(current)
    return dates


def monthly_due_date(start: date, offset: int) -> date:
    """Last day of the month `offset` months after `start`'s month."""
    month_index = start.month - 1 + offset
    return month_end(start.year + month_index // 12, month_index % 12 + 1)


def due_dates(frequency: InstallmentFrequency, start: date, count: int) -> List[date]:
    if frequency == InstallmentFrequency.MONTHLY:
        return [monthly_due_date(start, i) for i in range(count)]
    return semimonthly_due_dates(start, count)


def split_amount(remaining: Decimal, count: int) -> List[Decimal]:
    """
    Split `remaining` into `count` parts.

    Every part but the last is floored to whole currency units; the last part
    absorbs the remainder (cents included) so the parts always sum to `remaining`.
    """
    base = (remaining / count).quantize(Decimal("1"), rounding=ROUND_FLOOR)
    base = to_money(base)
    last = remaining - base * (count - 1)
    return [base] * (count - 1) + [last]


def build_schedule(
    total_price: Number,
    down_payment: Number,
    installment_count: int,
    frequency: InstallmentFrequency,
    start_date: date,
) -> List[ScheduledInstallment]:
    """
    Build the installment schedule for a credit sale.

    Raises:
        ValidationError: count < 1, negative down payment, or down payment not below total
    """
    total = to_money(total_price)
    down = to_money(down_payment)

    if installment_count < 1:
        raise ValidationError("Installment count must be at least 1", {"installment_count": installment_count})
    if down < ZERO:
        raise ValidationError("Down payment cannot be negative", {"down_payment": str(down)})
    if down >= total:
        raise ValidationError(
            "Down payment must be lower than the total price",
            {"down_payment": str(down), "total_price": str(total)},
        )

    amounts = split_amount(total - down, installment_count)
    dates = due_dates(frequency, start_date, installment_count)

    return [
        ScheduledInstallment(sequence_number=i + 1, due_date=due, amount=amount)
        for i, (due, amount) in enumerate(zip(dates, amounts))
    ]
