"""
Installment state transitions.

Both directions of the payment cascade are expressed as pure functions over
immutable snapshots: "current installment set + delta" in, "new installment
set + booking outcome" out. The services load rows, call these, and write the
changed snapshots back, so the cascade can be tested without a database.
"""

from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from backend.app.core.exceptions import ResourceNotFoundError, ValidationError
from backend.app.domain.money import ZERO
from backend.app.models.ledger_enums import BookingStatus, InstallmentStatus, PaymentType


@dataclass(frozen=True)
class InstallmentSnapshot:
    id: int
    sequence_number: int
    amount: Decimal
    paid_amount: Decimal
    status: InstallmentStatus
    paid_date: Optional[date] = None
    notes: Optional[str] = None

    @property
    def pending(self) -> Decimal:
        return self.amount - self.paid_amount

    @property
    def is_paid(self) -> bool:
        return self.paid_amount >= self.amount

    @classmethod
    def from_row(cls, row) -> "InstallmentSnapshot":
        return cls(
            id=row.id,
            sequence_number=row.sequence_number,
            amount=row.amount,
            paid_amount=row.paid_amount,
            status=row.status,
            paid_date=row.paid_date,
            notes=row.notes,
        )


@dataclass(frozen=True)
class CascadeResult:
    """Outcome of a forward or reverse transition."""
    installments: Tuple[InstallmentSnapshot, ...]  # Full set, sequence order
    changed: Tuple[InstallmentSnapshot, ...]  # Only the ones touched, in touch order
    leftover: Decimal  # Amount that could not be applied / reversed

    @property
    def all_paid(self) -> bool:
        return all(inst.status == InstallmentStatus.PAID for inst in self.installments)


def _ordered(installments: Sequence[InstallmentSnapshot]) -> List[InstallmentSnapshot]:
    return sorted(installments, key=lambda inst: inst.sequence_number)


def distribute_payment(
    installments: Sequence[InstallmentSnapshot],
    starting_installment_id: int,
    amount: Decimal,
    paid_on: date,
    notes: Optional[str] = None,
) -> CascadeResult:
    """
    Apply `amount` from the starting installment forward, spilling over.

    Installments already fully paid are skipped. Notes land on the starting
    installment only. Whatever does not fit is returned as `leftover`.

    Raises:
        ValidationError: amount <= 0
        ResourceNotFoundError: starting installment not in the set
    """
    if amount <= ZERO:
        raise ValidationError("Payment amount must be greater than 0", {"amount": str(amount)})

    ordered = _ordered(installments)
    start = next((i for i, inst in enumerate(ordered) if inst.id == starting_installment_id), None)
    if start is None:
        raise ResourceNotFoundError("Installment", starting_installment_id)

    remaining = amount
    changed = []
    for position in range(start, len(ordered)):
        if remaining <= ZERO:
            break
        inst = ordered[position]
        pending = inst.pending
        if pending <= ZERO:
            continue

        applied = min(remaining, pending)
        new_paid = inst.paid_amount + applied
        now_paid = new_paid >= inst.amount
        updated = replace(
            inst,
            paid_amount=new_paid,
            status=InstallmentStatus.PAID if now_paid else InstallmentStatus.PENDING,
            paid_date=paid_on if now_paid else inst.paid_date,
            notes=(notes or inst.notes) if position == start else inst.notes,
        )
        ordered[position] = updated
        changed.append(updated)
        remaining -= applied

    return CascadeResult(installments=tuple(ordered), changed=tuple(changed), leftover=remaining)


def reverse_payment(installments: Sequence[InstallmentSnapshot], amount: Decimal) -> CascadeResult:
    """
    Undo `amount` of paid money, highest sequence number first.

    Each installment with money on it gives back up to its paid amount; it drops
    to PENDING (and loses its paid date) once below its scheduled amount.
    """
    ordered = _ordered(installments)
    remaining = amount
    changed = []
    for position in range(len(ordered) - 1, -1, -1):
        if remaining <= ZERO:
            break
        inst = ordered[position]
        if inst.paid_amount <= ZERO:
            continue

        undone = min(remaining, inst.paid_amount)
        new_paid = inst.paid_amount - undone
        still_paid = new_paid >= inst.amount
        updated = replace(
            inst,
            paid_amount=new_paid,
            status=InstallmentStatus.PAID if still_paid else InstallmentStatus.PENDING,
            paid_date=inst.paid_date if still_paid else None,
        )
        ordered[position] = updated
        changed.append(updated)
        remaining -= undone

    return CascadeResult(installments=tuple(ordered), changed=tuple(changed), leftover=remaining)


def resolve_booking_status(
    current: BookingStatus,
    payment_type: PaymentType,
    all_paid: bool,
) -> BookingStatus:
    """
    Booking status after a payment-plan transition.

    Only CREDIT bookings move: ACTIVE -> COMPLETED when everything is paid,
    COMPLETED -> ACTIVE when a reversal reopens an installment. CANCELLED and
    CASH bookings are left alone.
    """
    if payment_type != PaymentType.CREDIT or current == BookingStatus.CANCELLED:
        return current
    if all_paid:
        return BookingStatus.COMPLETED
    if current == BookingStatus.COMPLETED:
        return BookingStatus.ACTIVE
    return current
