"""
Ledger and payment-plan enumerations.
"""

import enum


class TransactionKind(str, enum.Enum):
    """Ledger movement kind."""
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    TRANSFER = "TRANSFER"  # Source side of a transfer pair


class TransactionStatus(str, enum.Enum):
    """Transaction lifecycle. ACTIVE -> CANCELLED exactly once."""
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


class TransactionOrigin(str, enum.Enum):
    """What produced a transaction; drives the reversal cascade."""
    MANUAL = "MANUAL"
    INSTALLMENT_PAYMENT = "INSTALLMENT_PAYMENT"
    DOWN_PAYMENT = "DOWN_PAYMENT"
    TRANSFER_IN = "TRANSFER_IN"  # Destination side of a transfer pair
    SUPPLIER_PAYMENT = "SUPPLIER_PAYMENT"


class InstallmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class BookingStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentType(str, enum.Enum):
    CASH = "CASH"
    CREDIT = "CREDIT"


class InstallmentFrequency(str, enum.Enum):
    SEMIMONTHLY = "SEMIMONTHLY"  # 15th and last day of month
    MONTHLY = "MONTHLY"  # last day of month


class SupplierPaymentStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    CANCELLED = "CANCELLED"


class TrafficLight(str, enum.Enum):
    """Supplier debt risk label."""
    GREEN = "GREEN"  # Settled, or deadline comfortably ahead
    YELLOW = "YELLOW"  # Deadline within the warning window
    RED = "RED"  # Overdue
    GRAY = "GRAY"  # No deadline set
