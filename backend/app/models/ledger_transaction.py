"""
Ledger Transaction database model.

One recorded movement against a Ledger Account.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, Enum, ForeignKey
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.ledger_enums import TransactionKind, TransactionStatus, TransactionOrigin


class LedgerTransaction(Base):
    """
    Ledger Transaction model.

    Never deleted. Cancellation flips status to CANCELLED exactly once.
    A transfer is stored as a pair: a TRANSFER row on the source account and an
    INCOME row (origin TRANSFER_IN) on the destination, linked both ways through
    `paired_transaction_id`.
    """
    __tablename__ = "ledger_transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)

    account_id = Column(Integer, ForeignKey('ledger_accounts.id'), nullable=False, index=True)
    kind = Column(Enum(TransactionKind), nullable=False)
    origin = Column(Enum(TransactionOrigin), nullable=False, default=TransactionOrigin.MANUAL)

    amount = Column(Numeric(12, 2), nullable=False)
    description = Column(String(255), nullable=False)
    reference = Column(String(255), nullable=True)

    # Optional links
    booking_id = Column(Integer, ForeignKey('bookings.id'), nullable=True, index=True)
    destination_account_id = Column(Integer, ForeignKey('ledger_accounts.id'), nullable=True)
    paired_transaction_id = Column(Integer, ForeignKey('ledger_transactions.id'), nullable=True)

    occurred_on = Column(Date, nullable=False, index=True)
    status = Column(Enum(TransactionStatus), default=TransactionStatus.ACTIVE, nullable=False, index=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return (
            f"<LedgerTransaction(id={self.id}, kind='{self.kind.value}', "
            f"amount={self.amount}, status='{self.status.value}')>"
        )
