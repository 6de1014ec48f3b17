"""
Ledger Account database model.

A bank-account-like entity holding a running balance.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric
from sqlalchemy.sql import func
from backend.app.db.session import Base


class LedgerAccount(Base):
    """
    Ledger Account model.

    `current_balance` is a denormalized running total: it always equals
    `initial_balance` plus the signed sum of the account's ACTIVE transactions.
    It is only written by the Transaction Recorder and the Reversal Engine,
    always in the same atomic unit as the transaction row.
    """
    __tablename__ = "ledger_accounts"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)

    # Display
    label = Column(String(150), nullable=False)
    bank_name = Column(String(150), nullable=True)
    account_type = Column(String(50), nullable=True)

    # Balances
    initial_balance = Column(Numeric(12, 2), nullable=False, default=0)
    current_balance = Column(Numeric(12, 2), nullable=False, default=0)

    # Lifecycle (soft archive, history preserved)
    is_active = Column(Boolean, default=True, nullable=False)
    archived_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<LedgerAccount(id={self.id}, label='{self.label}', balance={self.current_balance})>"
