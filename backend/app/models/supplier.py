"""
Supplier database model (read-only master data for the ledger engine).
"""

from sqlalchemy import Column, Integer, String
from backend.app.db.session import Base


class Supplier(Base):
    __tablename__ = "suppliers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    name = Column(String(150), nullable=False)
    phone = Column(String(30), nullable=True)
    service_type = Column(String(50), nullable=True)

    def __repr__(self):
        return f"<Supplier(id={self.id}, name='{self.name}')>"
