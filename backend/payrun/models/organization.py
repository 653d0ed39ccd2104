from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, Numeric, String
from sqlalchemy.orm import relationship

from payrun.db.session import Base


class Organization(Base):
    __tablename__ = "organizations"
    __table_args__ = (CheckConstraint("wallet_balance >= 0", name="ck_organizations_wallet_non_negative"),)

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    # Only successful debits and external top-ups move this value
    wallet_balance = Column(Numeric(15, 2), nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employees = relationship("Employee", back_populates="organization")
    tax_config = relationship("TaxConfig", back_populates="organization", uselist=False)
