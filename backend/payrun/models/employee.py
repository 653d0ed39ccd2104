from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from payrun.db.session import Base


class Employee(Base):
    __tablename__ = "employees"
    __table_args__ = (
        UniqueConstraint("organization_id", "email", name="uq_employees_org_email"),
        CheckConstraint("base_salary >= 0", name="ck_employees_base_salary_non_negative"),
        Index("ix_employees_org_active", "organization_id", "is_active"),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)

    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)

    bank_account_number = Column(String(20), nullable=False)
    bank_code = Column(String(10), nullable=False)
    bank_name = Column(String(100), nullable=False)

    base_salary = Column(Numeric(15, 2), nullable=False, default=0)
    # Deactivated employees drop out of future runs; past slips keep pointing at them
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organization = relationship("Organization", back_populates="employees")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
