from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from payrun.db.session import Base
from payrun.models.enums import AdjustmentType, enum_values


class PayrollAdjustment(Base):
    __tablename__ = "payroll_adjustments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payroll_adjustments_amount_positive"),
        Index("ix_payroll_adjustments_employee_period", "employee_id", "pay_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False)
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    adjustment_type = Column(
        Enum(AdjustmentType, name="adjustment_type", values_callable=enum_values), nullable=False
    )
    amount = Column(Numeric(15, 2), nullable=False)
    description = Column(Text, nullable=False, default="")
    pay_period = Column(String(7), nullable=False)  # YYYY-MM
    created_at = Column(DateTime, default=datetime.utcnow)

    employee = relationship("Employee")
