from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from payrun.db.session import Base
from payrun.models.enums import SlipStatus


class PayrollSlip(Base):
    __tablename__ = "payroll_slips"
    __table_args__ = (UniqueConstraint("payroll_run_id", "employee_id", name="uq_payroll_slips_run_employee"),)

    id = Column(Integer, primary_key=True, index=True)
    payroll_run_id = Column(Integer, ForeignKey("payroll_runs.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    pay_period = Column(String(7), nullable=False)

    base_salary = Column(Numeric(15, 2), nullable=False)
    total_additions = Column(Numeric(15, 2), nullable=False, default=0)
    gross_salary = Column(Numeric(15, 2), nullable=False)
    paye_tax = Column(Numeric(15, 2), nullable=False, default=0)
    pension_deduction = Column(Numeric(15, 2), nullable=False, default=0)
    nhf_deduction = Column(Numeric(15, 2), nullable=False, default=0)
    nhis_deduction = Column(Numeric(15, 2), nullable=False, default=0)
    other_deductions = Column(Numeric(15, 2), nullable=False, default=0)
    total_deductions = Column(Numeric(15, 2), nullable=False, default=0)
    net_salary = Column(Numeric(15, 2), nullable=False)

    gateway_reference = Column(String(255), nullable=True)
    payment_status = Column(String(20), nullable=False, default=SlipStatus.FAILED.value)
    created_at = Column(DateTime, default=datetime.utcnow)

    payroll_run = relationship("PayrollRun", back_populates="slips")
    employee = relationship("Employee")

    @property
    def succeeded(self) -> bool:
        return self.payment_status == SlipStatus.SUCCESS.value
