from datetime import datetime

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, Numeric, String, text
from sqlalchemy.orm import relationship

from payrun.core.errors import InvalidRunTransition
from payrun.db.session import Base
from payrun.models.enums import PayrollStatus, enum_values

ACTIVE_RUN_PREDICATE = text("status <> 'failed'")


class PayrollRun(Base):
    __tablename__ = "payroll_runs"
    __table_args__ = (
        Index("ix_payroll_runs_org_period", "organization_id", "pay_period"),
        # At most one non-failed run per organization and period
        Index(
            "uq_payroll_runs_active_period",
            "organization_id",
            "pay_period",
            unique=True,
            postgresql_where=ACTIVE_RUN_PREDICATE,
            sqlite_where=ACTIVE_RUN_PREDICATE,
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False)
    pay_period = Column(String(7), nullable=False)
    status = Column(
        Enum(PayrollStatus, name="payroll_status", values_callable=enum_values),
        nullable=False,
        default=PayrollStatus.PENDING,
    )
    total_gross = Column(Numeric(15, 2), nullable=False, default=0)
    total_deductions = Column(Numeric(15, 2), nullable=False, default=0)
    total_net = Column(Numeric(15, 2), nullable=False, default=0)
    employee_count = Column(Integer, nullable=False, default=0)
    initiated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    organization = relationship("Organization")
    slips = relationship("PayrollSlip", back_populates="payroll_run", order_by="PayrollSlip.id")

    def transition(self, target: PayrollStatus) -> None:
        current = PayrollStatus(self.status)
        if not current.can_transition_to(target):
            raise InvalidRunTransition(current, target)
        self.status = target
