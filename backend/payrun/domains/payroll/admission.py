from __future__ import annotations

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payrun.core.errors import OrganizationNotFound, PayrollAlreadyProcessed
from payrun.core.logging import get_logger
from payrun.domains.payroll.periods import validate_pay_period
from payrun.models import Organization, PayrollRun
from payrun.models.enums import PayrollStatus

logger = get_logger(__name__)


def admit_run(db: Session, organization_id: int, pay_period: str) -> PayrollRun:
    """Create a pending run for ``(organization_id, pay_period)``.

    The partial unique index on ``payroll_runs`` is the guard: the insert
    either succeeds or fails atomically, so two concurrent triggers for the
    same period cannot both be admitted. A run in ``failed`` does not block
    a new one.
    """
    pay_period = validate_pay_period(pay_period)
    if db.get(Organization, organization_id) is None:
        raise OrganizationNotFound(organization_id)

    run = PayrollRun(
        organization_id=organization_id,
        pay_period=pay_period,
        status=PayrollStatus.PENDING,
        total_gross=0,
        total_deductions=0,
        total_net=0,
        employee_count=0,
    )
    db.add(run)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info("payroll_run_rejected", organization_id=organization_id, pay_period=pay_period)
        raise PayrollAlreadyProcessed(organization_id, pay_period) from exc

    db.refresh(run)
    logger.info("payroll_run_admitted", run_id=run.id, organization_id=organization_id, pay_period=pay_period)
    return run
