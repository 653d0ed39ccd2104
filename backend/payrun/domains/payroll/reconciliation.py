from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from payrun.core.logging import get_logger
from payrun.domains.payroll.orchestrator import RunTotals, transfer_reference
from payrun.domains.payroll.wallet import release_funds
from payrun.models import PayrollRun, PayrollSlip
from payrun.models.enums import PayrollStatus, SlipStatus

logger = get_logger(__name__)

UNFINISHED = (PayrollStatus.PENDING, PayrollStatus.PROCESSING)
TERMINAL = (PayrollStatus.COMPLETED, PayrollStatus.FAILED)


def release_reservation(db: Session, slip: PayrollSlip) -> None:
    """Credit back a reservation whose transfer was never settled and fail its slip."""
    amount = Decimal(slip.net_salary)
    release_funds(db, slip.organization_id, amount)
    slip.payment_status = SlipStatus.FAILED.value
    slip.gateway_reference = None
    # Operators confirm against the gateway that this reference never paid out
    logger.warning(
        "payroll_reservation_released",
        run_id=slip.payroll_run_id,
        employee_id=slip.employee_id,
        reference=transfer_reference(slip.payroll_run_id, slip.employee_id),
        amount=amount,
    )


def reconcile_stale_runs(db: Session, older_than: timedelta, now: Optional[datetime] = None) -> List[PayrollRun]:
    """Finalize runs left unfinished by a process that died mid-run.

    Unsettled reservations of stale or already finished runs are released
    first. A stale run with slips is then completed with totals re-derived
    from its successful slips; one without slips never reached an employee
    and fails.
    """
    now = now or datetime.utcnow()
    cutoff = now - older_than
    stale = (
        db.query(PayrollRun)
        .filter(PayrollRun.status.in_(UNFINISHED), PayrollRun.initiated_at < cutoff)
        .order_by(PayrollRun.id)
        .all()
    )

    orphaned = (
        db.query(PayrollSlip)
        .join(PayrollRun, PayrollRun.id == PayrollSlip.payroll_run_id)
        .filter(PayrollSlip.payment_status == SlipStatus.RESERVED.value, PayrollRun.status.in_(TERMINAL))
        .all()
    )
    for slip in orphaned:
        release_reservation(db, slip)

    for run in stale:
        slips = db.query(PayrollSlip).filter(PayrollSlip.payroll_run_id == run.id).all()
        if not slips:
            run.transition(PayrollStatus.FAILED)
            logger.warning("stale_payroll_run_failed", run_id=run.id)
            continue

        totals = RunTotals()
        for slip in slips:
            if slip.payment_status == SlipStatus.RESERVED.value:
                release_reservation(db, slip)
            elif slip.succeeded:
                totals.add(slip)
        if run.status == PayrollStatus.PENDING:
            run.transition(PayrollStatus.PROCESSING)
        run.transition(PayrollStatus.COMPLETED)
        run.total_gross = totals.gross
        run.total_deductions = totals.deductions
        run.total_net = totals.net
        run.employee_count = totals.employee_count
        run.completed_at = now
        logger.warning("stale_payroll_run_completed", run_id=run.id, employees_paid=totals.employee_count)

    db.commit()
    return stale
