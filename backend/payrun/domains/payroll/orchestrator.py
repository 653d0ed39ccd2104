"""Background payroll run.

A run moves ``pending -> processing -> completed | failed``. It fails only
when no employee was ever reached; once employees are being processed the run always
completes, and each employee's outcome is kept on its own slip.

Per employee, the wallet debit is committed together with a ``reserved``
slip before the transfer goes out. The transfer outcome then settles that
slip, releasing the funds in the same commit when the gateway refuses.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from payrun.core.errors import GatewayError, InvalidRunTransition, NotificationError, PayrollRunNotFound
from payrun.core.logging import bind_run_context, get_logger
from payrun.core.observability import get_meter, get_tracer
from payrun.domains.payroll.calculator import ZERO, CalculatedSlip, TaxRates, calculate_slip
from payrun.domains.payroll.wallet import release_funds, reserve_funds, wallet_balance
from payrun.integrations.mailer import PayslipNotice
from payrun.models import Employee, Organization, PayrollAdjustment, PayrollRun, PayrollSlip, TaxConfig
from payrun.models.enums import PayrollStatus, SlipStatus

logger = get_logger(__name__)
tracer = get_tracer(__name__)
slip_counter = get_meter(__name__).create_counter(
    "payroll.slips", unit="1", description="Payroll slips written, by payment status"
)


def transfer_reference(run_id: int, employee_id: int) -> str:
    return f"PAY-{run_id}-{employee_id}"


@dataclass
class RunTotals:
    gross: Decimal = ZERO
    deductions: Decimal = ZERO
    net: Decimal = ZERO
    employee_count: int = 0

    def add(self, slip: PayrollSlip) -> None:
        self.gross += Decimal(slip.gross_salary)
        self.deductions += Decimal(slip.total_deductions)
        self.net += Decimal(slip.net_salary)
        self.employee_count += 1


class PayrollOrchestrator:
    def __init__(self, session_factory: Callable[[], Session], gateway, notifier):
        self.session_factory = session_factory
        self.gateway = gateway
        self.notifier = notifier

    def run(self, run_id: int, cancel_event: Optional[threading.Event] = None) -> PayrollRun:
        """Process every active employee of the run's organization.

        ``cancel_event`` is checked between employees; once set, the run
        stops early and completes with what it has already paid, or fails
        if no employee was reached yet.
        """
        with bind_run_context(run_id=run_id), tracer.start_as_current_span("payroll.run") as span:
            span.set_attribute("payroll.run_id", run_id)
            db = self.session_factory()
            try:
                return self._run(db, run_id, cancel_event or threading.Event())
            finally:
                db.close()

    def _run(self, db: Session, run_id: int, cancel_event: threading.Event) -> PayrollRun:
        run = db.get(PayrollRun, run_id)
        if run is None:
            raise PayrollRunNotFound(run_id)

        try:
            run.transition(PayrollStatus.PROCESSING)
        except InvalidRunTransition:
            logger.warning("payroll_run_not_pending", status=PayrollStatus(run.status).value)
            return run
        db.commit()
        logger.info("payroll_run_started", organization_id=run.organization_id, pay_period=run.pay_period)

        try:
            organization = db.get(Organization, run.organization_id)
            employees = (
                db.query(Employee)
                .filter(Employee.organization_id == run.organization_id, Employee.is_active.is_(True))
                .order_by(Employee.id)
                .all()
            )
            tax_config = db.query(TaxConfig).filter(TaxConfig.organization_id == run.organization_id).one_or_none()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("payroll_workload_load_failed")
            return self._fail(db, run)

        if not employees:
            logger.warning("payroll_no_active_employees", organization_id=run.organization_id)
            return self._fail(db, run)

        rates = TaxRates.from_config(tax_config)
        totals = RunTotals()
        for index, employee in enumerate(employees):
            if cancel_event.is_set():
                logger.warning("payroll_run_cancelled", remaining=len(employees) - index)
                if index == 0:
                    # Nobody was processed; failing frees the period for a new trigger
                    return self._fail(db, run)
                break
            with bind_run_context(employee_id=employee.id):
                slip = self._process_employee(db, run, organization, employee, rates)
            if slip is not None and slip.succeeded:
                totals.add(slip)

        return self._complete(db, run, totals)

    def abandon(self, run_id: int) -> None:
        """Fail a run that was admitted but will never be picked up."""
        with bind_run_context(run_id=run_id):
            db = self.session_factory()
            try:
                run = db.get(PayrollRun, run_id)
                if run is None or run.status != PayrollStatus.PENDING:
                    return
                self._fail(db, run)
            finally:
                db.close()

    def _process_employee(
        self,
        db: Session,
        run: PayrollRun,
        organization: Organization,
        employee: Employee,
        rates: TaxRates,
    ) -> Optional[PayrollSlip]:
        try:
            existing = self._find_slip(db, run.id, employee.id)
            if existing is not None and existing.succeeded:
                logger.info("payroll_employee_already_paid", reference=existing.gateway_reference)
                return existing
            if existing is not None and existing.payment_status == SlipStatus.RESERVED.value:
                logger.warning("payroll_employee_reservation_unsettled")
                return None

            adjustments = (
                db.query(PayrollAdjustment)
                .filter(
                    PayrollAdjustment.employee_id == employee.id,
                    PayrollAdjustment.pay_period == run.pay_period,
                )
                .order_by(PayrollAdjustment.id)
                .all()
            )
            figures = calculate_slip(employee.base_salary, adjustments, rates).rounded()
            amount = figures.net_salary

            if not reserve_funds(db, organization.id, amount):
                logger.error(
                    "insufficient_wallet_balance",
                    required=amount,
                    available=wallet_balance(db, organization.id),
                )
                return self._save_slip(db, run, employee, figures, SlipStatus.FAILED)

            # The debit and its reserved slip commit together
            slip = self._save_slip(db, run, employee, figures, SlipStatus.RESERVED)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("payroll_employee_failed")
            return None

        reference = transfer_reference(run.id, employee.id)
        try:
            transfer = self.gateway.send_transfer(
                amount=amount,
                reference=reference,
                narration=f"{organization.name} Salary - {run.pay_period}",
                bank_code=employee.bank_code,
                account_number=employee.bank_account_number,
                account_name=employee.full_name,
            )
        except GatewayError as exc:
            logger.error("gateway_transfer_failed", error=str(exc))
            return self._settle(db, slip, SlipStatus.FAILED, release=amount)

        slip = self._settle(db, slip, SlipStatus.SUCCESS, reference=transfer.reference)
        if slip is not None:
            self._notify(slip, employee, organization)
        return slip

    def _settle(
        self,
        db: Session,
        slip: PayrollSlip,
        status: SlipStatus,
        reference: Optional[str] = None,
        release: Optional[Decimal] = None,
    ) -> Optional[PayrollSlip]:
        """Resolve a reserved slip, crediting ``release`` back in the same commit."""
        try:
            if release is not None:
                release_funds(db, slip.organization_id, release)
            slip.gateway_reference = reference
            slip.payment_status = status.value
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            # The slip stays reserved; reconciliation settles it
            logger.exception("payroll_reservation_unsettled", reference=reference)
            return None

        slip_counter.add(1, {"status": status.value})
        logger.info("payroll_slip_settled", status=status.value, net_salary=slip.net_salary)
        return slip

    @staticmethod
    def _find_slip(db: Session, run_id: int, employee_id: int) -> Optional[PayrollSlip]:
        return (
            db.query(PayrollSlip)
            .filter(PayrollSlip.payroll_run_id == run_id, PayrollSlip.employee_id == employee_id)
            .one_or_none()
        )

    def _save_slip(
        self,
        db: Session,
        run: PayrollRun,
        employee: Employee,
        figures: CalculatedSlip,
        status: SlipStatus,
    ) -> PayrollSlip:
        # Keyed by (run, employee): a re-processed employee updates its slip
        slip = self._find_slip(db, run.id, employee.id)
        if slip is None:
            slip = PayrollSlip(
                payroll_run_id=run.id,
                employee_id=employee.id,
                organization_id=run.organization_id,
                pay_period=run.pay_period,
            )
            db.add(slip)
        for name, value in figures.as_dict().items():
            setattr(slip, name, value)
        slip.gateway_reference = None
        slip.payment_status = status.value
        db.commit()

        slip_counter.add(1, {"status": status.value})
        logger.info("payroll_slip_saved", status=status.value, net_salary=figures.net_salary)
        return slip

    def _notify(self, slip: PayrollSlip, employee: Employee, organization: Organization) -> None:
        try:
            self.notifier.send_payslip(PayslipNotice.from_slip(slip, employee, organization.name))
        except NotificationError as exc:
            logger.warning("payslip_notification_failed", recipient=employee.email, error=str(exc))

    def _complete(self, db: Session, run: PayrollRun, totals: RunTotals) -> PayrollRun:
        run.transition(PayrollStatus.COMPLETED)
        run.total_gross = totals.gross
        run.total_deductions = totals.deductions
        run.total_net = totals.net
        run.employee_count = totals.employee_count
        run.completed_at = datetime.utcnow()
        db.commit()
        logger.info(
            "payroll_run_completed",
            employees_paid=totals.employee_count,
            total_net=totals.net,
        )
        return run

    def _fail(self, db: Session, run: PayrollRun) -> PayrollRun:
        run.transition(PayrollStatus.FAILED)
        db.commit()
        logger.info("payroll_run_failed")
        return run
