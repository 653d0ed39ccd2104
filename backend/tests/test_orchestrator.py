import threading
from datetime import timedelta
from decimal import Decimal

import pytest
from conftest import FakeGateway, FakeNotifier, TestingSessionLocal
from sqlalchemy.exc import OperationalError

from payrun.core.errors import PayrollRunNotFound
from payrun.domains.payroll import orchestrator as orchestrator_module
from payrun.domains.payroll.admission import admit_run
from payrun.domains.payroll.orchestrator import PayrollOrchestrator, transfer_reference
from payrun.domains.payroll.reconciliation import reconcile_stale_runs
from payrun.integrations.mailer import PayslipMailer
from payrun.models import Organization, PayrollRun, PayrollSlip
from payrun.models.enums import AdjustmentType, PayrollStatus, SlipStatus


def run_payroll(run_id, gateway=None, notifier=None, cancel_event=None):
    orchestrator = PayrollOrchestrator(TestingSessionLocal, gateway or FakeGateway(), notifier or FakeNotifier())
    return orchestrator.run(run_id, cancel_event)


def reload(db, model, pk):
    db.expire_all()
    return db.get(model, pk)


def slips_for(db, run_id):
    db.expire_all()
    return db.query(PayrollSlip).filter(PayrollSlip.payroll_run_id == run_id).order_by(PayrollSlip.employee_id).all()


def test_pays_employee_and_completes_run(db, make_organization, make_employee, add_adjustment, set_rates, gateway, notifier):
    org = make_organization(wallet_balance="1000000.00")
    set_rates(org)
    ada = make_employee(org, base_salary="300000.00", first_name="Ada", last_name="Okafor")
    add_adjustment(ada, AdjustmentType.BONUS, "50000.00")
    run = admit_run(db, org.id, "2024-01")

    run_payroll(run.id, gateway, notifier)

    assert gateway.transfers == [
        {
            "amount": Decimal("280875.00"),
            "reference": transfer_reference(run.id, ada.id),
            "narration": "Acme Logistics Ltd Salary - 2024-01",
            "bank_code": "058",
            "account_number": ada.bank_account_number,
            "account_name": "Ada Okafor",
        }
    ]
    assert transfer_reference(run.id, ada.id) == f"PAY-{run.id}-{ada.id}"

    (slip,) = slips_for(db, run.id)
    assert slip.payment_status == SlipStatus.SUCCESS.value
    assert slip.gateway_reference == f"MFDS-PAY-{run.id}-{ada.id}"
    assert slip.gross_salary == Decimal("350000.00")
    assert slip.paye_tax == Decimal("26250.00")
    assert slip.total_deductions == Decimal("69125.00")
    assert slip.net_salary == Decimal("280875.00")

    finished = reload(db, PayrollRun, run.id)
    assert finished.status == PayrollStatus.COMPLETED
    assert finished.employee_count == 1
    assert finished.total_gross == Decimal("350000.00")
    assert finished.total_deductions == Decimal("69125.00")
    assert finished.total_net == Decimal("280875.00")
    assert finished.completed_at is not None

    assert reload(db, Organization, org.id).wallet_balance == Decimal("719125.00")
    assert [notice.employee_email for notice in notifier.sent] == [ada.email]
    assert notifier.sent[0].net_salary == Decimal("280875.00")


def test_insufficient_wallet_records_failed_slip(db, make_organization, make_employee, gateway, notifier):
    org = make_organization(wallet_balance="100000.00")
    make_employee(org, base_salary="300000.00")
    run = admit_run(db, org.id, "2024-01")

    run_payroll(run.id, gateway, notifier)

    (slip,) = slips_for(db, run.id)
    assert slip.payment_status == SlipStatus.FAILED.value
    assert slip.gateway_reference is None
    assert slip.net_salary == Decimal("300000.00")
    assert gateway.transfers == []
    assert notifier.sent == []
    assert reload(db, Organization, org.id).wallet_balance == Decimal("100000.00")

    finished = reload(db, PayrollRun, run.id)
    assert finished.status == PayrollStatus.COMPLETED
    assert finished.employee_count == 0
    assert finished.total_net == 0


def test_gateway_failure_releases_reserved_funds(db, make_organization, make_employee, notifier):
    org = make_organization(wallet_balance="1000000.00")
    paid = make_employee(org, base_salary="200000.00")
    rejected = make_employee(org, base_salary="150000.00")
    gateway = FakeGateway(failing_accounts={rejected.bank_account_number})
    run = admit_run(db, org.id, "2024-01")

    run_payroll(run.id, gateway, notifier)

    assert len(gateway.transfers) == 2
    ok, failed = slips_for(db, run.id)
    assert (ok.employee_id, ok.payment_status) == (paid.id, SlipStatus.SUCCESS.value)
    assert (failed.employee_id, failed.payment_status) == (rejected.id, SlipStatus.FAILED.value)
    assert failed.gateway_reference is None
    assert reload(db, Organization, org.id).wallet_balance == Decimal("800000.00")

    finished = reload(db, PayrollRun, run.id)
    assert finished.status == PayrollStatus.COMPLETED
    assert finished.employee_count == 1
    assert finished.total_net == Decimal("200000.00")
    assert [notice.employee_email for notice in notifier.sent] == [paid.email]


def test_wallet_runs_out_part_way(db, make_organization, make_employee, gateway):
    org = make_organization(wallet_balance="500000.00")
    make_employee(org, base_salary="300000.00")
    make_employee(org, base_salary="300000.00")
    make_employee(org, base_salary="150000.00")
    run = admit_run(db, org.id, "2024-01")

    run_payroll(run.id, gateway)

    statuses = [slip.payment_status for slip in slips_for(db, run.id)]
    assert statuses == ["success", "failed", "success"]
    assert reload(db, Organization, org.id).wallet_balance == Decimal("50000.00")
    finished = reload(db, PayrollRun, run.id)
    assert finished.employee_count == 2
    assert finished.total_net == Decimal("450000.00")


def test_email_failure_does_not_affect_payment(db, make_organization, make_employee, gateway):
    org = make_organization()
    make_employee(org, base_salary="120000.00")
    run = admit_run(db, org.id, "2024-01")

    run_payroll(run.id, gateway, FakeNotifier(fail=True))

    (slip,) = slips_for(db, run.id)
    assert slip.payment_status == SlipStatus.SUCCESS.value
    assert reload(db, PayrollRun, run.id).status == PayrollStatus.COMPLETED


def test_run_without_employees_fails(db, make_organization, gateway):
    org = make_organization()
    run = admit_run(db, org.id, "2024-01")

    run_payroll(run.id, gateway)

    finished = reload(db, PayrollRun, run.id)
    assert finished.status == PayrollStatus.FAILED
    assert finished.completed_at is None
    assert slips_for(db, run.id) == []


def test_inactive_employees_are_not_paid(db, make_organization, make_employee, gateway):
    org = make_organization()
    make_employee(org, is_active=False)
    run = admit_run(db, org.id, "2024-01")

    run_payroll(run.id, gateway)

    assert reload(db, PayrollRun, run.id).status == PayrollStatus.FAILED
    assert gateway.transfers == []


def test_only_adjustments_for_the_run_period_apply(db, make_organization, make_employee, add_adjustment, gateway):
    org = make_organization()
    employee = make_employee(org, base_salary="300000.00")
    add_adjustment(employee, AdjustmentType.BONUS, "50000.00", pay_period="2024-02")
    add_adjustment(employee, AdjustmentType.LATE_DAY_DEDUCTION, "5000.00", pay_period="2024-01")
    run = admit_run(db, org.id, "2024-01")

    run_payroll(run.id, gateway)

    (slip,) = slips_for(db, run.id)
    assert slip.total_additions == 0
    assert slip.other_deductions == Decimal("5000.00")
    assert slip.net_salary == Decimal("295000.00")


def test_run_that_is_not_pending_is_left_alone(db, make_organization, make_employee, gateway):
    org = make_organization()
    make_employee(org)
    run = admit_run(db, org.id, "2024-01")
    run.transition(PayrollStatus.PROCESSING)
    db.commit()

    result = run_payroll(run.id, gateway)

    assert result.status == PayrollStatus.PROCESSING
    assert gateway.transfers == []
    assert slips_for(db, run.id) == []


def test_unknown_run(gateway):
    with pytest.raises(PayrollRunNotFound):
        run_payroll(404, gateway)


def test_run_cancelled_before_any_employee_fails_and_frees_period(db, make_organization, make_employee, gateway):
    org = make_organization()
    make_employee(org)
    run = admit_run(db, org.id, "2024-01")
    cancel = threading.Event()
    cancel.set()

    run_payroll(run.id, gateway, cancel_event=cancel)

    finished = reload(db, PayrollRun, run.id)
    assert finished.status == PayrollStatus.FAILED
    assert finished.completed_at is None
    assert gateway.transfers == []
    assert slips_for(db, run.id) == []
    assert admit_run(db, org.id, "2024-01").status == PayrollStatus.PENDING


class CancellingGateway(FakeGateway):
    """Signals shutdown right after the first transfer goes out."""

    def __init__(self, cancel_event):
        super().__init__()
        self.cancel_event = cancel_event

    def send_transfer(self, **kwargs):
        result = super().send_transfer(**kwargs)
        self.cancel_event.set()
        return result


def test_run_cancelled_mid_way_completes_with_what_was_paid(db, make_organization, make_employee):
    org = make_organization()
    first = make_employee(org, base_salary="100000.00")
    make_employee(org, base_salary="100000.00")
    run = admit_run(db, org.id, "2024-01")
    cancel = threading.Event()
    gateway = CancellingGateway(cancel)

    run_payroll(run.id, gateway, cancel_event=cancel)

    finished = reload(db, PayrollRun, run.id)
    assert finished.status == PayrollStatus.COMPLETED
    assert finished.employee_count == 1
    assert finished.total_net == Decimal("100000.00")
    assert [slip.employee_id for slip in slips_for(db, run.id)] == [first.id]


class RecordingSMTP:
    connections = []

    def __init__(self, host, port, timeout=None):
        RecordingSMTP.connections.append((host, port))

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def send_message(self, message):
        pass


def test_unbuildable_payslip_email_does_not_stop_the_run(db, make_organization, make_employee, gateway):
    RecordingSMTP.connections = []
    org = make_organization("Acme\nLtd")
    make_employee(org, base_salary="100000.00")
    make_employee(org, base_salary="120000.00")
    run = admit_run(db, org.id, "2024-01")
    mailer = PayslipMailer(host="smtp.example.com", use_tls=False, smtp_factory=RecordingSMTP)

    run_payroll(run.id, gateway, mailer)

    finished = reload(db, PayrollRun, run.id)
    assert finished.status == PayrollStatus.COMPLETED
    assert finished.employee_count == 2
    assert len(gateway.transfers) == 2
    assert [slip.payment_status for slip in slips_for(db, run.id)] == ["success", "success"]
    assert RecordingSMTP.connections == []


def test_database_error_for_one_employee_is_isolated(db, make_organization, make_employee, gateway, monkeypatch):
    org = make_organization(wallet_balance="1000000.00")
    make_employee(org, base_salary="200000.00")
    healthy = make_employee(org, base_salary="100000.00")
    real_reserve = orchestrator_module.reserve_funds

    def flaky_reserve(session, organization_id, amount):
        if amount == Decimal("200000.00"):
            raise OperationalError("UPDATE organizations", {}, Exception("disk I/O error"))
        return real_reserve(session, organization_id, amount)

    monkeypatch.setattr(orchestrator_module, "reserve_funds", flaky_reserve)
    run = admit_run(db, org.id, "2024-01")

    run_payroll(run.id, gateway)

    assert [transfer["account_number"] for transfer in gateway.transfers] == [healthy.bank_account_number]
    (slip,) = slips_for(db, run.id)
    assert slip.employee_id == healthy.id
    finished = reload(db, PayrollRun, run.id)
    assert finished.status == PayrollStatus.COMPLETED
    assert finished.employee_count == 1
    assert finished.total_net == Decimal("100000.00")
    assert reload(db, Organization, org.id).wallet_balance == Decimal("900000.00")


def test_unsettled_reservation_is_kept_and_released_by_reconciliation(db, make_organization, make_employee, monkeypatch):
    org = make_organization(wallet_balance="500000.00")
    employee = make_employee(org, base_salary="200000.00")
    gateway = FakeGateway(failing_accounts={employee.bank_account_number})

    def broken_release(session, organization_id, amount):
        raise OperationalError("UPDATE organizations", {}, Exception("database is locked"))

    monkeypatch.setattr(orchestrator_module, "release_funds", broken_release)
    run = admit_run(db, org.id, "2024-01")

    run_payroll(run.id, gateway)

    (slip,) = slips_for(db, run.id)
    assert slip.payment_status == SlipStatus.RESERVED.value
    assert reload(db, Organization, org.id).wallet_balance == Decimal("300000.00")
    assert reload(db, PayrollRun, run.id).status == PayrollStatus.COMPLETED

    reconcile_stale_runs(db, timedelta(minutes=60))

    (slip,) = slips_for(db, run.id)
    assert slip.payment_status == SlipStatus.FAILED.value
    assert reload(db, Organization, org.id).wallet_balance == Decimal("500000.00")


def test_settled_slips_never_stay_reserved(db, make_organization, make_employee):
    org = make_organization(wallet_balance="1000000.00")
    make_employee(org, base_salary="100000.00")
    rejected = make_employee(org, base_salary="100000.00")
    run = admit_run(db, org.id, "2024-01")

    run_payroll(run.id, FakeGateway(failing_accounts={rejected.bank_account_number}))

    assert sorted(slip.payment_status for slip in slips_for(db, run.id)) == ["failed", "success"]


def test_already_paid_employee_is_not_paid_twice(db, make_organization, make_employee, gateway):
    org = make_organization(wallet_balance="1000000.00")
    paid = make_employee(org, base_salary="300000.00")
    pending = make_employee(org, base_salary="100000.00")
    run = admit_run(db, org.id, "2024-01")
    db.add(
        PayrollSlip(
            payroll_run_id=run.id,
            employee_id=paid.id,
            organization_id=org.id,
            pay_period="2024-01",
            base_salary=Decimal("300000.00"),
            gross_salary=Decimal("300000.00"),
            total_deductions=Decimal("0.00"),
            net_salary=Decimal("300000.00"),
            gateway_reference=f"MFDS-PAY-{run.id}-{paid.id}",
            payment_status=SlipStatus.SUCCESS.value,
        )
    )
    db.commit()

    run_payroll(run.id, gateway)

    assert [transfer["account_number"] for transfer in gateway.transfers] == [pending.bank_account_number]
    assert len(slips_for(db, run.id)) == 2
    finished = reload(db, PayrollRun, run.id)
    assert finished.employee_count == 2
    assert finished.total_net == Decimal("400000.00")
    assert reload(db, Organization, org.id).wallet_balance == Decimal("900000.00")


def test_totals_equal_sum_of_successful_slips(db, make_organization, make_employee, add_adjustment, set_rates):
    org = make_organization(wallet_balance="5000000.00")
    set_rates(org)
    employees = [make_employee(org, base_salary=salary) for salary in ("250000.00", "410000.50", "98000.00")]
    add_adjustment(employees[1], AdjustmentType.COMMISSION, "12345.67")
    add_adjustment(employees[2], AdjustmentType.UNPAID_LEAVE_DEDUCTION, "3000.00")
    gateway = FakeGateway(failing_accounts={employees[0].bank_account_number})
    run = admit_run(db, org.id, "2024-01")

    run_payroll(run.id, gateway)

    paid = [slip for slip in slips_for(db, run.id) if slip.succeeded]
    finished = reload(db, PayrollRun, run.id)
    assert finished.employee_count == len(paid) == 2
    assert finished.total_gross == sum(slip.gross_salary for slip in paid)
    assert finished.total_deductions == sum(slip.total_deductions for slip in paid)
    assert finished.total_net == sum(slip.net_salary for slip in paid)
    assert reload(db, Organization, org.id).wallet_balance == Decimal("5000000.00") - finished.total_net


def test_abandon_fails_only_pending_runs(db, make_organization):
    org = make_organization()
    queued = admit_run(db, org.id, "2024-01")
    started = admit_run(db, org.id, "2024-02")
    started.transition(PayrollStatus.PROCESSING)
    db.commit()
    orchestrator = PayrollOrchestrator(TestingSessionLocal, FakeGateway(), FakeNotifier())

    orchestrator.abandon(queued.id)
    orchestrator.abandon(started.id)

    assert reload(db, PayrollRun, queued.id).status == PayrollStatus.FAILED
    assert reload(db, PayrollRun, started.id).status == PayrollStatus.PROCESSING
