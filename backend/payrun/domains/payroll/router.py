from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.orm import Session

from payrun.core.errors import DispatcherUnavailable, OrganizationNotFound, PayrollAlreadyProcessed
from payrun.db.session import get_session
from payrun.domains.payroll.admission import admit_run
from payrun.domains.payroll.dispatcher import PayrollDispatcher, get_dispatcher
from payrun.domains.payroll.periods import validate_pay_period
from payrun.models import PayrollRun, PayrollSlip
from payrun.models.enums import PayrollStatus

router = APIRouter(prefix="/organizations/{organization_id}/payroll", tags=["payroll"])


class RunPayrollRequest(BaseModel):
    pay_period: str

    @field_validator("pay_period")
    @classmethod
    def check_pay_period(cls, value: str) -> str:
        return validate_pay_period(value)


class PayrollRunOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    pay_period: str
    status: PayrollStatus
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    employee_count: int
    initiated_at: datetime
    completed_at: datetime | None = None


class PayrollSlipOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    payroll_run_id: int
    employee_id: int
    pay_period: str
    base_salary: Decimal
    total_additions: Decimal
    gross_salary: Decimal
    paye_tax: Decimal
    pension_deduction: Decimal
    nhf_deduction: Decimal
    nhis_deduction: Decimal
    other_deductions: Decimal
    total_deductions: Decimal
    net_salary: Decimal
    gateway_reference: str | None = None
    payment_status: str


def _get_run(db: Session, organization_id: int, run_id: int) -> PayrollRun:
    run = (
        db.query(PayrollRun)
        .filter(PayrollRun.id == run_id, PayrollRun.organization_id == organization_id)
        .one_or_none()
    )
    if not run:
        raise HTTPException(status_code=404, detail=f"Payroll run {run_id} not found")
    return run


@router.post("/run", response_model=PayrollRunOut, status_code=status.HTTP_202_ACCEPTED)
def run_payroll(
    organization_id: int,
    payload: RunPayrollRequest,
    db: Session = Depends(get_session),
    dispatcher: PayrollDispatcher = Depends(get_dispatcher),
) -> PayrollRunOut:
    try:
        run = admit_run(db, organization_id, payload.pay_period)
    except OrganizationNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PayrollAlreadyProcessed as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc

    try:
        dispatcher.submit(run.id)
    except DispatcherUnavailable as exc:
        # Fail the admitted run so the period can be triggered again
        run.transition(PayrollStatus.FAILED)
        db.commit()
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return PayrollRunOut.model_validate(run)


@router.get("/runs", response_model=list[PayrollRunOut])
def list_runs(organization_id: int, db: Session = Depends(get_session)) -> list[PayrollRunOut]:
    rows = (
        db.query(PayrollRun)
        .filter(PayrollRun.organization_id == organization_id)
        .order_by(PayrollRun.initiated_at.desc(), PayrollRun.id.desc())
        .all()
    )
    return [PayrollRunOut.model_validate(row) for row in rows]


@router.get("/runs/{run_id}", response_model=PayrollRunOut)
def get_run(organization_id: int, run_id: int, db: Session = Depends(get_session)) -> PayrollRunOut:
    return PayrollRunOut.model_validate(_get_run(db, organization_id, run_id))


@router.get("/runs/{run_id}/slips", response_model=list[PayrollSlipOut])
def list_slips(organization_id: int, run_id: int, db: Session = Depends(get_session)) -> list[PayrollSlipOut]:
    run = _get_run(db, organization_id, run_id)
    rows = db.query(PayrollSlip).filter(PayrollSlip.payroll_run_id == run.id).order_by(PayrollSlip.id).all()
    return [PayrollSlipOut.model_validate(row) for row in rows]
