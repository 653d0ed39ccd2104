from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.orm import Session

from payrun.db.session import get_session
from payrun.domains.payroll.periods import validate_pay_period
from payrun.models import Employee, PayrollAdjustment
from payrun.models.enums import AdjustmentType

router = APIRouter(
    prefix="/organizations/{organization_id}/employees/{employee_id}/adjustments",
    tags=["adjustments"],
)


class AdjustmentCreate(BaseModel):
    adjustment_type: AdjustmentType
    amount: Decimal = Field(..., gt=0, max_digits=15, decimal_places=2)
    description: str = ""
    pay_period: str

    @field_validator("pay_period")
    @classmethod
    def check_pay_period(cls, value: str) -> str:
        return validate_pay_period(value)


class AdjustmentOut(AdjustmentCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    employee_id: int
    created_at: datetime | None = None


def _get_employee(db: Session, organization_id: int, employee_id: int) -> Employee:
    employee = (
        db.query(Employee)
        .filter(Employee.id == employee_id, Employee.organization_id == organization_id)
        .one_or_none()
    )
    if not employee:
        raise HTTPException(status_code=404, detail=f"Employee {employee_id} not found")
    return employee


@router.post("", response_model=AdjustmentOut, status_code=201)
def add_adjustment(
    organization_id: int,
    employee_id: int,
    payload: AdjustmentCreate,
    db: Session = Depends(get_session),
):
    employee = _get_employee(db, organization_id, employee_id)
    row = PayrollAdjustment(
        employee_id=employee.id,
        organization_id=organization_id,
        adjustment_type=payload.adjustment_type,
        amount=payload.amount,
        description=payload.description.strip(),
        pay_period=payload.pay_period,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return AdjustmentOut.model_validate(row)


@router.get("", response_model=list[AdjustmentOut])
def list_adjustments(
    organization_id: int,
    employee_id: int,
    pay_period: str | None = None,
    db: Session = Depends(get_session),
):
    _get_employee(db, organization_id, employee_id)
    query = db.query(PayrollAdjustment).filter(PayrollAdjustment.employee_id == employee_id)
    if pay_period:
        query = query.filter(PayrollAdjustment.pay_period == pay_period)
    rows = query.order_by(PayrollAdjustment.pay_period.desc(), PayrollAdjustment.id.asc()).all()
    return [AdjustmentOut.model_validate(row) for row in rows]
