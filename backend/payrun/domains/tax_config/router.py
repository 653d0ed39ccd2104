from datetime import datetime
from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from payrun.core.logging import get_logger
from payrun.db.session import get_session
from payrun.models import Organization, TaxConfig

router = APIRouter(prefix="/organizations/{organization_id}/tax-config", tags=["tax & deductions"])
logger = get_logger(__name__)

Rate = Annotated[Decimal, Field(ge=0, le=100, max_digits=5, decimal_places=2)]


class TaxConfigIn(BaseModel):
    paye_rate: Rate
    pension_rate: Rate
    nhf_rate: Rate
    nhis_rate: Rate


class TaxConfigOut(TaxConfigIn):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    updated_at: datetime | None = None


@router.put("", response_model=TaxConfigOut)
def set_tax_config(organization_id: int, payload: TaxConfigIn, db: Session = Depends(get_session)):
    if db.get(Organization, organization_id) is None:
        raise HTTPException(status_code=404, detail=f"Organization {organization_id} not found")

    config = db.query(TaxConfig).filter(TaxConfig.organization_id == organization_id).one_or_none()
    if config is None:
        config = TaxConfig(organization_id=organization_id)
        db.add(config)
    for name, value in payload.model_dump().items():
        setattr(config, name, value)
    db.commit()
    db.refresh(config)

    logger.info("tax_config_saved", organization_id=organization_id, **payload.model_dump())
    return TaxConfigOut.model_validate(config)


@router.get("", response_model=TaxConfigOut)
def get_tax_config(organization_id: int, db: Session = Depends(get_session)):
    config = db.query(TaxConfig).filter(TaxConfig.organization_id == organization_id).one_or_none()
    if not config:
        raise HTTPException(status_code=404, detail="Tax configuration not set")
    return TaxConfigOut.model_validate(config)
