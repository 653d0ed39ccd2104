from datetime import datetime

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric
from sqlalchemy.orm import relationship

from payrun.db.session import Base

RATE_COLUMNS = ("paye_rate", "pension_rate", "nhf_rate", "nhis_rate")


class TaxConfig(Base):
    """Statutory deduction rates for one organization, as percentages of gross pay."""

    __tablename__ = "tax_configs"
    __table_args__ = tuple(
        CheckConstraint(f"{column} >= 0 AND {column} <= 100", name=f"ck_tax_configs_{column}_range")
        for column in RATE_COLUMNS
    )

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(
        Integer, ForeignKey("organizations.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    paye_rate = Column(Numeric(5, 2), nullable=False, default=0)  # PAYE income tax
    pension_rate = Column(Numeric(5, 2), nullable=False, default=0)  # employee pension
    nhf_rate = Column(Numeric(5, 2), nullable=False, default=0)  # National Housing Fund
    nhis_rate = Column(Numeric(5, 2), nullable=False, default=0)  # health insurance
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    organization = relationship("Organization", back_populates="tax_config")
