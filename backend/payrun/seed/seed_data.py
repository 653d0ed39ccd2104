from decimal import Decimal

from sqlalchemy.orm import Session

from payrun.models import Employee, Organization, PayrollAdjustment, TaxConfig
from payrun.models.enums import AdjustmentType


def seed(session: Session, pay_period: str = "2024-01") -> Organization:
    organization = Organization(
        name="Acme Logistics Ltd",
        email="payroll@acme.example.com",
        wallet_balance=Decimal("2000000.00"),
    )
    session.add(organization)
    session.flush()

    session.add(
        TaxConfig(
            organization_id=organization.id,
            paye_rate=Decimal("7.50"),
            pension_rate=Decimal("8.00"),
            nhf_rate=Decimal("2.50"),
            nhis_rate=Decimal("1.75"),
        )
    )

    ada = Employee(
        organization_id=organization.id,
        first_name="Ada",
        last_name="Okafor",
        email="ada.okafor@acme.example.com",
        bank_account_number="0123456789",
        bank_code="058",
        bank_name="GTBank",
        base_salary=Decimal("300000.00"),
    )
    tunde = Employee(
        organization_id=organization.id,
        first_name="Tunde",
        last_name="Bello",
        email="tunde.bello@acme.example.com",
        bank_account_number="9876543210",
        bank_code="044",
        bank_name="Access Bank",
        base_salary=Decimal("250000.00"),
    )
    session.add_all([ada, tunde])
    session.flush()

    session.add(
        PayrollAdjustment(
            employee_id=ada.id,
            organization_id=organization.id,
            adjustment_type=AdjustmentType.BONUS,
            amount=Decimal("50000.00"),
            description="Quarterly performance bonus",
            pay_period=pay_period,
        )
    )
    session.commit()
    return organization


if __name__ == "__main__":
    from payrun.db.session import SessionLocal

    with SessionLocal() as db:
        org = seed(db)
        print(f"Seeded organization {org.id} ({org.name})")
