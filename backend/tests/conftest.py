from __future__ import annotations

import os

os.environ.setdefault("PAYRUN_DATABASE_URL", "sqlite://")

from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import payrun.models  # noqa: E402,F401
from payrun.core.errors import GatewayError, NotificationError  # noqa: E402
from payrun.db.session import Base  # noqa: E402
from payrun.integrations.monnify import TransferResult  # noqa: E402
from payrun.models import Employee, Organization, PayrollAdjustment, TaxConfig  # noqa: E402
from payrun.models.enums import AdjustmentType  # noqa: E402

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


class FakeGateway:
    def __init__(self, failing_accounts=()):
        self.failing_accounts = set(failing_accounts)
        self.transfers: list[dict] = []

    def send_transfer(self, **kwargs) -> TransferResult:
        self.transfers.append(kwargs)
        if kwargs["account_number"] in self.failing_accounts:
            raise GatewayError("Insufficient balance in source account")
        return TransferResult(reference=f"MFDS-{kwargs['reference']}", status="SUCCESS")


class FakeNotifier:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send_payslip(self, notice) -> None:
        if self.fail:
            raise NotificationError("Connection refused")
        self.sent.append(notice)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def make_organization(db):
    def _make(name: str = "Acme Logistics Ltd", wallet_balance: str = "1000000.00", **kwargs) -> Organization:
        org = Organization(
            name=name,
            email=kwargs.pop("email", f"{name.split()[0].lower()}@example.com"),
            wallet_balance=Decimal(wallet_balance),
            **kwargs,
        )
        db.add(org)
        db.commit()
        return org

    return _make


@pytest.fixture
def make_employee(db):
    counter = {"n": 0}

    def _make(organization: Organization, base_salary: str = "300000.00", **kwargs) -> Employee:
        counter["n"] += 1
        n = counter["n"]
        employee = Employee(
            organization_id=organization.id,
            first_name=kwargs.pop("first_name", "Ada"),
            last_name=kwargs.pop("last_name", f"Okafor{n}"),
            email=kwargs.pop("email", f"employee{n}@example.com"),
            bank_account_number=kwargs.pop("bank_account_number", f"01234567{n:02d}"),
            bank_code=kwargs.pop("bank_code", "058"),
            bank_name=kwargs.pop("bank_name", "GTBank"),
            base_salary=Decimal(base_salary),
            **kwargs,
        )
        db.add(employee)
        db.commit()
        return employee

    return _make


@pytest.fixture
def add_adjustment(db):
    def _add(employee: Employee, adjustment_type: AdjustmentType, amount: str, pay_period: str = "2024-01"):
        row = PayrollAdjustment(
            employee_id=employee.id,
            organization_id=employee.organization_id,
            adjustment_type=adjustment_type,
            amount=Decimal(amount),
            description=adjustment_type.value,
            pay_period=pay_period,
        )
        db.add(row)
        db.commit()
        return row

    return _add


@pytest.fixture
def set_rates(db):
    def _set(organization: Organization, paye="7.5", pension="8", nhf="2.5", nhis="1.75") -> TaxConfig:
        config = TaxConfig(
            organization_id=organization.id,
            paye_rate=Decimal(paye),
            pension_rate=Decimal(pension),
            nhf_rate=Decimal(nhf),
            nhis_rate=Decimal(nhis),
        )
        db.add(config)
        db.commit()
        return config

    return _set
