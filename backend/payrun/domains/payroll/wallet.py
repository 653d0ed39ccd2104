"""Organization wallet mutations.

Funds are reserved with a single conditional decrement before money leaves
through the gateway, so concurrent runs of one organization can never both
spend the same balance. A reservation whose transfer fails is released.

Neither function commits: the caller commits the wallet change together with
the slip that accounts for it.
"""

from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from payrun.models import Organization


def wallet_balance(db: Session, organization_id: int) -> Decimal:
    balance = db.execute(
        select(Organization.wallet_balance).where(Organization.id == organization_id)
    ).scalar_one()
    return Decimal(balance)


def reserve_funds(db: Session, organization_id: int, amount: Decimal) -> bool:
    result = db.execute(
        update(Organization)
        .where(Organization.id == organization_id, Organization.wallet_balance >= amount)
        .values(wallet_balance=Organization.wallet_balance - amount)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def release_funds(db: Session, organization_id: int, amount: Decimal) -> None:
    db.execute(
        update(Organization)
        .where(Organization.id == organization_id)
        .values(wallet_balance=Organization.wallet_balance + amount)
        .execution_options(synchronize_session=False)
    )
