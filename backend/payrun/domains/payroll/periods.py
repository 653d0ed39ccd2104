import re

from payrun.core.errors import InvalidPayPeriod

PAY_PERIOD_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def validate_pay_period(value: str) -> str:
    """Return ``value`` stripped if it is a ``YYYY-MM`` period, else raise InvalidPayPeriod."""
    candidate = (value or "").strip()
    if not PAY_PERIOD_PATTERN.match(candidate):
        raise InvalidPayPeriod(value)
    return candidate
