from __future__ import annotations

from dataclasses import dataclass, fields, replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from payrun.models.enums import ADDITION_TYPES, DEDUCTION_TYPES, AdjustmentType

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def to_money(value) -> Decimal:
    """Round to currency minor units. Only used when a figure leaves the engine."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TaxRates:
    paye: Decimal = ZERO
    pension: Decimal = ZERO
    nhf: Decimal = ZERO
    nhis: Decimal = ZERO

    @classmethod
    def from_config(cls, config) -> TaxRates:
        # An organization without a tax config pays no statutory deductions
        if config is None:
            return cls()
        return cls(
            paye=to_decimal(config.paye_rate),
            pension=to_decimal(config.pension_rate),
            nhf=to_decimal(config.nhf_rate),
            nhis=to_decimal(config.nhis_rate),
        )


@dataclass(frozen=True)
class AdjustmentLine:
    adjustment_type: AdjustmentType
    amount: Decimal


@dataclass(frozen=True)
class CalculatedSlip:
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

    def rounded(self) -> CalculatedSlip:
        """Quantize for persistence.

        Totals and net are re-derived from the rounded components so a stored
        slip always adds up to the kobo.
        """
        money = {f.name: to_money(getattr(self, f.name)) for f in fields(self)}
        money["total_deductions"] = (
            money["paye_tax"]
            + money["pension_deduction"]
            + money["nhf_deduction"]
            + money["nhis_deduction"]
            + money["other_deductions"]
        )
        money["net_salary"] = max(money["gross_salary"] - money["total_deductions"], ZERO)
        return replace(self, **money)

    def as_dict(self) -> dict[str, Decimal]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def calculate_slip(
    base_salary,
    adjustments: Iterable,
    rates: Optional[TaxRates] = None,
) -> CalculatedSlip:
    """Compute one employee's payslip figures in exact decimal arithmetic.

    ``adjustments`` are objects exposing ``adjustment_type`` and ``amount``
    (ORM rows or :class:`AdjustmentLine`), already filtered to the pay period.
    The net salary is floored at zero; excess deductions are absorbed.
    """
    rates = rates or TaxRates()
    base = to_decimal(base_salary)

    total_additions = ZERO
    other_deductions = ZERO
    for adjustment in adjustments:
        kind = AdjustmentType(adjustment.adjustment_type)
        amount = to_decimal(adjustment.amount)
        if kind in ADDITION_TYPES:
            total_additions += amount
        elif kind in DEDUCTION_TYPES:
            other_deductions += amount
        else:
            raise ValueError(f"Unclassified adjustment type {kind.value!r}")

    gross_salary = base + total_additions
    paye_tax = gross_salary * rates.paye / HUNDRED
    pension_deduction = gross_salary * rates.pension / HUNDRED
    nhf_deduction = gross_salary * rates.nhf / HUNDRED
    nhis_deduction = gross_salary * rates.nhis / HUNDRED

    total_deductions = paye_tax + pension_deduction + nhf_deduction + nhis_deduction + other_deductions
    net_salary = max(gross_salary - total_deductions, ZERO)

    return CalculatedSlip(
        base_salary=base,
        total_additions=total_additions,
        gross_salary=gross_salary,
        paye_tax=paye_tax,
        pension_deduction=pension_deduction,
        nhf_deduction=nhf_deduction,
        nhis_deduction=nhis_deduction,
        other_deductions=other_deductions,
        total_deductions=total_deductions,
        net_salary=net_salary,
    )
