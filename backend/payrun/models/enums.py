from enum import Enum


class AdjustmentType(str, Enum):
    OVERTIME = "overtime"
    BONUS = "bonus"
    COMMISSION = "commission"
    LATE_DAY_DEDUCTION = "late_day_deduction"
    UNPAID_LEAVE_DEDUCTION = "unpaid_leave_deduction"
    OTHER_DEDUCTION = "other_deduction"
    OTHER_ADDITION = "other_addition"


ADDITION_TYPES = frozenset(
    {
        AdjustmentType.OVERTIME,
        AdjustmentType.BONUS,
        AdjustmentType.COMMISSION,
        AdjustmentType.OTHER_ADDITION,
    }
)
DEDUCTION_TYPES = frozenset(
    {
        AdjustmentType.LATE_DAY_DEDUCTION,
        AdjustmentType.UNPAID_LEAVE_DEDUCTION,
        AdjustmentType.OTHER_DEDUCTION,
    }
)


class PayrollStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return not RUN_TRANSITIONS[self]

    def can_transition_to(self, target: "PayrollStatus") -> bool:
        return target in RUN_TRANSITIONS[self]


RUN_TRANSITIONS = {
    PayrollStatus.PENDING: frozenset({PayrollStatus.PROCESSING, PayrollStatus.FAILED}),
    PayrollStatus.PROCESSING: frozenset({PayrollStatus.COMPLETED, PayrollStatus.FAILED}),
    PayrollStatus.COMPLETED: frozenset(),
    PayrollStatus.FAILED: frozenset(),
}


class SlipStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    # Funds debited from the wallet, transfer not yet settled
    RESERVED = "reserved"


def enum_values(enum_cls) -> list[str]:
    """Persist enum members by value (``"late_day_deduction"``), not by name."""
    return [member.value for member in enum_cls]
