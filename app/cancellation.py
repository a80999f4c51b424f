# Cancellation refund schedules attached to listings.
# The refund is an amount for the payment collaborator to act on; nothing here moves money.
from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Dict, Tuple

from .errors import ValidationError
from .pricing import Number, to_money


class CancellationPolicy(str, Enum):
    FLEXIBLE = "flexible"
    MODERATE = "moderate"
    STRICT = "strict"
    SUPER_STRICT = "super_strict"


# policy -> ((min_days, percent), ...) ordered from most to fewest days remaining.
# First matching rule wins; no match means no refund.
_SCHEDULES: Dict[CancellationPolicy, Tuple[Tuple[int, int], ...]] = {
    CancellationPolicy.FLEXIBLE: ((1, 100),),
    CancellationPolicy.MODERATE: ((5, 100), (1, 50)),
    CancellationPolicy.STRICT: ((7, 100), (1, 50)),
    CancellationPolicy.SUPER_STRICT: ((30, 50),),
}


def parse_policy(value: str) -> CancellationPolicy:
    try:
        return CancellationPolicy(value)
    except ValueError as exc:
        raise ValidationError(f"unknown cancellation policy: {value!r}") from exc


def refund_percentage(policy: CancellationPolicy, days_until_check_in: int) -> int:
    for min_days, percent in _SCHEDULES[policy]:
        if days_until_check_in >= min_days:
            return percent
    return 0


def calculate_refund(policy: CancellationPolicy, days_until_check_in: int, total_price: Number) -> Decimal:
    """Refund owed for cancelling `days_until_check_in` days ahead of arrival.

    >>> calculate_refund(CancellationPolicy.MODERATE, 3, 200)
    Decimal('100.00')
    """
    percent = refund_percentage(policy, days_until_check_in)
    return to_money(Decimal(str(total_price)) * percent / 100)


def describe_policy(policy: CancellationPolicy) -> str:
    rules = [f"{pct}% refund when cancelled {days}+ day(s) before check-in" for days, pct in _SCHEDULES[policy]]
    rules.append("otherwise no refund")
    return "; ".join(rules)
