# Booking price breakdown. Pure functions over Decimal; no I/O.
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from .errors import ValidationError

Number = Union[Decimal, int, str]

# Platform service fee charged to the guest on the accommodation subtotal (cleaning excluded)
SERVICE_FEE_RATE = Decimal("0.03")
CENTS = Decimal("0.01")


def to_money(value: Number) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PriceBreakdown:
    base: Decimal
    cleaning: Decimal
    service: Decimal
    discount: Decimal
    total: Decimal


def calculate_pricing(
    nightly_rate: Number,
    cleaning_fee: Number,
    nights: int,
    discount: Number = 0,
) -> PriceBreakdown:
    """
    Itemize a stay.

    - base = nightly_rate * nights
    - service = 3% of base
    - total = base + cleaning + service - discount, floored at zero

    A discount larger than the subtotal is allowed and yields a zero total.
    """
    rate = Decimal(str(nightly_rate))
    cleaning = Decimal(str(cleaning_fee))
    disc = Decimal(str(discount))

    if rate <= 0:
        raise ValidationError("nightly rate must be greater than 0")
    if cleaning < 0:
        raise ValidationError("cleaning fee cannot be negative")
    if nights < 1:
        raise ValidationError("stay must be at least one night")
    if disc < 0:
        raise ValidationError("discount cannot be negative")

    base = to_money(rate * nights)
    service = to_money(base * SERVICE_FEE_RATE)
    cleaning = to_money(cleaning)
    disc = to_money(disc)
    total = max(base + cleaning + service - disc, Decimal("0.00"))
    return PriceBreakdown(base=base, cleaning=cleaning, service=service, discount=disc, total=total)
