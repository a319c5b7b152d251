from __future__ import annotations

from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP

# The gateway bills in Rial; wallets and prices are shown in Toman (1 Toman = 10 Rial).
RIAL_PER_TOMAN = 10


def format_toman(amount: int | float | Decimal) -> str:
    d = Decimal(str(amount)).quantize(Decimal('1'), rounding=ROUND_HALF_UP)
    return f"{d:,} تومان"


def to_minor_units(amount_toman: int | float | Decimal) -> int:
    """Toman -> Rial, rounded half up to a whole Rial."""
    d = Decimal(str(amount_toman)) * RIAL_PER_TOMAN
    return int(d.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def to_major_units(amount_rial: int | Decimal) -> int:
    """Rial -> whole Toman, discarding the remainder."""
    d = Decimal(str(amount_rial)) / RIAL_PER_TOMAN
    return int(d.to_integral_value(rounding=ROUND_FLOOR))
