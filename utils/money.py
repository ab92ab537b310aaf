from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List

from services.errors import ValidationError

MINOR_UNITS = 100  # paise per rupee, cents per dollar


def to_minor(amount) -> int:
    """Major-unit amount (500, "499.99") -> smallest unit integer (50000, 49999)."""
    if isinstance(amount, bool) or amount is None:
        raise ValidationError("Invalid amount")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError("Invalid amount")
    if not value.is_finite():
        raise ValidationError("Invalid amount")
    return int((value * MINOR_UNITS).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor(amount: int) -> Decimal:
    return Decimal(amount) / MINOR_UNITS


def split_evenly(total: int, parts: int) -> List[int]:
    """
    Largest-remainder split of an integer amount into `parts` equal shares.
    Leftover units go one each to the leading shares, so the result always
    sums back to `total`.
    """
    if parts <= 0:
        raise ValueError("parts must be positive")
    base, remainder = divmod(total, parts)
    return [base + 1 if i < remainder else base for i in range(parts)]
