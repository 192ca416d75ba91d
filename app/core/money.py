"""USD amounts: Decimal at the API edge, integer cents in storage."""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def to_cents(amount: Decimal | int | float | str, rounding: str = ROUND_HALF_UP) -> int:
    value = Decimal(str(amount)).quantize(CENT, rounding=rounding)
    return int(value * 100)


def usd_to_cents_floor(amount: Decimal) -> int:
    """Chain-derived values are never rounded in the user's favour."""
    return to_cents(amount, rounding=ROUND_DOWN)


def from_cents(cents: int | None) -> float | None:
    if cents is None:
        return None
    return float(Decimal(cents) / 100)
