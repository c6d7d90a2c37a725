# orders/money.py
from decimal import ROUND_HALF_UP, Decimal

TWODP = Decimal("0.01")
MINOR_PER_MAJOR = Decimal("100")


def D(x) -> Decimal:
    """Decimal from Decimal/int/str; floats go through str() so 0.1 stays 0.1."""
    if isinstance(x, Decimal):
        return x
    return Decimal(str(x))


def q2(x) -> Decimal:
    return D(x).quantize(TWODP, rounding=ROUND_HALF_UP)


def to_minor_units(amount, multiplier: Decimal = MINOR_PER_MAJOR) -> int:
    """NGN 3900 -> 390000 kobo."""
    return int((D(amount) * multiplier).to_integral_value(rounding=ROUND_HALF_UP))


def to_major_units(minor: int, divisor: Decimal = MINOR_PER_MAJOR) -> Decimal:
    """390000 kobo -> Decimal('3900.00'). Never touches float."""
    if isinstance(minor, bool) or not isinstance(minor, int):
        raise TypeError("minor units must be an int")
    return q2(Decimal(minor) / divisor)


def format_major(minor: int, currency: str) -> str:
    return f"{currency} {to_major_units(minor):,.2f}"
