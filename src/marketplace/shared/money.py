"""Decimal money helpers.

Amounts are persisted as floats (the providers' native numeric type) but every
calculation runs on ``Decimal`` quantized to cents, so derived figures such as
GMV and payout never drift.
"""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Convert a stored amount to a cent-quantized Decimal."""
    if value is None:
        return Decimal("0.00")
    if isinstance(value, Decimal):
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def to_amount(value: Decimal) -> float:
    """Convert a Decimal back to the persisted float representation."""
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))


def split_evenly(total: Decimal, parts: int) -> list[Decimal]:
    """Split ``total`` into ``parts`` cent amounts that sum back to ``total``.

    The rounding remainder goes to the first share.
    """
    if parts <= 0:
        return []
    total = to_decimal(total)
    share = (total / parts).quantize(CENT, rounding=ROUND_HALF_UP)
    if share * parts > total:
        share -= CENT
    shares = [share] * parts
    shares[0] = total - share * (parts - 1)
    return shares
