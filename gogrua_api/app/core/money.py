"""Rounding helpers for Chilean peso amounts."""

from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: float, places: int = 0) -> int | float:
    """Round ``value`` with halves away from zero, unlike the built‑in ``round``.

    Returns an ``int`` when ``places`` is 0.
    """
    quantum = Decimal(1).scaleb(-places)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return float(rounded) if places else int(rounded)
