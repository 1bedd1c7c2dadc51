from __future__ import annotations

import math
from decimal import Decimal, ROUND_HALF_UP


def round_won(value: float | int | None) -> int:
    """
    Rounds an amount to whole won, half-up (12.5 -> 13).

    Python's built-in round() does banker's rounding (12.5 -> 12), which
    would make totals drift from what the price tables show.
    """
    if value is None:
        return 0
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def ceil_qty(value: float) -> int:
    """
    Rounds a quantity up. Never returns a negative number.
    """
    if value is None or value <= 0:
        return 0
    # 33.000000000000004 -> 34 otherwise
    return int(math.ceil(round(value, 9)))
