import math
from decimal import Decimal, InvalidOperation

from .date_range import DateRange
from .errors import ValidationError


def compute_price(date_range: DateRange, nightly_price) -> Decimal:
    """
    Total price of a stay: nights x nightly rate.

    Nights are rounded up to whole days. DateRange already normalizes to
    calendar days, so the count is exact.
    """
    try:
        rate = nightly_price if isinstance(nightly_price, Decimal) else Decimal(str(nightly_price))
    except InvalidOperation:
        raise ValidationError(f"Invalid nightly price: {nightly_price!r}")

    if not rate.is_finite() or rate < 0:
        raise ValidationError("Nightly price must be a non-negative number")

    nights = math.ceil(date_range.nights)
    return rate * nights
