"""Safe conversion of Stripe epoch timestamps and calendar helpers."""

import calendar
import math
from datetime import datetime, timedelta

_EPOCH = datetime(1970, 1, 1)


def from_unix_timestamp(value: object) -> datetime | None:
    """Convert a Stripe Unix timestamp to a naive UTC datetime.

    Total: returns ``None`` for anything that is not a usable positive epoch
    value (None, booleans, non-numeric types, NaN/inf, zero or negative,
    out of datetime range). Numeric strings are accepted.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if value <= 0:
        return None
    try:
        return _EPOCH + timedelta(seconds=value)
    except (OverflowError, ValueError):
        return None


def end_of_month(moment: datetime) -> datetime:
    """Last instant of the calendar month containing ``moment``."""
    last_day = calendar.monthrange(moment.year, moment.month)[1]
    return moment.replace(day=last_day, hour=23, minute=59, second=59, microsecond=999999)
