"""Pure helpers shared by the analytics, user and vendor handlers."""

import math
import os
from datetime import datetime
from typing import Any, Optional

CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "₹")


def midnight(dt: datetime) -> datetime:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def month_start(dt: datetime, offset: int = 0) -> datetime:
    """First instant of the month ``offset`` months away from ``dt``'s month."""
    index = dt.year * 12 + (dt.month - 1) + offset
    return datetime(index // 12, index % 12 + 1, 1, tzinfo=dt.tzinfo)


def percent_change(current: float, previous: float) -> float:
    """Change from ``previous`` to ``current`` in percent.

    With no previous value the change is 100 when something happened this
    period and 0 otherwise.
    """
    if previous > 0:
        return (current - previous) / previous * 100
    return 100.0 if current > 0 else 0.0


def round_half_up(value: float, ndigits: int = 0) -> float:
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def format_thousands(value: float) -> str:
    # 12500 -> "₹13k"
    return f"{CURRENCY_SYMBOL}{round_half_up(value / 1000):.0f}k"


def format_currency(value: float) -> str:
    return f"{CURRENCY_SYMBOL}{round_half_up(value):.0f}"


def format_count(value: int) -> str:
    return f"{value:,}"


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


def ok(data: Any = None, message: Optional[str] = None, **extra) -> dict:
    """Build the ``{success, data, message}`` envelope every route returns."""
    body = {"success": True}
    if data is not None:
        body["data"] = data
    if message is not None:
        body["message"] = message
    body.update(extra)
    return body
