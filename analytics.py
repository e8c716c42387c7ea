"""
Dashboard analytics: KPIs, the revenue trend and revenue breakdowns.

Everything is computed for a date range selector (``week``, ``month`` or
``year``) relative to ``now``. The current period runs from its start up to
now; the previous period is the same length immediately before it. All
boundaries are UTC.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from utils import (
    format_count,
    format_currency,
    format_thousands,
    midnight,
    month_start,
    percent_change,
)

logger = logging.getLogger(__name__)

DEFAULT_RANGE = "month"
TOP_CATEGORIES = 10
UNCATEGORIZED = "Uncategorized"
UNKNOWN_METHOD = "Unknown"
MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)

# date range -> (number of trend buckets, bucket unit)
TREND_SHAPES = {
    "week": (7, "day"),
    "month": (6, "month"),
    "year": (12, "month"),
}


@dataclass(frozen=True)
class Period:
    start: datetime
    previous_start: datetime

    @property
    def previous_end(self) -> datetime:
        return self.start


def resolve_range(date_range: Optional[str]) -> str:
    return date_range if date_range in TREND_SHAPES else DEFAULT_RANGE


def resolve_period(date_range: str, now: datetime) -> Period:
    date_range = resolve_range(date_range)
    if date_range == "week":
        start = midnight(now - timedelta(days=7))
        return Period(start, start - timedelta(days=7))
    if date_range == "year":
        return Period(
            datetime(now.year, 1, 1, tzinfo=now.tzinfo),
            datetime(now.year - 1, 1, 1, tzinfo=now.tzinfo),
        )
    return Period(month_start(now), month_start(now, -1))


def trend_buckets(date_range: str, now: datetime) -> list:
    """Contiguous ``(label, start, end)`` buckets, oldest first."""
    count, unit = TREND_SHAPES[resolve_range(date_range)]
    buckets = []
    for i in range(count - 1, -1, -1):
        if unit == "month":
            start = month_start(now, -i)
            end = month_start(now, -i + 1)
            label = MONTH_ABBREVIATIONS[start.month - 1]
        else:
            start = midnight(now) - timedelta(days=i)
            end = start + timedelta(days=1)
            label = f"{MONTH_ABBREVIATIONS[start.month - 1]} {start.day}"
        buckets.append((label, start, end))
    return buckets


def kpi(value, display: str, previous) -> dict:
    change = percent_change(value, previous)
    return {
        "value": value,
        "display": display,
        "change": change,
        "isPositive": change >= 0,
    }


def revenue_trend(store, date_range: str, now: datetime) -> list:
    buckets = trend_buckets(date_range, now)
    boundaries = [start for _, start, _ in buckets] + [buckets[-1][2]]
    totals = store.revenue_buckets(boundaries)
    return [
        {"label": label, "value": total, "display": format_thousands(total)}
        for (label, _, _), total in zip(buckets, totals)
    ]


def compute_analytics(store, date_range: str = DEFAULT_RANGE, now: Optional[datetime] = None) -> dict:
    """Build the admin dashboard payload. Any store failure propagates."""
    now = now or datetime.now(timezone.utc)
    date_range = resolve_range(date_range)
    period = resolve_period(date_range, now)
    logger.debug("Computing %s analytics from %s", date_range, period.start.isoformat())

    revenue = store.paid_revenue(period.start)
    previous_revenue = store.paid_revenue(period.previous_start, period.previous_end)

    orders = store.count_orders(period.start)
    previous_orders = store.count_orders(period.previous_start, period.previous_end)

    avg_order_value = revenue / orders if orders else 0
    previous_avg = previous_revenue / previous_orders if previous_orders else 0

    customers = store.count_users(period.start)
    previous_customers = store.count_users(period.previous_start, period.previous_end)

    categories = store.category_revenue(period.start, TOP_CATEGORIES)
    methods = store.payment_methods(period.start)

    return {
        "kpis": {
            "totalRevenue": kpi(revenue, format_thousands(revenue), previous_revenue),
            "orders": kpi(orders, format_count(orders), previous_orders),
            "avgOrderValue": kpi(avg_order_value, format_currency(avg_order_value), previous_avg),
            "newCustomers": kpi(customers, format_count(customers), previous_customers),
        },
        "revenueTrend": revenue_trend(store, date_range, now),
        "categoryDistribution": [
            {
                "category": row["category"] or UNCATEGORIZED,
                "revenue": row["revenue"],
                "orders": row["orders"],
            }
            for row in categories
        ],
        "paymentMethodDistribution": [
            {
                "method": row["method"] or UNKNOWN_METHOD,
                "count": row["count"],
                "revenue": row["revenue"],
            }
            for row in methods
        ],
        "dateRange": date_range,
    }
