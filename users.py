"""User administration plus the signed-in user's own profile and address."""

import logging
from datetime import datetime, timezone
from typing import Optional

from errors import NotFoundError
from schemas import (
    CANCELLED,
    COMPLETED_STATUSES,
    PENDING_STATUSES,
    AddressUpdate,
    ProfileUpdate,
    counts_as_revenue,
)
from utils import month_start, page_count, percent_change

logger = logging.getLogger(__name__)

ORDER_FIELDS = (
    "_id", "orderStatus", "paymentStatus", "paymentMethod",
    "totalAmount", "items", "createdAt", "deliveryAddress",
)


def user_stats(store, now: Optional[datetime] = None) -> dict:
    now = now or datetime.now(timezone.utc)
    this_month = month_start(now)
    last_month = month_start(now, -1)

    current = store.count_users(this_month)
    previous = store.count_users(last_month, this_month)
    return {
        "activeUsers": store.count_users(active=True),
        "currentMonthUsers": current,
        "lastMonthUsers": previous,
        "percentChange": round(percent_change(current, previous), 2),
    }


def list_users(store, page: int = 1, limit: int = 10) -> dict:
    total = store.count_users()
    users = store.list_users((page - 1) * limit, limit)
    totals = store.order_totals([u["_id"] for u in users])

    rows = []
    for user in users:
        stats = totals.get(user["_id"], {})
        rows.append({
            **user,
            "totalOrders": stats.get("totalOrders", 0),
            "totalRevenue": stats.get("totalRevenue", 0),
        })

    return {
        "users": rows,
        "pagination": {
            "currentPage": page,
            "totalPages": page_count(total, limit),
            "totalUsers": total,
            "limit": limit,
        },
    }


def revenue_summary(orders: list) -> dict:
    """Roll up a user's orders; ``orders`` must be newest first."""
    paid = [o for o in orders if counts_as_revenue(o)]
    total_revenue = sum(o.get("totalAmount") or 0 for o in paid)
    return {
        "totalRevenue": total_revenue,
        "totalOrders": len(orders),
        "completedOrders": sum(1 for o in orders if o.get("orderStatus") in COMPLETED_STATUSES),
        "pendingOrders": sum(1 for o in orders if o.get("orderStatus") in PENDING_STATUSES),
        "cancelledOrders": sum(1 for o in orders if o.get("orderStatus") == CANCELLED),
        "averageOrderValue": round(total_revenue / len(paid), 2) if paid else 0,
        "lastOrderDate": orders[0].get("createdAt") if orders else None,
    }


def user_details(store, user_id: str) -> dict:
    user = store.get_user(user_id)
    if not user:
        raise NotFoundError("User")

    orders = store.user_orders(user_id)
    return {
        "user": user,
        "revenue": revenue_summary(orders),
        "orders": [{field: order.get(field) for field in ORDER_FIELDS} for order in orders],
    }


def delete_user(store, user_id: str) -> int:
    """Delete the user's orders, then the user. Returns how many orders went.

    Not atomic: if the user delete fails the orders are already gone.
    """
    if not store.get_user(user_id):
        raise NotFoundError("User")

    deleted_orders = store.delete_user_orders(user_id)
    if deleted_orders:
        logger.info("Deleted %d order(s) for user %s", deleted_orders, user_id)
    store.delete_user(user_id)
    logger.info("Deleted user %s", user_id)
    return deleted_orders


# -------------------- Self-service --------------------

def update_profile(store, user: dict, payload: ProfileUpdate) -> dict:
    fields = payload.model_dump(exclude_unset=True)
    merged = {**user, **fields}
    fields["isProfileComplete"] = bool(merged.get("name") and merged.get("phone"))
    updated = store.update_user(user["_id"], fields)
    if not updated:
        raise NotFoundError("User")
    return updated


def update_address(store, user: dict, payload: AddressUpdate) -> dict:
    updated = store.update_user(user["_id"], {"address": payload.model_dump(exclude_none=True)})
    if not updated:
        raise NotFoundError("User")
    return updated
