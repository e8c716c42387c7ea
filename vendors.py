"""
Vendor administration.

Covers vendor CRUD, slug generation, commission updates, a vendor's product
catalogue and the admin detail view that joins products, vendor orders and
commission.
"""

import logging
import math
import re
from datetime import datetime, timezone

from errors import NotFoundError, ValidationError
from matching import FieldMatch, first_match, first_word
from schemas import (
    COMPLETED_STATUSES,
    PENDING_STATUSES,
    Vendor,
    VendorCreate,
    VendorUpdate,
    counts_as_revenue,
)
from utils import page_count

logger = logging.getLogger(__name__)

COMMISSION_MESSAGE = "Commission must be a number between 0 and 100"

PRODUCT_SORTS = {
    "popular": [("reviews", -1), ("rating", -1)],
    "price-low": [("price", 1)],
    "price-high": [("price", -1)],
    "newest": [("dateAdded", -1)],
}
DEFAULT_SORT = "popular"


def generate_slug(name) -> str:
    if not name:
        return ""
    slug = name.lower().strip()
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"[^a-z0-9-]", "", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def unique_slug(store, base: str) -> str:
    slug = base
    counter = 1
    while store.vendor_slug_exists(slug):
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def create_vendor(store, payload: VendorCreate) -> dict:
    if payload.slug:
        # Explicit slugs are normalised but never suffixed; a clash is an error.
        slug = generate_slug(payload.slug)
        if slug and store.vendor_slug_exists(slug):
            raise ValidationError("A vendor with this slug already exists")
    else:
        base = generate_slug(payload.name)
        slug = unique_slug(store, base) if base else ""
    if not slug:
        raise ValidationError("Vendor slug could not be derived from the name")

    now = datetime.now(timezone.utc)
    vendor = Vendor(**payload.model_dump(exclude={"slug"}), slug=slug, createdAt=now, updatedAt=now)
    created = store.insert_vendor(vendor.model_dump())
    logger.info("Created vendor %s (%s)", created.get("_id"), slug)
    return created


def list_vendors(store) -> list:
    return store.list_vendors()


def get_vendor(store, vendor_id: str) -> dict:
    vendor = store.get_vendor(vendor_id)
    if not vendor:
        raise NotFoundError("Vendor")
    return vendor


def get_vendor_by_slug(store, slug: str) -> dict:
    vendor = store.get_active_vendor_by_slug(slug)
    if not vendor:
        raise NotFoundError("Vendor")
    return vendor


def update_vendor(store, vendor_id: str, payload: VendorUpdate) -> dict:
    fields = payload.model_dump(exclude_unset=True)
    if "slug" in fields:
        fields["slug"] = generate_slug(fields["slug"])
        if not fields["slug"]:
            raise ValidationError("Vendor slug cannot be empty")
    fields["updatedAt"] = datetime.now(timezone.utc)
    vendor = store.update_vendor(vendor_id, fields)
    if not vendor:
        raise NotFoundError("Vendor")
    return vendor


def parse_commission(value) -> float:
    if isinstance(value, bool) or value is None:
        raise ValidationError(COMMISSION_MESSAGE)
    try:
        commission = float(value)
    except (TypeError, ValueError):
        raise ValidationError(COMMISSION_MESSAGE)
    if not math.isfinite(commission) or not 0 <= commission <= 100:
        raise ValidationError(COMMISSION_MESSAGE)
    return commission


def update_commission(store, vendor_id: str, value) -> dict:
    commission = parse_commission(value)
    vendor = store.update_vendor(vendor_id, {
        "commission": commission,
        "updatedAt": datetime.now(timezone.utc),
    })
    if not vendor:
        raise NotFoundError("Vendor")
    return vendor


def delete_vendor(store, vendor_id: str) -> None:
    if not store.delete_vendor(vendor_id):
        raise NotFoundError("Vendor")
    logger.info("Deleted vendor %s", vendor_id)


def vendor_products(store, slug: str, page: int = 1, limit: int = 50, sort: str = DEFAULT_SORT) -> dict:
    order = PRODUCT_SORTS.get(sort, PRODUCT_SORTS[DEFAULT_SORT])
    products, total = store.vendor_products(slug, order, (page - 1) * limit, limit)
    return {
        "count": len(products),
        "total": total,
        "data": products,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": page_count(total, limit),
        },
    }


# -------------------- Vendor details --------------------

def product_matchers(vendor: dict) -> list:
    matchers = [
        FieldMatch("vendorSlug", vendor.get("slug")),
        FieldMatch("brand", vendor.get("name")),
    ]
    word = first_word(vendor.get("name"))
    if word:
        matchers.append(FieldMatch("brand", word, kind="fuzzy"))
    return matchers


def vendor_order_matchers(vendor: dict) -> list:
    matchers = [
        FieldMatch("vendorId", vendor["_id"], kind="id"),
        FieldMatch("vendorName", vendor.get("name")),
    ]
    word = first_word(vendor.get("name"))
    if word:
        matchers.append(FieldMatch("vendorName", word, kind="fuzzy"))
    return matchers


def commission_for(subtotal: float, rate: float) -> float:
    return subtotal * rate / 100


def order_breakdown(links: list, rate: float) -> list:
    """One row per joined order, newest first; links without an order are left out."""
    rows = []
    for link in links:
        order = link.get("order")
        if not order:
            continue
        subtotal = link.get("subtotal") or 0
        rows.append({
            "orderId": str(order["_id"]),
            "orderStatus": order.get("orderStatus"),
            "paymentStatus": order.get("paymentStatus"),
            "totalAmount": subtotal,
            "commission": commission_for(subtotal, rate),
            "createdAt": order.get("createdAt"),
        })
    rows.sort(key=lambda row: (row["createdAt"] is not None, row["createdAt"] or 0), reverse=True)
    return rows


def sales_summary(links: list, rows: list) -> dict:
    statuses = [link["order"].get("orderStatus") for link in links if link.get("order")]
    return {
        "totalSales": sum(link.get("subtotal") or 0 for link in links if counts_as_revenue(link.get("order"))),
        "totalOrders": len(links),
        "completedOrders": sum(1 for s in statuses if s in COMPLETED_STATUSES),
        "pendingOrders": sum(1 for s in statuses if s in PENDING_STATUSES),
        "totalCommission": sum(row["commission"] for row in rows if counts_as_revenue(row)),
    }


def vendor_details(store, vendor_id: str) -> dict:
    vendor = get_vendor(store, vendor_id)

    matchers = product_matchers(vendor)
    products = store.find_products(matchers)
    for product in products:
        matched = first_match(matchers, product)
        product["matchedBy"] = matched.label if matched else None

    links = store.find_vendor_orders(vendor_order_matchers(vendor))
    rows = order_breakdown(links, vendor.get("commission") or 0)

    return {
        "vendor": vendor,
        "products": {"list": products, "total": len(products)},
        "sales": sales_summary(links, rows),
        "orders": rows,
    }
