"""
MongoDB access for the admin API.

The connection string comes from MONGODB_URI, MONGO_URI or DATABASE_URL (first
one set wins) and the database name from the URI or DATABASE_NAME. Route
handlers never touch collections directly: they receive a MongoStore through
the ``get_store`` dependency, which tests override with an in-memory store.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from bson import ObjectId
from bson.errors import InvalidId
from dotenv import load_dotenv
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.errors import DuplicateKeyError

from errors import StoreError, ValidationError
from matching import FieldMatch
from schemas import (
    CANCELLED,
    PAID,
    POPULATED_PRODUCT_FIELDS,
    SENSITIVE_USER_FIELDS,
    USER_LIST_FIELDS,
    VENDOR_PRODUCT_FIELDS,
)

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("MONGODB_URI") or os.getenv("MONGO_URI") or os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "shopflow")

USERS = "users"
ORDERS = "orders"
PRODUCTS = "products"
VENDORS = "vendors"
VENDOR_ORDERS = "vendororders"

ORDER_SUMMARY_FIELDS = ("orderStatus", "paymentStatus", "totalAmount", "createdAt", "userId")

client = None
db = None
if DATABASE_URL:
    client = MongoClient(DATABASE_URL, tz_aware=True)
    db = client.get_default_database(DATABASE_NAME)


# -------------------- Helpers --------------------

def to_object_id(id_str) -> ObjectId:
    if isinstance(id_str, ObjectId):
        return id_str
    # ObjectId(None) would mint a fresh id instead of failing
    if not isinstance(id_str, str):
        raise ValidationError("Invalid id format")
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        raise ValidationError("Invalid id format")


def normalize_ids(value):
    """Recursively turn ObjectIds into strings so documents are JSON-ready."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {k: normalize_ids(v) for k, v in value.items()}
    if isinstance(value, list):
        return [normalize_ids(v) for v in value]
    return value


def created_between(start: datetime, end: Optional[datetime] = None) -> dict:
    bounds = {"$gte": start}
    if end is not None:
        bounds["$lt"] = end
    return {"createdAt": bounds}


def revenue_match(start: datetime, end: Optional[datetime] = None) -> dict:
    return {
        **created_between(start, end),
        "paymentStatus": PAID,
        "orderStatus": {"$ne": CANCELLED},
    }


def match_clause(matcher: FieldMatch) -> dict:
    if matcher.kind == "id":
        return {matcher.field: to_object_id(matcher.value)}
    if matcher.kind == "fuzzy":
        return {matcher.field: {"$regex": matcher.pattern, "$options": "i"}}
    return {matcher.field: matcher.value}


def include(fields: Iterable[str]) -> dict:
    return {f: 1 for f in fields}


def exclude(fields: Iterable[str]) -> dict:
    return {f: 0 for f in fields}


# -------------------- Store --------------------

class MongoStore:
    """Every query and command the admin handlers issue, one method each."""

    def __init__(self, database):
        self.db = database

    def ensure_indexes(self) -> None:
        self.db[VENDORS].create_index("slug", unique=True)
        self.db[VENDORS].create_index("email", unique=True)
        self.db[ORDERS].create_index([("userId", ASCENDING), ("createdAt", DESCENDING)])
        self.db[ORDERS].create_index("createdAt")
        self.db[PRODUCTS].create_index([("vendorSlug", ASCENDING), ("isActive", ASCENDING)])
        self.db[VENDOR_ORDERS].create_index("vendorId")
        logger.info("Indexes ensured on database %s", self.db.name)

    # ---- analytics ----

    def paid_revenue(self, start: datetime, end: Optional[datetime] = None) -> float:
        rows = list(self.db[ORDERS].aggregate([
            {"$match": revenue_match(start, end)},
            {"$group": {"_id": None, "total": {"$sum": "$totalAmount"}}},
        ]))
        return rows[0]["total"] if rows else 0

    def revenue_buckets(self, boundaries: Sequence[datetime]) -> list:
        """Paid revenue per ``[boundaries[i], boundaries[i + 1])`` window."""
        rows = self.db[ORDERS].aggregate([
            {"$match": revenue_match(boundaries[0], boundaries[-1])},
            {"$bucket": {
                "groupBy": "$createdAt",
                "boundaries": list(boundaries),
                "default": "outside",
                "output": {"total": {"$sum": "$totalAmount"}},
            }},
        ])
        totals = {row["_id"]: row["total"] for row in rows if row["_id"] != "outside"}
        return [totals.get(b, 0) for b in boundaries[:-1]]

    def count_orders(self, start: datetime, end: Optional[datetime] = None) -> int:
        return self.db[ORDERS].count_documents(created_between(start, end))

    def count_users(self, start: Optional[datetime] = None, end: Optional[datetime] = None,
                    active: Optional[bool] = None) -> int:
        query = created_between(start, end) if start is not None else {}
        if active is not None:
            query["isActive"] = active
        return self.db[USERS].count_documents(query)

    def category_revenue(self, start: datetime, limit: int) -> list:
        rows = self.db[ORDERS].aggregate([
            {"$match": revenue_match(start)},
            {"$unwind": "$items"},
            {"$lookup": {
                "from": PRODUCTS,
                "localField": "items.productId",
                "foreignField": "_id",
                "as": "product",
            }},
            {"$unwind": "$product"},
            {"$group": {
                "_id": "$product.category",
                "revenue": {"$sum": {"$multiply": ["$items.price", "$items.quantity"]}},
                "orders": {"$sum": 1},
            }},
            {"$sort": {"revenue": -1}},
            {"$limit": limit},
        ])
        return [{"category": r["_id"], "revenue": r["revenue"], "orders": r["orders"]} for r in rows]

    def payment_methods(self, start: datetime) -> list:
        rows = self.db[ORDERS].aggregate([
            {"$match": created_between(start)},
            {"$group": {
                "_id": "$paymentMethod",
                "count": {"$sum": 1},
                "revenue": {"$sum": "$totalAmount"},
            }},
        ])
        return [{"method": r["_id"], "count": r["count"], "revenue": r["revenue"]} for r in rows]

    # ---- users ----

    def list_users(self, skip: int, limit: int) -> list:
        cursor = (
            self.db[USERS]
            .find({}, include(USER_LIST_FIELDS))
            .sort("createdAt", DESCENDING)
            .skip(skip)
            .limit(limit)
        )
        return [normalize_ids(u) for u in cursor]

    def order_totals(self, user_ids: Sequence[str]) -> dict:
        """``{user_id: {"totalOrders", "totalRevenue"}}`` from one grouped aggregation."""
        if not user_ids:
            return {}
        rows = self.db[ORDERS].aggregate([
            {"$match": {"userId": {"$in": [to_object_id(u) for u in user_ids]}}},
            {"$group": {
                "_id": "$userId",
                "totalOrders": {"$sum": 1},
                "totalRevenue": {"$sum": "$totalAmount"},
            }},
        ])
        return {
            str(r["_id"]): {"totalOrders": r["totalOrders"], "totalRevenue": r["totalRevenue"]}
            for r in rows
        }

    def get_user(self, user_id: str) -> Optional[dict]:
        user = self.db[USERS].find_one({"_id": to_object_id(user_id)}, exclude(SENSITIVE_USER_FIELDS))
        return normalize_ids(user) if user else None

    def get_user_by_token(self, token: str) -> Optional[dict]:
        user = self.db[USERS].find_one(
            {"token": token, "token_expires": {"$gt": datetime.now(timezone.utc)}},
            exclude(SENSITIVE_USER_FIELDS),
        )
        return normalize_ids(user) if user else None

    def update_user(self, user_id: str, fields: dict) -> Optional[dict]:
        user = self.db[USERS].find_one_and_update(
            {"_id": to_object_id(user_id)},
            {"$set": {**fields, "updatedAt": datetime.now(timezone.utc)}},
            projection=exclude(SENSITIVE_USER_FIELDS),
            return_document=ReturnDocument.AFTER,
        )
        return normalize_ids(user) if user else None

    def user_orders(self, user_id: str) -> list:
        """The user's orders, newest first, with line-item products populated."""
        orders = list(self.db[ORDERS].find({"userId": to_object_id(user_id)}).sort("createdAt", DESCENDING))
        product_ids = {item.get("productId") for o in orders for item in o.get("items", [])}
        product_ids.discard(None)
        products = {}
        if product_ids:
            cursor = self.db[PRODUCTS].find({"_id": {"$in": list(product_ids)}}, include(POPULATED_PRODUCT_FIELDS))
            products = {p["_id"]: p for p in cursor}
        for order in orders:
            for item in order.get("items", []):
                item["productId"] = products.get(item.get("productId"))
        return [normalize_ids(o) for o in orders]

    def delete_user_orders(self, user_id: str) -> int:
        return self.db[ORDERS].delete_many({"userId": to_object_id(user_id)}).deleted_count

    def delete_user(self, user_id: str) -> bool:
        return self.db[USERS].delete_one({"_id": to_object_id(user_id)}).deleted_count == 1

    # ---- vendors ----

    def vendor_slug_exists(self, slug: str) -> bool:
        return self.db[VENDORS].count_documents({"slug": slug}, limit=1) > 0

    def insert_vendor(self, doc: dict) -> dict:
        doc = dict(doc)
        try:
            doc["_id"] = self.db[VENDORS].insert_one(doc).inserted_id
        except DuplicateKeyError as exc:
            raise ValidationError(duplicate_message(exc))
        return normalize_ids(doc)

    def list_vendors(self) -> list:
        return [normalize_ids(v) for v in self.db[VENDORS].find().sort("createdAt", DESCENDING)]

    def get_vendor(self, vendor_id: str) -> Optional[dict]:
        vendor = self.db[VENDORS].find_one({"_id": to_object_id(vendor_id)})
        return normalize_ids(vendor) if vendor else None

    def get_active_vendor_by_slug(self, slug: str) -> Optional[dict]:
        vendor = self.db[VENDORS].find_one({"slug": slug, "isActive": True})
        return normalize_ids(vendor) if vendor else None

    def update_vendor(self, vendor_id: str, fields: dict) -> Optional[dict]:
        try:
            vendor = self.db[VENDORS].find_one_and_update(
                {"_id": to_object_id(vendor_id)},
                {"$set": fields},
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError as exc:
            raise ValidationError(duplicate_message(exc))
        return normalize_ids(vendor) if vendor else None

    def delete_vendor(self, vendor_id: str) -> bool:
        return self.db[VENDORS].delete_one({"_id": to_object_id(vendor_id)}).deleted_count == 1

    def vendor_products(self, slug: str, sort: list, skip: int, limit: int) -> tuple:
        query = {"vendorSlug": slug, "isActive": True}
        cursor = self.db[PRODUCTS].find(query).sort(sort).skip(skip).limit(limit)
        products = [normalize_ids(p) for p in cursor]
        return products, self.db[PRODUCTS].count_documents(query)

    def find_products(self, matchers: Sequence[FieldMatch]) -> list:
        cursor = self.db[PRODUCTS].find(
            {"$or": [match_clause(m) for m in matchers], "isActive": True},
            include(VENDOR_PRODUCT_FIELDS),
        ).sort("createdAt", DESCENDING)
        return [normalize_ids(p) for p in cursor]

    def find_vendor_orders(self, matchers: Sequence[FieldMatch]) -> list:
        """Join records with their order summary under ``order`` (None when the order is gone)."""
        links = list(self.db[VENDOR_ORDERS].find({"$or": [match_clause(m) for m in matchers]}))
        order_ids = list({vo["orderId"] for vo in links if vo.get("orderId") is not None})
        orders = {}
        if order_ids:
            cursor = self.db[ORDERS].find({"_id": {"$in": order_ids}}, include(ORDER_SUMMARY_FIELDS))
            orders = {o["_id"]: o for o in cursor}
        for vo in links:
            vo["order"] = orders.get(vo.get("orderId"))
        return [normalize_ids(vo) for vo in links]


def duplicate_message(exc: DuplicateKeyError) -> str:
    key_value = (exc.details or {}).get("keyValue") or {}
    field = next(iter(key_value), None)
    if field:
        return f"A vendor with this {field} already exists"
    return "A vendor with this slug or email already exists"


store = MongoStore(db) if db is not None else None


def get_store() -> MongoStore:
    if store is None:
        raise StoreError("Database is not configured")
    return store
