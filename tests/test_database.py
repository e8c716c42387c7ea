"""Tests for MongoStore query construction, run against mocked collections."""

from collections import defaultdict
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

import database
from database import MongoStore, match_clause, normalize_ids, to_object_id
from errors import StoreError, ValidationError
from matching import FieldMatch

UTC = timezone.utc
OID = "64b7f0c2a1b2c3d4e5f60718"


@pytest.fixture
def collection():
    return MagicMock()


@pytest.fixture
def mongo(collection):
    db = MagicMock()
    db.__getitem__.return_value = collection
    return MongoStore(db)


@pytest.fixture
def collections():
    """A database whose collections are separate mocks, keyed by name."""
    return defaultdict(MagicMock)


class TestHelpers:
    def test_to_object_id(self):
        assert to_object_id(OID) == ObjectId(OID)

    @pytest.mark.parametrize("value", ["nope", None, 42])
    def test_to_object_id_rejects_garbage(self, value):
        with pytest.raises(ValidationError, match="Invalid id format"):
            to_object_id(value)

    def test_normalize_ids_is_recursive(self):
        doc = {"_id": ObjectId(OID), "items": [{"productId": ObjectId(OID)}], "n": 1}
        assert normalize_ids(doc) == {"_id": OID, "items": [{"productId": OID}], "n": 1}

    def test_match_clauses(self):
        assert match_clause(FieldMatch("brand", "Acme")) == {"brand": "Acme"}
        assert match_clause(FieldMatch("vendorId", OID, kind="id")) == {"vendorId": ObjectId(OID)}
        assert match_clause(FieldMatch("brand", "C++", kind="fuzzy")) == {
            "brand": {"$regex": r"C\+\+", "$options": "i"}
        }


class TestAnalyticsQueries:
    def test_paid_revenue_filters_status(self, mongo, collection):
        collection.aggregate.return_value = [{"_id": None, "total": 1200}]
        start = datetime(2026, 10, 1, tzinfo=UTC)

        assert mongo.paid_revenue(start) == 1200
        pipeline = collection.aggregate.call_args[0][0]
        assert pipeline[0]["$match"] == {
            "createdAt": {"$gte": start},
            "paymentStatus": "PAID",
            "orderStatus": {"$ne": "CANCELLED"},
        }

    def test_paid_revenue_empty(self, mongo, collection):
        collection.aggregate.return_value = []
        assert mongo.paid_revenue(datetime(2026, 10, 1, tzinfo=UTC)) == 0

    def test_revenue_buckets_fill_gaps(self, mongo, collection):
        b = [datetime(2026, m, 1, tzinfo=UTC) for m in (8, 9, 10, 11)]
        collection.aggregate.return_value = [
            {"_id": b[1], "total": 500},
            {"_id": "outside", "total": 7},
        ]
        assert mongo.revenue_buckets(b) == [0, 500, 0]
        bucket = collection.aggregate.call_args[0][0][1]["$bucket"]
        assert bucket["boundaries"] == b
        assert bucket["groupBy"] == "$createdAt"

    def test_category_revenue_joins_products(self, mongo, collection):
        collection.aggregate.return_value = [{"_id": "Shoes", "revenue": 800, "orders": 1}]
        rows = mongo.category_revenue(datetime(2026, 10, 1, tzinfo=UTC), 10)
        assert rows == [{"category": "Shoes", "revenue": 800, "orders": 1}]
        stages = [next(iter(stage)) for stage in collection.aggregate.call_args[0][0]]
        assert stages == ["$match", "$unwind", "$lookup", "$unwind", "$group", "$sort", "$limit"]


class TestUserQueries:
    def test_order_totals_single_aggregation(self, mongo, collection):
        collection.aggregate.return_value = [
            {"_id": ObjectId(OID), "totalOrders": 2, "totalRevenue": 350},
        ]
        assert mongo.order_totals([OID]) == {OID: {"totalOrders": 2, "totalRevenue": 350}}
        assert collection.aggregate.call_count == 1

    def test_order_totals_no_users(self, mongo, collection):
        assert mongo.order_totals([]) == {}
        collection.aggregate.assert_not_called()

    def test_user_orders_populate_products(self, collections):
        product_id, gone_id = ObjectId(), ObjectId()
        collections["orders"].find.return_value.sort.return_value = [
            {"_id": ObjectId(OID), "items": [{"productId": product_id, "quantity": 2}]},
            {"_id": ObjectId(), "items": [{"productId": gone_id, "quantity": 1}, {"quantity": 1}]},
        ]
        collections["products"].find.return_value = [
            {"_id": product_id, "name": "Mug", "slug": "mug", "images": [], "price": 250},
        ]

        orders = MongoStore(collections).user_orders(OID)

        assert collections["orders"].find.call_args[0][0] == {"userId": ObjectId(OID)}
        query, projection = collections["products"].find.call_args[0]
        assert set(query["_id"]["$in"]) == {product_id, gone_id}
        assert projection == {"name": 1, "slug": 1, "images": 1, "price": 1}
        assert orders[0]["_id"] == OID
        assert orders[0]["items"][0]["productId"] == {
            "_id": str(product_id), "name": "Mug", "slug": "mug", "images": [], "price": 250,
        }
        assert orders[0]["items"][0]["quantity"] == 2
        assert orders[1]["items"][0]["productId"] is None
        assert orders[1]["items"][1]["productId"] is None

    def test_user_orders_without_items_skip_product_lookup(self, collections):
        collections["orders"].find.return_value.sort.return_value = [{"_id": ObjectId(OID), "items": []}]
        assert MongoStore(collections).user_orders(OID) == [{"_id": OID, "items": []}]
        collections["products"].find.assert_not_called()

    def test_delete_user_orders_reports_count(self, mongo, collection):
        collection.delete_many.return_value.deleted_count = 3
        assert mongo.delete_user_orders(OID) == 3
        collection.delete_many.assert_called_once_with({"userId": ObjectId(OID)})


class TestVendorQueries:
    def test_duplicate_key_becomes_validation_error(self, mongo, collection):
        collection.insert_one.side_effect = DuplicateKeyError(
            "E11000 duplicate key", 11000, {"keyValue": {"email": "a@example.com"}}
        )
        with pytest.raises(ValidationError, match="A vendor with this email already exists"):
            mongo.insert_vendor({"name": "Acme", "email": "a@example.com"})

    def test_find_products_uses_ordered_or(self, mongo, collection):
        collection.find.return_value.sort.return_value = []
        matchers = [FieldMatch("vendorSlug", "acme"), FieldMatch("brand", "Acme", kind="fuzzy")]
        mongo.find_products(matchers)
        query = collection.find.call_args[0][0]
        assert query["isActive"] is True
        assert query["$or"] == [{"vendorSlug": "acme"}, {"brand": {"$regex": "Acme", "$options": "i"}}]

    def test_find_vendor_orders_attaches_orders(self, collections):
        order_id, gone_id = ObjectId(), ObjectId()
        created = datetime(2026, 10, 10, tzinfo=UTC)
        collections["vendororders"].find.return_value = [
            {"_id": ObjectId(), "orderId": order_id, "vendorId": ObjectId(OID), "subtotal": 800},
            {"_id": ObjectId(), "orderId": gone_id, "vendorId": ObjectId(OID), "subtotal": 300},
            {"_id": ObjectId(), "vendorName": "Acme", "subtotal": 50},
        ]
        collections["orders"].find.return_value = [
            {"_id": order_id, "orderStatus": "DELIVERED", "paymentStatus": "PAID",
             "totalAmount": 900, "createdAt": created},
        ]
        matchers = [FieldMatch("vendorId", OID, kind="id"), FieldMatch("vendorName", "Acme")]

        links = MongoStore(collections).find_vendor_orders(matchers)

        assert collections["vendororders"].find.call_args[0][0] == {
            "$or": [{"vendorId": ObjectId(OID)}, {"vendorName": "Acme"}]
        }
        query, projection = collections["orders"].find.call_args[0]
        assert set(query["_id"]["$in"]) == {order_id, gone_id}
        assert projection == {
            "orderStatus": 1, "paymentStatus": 1, "totalAmount": 1, "createdAt": 1, "userId": 1,
        }
        assert links[0]["orderId"] == str(order_id)
        assert links[0]["vendorId"] == OID
        assert links[0]["order"] == {
            "_id": str(order_id), "orderStatus": "DELIVERED", "paymentStatus": "PAID",
            "totalAmount": 900, "createdAt": created,
        }
        assert links[1]["order"] is None
        assert links[2]["order"] is None

    def test_find_vendor_orders_without_order_ids(self, collections):
        collections["vendororders"].find.return_value = [{"_id": ObjectId(), "vendorName": "Acme"}]
        links = MongoStore(collections).find_vendor_orders([FieldMatch("vendorName", "Acme")])
        assert links[0]["order"] is None
        collections["orders"].find.assert_not_called()


def test_get_store_without_database(monkeypatch):
    monkeypatch.setattr(database, "store", None)
    with pytest.raises(StoreError, match="Database is not configured"):
        database.get_store()
