"""Read-only admin dashboard aggregations over orders, products and users."""
from datetime import timedelta
from typing import Optional

import settings
from database import collection, serialize_doc, utcnow

NOT_CANCELLED = {"status": {"$ne": "cancelled"}}

# period -> (group key, lookback days)
PERIODS = {
    "daily": ({"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"},
               "day": {"$dayOfMonth": "$created_at"}}, 30),
    "weekly": ({"year": {"$year": "$created_at"}, "week": {"$week": "$created_at"}}, 90),
    "monthly": ({"year": {"$year": "$created_at"}, "month": {"$month": "$created_at"}}, 365),
    "yearly": ({"year": {"$year": "$created_at"}}, 1825),
}


def _flatten(bucket: dict) -> dict:
    row = dict(bucket.pop("_id") or {})
    row.update(bucket)
    return row


def total_revenue() -> float:
    rows = list(collection("order").aggregate([
        {"$match": NOT_CANCELLED},
        {"$group": {"_id": None, "total": {"$sum": "$total_amount"}}},
    ]))
    return rows[0]["total"] if rows else 0


def revenue_by_period(period: Optional[str] = "yearly", revenue_key="totalRevenue", orders_key="totalOrders",
                      with_average=True) -> list:
    group_by, days = PERIODS.get(period, PERIODS["yearly"])
    group = {
        "_id": group_by,
        revenue_key: {"$sum": "$total_amount"},
        orders_key: {"$sum": 1},
    }
    if with_average:
        group["avgOrderValue"] = {"$avg": "$total_amount"}
    pipeline = [
        {"$match": {"created_at": {"$gte": utcnow() - timedelta(days=days)}, **NOT_CANCELLED}},
        {"$group": group},
        {"$sort": {f"_id.{key}": 1 for key in group_by}},
    ]
    return [_flatten(b) for b in collection("order").aggregate(pipeline)]


def top_products(limit: int = 5) -> list:
    pipeline = [
        {"$unwind": "$items"},
        {"$group": {
            "_id": "$items.product_id",
            "totalSold": {"$sum": "$items.quantity"},
            "revenue": {"$sum": {"$multiply": ["$items.price", "$items.quantity"]}},
        }},
        {"$sort": {"totalSold": -1}},
        {"$limit": limit},
        {"$lookup": {"from": "product", "localField": "_id", "foreignField": "_id", "as": "product"}},
        {"$unwind": "$product"},
    ]
    return [serialize_doc(row) for row in collection("order").aggregate(pipeline)]


def low_stock_products(threshold: int = settings.LOW_STOCK_THRESHOLD) -> list:
    cursor = collection("product").find({"stock": {"$lte": threshold}}).sort("stock", 1)
    return [serialize_doc(p) for p in cursor]


def dashboard_stats() -> dict:
    orders = collection("order")
    low_stock = low_stock_products()
    recent = orders.find().sort([("created_at", -1), ("_id", -1)]).limit(10)
    return {
        "totalOrders": orders.count_documents({}),
        "totalProducts": collection("product").count_documents({}),
        "totalUsers": collection("user").count_documents({}),
        "pendingOrders": orders.count_documents({"status": "pending"}),
        "totalRevenue": total_revenue(),
        "lowStockCount": len(low_stock),
        "lowStockProducts": low_stock,
        "recentOrders": [serialize_doc(o) for o in recent],
        "monthlyRevenue": revenue_by_period("monthly", "revenue", "orders", with_average=False),
        "topProducts": top_products(),
    }


def sales_analytics(period: Optional[str] = None) -> dict:
    return {"salesData": revenue_by_period(period)}
