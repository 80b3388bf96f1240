from datetime import timedelta

import analytics
import orders
from database import to_object_id, utcnow

CUSTOMER = {"name": "Asha", "email": "asha@example.com", "phone": "9999999999", "address": "12 Park Street"}


def place(product, quantity):
    return orders.place_order(CUSTOMER, [{"productId": product["id"], "quantity": quantity}])


def test_dashboard_stats(client, admin_headers, make_product, register_customer):
    register_customer()
    pencils = make_product(name="Pencils", price=100, stock=20)
    bag = make_product(name="Backpack", price=500, stock=6, category="bags")
    make_product(name="Stickers", price=10, stock=2, category="accessories")

    place(pencils, 5)
    place(bag, 1)
    cancelled = place(bag, 1)
    orders.update_order(cancelled["id"], status="cancelled")

    stats = client.get("/api/dashboard-stats", headers=admin_headers).json()
    assert stats["totalOrders"] == 3
    assert stats["totalProducts"] == 3
    assert stats["totalUsers"] == 1
    assert stats["pendingOrders"] == 2
    assert stats["totalRevenue"] == 1000
    assert stats["lowStockCount"] == 2
    assert sorted(p["name"] for p in stats["lowStockProducts"]) == ["Backpack", "Stickers"]
    assert len(stats["recentOrders"]) == 3

    now = utcnow()
    assert stats["monthlyRevenue"] == [{"year": now.year, "month": now.month, "revenue": 1000, "orders": 2}]

    top = stats["topProducts"]
    assert [t["product"]["name"] for t in top] == ["Pencils", "Backpack"]
    assert top[0]["totalSold"] == 5
    assert top[0]["revenue"] == 500
    assert top[1]["totalSold"] == 2


def test_revenue_excludes_cancelled_orders(make_product):
    product = make_product(price=50, stock=10)
    kept = place(product, 2)
    dropped = place(product, 3)
    orders.update_order(dropped["id"], status="cancelled")
    assert analytics.total_revenue() == kept["total_amount"] == 100


def test_sales_buckets_respect_lookback(db, make_product):
    product = make_product(price=10, stock=50)
    recent = place(product, 1)
    old = place(product, 2)
    ancient = place(product, 3)
    orders_coll = db["order"]
    orders_coll.update_one({"_id": to_object_id(old["id"])},
                           {"$set": {"created_at": utcnow() - timedelta(days=200)}})
    orders_coll.update_one({"_id": to_object_id(ancient["id"])},
                           {"$set": {"created_at": utcnow() - timedelta(days=4000)}})

    daily = analytics.sales_analytics("daily")["salesData"]
    assert sum(b["totalOrders"] for b in daily) == 1
    assert daily[-1]["totalRevenue"] == recent["total_amount"]
    assert set(daily[-1]) == {"year", "month", "day", "totalRevenue", "totalOrders", "avgOrderValue"}

    monthly = analytics.sales_analytics("monthly")["salesData"]
    assert sum(b["totalOrders"] for b in monthly) == 2
    assert monthly == sorted(monthly, key=lambda b: (b["year"], b["month"]))

    yearly = analytics.sales_analytics(None)["salesData"]
    assert sum(b["totalOrders"] for b in yearly) == 2
    assert set(yearly[0]) == {"year", "totalRevenue", "totalOrders", "avgOrderValue"}


def test_sales_route_requires_admin(client, customer_headers, admin_headers):
    assert client.get("/api/analytics/sales", headers=customer_headers).status_code == 403
    res = client.get("/api/analytics/sales", params={"period": "monthly"}, headers=admin_headers)
    assert res.status_code == 200
    assert res.json() == {"salesData": []}
