import pytest

import catalog
import orders
from database import to_object_id
from errors import InsufficientStock, NotFound, ValidationError

CUSTOMER = {"name": "Asha", "email": "asha@example.com", "phone": "9999999999", "address": "12 Park Street"}


def stock_of(db, product):
    return db["product"].find_one({"_id": to_object_id(product["id"])})["stock"]


def test_place_order_snapshots_lines_and_decrements_stock(db, make_product):
    pencils = make_product(name="Pencils", price=150, stock=10)
    bag = make_product(name="Backpack", price=850.5, stock=2, category="bags")

    order = orders.place_order(CUSTOMER, [
        {"productId": pencils["id"], "quantity": 3},
        {"productId": bag["id"], "quantity": 2},
    ])

    assert order["order_number"] == "LT000001"
    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert order["payment_method"] == "cod"
    assert order["customer_name"] == "Asha"
    assert [(i["name"], i["price"], i["quantity"]) for i in order["items"]] == [
        ("Pencils", 150, 3), ("Backpack", 850.5, 2)]
    assert order["total_amount"] == sum(i["price"] * i["quantity"] for i in order["items"])
    assert stock_of(db, pencils) == 7
    assert stock_of(db, bag) == 0


def test_order_numbers_are_sequential(make_product):
    product = make_product(stock=5)
    first = orders.place_order(CUSTOMER, [{"productId": product["id"], "quantity": 1}])
    second = orders.place_order(CUSTOMER, [{"productId": product["id"], "quantity": 1}])
    assert (first["order_number"], second["order_number"]) == ("LT000001", "LT000002")


def test_duplicate_lines_are_merged(db, make_product):
    product = make_product(stock=5)
    order = orders.place_order(CUSTOMER, [
        {"productId": product["id"], "quantity": 2},
        {"productId": product["id"], "quantity": 1},
    ])
    assert [i["quantity"] for i in order["items"]] == [3]
    assert stock_of(db, product) == 2


def test_order_total_survives_later_price_edits(make_product):
    product = make_product(price=100, stock=5)
    order = orders.place_order(CUSTOMER, [{"productId": product["id"], "quantity": 2}])
    catalog.update_product(product["id"], {"price": 999, "name": "Renamed"})

    stored = orders.get_order(order["id"])
    assert stored["total_amount"] == 200
    assert stored["items"][0]["price"] == 100
    assert stored["items"][0]["name"] == product["name"]


def test_insufficient_stock_leaves_catalog_untouched(db, make_product):
    plenty = make_product(name="Plenty", stock=5)
    scarce = make_product(name="Scarce", stock=1)

    with pytest.raises(InsufficientStock, match="Scarce"):
        orders.place_order(CUSTOMER, [
            {"productId": plenty["id"], "quantity": 2},
            {"productId": scarce["id"], "quantity": 3},
        ])

    assert stock_of(db, plenty) == 5
    assert stock_of(db, scarce) == 1
    assert db["order"].count_documents({}) == 0


def test_missing_product_fails_whole_order(db, make_product):
    product = make_product(stock=5)
    with pytest.raises(NotFound):
        orders.place_order(CUSTOMER, [
            {"productId": product["id"], "quantity": 1},
            {"productId": "64b000000000000000000001", "quantity": 1},
        ])
    assert stock_of(db, product) == 5


@pytest.mark.parametrize("items", [[], [{"productId": "64b000000000000000000001", "quantity": 0}]])
def test_empty_cart_or_zero_quantity_is_invalid(items):
    with pytest.raises(ValidationError):
        orders.place_order(CUSTOMER, items)


def test_incomplete_customer_info_is_invalid(make_product):
    product = make_product()
    with pytest.raises(ValidationError):
        orders.place_order({"name": "Asha"}, [{"productId": product["id"], "quantity": 1}])


def test_last_unit_goes_to_exactly_one_checkout(db, make_product):
    product = make_product(stock=1)
    orders.place_order(CUSTOMER, [{"productId": product["id"], "quantity": 1}])
    with pytest.raises(InsufficientStock):
        orders.place_order(CUSTOMER, [{"productId": product["id"], "quantity": 1}])
    assert stock_of(db, product) == 0
    assert db["order"].count_documents({}) == 1


class RacingProducts:
    """Product collection where another checkout grabs stock right after each read."""

    def __init__(self, real, victim_id):
        self.real = real
        self.victim_id = victim_id

    def find_one(self, *args, **kwargs):
        doc = self.real.find_one(*args, **kwargs)
        if doc and doc["_id"] == self.victim_id:
            self.real.update_one({"_id": doc["_id"]}, {"$inc": {"stock": -doc["stock"]}})
        return doc

    def __getattr__(self, name):
        return getattr(self.real, name)


def test_stale_stock_read_cannot_oversell(db, make_product, monkeypatch):
    plenty = make_product(name="Plenty", stock=5)
    last = make_product(name="Last One", stock=1)
    racing = RacingProducts(db["product"], to_object_id(last["id"]))
    monkeypatch.setattr(orders, "collection", lambda name: racing if name == "product" else db[name])

    with pytest.raises(InsufficientStock, match="Last One"):
        orders.place_order(CUSTOMER, [
            {"productId": plenty["id"], "quantity": 2},
            {"productId": last["id"], "quantity": 1},
        ])

    assert stock_of(db, last) == 0
    # the reservation already taken for the first line was given back
    assert stock_of(db, plenty) == 5
    assert db["order"].count_documents({}) == 0


@pytest.mark.parametrize("step", ["next_sequence", "create_document"])
def test_failed_order_write_releases_stock(db, make_product, monkeypatch, step):
    product = make_product(stock=4)

    def broken(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(orders, step, broken)
    with pytest.raises(RuntimeError):
        orders.place_order(CUSTOMER, [{"productId": product["id"], "quantity": 3}])
    assert stock_of(db, product) == 4
    assert db["order"].count_documents({}) == 0


def test_total_is_exact_sum_of_lines(make_product):
    cheap = make_product(name="Paper Clip", price=0.1, stock=10)
    eraser = make_product(name="Eraser", price=0.7, stock=10)
    order = orders.place_order(CUSTOMER, [
        {"productId": cheap["id"], "quantity": 3},
        {"productId": eraser["id"], "quantity": 1},
    ])
    assert order["total_amount"] == sum(i["price"] * i["quantity"] for i in order["items"])


def test_order_linked_to_user(db, customer, make_product):
    product = make_product()
    order = orders.place_order(CUSTOMER, [{"productId": product["id"], "quantity": 1}],
                               user_id=customer["user"]["id"])
    user = db["user"].find_one({"_id": to_object_id(customer["user"]["id"])})
    assert user["orders"] == [to_object_id(order["id"])]
    assert order["user_id"] == customer["user"]["id"]


def test_status_moves_forward_and_cancel_restocks(db, make_product):
    product = make_product(stock=5)
    order = orders.place_order(CUSTOMER, [{"productId": product["id"], "quantity": 2}])

    order = orders.update_order(order["id"], status="confirmed")
    order = orders.update_order(order["id"], status="shipped", tracking_number="TRK123")
    assert order["status"] == "shipped"
    assert order["tracking_number"] == "TRK123"

    with pytest.raises(ValidationError):
        orders.update_order(order["id"], status="pending")

    assert stock_of(db, product) == 3
    orders.update_order(order["id"], status="cancelled")
    assert stock_of(db, product) == 5

    with pytest.raises(ValidationError):
        orders.update_order(order["id"], status="confirmed")
    # repeating the cancel does not restock twice
    orders.update_order(order["id"], status="cancelled")
    assert stock_of(db, product) == 5


def test_delivered_orders_cannot_be_cancelled(make_product):
    product = make_product()
    order = orders.place_order(CUSTOMER, [{"productId": product["id"], "quantity": 1}])
    orders.update_order(order["id"], status="delivered")
    with pytest.raises(ValidationError):
        orders.update_order(order["id"], status="cancelled")


def test_unknown_status_rejected(make_product):
    product = make_product()
    order = orders.place_order(CUSTOMER, [{"productId": product["id"], "quantity": 1}])
    with pytest.raises(ValidationError):
        orders.update_order(order["id"], status="lost")
    with pytest.raises(ValidationError):
        orders.update_order(order["id"], payment_status="refunded")


def test_list_orders_paginates_newest_first(make_product):
    product = make_product(stock=10)
    for _ in range(5):
        orders.place_order(CUSTOMER, [{"productId": product["id"], "quantity": 1}])

    page = orders.list_orders(page=2, limit=2)
    assert [o["order_number"] for o in page["orders"]] == ["LT000003", "LT000002"]
    assert page["pagination"] == {"page": 2, "pages": 3, "total": 5, "limit": 2}
    assert orders.list_orders(status="shipped")["pagination"]["total"] == 0


def test_create_order_route(client, db, make_product):
    product = make_product(price=120, stock=3)
    res = client.post("/api/create-order", json={
        "customerInfo": CUSTOMER,
        "items": [{"productId": product["id"], "name": product["name"], "quantity": 2}],
        "paymentMethod": "upi",
        "notes": "gift wrap",
    })
    assert res.status_code == 201
    body = res.json()
    assert body["success"] is True
    assert body["order"]["total_amount"] == 240
    assert body["order"]["payment_method"] == "upi"
    assert body["order"]["notes"] == "gift wrap"

    res = client.post("/api/create-order", json={
        "customerInfo": CUSTOMER,
        "items": [{"productId": product["id"], "quantity": 2}],
    })
    assert res.status_code == 400
    assert res.json()["detail"] == f"Insufficient stock for {product['name']}"


def test_admin_order_routes(client, admin_headers, make_product):
    product = make_product()
    order = orders.place_order(CUSTOMER, [{"productId": product["id"], "quantity": 1}])

    listing = client.get("/api/orders", params={"page": 1, "limit": 10}, headers=admin_headers).json()
    assert listing["pagination"]["total"] == 1

    res = client.put(f"/api/orders/{order['id']}", json={"status": "confirmed", "paymentStatus": "paid"},
                     headers=admin_headers)
    assert res.status_code == 200
    assert res.json()["order"]["payment_status"] == "paid"

    assert client.get(f"/api/orders/{order['id']}", headers=admin_headers).json()["status"] == "confirmed"
    assert client.put("/api/orders/64b000000000000000000001", json={"status": "confirmed"},
                      headers=admin_headers).status_code == 404
