"""
Order workflow.

Placing an order reserves stock with conditional, store-side decrements
(`stock >= qty` guard plus `$inc`), so two checkouts racing for the last unit
cannot both succeed. Decrements already applied are given back if a later
line fails or the order cannot be written, so stock always matches the set
of persisted orders.
"""
import logging
import math
from typing import List, Optional

import pydantic

from database import collection, create_document, next_sequence, serialize_doc, to_object_id, utcnow
from errors import InsufficientStock, NotFound, ValidationError
from schemas import ORDER_FLOW, TERMINAL_STATUSES, CustomerInfo, Order, OrderItem

logger = logging.getLogger(__name__)

ORDER_STATUSES = set(ORDER_FLOW) | {"cancelled"}
PAYMENT_STATUSES = {"pending", "paid", "failed"}


def make_order_number() -> str:
    return f"LT{next_sequence('order'):06d}"


def _merge_lines(items: List[dict]) -> List[tuple]:
    """Collapse the cart into (product_id, quantity) pairs, keeping first-seen order."""
    if not items:
        raise ValidationError("Order must contain at least one item.")
    merged = {}
    for item in items:
        raw_id = item.get("productId") or item.get("product_id")
        try:
            quantity = int(item.get("quantity", 0))
        except (TypeError, ValueError):
            raise ValidationError("Item quantity must be a whole number.")
        if quantity < 1:
            raise ValidationError("Item quantity must be at least 1.")
        oid = to_object_id(raw_id, f"Product {item.get('name') or raw_id}")
        merged[oid] = merged.get(oid, 0) + quantity
    return list(merged.items())


def _release(reserved: List[tuple]):
    products = collection("product")
    for oid, quantity in reserved:
        products.update_one({"_id": oid}, {"$inc": {"stock": quantity}})


def place_order(customer_info: dict, items: List[dict], payment_method: Optional[str] = "cod",
                notes: Optional[str] = "", user_id: Optional[str] = None) -> dict:
    try:
        customer = CustomerInfo(**(customer_info or {}))
    except pydantic.ValidationError:
        raise ValidationError("Customer name, email, phone and address are required.")
    lines = _merge_lines(items)
    owner = to_object_id(user_id, "User") if user_id else None

    products = collection("product")
    snapshot = []
    for oid, quantity in lines:
        product = products.find_one({"_id": oid})
        if not product:
            raise NotFound(f"Product {oid} not found")
        if product.get("stock", 0) < quantity:
            raise InsufficientStock(f"Insufficient stock for {product['name']}")
        snapshot.append(OrderItem(
            product_id=oid,
            name=product["name"],
            price=product["price"],
            quantity=quantity,
            image=product.get("main_image"),
        ))

    reserved = []
    for line in snapshot:
        res = products.update_one(
            {"_id": line.product_id, "stock": {"$gte": line.quantity}},
            {"$inc": {"stock": -line.quantity}},
        )
        if res.modified_count != 1:
            _release(reserved)
            logger.info("Stock for %s ran out during checkout", line.name)
            raise InsufficientStock(f"Insufficient stock for {line.name}")
        reserved.append((line.product_id, line.quantity))

    try:
        order = Order(
            order_number=make_order_number(),
            user_id=owner,
            customer_name=customer.name,
            customer_email=customer.email.lower(),
            customer_phone=customer.phone,
            customer_address=customer.address,
            items=snapshot,
            total_amount=sum(line.price * line.quantity for line in snapshot),
            payment_method=payment_method or "cod",
            notes=notes or "",
        )
        order_id = create_document("order", order)
    except Exception:
        _release(reserved)
        logger.exception("Could not persist order; stock released")
        raise

    if owner is not None:
        collection("user").update_one({"_id": owner}, {"$push": {"orders": to_object_id(order_id)}})

    logger.info("Placed order %s for %s, total %.2f", order.order_number, order.customer_email, order.total_amount)
    return get_order(order_id)


def get_order(order_id) -> dict:
    order = collection("order").find_one({"_id": to_object_id(order_id, "Order")})
    if not order:
        raise NotFound("Order not found")
    return serialize_doc(order)


def list_orders(status: Optional[str] = None, page: int = 1, limit: int = 20) -> dict:
    filt = {}
    if status and status != "all":
        filt["status"] = status
    page = max(page or 1, 1)
    limit = max(limit or 20, 1)
    orders = collection("order")
    cursor = orders.find(filt).sort([("created_at", -1), ("_id", -1)]).skip((page - 1) * limit).limit(limit)
    total = orders.count_documents(filt)
    return {
        "orders": [serialize_doc(o) for o in cursor],
        "pagination": {
            "page": page,
            "pages": math.ceil(total / limit),
            "total": total,
            "limit": limit,
        },
    }


def check_transition(current: str, new: str):
    if new not in ORDER_STATUSES:
        raise ValidationError(f"Unknown order status: {new}")
    if new == current:
        return
    if current in TERMINAL_STATUSES:
        raise ValidationError(f"Order is already {current}.")
    if new == "cancelled":
        return
    if ORDER_FLOW.index(new) < ORDER_FLOW.index(current):
        raise ValidationError(f"Cannot move order from {current} back to {new}.")


def update_order(order_id, status: Optional[str] = None, payment_status: Optional[str] = None,
                 payment_method: Optional[str] = None, tracking_number: Optional[str] = None) -> dict:
    orders = collection("order")
    oid = to_object_id(order_id, "Order")
    current = orders.find_one({"_id": oid})
    if not current:
        raise NotFound("Order not found")

    update = {}
    if status:
        check_transition(current["status"], status)
        update["status"] = status
    if payment_status:
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(f"Unknown payment status: {payment_status}")
        update["payment_status"] = payment_status
    if payment_method:
        update["payment_method"] = payment_method
    if tracking_number:
        update["tracking_number"] = tracking_number
    if not update:
        return serialize_doc(current)
    update["updated_at"] = utcnow()

    # only the request that flips the status may restock
    res = orders.update_one({"_id": oid, "status": current["status"]}, {"$set": update})
    if res.matched_count != 1:
        raise ValidationError("Order was modified concurrently; retry.")
    if status == "cancelled" and current["status"] != "cancelled":
        _release([(item["product_id"], item["quantity"]) for item in current.get("items", [])])
        logger.info("Cancelled order %s and restocked its items", current.get("order_number"))
    elif status and status != current["status"]:
        logger.info("Order %s moved %s -> %s", current.get("order_number"), current["status"], status)
    return get_order(oid)


def list_user_orders(user: dict) -> List[dict]:
    cursor = collection("order").find({
        "$or": [
            {"customer_email": user.get("email")},
            {"user_id": user["_id"]},
        ]
    }).sort([("created_at", -1), ("_id", -1)])
    return [serialize_doc(o) for o in cursor]
