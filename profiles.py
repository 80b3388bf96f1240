"""Customer profile, saved addresses and wishlist."""
import logging
import math
import re
from datetime import datetime
from typing import Optional

import pydantic
from pymongo import ReturnDocument

from database import collection, get_documents, serialize_doc, to_object_id, utcnow
from errors import NotFound, ValidationError
from schemas import Address

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("id", "name", "email", "role", "phone", "address", "date_of_birth", "gender", "avatar",
                  "addresses", "orders", "wishlist", "email_verified", "created_at")
GENDERS = {"male", "female", "other"}
WISHLIST_FIELDS = ("_id", "name", "price", "main_image")


def _public(user: dict, fields=PROFILE_FIELDS) -> dict:
    data = serialize_doc(user)
    return {k: data.get(k) for k in fields}


def get_profile(user: dict) -> dict:
    fresh = collection("user").find_one({"_id": user["_id"]})
    if not fresh:
        raise NotFound("User not found.")
    orders = collection("order").find(
        {"_id": {"$in": fresh.get("orders", [])}},
        {"order_number": 1, "status": 1, "total_amount": 1, "created_at": 1},
    ).sort("created_at", -1)
    wishlist = get_documents("product", {"_id": {"$in": fresh.get("wishlist", [])}})
    profile = _public(fresh)
    profile["orders"] = [serialize_doc(o) for o in orders]
    profile["wishlist"] = [serialize_doc({k: p.get(k) for k in WISHLIST_FIELDS}) for p in wishlist]
    return profile


def update_profile(user: dict, name: Optional[str] = None, phone: Optional[str] = None,
                   address: Optional[str] = None, date_of_birth: Optional[str] = None,
                   gender: Optional[str] = None, avatar: Optional[str] = None) -> dict:
    update = {}
    if name is not None:
        if not name.strip():
            raise ValidationError("Name cannot be empty.")
        update["name"] = name.strip()
    if phone is not None:
        update["phone"] = phone
    if address is not None:
        update["address"] = address
    if date_of_birth:
        try:
            update["date_of_birth"] = datetime.fromisoformat(date_of_birth)
        except ValueError:
            raise ValidationError("dateOfBirth must be an ISO date.")
    if gender:
        if gender not in GENDERS:
            raise ValidationError("gender must be male, female or other.")
        update["gender"] = gender
    if avatar:
        update["avatar"] = avatar
    update["updated_at"] = utcnow()

    updated = collection("user").find_one_and_update(
        {"_id": user["_id"]}, {"$set": update}, return_document=ReturnDocument.AFTER
    )
    return _public(updated, ("id", "name", "email", "phone", "address", "date_of_birth", "gender", "avatar"))


def add_address(user: dict, fields: dict) -> list:
    try:
        address = Address(**fields).model_dump()
    except pydantic.ValidationError:
        raise ValidationError("Invalid address.")

    users = collection("user")
    current = users.find_one({"_id": user["_id"]}) or {}
    addresses = list(current.get("addresses", []))
    if not addresses:
        address["is_default"] = True
    if address["is_default"]:
        for a in addresses:
            a["is_default"] = False
    addresses.append(address)

    updated = users.find_one_and_update(
        {"_id": user["_id"]},
        {"$set": {"addresses": addresses, "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return updated["addresses"]


def add_to_wishlist(user: dict, product_id: str) -> bool:
    oid = to_object_id(product_id, "Product")
    if not collection("product").find_one({"_id": oid}, {"_id": 1}):
        raise NotFound("Product not found")
    res = collection("user").update_one({"_id": user["_id"]}, {"$addToSet": {"wishlist": oid}})
    return res.modified_count == 1


def remove_from_wishlist(user: dict, product_id: str) -> bool:
    oid = to_object_id(product_id, "Product")
    res = collection("user").update_one({"_id": user["_id"]}, {"$pull": {"wishlist": oid}})
    return res.modified_count == 1


# ----------------------- Admin: user management -----------------------
def list_users(search: Optional[str] = None, status: Optional[str] = None, page: int = 1, limit: int = 20) -> dict:
    filt = {}
    if search:
        pattern = re.escape(search.strip())
        filt["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"email": {"$regex": pattern, "$options": "i"}},
        ]
    if status in ("active", "inactive"):
        filt["is_active"] = status == "active"
    page = max(page or 1, 1)
    limit = max(limit or 20, 1)

    users = collection("user")
    cursor = users.find(filt).sort([("created_at", -1), ("_id", -1)]).skip((page - 1) * limit).limit(limit)
    total = users.count_documents(filt)
    return {
        "users": [serialize_doc(u) for u in cursor],
        "pagination": {"page": page, "pages": math.ceil(total / limit), "total": total, "limit": limit},
    }


def toggle_user_status(user_id: str) -> dict:
    users = collection("user")
    oid = to_object_id(user_id, "User")
    user = users.find_one({"_id": oid})
    if not user:
        raise NotFound("User not found.")
    updated = users.find_one_and_update(
        {"_id": oid, "is_active": user.get("is_active", False)},
        {"$set": {"is_active": not user.get("is_active", False), "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise ValidationError("User was modified concurrently; retry.")
    logger.info("User %s %s", updated["email"], "activated" if updated["is_active"] else "deactivated")
    return _public(updated, ("id", "name", "email", "role", "is_active"))
