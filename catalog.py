"""Product catalog: CRUD, listing filters and demo data."""
import logging
import re
from typing import List, Optional

import pydantic
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from database import collection, create_document, next_sequence, serialize_doc, to_object_id, utcnow
from errors import NotFound, ValidationError
from schemas import Product
from uploads import delete_images

logger = logging.getLogger(__name__)

SORTS = {
    "price_low": [("price", ASCENDING)],
    "price_high": [("price", DESCENDING)],
    "name": [("name", ASCENDING)],
}
NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]

UPDATABLE_FIELDS = ("name", "price", "category", "stock", "description", "tags", "featured")


def parse_tags(tags) -> List[str]:
    if tags is None:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    return [t.strip() for t in tags if t and t.strip()]


def _validated(fields: dict) -> dict:
    try:
        return Product(**fields).model_dump()
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        loc = ".".join(str(p) for p in first.get("loc", ()))
        raise ValidationError(f"{loc}: {first.get('msg')}" if loc else first.get("msg"))


def make_sku(category: str) -> str:
    return f"LT-{category.strip().upper()}-{next_sequence('product'):04d}"


def create_product(fields: dict, images: Optional[List[str]] = None) -> dict:
    images = list(images or fields.get("images") or [])
    doc = _validated({
        "name": fields.get("name"),
        "price": fields.get("price"),
        "category": fields.get("category"),
        "stock": fields.get("stock", 0),
        "description": fields.get("description"),
        "tags": parse_tags(fields.get("tags")),
        "featured": bool(fields.get("featured", False)),
        "images": images,
        "main_image": fields.get("main_image") or (images[0] if images else None),
    })
    doc["sku"] = make_sku(doc["category"])
    product_id = create_document("product", doc)
    logger.info("Created product %s (%s)", doc["sku"], product_id)
    return get_product(product_id)


def get_product(product_id) -> dict:
    product = collection("product").find_one({"_id": to_object_id(product_id, "Product")})
    if not product:
        raise NotFound("Product not found")
    return serialize_doc(product)


def update_product(product_id, fields: dict, new_images: Optional[List[str]] = None,
                   remove_images: Optional[List[str]] = None) -> dict:
    products = collection("product")
    oid = to_object_id(product_id, "Product")
    current = products.find_one({"_id": oid})
    if not current:
        raise NotFound("Product not found")

    merged = {k: current.get(k) for k in UPDATABLE_FIELDS}
    sent = [key for key in UPDATABLE_FIELDS if fields.get(key) is not None]
    for key in sent:
        merged[key] = parse_tags(fields[key]) if key == "tags" else fields[key]

    removed = [img for img in (remove_images or []) if img in current.get("images", [])]
    images = [img for img in current.get("images", []) if img not in removed] + list(new_images or [])
    merged["images"] = images
    if images:
        merged["main_image"] = images[0]
    elif current.get("images"):
        merged["main_image"] = None
    else:
        merged["main_image"] = current.get("main_image")

    validated = _validated(merged)
    # only sent fields are written; checkouts move stock concurrently
    update = {key: validated[key] for key in sent}
    if removed or new_images:
        update["images"] = validated["images"]
        update["main_image"] = validated["main_image"]
    update["updated_at"] = utcnow()
    updated = products.find_one_and_update({"_id": oid}, {"$set": update}, return_document=ReturnDocument.AFTER)
    if not updated:
        raise NotFound("Product not found")
    delete_images(removed)
    logger.info("Updated product %s", current.get("sku"))
    return serialize_doc(updated)


def delete_product(product_id) -> None:
    product = collection("product").find_one_and_delete({"_id": to_object_id(product_id, "Product")})
    if not product:
        raise NotFound("Product not found")
    delete_images(product.get("images", []))
    logger.info("Deleted product %s", product.get("sku"))


def list_products(category: Optional[str] = None, featured: Optional[bool] = None, search: Optional[str] = None,
                  sort: Optional[str] = None, limit: Optional[int] = None) -> List[dict]:
    filt = {}
    if category and category != "all":
        filt["category"] = category
    if featured:
        filt["featured"] = True
    if search:
        pattern = re.escape(search.strip())
        filt["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
            {"tags": {"$regex": pattern, "$options": "i"}},
        ]

    cursor = collection("product").find(filt).sort(SORTS.get(sort, NEWEST_FIRST))
    if limit and limit > 0:
        cursor = cursor.limit(limit)
    return [serialize_doc(p) for p in cursor]


# ----------------------- Seed Demo Data -----------------------
SAMPLE_PRODUCTS = [
    {
        "name": "Rainbow Pencil Set",
        "price": 150,
        "category": "stationery",
        "stock": 25,
        "description": "Colorful set of 12 pencils with rainbow design, perfect for art and writing",
        "main_image": "🌈",
        "tags": ["pencils", "colorful", "art", "rainbow"],
        "featured": True,
    },
    {
        "name": "Unicorn Backpack",
        "price": 850,
        "category": "bags",
        "stock": 12,
        "description": "Beautiful unicorn themed backpack with sparkly details and multiple compartments",
        "main_image": "🦄",
        "tags": ["backpack", "unicorn", "school", "sparkly"],
        "featured": True,
    },
    {
        "name": "Star Sticker Pack",
        "price": 75,
        "category": "accessories",
        "stock": 30,
        "description": "Pack of 50 colorful star stickers in various sizes",
        "main_image": "⭐",
        "tags": ["stickers", "stars", "decoration"],
        "featured": False,
    },
    {
        "name": "Colorful Notebooks",
        "price": 200,
        "category": "stationery",
        "stock": 20,
        "description": "Set of 3 colorful notebooks with fun animal designs and lined pages",
        "main_image": "📚",
        "tags": ["notebooks", "animals", "writing"],
        "featured": True,
    },
    {
        "name": "Princess Lunch Bag",
        "price": 450,
        "category": "bags",
        "stock": 15,
        "description": "Insulated lunch bag with princess theme, keeps food fresh and cool",
        "main_image": "👸",
        "tags": ["lunch bag", "princess", "insulated"],
        "featured": False,
    },
    {
        "name": "Fun Erasers Set",
        "price": 120,
        "category": "accessories",
        "stock": 40,
        "description": "Set of 10 fun-shaped erasers including fruits, animals, and toys",
        "main_image": "🧽",
        "tags": ["erasers", "fun shapes", "animals", "fruits"],
        "featured": False,
    },
]


def seed_products() -> int:
    if collection("product").count_documents({}) > 0:
        return 0
    for p in SAMPLE_PRODUCTS:
        create_product(p)
    return len(SAMPLE_PRODUCTS)
