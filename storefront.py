"""
Browser-session cart and wishlist state.

This is a cache of what the shopper has picked, never the source of truth:
prices and stock come from the catalog, and `Cart.revalidate` must be run
against fresh product data before checkout. The server re-checks everything
again when the order is placed.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional


@dataclass
class CartLine:
    product_id: str
    name: str
    price: float
    quantity: int
    stock: int
    image: Optional[str] = None

    @property
    def subtotal(self) -> float:
        return self.price * self.quantity


class CartError(Exception):
    pass


@dataclass
class Cart:
    lines: Dict[str, CartLine] = field(default_factory=dict)

    def add(self, product: dict, quantity: int = 1) -> CartLine:
        if quantity < 1:
            raise CartError("Quantity must be at least 1")
        pid = product["id"]
        stock = int(product.get("stock", 0))
        line = self.lines.get(pid)
        wanted = quantity + (line.quantity if line else 0)
        if wanted > stock:
            raise CartError(f"Only {stock} {product['name']} left in stock")
        if line:
            line.quantity = wanted
            line.stock = stock
        else:
            line = CartLine(pid, product["name"], float(product["price"]), quantity, stock,
                            product.get("main_image"))
            self.lines[pid] = line
        return line

    def update_quantity(self, product_id: str, quantity: int):
        if quantity <= 0:
            self.remove(product_id)
            return
        line = self.lines.get(product_id)
        if line is None:
            raise CartError("Item is not in the cart")
        if quantity > line.stock:
            raise CartError(f"Only {line.stock} {line.name} left in stock")
        line.quantity = quantity

    def remove(self, product_id: str):
        self.lines.pop(product_id, None)

    def clear(self):
        self.lines.clear()

    @property
    def count(self) -> int:
        return sum(line.quantity for line in self.lines.values())

    @property
    def total(self) -> float:
        return round(sum(line.subtotal for line in self.lines.values()), 2)

    def revalidate(self, products: Iterable[dict]) -> List[str]:
        """Refresh lines from server product data, returning what changed."""
        live = {p["id"]: p for p in products}
        changes = []
        for pid in list(self.lines):
            line = self.lines[pid]
            product = live.get(pid)
            if product is None:
                del self.lines[pid]
                changes.append(f"{line.name} is no longer available")
                continue
            line.stock = int(product.get("stock", 0))
            if float(product["price"]) != line.price:
                changes.append(f"{line.name} price changed from {line.price} to {product['price']}")
                line.price = float(product["price"])
            line.name = product["name"]
            line.image = product.get("main_image")
            if line.stock <= 0:
                del self.lines[pid]
                changes.append(f"{line.name} is out of stock")
            elif line.quantity > line.stock:
                changes.append(f"{line.name} quantity reduced to {line.stock}")
                line.quantity = line.stock
        return changes

    def order_request(self, customer_info: dict, payment_method: str = "cod", notes: str = "",
                      user_id: Optional[str] = None) -> dict:
        """Body for POST /api/create-order."""
        if not self.lines:
            raise CartError("Your cart is empty")
        body = {
            "customerInfo": customer_info,
            "items": [
                {"productId": line.product_id, "name": line.name, "quantity": line.quantity}
                for line in self.lines.values()
            ],
            "paymentMethod": payment_method,
            "notes": notes,
        }
        if user_id:
            body["userId"] = user_id
        return body


@dataclass
class Wishlist:
    product_ids: List[str] = field(default_factory=list)

    def __contains__(self, product_id: str) -> bool:
        return product_id in self.product_ids

    def toggle(self, product_id: str) -> bool:
        """Add or remove; returns True when the product is now wishlisted."""
        if product_id in self.product_ids:
            self.product_ids.remove(product_id)
            return False
        self.product_ids.append(product_id)
        return True
