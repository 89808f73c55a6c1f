"""
Per-user cart.

Line items are snapshots of the product at the last mutation. Every mutation
re-reads the product so price_per_unit, subtotal and profit always reflect the
current catalog price, and subtotal == price_per_unit * quantity holds for
every line. Stock is never touched here; it moves only when an order is placed.
"""

import logging
from typing import Any, Dict, List

from bson import ObjectId

from catalog import available_units
from database import db, utcnow
from errors import NotFoundError, StateConflictError, ValidationError
from schemas import Cart, CartItem

logger = logging.getLogger(__name__)


def line_item(product: Dict[str, Any], quantity: int) -> Dict[str, Any]:
    price = float(product["price"])
    purchase_price = float(product.get("purchase_price", 0))
    return CartItem(
        product_id=product["_id"],
        name=product.get("name"),
        quantity=quantity,
        price_per_unit=price,
        purchase_price=purchase_price,
        subtotal=round(price * quantity, 2),
        profit=round((price - purchase_price) * quantity, 2),
    ).model_dump()


def active_product(product_id: ObjectId) -> Dict[str, Any]:
    product = db["product"].find_one({"_id": product_id})
    if not product or not product.get("is_active", True):
        raise NotFoundError("Product not found or inactive")
    return product


def get_cart(user_id: ObjectId) -> Dict[str, Any]:
    cart = db["cart"].find_one({"user_id": user_id})
    if not cart:
        return {"user_id": user_id, "items": [], "subtotal": 0.0}
    return cart


def _save(cart: Dict[str, Any]) -> Dict[str, Any]:
    now = utcnow()
    subtotal = round(sum(i["subtotal"] for i in cart["items"]), 2)
    cart.update(Cart(user_id=cart["user_id"], items=cart["items"], subtotal=subtotal).model_dump())
    cart["updated_at"] = now
    db["cart"].update_one(
        {"user_id": cart["user_id"]},
        {
            "$set": {"items": cart["items"], "subtotal": cart["subtotal"], "updated_at": now},
            "$setOnInsert": {"created_at": now},
        },
        upsert=True,
    )
    return cart


def _index_of(cart: Dict[str, Any], product_id: ObjectId) -> int:
    for i, item in enumerate(cart["items"]):
        if item["product_id"] == product_id:
            return i
    return -1


def add_item(user_id: ObjectId, product_id: ObjectId, quantity: int) -> Dict[str, Any]:
    if quantity is None or quantity < 1:
        raise ValidationError("Quantity must be at least 1")
    product = active_product(product_id)
    cart = get_cart(user_id)
    # Merge quantity if same product
    idx = _index_of(cart, product_id)
    if idx >= 0:
        total = int(cart["items"][idx]["quantity"]) + quantity
        cart["items"][idx] = line_item(product, total)
    else:
        cart["items"].append(line_item(product, quantity))
    return _save(cart)


def update_item(user_id: ObjectId, product_id: ObjectId, quantity: int) -> Dict[str, Any]:
    if quantity is None or quantity < 0:
        raise ValidationError("Quantity cannot be negative")
    cart = db["cart"].find_one({"user_id": user_id})
    if not cart:
        raise NotFoundError("Cart not found")
    idx = _index_of(cart, product_id)
    if idx < 0:
        raise NotFoundError("Product not in cart")
    if quantity == 0:
        cart["items"].pop(idx)
    else:
        product = active_product(product_id)
        cart["items"][idx] = line_item(product, quantity)
    return _save(cart)


def remove_item(user_id: ObjectId, product_id: ObjectId) -> Dict[str, Any]:
    cart = db["cart"].find_one({"user_id": user_id})
    if not cart or not cart.get("items"):
        raise NotFoundError("Cart is empty or not found")
    remaining = [i for i in cart["items"] if i["product_id"] != product_id]
    if len(remaining) == len(cart["items"]):
        raise NotFoundError("Product not in cart")
    cart["items"] = remaining
    return _save(cart)


def clear_cart(user_id: ObjectId) -> bool:
    """Empty the cart. Returns False when there was nothing to clear."""
    cart = db["cart"].find_one({"user_id": user_id})
    if not cart or not cart.get("items"):
        return False
    cart["items"] = []
    _save(cart)
    return True


def stock_issues(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Every line that cannot be fulfilled right now, not just the first."""
    issues = []
    for item in items:
        product = db["product"].find_one({"_id": item["product_id"]})
        if not product or not product.get("is_active", True):
            issues.append({
                "product_id": str(item["product_id"]),
                "name": item.get("name"),
                "reason": "Product not found or inactive",
            })
            continue
        available = available_units(product)
        if available < item["quantity"]:
            issues.append({
                "product_id": str(item["product_id"]),
                "name": item.get("name"),
                "reason": f"Insufficient stock. Available: {available}, Required: {item['quantity']}",
            })
    return issues


def validate_stock(user_id: ObjectId):
    cart = db["cart"].find_one({"user_id": user_id})
    if not cart or not cart.get("items"):
        raise StateConflictError("Cart is empty")
    issues = stock_issues(cart["items"])
    if issues:
        logger.info("Stock validation failed for cart of %s: %d issue(s)", user_id, len(issues))
        raise StateConflictError("Stock validation failed", issues=issues)
