"""
Order placement, manual (in-store) sales and status changes.

Stock is taken one line at a time with a conditional decrement, so two
checkouts racing for the same product cannot both succeed past the available
stock. Checkout first empties the cart in a single write, so a repeated
submit of the same cart finds nothing to order. If any line fails, every
reservation already taken is handed back and the cart lines are restored
before the error propagates; an order either exists with all its stock taken,
or nothing changed.
"""

import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument

from cart import line_item
from catalog import StockRequirement, available_units, release_all, release_stock, reserve_stock, stock_requirement
from database import create_document, db, utcnow
from errors import NotFoundError, StateConflictError, ValidationError
from schemas import ORDER_STATUSES, Order, OrderItem

logger = logging.getLogger(__name__)


def _order_line(product: Dict[str, Any], quantity: int) -> OrderItem:
    return OrderItem(**line_item(product, quantity))


def _totals(lines: List[OrderItem]):
    return round(sum(line.subtotal for line in lines), 2), round(sum(line.profit for line in lines), 2)


def _insert_order(order: Order, reservations: List[StockRequirement]) -> str:
    try:
        return create_document("order", order)
    except Exception:
        logger.warning("Order insert failed, releasing %d reservation(s)", len(reservations))
        release_all(reservations)
        raise


def _claim_cart(user_id: ObjectId) -> Dict[str, Any]:
    """Empty the cart in one write and return what it held.

    A second checkout of the same cart finds it already empty.
    """
    cart = db["cart"].find_one_and_update(
        {"user_id": user_id, "items": {"$ne": []}},
        {"$set": {"items": [], "subtotal": 0.0, "updated_at": utcnow()}},
    )
    if not cart or not cart.get("items"):
        raise StateConflictError("Cart is empty")
    return cart


def _return_to_cart(cart: Dict[str, Any]):
    """Put a claimed cart's lines back after a failed checkout."""
    restored = db["cart"].update_one(
        {"_id": cart["_id"], "items": []},
        {"$set": {"items": cart["items"], "subtotal": cart.get("subtotal", 0.0), "updated_at": utcnow()}},
    )
    if restored.matched_count:
        return
    # the user added lines meanwhile; keep those and bring back the rest
    for item in cart["items"]:
        db["cart"].update_one(
            {"_id": cart["_id"], "items.product_id": {"$ne": item["product_id"]}},
            {"$push": {"items": item}, "$inc": {"subtotal": item["subtotal"]}, "$set": {"updated_at": utcnow()}},
        )


def place_order(user_id: ObjectId) -> Dict[str, Any]:
    cart = _claim_cart(user_id)

    reservations: List[StockRequirement] = []
    lines: List[OrderItem] = []
    try:
        for item in cart["items"]:
            quantity = int(item["quantity"])
            product = db["product"].find_one({"_id": item["product_id"]})
            if not product or not product.get("is_active", True):
                raise StateConflictError(f"Product {item.get('name')} not available", product_id=str(item["product_id"]))
            req = stock_requirement(product, quantity)
            if not reserve_stock(req):
                available = available_units(product)
                raise StateConflictError(
                    f"Insufficient stock for {item.get('name')}. Available: {available}, Required: {quantity}",
                    product_id=str(item["product_id"]),
                )
            reservations.append(req)
            lines.append(_order_line(product, quantity))
    except Exception:
        if reservations:
            logger.warning("Checkout for %s failed, releasing %d reservation(s)", user_id, len(reservations))
            release_all(reservations)
        _return_to_cart(cart)
        raise

    total_amount, total_profit = _totals(lines)
    order = Order(user_id=user_id, items=lines, total_amount=total_amount, total_profit=total_profit, status="pending")
    try:
        order_id = _insert_order(order, reservations)
    except Exception:
        _return_to_cart(cart)
        raise

    logger.info("Order %s placed by %s: total %.2f", order_id, user_id, total_amount)
    return db["order"].find_one({"_id": ObjectId(order_id)})


def _sale_quantity(value: Any) -> Optional[int]:
    """Whole quantity of at least 1, or None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, int) and value >= 1:
        return value
    return None


def record_manual_sale(items: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Create a completed in-store order. Unusable items are skipped, not fatal."""
    if not items:
        raise ValidationError("No products")

    reservations: List[StockRequirement] = []
    lines: List[OrderItem] = []
    skipped: List[Dict[str, Any]] = []
    for entry in items:
        raw_id = entry.get("product_id")
        quantity = _sale_quantity(entry.get("quantity"))
        if not isinstance(raw_id, str) or not ObjectId.is_valid(raw_id) or quantity is None:
            skipped.append({"product_id": raw_id, "reason": "Invalid item"})
            continue
        product = db["product"].find_one({"_id": ObjectId(raw_id)})
        if not product or not product.get("is_active", True):
            skipped.append({"product_id": raw_id, "reason": "Product not found or inactive"})
            continue
        req = stock_requirement(product, quantity)
        if not reserve_stock(req):
            skipped.append({"product_id": raw_id, "reason": "Insufficient stock"})
            continue
        reservations.append(req)
        lines.append(_order_line(product, quantity))

    if skipped:
        logger.warning("Manual sale skipped %d item(s)", len(skipped))
    if not lines:
        raise ValidationError("No valid products for manual sale", skipped=skipped)

    total_amount, total_profit = _totals(lines)
    order = Order(
        user_id=None,
        items=lines,
        total_amount=total_amount,
        total_profit=total_profit,
        status="completed",
        is_manual_sale=True,
    )
    order_id = _insert_order(order, reservations)
    logger.info("Manual sale %s recorded: total %.2f", order_id, total_amount)
    return {"order": db["order"].find_one({"_id": ObjectId(order_id)}), "skipped": skipped}


def restore_stock(order: Dict[str, Any]) -> int:
    """Hand every line's stock back. Products deleted since are skipped."""
    restored = 0
    for item in order.get("items", []):
        product = db["product"].find_one({"_id": item["product_id"]})
        if not product:
            logger.warning("Cannot restock %s for order %s: product gone", item["product_id"], order["_id"])
            continue
        release_stock(stock_requirement(product, int(item["quantity"])))
        restored += 1
    return restored


def update_status(order_id: ObjectId, status: str) -> Dict[str, Any]:
    if status not in ORDER_STATUSES:
        raise ValidationError("Invalid status")
    order = db["order"].find_one({"_id": order_id})
    if not order:
        raise NotFoundError("Order not found")
    current = order.get("status")
    if current == status:
        return order
    if current == "cancelled":
        raise StateConflictError("Cancelled orders cannot change status")

    updated = db["order"].find_one_and_update(
        {"_id": order_id, "status": current},
        {"$set": {"status": status, "stock_restored": status == "cancelled", "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise StateConflictError("Order was changed by another request, try again")
    if status == "cancelled":
        count = restore_stock(updated)
        logger.info("Order %s cancelled, restocked %d line(s)", order_id, count)
    else:
        logger.info("Order %s status %s -> %s", order_id, current, status)
    return updated


def attach_users(orders: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Add a {id, name, email} user summary to each order for admin listings."""
    ids = list({o["user_id"] for o in orders if o.get("user_id")})
    users = {u["_id"]: u for u in db["user"].find({"_id": {"$in": ids}}, {"name": 1, "email": 1})} if ids else {}
    for o in orders:
        u = users.get(o.get("user_id"))
        o["user"] = {"id": u["_id"], "name": u.get("name"), "email": u.get("email")} if u else None
    return orders
