"""
Catalog helpers shared by the product, cart, order and analytics routes.

Products come in three kinds:

- ``unit``: counted in whole units, owns ``stock``.
- ``bulk``: owns ``stock_in_grams`` and is sold in packs of
  ``quantity_in_grams``.
- ``variant``: a smaller pack of a bulk product; it has no stock of its own
  and draws grams from its parent.

Anything that reads or moves stock goes through :func:`stock_requirement` and
:func:`available_units` so every kind is handled in one place.
"""

import math
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from bson import ObjectId

from database import db, serialize_doc, utcnow

logger = logging.getLogger(__name__)

PRODUCT_KINDS = ("unit", "bulk", "variant")


@dataclass(frozen=True)
class StockRequirement:
    holder_id: ObjectId
    field: str
    amount: float


def product_kind(product: Dict[str, Any]) -> str:
    kind = product.get("kind", "unit")
    if kind not in PRODUCT_KINDS:
        raise ValueError(f"Unknown product kind: {kind!r}")
    return kind


def stock_requirement(product: Dict[str, Any], quantity: int) -> StockRequirement:
    """Which document and field a sale of `quantity` packs draws on, and how much."""
    kind = product_kind(product)
    if kind == "unit":
        return StockRequirement(product["_id"], "stock", quantity)
    grams = quantity * float(product["quantity_in_grams"])
    if kind == "bulk":
        return StockRequirement(product["_id"], "stock_in_grams", grams)
    return StockRequirement(product["bulk_product_id"], "stock_in_grams", grams)


def available_units(product: Dict[str, Any], parent: Optional[Dict[str, Any]] = None) -> int:
    kind = product_kind(product)
    if kind == "unit":
        return int(product.get("stock", 0))
    if kind == "bulk":
        holder = product
    else:
        holder = parent if parent is not None else db["product"].find_one({"_id": product.get("bulk_product_id")})
        if not holder or not holder.get("is_active", True):
            return 0
    pack = float(product["quantity_in_grams"])
    return int(float(holder.get("stock_in_grams", 0)) // pack)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def you_save(product: Dict[str, Any], parent: Optional[Dict[str, Any]]) -> Optional[int]:
    """Amount a variant costs over the same grams bought at its bulk parent's rate.

    None when the product is not a variant, the parent is gone, or there is
    no saving.
    """
    if product_kind(product) != "variant" or not parent:
        return None
    bulk_grams = float(parent.get("quantity_in_grams") or 0)
    grams = float(product.get("quantity_in_grams") or 0)
    if bulk_grams <= 0 or grams <= 0:
        return None
    bulk_rate = float(parent["price"]) / bulk_grams
    this_rate = float(product["price"]) / grams
    if this_rate <= bulk_rate:
        return None
    savings = _round_half_up(float(product["price"]) - bulk_rate * grams)
    return savings if savings > 0 else None


def reserve_stock(req: StockRequirement) -> bool:
    """Atomically take stock if enough is left. False means nothing changed."""
    updated = db["product"].find_one_and_update(
        {"_id": req.holder_id, "is_active": True, req.field: {"$gte": req.amount}},
        {"$inc": {req.field: -req.amount}, "$set": {"updated_at": utcnow()}},
    )
    if updated is None:
        logger.warning("Stock reservation rejected: %s %s x%s", req.holder_id, req.field, req.amount)
        return False
    return True


def release_stock(req: StockRequirement):
    db["product"].update_one(
        {"_id": req.holder_id},
        {"$inc": {req.field: req.amount}, "$set": {"updated_at": utcnow()}},
    )


def release_all(reservations: Iterable[StockRequirement]):
    for req in reservations:
        release_stock(req)


# ------------- Product views -------------

def _by_id(collection: str, ids: Iterable[Any]) -> Dict[ObjectId, Dict[str, Any]]:
    wanted = list({i for i in ids if i is not None})
    if not wanted:
        return {}
    return {d["_id"]: d for d in db[collection].find({"_id": {"$in": wanted}})}


def shape_products(products: List[Dict[str, Any]], admin: bool = False) -> List[Dict[str, Any]]:
    """Serialize products with category name, bulk parent summary, you_save and available_units."""
    parents = _by_id("product", (p.get("bulk_product_id") for p in products if product_kind(p) == "variant"))
    categories = _by_id("category", (p.get("category_id") for p in products))
    shaped = []
    for p in products:
        parent = parents.get(p.get("bulk_product_id")) if product_kind(p) == "variant" else None
        out = serialize_doc(p)
        if not admin:
            out.pop("purchase_price", None)
        cat = categories.get(p.get("category_id"))
        out["category"] = {"id": str(cat["_id"]), "name": cat.get("name")} if cat else None
        if parent:
            out["bulk_product"] = {
                "id": str(parent["_id"]),
                "name": parent.get("name"),
                "price": parent.get("price"),
                "quantity_in_grams": parent.get("quantity_in_grams"),
            }
        out["you_save"] = you_save(p, parent)
        out["available_units"] = available_units(p, parent) if product_kind(p) != "variant" or parent else 0
        shaped.append(out)
    return shaped


def category_with_children(category_id: ObjectId) -> List[ObjectId]:
    children = db["category"].find({"parent_category_id": category_id, "is_active": True}, {"_id": 1})
    return [category_id] + [c["_id"] for c in children]


# ------------- Category tree -------------

def build_category_tree(roots: List[Dict[str, Any]], subcategories: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], int]:
    """Nest subcategories under the roots they point at.

    Returns the roots (in the given order) each with a ``subcategories`` list,
    and the number of subcategories whose parent is not among the roots.
    """
    tree: Dict[str, Dict[str, Any]] = {}
    for root in roots:
        tree[str(root["_id"])] = {**root, "subcategories": []}
    unplaced = 0
    seen = set()
    for sub in subcategories:
        if sub["_id"] in seen:
            continue
        seen.add(sub["_id"])
        parent = tree.get(str(sub.get("parent_category_id")))
        if parent is None:
            unplaced += 1
            continue
        parent["subcategories"].append(sub)
    return list(tree.values()), unplaced
