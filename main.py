import os
import re
import logging
from contextlib import asynccontextmanager
from typing import Annotated, Any, Dict, List, Optional, Union, Literal

from fastapi import FastAPI, Depends, Header, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, EmailStr, Field, TypeAdapter
from pymongo import DESCENDING
from starlette.exceptions import HTTPException as StarletteHTTPException

import analytics
import cart as cart_service
import orders as order_service
from auth import (
    create_token, get_current_user, get_optional_user, hash_password, is_admin, public_user,
    read_token, require_admin, set_token_cookie, user_from_token, verify_password, TOKEN_COOKIE,
)
from catalog import build_category_tree, category_with_children, product_kind, shape_products
from database import db, create_document, ensure_indexes, get_documents, oid, serialize_doc, utcnow
from errors import AuthError, NotFoundError, StateConflictError, ValidationError, error_body
from schemas import ImageRef, Category, Product, ORDER_STATUSES, PHONE_PATTERN, ROLES, User

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

product_adapter = TypeAdapter(Product)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes()
    yield


app = FastAPI(title="Grocery Store API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CLIENT_URL", "http://localhost:5173").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ------------- Errors -------------

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    extra = jsonable_encoder(getattr(exc, "extra", None) or {})
    return JSONResponse(status_code=exc.status_code, content=error_body(str(exc.detail), extra), headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [
        {"field": ".".join(str(p) for p in e.get("loc", ())[1:]), "message": e.get("msg")}
        for e in exc.errors()
    ]
    return JSONResponse(status_code=400, content=error_body("Invalid input", {"details": details}))


@app.middleware("http")
async def unexpected_error_middleware(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=error_body("Internal Server Error"))


# ------------- Request models -------------

class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone_no: str = Field(..., pattern=PHONE_PATTERN)
    password: str = Field(..., min_length=6)
    profile_image_url: Optional[str] = None


class LoginRequest(BaseModel):
    identifier: str = Field(..., min_length=1, description="Email or phone number")
    password: str = Field(..., min_length=1)


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    phone_no: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    profile_image_url: Optional[str] = None


class RoleUpdate(BaseModel):
    role: str


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1)
    parent_category_id: Optional[str] = None
    image: Optional[ImageRef] = None


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    parent_category_id: Optional[str] = None
    image: Optional[ImageRef] = None
    is_active: Optional[bool] = None


class _ProductIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    category_id: str
    price: float = Field(..., gt=0)
    purchase_price: float = Field(..., ge=0)
    images: List[ImageRef] = []


class UnitProductIn(_ProductIn):
    kind: Literal["unit"]
    stock: int = Field(0, ge=0)


class BulkProductIn(_ProductIn):
    kind: Literal["bulk"]
    quantity_in_grams: float = Field(..., gt=0)
    stock_in_grams: float = Field(..., ge=0)


class VariantProductIn(_ProductIn):
    kind: Literal["variant"]
    bulk_product_id: str
    quantity_in_grams: float = Field(..., gt=0)


ProductIn = Annotated[Union[UnitProductIn, BulkProductIn, VariantProductIn], Field(discriminator="kind")]


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    category_id: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    purchase_price: Optional[float] = Field(None, ge=0)
    images: Optional[List[ImageRef]] = None
    is_active: Optional[bool] = None
    stock: Optional[int] = Field(None, ge=0)
    stock_in_grams: Optional[float] = Field(None, ge=0)
    quantity_in_grams: Optional[float] = Field(None, gt=0)
    bulk_product_id: Optional[str] = None


class CartItemRequest(BaseModel):
    product_id: str
    quantity: int


class CartRemoveRequest(BaseModel):
    product_id: str


class StatusUpdate(BaseModel):
    order_id: str
    status: str


class ManualSaleRequest(BaseModel):
    # items stay loose so bad lines are skipped, not rejected
    products: List[Dict[str, Any]] = []


# ------------- Helpers -------------

def _regex(keyword: str) -> Dict[str, Any]:
    return {"$regex": re.escape(keyword), "$options": "i"}


def _require_category(category_id: Any):
    category = db["category"].find_one({"_id": oid(category_id)})
    if not category:
        raise NotFoundError("Category not found")
    return category


def _require_parent_category(parent_id: Any, child: Optional[Dict[str, Any]] = None):
    # the tree is two levels deep: parents are roots, children have none of their own
    parent = _require_category(parent_id)
    if child is not None:
        if parent["_id"] == child["_id"]:
            raise ValidationError("A category cannot be its own parent")
        if db["category"].count_documents({"parent_category_id": child["_id"]}):
            raise ValidationError("A category with subcategories cannot become a subcategory")
    if parent.get("parent_category_id") is not None:
        raise ValidationError("Parent must be a top-level category")
    return parent


def _require_bulk_parent(bulk_id: Any):
    parent = db["product"].find_one({"_id": oid(bulk_id)})
    if not parent or product_kind(parent) != "bulk":
        raise ValidationError("bulk_product_id must reference a bulk product")
    return parent


def _pages(total: int, limit: int) -> int:
    return (total + limit - 1) // limit


@app.get("/")
async def root():
    return {"message": "Grocery Store Backend Running"}


@app.get("/test")
def test_database():
    info = {
        "backend": "running",
        "database": "unavailable",
        "database_url": "set" if os.getenv("DATABASE_URL") else "not set",
        "database_name": db.name,
        "collections": [],
    }
    try:
        info["collections"] = db.list_collection_names()[:10]
        info["database"] = "connected"
    except Exception as e:
        info["database"] = f"error: {str(e)[:80]}"
    return info


# ------------- Users -------------

@app.post("/api/users/register", status_code=201)
def register(payload: RegisterRequest):
    email = payload.email.lower().strip()
    if db["user"].find_one({"email": email}):
        raise ValidationError("Email already registered")
    user = User(
        name=payload.name.strip(),
        email=email,
        phone_no=payload.phone_no,
        password_hash=hash_password(payload.password),
        profile_image_url=payload.profile_image_url or "",
    )
    user_id = create_document("user", user)
    logger.info("User %s registered", user_id)
    return {"success": True, "message": "Registration successful", "user_id": user_id}


@app.post("/api/users/login")
def login(payload: LoginRequest, response: Response):
    identifier = payload.identifier.strip()
    user = db["user"].find_one({"$or": [{"email": identifier.lower()}, {"phone_no": identifier}]})
    if not user or not user.get("is_active", True):
        logger.warning("Login rejected for %s: unknown or inactive", identifier)
        raise AuthError("User not found or inactive")
    if not verify_password(payload.password, user.get("password_hash", "")):
        logger.warning("Login rejected for %s: bad password", identifier)
        raise AuthError("Invalid password")
    token = create_token(user)
    set_token_cookie(response, token)
    logger.info("User %s logged in", user["_id"])
    return {"success": True, "message": "Logged in successfully", "user": serialize_doc(public_user(user)), "token": token}


@app.post("/api/users/logout")
def logout(response: Response):
    response.delete_cookie(TOKEN_COOKIE)
    return {"success": True, "message": "Logged out successfully"}


@app.get("/api/users/refresh-token")
def refresh_token(request: Request, response: Response, authorization: Optional[str] = Header(default=None)):
    user = user_from_token(read_token(request, authorization))
    token = create_token(user)
    set_token_cookie(response, token)
    return {"success": True, "message": "Token refreshed", "token": token}


@app.get("/api/users/me")
def get_profile(user: Dict[str, Any] = Depends(get_current_user)):
    return {"success": True, "user": serialize_doc(public_user(user))}


@app.put("/api/users/update-profile")
def update_profile(payload: ProfileUpdate, user: Dict[str, Any] = Depends(get_current_user)):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if changes:
        changes["updated_at"] = utcnow()
        db["user"].update_one({"_id": user["_id"]}, {"$set": changes})
    updated = db["user"].find_one({"_id": user["_id"]})
    return {"success": True, "message": "Profile updated successfully", "user": serialize_doc(public_user(updated))}


@app.get("/api/users", dependencies=[Depends(require_admin)])
def list_users(search: str = "", role: Optional[str] = None):
    query: Dict[str, Any] = {}
    if search:
        query["$or"] = [{"name": _regex(search)}, {"email": _regex(search)}, {"phone_no": _regex(search)}]
    if role in ROLES:
        query["role"] = role
    users = db["user"].find(query, {"password_hash": 0}).sort("created_at", DESCENDING)
    return {"success": True, "users": [serialize_doc(u) for u in users]}


@app.patch("/api/users/{user_id}/status", dependencies=[Depends(require_admin)])
def toggle_user_status(user_id: str):
    target = db["user"].find_one({"_id": oid(user_id)})
    if not target:
        raise NotFoundError("User not found")
    active = not target.get("is_active", True)
    db["user"].update_one({"_id": target["_id"]}, {"$set": {"is_active": active, "updated_at": utcnow()}})
    return {"success": True, "message": f"User {'activated' if active else 'deactivated'} successfully", "is_active": active}


@app.patch("/api/users/{user_id}/role", dependencies=[Depends(require_admin)])
def update_user_role(user_id: str, payload: RoleUpdate):
    if payload.role not in ROLES:
        raise ValidationError("Invalid role")
    res = db["user"].update_one({"_id": oid(user_id)}, {"$set": {"role": payload.role, "updated_at": utcnow()}})
    if res.matched_count == 0:
        raise NotFoundError("User not found")
    return {"success": True, "message": "User role updated successfully"}


# ------------- Categories -------------

@app.get("/api/categories")
def list_categories(
    keyword: str = "",
    is_active: Literal["true", "false", "all"] = "true",
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
):
    status_filter: Dict[str, Any] = {} if is_active == "all" else {"is_active": is_active == "true"}
    root_filter = {**status_filter, "parent_category_id": None}
    if keyword:
        root_filter["name"] = _regex(keyword)

    total = db["category"].count_documents(root_filter)
    roots = list(
        db["category"].find(root_filter).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit)
    )
    # all subcategories, not paginated
    subcategories = list(db["category"].find({**status_filter, "parent_category_id": {"$ne": None}}))
    tree, unplaced = build_category_tree(roots, subcategories)
    return {
        "success": True,
        "total": total,
        "page": page,
        "total_pages": _pages(total, limit),
        "unplaced_subcategories": unplaced,
        "categories": serialize_doc(tree),
    }


@app.get("/api/categories/subcategories/{parent_id}")
def list_subcategories(parent_id: str):
    subs = db["category"].find({"parent_category_id": oid(parent_id), "is_active": True}).sort("name", 1)
    return {"success": True, "subcategories": [serialize_doc(s) for s in subs]}


@app.get("/api/categories/{category_id}")
def get_category(category_id: str):
    return {"success": True, "category": serialize_doc(_require_category(category_id))}


@app.post("/api/categories", status_code=201, dependencies=[Depends(require_admin)])
def create_category(payload: CategoryIn):
    parent_id = None
    if payload.parent_category_id:
        parent_id = _require_parent_category(payload.parent_category_id)["_id"]
    category = Category(name=payload.name.strip(), parent_category_id=parent_id, image=payload.image)
    category_id = create_document("category", category)
    return {"success": True, "message": "Category created successfully", "category": serialize_doc(db["category"].find_one({"_id": oid(category_id)}))}


@app.put("/api/categories/{category_id}", dependencies=[Depends(require_admin)])
def update_category(category_id: str, payload: CategoryUpdate):
    category = _require_category(category_id)
    changes = payload.model_dump(exclude_unset=True)
    if "parent_category_id" in changes:
        if changes["parent_category_id"]:
            changes["parent_category_id"] = _require_parent_category(changes["parent_category_id"], category)["_id"]
        else:
            changes["parent_category_id"] = None
    for key in ("name", "is_active"):
        if key in changes and changes[key] is None:
            changes.pop(key)
    changes["updated_at"] = utcnow()
    db["category"].update_one({"_id": category["_id"]}, {"$set": changes})
    return {"success": True, "message": "Category updated successfully", "category": serialize_doc(db["category"].find_one({"_id": category["_id"]}))}


@app.delete("/api/categories/{category_id}", dependencies=[Depends(require_admin)])
def delete_category(category_id: str):
    category = _require_category(category_id)
    if db["category"].count_documents({"parent_category_id": category["_id"]}):
        raise StateConflictError("Category has subcategories, delete or move them first")
    db["category"].delete_one({"_id": category["_id"]})
    logger.info("Category %s deleted", category["_id"])
    return {"success": True, "message": "Category deleted successfully"}


@app.patch("/api/categories/{category_id}/status", dependencies=[Depends(require_admin)])
def toggle_category_status(category_id: str):
    category = _require_category(category_id)
    active = not category.get("is_active", True)
    db["category"].update_one({"_id": category["_id"]}, {"$set": {"is_active": active, "updated_at": utcnow()}})
    return {"success": True, "message": f"Category {'activated' if active else 'deactivated'} successfully", "is_active": active}


# ------------- Products -------------

@app.get("/api/products")
def list_products(
    keyword: str = "",
    category_id: Optional[str] = None,
    include_inactive: bool = False,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: Optional[Dict[str, Any]] = Depends(get_optional_user),
):
    admin = is_admin(user)
    query: Dict[str, Any] = {} if (include_inactive and admin) else {"is_active": True}
    if keyword:
        query["name"] = _regex(keyword)
    if category_id:
        query["category_id"] = oid(category_id)
    total = db["product"].count_documents(query)
    docs = list(db["product"].find(query).sort("created_at", DESCENDING).skip((page - 1) * limit).limit(limit))
    return {
        "success": True,
        "total": total,
        "page": page,
        "total_pages": _pages(total, limit),
        "products": shape_products(docs, admin=admin),
    }


@app.get("/api/products/bulk/stock")
def bulk_stock():
    docs = db["product"].find({"kind": "bulk", "is_active": True}, {"name": 1, "stock_in_grams": 1, "quantity_in_grams": 1})
    return {"success": True, "products": [serialize_doc(d) for d in docs]}


@app.get("/api/products/bulk/{bulk_id}/variants")
def bulk_variants(bulk_id: str, user: Optional[Dict[str, Any]] = Depends(get_optional_user)):
    docs = list(db["product"].find({"bulk_product_id": oid(bulk_id), "is_active": True}))
    return {"success": True, "variants": shape_products(docs, admin=is_admin(user))}


@app.get("/api/products/category/{category_id}")
def products_by_category(category_id: str, user: Optional[Dict[str, Any]] = Depends(get_optional_user)):
    ids = category_with_children(oid(category_id))
    docs = list(db["product"].find({"category_id": {"$in": ids}, "is_active": True}).sort("created_at", DESCENDING))
    return {"success": True, "total": len(docs), "products": shape_products(docs, admin=is_admin(user))}


@app.get("/api/products/{product_id}")
def get_product(product_id: str, user: Optional[Dict[str, Any]] = Depends(get_optional_user)):
    admin = is_admin(user)
    doc = db["product"].find_one({"_id": oid(product_id)})
    if not doc or (not admin and not doc.get("is_active", True)):
        raise NotFoundError("Product not found")
    return {"success": True, "product": shape_products([doc], admin=admin)[0]}


@app.post("/api/products", status_code=201, dependencies=[Depends(require_admin)])
def create_product(payload: ProductIn):
    data = payload.model_dump()
    data["category_id"] = _require_category(data["category_id"])["_id"]
    if data["kind"] == "variant":
        data["bulk_product_id"] = _require_bulk_parent(data["bulk_product_id"])["_id"]
    product = product_adapter.validate_python(data)
    product_id = create_document("product", product)
    doc = db["product"].find_one({"_id": oid(product_id)})
    return {"success": True, "message": "Product created successfully", "product": shape_products([doc], admin=True)[0]}


# fields each kind owns; anything else in an update is rejected
KIND_FIELDS = {
    "unit": {"stock"},
    "bulk": {"stock_in_grams", "quantity_in_grams"},
    "variant": {"bulk_product_id", "quantity_in_grams"},
}
KIND_SPECIFIC = {"stock", "stock_in_grams", "quantity_in_grams", "bulk_product_id"}


@app.put("/api/products/{product_id}", dependencies=[Depends(require_admin)])
def update_product(product_id: str, payload: ProductUpdate):
    product = db["product"].find_one({"_id": oid(product_id)})
    if not product:
        raise NotFoundError("Product not found")
    kind = product_kind(product)
    changes = payload.model_dump(exclude_unset=True)
    foreign = (set(changes) & KIND_SPECIFIC) - KIND_FIELDS[kind]
    if foreign:
        raise ValidationError(f"Fields not valid for a {kind} product: {', '.join(sorted(foreign))}")
    for key in [k for k, v in changes.items() if v is None and k != "description"]:
        changes.pop(key)
    if "category_id" in changes:
        changes["category_id"] = _require_category(changes["category_id"])["_id"]
    if "bulk_product_id" in changes:
        changes["bulk_product_id"] = _require_bulk_parent(changes["bulk_product_id"])["_id"]

    merged = {k: v for k, v in {**product, **changes}.items() if k not in ("_id", "created_at", "updated_at")}
    merged["kind"] = kind
    validated = product_adapter.validate_python(merged)
    changes = {k: v for k, v in validated.model_dump().items() if k in changes}
    changes["updated_at"] = utcnow()
    db["product"].update_one({"_id": product["_id"]}, {"$set": changes})
    doc = db["product"].find_one({"_id": product["_id"]})
    return {"success": True, "message": "Product updated successfully", "product": shape_products([doc], admin=True)[0]}


@app.delete("/api/products/{product_id}", dependencies=[Depends(require_admin)])
def delete_product(product_id: str):
    product = db["product"].find_one({"_id": oid(product_id)})
    if not product:
        raise NotFoundError("Product not found")
    variants = 0
    if product_kind(product) == "bulk":
        variants = db["product"].delete_many({"bulk_product_id": product["_id"]}).deleted_count
    db["product"].delete_one({"_id": product["_id"]})
    logger.info("Product %s deleted with %d variant(s)", product["_id"], variants)
    return {"success": True, "message": "Product and its variants deleted successfully", "variants_deleted": variants}


@app.patch("/api/products/{product_id}/status", dependencies=[Depends(require_admin)])
def toggle_product_status(product_id: str):
    product = db["product"].find_one({"_id": oid(product_id)})
    if not product:
        raise NotFoundError("Product not found")
    active = not product.get("is_active", True)
    db["product"].update_one({"_id": product["_id"]}, {"$set": {"is_active": active, "updated_at": utcnow()}})
    return {"success": True, "message": f"Product is now {'active' if active else 'inactive'}", "is_active": active}


# ------------- Cart -------------

@app.get("/api/cart")
def get_cart(user: Dict[str, Any] = Depends(get_current_user)):
    return {"success": True, "cart": serialize_doc(cart_service.get_cart(user["_id"]))}


@app.post("/api/cart/add")
def cart_add(payload: CartItemRequest, user: Dict[str, Any] = Depends(get_current_user)):
    cart = cart_service.add_item(user["_id"], oid(payload.product_id), payload.quantity)
    return {"success": True, "message": "Product added to cart", "cart": serialize_doc(cart)}


@app.put("/api/cart/update")
def cart_update(payload: CartItemRequest, user: Dict[str, Any] = Depends(get_current_user)):
    cart = cart_service.update_item(user["_id"], oid(payload.product_id), payload.quantity)
    return {"success": True, "message": "Cart updated successfully", "cart": serialize_doc(cart)}


@app.delete("/api/cart/remove")
def cart_remove(payload: CartRemoveRequest, user: Dict[str, Any] = Depends(get_current_user)):
    cart = cart_service.remove_item(user["_id"], oid(payload.product_id))
    return {"success": True, "message": "Product removed from cart", "cart": serialize_doc(cart)}


@app.delete("/api/cart/clear")
def cart_clear(user: Dict[str, Any] = Depends(get_current_user)):
    cleared = cart_service.clear_cart(user["_id"])
    return {"success": True, "message": "Cart cleared successfully" if cleared else "Cart is already empty"}


@app.get("/api/cart/validate-stock")
def cart_validate_stock(user: Dict[str, Any] = Depends(get_current_user)):
    cart_service.validate_stock(user["_id"])
    return {"success": True, "message": "Stock is valid for all cart items"}


# ------------- Orders -------------

@app.post("/api/orders", status_code=201)
def place_order(user: Dict[str, Any] = Depends(get_current_user)):
    order = order_service.place_order(user["_id"])
    return {"success": True, "message": "Order placed successfully", "order": serialize_doc(order)}


@app.get("/api/orders/my")
def my_orders(user: Dict[str, Any] = Depends(get_current_user)):
    docs = get_documents("order", {"user_id": user["_id"]})
    return {"success": True, "orders": [serialize_doc(o) for o in docs]}


@app.get("/api/orders", dependencies=[Depends(require_admin)])
def all_orders():
    docs = get_documents("order")
    return {"success": True, "orders": serialize_doc(order_service.attach_users(docs))}


@app.get("/api/orders/status/{status}", dependencies=[Depends(require_admin)])
def orders_by_status(status: str):
    if status not in ORDER_STATUSES:
        raise ValidationError("Invalid status")
    docs = get_documents("order", {"status": status})
    return {"success": True, "orders": serialize_doc(order_service.attach_users(docs))}


@app.patch("/api/orders/status", dependencies=[Depends(require_admin)])
def update_order_status(payload: StatusUpdate):
    order = order_service.update_status(oid(payload.order_id), payload.status)
    return {"success": True, "message": "Order status updated", "order": serialize_doc(order)}


@app.get("/api/orders/{order_id}", dependencies=[Depends(require_admin)])
def get_order(order_id: str):
    order = db["order"].find_one({"_id": oid(order_id)})
    if not order:
        raise NotFoundError("Order not found")
    return {"success": True, "order": serialize_doc(order_service.attach_users([order])[0])}


@app.delete("/api/orders/{order_id}", dependencies=[Depends(require_admin)])
def delete_order(order_id: str):
    res = db["order"].delete_one({"_id": oid(order_id)})
    if res.deleted_count == 0:
        raise NotFoundError("Order not found")
    return {"success": True, "message": "Order deleted successfully"}


# ------------- Analytics -------------

@app.get("/api/analytics/daily", dependencies=[Depends(require_admin)])
def daily_stats():
    return {"success": True, "stats": analytics.daily_stats()}


@app.get("/api/analytics/monthly", dependencies=[Depends(require_admin)])
def monthly_stats():
    return {"success": True, "stats": analytics.monthly_stats()}


@app.get("/api/analytics/top-products", dependencies=[Depends(require_admin)])
def top_products(limit: int = Query(10, ge=1, le=50)):
    return {"success": True, "top_products": serialize_doc(analytics.top_products(limit))}


@app.get("/api/analytics/revenue-over-time", dependencies=[Depends(require_admin)])
def revenue_over_time(days: int = Query(30, ge=1, le=365)):
    return {"success": True, "data": analytics.revenue_over_time(days)}


@app.get("/api/analytics/sales-by-category", dependencies=[Depends(require_admin)])
def sales_by_category():
    return {"success": True, "data": serialize_doc(analytics.sales_by_category())}


@app.get("/api/analytics/admin-stats", dependencies=[Depends(require_admin)])
def admin_stats():
    return {"success": True, "stats": analytics.admin_stats()}


@app.post("/api/analytics/manual-sale", status_code=201, dependencies=[Depends(require_admin)])
def manual_sale(payload: ManualSaleRequest):
    result = order_service.record_manual_sale(payload.products)
    return {"success": True, "message": "Manual sale recorded", "order": serialize_doc(result["order"]), "skipped": result["skipped"]}


def _export_orders():
    # every order, no pagination
    docs = get_documents("order")
    return order_service.attach_users(docs)


@app.get("/api/analytics/export/orders/csv", dependencies=[Depends(require_admin)])
def export_orders_csv():
    orders = _export_orders()
    logger.info("CSV export of %d orders", len(orders))
    return StreamingResponse(
        analytics.iter_orders_csv(orders),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="orders_report.csv"'},
    )


@app.get("/api/analytics/export/orders/pdf", dependencies=[Depends(require_admin)])
def export_orders_pdf():
    orders = _export_orders()
    logger.info("PDF export of %d orders", len(orders))
    return StreamingResponse(
        iter([analytics.orders_pdf(orders)]),
        media_type="application/pdf",
        headers={"Content-Disposition": 'attachment; filename="orders_report.pdf"'},
    )


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
