"""
Database Schemas for the Grocery Store

Each Pydantic model represents a MongoDB collection. The collection name is the
lowercased class name (e.g., User -> "user"). Products are one collection with
three shapes told apart by the "kind" field.
"""

from pydantic import BaseModel, Field, EmailStr
from typing import Annotated, Literal, Optional, List, Union
from bson import ObjectId

ORDER_STATUSES = ("pending", "completed", "cancelled")
ROLES = ("user", "admin")

PHONE_PATTERN = r"^[6-9]\d{9}$"


class ImageRef(BaseModel):
    url: str
    public_id: Optional[str] = None


class User(BaseModel):
    """
    Users collection schema
    Users are deactivated, never deleted.
    """
    name: str = Field(..., min_length=1, description="Full name")
    email: EmailStr = Field(..., description="Login identifier, stored lowercased")
    phone_no: str = Field(..., pattern=PHONE_PATTERN, description="10-digit mobile number")
    password_hash: str = Field(..., description="bcrypt hash")
    role: Literal["user", "admin"] = Field("user")
    profile_image_url: str = Field("", description="Profile picture URL")
    is_active: bool = Field(True)


class Category(BaseModel):
    """Categories collection schema; a non-null parent makes it a subcategory."""
    model_config = {"arbitrary_types_allowed": True}

    name: str = Field(..., min_length=1)
    parent_category_id: Optional[ObjectId] = Field(None)
    image: Optional[ImageRef] = None
    is_active: bool = Field(True)


class _ProductBase(BaseModel):
    model_config = {"arbitrary_types_allowed": True}

    name: str = Field(..., min_length=1, description="Product name")
    description: Optional[str] = Field(None)
    category_id: ObjectId
    price: float = Field(..., gt=0, description="Selling price per pack")
    purchase_price: float = Field(..., ge=0, description="Cost basis, admin only")
    images: List[ImageRef] = Field(default_factory=list)
    is_active: bool = Field(True)


class UnitProduct(_ProductBase):
    """Counted in whole units."""
    kind: Literal["unit"] = "unit"
    stock: int = Field(0, ge=0, description="Units in stock")


class BulkProduct(_ProductBase):
    """Holds the gram stock; sold in packs of quantity_in_grams."""
    kind: Literal["bulk"] = "bulk"
    quantity_in_grams: float = Field(..., gt=0, description="Pack size in grams")
    stock_in_grams: float = Field(0, ge=0, description="Total stock in grams")


class VariantProduct(_ProductBase):
    """Smaller pack drawing on its bulk parent's gram stock."""
    kind: Literal["variant"] = "variant"
    bulk_product_id: ObjectId
    quantity_in_grams: float = Field(..., gt=0, description="Pack size in grams")


Product = Annotated[Union[UnitProduct, BulkProduct, VariantProduct], Field(discriminator="kind")]


class CartItem(BaseModel):
    model_config = {"arbitrary_types_allowed": True}

    product_id: ObjectId
    name: str
    quantity: int = Field(1, ge=1)
    price_per_unit: float
    purchase_price: float
    subtotal: float
    profit: float


class Cart(BaseModel):
    model_config = {"arbitrary_types_allowed": True}

    user_id: ObjectId
    items: List[CartItem] = []
    subtotal: float = 0.0


class OrderItem(BaseModel):
    model_config = {"arbitrary_types_allowed": True}

    product_id: ObjectId
    name: str
    quantity: int = Field(..., ge=1)
    price_per_unit: float
    subtotal: float
    profit: float


class Order(BaseModel):
    model_config = {"arbitrary_types_allowed": True}

    user_id: Optional[ObjectId] = None
    items: List[OrderItem]
    total_amount: float
    total_profit: float = 0.0
    status: Literal["pending", "completed", "cancelled"] = Field("pending")
    is_manual_sale: bool = False
    stock_restored: bool = False
