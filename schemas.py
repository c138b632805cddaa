"""
Database Schemas for the shop

Each Pydantic model represents a document in a collection:
- User -> "users"
- Product -> "products"
- Cart -> "carts" (one per user, keyed by user_id)
- Order -> "orders"

References between documents are stored as native ObjectIds.
"""

from datetime import datetime
from typing import List, Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, EmailStr, Field


class User(BaseModel):
    name: str = Field(..., description="Full name")
    email: EmailStr = Field(..., description="Email address, unique")
    password_hash: str = Field(..., description="HMAC-SHA256 hash of the password")


class Product(BaseModel):
    name: str = Field(..., description="Product name")
    description: str = Field("", description="Short description")
    price: float = Field(..., gt=0, description="Unit price")
    stock: int = Field(..., ge=0, description="Units in stock")


class CartLine(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    product_id: ObjectId = Field(..., description="Product ID")
    quantity: int = Field(..., gt=0, description="Units in the cart")
    price: float = Field(..., ge=0, description="Unit price x quantity at the last cart update")


class Cart(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    user_id: ObjectId = Field(..., description="Owner of the cart")
    products: List[CartLine] = Field(default_factory=list, description="Line items in insertion order")


class OrderLine(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    product_id: ObjectId = Field(..., description="Product ID")
    name: str = Field(..., description="Snapshot of product name at purchase time")
    quantity: int = Field(..., gt=0, description="Quantity ordered")
    price: float = Field(..., ge=0, description="Unit price x quantity at purchase time")


class Order(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    user_id: ObjectId = Field(..., description="ID of the user placing the order")
    products: List[OrderLine] = Field(..., description="Line items")
    total: float = Field(..., ge=0, description="Sum of line prices")
    order_date: Optional[datetime] = Field(None, description="When the order was placed")
