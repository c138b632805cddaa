import hashlib
import hmac
import logging
import os
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pymongo.errors import PyMongoError

from carts import CartManager
from checkout import CheckoutEngine
from database import db
from errors import (
    ERROR_INTERNAL,
    ERROR_NO_ORDERS,
    ERROR_PRODUCT_NOT_FOUND,
    ERROR_USER_NOT_FOUND,
    DuplicateEmail,
    InvalidInput,
    NotFound,
    ProductInUse,
    ShopError,
)
from locks import UserLocks
from schemas import Product, User
from storage import MongoStorage, Storage, parse_id
from views import order_view, product_view, user_view

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logging.basicConfig(
    level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO),
    format=LOG_FORMAT,
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Comercio API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Utility
SECRET_KEY = os.getenv("SECRET_KEY", "super-secret-key")


def hash_password(password: str) -> str:
    # Simple HMAC-SHA256 hash for demo (not for real prod)
    return hmac.new(SECRET_KEY.encode(), password.encode(), hashlib.sha256).hexdigest()


# Schemas
class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProductIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    price: float = Field(..., gt=0)
    stock: int = Field(..., ge=0)


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    price: Optional[float] = Field(None, gt=0)
    stock: Optional[int] = Field(None, ge=0)


class CartItemIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    product_id: str = Field(..., alias="productId")
    quantity: int = Field(..., strict=True)


# Dependencies
user_locks = UserLocks()


def get_storage() -> Storage:
    if db is None:
        raise HTTPException(status_code=500, detail="Database not available")
    return MongoStorage(db)


def get_cart_manager(storage: Storage = Depends(get_storage)) -> CartManager:
    return CartManager(storage, user_locks)


def get_checkout_engine(storage: Storage = Depends(get_storage)) -> CheckoutEngine:
    return CheckoutEngine(storage, user_locks)


def require_user(userId: Optional[str] = None, storage: Storage = Depends(get_storage)):
    user_id = parse_id(userId, "userId")
    if not storage.find_user(user_id):
        raise NotFound(ERROR_USER_NOT_FOUND)
    return user_id


# Error handlers
@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err['loc'][1:])}: {err['msg']}" for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"detail": f"Bad request: {problems}"})


@app.exception_handler(PyMongoError)
async def storage_error_handler(request: Request, exc: PyMongoError):
    logger.exception(f"Storage failure on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"detail": ERROR_INTERNAL})


@app.on_event("startup")
def prepare_indexes():
    if db is None:
        logger.warning("DATABASE_URL not set; storage endpoints will answer 500")
        return
    MongoStorage(db).ensure_indexes()


@app.get("/")
def read_root():
    return {"message": "Comercio API Running"}


# Users
@app.get("/users")
def list_users(storage: Storage = Depends(get_storage)) -> List[dict]:
    return [user_view(u) for u in storage.list_users()]


@app.post("/users", status_code=201)
def create_user(payload: SignupRequest, storage: Storage = Depends(get_storage)):
    email = str(payload.email)
    if storage.find_user_by_email(email):
        raise DuplicateEmail()
    uid = storage.insert_user(User(name=payload.name, email=email, password_hash=hash_password(payload.password)))
    logger.info(f"User {uid} signed up")
    return {"id": str(uid), "name": payload.name, "email": email}


# Products
@app.get("/products")
def list_products(storage: Storage = Depends(get_storage)) -> List[dict]:
    return [product_view(p) for p in storage.list_products()]


@app.post("/products", status_code=201)
def create_product(payload: ProductIn, storage: Storage = Depends(get_storage)):
    product = Product(**payload.model_dump())
    pid = storage.insert_product(product)
    logger.info(f"Product {pid} created")
    return product_view({"_id": pid, **product.model_dump()})


@app.put("/products/{product_id}")
def update_product(product_id: str, payload: ProductUpdate, storage: Storage = Depends(get_storage)):
    pid = parse_id(product_id, "productId")
    fields = payload.model_dump(exclude_none=True)
    if not fields:
        raise InvalidInput("Need at least one field to update")
    if not storage.update_product(pid, fields):
        raise NotFound(ERROR_PRODUCT_NOT_FOUND)
    logger.info(f"Product {pid} updated: {sorted(fields)}")
    updated = storage.find_product(pid)
    if not updated:
        raise NotFound(ERROR_PRODUCT_NOT_FOUND)
    return product_view(updated)


@app.delete("/products/{product_id}")
def delete_product(product_id: str, storage: Storage = Depends(get_storage)):
    pid = parse_id(product_id, "productId")
    if storage.product_in_carts(pid):
        logger.warning(f"Refused to delete product {pid}: in a cart")
        raise ProductInUse("Cannot delete product: it's in carts")
    if storage.product_in_orders(pid):
        logger.warning(f"Refused to delete product {pid}: in an order")
        raise ProductInUse("Cannot delete product: it's in orders")
    if not storage.delete_product(pid):
        raise NotFound(ERROR_PRODUCT_NOT_FOUND)
    logger.info(f"Product {pid} deleted")
    return {"message": "Deleted"}


# Carts
@app.get("/carts")
def get_cart(user_id=Depends(require_user), carts: CartManager = Depends(get_cart_manager)):
    return carts.get_cart(user_id)


@app.post("/carts/products")
def add_to_cart(payload: CartItemIn, user_id=Depends(require_user), carts: CartManager = Depends(get_cart_manager)):
    return carts.add_item(user_id, parse_id(payload.product_id, "productId"), payload.quantity)


@app.delete("/carts/products")
def remove_from_cart(
    productId: Optional[str] = None,
    user_id=Depends(require_user),
    carts: CartManager = Depends(get_cart_manager),
):
    return carts.remove_item(user_id, parse_id(productId, "productId"))


@app.delete("/carts")
def empty_cart(user_id=Depends(require_user), carts: CartManager = Depends(get_cart_manager)):
    carts.clear_cart(user_id, missing_ok=False)
    return {"message": "Cart emptied successfully"}


# Orders
@app.get("/orders")
def list_orders(user_id=Depends(require_user), storage: Storage = Depends(get_storage)):
    orders = storage.list_orders(user_id)
    if not orders:
        raise NotFound(ERROR_NO_ORDERS)
    return [order_view(o) for o in orders]


@app.post("/orders", status_code=201)
def place_order(user_id=Depends(require_user), engine: CheckoutEngine = Depends(get_checkout_engine)):
    return engine.checkout(user_id)


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
