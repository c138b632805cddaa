"""
Storage port for users, products, carts and orders.

The cart manager and checkout engine only talk to `Storage`; `MongoStorage`
is the production implementation over a pymongo database. Ids are native
ObjectIds on this side of the port; hex strings are parsed with `parse_id`
at the HTTP boundary.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ASCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, get_documents
from errors import ERROR_INVALID_ID, DuplicateEmail, InvalidInput
from schemas import Cart, Order, Product, User

logger = logging.getLogger(__name__)

USERS = "users"
PRODUCTS = "products"
CARTS = "carts"
ORDERS = "orders"


def parse_id(value: Optional[str], what: str = "id") -> ObjectId:
    """Turn a hex id string into an ObjectId, or raise InvalidInput."""
    if not value:
        raise InvalidInput(f"Bad request: {what} is required")
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise InvalidInput(f"{ERROR_INVALID_ID}: {value}")


class Storage(ABC):
    """Key-based access to the four collections. No cross-collection transactions."""

    # Users

    @abstractmethod
    def list_users(self) -> List[dict]: ...

    @abstractmethod
    def find_user(self, user_id: ObjectId) -> Optional[dict]: ...

    @abstractmethod
    def find_user_by_email(self, email: str) -> Optional[dict]: ...

    @abstractmethod
    def insert_user(self, user: User) -> ObjectId:
        """Raises DuplicateEmail when the email is taken."""

    # Products

    @abstractmethod
    def list_products(self) -> List[dict]: ...

    @abstractmethod
    def find_product(self, product_id: ObjectId) -> Optional[dict]: ...

    @abstractmethod
    def insert_product(self, product: Product) -> ObjectId: ...

    @abstractmethod
    def update_product(self, product_id: ObjectId, fields: dict) -> bool:
        """Set the given fields. Returns False if no product matched."""

    @abstractmethod
    def delete_product(self, product_id: ObjectId) -> bool: ...

    @abstractmethod
    def decrement_stock(self, product_id: ObjectId, quantity: int) -> bool:
        """
        Atomically take `quantity` units off the stock counter.

        The decrement only applies while stock >= quantity; returns False
        when it did not apply.
        """

    @abstractmethod
    def increment_stock(self, product_id: ObjectId, quantity: int) -> None: ...

    # Carts

    @abstractmethod
    def find_cart(self, user_id: ObjectId) -> Optional[dict]: ...

    @abstractmethod
    def insert_cart(self, cart: Cart) -> ObjectId: ...

    @abstractmethod
    def save_cart_lines(self, user_id: ObjectId, lines: List[dict]) -> None:
        """Replace the whole line list of the user's cart."""

    @abstractmethod
    def delete_cart(self, user_id: ObjectId) -> bool: ...

    # Orders

    @abstractmethod
    def insert_order(self, order: Order) -> ObjectId: ...

    @abstractmethod
    def list_orders(self, user_id: ObjectId) -> List[dict]: ...

    # Referential guard

    @abstractmethod
    def product_in_carts(self, product_id: ObjectId) -> bool: ...

    @abstractmethod
    def product_in_orders(self, product_id: ObjectId) -> bool: ...


class MongoStorage(Storage):
    def __init__(self, db: Database):
        self.db = db

    def ensure_indexes(self) -> None:
        self.db[USERS].create_index([("email", ASCENDING)], unique=True)
        self.db[CARTS].create_index([("user_id", ASCENDING)], unique=True)
        self.db[ORDERS].create_index([("user_id", ASCENDING)])

    def list_users(self) -> List[dict]:
        return get_documents(USERS, database=self.db)

    def find_user(self, user_id: ObjectId) -> Optional[dict]:
        return self.db[USERS].find_one({"_id": user_id})

    def find_user_by_email(self, email: str) -> Optional[dict]:
        return self.db[USERS].find_one({"email": email})

    def insert_user(self, user: User) -> ObjectId:
        try:
            return ObjectId(create_document(USERS, user, database=self.db))
        except DuplicateKeyError:
            logger.warning(f"Duplicate email on insert: {user.email}")
            raise DuplicateEmail()

    def list_products(self) -> List[dict]:
        return get_documents(PRODUCTS, database=self.db)

    def find_product(self, product_id: ObjectId) -> Optional[dict]:
        return self.db[PRODUCTS].find_one({"_id": product_id})

    def insert_product(self, product: Product) -> ObjectId:
        return ObjectId(create_document(PRODUCTS, product, database=self.db))

    def update_product(self, product_id: ObjectId, fields: dict) -> bool:
        result = self.db[PRODUCTS].update_one(
            {"_id": product_id},
            {"$set": {**fields, "updated_at": datetime.now(timezone.utc)}},
        )
        return result.matched_count > 0

    def delete_product(self, product_id: ObjectId) -> bool:
        return self.db[PRODUCTS].delete_one({"_id": product_id}).deleted_count > 0

    def decrement_stock(self, product_id: ObjectId, quantity: int) -> bool:
        result = self.db[PRODUCTS].update_one(
            {"_id": product_id, "stock": {"$gte": quantity}},
            {"$inc": {"stock": -quantity}},
        )
        return result.modified_count > 0

    def increment_stock(self, product_id: ObjectId, quantity: int) -> None:
        self.db[PRODUCTS].update_one({"_id": product_id}, {"$inc": {"stock": quantity}})

    def find_cart(self, user_id: ObjectId) -> Optional[dict]:
        return self.db[CARTS].find_one({"user_id": user_id})

    def insert_cart(self, cart: Cart) -> ObjectId:
        return ObjectId(create_document(CARTS, cart, database=self.db))

    def save_cart_lines(self, user_id: ObjectId, lines: List[dict]) -> None:
        self.db[CARTS].update_one(
            {"user_id": user_id},
            {"$set": {"products": lines, "updated_at": datetime.now(timezone.utc)}},
        )

    def delete_cart(self, user_id: ObjectId) -> bool:
        return self.db[CARTS].delete_one({"user_id": user_id}).deleted_count > 0

    def insert_order(self, order: Order) -> ObjectId:
        return ObjectId(create_document(ORDERS, order, database=self.db))

    def list_orders(self, user_id: ObjectId) -> List[dict]:
        return get_documents(ORDERS, {"user_id": user_id}, database=self.db)

    def product_in_carts(self, product_id: ObjectId) -> bool:
        return self.db[CARTS].find_one({"products.product_id": product_id}) is not None

    def product_in_orders(self, product_id: ObjectId) -> bool:
        return self.db[ORDERS].find_one({"products.product_id": product_id}) is not None
