"""Pytest configuration and fixtures"""
import copy
from datetime import datetime, timezone
from typing import List, Optional

import pytest
from bson import ObjectId
from fastapi.testclient import TestClient

from errors import DuplicateEmail
from schemas import Cart, Order, Product, User
from storage import Storage


class InMemoryStorage(Storage):
    """Storage port backed by dicts, documents shaped like the Mongo ones."""

    def __init__(self):
        self.users = {}
        self.products = {}
        self.carts = {}
        self.orders = {}
        self.fail_decrement_for = set()

    def _insert(self, table: dict, doc: dict) -> ObjectId:
        oid = ObjectId()
        now = datetime.now(timezone.utc)
        table[oid] = {"_id": oid, **copy.deepcopy(doc), "created_at": now, "updated_at": now}
        return oid

    def list_users(self) -> List[dict]:
        return [copy.deepcopy(u) for u in self.users.values()]

    def find_user(self, user_id: ObjectId) -> Optional[dict]:
        return copy.deepcopy(self.users.get(user_id))

    def find_user_by_email(self, email: str) -> Optional[dict]:
        return next((copy.deepcopy(u) for u in self.users.values() if u["email"] == email), None)

    def insert_user(self, user: User) -> ObjectId:
        if self.find_user_by_email(user.email):
            raise DuplicateEmail()
        return self._insert(self.users, user.model_dump())

    def list_products(self) -> List[dict]:
        return [copy.deepcopy(p) for p in self.products.values()]

    def find_product(self, product_id: ObjectId) -> Optional[dict]:
        return copy.deepcopy(self.products.get(product_id))

    def insert_product(self, product: Product) -> ObjectId:
        return self._insert(self.products, product.model_dump())

    def update_product(self, product_id: ObjectId, fields: dict) -> bool:
        if product_id not in self.products:
            return False
        self.products[product_id].update(fields)
        return True

    def delete_product(self, product_id: ObjectId) -> bool:
        return self.products.pop(product_id, None) is not None

    def decrement_stock(self, product_id: ObjectId, quantity: int) -> bool:
        product = self.products.get(product_id)
        if product is None or product_id in self.fail_decrement_for or product["stock"] < quantity:
            return False
        product["stock"] -= quantity
        return True

    def increment_stock(self, product_id: ObjectId, quantity: int) -> None:
        if product_id in self.products:
            self.products[product_id]["stock"] += quantity

    def find_cart(self, user_id: ObjectId) -> Optional[dict]:
        return copy.deepcopy(self.carts.get(user_id))

    def insert_cart(self, cart: Cart) -> ObjectId:
        oid = ObjectId()
        self.carts[cart.user_id] = {"_id": oid, **copy.deepcopy(cart.model_dump())}
        return oid

    def save_cart_lines(self, user_id: ObjectId, lines: List[dict]) -> None:
        if user_id in self.carts:
            self.carts[user_id]["products"] = copy.deepcopy(lines)

    def delete_cart(self, user_id: ObjectId) -> bool:
        return self.carts.pop(user_id, None) is not None

    def insert_order(self, order: Order) -> ObjectId:
        return self._insert(self.orders, order.model_dump())

    def list_orders(self, user_id: ObjectId) -> List[dict]:
        return [copy.deepcopy(o) for o in self.orders.values() if o["user_id"] == user_id]

    def product_in_carts(self, product_id: ObjectId) -> bool:
        return any(line["product_id"] == product_id for c in self.carts.values() for line in c["products"])

    def product_in_orders(self, product_id: ObjectId) -> bool:
        return any(line["product_id"] == product_id for o in self.orders.values() for line in o["products"])


@pytest.fixture
def storage():
    """Empty in-memory storage"""
    return InMemoryStorage()


@pytest.fixture
def user_id(storage):
    """A registered user"""
    return storage.insert_user(User(name="Lucia", email="lucia@example.com", password_hash="x"))


@pytest.fixture
def make_product(storage):
    """Factory inserting a product and returning its id"""
    def _make(name="Widget", price=10.0, stock=5, description=""):
        return storage.insert_product(Product(name=name, price=price, stock=stock, description=description))
    return _make


@pytest.fixture
def client(storage):
    """Test client with the storage dependency pointed at memory"""
    from main import app, get_storage

    app.dependency_overrides[get_storage] = lambda: storage
    yield TestClient(app)
    app.dependency_overrides.clear()
