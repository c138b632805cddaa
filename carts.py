"""
Cart manager.

A cart holds at most one line per product. Each line caches its extended
price (unit price x quantity) as observed at the last mutation of that line;
later product price changes do not touch existing lines.
"""

import logging
from typing import Optional

from bson import ObjectId

from errors import (
    ERROR_CART_NOT_FOUND,
    ERROR_LINE_NOT_FOUND,
    ERROR_PRODUCT_NOT_FOUND,
    InsufficientStock,
    InvalidInput,
    NotFound,
)
from locks import UserLocks
from schemas import Cart, CartLine
from storage import Storage
from views import cart_line_view, cart_view

logger = logging.getLogger(__name__)


class CartManager:
    """
    Adds and removes cart lines against live product price and stock.

    Mutations for one user are serialized with `locks`. Without a shared
    lock (several server processes) two concurrent add_item calls can
    still lose an update, since the line list is written back whole.
    """

    def __init__(self, storage: Storage, locks: Optional[UserLocks] = None):
        self.storage = storage
        self.locks = locks or UserLocks()

    def add_item(self, user_id: ObjectId, product_id: ObjectId, quantity: int) -> dict:
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidInput("quantity must be a positive integer")

        with self.locks.hold(user_id):
            product = self.storage.find_product(product_id)
            if not product:
                raise NotFound(ERROR_PRODUCT_NOT_FOUND)

            stock = int(product.get("stock", 0))
            unit_price = float(product.get("price", 0))
            if stock < quantity:
                logger.warning(f"Rejected add of {quantity} x {product_id}: stock {stock}")
                raise InsufficientStock()

            cart = self.storage.find_cart(user_id)
            if cart is None:
                line = CartLine(product_id=product_id, quantity=quantity, price=unit_price * quantity)
                self.storage.insert_cart(Cart(user_id=user_id, products=[line]))
            else:
                lines = [dict(line) for line in cart.get("products", [])]
                existing = next((line for line in lines if line["product_id"] == product_id), None)
                if existing:
                    merged = existing["quantity"] + quantity
                    if merged > stock:
                        logger.warning(f"Rejected merge to {merged} x {product_id}: stock {stock}")
                        raise InsufficientStock()
                    existing["quantity"] = merged
                    existing["price"] = unit_price * merged
                else:
                    lines.append(
                        CartLine(product_id=product_id, quantity=quantity, price=unit_price * quantity).model_dump()
                    )
                self.storage.save_cart_lines(user_id, lines)

            refreshed = self.storage.find_cart(user_id)

        logger.info(f"Cart of {user_id}: added {quantity} x {product_id}")
        return cart_view(user_id, refreshed.get("products", []))

    def remove_item(self, user_id: ObjectId, product_id: ObjectId) -> dict:
        """Drop the line for `product_id`. An emptied cart is kept, not deleted."""
        with self.locks.hold(user_id):
            cart = self.storage.find_cart(user_id)
            if cart is None:
                raise NotFound(ERROR_CART_NOT_FOUND)

            lines = list(cart.get("products", []))
            index = next((i for i, line in enumerate(lines) if line["product_id"] == product_id), None)
            if index is None:
                raise NotFound(ERROR_LINE_NOT_FOUND)

            lines.pop(index)
            self.storage.save_cart_lines(user_id, lines)

        logger.info(f"Cart of {user_id}: removed {product_id}")
        return cart_view(user_id, lines)

    def get_cart(self, user_id: ObjectId) -> dict:
        cart = self.storage.find_cart(user_id)
        if cart is None:
            raise NotFound(ERROR_CART_NOT_FOUND)

        products = []
        for line in cart.get("products", []):
            product = self.storage.find_product(line["product_id"])
            if not product:
                # Product deleted since it was added; show the line without it
                logger.warning(f"Cart of {user_id} references missing product {line['product_id']}")
                products.append({**cart_line_view(line), "price": 0})
                continue
            # Display price follows the live product; the stored line keeps its cache
            view = cart_line_view(line, name=product.get("name"))
            view["price"] = float(product.get("price", 0)) * line["quantity"]
            products.append(view)

        return {"userId": str(user_id), "products": products}

    def clear_cart(self, user_id: ObjectId, missing_ok: bool = True) -> bool:
        with self.locks.hold(user_id):
            deleted = self.storage.delete_cart(user_id)
        if not deleted and not missing_ok:
            raise NotFound(ERROR_CART_NOT_FOUND)
        if deleted:
            logger.info(f"Cart of {user_id} emptied")
        return deleted
