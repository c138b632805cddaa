"""
Checkout engine: turns a user's cart into an order.

Flow, in cart insertion order:
1. the cart must exist and hold at least one line
2. every line is priced from the live product and checked against stock
3. stock is taken off line by line with a conditional decrement
4. the order is stored
5. the cart is deleted

Steps 1-2 have no side effects. Step 3 is not atomic across lines: if a
decrement does not apply (stock drained by a concurrent checkout after
step 2), the lines already taken are put back and nothing else happens.
A crash between steps 3 and 5 still leaves stock reduced with no order.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId

from errors import ERROR_PRODUCT_NOT_FOUND, EmptyCart, InsufficientStock, NotFound
from locks import UserLocks
from schemas import Order, OrderLine
from storage import Storage
from views import order_view

logger = logging.getLogger(__name__)


class CheckoutEngine:
    def __init__(self, storage: Storage, locks: Optional[UserLocks] = None):
        self.storage = storage
        self.locks = locks or UserLocks()

    def checkout(self, user_id: ObjectId) -> dict:
        with self.locks.hold(user_id):
            cart = self.storage.find_cart(user_id)
            if not cart or not cart.get("products"):
                raise EmptyCart()

            lines, total = self._price_lines(cart["products"])
            self._commit_stock(lines)

            order = Order(user_id=user_id, products=lines, total=total, order_date=datetime.now(timezone.utc))
            order_id = self.storage.insert_order(order)
            self.storage.delete_cart(user_id)

        logger.info(f"Order {order_id} placed by {user_id}: {len(lines)} lines, total {total}")
        return order_view({"_id": order_id, **order.model_dump()})

    def _price_lines(self, cart_lines: List[dict]):
        total = 0.0
        lines: List[OrderLine] = []
        for cart_line in cart_lines:
            product = self.storage.find_product(cart_line["product_id"])
            if not product:
                raise NotFound(f"{ERROR_PRODUCT_NOT_FOUND}: {cart_line['product_id']}")

            quantity = cart_line["quantity"]
            if int(product.get("stock", 0)) < quantity:
                logger.warning(f"Checkout rejected: {product['_id']} has {product.get('stock', 0)}, needs {quantity}")
                raise InsufficientStock(f"Insufficient stock for product {product.get('name')}")

            price = float(product.get("price", 0)) * quantity
            total += price
            lines.append(OrderLine(product_id=product["_id"], name=product.get("name", ""), quantity=quantity, price=price))
        return lines, total

    def _commit_stock(self, lines: List[OrderLine]) -> None:
        taken: List[OrderLine] = []
        for line in lines:
            if not self.storage.decrement_stock(line.product_id, line.quantity):
                for done in taken:
                    self.storage.increment_stock(done.product_id, done.quantity)
                logger.warning(f"Stock for {line.product_id} changed during checkout; restored {len(taken)} lines")
                raise InsufficientStock(f"Insufficient stock for product {line.name}")
            taken.append(line)
