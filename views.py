"""
Document -> JSON views.

Storage documents use snake_case keys and ObjectIds; the HTTP surface uses
camelCase keys and hex id strings.
"""

from datetime import datetime
from typing import Optional


def user_view(doc: dict) -> dict:
    return {"id": str(doc["_id"]), "name": doc.get("name"), "email": doc.get("email")}


def product_view(doc: dict) -> dict:
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "description": doc.get("description", ""),
        "price": float(doc.get("price", 0)),
        "stock": int(doc.get("stock", 0)),
    }


def cart_line_view(line: dict, name: Optional[str] = None) -> dict:
    view = {
        "productId": str(line["product_id"]),
        "quantity": line["quantity"],
        "price": line["price"],
    }
    if name is not None:
        view["name"] = name
    return view


def cart_view(user_id, lines: list) -> dict:
    return {"userId": str(user_id), "products": [cart_line_view(line) for line in lines]}


def order_view(doc: dict) -> dict:
    order_date = doc.get("order_date")
    return {
        "orderId": str(doc["_id"]),
        "userId": str(doc["user_id"]),
        "products": [
            {
                "productId": str(line["product_id"]),
                "name": line.get("name"),
                "quantity": line["quantity"],
                "price": line["price"],
            }
            for line in doc.get("products", [])
        ],
        "total": doc["total"],
        "orderDate": order_date.isoformat() if isinstance(order_date, datetime) else order_date,
    }
