"""
Shop errors.

Every error carries the HTTP status it maps to; main.py turns them into
`{"detail": message}` responses.
"""

# Messages
ERROR_INVALID_ID = "Invalid id"
ERROR_USER_NOT_FOUND = "User not found"
ERROR_PRODUCT_NOT_FOUND = "Product not found"
ERROR_CART_NOT_FOUND = "Cart not found"
ERROR_LINE_NOT_FOUND = "Product not found in cart"
ERROR_EMPTY_CART = "Cart is empty or not found"
ERROR_NO_ORDERS = "No orders found for this user"
ERROR_EMAIL_EXISTS = "Email already exists"
ERROR_INSUFFICIENT_STOCK = "Insufficient stock"
ERROR_INTERNAL = "Internal server error"


class ShopError(Exception):
    status_code = 500

    def __init__(self, message: str = ERROR_INTERNAL):
        super().__init__(message)
        self.message = message


class InvalidInput(ShopError):
    status_code = 400


class NotFound(ShopError):
    status_code = 404


class EmptyCart(NotFound):
    def __init__(self, message: str = ERROR_EMPTY_CART):
        super().__init__(message)


class Conflict(ShopError):
    status_code = 409


class InsufficientStock(Conflict):
    def __init__(self, message: str = ERROR_INSUFFICIENT_STOCK):
        super().__init__(message)


class DuplicateEmail(Conflict):
    def __init__(self, message: str = ERROR_EMAIL_EXISTS):
        super().__init__(message)


class ProductInUse(Conflict):
    pass
