"""
Typed application failures.

Services raise these; the handlers registered in `storefront.main`
translate them into JSON responses of the form {"message": ...}.
"""

from fastapi import status


class AppError(Exception):
    """Base class for failures that map onto an HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message: str = "Server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


# ---- 400: malformed input ----


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid input"


# ---- 401 / 403 ----


class Unauthenticated(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Access token required"


class Forbidden(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Forbidden"


# ---- 404 ----


class NotFound(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class ProductNotFound(NotFound):
    default_message = "Product not found"


class CartNotFound(NotFound):
    default_message = "Cart not found"


class ItemNotFound(NotFound):
    default_message = "Item not found in cart"


class OrderNotFound(NotFound):
    default_message = "Order not found"


# ---- 400: business-rule violations ----


class Conflict(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request conflicts with current state"


class InsufficientStock(Conflict):
    default_message = "Insufficient stock"


class OutOfStock(Conflict):
    default_message = "Not enough stock"


class ProductUnavailable(Conflict):
    default_message = "Product is archived"


class EmptyCart(Conflict):
    default_message = "Cart is empty"
