"""Custom exceptions for the Storefront service."""


class StorefrontError(Exception):
    """Base exception for all storefront business-rule errors."""

    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(StorefrontError):
    """Raised when a referenced record does not exist or is not visible."""

    status_code = 404

    def __init__(self, resource: str, identifier=None):
        self.resource = resource
        self.identifier = identifier
        super().__init__(f"{resource} not found")


class CheckoutError(StorefrontError):
    """Raised when a checkout request fails validation."""


class InsufficientStockError(CheckoutError):
    """Raised when a product cannot cover the requested quantity."""

    def __init__(self, product_name: str, available: int, requested: int):
        self.product_name = product_name
        self.available = available
        self.requested = requested
        super().__init__(
            f"Insufficient stock for '{product_name}'. Available: {available}, Requested: {requested}"
        )


class CouponError(StorefrontError):
    """Raised when a coupon cannot be applied."""


class InvalidStatusTransitionError(StorefrontError):
    """Raised when an order or appointment cannot move to the requested status."""

    def __init__(self, old_status: str, new_status: str):
        self.old_status = old_status
        self.new_status = new_status
        super().__init__(f"Invalid status transition: {old_status} -> {new_status}")


class BookingError(StorefrontError):
    """Raised when an appointment cannot be booked."""
