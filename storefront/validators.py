"""
Business-rule validation utilities for the Storefront service.

Provides validation beyond schema validation. Each validator returns a
(is_valid, error_message) tuple.
"""
from typing import List, Optional, Tuple
from decimal import Decimal
from datetime import datetime
from . import schemas
from .models import OrderStatus, AppointmentStatus, DiscountType

MAX_ORDER_LINES = 100
MAX_LINE_QUANTITY = 1000

# Allowed order status transitions
ORDER_TRANSITIONS = {
    OrderStatus.PENDING.value: {
        OrderStatus.CONFIRMED.value, OrderStatus.PROCESSING.value, OrderStatus.CANCELLED.value,
    },
    OrderStatus.CONFIRMED.value: {OrderStatus.PROCESSING.value, OrderStatus.CANCELLED.value},
    OrderStatus.PROCESSING.value: {OrderStatus.SHIPPED.value, OrderStatus.CANCELLED.value},
    OrderStatus.SHIPPED.value: {OrderStatus.OUT_FOR_DELIVERY.value, OrderStatus.DELIVERED.value},
    OrderStatus.OUT_FOR_DELIVERY.value: {OrderStatus.DELIVERED.value},
    OrderStatus.DELIVERED.value: {OrderStatus.REFUNDED.value},
    OrderStatus.CANCELLED.value: set(),  # Terminal state
    OrderStatus.REFUNDED.value: set(),  # Terminal state
}

# Statuses a customer may still cancel from
CUSTOMER_CANCELLABLE = {OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value}

APPOINTMENT_TRANSITIONS = {
    AppointmentStatus.PENDING.value: {
        AppointmentStatus.CONFIRMED.value, AppointmentStatus.CANCELLED.value,
    },
    AppointmentStatus.CONFIRMED.value: {
        AppointmentStatus.COMPLETED.value, AppointmentStatus.CANCELLED.value, AppointmentStatus.NO_SHOW.value,
    },
    AppointmentStatus.COMPLETED.value: set(),
    AppointmentStatus.CANCELLED.value: set(),
    AppointmentStatus.NO_SHOW.value: set(),
}


def validate_checkout_items(items: List[schemas.CheckoutItem]) -> Tuple[bool, str]:
    """
    Validate checkout lines for business rules.

    Args:
        items: List of checkout lines

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not items:
        return False, "Cart is empty"

    if len(items) > MAX_ORDER_LINES:
        return False, f"Order cannot contain more than {MAX_ORDER_LINES} items"

    # The same product/variant must be submitted as a single line
    keys = [(item.product_id, item.variant_name) for item in items]
    if len(keys) != len(set(keys)):
        return False, "Order contains duplicate products"

    for item in items:
        if item.quantity <= 0:
            return False, f"Product {item.product_id}: quantity must be positive"

        if item.quantity > MAX_LINE_QUANTITY:
            return False, f"Product {item.product_id}: quantity exceeds maximum ({MAX_LINE_QUANTITY})"

    return True, ""


def _validate_transition(transitions: dict, old_status: str, new_status: str) -> Tuple[bool, str]:
    if old_status not in transitions:
        return False, f"Unknown status: {old_status}"

    if new_status not in transitions:
        return False, f"Unknown status: {new_status}"

    if old_status == new_status:
        return True, ""  # No change is valid

    if new_status not in transitions[old_status]:
        return False, f"Invalid status transition: {old_status} -> {new_status}"

    return True, ""


def validate_order_status_transition(old_status: str, new_status: str) -> Tuple[bool, str]:
    """
    Validate that an order status transition is allowed.

    Args:
        old_status: Current order status
        new_status: Requested order status

    Returns:
        Tuple of (is_valid, error_message)
    """
    return _validate_transition(ORDER_TRANSITIONS, old_status, new_status)


def validate_appointment_status_transition(old_status: str, new_status: str) -> Tuple[bool, str]:
    """Validate that an appointment status transition is allowed."""
    return _validate_transition(APPOINTMENT_TRANSITIONS, old_status, new_status)


def validate_coupon_definition(
    discount_type: str,
    discount_value: Decimal,
    start_date: Optional[datetime],
    end_date: Optional[datetime],
) -> Tuple[bool, str]:
    """
    Validate a coupon definition submitted from the back-office.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if discount_type == DiscountType.PERCENTAGE.value:
        if discount_value <= 0 or discount_value > 100:
            return False, "Percentage discount must be between 0 and 100"
    elif discount_type == DiscountType.FIXED_AMOUNT.value:
        if discount_value <= 0:
            return False, "Fixed discount must be greater than zero"

    if start_date and end_date and end_date < start_date:
        return False, "End date must be after start date"

    return True, ""
