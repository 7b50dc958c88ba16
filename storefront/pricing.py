"""
Order pricing rules.

Coupon evaluation, reward-point redemption, tax, shipping quotes, reward
tier classification and human-readable order/appointment numbers. These
functions are free of database access so the checkout and the public
coupon/shipping endpoints share exactly the same arithmetic.
"""
import random
import string
import time
from collections import namedtuple
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP, ROUND_CEILING, ROUND_FLOOR
from typing import List, Optional, Tuple

from . import models
from .config import (
    CURRENCY, TAX_RATE, POINTS_REDEMPTION_BLOCK, POINTS_BLOCK_VALUE, POINT_VALUE, POINTS_EARN_UNIT
)
from .errors import CouponError
from .models import DiscountType

BASE36_ALPHABET = string.digits + string.ascii_uppercase

CouponDiscount = namedtuple("CouponDiscount", ["amount", "free_shipping"])
OrderTotals = namedtuple(
    "OrderTotals",
    ["subtotal", "discount", "points_discount", "points_used", "tax", "shipping_cost", "total"],
)

ZERO = Decimal("0")


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(BASE36_ALPHABET[rem])
    return "".join(reversed(digits))


def _random_suffix(length: int) -> str:
    return "".join(random.choice(BASE36_ALPHABET) for _ in range(length))


def generate_order_number() -> str:
    """
    Generate a human-readable order number such as "CHK-LZ3K2A1B-4F9Q".

    Timestamp plus random suffix; uniqueness is enforced by the database.
    """
    timestamp = to_base36(int(time.time() * 1000))
    return f"CHK-{timestamp}-{_random_suffix(4)}"


def generate_appointment_number() -> str:
    timestamp = to_base36(int(time.time() * 1000))
    return f"APT-{timestamp}-{_random_suffix(2)}"


def round_currency(amount: Decimal) -> Decimal:
    """Round to the nearest whole currency unit, halves away from zero."""
    return Decimal(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal) -> str:
    return f"{CURRENCY} {Decimal(amount):,.0f}"


def check_coupon_usable(coupon: models.Coupon, now: Optional[datetime] = None) -> None:
    """
    Check the coupon's active flag, validity window and total usage limit.

    Raises:
        CouponError: with a customer-facing reason
    """
    now = now or datetime.utcnow()
    if not coupon.is_active:
        raise CouponError("This coupon is no longer active")
    if coupon.start_date and coupon.start_date > now:
        raise CouponError("This coupon is not yet active")
    if coupon.end_date and coupon.end_date < now:
        raise CouponError("This coupon has expired")
    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        raise CouponError("This coupon has reached its usage limit")


def calculate_coupon_discount(coupon: models.Coupon, subtotal: Decimal) -> CouponDiscount:
    """
    Compute the discount a coupon grants on a subtotal.

    PERCENTAGE discounts are the exact share of the subtotal, clamped to the
    coupon's maximum discount when one is set. FIXED_AMOUNT discounts never
    exceed the subtotal. FREE_SHIPPING grants no monetary discount but waives
    shipping.

    Args:
        coupon: Coupon to apply
        subtotal: Order subtotal before any discount

    Returns:
        CouponDiscount(amount, free_shipping)

    Raises:
        CouponError: if the subtotal is below the coupon's minimum order amount
    """
    subtotal = Decimal(subtotal)
    if coupon.min_order_amount is not None and subtotal < coupon.min_order_amount:
        raise CouponError(f"Minimum order amount is {format_amount(coupon.min_order_amount)}")

    value = Decimal(coupon.discount_value)
    if coupon.discount_type == DiscountType.PERCENTAGE.value:
        discount = subtotal * value * Decimal("0.01")
        if coupon.max_discount_amount is not None and discount > coupon.max_discount_amount:
            discount = Decimal(coupon.max_discount_amount)
        return CouponDiscount(discount, False)

    if coupon.discount_type == DiscountType.FIXED_AMOUNT.value:
        return CouponDiscount(min(value, subtotal), False)

    if coupon.discount_type == DiscountType.FREE_SHIPPING.value:
        return CouponDiscount(ZERO, True)

    raise CouponError(f"Unsupported discount type: {coupon.discount_type}")


def redeem_points(available_points: int, remaining_payable: Decimal) -> Tuple[Decimal, int]:
    """
    Convert a point balance into a currency discount.

    Points redeem in blocks of POINTS_REDEMPTION_BLOCK, each worth
    POINTS_BLOCK_VALUE. The discount is capped at the remaining payable amount
    and the points consumed are rounded up.

    Returns:
        Tuple of (points_discount, points_used)
    """
    remaining_payable = max(Decimal(remaining_payable), ZERO)
    if available_points <= 0 or remaining_payable == 0:
        return ZERO, 0

    max_points_discount = (available_points // POINTS_REDEMPTION_BLOCK) * POINTS_BLOCK_VALUE
    points_discount = min(Decimal(max_points_discount), remaining_payable)
    points_used = int((points_discount / POINT_VALUE).to_integral_value(rounding=ROUND_CEILING))
    return points_discount, points_used


def calculate_tax(taxable_amount: Decimal) -> Decimal:
    """Flat-rate VAT on the discounted subtotal, rounded to whole units."""
    return round_currency(max(Decimal(taxable_amount), ZERO) * TAX_RATE)


def calculate_totals(
    subtotal: Decimal,
    discount: Decimal = ZERO,
    points_discount: Decimal = ZERO,
    points_used: int = 0,
    shipping_cost: Decimal = ZERO,
) -> OrderTotals:
    """
    Combine the pricing components into order totals.

    total = subtotal - discount - points_discount + shipping_cost + tax
    """
    subtotal = Decimal(subtotal)
    tax = calculate_tax(subtotal - discount - points_discount)
    total = subtotal - discount - points_discount + Decimal(shipping_cost) + tax
    return OrderTotals(subtotal, Decimal(discount), Decimal(points_discount), points_used, tax,
                       Decimal(shipping_cost), total)


def shipping_quote(zone: models.ShippingZone, weight_kg: Decimal) -> Decimal:
    """Shipping cost for a zone: base fee plus per-kg fee, rounded to whole units."""
    return round_currency(Decimal(zone.base_fee) + Decimal(zone.per_kg_fee) * Decimal(weight_kg))


def points_earned(order_total: Decimal, multiplier: Decimal = Decimal("1")) -> int:
    """Points earned for a delivered order: 1 per POINTS_EARN_UNIT, scaled by tier."""
    raw = Decimal(order_total) / POINTS_EARN_UNIT * Decimal(multiplier)
    return int(raw.to_integral_value(rounding=ROUND_FLOOR))


def classify_tier(
    tiers: List[models.RewardTier], balance: int
) -> Tuple[Optional[models.RewardTier], Optional[models.RewardTier]]:
    """
    Locate the tier band containing a point balance.

    Args:
        tiers: Active tiers, any order
        balance: Current point balance

    Returns:
        Tuple of (current_tier, next_tier); either may be None
    """
    current, upcoming = None, None
    for tier in sorted(tiers, key=lambda t: t.min_points):
        if balance >= tier.min_points:
            current = tier
        elif upcoming is None:
            upcoming = tier
    return current, upcoming
