"""
Order placement and fulfilment.

`place_order` turns a checkout request into a persisted order. Every write it
makes (order, line items, status history, coupon counter, stock, reward
ledger, cart) goes through one session and is committed once, so a failure
at any step leaves no partial order behind.

`change_order_status` applies a status transition together with its side
effects (timestamps, history, restock and point refund on cancellation,
point award on delivery), also as a single commit.
"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from . import cache, crud, models, schemas, validators
from .errors import (
    CheckoutError, CouponError, InsufficientStockError, InvalidStatusTransitionError, NotFoundError,
)
from .models import OrderStatus, RewardType
from .pricing import (
    calculate_coupon_discount, calculate_totals, check_coupon_usable, classify_tier,
    generate_order_number, points_earned, redeem_points, shipping_quote, ZERO,
)

logger = logging.getLogger(__name__)

ORDER_NUMBER_ATTEMPTS = 5
DEFAULT_ITEM_WEIGHT_KG = Decimal("1")


def _unique_order_number(db: Session) -> str:
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        order_number = generate_order_number()
        if not crud.order_number_exists(db, order_number):
            return order_number
    raise CheckoutError("Could not allocate an order number, please retry")


def _apply_coupon(db: Session, user: models.User, code: str, subtotal: Decimal):
    coupon = crud.get_coupon_by_code(db, code)
    if coupon is None:
        raise CouponError("Invalid coupon code")
    check_coupon_usable(coupon)
    if coupon.per_user_limit is not None:
        if crud.count_user_coupon_uses(db, user.id, coupon.id) >= coupon.per_user_limit:
            raise CouponError("You have already used this coupon")
    return coupon, calculate_coupon_discount(coupon, subtotal)


def place_order(db: Session, user: models.User, request: schemas.CheckoutRequest) -> models.Order:
    """
    Price, persist and commit an order for an authenticated customer.

    Args:
        db: Database session
        user: Customer placing the order
        request: Checkout payload

    Returns:
        The committed order with items and status history loaded

    Raises:
        CheckoutError: empty cart, unavailable products, insufficient stock
        CouponError: the coupon cannot be applied
        NotFoundError: unknown shipping zone
    """
    is_valid, error_message = validators.validate_checkout_items(request.items)
    if not is_valid:
        raise CheckoutError(error_message)

    product_ids = {item.product_id for item in request.items}
    products = {
        p.id: p for p in db.query(models.Product).filter(
            models.Product.id.in_(product_ids), models.Product.is_active.is_(True)
        ).all()
    }
    if len(products) != len(product_ids):
        raise CheckoutError("Some products are no longer available")

    subtotal = ZERO
    weight = ZERO
    for item in request.items:
        product = products[item.product_id]
        if product.stock_quantity < item.quantity:
            raise InsufficientStockError(product.name, product.stock_quantity, item.quantity)
        subtotal += Decimal(product.price) * item.quantity
        weight += Decimal(product.weight_kg or DEFAULT_ITEM_WEIGHT_KG) * item.quantity

    coupon = None
    discount = ZERO
    free_shipping = False
    if request.coupon_code:
        coupon, coupon_discount = _apply_coupon(db, user, request.coupon_code, subtotal)
        discount, free_shipping = coupon_discount.amount, coupon_discount.free_shipping

    points_discount, points_used = ZERO, 0
    if request.use_reward_points:
        balance = crud.get_reward_balance(db, user.id)
        points_discount, points_used = redeem_points(balance, subtotal - discount)

    zone = None
    shipping_cost = Decimal(request.shipping_cost)
    if request.shipping_zone_id is not None:
        zone = crud.get_shipping_zone(db, request.shipping_zone_id)
        if zone is None:
            raise NotFoundError("Shipping zone", request.shipping_zone_id)
        shipping_cost = shipping_quote(zone, weight)
    if free_shipping:
        shipping_cost = ZERO

    totals = calculate_totals(subtotal, discount, points_discount, points_used, shipping_cost)

    try:
        order = models.Order(
            order_number=_unique_order_number(db),
            user_id=user.id,
            email=request.email or user.email,
            phone=request.phone or user.phone,
            status=OrderStatus.PENDING.value,
            subtotal=totals.subtotal,
            discount_amount=totals.discount,
            points_used=totals.points_used,
            points_discount=totals.points_discount,
            tax_amount=totals.tax,
            shipping_cost=totals.shipping_cost,
            total_amount=totals.total,
            shipping_method=request.shipping_method,
            payment_method=request.payment_method,
            notes=request.notes,
            shipping_address=request.shipping_address.model_dump() if request.shipping_address else None,
            shipping_zone_id=zone.id if zone else None,
            coupon_id=coupon.id if coupon else None,
            coupon_code=coupon.code if coupon else None,
            estimated_delivery=zone.estimated_days if zone else None,
        )
        for item in request.items:
            product = products[item.product_id]
            order.items.append(models.OrderItem(
                product_id=product.id,
                product_name=product.name,
                product_sku=product.sku,
                product_image=item.image or product.image_url,
                variant_name=item.variant_name,
                price=product.price,
                quantity=item.quantity,
                total=Decimal(product.price) * item.quantity,
            ))
        db.add(order)
        db.flush()
        crud.add_status_history(db, order.id, OrderStatus.PENDING.value, "Order placed", created_by=user.id)

        if coupon is not None and not crud.claim_coupon_use(db, coupon.id):
            raise CouponError("This coupon has reached its usage limit")

        for item in request.items:
            if not crud.decrement_stock(db, item.product_id, item.quantity):
                product = products[item.product_id]
                db.refresh(product)
                raise InsufficientStockError(product.name, product.stock_quantity, item.quantity)

        if totals.points_used:
            crud.add_reward_entry(
                db, user.id, -totals.points_used, RewardType.REDEEMED.value,
                f"Redeemed for order {order.order_number}", order_id=order.id,
            )

        crud.clear_cart(db, user.id)
        db.commit()
    except Exception:
        db.rollback()
        raise

    # Stock and sold counts changed
    cache.delete_pattern("product:*")
    logger.info(f"Order {order.order_number} placed by user {user.id}: total {totals.total}")
    return crud.get_order(db, order.id)


def _refund_redeemed_points(db: Session, order: models.Order) -> None:
    redeemed = crud.get_order_reward_entries(db, order.id, RewardType.REDEEMED.value)
    points = -sum(entry.points for entry in redeemed)
    if points > 0:
        crud.add_reward_entry(
            db, order.user_id, points, RewardType.REFUNDED.value,
            f"Refunded for cancelled order {order.order_number}", order_id=order.id,
        )


def _award_purchase_points(db: Session, order: models.Order) -> int:
    if crud.get_order_reward_entries(db, order.id, RewardType.EARNED_PURCHASE.value):
        return 0
    balance = crud.get_reward_balance(db, order.user_id)
    tier, _ = classify_tier(crud.get_active_tiers(db), balance)
    multiplier = tier.points_multiplier if tier else Decimal("1")
    points = points_earned(order.total_amount, multiplier)
    if points > 0:
        crud.add_reward_entry(
            db, order.user_id, points, RewardType.EARNED_PURCHASE.value,
            f"Earned from order {order.order_number}", order_id=order.id,
        )
    return points


def change_order_status(
    db: Session,
    order: models.Order,
    new_status: str,
    actor_id: Optional[int] = None,
    note: Optional[str] = None,
    tracking_number: Optional[str] = None,
) -> models.Order:
    """
    Move an order to a new status and apply the transition's side effects.

    Args:
        db: Database session
        order: Order to update
        new_status: Target status
        actor_id: User making the change
        note: History note; defaults to a description of the change
        tracking_number: Carrier tracking number to record

    Returns:
        The refreshed order

    Raises:
        InvalidStatusTransitionError: the transition is not allowed
    """
    old_status = order.status
    is_valid, _ = validators.validate_order_status_transition(old_status, new_status)
    if not is_valid or old_status == new_status:
        raise InvalidStatusTransitionError(old_status, new_status)

    now = datetime.utcnow()
    try:
        order.status = new_status
        if tracking_number:
            order.tracking_number = tracking_number
        if new_status == OrderStatus.PROCESSING.value:
            order.processed_at = now
        elif new_status == OrderStatus.SHIPPED.value:
            order.shipped_at = now
        elif new_status == OrderStatus.DELIVERED.value:
            order.delivered_at = now
        elif new_status == OrderStatus.CANCELLED.value:
            order.cancelled_at = now
            for item in order.items:
                if item.product_id is not None:
                    crud.restock(db, item.product_id, item.quantity)
            _refund_redeemed_points(db, order)

        if new_status == OrderStatus.DELIVERED.value:
            awarded = _award_purchase_points(db, order)
            if awarded:
                logger.info(f"Awarded {awarded} points to user {order.user_id} for order {order.order_number}")

        crud.add_status_history(
            db, order.id, new_status,
            note or f"Status changed from {old_status} to {new_status}",
            created_by=actor_id,
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    if new_status == OrderStatus.CANCELLED.value:
        cache.delete_pattern("product:*")
    logger.info(f"Order {order.order_number} status changed: {old_status} -> {new_status}")
    db.expire(order)
    return crud.get_order(db, order.id)


def cancel_order(db: Session, order: models.Order, user: models.User) -> models.Order:
    """Customer-initiated cancellation, allowed only before processing starts."""
    if order.status not in validators.CUSTOMER_CANCELLABLE:
        raise CheckoutError(f"Order cannot be cancelled once it is {order.status}")
    return change_order_status(db, order, OrderStatus.CANCELLED.value, actor_id=user.id,
                               note="Cancelled by customer")
