"""
Customer order endpoints: checkout, order history, cancellation and public tracking.
"""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import auth, checkout, crud, models, notifications, schemas
from ..database import get_db
from ..errors import StorefrontError
from ..models import OrderStatus

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Orders"])


@router.post("/orders", response_model=schemas.Order, status_code=status.HTTP_201_CREATED)
def create_order(
    request: schemas.CheckoutRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """
    Place an order (authenticated customers only).

    This endpoint:
    - Validates the items and checks stock
    - Applies an optional coupon and reward-point redemption
    - Computes tax, shipping and totals
    - Persists the order, takes stock and clears the cart in one transaction
    - Sends the in-app notification and a confirmation email after commit

    Args:
        request: Checkout data
        background_tasks: Scheduler for the confirmation email (injected)
        db: Database session (injected)
        current_user: Current authenticated user (injected)

    Returns:
        Created order object

    Raises:
        HTTPException: 400 if validation fails (empty cart, stock, coupon)
        HTTPException: 401 if not authenticated
        HTTPException: 500 if the order could not be stored
    """
    try:
        order = checkout.place_order(db, current_user, request)
    except StorefrontError:
        raise
    except Exception:
        logger.exception(f"Checkout failed for user {current_user.id}")
        raise HTTPException(status_code=500, detail="Failed to create order")

    notifications.create_order_notification(
        db, current_user.id, order.order_number, order.status, order.id
    )
    background_tasks.add_task(
        notifications.send_order_confirmation,
        notifications.order_email_payload(order, current_user.full_name),
    )
    return order


@router.get("/orders", response_model=schemas.OrderList)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """List the current user's orders, newest first."""
    orders, total = crud.get_orders(
        db,
        skip=(page - 1) * limit,
        limit=limit,
        user_id=current_user.id,
        status=status.value if status else None,
    )
    return schemas.OrderList(
        data=[schemas.Order.model_validate(o) for o in orders],
        pagination=schemas.Pagination.build(page, limit, total),
    )


@router.get("/orders/{order_ref}", response_model=schemas.Order)
def get_order(
    order_ref: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """
    Get one of the current user's orders by ID or order number.

    Raises:
        HTTPException: 404 if not found or owned by someone else
    """
    order = crud.get_order_by_ref(db, order_ref, user_id=current_user.id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.post("/orders/{order_ref}/cancel", response_model=schemas.Order)
def cancel_order(
    order_ref: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """
    Cancel one of the current user's orders while it is PENDING or CONFIRMED.

    Stock is returned and redeemed points are re-credited.
    """
    order = crud.get_order_by_ref(db, order_ref, user_id=current_user.id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    order = checkout.cancel_order(db, order, current_user)
    notifications.notify_order_status(db, background_tasks, order)
    return order


@router.get("/track", response_model=schemas.TrackingInfo)
def track_order(order_number: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """
    Public order tracking by order number.

    Returns status, dates, shipping method, tracking number and status history,
    without customer or pricing details.
    """
    order = crud.get_order_by_number(db, order_number.strip().upper())
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return schemas.TrackingInfo(
        order_number=order.order_number,
        status=order.status,
        created_at=order.created_at,
        estimated_delivery=order.estimated_delivery,
        tracking_number=order.tracking_number,
        shipping_method=order.shipping_method,
        status_history=[schemas.TrackingHistory.model_validate(h) for h in order.status_history],
    )
