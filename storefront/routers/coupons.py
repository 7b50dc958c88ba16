"""
Coupon validation for the checkout page.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from .. import crud, schemas
from ..database import get_db
from ..pricing import calculate_coupon_discount, check_coupon_usable

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/coupons", tags=["Coupons"])


@router.post("/validate", response_model=schemas.CouponValidation)
def validate_coupon(request: schemas.CouponValidateRequest, db: Session = Depends(get_db)):
    """
    Validate a coupon code against an order total without redeeming it.

    Runs the same rules as checkout: active flag, validity window, usage
    limit and minimum order amount.

    Raises:
        HTTPException: 404 if the code does not exist
        CouponError: 400 with the reason the coupon cannot be applied
    """
    coupon = crud.get_coupon_by_code(db, request.code)
    if coupon is None:
        raise HTTPException(status_code=404, detail="Invalid coupon code")

    check_coupon_usable(coupon)
    discount = calculate_coupon_discount(coupon, request.order_total)
    return schemas.CouponValidation(
        code=coupon.code,
        discount_type=coupon.discount_type,
        value=coupon.discount_value,
        discount=discount.amount,
        free_shipping=discount.free_shipping,
        description=coupon.description,
    )
