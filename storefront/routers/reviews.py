"""
Product review submission.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import auth, crud, models, schemas
from ..database import get_db

router = APIRouter(prefix="/reviews", tags=["Reviews"])


@router.post("", response_model=schemas.Review, status_code=status.HTTP_201_CREATED)
def create_review(
    review: schemas.ReviewCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """
    Submit a review. Reviews are hidden until approved by staff.

    Raises:
        HTTPException: 404 if the product does not exist
        HTTPException: 400 if the user already reviewed the product
    """
    product = crud.get_product(db, review.product_id)
    if product is None or not product.is_active:
        raise HTTPException(status_code=404, detail="Product not found")
    if crud.get_user_review(db, current_user.id, review.product_id):
        raise HTTPException(status_code=400, detail="You have already reviewed this product")
    return crud.create_review(db, current_user.id, review)
