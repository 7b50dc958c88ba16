"""
Shopping cart endpoints for authenticated customers.
"""
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from .. import auth, crud, models, schemas
from ..database import get_db

router = APIRouter(prefix="/cart", tags=["Cart"])


def _cart_response(db: Session, user_id: int) -> schemas.Cart:
    lines = []
    subtotal = Decimal("0")
    item_count = 0
    for item in crud.get_cart_items(db, user_id):
        product = item.product
        lines.append(schemas.CartLine(
            id=item.id,
            product_id=product.id,
            product_name=product.name,
            product_image=product.image_url,
            variant_name=item.variant_name,
            price=product.price,
            compare_at_price=product.compare_at_price,
            quantity=item.quantity,
            stock_quantity=product.stock_quantity,
        ))
        subtotal += Decimal(product.price) * item.quantity
        item_count += item.quantity
    return schemas.Cart(items=lines, subtotal=subtotal, item_count=item_count)


def _check_stock(product: models.Product, quantity: int) -> None:
    if quantity > product.stock_quantity:
        raise HTTPException(
            status_code=400,
            detail=f"Only {product.stock_quantity} units of '{product.name}' available",
        )


@router.get("", response_model=schemas.Cart)
def get_cart(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """Current cart with live prices and stock."""
    return _cart_response(db, current_user.id)


@router.post("", response_model=schemas.Cart, status_code=status.HTTP_201_CREATED)
def add_to_cart(
    item: schemas.CartItemCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    """
    Add a product to the cart, merging with an existing line for the same variant.

    Raises:
        HTTPException: 404 if the product is missing or inactive
        HTTPException: 400 if the merged quantity exceeds stock
    """
    product = crud.get_product(db, item.product_id)
    if product is None or not product.is_active:
        raise HTTPException(status_code=404, detail="Product not found")

    line = crud.find_cart_line(db, current_user.id, item.product_id, item.variant_name)
    quantity = item.quantity + (line.quantity if line else 0)
    _check_stock(product, quantity)

    if line:
        line.quantity = quantity
    else:
        db.add(models.CartItem(
            user_id=current_user.id,
            product_id=item.product_id,
            variant_name=item.variant_name,
            quantity=item.quantity,
        ))
    db.commit()
    return _cart_response(db, current_user.id)


@router.put("/{item_id}", response_model=schemas.Cart)
def update_cart_item(
    item_id: int,
    update: schemas.CartItemUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    line = crud.get_cart_item(db, current_user.id, item_id)
    if line is None:
        raise HTTPException(status_code=404, detail="Cart item not found")
    _check_stock(line.product, update.quantity)
    line.quantity = update.quantity
    db.commit()
    return _cart_response(db, current_user.id)


@router.delete("/{item_id}", response_model=schemas.Cart)
def remove_cart_item(
    item_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    if not crud.delete_cart_item(db, current_user.id, item_id):
        raise HTTPException(status_code=404, detail="Cart item not found")
    return _cart_response(db, current_user.id)


@router.delete("", response_model=schemas.Cart)
def clear_cart(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(auth.get_current_user)
):
    crud.clear_cart(db, current_user.id)
    db.commit()
    return _cart_response(db, current_user.id)
