"""
Public catalog endpoints: products, categories, brands and product reviews.
"""
import logging
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .. import cache, crud, schemas
from ..database import get_db

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Catalog"])


@router.get("/products", response_model=schemas.ProductList)
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(12, ge=1, le=100),
    category: Optional[str] = None,
    brand: Optional[str] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    search: Optional[str] = None,
    featured: Optional[bool] = None,
    new: Optional[bool] = None,
    on_sale: Optional[bool] = None,
    bestseller: Optional[bool] = None,
    sort_by: str = Query("created_at", pattern="^(created_at|price|name|popularity)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
):
    """
    List active products with filtering, sorting and pagination.

    Args:
        page: 1-based page number
        limit: Page size (max 100)
        category: Category slug
        brand: Brand slug
        min_price, max_price: Price bounds
        search: Matched against name and description
        featured, new, on_sale, bestseller: Merchandising flags
        sort_by: created_at, price, name or popularity
        sort_order: asc or desc

    Returns:
        Page of products with pagination metadata
    """
    products, total = crud.get_products(
        db,
        skip=(page - 1) * limit,
        limit=limit,
        category=category,
        brand=brand,
        min_price=min_price,
        max_price=max_price,
        search=search,
        featured=featured,
        new=new,
        on_sale=on_sale,
        bestseller=bestseller,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return schemas.ProductList(
        data=[schemas.Product.model_validate(p) for p in products],
        pagination=schemas.Pagination.build(page, limit, total),
    )


@router.get("/products/{product_ref}", response_model=schemas.ProductDetail)
def get_product(product_ref: str, db: Session = Depends(get_db)):
    """
    Get a product by ID or slug, with its rating summary.

    Uses Redis cache to reduce database queries.

    Raises:
        HTTPException: 404 if the product is missing or inactive
    """
    cache_key = cache.product_key(product_ref)
    cached = cache.get_cache(cache_key)
    if cached:
        return cached

    product = crud.get_product_by_ref(db, product_ref)
    if product is None:
        raise HTTPException(status_code=404, detail="Product not found")

    average_rating, review_count = crud.get_product_rating(db, product.id)
    detail = schemas.ProductDetail.model_validate(product)
    detail.average_rating = average_rating
    detail.review_count = review_count

    cache.set_cache(cache_key, detail.model_dump(mode="json"), ttl=cache.PRODUCT_CACHE_TTL)
    return detail


@router.get("/products/{product_id}/reviews", response_model=schemas.ReviewSummary)
def get_product_reviews(product_id: int, db: Session = Depends(get_db)):
    """Approved reviews of a product with average rating and 1-5 distribution."""
    if crud.get_product(db, product_id) is None:
        raise HTTPException(status_code=404, detail="Product not found")
    reviews = crud.get_product_reviews(db, product_id)
    average_rating, total = crud.get_product_rating(db, product_id)
    return schemas.ReviewSummary(
        reviews=[schemas.Review.model_validate(r) for r in reviews],
        average_rating=average_rating,
        total_reviews=total,
        distribution=crud.get_rating_distribution(db, product_id),
    )


@router.get("/categories", response_model=List[schemas.Category])
def list_categories(db: Session = Depends(get_db)):
    return crud.get_categories(db)


@router.get("/brands", response_model=List[schemas.Brand])
def list_brands(db: Session = Depends(get_db)):
    return crud.get_brands(db)
