"""
Back-office endpoints.

Every endpoint requires a capability checked through `auth.require_capability`:
staff handle orders, appointments and reviews; managers and admins also manage
the catalog, coupons, rewards and reports. Only admins see the customer list
and edit the blog.
"""
import csv
import io
import logging
from collections import OrderedDict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy import func
from sqlalchemy.orm import Session

from .. import auth, booking, cache, checkout, crud, models, notifications, schemas, validators
from ..config import LOW_STOCK_THRESHOLD
from ..database import get_db
from ..models import AppointmentStatus, OrderStatus, Role

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["Admin"])

staff = auth.require_capability("orders:manage")
catalog_manager = auth.require_capability("catalog:manage")
coupon_manager = auth.require_capability("coupons:manage")
rewards_manager = auth.require_capability("rewards:manage")
review_moderator = auth.require_capability("reviews:moderate")
appointment_manager = auth.require_capability("appointments:manage")
report_viewer = auth.require_capability("reports:view")
customer_viewer = auth.require_capability("customers:view")
content_manager = auth.require_capability("content:manage")


# ---------- Products ----------

@router.get("/products", response_model=schemas.ProductList)
def list_products(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(catalog_manager)
):
    """All products including inactive ones."""
    products, total = crud.get_products(
        db, skip=(page - 1) * limit, limit=limit, search=search, active_only=False
    )
    return schemas.ProductList(
        data=[schemas.Product.model_validate(p) for p in products],
        pagination=schemas.Pagination.build(page, limit, total),
    )


@router.post("/products", response_model=schemas.Product, status_code=status.HTTP_201_CREATED)
def create_product(
    product: schemas.ProductCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(catalog_manager)
):
    """
    Create a product.

    Raises:
        HTTPException: 400 if the slug or SKU is already used
    """
    if crud.find_product_conflict(db, product.slug, product.sku):
        raise HTTPException(status_code=400, detail="A product with this slug or SKU already exists")
    db_product = crud.create_product(db, product)
    logger.info(f"Product {db_product.id} created by user {current_user.id}")
    return db_product


@router.put("/products/{product_id}", response_model=schemas.Product)
def update_product(
    product_id: int,
    product: schemas.ProductUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(catalog_manager)
):
    """
    Update a product and drop its cached detail.

    Raises:
        HTTPException: 404 if not found
        HTTPException: 400 if the new slug or SKU is already used
    """
    if crud.find_product_conflict(db, product.slug, product.sku, exclude_id=product_id):
        raise HTTPException(status_code=400, detail="A product with this slug or SKU already exists")
    db_product = crud.update_product(db, product_id, product)
    if db_product is None:
        raise HTTPException(status_code=404, detail="Product not found")
    cache.delete_pattern("product:*")
    return db_product


@router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def deactivate_product(
    product_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(catalog_manager)
):
    """Hide a product from the storefront. Order history keeps referencing it."""
    if not crud.deactivate_product(db, product_id):
        raise HTTPException(status_code=404, detail="Product not found")
    cache.delete_pattern("product:*")


@router.post("/categories", response_model=schemas.Category, status_code=status.HTTP_201_CREATED)
def create_category(
    category: schemas.CategoryCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(catalog_manager)
):
    return crud.create_category(db, category)


@router.put("/categories/{category_id}", response_model=schemas.Category)
def update_category(
    category_id: int,
    category: schemas.CategoryUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(catalog_manager)
):
    db_category = crud.update_category(db, category_id, category)
    if db_category is None:
        raise HTTPException(status_code=404, detail="Category not found")
    return db_category


@router.post("/brands", response_model=schemas.Brand, status_code=status.HTTP_201_CREATED)
def create_brand(
    brand: schemas.BrandCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(catalog_manager)
):
    return crud.create_brand(db, brand)


# ---------- Coupons ----------

@router.get("/coupons", response_model=schemas.CouponList)
def list_coupons(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(coupon_manager)
):
    coupons, total = crud.get_coupons(db, skip=(page - 1) * limit, limit=limit, search=search, is_active=is_active)
    return schemas.CouponList(
        data=[schemas.Coupon.model_validate(c) for c in coupons],
        pagination=schemas.Pagination.build(page, limit, total),
    )


@router.post("/coupons", response_model=schemas.Coupon, status_code=status.HTTP_201_CREATED)
def create_coupon(
    coupon: schemas.CouponCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(coupon_manager)
):
    """
    Create a coupon. Codes are stored upper-case and must be unique.

    Raises:
        HTTPException: 400 if the code exists or the definition is invalid
    """
    is_valid, error_message = validators.validate_coupon_definition(
        coupon.discount_type.value, coupon.discount_value, coupon.start_date, coupon.end_date
    )
    if not is_valid:
        raise HTTPException(status_code=400, detail=error_message)
    if crud.get_coupon_by_code(db, coupon.code):
        raise HTTPException(status_code=400, detail="Coupon code already exists")
    return crud.create_coupon(db, coupon)


@router.put("/coupons/{coupon_id}", response_model=schemas.Coupon)
def update_coupon(
    coupon_id: int,
    coupon: schemas.CouponUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(coupon_manager)
):
    existing = crud.get_coupon(db, coupon_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Coupon not found")

    discount_type = coupon.discount_type.value if coupon.discount_type else existing.discount_type
    discount_value = coupon.discount_value if coupon.discount_value is not None else existing.discount_value
    start_date = coupon.start_date if coupon.start_date is not None else existing.start_date
    end_date = coupon.end_date if coupon.end_date is not None else existing.end_date
    is_valid, error_message = validators.validate_coupon_definition(discount_type, discount_value, start_date, end_date)
    if not is_valid:
        raise HTTPException(status_code=400, detail=error_message)

    return crud.update_coupon(db, coupon_id, coupon)


@router.delete("/coupons/{coupon_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_coupon(
    coupon_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(coupon_manager)
):
    """Delete a coupon; coupons used by orders are deactivated instead."""
    if not crud.delete_coupon(db, coupon_id):
        raise HTTPException(status_code=404, detail="Coupon not found")


# ---------- Orders ----------

@router.get("/orders", response_model=schemas.OrderList)
def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(staff)
):
    """All orders, filtered by status and by order number or email."""
    orders, total = crud.get_orders(
        db, skip=(page - 1) * limit, limit=limit, status=status.value if status else None, search=search
    )
    return schemas.OrderList(
        data=[schemas.Order.model_validate(o) for o in orders],
        pagination=schemas.Pagination.build(page, limit, total),
    )


@router.get("/orders/export/csv")
def export_orders_csv(
    status: Optional[OrderStatus] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(staff)
):
    """
    Export orders to CSV.

    Returns:
        CSV file with columns: order_number, created_at, customer_email, status,
        payment_method, subtotal, discount, points_discount, tax, shipping, total, items
    """
    orders, _ = crud.get_orders(db, skip=0, limit=10000, status=status.value if status else None)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([
        'order_number', 'created_at', 'customer_email', 'status', 'payment_method',
        'subtotal', 'discount', 'points_discount', 'tax', 'shipping', 'total', 'items',
    ])
    for order in orders:
        writer.writerow([
            order.order_number,
            order.created_at.isoformat(),
            order.email or '',
            order.status,
            order.payment_method,
            str(order.subtotal),
            str(order.discount_amount),
            str(order.points_discount),
            str(order.tax_amount),
            str(order.shipping_cost),
            str(order.total_amount),
            sum(item.quantity for item in order.items),
        ])

    output.seek(0)
    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=orders.csv"}
    )


@router.get("/orders/{order_ref}", response_model=schemas.Order)
def get_order(
    order_ref: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(staff)
):
    order = crud.get_order_by_ref(db, order_ref)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@router.put("/orders/{order_ref}", response_model=schemas.Order)
def update_order_status(
    order_ref: str,
    update: schemas.OrderStatusUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(staff)
):
    """
    Move an order through its lifecycle.

    Cancelling returns stock and refunds redeemed points; delivering awards
    purchase points. The customer is notified after the change commits.

    Raises:
        HTTPException: 404 if not found
        HTTPException: 400 if the transition is not allowed
    """
    order = crud.get_order_by_ref(db, order_ref)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    order = checkout.change_order_status(
        db, order, update.status.value,
        actor_id=current_user.id, note=update.note, tracking_number=update.tracking_number,
    )
    notifications.notify_order_status(db, background_tasks, order)
    return crud.get_order(db, order.id)


# ---------- Shipping zones ----------

@router.post("/shipping-zones", response_model=schemas.ShippingZone, status_code=status.HTTP_201_CREATED)
def create_shipping_zone(
    zone: schemas.ShippingZoneCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(catalog_manager)
):
    return crud.create_shipping_zone(db, zone)


# ---------- Rewards ----------

@router.post("/rewards/tiers", response_model=schemas.RewardTier, status_code=status.HTTP_201_CREATED)
def create_tier(
    tier: schemas.RewardTierCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(rewards_manager)
):
    db_tier = crud.create_tier(db, tier)
    cache.delete_cache(cache.TIERS_KEY)
    return db_tier


@router.post("/rewards/adjust", response_model=schemas.RewardEntry, status_code=status.HTTP_201_CREATED)
def adjust_points(
    adjustment: schemas.RewardAdjust,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(rewards_manager)
):
    """
    Credit or debit a customer's points with an ADJUSTMENT or BONUS entry.

    Raises:
        HTTPException: 404 if the user does not exist
        HTTPException: 400 if a debit exceeds the balance
    """
    if adjustment.type not in (models.RewardType.ADJUSTMENT, models.RewardType.BONUS):
        raise HTTPException(status_code=400, detail="Only ADJUSTMENT or BONUS entries can be added manually")
    if crud.get_user(db, adjustment.user_id) is None:
        raise HTTPException(status_code=404, detail="User not found")
    if adjustment.points < 0 and crud.get_reward_balance(db, adjustment.user_id) + adjustment.points < 0:
        raise HTTPException(status_code=400, detail="Adjustment would make the balance negative")

    entry = crud.add_reward_entry(
        db, adjustment.user_id, adjustment.points, adjustment.type.value,
        adjustment.description or f"Manual {adjustment.type.value.lower()} by user {current_user.id}",
    )
    db.commit()
    db.refresh(entry)
    return entry


# ---------- Reviews ----------

@router.get("/reviews", response_model=List[schemas.Review])
def list_reviews(
    approved: Optional[bool] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(review_moderator)
):
    return crud.get_reviews(db, skip=(page - 1) * limit, limit=limit, approved=approved)


@router.put("/reviews/{review_id}", response_model=schemas.Review)
def moderate_review(
    review_id: int,
    moderation: schemas.ReviewModeration,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(review_moderator)
):
    review = crud.set_review_approval(db, review_id, moderation.is_approved)
    if review is None:
        raise HTTPException(status_code=404, detail="Review not found")
    cache.delete_pattern("product:*")
    return review


@router.delete("/reviews/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_review(
    review_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(review_moderator)
):
    if not crud.delete_review(db, review_id):
        raise HTTPException(status_code=404, detail="Review not found")
    cache.delete_pattern("product:*")


# ---------- Salon ----------

@router.post("/salon/services", response_model=schemas.SalonService, status_code=status.HTTP_201_CREATED)
def create_salon_service(
    service: schemas.SalonServiceCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(catalog_manager)
):
    return crud.create_salon_service(db, service)


@router.post("/salon/stylists", response_model=schemas.Stylist, status_code=status.HTTP_201_CREATED)
def create_stylist(
    stylist: schemas.StylistCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(catalog_manager)
):
    return crud.create_stylist(db, stylist)


@router.get("/appointments", response_model=List[schemas.Appointment])
def list_appointments(
    status: Optional[AppointmentStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: models.User = Depends(appointment_manager)
):
    return crud.get_appointments(db, skip=(page - 1) * limit, limit=limit, status=status.value if status else None)


@router.put("/appointments/{appointment_id}", response_model=schemas.Appointment)
def update_appointment_status(
    appointment_id: int,
    update: schemas.AppointmentStatusUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(appointment_manager)
):
    """
    Confirm, complete, cancel or mark an appointment as a no-show.

    Raises:
        HTTPException: 404 if not found
        HTTPException: 400 if the transition is not allowed
    """
    appointment = crud.get_appointment(db, appointment_id)
    if appointment is None:
        raise HTTPException(status_code=404, detail="Appointment not found")
    appointment = booking.change_appointment_status(db, appointment, update.status.value)
    notifications.create_appointment_notification(
        db, appointment.user_id, appointment.appointment_number, appointment.status, appointment.service.name
    )
    return crud.get_appointment(db, appointment.id)


# ---------- Customers ----------

@router.get("/customers", response_model=schemas.CustomerList)
def list_customers(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(customer_viewer)
):
    """Customer accounts with their order counts, newest first. `search` matches name, email and phone."""
    rows, total, active = crud.get_customers(db, skip=(page - 1) * limit, limit=limit, search=search)
    customers = [
        schemas.CustomerSummary(
            id=user.id,
            first_name=user.first_name,
            last_name=user.last_name or "",
            email=user.email,
            phone=user.phone,
            is_active=user.is_active,
            total_orders=total_orders,
            created_at=user.created_at,
        )
        for user, total_orders in rows
    ]
    return schemas.CustomerList(
        data=customers,
        pagination=schemas.Pagination.build(page, limit, total),
        active=active,
    )


# ---------- Blog ----------

@router.get("/blog", response_model=schemas.BlogPostList)
def list_blog_posts(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(content_manager)
):
    """All posts including drafts."""
    posts, total = crud.get_blog_posts(
        db, skip=(page - 1) * limit, limit=limit, search=search, published_only=False
    )
    return schemas.BlogPostList(
        data=[schemas.BlogPostSummary.model_validate(p) for p in posts],
        pagination=schemas.Pagination.build(page, limit, total),
    )


@router.get("/blog/{post_id}", response_model=schemas.BlogPost)
def get_blog_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(content_manager)
):
    post = crud.get_blog_post(db, post_id)
    if post is None:
        raise HTTPException(status_code=404, detail="Blog post not found")
    return post


@router.post("/blog", response_model=schemas.BlogPost, status_code=status.HTTP_201_CREATED)
def create_blog_post(
    post: schemas.BlogPostCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(content_manager)
):
    """
    Write a post. The slug defaults to one derived from the title.

    Raises:
        HTTPException: 400 if the slug is empty or already used
    """
    slug = crud.slugify(post.slug or post.title)
    if not slug:
        raise HTTPException(status_code=400, detail="Blog post slug cannot be empty")
    if crud.blog_slug_taken(db, slug):
        raise HTTPException(status_code=400, detail="A blog post with this slug already exists")
    db_post = crud.create_blog_post(db, post, slug, author_id=current_user.id)
    logger.info(f"Blog post {db_post.id} created by user {current_user.id}")
    return db_post


@router.put("/blog/{post_id}", response_model=schemas.BlogPost)
def update_blog_post(
    post_id: int,
    post: schemas.BlogPostUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(content_manager)
):
    """
    Update a post. A new title regenerates the slug unless one is given.

    Publishing stamps `published_at` the first time; unpublishing clears it.

    Raises:
        HTTPException: 404 if not found
        HTTPException: 400 if the new slug is already used
    """
    db_post = crud.get_blog_post(db, post_id)
    if db_post is None:
        raise HTTPException(status_code=404, detail="Blog post not found")

    update_data = post.model_dump(exclude_unset=True)
    if update_data.get("slug"):
        update_data["slug"] = crud.slugify(update_data["slug"])
    elif update_data.get("title") and update_data["title"] != db_post.title:
        update_data["slug"] = crud.slugify(update_data["title"])
    else:
        update_data.pop("slug", None)

    if "slug" in update_data:
        if not update_data["slug"]:
            raise HTTPException(status_code=400, detail="Blog post slug cannot be empty")
        if crud.blog_slug_taken(db, update_data["slug"], exclude_id=post_id):
            raise HTTPException(status_code=400, detail="A blog post with this slug already exists")

    for field in ("title", "content", "is_published", "is_featured"):
        if field in update_data and update_data[field] is None:
            update_data.pop(field)

    db_post = crud.update_blog_post(db, db_post, update_data)
    logger.info(f"Blog post {post_id} updated by user {current_user.id}")
    return db_post


@router.delete("/blog/{post_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_blog_post(
    post_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(content_manager)
):
    if not crud.delete_blog_post(db, post_id):
        raise HTTPException(status_code=404, detail="Blog post not found")
    logger.info(f"Blog post {post_id} deleted by user {current_user.id}")


# ---------- Reports ----------

@router.get("/reports/dashboard")
def dashboard(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(report_viewer)
):
    """
    Back-office summary.

    Returns:
        dict: order count, revenue of non-cancelled orders, customer count,
        pending orders, low-stock products and top sellers
    """
    counted = db.query(models.Order).filter(
        models.Order.status.notin_([OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value])
    )
    total_revenue = counted.with_entities(func.coalesce(func.sum(models.Order.total_amount), 0)).scalar()
    total_orders = db.query(func.count(models.Order.id)).scalar() or 0
    pending_orders = db.query(func.count(models.Order.id)).filter(
        models.Order.status == OrderStatus.PENDING.value
    ).scalar() or 0
    total_customers = db.query(func.count(models.User.id)).filter(
        models.User.role == Role.CUSTOMER.value
    ).scalar() or 0

    low_stock = crud.get_low_stock_products(db, LOW_STOCK_THRESHOLD)
    top_sellers = db.query(models.Product).filter(models.Product.sold_count > 0) \
                    .order_by(models.Product.sold_count.desc()).limit(5).all()

    return {
        "total_orders": total_orders,
        "total_revenue": str(Decimal(total_revenue or 0)),
        "total_customers": total_customers,
        "pending_orders": pending_orders,
        "low_stock_products": [
            {"id": p.id, "name": p.name, "sku": p.sku, "stock_quantity": p.stock_quantity}
            for p in low_stock
        ],
        "top_sellers": [
            {"id": p.id, "name": p.name, "sold_count": p.sold_count}
            for p in top_sellers
        ],
    }


@router.get("/reports/sales")
def sales_series(
    days: int = 30,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(report_viewer)
):
    """
    Daily orders and revenue over the past N days (defaults to 30).

    Returns list of {date, orders, revenue} for each day inclusive; cancelled
    and refunded orders are excluded.
    """
    days = max(1, min(days, 365))  # clamp to sane bounds
    start_day = (datetime.utcnow() - timedelta(days=days - 1)).date()
    start_dt = datetime.combine(start_day, datetime.min.time())

    series = OrderedDict(
        ((start_day + timedelta(days=i)).isoformat(), {"orders": 0, "revenue": Decimal("0")})
        for i in range(days)
    )
    rows = db.query(models.Order.created_at, models.Order.total_amount).filter(
        models.Order.created_at >= start_dt,
        models.Order.status.notin_([OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value]),
    ).all()
    for created_at, total in rows:
        entry = series.get(created_at.date().isoformat())
        if entry is not None:
            entry["orders"] += 1
            entry["revenue"] += Decimal(total)

    return {
        "days": days,
        "series": [
            {"date": day, "orders": entry["orders"], "revenue": str(entry["revenue"])}
            for day, entry in series.items()
        ],
    }
