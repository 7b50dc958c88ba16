"""
CRUD (Create, Read, Update, Delete) operations for the Storefront service.

This module contains the database operations for users, the catalog, the
cart, coupons, the reward ledger, orders, shipping zones, reviews, salon
booking and the blog.

Simple create/update helpers commit their own change. Helpers that take part
in a multi-step unit of work (stock, coupon usage, ledger entries, status
history, cart clearing) only add/flush and leave the commit to the caller.
"""
from typing import List, Optional, Tuple
from datetime import datetime
from decimal import Decimal
import logging
import re
from sqlalchemy import case, func, or_, update
from sqlalchemy.orm import Session, selectinload
from . import models, schemas

# Set up logging
logger = logging.getLogger(__name__)


# ---------- Users ----------

def get_user(db: Session, user_id: int) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.id == user_id).first()


def get_user_by_email(db: Session, email: str) -> Optional[models.User]:
    return db.query(models.User).filter(models.User.email == email.lower()).first()


def create_user(db: Session, user: schemas.UserRegister, password_hash: str,
                role: str = models.Role.CUSTOMER.value) -> models.User:
    """
    Create a new user in the database.

    Args:
        db: Database session
        user: Registration data
        password_hash: bcrypt hash of the chosen password
        role: Role to assign (customers by default)

    Returns:
        Created User object
    """
    db_user = models.User(
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email.lower(),
        phone=user.phone,
        password_hash=password_hash,
        role=role,
        is_active=True,
    )
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user


def get_customers(db: Session, skip: int = 0, limit: int = 20,
                  search: Optional[str] = None) -> Tuple[list, int, int]:
    """
    Customer accounts for the back office, newest first.

    Returns:
        (rows of (User, order count), total matching, active matching)
    """
    query = db.query(models.User).filter(models.User.role == models.Role.CUSTOMER.value)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            models.User.first_name.ilike(pattern),
            models.User.last_name.ilike(pattern),
            models.User.email.ilike(pattern),
            models.User.phone.ilike(pattern),
        ))
    total = query.count()
    active = query.filter(models.User.is_active.is_(True)).count()

    order_count = func.count(models.Order.id).label("total_orders")
    rows = query.outerjoin(models.Order, models.Order.user_id == models.User.id) \
                .add_columns(order_count) \
                .group_by(models.User.id) \
                .order_by(models.User.created_at.desc(), models.User.id.desc()) \
                .offset(skip).limit(limit).all()
    return rows, total, active


# ---------- Categories & brands ----------

def get_categories(db: Session, active_only: bool = True) -> List[models.Category]:
    query = db.query(models.Category)
    if active_only:
        query = query.filter(models.Category.is_active.is_(True))
    return query.order_by(models.Category.name).all()


def get_category(db: Session, category_id: int) -> Optional[models.Category]:
    return db.query(models.Category).filter(models.Category.id == category_id).first()


def create_category(db: Session, category: schemas.CategoryCreate) -> models.Category:
    db_category = models.Category(**category.model_dump())
    db.add(db_category)
    db.commit()
    db.refresh(db_category)
    return db_category


def update_category(db: Session, category_id: int, category: schemas.CategoryUpdate) -> Optional[models.Category]:
    db_category = get_category(db, category_id)
    if db_category is None:
        return None
    for key, value in category.model_dump(exclude_unset=True).items():
        setattr(db_category, key, value)
    db.commit()
    db.refresh(db_category)
    return db_category


def get_brands(db: Session, active_only: bool = True) -> List[models.Brand]:
    query = db.query(models.Brand)
    if active_only:
        query = query.filter(models.Brand.is_active.is_(True))
    return query.order_by(models.Brand.name).all()


def create_brand(db: Session, brand: schemas.BrandCreate) -> models.Brand:
    db_brand = models.Brand(**brand.model_dump())
    db.add(db_brand)
    db.commit()
    db.refresh(db_brand)
    return db_brand


# ---------- Products ----------

PRODUCT_SORT_COLUMNS = {
    "created_at": models.Product.created_at,
    "price": models.Product.price,
    "name": models.Product.name,
    "popularity": models.Product.sold_count,
}


def get_product(db: Session, product_id: int) -> Optional[models.Product]:
    return db.query(models.Product).filter(models.Product.id == product_id).first()


def get_product_by_ref(db: Session, ref: str, active_only: bool = True) -> Optional[models.Product]:
    """
    Retrieve a product by numeric ID or by slug.

    Args:
        db: Database session
        ref: Product ID (digits) or slug
        active_only: Hide deactivated products

    Returns:
        Product object or None if not found
    """
    query = db.query(models.Product)
    if ref.isdigit():
        query = query.filter(or_(models.Product.id == int(ref), models.Product.slug == ref))
    else:
        query = query.filter(models.Product.slug == ref)
    if active_only:
        query = query.filter(models.Product.is_active.is_(True))
    return query.first()


def find_product_conflict(db: Session, slug: Optional[str], sku: Optional[str],
                          exclude_id: Optional[int] = None) -> Optional[models.Product]:
    """Another product already using the given slug or SKU."""
    conditions = []
    if slug:
        conditions.append(models.Product.slug == slug)
    if sku:
        conditions.append(models.Product.sku == sku)
    if not conditions:
        return None
    query = db.query(models.Product).filter(or_(*conditions))
    if exclude_id is not None:
        query = query.filter(models.Product.id != exclude_id)
    return query.first()


def get_products(
    db: Session,
    skip: int = 0,
    limit: int = 12,
    category: Optional[str] = None,
    brand: Optional[str] = None,
    min_price: Optional[Decimal] = None,
    max_price: Optional[Decimal] = None,
    search: Optional[str] = None,
    featured: Optional[bool] = None,
    new: Optional[bool] = None,
    on_sale: Optional[bool] = None,
    bestseller: Optional[bool] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    active_only: bool = True,
) -> Tuple[List[models.Product], int]:
    """
    Retrieve a filtered, sorted page of products.

    Returns:
        Tuple of (products, total_matching)
    """
    query = db.query(models.Product)
    if active_only:
        query = query.filter(models.Product.is_active.is_(True))
    if category:
        query = query.join(models.Category, models.Product.category_id == models.Category.id) \
                     .filter(models.Category.slug == category)
    if brand:
        query = query.join(models.Brand, models.Product.brand_id == models.Brand.id) \
                     .filter(models.Brand.slug == brand)
    if min_price is not None:
        query = query.filter(models.Product.price >= min_price)
    if max_price is not None:
        query = query.filter(models.Product.price <= max_price)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(models.Product.name.ilike(pattern), models.Product.description.ilike(pattern)))
    if featured:
        query = query.filter(models.Product.is_featured.is_(True))
    if new:
        query = query.filter(models.Product.is_new.is_(True))
    if on_sale:
        query = query.filter(models.Product.is_on_sale.is_(True))
    if bestseller:
        query = query.filter(models.Product.is_bestseller.is_(True))

    total = query.count()
    column = PRODUCT_SORT_COLUMNS.get(sort_by, models.Product.created_at)
    ordering = column.asc() if sort_order == "asc" else column.desc()
    products = query.order_by(ordering, models.Product.id).offset(skip).limit(limit).all()
    return products, total


def create_product(db: Session, product: schemas.ProductCreate) -> models.Product:
    db_product = models.Product(**product.model_dump())
    db.add(db_product)
    db.commit()
    db.refresh(db_product)
    return db_product


def update_product(db: Session, product_id: int, product: schemas.ProductUpdate) -> Optional[models.Product]:
    """
    Update an existing product.

    Args:
        db: Database session
        product_id: ID of the product to update
        product: Updated product data (only provided fields will be updated)

    Returns:
        Updated Product object or None if not found
    """
    db_product = get_product(db, product_id)
    if db_product is None:
        return None
    for key, value in product.model_dump(exclude_unset=True).items():
        setattr(db_product, key, value)
    db.commit()
    db.refresh(db_product)
    return db_product


def deactivate_product(db: Session, product_id: int) -> bool:
    """Hide a product from the storefront. Products are never deleted; orders reference them."""
    db_product = get_product(db, product_id)
    if db_product is None:
        return False
    db_product.is_active = False
    db.commit()
    return True


def get_product_rating(db: Session, product_id: int) -> Tuple[float, int]:
    """Average approved rating (one decimal) and approved review count."""
    avg, count = db.query(func.avg(models.Review.rating), func.count(models.Review.id)).filter(
        models.Review.product_id == product_id,
        models.Review.is_approved.is_(True),
    ).one()
    return (round(float(avg), 1) if avg is not None else 0.0), int(count or 0)


def decrement_stock(db: Session, product_id: int, quantity: int) -> bool:
    """
    Atomically take stock for a sold line and bump the sold counter.

    The update only applies while the product still holds at least `quantity`
    units, so stock can never go negative. Does not commit.

    Returns:
        True if the stock was taken, False if it was insufficient
    """
    result = db.execute(
        update(models.Product)
        .where(models.Product.id == product_id, models.Product.stock_quantity >= quantity)
        .values(
            stock_quantity=models.Product.stock_quantity - quantity,
            sold_count=models.Product.sold_count + quantity,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def restock(db: Session, product_id: int, quantity: int) -> None:
    """Return stock for a cancelled line. Does not commit."""
    db.execute(
        update(models.Product)
        .where(models.Product.id == product_id)
        .values(
            stock_quantity=models.Product.stock_quantity + quantity,
            sold_count=case(
                (models.Product.sold_count >= quantity, models.Product.sold_count - quantity),
                else_=0,
            ),
        )
        .execution_options(synchronize_session=False)
    )


def get_low_stock_products(db: Session, threshold: int) -> List[models.Product]:
    return db.query(models.Product).filter(
        models.Product.is_active.is_(True),
        models.Product.stock_quantity <= threshold,
    ).order_by(models.Product.stock_quantity).all()


# ---------- Cart ----------

def get_cart_items(db: Session, user_id: int) -> List[models.CartItem]:
    return db.query(models.CartItem).options(selectinload(models.CartItem.product)) \
             .filter(models.CartItem.user_id == user_id) \
             .order_by(models.CartItem.created_at.desc(), models.CartItem.id.desc()).all()


def get_cart_item(db: Session, user_id: int, item_id: int) -> Optional[models.CartItem]:
    return db.query(models.CartItem).filter(
        models.CartItem.id == item_id, models.CartItem.user_id == user_id
    ).first()


def find_cart_line(db: Session, user_id: int, product_id: int, variant_name: Optional[str]) -> Optional[models.CartItem]:
    query = db.query(models.CartItem).filter(
        models.CartItem.user_id == user_id, models.CartItem.product_id == product_id
    )
    if variant_name is None:
        query = query.filter(models.CartItem.variant_name.is_(None))
    else:
        query = query.filter(models.CartItem.variant_name == variant_name)
    return query.first()


def delete_cart_item(db: Session, user_id: int, item_id: int) -> bool:
    db_item = get_cart_item(db, user_id, item_id)
    if db_item is None:
        return False
    db.delete(db_item)
    db.commit()
    return True


def clear_cart(db: Session, user_id: int) -> int:
    """Remove every cart line of a user. Does not commit."""
    return db.query(models.CartItem).filter(models.CartItem.user_id == user_id) \
             .delete(synchronize_session=False)


# ---------- Coupons ----------

def get_coupon(db: Session, coupon_id: int) -> Optional[models.Coupon]:
    return db.query(models.Coupon).filter(models.Coupon.id == coupon_id).first()


def get_coupon_by_code(db: Session, code: str) -> Optional[models.Coupon]:
    """Case-insensitive coupon lookup."""
    return db.query(models.Coupon).filter(
        func.upper(models.Coupon.code) == code.strip().upper()
    ).first()


def get_coupons(db: Session, skip: int = 0, limit: int = 10, search: Optional[str] = None,
                is_active: Optional[bool] = None) -> Tuple[List[models.Coupon], int]:
    query = db.query(models.Coupon)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(models.Coupon.code.ilike(pattern), models.Coupon.description.ilike(pattern)))
    if is_active is not None:
        query = query.filter(models.Coupon.is_active.is_(is_active))
    total = query.count()
    coupons = query.order_by(models.Coupon.created_at.desc(), models.Coupon.id.desc()) \
                   .offset(skip).limit(limit).all()
    return coupons, total


def create_coupon(db: Session, coupon: schemas.CouponCreate) -> models.Coupon:
    data = coupon.model_dump()
    data["code"] = coupon.code.strip().upper()
    data["discount_type"] = coupon.discount_type.value
    db_coupon = models.Coupon(**data)
    db.add(db_coupon)
    db.commit()
    db.refresh(db_coupon)
    return db_coupon


def update_coupon(db: Session, coupon_id: int, coupon: schemas.CouponUpdate) -> Optional[models.Coupon]:
    db_coupon = get_coupon(db, coupon_id)
    if db_coupon is None:
        return None
    update_data = coupon.model_dump(exclude_unset=True)
    if update_data.get("discount_type") is not None:
        update_data["discount_type"] = update_data["discount_type"].value
    for key, value in update_data.items():
        setattr(db_coupon, key, value)
    db.commit()
    db.refresh(db_coupon)
    return db_coupon


def delete_coupon(db: Session, coupon_id: int) -> bool:
    """
    Delete a coupon. Coupons already referenced by orders are deactivated instead.

    Returns:
        True if the coupon was deleted or deactivated, False if not found
    """
    db_coupon = get_coupon(db, coupon_id)
    if db_coupon is None:
        return False
    in_use = db.query(models.Order.id).filter(models.Order.coupon_id == coupon_id).first()
    if in_use:
        db_coupon.is_active = False
    else:
        db.delete(db_coupon)
    db.commit()
    return True


def claim_coupon_use(db: Session, coupon_id: int) -> bool:
    """
    Atomically count one redemption of a coupon, only while it is below its usage limit.
    Does not commit.

    Returns:
        True if the redemption was counted, False if the limit is exhausted
    """
    result = db.execute(
        update(models.Coupon)
        .where(
            models.Coupon.id == coupon_id,
            or_(models.Coupon.usage_limit.is_(None), models.Coupon.used_count < models.Coupon.usage_limit),
        )
        .values(used_count=models.Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def count_user_coupon_uses(db: Session, user_id: int, coupon_id: int) -> int:
    """Orders a user placed with a coupon, ignoring cancelled ones."""
    return db.query(func.count(models.Order.id)).filter(
        models.Order.user_id == user_id,
        models.Order.coupon_id == coupon_id,
        models.Order.status != models.OrderStatus.CANCELLED.value,
    ).scalar() or 0


# ---------- Reward ledger ----------

def get_reward_balance(db: Session, user_id: int) -> int:
    """A user's point balance: the sum of all their ledger entries."""
    total = db.query(func.coalesce(func.sum(models.RewardPoint.points), 0)) \
              .filter(models.RewardPoint.user_id == user_id).scalar()
    return int(total or 0)


def add_reward_entry(db: Session, user_id: int, points: int, entry_type: str,
                     description: Optional[str] = None, order_id: Optional[int] = None) -> models.RewardPoint:
    """Append a ledger entry. Does not commit."""
    entry = models.RewardPoint(
        user_id=user_id,
        points=points,
        type=entry_type,
        description=description,
        order_id=order_id,
    )
    db.add(entry)
    return entry


def get_reward_history(db: Session, user_id: int, limit: int = 20) -> List[models.RewardPoint]:
    return db.query(models.RewardPoint).filter(models.RewardPoint.user_id == user_id) \
             .order_by(models.RewardPoint.created_at.desc(), models.RewardPoint.id.desc()) \
             .limit(limit).all()


def get_order_reward_entries(db: Session, order_id: int, entry_type: str) -> List[models.RewardPoint]:
    return db.query(models.RewardPoint).filter(
        models.RewardPoint.order_id == order_id, models.RewardPoint.type == entry_type
    ).all()


def get_active_tiers(db: Session) -> List[models.RewardTier]:
    return db.query(models.RewardTier).filter(models.RewardTier.is_active.is_(True)) \
             .order_by(models.RewardTier.min_points.asc()).all()


def create_tier(db: Session, tier: schemas.RewardTierCreate) -> models.RewardTier:
    db_tier = models.RewardTier(**tier.model_dump())
    db.add(db_tier)
    db.commit()
    db.refresh(db_tier)
    return db_tier


# ---------- Orders ----------

def _order_query(db: Session):
    return db.query(models.Order).options(
        selectinload(models.Order.items), selectinload(models.Order.status_history)
    )


def get_order(db: Session, order_id: int) -> Optional[models.Order]:
    return _order_query(db).filter(models.Order.id == order_id).first()


def get_order_by_number(db: Session, order_number: str) -> Optional[models.Order]:
    return _order_query(db).filter(models.Order.order_number == order_number).first()


def get_order_by_ref(db: Session, ref: str, user_id: Optional[int] = None) -> Optional[models.Order]:
    """
    Retrieve an order by internal ID or order number, optionally scoped to an owner.

    Args:
        db: Database session
        ref: Numeric order ID or order number
        user_id: Restrict to this owner when given

    Returns:
        Order object or None if not found
    """
    query = _order_query(db)
    if ref.isdigit():
        query = query.filter(or_(models.Order.id == int(ref), models.Order.order_number == ref))
    else:
        query = query.filter(models.Order.order_number == ref)
    if user_id is not None:
        query = query.filter(models.Order.user_id == user_id)
    return query.first()


def order_number_exists(db: Session, order_number: str) -> bool:
    return db.query(models.Order.id).filter(models.Order.order_number == order_number).first() is not None


def get_orders(db: Session, skip: int = 0, limit: int = 10, user_id: Optional[int] = None,
               status: Optional[str] = None, search: Optional[str] = None) -> Tuple[List[models.Order], int]:
    """
    Retrieve a page of orders, newest first.

    Returns:
        Tuple of (orders, total_matching)
    """
    query = db.query(models.Order)
    if user_id is not None:
        query = query.filter(models.Order.user_id == user_id)
    if status:
        query = query.filter(models.Order.status == status)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(models.Order.order_number.ilike(pattern), models.Order.email.ilike(pattern)))
    total = query.count()
    orders = query.options(selectinload(models.Order.items), selectinload(models.Order.status_history)) \
                  .order_by(models.Order.created_at.desc(), models.Order.id.desc()) \
                  .offset(skip).limit(limit).all()
    return orders, total


def add_status_history(db: Session, order_id: int, status: str, note: Optional[str] = None,
                       created_by: Optional[int] = None) -> models.OrderStatusHistory:
    """
    Append an entry to an order's status history. Does not commit.

    Args:
        db: Database session
        order_id: Order identifier
        status: Status the order moved into
        note: Human-readable description
        created_by: User who triggered the change (optional)
    """
    entry = models.OrderStatusHistory(order_id=order_id, status=status, note=note, created_by=created_by)
    db.add(entry)
    return entry


# ---------- Shipping zones ----------

def get_shipping_zone(db: Session, zone_id: int, active_only: bool = True) -> Optional[models.ShippingZone]:
    query = db.query(models.ShippingZone).filter(models.ShippingZone.id == zone_id)
    if active_only:
        query = query.filter(models.ShippingZone.is_active.is_(True))
    return query.first()


def get_shipping_zones(db: Session) -> List[models.ShippingZone]:
    return db.query(models.ShippingZone).filter(models.ShippingZone.is_active.is_(True)) \
             .order_by(models.ShippingZone.region.asc(), models.ShippingZone.distance_km.asc()).all()


def create_shipping_zone(db: Session, zone: schemas.ShippingZoneCreate) -> models.ShippingZone:
    db_zone = models.ShippingZone(**zone.model_dump())
    db.add(db_zone)
    db.commit()
    db.refresh(db_zone)
    return db_zone


# ---------- Reviews ----------

def get_review(db: Session, review_id: int) -> Optional[models.Review]:
    return db.query(models.Review).filter(models.Review.id == review_id).first()


def get_user_review(db: Session, user_id: int, product_id: int) -> Optional[models.Review]:
    return db.query(models.Review).filter(
        models.Review.user_id == user_id, models.Review.product_id == product_id
    ).first()


def create_review(db: Session, user_id: int, review: schemas.ReviewCreate) -> models.Review:
    db_review = models.Review(user_id=user_id, is_approved=False, **review.model_dump())
    db.add(db_review)
    db.commit()
    db.refresh(db_review)
    return db_review


def get_product_reviews(db: Session, product_id: int) -> List[models.Review]:
    return db.query(models.Review).filter(
        models.Review.product_id == product_id, models.Review.is_approved.is_(True)
    ).order_by(models.Review.created_at.desc(), models.Review.id.desc()).all()


def get_rating_distribution(db: Session, product_id: int) -> dict:
    rows = db.query(models.Review.rating, func.count(models.Review.id)).filter(
        models.Review.product_id == product_id, models.Review.is_approved.is_(True)
    ).group_by(models.Review.rating).all()
    distribution = {rating: 0 for rating in range(1, 6)}
    for rating, count in rows:
        distribution[rating] = count
    return distribution


def get_reviews(db: Session, skip: int = 0, limit: int = 20, approved: Optional[bool] = None) -> List[models.Review]:
    query = db.query(models.Review)
    if approved is not None:
        query = query.filter(models.Review.is_approved.is_(approved))
    return query.order_by(models.Review.created_at.desc(), models.Review.id.desc()).offset(skip).limit(limit).all()


def set_review_approval(db: Session, review_id: int, is_approved: bool) -> Optional[models.Review]:
    db_review = get_review(db, review_id)
    if db_review is None:
        return None
    db_review.is_approved = is_approved
    db.commit()
    db.refresh(db_review)
    return db_review


def delete_review(db: Session, review_id: int) -> bool:
    db_review = get_review(db, review_id)
    if db_review is None:
        return False
    db.delete(db_review)
    db.commit()
    return True


# ---------- Salon ----------

def get_salon_services(db: Session) -> List[models.SalonService]:
    return db.query(models.SalonService).filter(models.SalonService.is_active.is_(True)) \
             .order_by(models.SalonService.category, models.SalonService.name).all()


def get_salon_service(db: Session, service_id: int) -> Optional[models.SalonService]:
    return db.query(models.SalonService).filter(models.SalonService.id == service_id).first()


def create_salon_service(db: Session, service: schemas.SalonServiceCreate) -> models.SalonService:
    db_service = models.SalonService(**service.model_dump())
    db.add(db_service)
    db.commit()
    db.refresh(db_service)
    return db_service


def get_stylists(db: Session) -> List[models.Stylist]:
    return db.query(models.Stylist).filter(models.Stylist.is_active.is_(True)) \
             .order_by(models.Stylist.name).all()


def get_stylist(db: Session, stylist_id: int) -> Optional[models.Stylist]:
    return db.query(models.Stylist).filter(models.Stylist.id == stylist_id).first()


def create_stylist(db: Session, stylist: schemas.StylistCreate) -> models.Stylist:
    db_stylist = models.Stylist(**stylist.model_dump())
    db.add(db_stylist)
    db.commit()
    db.refresh(db_stylist)
    return db_stylist


def get_appointment(db: Session, appointment_id: int) -> Optional[models.Appointment]:
    return db.query(models.Appointment).filter(models.Appointment.id == appointment_id).first()


def find_conflicting_appointment(db: Session, stylist_id: Optional[int], scheduled_at: datetime) -> Optional[models.Appointment]:
    """An open (PENDING/CONFIRMED) appointment for the same stylist at the same start time."""
    query = db.query(models.Appointment).filter(
        models.Appointment.scheduled_at == scheduled_at,
        models.Appointment.status.in_([
            models.AppointmentStatus.PENDING.value, models.AppointmentStatus.CONFIRMED.value
        ]),
    )
    if stylist_id is None:
        query = query.filter(models.Appointment.stylist_id.is_(None))
    else:
        query = query.filter(models.Appointment.stylist_id == stylist_id)
    return query.first()


def get_user_appointments(db: Session, user_id: int, status: Optional[str] = None,
                          upcoming: bool = False, now: Optional[datetime] = None) -> List[models.Appointment]:
    query = db.query(models.Appointment).filter(models.Appointment.user_id == user_id)
    if upcoming:
        query = query.filter(
            models.Appointment.scheduled_at >= (now or datetime.utcnow()),
            models.Appointment.status.in_([
                models.AppointmentStatus.PENDING.value, models.AppointmentStatus.CONFIRMED.value
            ]),
        ).order_by(models.Appointment.scheduled_at.asc())
    else:
        if status:
            query = query.filter(models.Appointment.status == status)
        query = query.order_by(models.Appointment.scheduled_at.desc())
    return query.all()


def get_appointments(db: Session, skip: int = 0, limit: int = 50, status: Optional[str] = None) -> List[models.Appointment]:
    query = db.query(models.Appointment)
    if status:
        query = query.filter(models.Appointment.status == status)
    return query.order_by(models.Appointment.scheduled_at.desc()).offset(skip).limit(limit).all()


# ---------- Blog ----------

def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def get_blog_post(db: Session, post_id: int) -> Optional[models.BlogPost]:
    return db.query(models.BlogPost).filter(models.BlogPost.id == post_id).first()


def _published(query, now: datetime):
    return query.filter(
        models.BlogPost.is_published.is_(True),
        models.BlogPost.published_at <= now,
    )


def get_published_post(db: Session, ref: str) -> Optional[models.BlogPost]:
    """A published post by slug, or by ID when `ref` is numeric."""
    query = _published(db.query(models.BlogPost), datetime.utcnow())
    if ref.isdigit():
        return query.filter(or_(models.BlogPost.id == int(ref), models.BlogPost.slug == ref)).first()
    return query.filter(models.BlogPost.slug == ref).first()


def blog_slug_taken(db: Session, slug: str, exclude_id: Optional[int] = None) -> bool:
    query = db.query(models.BlogPost.id).filter(models.BlogPost.slug == slug)
    if exclude_id is not None:
        query = query.filter(models.BlogPost.id != exclude_id)
    return query.first() is not None


def get_blog_posts(db: Session, skip: int = 0, limit: int = 10, search: Optional[str] = None,
                   featured: Optional[bool] = None,
                   published_only: bool = True) -> Tuple[List[models.BlogPost], int]:
    """
    Page through blog posts.

    Public listings only see published posts, newest publication first.
    The back office sees drafts too, newest first.
    """
    query = db.query(models.BlogPost).options(selectinload(models.BlogPost.author))
    if published_only:
        query = _published(query, datetime.utcnow())
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            models.BlogPost.title.ilike(pattern),
            models.BlogPost.excerpt.ilike(pattern),
            models.BlogPost.content.ilike(pattern),
        ))
    if featured:
        query = query.filter(models.BlogPost.is_featured.is_(True))
    total = query.count()
    if published_only:
        query = query.order_by(models.BlogPost.published_at.desc(), models.BlogPost.id.desc())
    else:
        query = query.order_by(models.BlogPost.created_at.desc(), models.BlogPost.id.desc())
    return query.offset(skip).limit(limit).all(), total


def _apply_publication(db_post: models.BlogPost) -> None:
    # published_at is stamped once, on first publication, and cleared on unpublish
    if db_post.is_published and db_post.published_at is None:
        db_post.published_at = datetime.utcnow()
    elif not db_post.is_published:
        db_post.published_at = None


def create_blog_post(db: Session, post: schemas.BlogPostCreate, slug: str,
                     author_id: Optional[int] = None) -> models.BlogPost:
    data = post.model_dump()
    data["slug"] = slug
    db_post = models.BlogPost(**data, author_id=author_id)
    _apply_publication(db_post)
    db.add(db_post)
    db.commit()
    db.refresh(db_post)
    return db_post


def update_blog_post(db: Session, db_post: models.BlogPost, update_data: dict) -> models.BlogPost:
    for key, value in update_data.items():
        setattr(db_post, key, value)
    _apply_publication(db_post)
    db.commit()
    db.refresh(db_post)
    return db_post


def record_blog_view(db: Session, post_id: int) -> None:
    db.execute(
        update(models.BlogPost)
        .where(models.BlogPost.id == post_id)
        .values(view_count=models.BlogPost.view_count + 1)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def delete_blog_post(db: Session, post_id: int) -> bool:
    db_post = get_blog_post(db, post_id)
    if db_post is None:
        return False
    db.delete(db_post)
    db.commit()
    return True
