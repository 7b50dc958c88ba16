"""
SQLAlchemy ORM models for the Storefront service.

Defines the database schema for the catalog, cart, orders, coupons,
reward ledger, notifications, reviews, salon booking and blog tables.
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Numeric, ForeignKey, Text, Boolean, JSON, UniqueConstraint
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from .database import Base

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Role(str, Enum):
    CUSTOMER = "CUSTOMER"
    STAFF = "STAFF"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class DiscountType(str, Enum):
    PERCENTAGE = "PERCENTAGE"
    FIXED_AMOUNT = "FIXED_AMOUNT"
    FREE_SHIPPING = "FREE_SHIPPING"


class RewardType(str, Enum):
    EARNED_PURCHASE = "EARNED_PURCHASE"
    REDEEMED = "REDEEMED"
    REFUNDED = "REFUNDED"
    BONUS = "BONUS"
    ADJUSTMENT = "ADJUSTMENT"


class NotificationType(str, Enum):
    ORDER_PLACED = "ORDER_PLACED"
    ORDER_SHIPPED = "ORDER_SHIPPED"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    APPOINTMENT_CONFIRMED = "APPOINTMENT_CONFIRMED"
    APPOINTMENT_REMINDER = "APPOINTMENT_REMINDER"
    SYSTEM = "SYSTEM"


class AppointmentStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class User(Base):
    """
    User model representing a customer or staff member.

    Attributes:
        id (int): Primary key
        email (str): Login email address (unique)
        password_hash (str): bcrypt hash of the password
        role (str): One of the Role values
        is_active (bool): Whether the account may sign in
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False, default="")
    email = Column(String, unique=True, index=True, nullable=False)
    phone = Column(String, nullable=True)
    password_hash = Column(String, nullable=False)
    role = Column(String, default=Role.CUSTOMER.value, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Category(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Brand(Base):
    __tablename__ = "brands"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)


class Product(Base):
    """
    Product model representing a sellable catalog item.

    Attributes:
        id (int): Primary key
        sku (str): Stock Keeping Unit (unique)
        price (Decimal): Current selling price
        stock_quantity (int): Units available, never negative
        sold_count (int): Units sold over the product's lifetime
    """
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    sku = Column(String, unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    compare_at_price = Column(Numeric(12, 2), nullable=True)
    stock_quantity = Column(Integer, nullable=False, default=0)
    sold_count = Column(Integer, nullable=False, default=0)
    weight_kg = Column(Numeric(8, 3), nullable=True)
    image_url = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False)
    is_new = Column(Boolean, default=False, nullable=False)
    is_bestseller = Column(Boolean, default=False, nullable=False)
    is_on_sale = Column(Boolean, default=False, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True, index=True)
    brand_id = Column(Integer, ForeignKey("brands.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    category = relationship("Category")
    brand = relationship("Brand")


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("user_id", "product_id", "variant_name", name="uq_cart_line"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_name = Column(String, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)

    product = relationship("Product")


class ShippingZone(Base):
    __tablename__ = "shipping_zones"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    district = Column(String, nullable=True)
    region = Column(String, nullable=True)
    distance_km = Column(Integer, nullable=True)
    base_fee = Column(Numeric(12, 2), nullable=False, default=0)
    per_kg_fee = Column(Numeric(12, 2), nullable=False, default=0)
    estimated_days = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


class Coupon(Base):
    """
    Coupon model. Codes are stored upper-case and matched case-insensitively.

    Attributes:
        discount_type (str): PERCENTAGE, FIXED_AMOUNT or FREE_SHIPPING
        discount_value (Decimal): Percent or currency amount depending on type
        usage_limit (int): Total redemptions allowed (None = unlimited)
        per_user_limit (int): Redemptions allowed per user (None = unlimited)
        used_count (int): Redemptions so far, never above usage_limit
    """
    __tablename__ = "coupons"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)
    discount_type = Column(String, nullable=False)
    discount_value = Column(Numeric(12, 2), nullable=False)
    min_order_amount = Column(Numeric(12, 2), nullable=True)
    max_discount_amount = Column(Numeric(12, 2), nullable=True)
    usage_limit = Column(Integer, nullable=True)
    per_user_limit = Column(Integer, nullable=True, default=1)
    used_count = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
    start_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


class Order(Base):
    """
    Order aggregate created once at checkout.

    Attributes:
        order_number (str): Human-readable unique identifier (e.g. "CHK-LZ3K2A-4F9Q")
        status (str): Current OrderStatus; mirrors the newest status history row
        subtotal (Decimal): Sum of line totals
        discount_amount (Decimal): Coupon discount
        points_discount (Decimal): Currency value of redeemed reward points
        tax_amount (Decimal): VAT on the discounted subtotal
        total_amount (Decimal): Amount payable
        shipping_address (dict): Snapshot of the delivery address (optional)
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    status = Column(String, nullable=False, default=OrderStatus.PENDING.value)
    subtotal = Column(Numeric(12, 2), nullable=False, default=0)
    discount_amount = Column(Numeric(12, 2), nullable=False, default=0)
    points_used = Column(Integer, nullable=False, default=0)
    points_discount = Column(Numeric(12, 2), nullable=False, default=0)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    shipping_cost = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    currency = Column(String, nullable=False, default="UGX")
    shipping_method = Column(String, nullable=False, default="STANDARD")
    payment_method = Column(String, nullable=False, default="MOBILE_MONEY")
    notes = Column(Text, nullable=True)
    shipping_address = Column(JSONType, nullable=True)
    shipping_zone_id = Column(Integer, ForeignKey("shipping_zones.id"), nullable=True)
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=True)
    coupon_code = Column(String, nullable=True)
    tracking_number = Column(String, nullable=True)
    estimated_delivery = Column(String, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    shipped_at = Column(DateTime, nullable=True)
    delivered_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User")
    shipping_zone = relationship("ShippingZone")
    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")
    status_history = relationship(
        "OrderStatusHistory", back_populates="order", order_by="OrderStatusHistory.id"
    )


class OrderItem(Base):
    """
    Snapshot of a purchased product, decoupled from the live product record.
    """
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=True)
    product_name = Column(String, nullable=False)
    product_sku = Column(String, nullable=True)
    product_image = Column(String, nullable=True)
    variant_name = Column(String, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    total = Column(Numeric(12, 2), nullable=False)

    order = relationship("Order", back_populates="items")


class OrderStatusHistory(Base):
    """
    Append-only audit trail of an order's status transitions.

    Attributes:
        status (str): Status the order moved into
        note (str): Human-readable description
        created_by (int): User who triggered the transition (optional)
    """
    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(String, nullable=False)
    note = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    order = relationship("Order", back_populates="status_history")


class RewardPoint(Base):
    """
    Reward ledger entry. A user's balance is the sum of their entries.

    Attributes:
        points (int): Signed delta (positive = earned, negative = redeemed)
        type (str): RewardType tag
        order_id (int): Originating order (optional)
    """
    __tablename__ = "reward_points"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    points = Column(Integer, nullable=False)
    type = Column(String, nullable=False)
    description = Column(String, nullable=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class RewardTier(Base):
    __tablename__ = "reward_tiers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    min_points = Column(Integer, nullable=False, default=0)
    points_multiplier = Column(Numeric(4, 2), nullable=False, default=1)
    benefits = Column(JSONType, nullable=False, default=list)
    color = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String, nullable=False)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    link = Column(String, nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (UniqueConstraint("user_id", "product_id", name="uq_review_user_product"),)

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    title = Column(String, nullable=True)
    comment = Column(Text, nullable=True)
    is_approved = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class SalonService(Base):
    __tablename__ = "salon_services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    category = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    price = Column(Numeric(12, 2), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    is_active = Column(Boolean, default=True, nullable=False)


class Stylist(Base):
    __tablename__ = "stylists"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    specialties = Column(JSONType, nullable=False, default=list)
    is_active = Column(Boolean, default=True, nullable=False)


class Appointment(Base):
    """
    Salon appointment booked by a customer.

    Attributes:
        appointment_number (str): Human-readable identifier (e.g. "APT-LZ3K2A-Q7")
        scheduled_at (datetime): Start date and time
        start_time (str): "HH:MM"
        end_time (str): "HH:MM", start plus the service duration
    """
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    appointment_number = Column(String, unique=True, index=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("salon_services.id"), nullable=False)
    stylist_id = Column(Integer, ForeignKey("stylists.id"), nullable=True)
    scheduled_at = Column(DateTime, nullable=False, index=True)
    start_time = Column(String, nullable=False)
    end_time = Column(String, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String, nullable=False, default=AppointmentStatus.PENDING.value)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    service = relationship("SalonService")
    stylist = relationship("Stylist")


class BlogPost(Base):
    """
    Beauty-tips article written in the back office.

    Attributes:
        slug (str): URL identifier derived from the title (unique)
        is_published (bool): Drafts are hidden from the public blog
        published_at (datetime): Set the first time the post is published
    """
    __tablename__ = "blog_posts"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    excerpt = Column(Text, nullable=True)
    content = Column(Text, nullable=False)
    cover_image = Column(String, nullable=True)
    author_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    is_published = Column(Boolean, default=False, nullable=False)
    is_featured = Column(Boolean, default=False, nullable=False)
    published_at = Column(DateTime, nullable=True, index=True)
    view_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    author = relationship("User")

    @property
    def author_name(self):
        return self.author.full_name if self.author else None
