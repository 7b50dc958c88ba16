"""
Pydantic schemas for request/response validation in the Storefront service.

These schemas define the structure of data for API requests and responses.
"""
from datetime import datetime, date
from typing import Optional, List, Dict
from decimal import Decimal
from pydantic import BaseModel, EmailStr, Field, field_validator

from .models import (
    OrderStatus, DiscountType, RewardType, AppointmentStatus
)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_more: bool = False

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        total_pages = (total + limit - 1) // limit if limit else 0
        return cls(page=page, limit=limit, total=total, total_pages=total_pages, has_more=page < total_pages)


# ---------- Auth / users ----------

class UserRegister(BaseModel):
    """Schema for customer registration."""
    first_name: str = Field(..., min_length=1)
    last_name: str = ""
    email: EmailStr
    phone: Optional[str] = None
    password: str = Field(..., min_length=8, description="Password must be at least 8 characters")


class UserLogin(BaseModel):
    """Schema for user login."""
    email: EmailStr
    password: str


class Token(BaseModel):
    """Schema for JWT token response."""
    access_token: str
    token_type: str = "bearer"


class User(BaseModel):
    """Schema for user responses, excludes the password hash."""
    id: int
    first_name: str
    last_name: str
    email: EmailStr
    phone: Optional[str] = None
    role: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class UserProfile(User):
    """Current user with loyalty information."""
    reward_points: int = 0
    tier: Optional[str] = None


class CustomerSummary(BaseModel):
    """Back-office customer row."""
    id: int
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None
    is_active: bool
    total_orders: int = 0
    created_at: Optional[datetime] = None


class CustomerList(BaseModel):
    data: List[CustomerSummary]
    pagination: Pagination
    active: int = 0


# ---------- Catalog ----------

class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    description: Optional[str] = None
    is_active: bool = True


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class Category(CategoryCreate):
    id: int

    class Config:
        from_attributes = True


class BrandCreate(BaseModel):
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    is_active: bool = True


class Brand(BrandCreate):
    id: int

    class Config:
        from_attributes = True


class ProductBase(BaseModel):
    """Base schema with common product attributes."""
    name: str = Field(..., min_length=1)
    slug: str = Field(..., min_length=1)
    sku: str = Field(..., min_length=1)
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    compare_at_price: Optional[Decimal] = Field(default=None, ge=0)
    stock_quantity: int = Field(default=0, ge=0)
    weight_kg: Optional[Decimal] = Field(default=None, ge=0)
    image_url: Optional[str] = None
    is_active: bool = True
    is_featured: bool = False
    is_new: bool = False
    is_bestseller: bool = False
    is_on_sale: bool = False
    category_id: Optional[int] = None
    brand_id: Optional[int] = None


class ProductCreate(ProductBase):
    pass


class ProductUpdate(BaseModel):
    """Schema for updating an existing product. All fields are optional."""
    name: Optional[str] = None
    slug: Optional[str] = None
    sku: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = Field(default=None, ge=0)
    compare_at_price: Optional[Decimal] = Field(default=None, ge=0)
    stock_quantity: Optional[int] = Field(default=None, ge=0)
    weight_kg: Optional[Decimal] = Field(default=None, ge=0)
    image_url: Optional[str] = None
    is_active: Optional[bool] = None
    is_featured: Optional[bool] = None
    is_new: Optional[bool] = None
    is_bestseller: Optional[bool] = None
    is_on_sale: Optional[bool] = None
    category_id: Optional[int] = None
    brand_id: Optional[int] = None


class Product(ProductBase):
    id: int
    sold_count: int
    created_at: datetime

    class Config:
        from_attributes = True


class ProductDetail(Product):
    average_rating: float = 0.0
    review_count: int = 0
    category: Optional[Category] = None
    brand: Optional[Brand] = None


class ProductList(BaseModel):
    data: List[Product]
    pagination: Pagination


# ---------- Cart ----------

class CartItemCreate(BaseModel):
    product_id: int
    quantity: int = Field(default=1, gt=0)
    variant_name: Optional[str] = None


class CartItemUpdate(BaseModel):
    quantity: int = Field(..., gt=0)


class CartLine(BaseModel):
    id: int
    product_id: int
    product_name: str
    product_image: Optional[str] = None
    variant_name: Optional[str] = None
    price: Decimal
    compare_at_price: Optional[Decimal] = None
    quantity: int
    stock_quantity: int


class Cart(BaseModel):
    items: List[CartLine]
    subtotal: Decimal
    item_count: int


# ---------- Shipping ----------

class ShippingZoneCreate(BaseModel):
    name: str = Field(..., min_length=1)
    district: Optional[str] = None
    region: Optional[str] = None
    distance_km: Optional[int] = None
    base_fee: Decimal = Field(default=Decimal("0"), ge=0)
    per_kg_fee: Decimal = Field(default=Decimal("0"), ge=0)
    estimated_days: Optional[str] = None
    is_active: bool = True


class ShippingZone(ShippingZoneCreate):
    id: int

    class Config:
        from_attributes = True


class ShippingZones(BaseModel):
    zones: List[ShippingZone]
    grouped: Dict[str, List[ShippingZone]]


class ShippingQuoteRequest(BaseModel):
    zone_id: int
    weight_kg: Decimal = Field(default=Decimal("1"), gt=0)


class ShippingQuote(BaseModel):
    zone_name: str
    district: Optional[str] = None
    distance_km: Optional[int] = None
    shipping_cost: Decimal
    estimated_days: Optional[str] = None


# ---------- Orders / checkout ----------

class ShippingAddress(BaseModel):
    full_name: str
    phone: Optional[str] = None
    address_line: str
    city: Optional[str] = None
    district: Optional[str] = None


class CheckoutItem(BaseModel):
    """Schema for a line submitted at checkout."""
    product_id: int
    quantity: int = Field(..., gt=0, description="Quantity ordered")
    variant_name: Optional[str] = None
    image: Optional[str] = None


class CheckoutRequest(BaseModel):
    """Schema for placing an order."""
    items: List[CheckoutItem] = Field(default_factory=list)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    shipping_address: Optional[ShippingAddress] = None
    shipping_zone_id: Optional[int] = None
    shipping_method: str = "STANDARD"
    shipping_cost: Decimal = Field(default=Decimal("0"), ge=0)
    payment_method: str = "MOBILE_MONEY"
    notes: Optional[str] = None
    coupon_code: Optional[str] = None
    use_reward_points: bool = False

    @field_validator("shipping_method")
    @classmethod
    def check_shipping_method(cls, v: str) -> str:
        v = v.upper()
        if v not in ("STANDARD", "EXPRESS", "PICKUP"):
            raise ValueError("shipping_method must be STANDARD, EXPRESS or PICKUP")
        return v

    @field_validator("payment_method")
    @classmethod
    def check_payment_method(cls, v: str) -> str:
        v = v.upper()
        if v not in ("MOBILE_MONEY", "CASH_ON_DELIVERY", "CARD"):
            raise ValueError("payment_method must be MOBILE_MONEY, CASH_ON_DELIVERY or CARD")
        return v


class OrderItem(BaseModel):
    """Schema for an order line item snapshot."""
    id: int
    product_id: Optional[int] = None
    product_name: str
    product_sku: Optional[str] = None
    product_image: Optional[str] = None
    variant_name: Optional[str] = None
    price: Decimal
    quantity: int
    total: Decimal

    class Config:
        from_attributes = True


class OrderStatusHistory(BaseModel):
    """
    Schema for order status history entries.

    Attributes:
        status (str): Status the order moved into
        note (str): Human-readable description
        created_by (int): User who triggered the change (optional)
        created_at (datetime): When the change happened
    """
    id: int
    status: str
    note: Optional[str] = None
    created_by: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class Order(BaseModel):
    """
    Schema for order responses, includes line items and status history.
    """
    id: int
    order_number: str
    user_id: int
    email: Optional[str] = None
    phone: Optional[str] = None
    status: str
    subtotal: Decimal
    discount_amount: Decimal
    points_used: int
    points_discount: Decimal
    tax_amount: Decimal
    shipping_cost: Decimal
    total_amount: Decimal
    currency: str
    shipping_method: str
    payment_method: str
    notes: Optional[str] = None
    shipping_address: Optional[dict] = None
    shipping_zone_id: Optional[int] = None
    coupon_code: Optional[str] = None
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[str] = None
    processed_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime
    items: List[OrderItem] = Field(default_factory=list)
    status_history: List[OrderStatusHistory] = Field(default_factory=list)

    class Config:
        from_attributes = True


class OrderList(BaseModel):
    data: List[Order]
    pagination: Pagination


class OrderStatusUpdate(BaseModel):
    """Schema for an admin status change."""
    status: OrderStatus
    note: Optional[str] = None
    tracking_number: Optional[str] = None


class TrackingHistory(BaseModel):
    status: str
    note: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TrackingInfo(BaseModel):
    """Public tracking view of an order."""
    order_number: str
    status: str
    created_at: datetime
    estimated_delivery: Optional[str] = None
    tracking_number: Optional[str] = None
    shipping_method: str
    status_history: List[TrackingHistory]

    class Config:
        from_attributes = True


# ---------- Coupons ----------

class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1)
    order_total: Decimal = Field(..., ge=0)


class CouponValidation(BaseModel):
    code: str
    discount_type: str
    value: Decimal
    discount: Decimal
    free_shipping: bool = False
    description: Optional[str] = None


class CouponCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal = Field(..., ge=0)
    min_order_amount: Optional[Decimal] = Field(default=None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    usage_limit: Optional[int] = Field(default=None, gt=0)
    per_user_limit: Optional[int] = Field(default=1, gt=0)
    is_active: bool = True
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class CouponUpdate(BaseModel):
    """Schema for updating a coupon. All fields are optional."""
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(default=None, ge=0)
    min_order_amount: Optional[Decimal] = Field(default=None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    usage_limit: Optional[int] = Field(default=None, gt=0)
    per_user_limit: Optional[int] = Field(default=None, gt=0)
    is_active: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class Coupon(BaseModel):
    id: int
    code: str
    description: Optional[str] = None
    discount_type: str
    discount_value: Decimal
    min_order_amount: Optional[Decimal] = None
    max_discount_amount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    per_user_limit: Optional[int] = None
    used_count: int
    is_active: bool
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CouponList(BaseModel):
    data: List[Coupon]
    pagination: Pagination


# ---------- Rewards ----------

class RewardTierCreate(BaseModel):
    name: str = Field(..., min_length=1)
    min_points: int = Field(default=0, ge=0)
    points_multiplier: Decimal = Field(default=Decimal("1"), gt=0)
    benefits: List[str] = Field(default_factory=list)
    color: Optional[str] = None
    is_active: bool = True


class RewardTier(RewardTierCreate):
    id: int

    class Config:
        from_attributes = True


class RewardEntry(BaseModel):
    id: int
    points: int
    type: str
    description: Optional[str] = None
    order_id: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RewardSummary(BaseModel):
    balance: int
    tier: Optional[RewardTier] = None
    next_tier: Optional[RewardTier] = None
    points_to_next_tier: Optional[int] = None
    redeemable_value: Decimal
    history: List[RewardEntry]


class RewardAdjust(BaseModel):
    user_id: int
    points: int
    type: RewardType = RewardType.ADJUSTMENT
    description: Optional[str] = None

    @field_validator("points")
    @classmethod
    def non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("points must be non-zero")
        return v


# ---------- Notifications ----------

class Notification(BaseModel):
    id: int
    type: str
    title: str
    message: str
    link: Optional[str] = None
    is_read: bool
    created_at: datetime

    class Config:
        from_attributes = True


# ---------- Reviews ----------

class ReviewCreate(BaseModel):
    product_id: int
    rating: int = Field(..., ge=1, le=5)
    title: Optional[str] = None
    comment: Optional[str] = None


class Review(BaseModel):
    id: int
    product_id: int
    user_id: int
    rating: int
    title: Optional[str] = None
    comment: Optional[str] = None
    is_approved: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ReviewSummary(BaseModel):
    reviews: List[Review]
    average_rating: float
    total_reviews: int
    distribution: Dict[int, int]


class ReviewModeration(BaseModel):
    is_approved: bool


# ---------- Salon ----------

class SalonServiceCreate(BaseModel):
    name: str = Field(..., min_length=1)
    category: Optional[str] = None
    description: Optional[str] = None
    price: Decimal = Field(..., ge=0)
    duration_minutes: int = Field(default=60, gt=0)
    is_active: bool = True


class SalonService(SalonServiceCreate):
    id: int

    class Config:
        from_attributes = True


class StylistCreate(BaseModel):
    name: str = Field(..., min_length=1)
    specialties: List[str] = Field(default_factory=list)
    is_active: bool = True


class Stylist(StylistCreate):
    id: int

    class Config:
        from_attributes = True


class AppointmentCreate(BaseModel):
    service_id: int
    stylist_id: Optional[int] = None
    appointment_date: date
    time: str = Field(..., pattern=r"^([01]\d|2[0-3]):[0-5]\d$", description="Start time, HH:MM")
    notes: Optional[str] = None


class Appointment(BaseModel):
    id: int
    appointment_number: str
    user_id: int
    service_id: int
    stylist_id: Optional[int] = None
    scheduled_at: datetime
    start_time: str
    end_time: str
    total_amount: Decimal
    status: str
    notes: Optional[str] = None
    created_at: datetime
    service: Optional[SalonService] = None
    stylist: Optional[Stylist] = None

    class Config:
        from_attributes = True


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


# ---------- Blog ----------

class BlogPostCreate(BaseModel):
    title: str = Field(..., min_length=1)
    slug: Optional[str] = Field(default=None, description="Derived from the title when omitted")
    excerpt: Optional[str] = None
    content: str = Field(..., min_length=1)
    cover_image: Optional[str] = None
    is_published: bool = False
    is_featured: bool = False


class BlogPostUpdate(BaseModel):
    """Schema for updating a blog post. All fields are optional."""
    title: Optional[str] = Field(default=None, min_length=1)
    slug: Optional[str] = None
    excerpt: Optional[str] = None
    content: Optional[str] = Field(default=None, min_length=1)
    cover_image: Optional[str] = None
    is_published: Optional[bool] = None
    is_featured: Optional[bool] = None


class BlogPostSummary(BaseModel):
    id: int
    title: str
    slug: str
    excerpt: Optional[str] = None
    cover_image: Optional[str] = None
    author_name: Optional[str] = None
    is_published: bool
    is_featured: bool
    published_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class BlogPost(BlogPostSummary):
    content: str
    view_count: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None


class BlogPostList(BaseModel):
    data: List[BlogPostSummary]
    pagination: Pagination
