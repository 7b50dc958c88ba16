"""Pytest fixtures for storefront tests."""

import fnmatch
import os

# Must be set before the storefront modules read their configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["CACHE_ENABLED"] = "false"
os.environ["EMAIL_API_KEY"] = ""
os.environ["SECRET_KEY"] = "test-secret-key"

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from storefront import auth, cache, models
from storefront.clients import email_client
from storefront.database import Base, SessionLocal, engine
from storefront.main import app

PASSWORD = "password123"
PASSWORD_HASH = auth.get_password_hash(PASSWORD)


@pytest.fixture(autouse=True)
def reset_db():
    """Start every test from empty tables."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sent_emails(monkeypatch):
    """Replace the email provider with a recorder."""
    sent = []

    async def fake_send_email(to, subject, html, reply_to=None):
        sent.append({"to": to, "subject": subject, "html": html})
        return True

    monkeypatch.setattr(email_client, "send_email", fake_send_email)
    return sent


@pytest.fixture
def client(sent_emails):
    return TestClient(app)


def auth_headers(user):
    return {"Authorization": f"Bearer {auth.token_for_user(user)}"}


@pytest.fixture
def make_user(db):
    def _make(email="jane@example.com", role=models.Role.CUSTOMER.value, first_name="Jane", last_name="Doe"):
        user = models.User(
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone="+256700000001",
            password_hash=PASSWORD_HASH,
            role=role,
            is_active=True,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def customer(make_user):
    return make_user()


@pytest.fixture
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", role=models.Role.ADMIN.value, first_name="Ada")


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def staff_headers(make_user):
    return auth_headers(make_user(email="staff@example.com", role=models.Role.STAFF.value, first_name="Sam"))


@pytest.fixture
def catalog(db):
    """A category, a brand and three products; the lipstick has a single unit left."""
    category = models.Category(name="Skincare", slug="skincare")
    brand = models.Brand(name="Glow Co", slug="glow-co")
    db.add_all([category, brand])
    db.flush()

    serum = models.Product(
        name="Glow Serum", slug="glow-serum", sku="SER-001", price=Decimal("50000"),
        stock_quantity=10, weight_kg=Decimal("0.5"), category_id=category.id, brand_id=brand.id,
        is_featured=True,
    )
    lipstick = models.Product(
        name="Matte Lipstick", slug="matte-lipstick", sku="LIP-001", price=Decimal("25000"),
        stock_quantity=1, category_id=category.id,
    )
    cream = models.Product(
        name="Night Cream", slug="night-cream", sku="CRM-001", price=Decimal("20000"),
        stock_quantity=50, brand_id=brand.id, sold_count=7,
    )
    db.add_all([serum, lipstick, cream])
    db.commit()
    return {"category": category, "brand": brand, "serum": serum, "lipstick": lipstick, "cream": cream}


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE10", discount_type="PERCENTAGE", discount_value="10", **kwargs):
        coupon = models.Coupon(
            code=code,
            discount_type=discount_type,
            discount_value=Decimal(discount_value),
            **kwargs,
        )
        db.add(coupon)
        db.commit()
        db.refresh(coupon)
        return coupon
    return _make


@pytest.fixture
def shipping_zone(db):
    zone = models.ShippingZone(
        name="Kampala Central", district="Kampala", region="Central", distance_km=5,
        base_fee=Decimal("5000"), per_kg_fee=Decimal("1000"), estimated_days="1-2 days",
    )
    db.add(zone)
    db.commit()
    db.refresh(zone)
    return zone


@pytest.fixture
def tiers(db):
    bronze = models.RewardTier(name="Bronze", min_points=0, points_multiplier=Decimal("1"), benefits=["Birthday gift"])
    gold = models.RewardTier(name="Gold", min_points=500, points_multiplier=Decimal("1.5"), benefits=["Free shipping"])
    platinum = models.RewardTier(name="Platinum", min_points=2000, points_multiplier=Decimal("2"))
    db.add_all([bronze, gold, platinum])
    db.commit()
    return {"bronze": bronze, "gold": gold, "platinum": platinum}


@pytest.fixture
def give_points(db):
    def _give(user, points, entry_type=models.RewardType.BONUS.value):
        db.add(models.RewardPoint(user_id=user.id, points=points, type=entry_type, description="Test credit"))
        db.commit()
    return _give


def checkout_payload(*lines, **overrides):
    """Build a checkout body from (product, quantity) pairs."""
    payload = {
        "items": [{"product_id": product.id, "quantity": quantity} for product, quantity in lines],
        "shipping_address": {
            "full_name": "Jane Doe",
            "phone": "+256700000001",
            "address_line": "Plot 12 Kampala Road",
            "city": "Kampala",
            "district": "Kampala",
        },
        "shipping_method": "STANDARD",
        "payment_method": "MOBILE_MONEY",
    }
    payload.update(overrides)
    return payload


def future(days=7):
    return (datetime.utcnow() + timedelta(days=days)).date()


class FakeRedis:
    """In-memory stand-in for the redis client calls the cache makes."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value

    def delete(self, *keys):
        for key in keys:
            self.store.pop(key, None)

    def keys(self, pattern):
        return [key for key in self.store if fnmatch.fnmatch(key, pattern)]


@pytest.fixture
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(cache, "redis_client", fake)
    monkeypatch.setattr(cache, "CACHE_ENABLED", True)
    return fake
