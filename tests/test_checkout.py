"""Tests for checkout and order placement."""

from decimal import Decimal

from storefront import crud, models
from storefront.clients import email_client

from conftest import auth_headers, checkout_payload


def order_count(db):
    return db.query(models.Order).count()


class TestCheckoutAuth:
    def test_unauthenticated_checkout_rejected(self, client, db, catalog):
        response = client.post("/orders", json=checkout_payload((catalog["serum"], 1)))
        assert response.status_code == 401
        assert order_count(db) == 0

    def test_invalid_token_rejected(self, client, db, catalog):
        response = client.post(
            "/orders",
            json=checkout_payload((catalog["serum"], 1)),
            headers={"Authorization": "Bearer not-a-token"},
        )
        assert response.status_code == 401
        assert order_count(db) == 0


class TestCheckoutValidation:
    def test_empty_cart(self, client, db, customer_headers):
        response = client.post("/orders", json=checkout_payload(), headers=customer_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Cart is empty"
        assert order_count(db) == 0

    def test_unknown_product(self, client, db, customer_headers, catalog):
        payload = checkout_payload((catalog["serum"], 1))
        payload["items"].append({"product_id": 9999, "quantity": 1})
        response = client.post("/orders", json=payload, headers=customer_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Some products are no longer available"

    def test_inactive_product(self, client, db, customer_headers, catalog):
        catalog["cream"].is_active = False
        db.commit()
        response = client.post("/orders", json=checkout_payload((catalog["cream"], 1)), headers=customer_headers)
        assert response.status_code == 400

    def test_insufficient_stock(self, client, db, customer_headers, catalog):
        response = client.post("/orders", json=checkout_payload((catalog["lipstick"], 2)), headers=customer_headers)
        assert response.status_code == 400
        assert "Insufficient stock for 'Matte Lipstick'" in response.json()["detail"]
        assert order_count(db) == 0

    def test_invalid_payment_method(self, client, customer_headers, catalog):
        response = client.post(
            "/orders",
            json=checkout_payload((catalog["serum"], 1), payment_method="BITCOIN"),
            headers=customer_headers,
        )
        assert response.status_code == 422


class TestPlaceOrder:
    def test_reference_scenario(self, client, db, customer, customer_headers, catalog, make_coupon, sent_emails):
        make_coupon("SAVE10", "PERCENTAGE", "10")
        payload = checkout_payload((catalog["serum"], 2), coupon_code="save10", shipping_cost="10000")

        response = client.post("/orders", json=payload, headers=customer_headers)

        assert response.status_code == 201
        data = response.json()
        assert Decimal(data["subtotal"]) == Decimal("100000")
        assert Decimal(data["discount_amount"]) == Decimal("10000")
        assert Decimal(data["tax_amount"]) == Decimal("16200")
        assert Decimal(data["shipping_cost"]) == Decimal("10000")
        assert Decimal(data["total_amount"]) == Decimal("116200")
        assert data["status"] == "PENDING"
        assert data["coupon_code"] == "SAVE10"
        assert data["order_number"].startswith("CHK-")
        assert data["email"] == customer.email

        assert len(data["items"]) == 1
        assert data["items"][0]["product_name"] == "Glow Serum"
        assert data["items"][0]["quantity"] == 2
        assert Decimal(data["items"][0]["total"]) == Decimal("100000")

        assert [h["status"] for h in data["status_history"]] == ["PENDING"]
        assert data["status_history"][0]["note"] == "Order placed"

        db.expire_all()
        serum = crud.get_product(db, catalog["serum"].id)
        assert serum.stock_quantity == 8
        assert serum.sold_count == 2
        assert crud.get_coupon_by_code(db, "SAVE10").used_count == 1

        assert len(sent_emails) == 1
        assert sent_emails[0]["to"] == [customer.email]
        assert data["order_number"] in sent_emails[0]["subject"]

        notifications = db.query(models.Notification).filter_by(user_id=customer.id).all()
        assert len(notifications) == 1
        assert notifications[0].type == "ORDER_PLACED"
        assert notifications[0].link == f"/account/orders/{data['id']}"

    def test_cart_cleared_after_checkout(self, client, db, customer_headers, catalog):
        client.post("/cart", json={"product_id": catalog["serum"].id, "quantity": 1}, headers=customer_headers)
        response = client.post("/orders", json=checkout_payload((catalog["serum"], 1)), headers=customer_headers)
        assert response.status_code == 201

        cart = client.get("/cart", headers=customer_headers).json()
        assert cart["items"] == []

    def test_shipping_from_zone(self, client, customer_headers, catalog, shipping_zone):
        # 2 x 0.5 kg serum + 1 lipstick without weight (1 kg) = 2 kg -> 5,000 + 2 x 1,000
        payload = checkout_payload(
            (catalog["serum"], 2), (catalog["lipstick"], 1),
            shipping_zone_id=shipping_zone.id, shipping_cost="999999",
        )
        response = client.post("/orders", json=payload, headers=customer_headers)
        assert response.status_code == 201
        data = response.json()
        assert Decimal(data["shipping_cost"]) == Decimal("7000")
        assert data["estimated_delivery"] == "1-2 days"

    def test_unknown_shipping_zone(self, client, customer_headers, catalog):
        payload = checkout_payload((catalog["serum"], 1), shipping_zone_id=12345)
        response = client.post("/orders", json=payload, headers=customer_headers)
        assert response.status_code == 404

    def test_free_shipping_coupon(self, client, customer_headers, catalog, make_coupon):
        make_coupon("SHIPFREE", "FREE_SHIPPING", "0")
        payload = checkout_payload((catalog["serum"], 1), coupon_code="SHIPFREE", shipping_cost="15000")
        data = client.post("/orders", json=payload, headers=customer_headers).json()
        assert Decimal(data["shipping_cost"]) == Decimal("0")
        assert Decimal(data["discount_amount"]) == Decimal("0")
        assert Decimal(data["total_amount"]) == Decimal("59000")

    def test_email_failure_does_not_fail_order(self, client, db, customer_headers, catalog, monkeypatch):
        async def broken_send_email(*args, **kwargs):
            raise RuntimeError("provider down")

        monkeypatch.setattr(email_client, "send_email", broken_send_email)
        response = client.post("/orders", json=checkout_payload((catalog["serum"], 1)), headers=customer_headers)
        assert response.status_code == 201
        assert order_count(db) == 1


class TestCoupons:
    def test_unknown_coupon(self, client, db, customer_headers, catalog):
        payload = checkout_payload((catalog["serum"], 1), coupon_code="NOPE")
        response = client.post("/orders", json=payload, headers=customer_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid coupon code"
        assert order_count(db) == 0

    def test_minimum_order_not_met(self, client, db, customer_headers, catalog, make_coupon):
        make_coupon("BIG", "FIXED_AMOUNT", "5000", min_order_amount=Decimal("60000"))
        payload = checkout_payload((catalog["serum"], 1), coupon_code="BIG")
        response = client.post("/orders", json=payload, headers=customer_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Minimum order amount is UGX 60,000"
        assert order_count(db) == 0

    def test_usage_limit(self, client, db, make_user, catalog, make_coupon):
        make_coupon("ONCE", "FIXED_AMOUNT", "1000", usage_limit=1)
        first = auth_headers(make_user(email="first@example.com"))
        second = auth_headers(make_user(email="second@example.com"))

        assert client.post("/orders", json=checkout_payload((catalog["cream"], 1), coupon_code="ONCE"),
                           headers=first).status_code == 201
        response = client.post("/orders", json=checkout_payload((catalog["cream"], 1), coupon_code="ONCE"),
                               headers=second)
        assert response.status_code == 400
        assert "usage limit" in response.json()["detail"]

        db.expire_all()
        assert crud.get_coupon_by_code(db, "ONCE").used_count == 1

    def test_per_user_limit(self, client, customer_headers, catalog, make_coupon):
        make_coupon("WELCOME", "FIXED_AMOUNT", "1000", per_user_limit=1)
        payload = checkout_payload((catalog["cream"], 1), coupon_code="WELCOME")
        assert client.post("/orders", json=payload, headers=customer_headers).status_code == 201
        response = client.post("/orders", json=payload, headers=customer_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "You have already used this coupon"


class TestRewardPoints:
    def test_points_capped_at_remaining_payable(self, client, db, customer, customer_headers, catalog, give_points):
        give_points(customer, 1000)  # worth 50,000
        payload = checkout_payload((catalog["cream"], 1), use_reward_points=True, shipping_cost="5000")

        data = client.post("/orders", json=payload, headers=customer_headers).json()

        assert Decimal(data["points_discount"]) == Decimal("20000")
        assert data["points_used"] == 400
        assert Decimal(data["tax_amount"]) == Decimal("0")
        assert Decimal(data["total_amount"]) == Decimal("5000")

        db.expire_all()
        assert crud.get_reward_balance(db, customer.id) == 600
        redeemed = crud.get_order_reward_entries(db, data["id"], "REDEEMED")
        assert [entry.points for entry in redeemed] == [-400]

    def test_points_ignored_without_opt_in(self, client, db, customer, customer_headers, catalog, give_points):
        give_points(customer, 1000)
        data = client.post("/orders", json=checkout_payload((catalog["cream"], 1)), headers=customer_headers).json()
        assert data["points_used"] == 0
        assert crud.get_reward_balance(db, customer.id) == 1000


class TestStock:
    def test_last_unit_sold_once(self, client, db, make_user, catalog):
        buyers = [auth_headers(make_user(email=f"buyer{i}@example.com")) for i in range(2)]
        responses = [
            client.post("/orders", json=checkout_payload((catalog["lipstick"], 1)), headers=headers)
            for headers in buyers
        ]

        assert sorted(r.status_code for r in responses) == [201, 400]
        db.expire_all()
        lipstick = crud.get_product(db, catalog["lipstick"].id)
        assert lipstick.stock_quantity == 0
        assert order_count(db) == 1

    def test_conditional_decrement(self, db, catalog):
        product_id = catalog["lipstick"].id
        assert crud.decrement_stock(db, product_id, 1) is True
        assert crud.decrement_stock(db, product_id, 1) is False
        db.commit()
        db.expire_all()
        assert crud.get_product(db, product_id).stock_quantity == 0

    def test_failed_decrement_rolls_back_everything(self, client, db, customer, customer_headers, catalog,
                                                    make_coupon, give_points, monkeypatch):
        make_coupon("SAVE10", "PERCENTAGE", "10")
        give_points(customer, 200)
        client.post("/cart", json={"product_id": catalog["serum"].id, "quantity": 1}, headers=customer_headers)

        # Another checkout takes the stock between validation and decrement
        monkeypatch.setattr(crud, "decrement_stock", lambda db, product_id, quantity: False)
        payload = checkout_payload((catalog["serum"], 1), coupon_code="SAVE10", use_reward_points=True)
        response = client.post("/orders", json=payload, headers=customer_headers)

        assert response.status_code == 400
        db.expire_all()
        assert order_count(db) == 0
        assert db.query(models.OrderItem).count() == 0
        assert db.query(models.OrderStatusHistory).count() == 0
        assert crud.get_coupon_by_code(db, "SAVE10").used_count == 0
        assert crud.get_reward_balance(db, customer.id) == 200
        assert len(crud.get_cart_items(db, customer.id)) == 1

    def test_unexpected_error_returns_500(self, client, db, customer_headers, catalog, monkeypatch):
        def explode(db, user_id):
            raise RuntimeError("disk full")

        monkeypatch.setattr(crud, "clear_cart", explode)
        response = client.post("/orders", json=checkout_payload((catalog["serum"], 1)), headers=customer_headers)
        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to create order"
        db.expire_all()
        assert order_count(db) == 0
        assert crud.get_product(db, catalog["serum"].id).stock_quantity == 10


class TestProductCache:
    def test_detail_shows_stock_after_checkout(self, client, customer_headers, catalog, fake_redis):
        assert client.get("/products/glow-serum").json()["stock_quantity"] == 10
        assert "product:glow-serum" in fake_redis.store

        order = client.post("/orders", json=checkout_payload((catalog["serum"], 3)), headers=customer_headers)
        assert order.status_code == 201

        detail = client.get("/products/glow-serum").json()
        assert detail["stock_quantity"] == 7
        assert detail["sold_count"] == 3

    def test_detail_shows_restock_after_cancel(self, client, customer_headers, catalog, fake_redis):
        order = client.post("/orders", json=checkout_payload((catalog["serum"], 3)), headers=customer_headers).json()
        assert client.get("/products/glow-serum").json()["stock_quantity"] == 7

        response = client.post(f"/orders/{order['order_number']}/cancel", headers=customer_headers)
        assert response.status_code == 200

        detail = client.get("/products/glow-serum").json()
        assert detail["stock_quantity"] == 10
        assert detail["sold_count"] == 0
