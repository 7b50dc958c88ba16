"""Tests for coupon validation and coupon administration."""

from datetime import datetime, timedelta
from decimal import Decimal

from storefront import crud

from conftest import checkout_payload


class TestValidateCoupon:
    def test_valid_percentage(self, client, make_coupon):
        make_coupon("SAVE10", "PERCENTAGE", "10", description="Ten percent off")
        response = client.post("/coupons/validate", json={"code": "save10", "order_total": "80000"})
        assert response.status_code == 200
        data = response.json()
        assert data["code"] == "SAVE10"
        assert Decimal(data["discount"]) == Decimal("8000")
        assert data["free_shipping"] is False

    def test_unknown_code(self, client):
        response = client.post("/coupons/validate", json={"code": "NOPE", "order_total": "1000"})
        assert response.status_code == 404
        assert response.json()["detail"] == "Invalid coupon code"

    def test_expired(self, client, make_coupon):
        make_coupon("OLD", "FIXED_AMOUNT", "1000", end_date=datetime.utcnow() - timedelta(days=1))
        response = client.post("/coupons/validate", json={"code": "OLD", "order_total": "50000"})
        assert response.status_code == 400
        assert response.json()["error_type"] == "CouponError"

    def test_minimum_order(self, client, make_coupon):
        make_coupon("BIG", "FIXED_AMOUNT", "5000", min_order_amount=Decimal("60000"))
        response = client.post("/coupons/validate", json={"code": "BIG", "order_total": "59999"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Minimum order amount is UGX 60,000"

    def test_validation_does_not_redeem(self, client, db, make_coupon):
        make_coupon("SAVE10", "PERCENTAGE", "10", usage_limit=1)
        client.post("/coupons/validate", json={"code": "SAVE10", "order_total": "80000"})
        db.expire_all()
        assert crud.get_coupon_by_code(db, "SAVE10").used_count == 0


class TestAdminCoupons:
    def test_create_uppercases_code(self, client, admin_headers):
        response = client.post("/admin/coupons", json={
            "code": "summer25", "discount_type": "PERCENTAGE", "discount_value": "25",
            "max_discount_amount": "20000",
        }, headers=admin_headers)
        assert response.status_code == 201
        assert response.json()["code"] == "SUMMER25"

    def test_duplicate_code(self, client, admin_headers, make_coupon):
        make_coupon("SUMMER25")
        response = client.post("/admin/coupons", json={
            "code": "Summer25", "discount_type": "FIXED_AMOUNT", "discount_value": "1000",
        }, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "Coupon code already exists"

    def test_percentage_over_100(self, client, admin_headers):
        response = client.post("/admin/coupons", json={
            "code": "TOOMUCH", "discount_type": "PERCENTAGE", "discount_value": "150",
        }, headers=admin_headers)
        assert response.status_code == 400

    def test_end_before_start(self, client, admin_headers):
        start = datetime.utcnow()
        response = client.post("/admin/coupons", json={
            "code": "BACKWARDS", "discount_type": "FIXED_AMOUNT", "discount_value": "1000",
            "start_date": start.isoformat(), "end_date": (start - timedelta(days=1)).isoformat(),
        }, headers=admin_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "End date must be after start date"

    def test_list_and_update(self, client, admin_headers, make_coupon):
        coupon = make_coupon("SAVE10")
        make_coupon("OTHER", "FIXED_AMOUNT", "500", is_active=False)

        data = client.get("/admin/coupons?is_active=true", headers=admin_headers).json()
        assert [c["code"] for c in data["data"]] == ["SAVE10"]
        assert data["pagination"]["total"] == 1

        response = client.put(f"/admin/coupons/{coupon.id}", json={"discount_value": "15"}, headers=admin_headers)
        assert response.status_code == 200
        assert Decimal(response.json()["discount_value"]) == Decimal("15")

    def test_delete_unused_coupon(self, client, db, admin_headers, make_coupon):
        coupon = make_coupon("GONE")
        assert client.delete(f"/admin/coupons/{coupon.id}", headers=admin_headers).status_code == 204
        db.expire_all()
        assert crud.get_coupon_by_code(db, "GONE") is None

    def test_delete_used_coupon_deactivates(self, client, db, admin_headers, customer_headers, catalog, make_coupon):
        coupon = make_coupon("USED", "FIXED_AMOUNT", "1000")
        client.post("/orders", json=checkout_payload((catalog["cream"], 1), coupon_code="USED"),
                    headers=customer_headers)

        assert client.delete(f"/admin/coupons/{coupon.id}", headers=admin_headers).status_code == 204
        db.expire_all()
        kept = crud.get_coupon_by_code(db, "USED")
        assert kept is not None
        assert kept.is_active is False

    def test_staff_cannot_manage_coupons(self, client, staff_headers):
        assert client.get("/admin/coupons", headers=staff_headers).status_code == 403
