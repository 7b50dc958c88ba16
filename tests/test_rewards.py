"""Tests for the loyalty endpoints and manual point adjustments."""

from decimal import Decimal

from storefront import crud


class TestRewardTiers:
    def test_tiers_ordered_by_minimum(self, client, tiers):
        data = client.get("/rewards/tiers").json()
        assert [t["name"] for t in data] == ["Bronze", "Gold", "Platinum"]
        assert data[1]["benefits"] == ["Free shipping"]

    def test_inactive_tiers_hidden(self, client, db, tiers):
        tiers["platinum"].is_active = False
        db.commit()
        assert [t["name"] for t in client.get("/rewards/tiers").json()] == ["Bronze", "Gold"]

    def test_admin_creates_tier(self, client, admin_headers):
        response = client.post("/admin/rewards/tiers", json={
            "name": "Diamond", "min_points": 5000, "points_multiplier": "3",
        }, headers=admin_headers)
        assert response.status_code == 201
        assert [t["name"] for t in client.get("/rewards/tiers").json()] == ["Diamond"]


class TestRewardSummary:
    def test_summary(self, client, customer, customer_headers, tiers, give_points):
        give_points(customer, 750)
        data = client.get("/rewards/me", headers=customer_headers).json()
        assert data["balance"] == 750
        assert data["tier"]["name"] == "Gold"
        assert data["next_tier"]["name"] == "Platinum"
        assert data["points_to_next_tier"] == 1250
        # 7 blocks of 100 points at 5,000 each
        assert Decimal(data["redeemable_value"]) == Decimal("35000")
        assert [entry["points"] for entry in data["history"]] == [750]

    def test_summary_without_tiers(self, client, customer_headers):
        data = client.get("/rewards/me", headers=customer_headers).json()
        assert data["balance"] == 0
        assert data["tier"] is None
        assert data["next_tier"] is None
        assert data["points_to_next_tier"] is None

    def test_requires_auth(self, client):
        assert client.get("/rewards/me").status_code == 401


class TestAdjustPoints:
    def test_credit(self, client, db, customer, admin_headers):
        response = client.post("/admin/rewards/adjust", json={
            "user_id": customer.id, "points": 250, "type": "BONUS", "description": "Birthday bonus",
        }, headers=admin_headers)
        assert response.status_code == 201
        assert response.json()["type"] == "BONUS"
        assert crud.get_reward_balance(db, customer.id) == 250

    def test_debit_cannot_go_negative(self, client, db, customer, admin_headers, give_points):
        give_points(customer, 100)
        response = client.post("/admin/rewards/adjust", json={"user_id": customer.id, "points": -150},
                               headers=admin_headers)
        assert response.status_code == 400
        assert crud.get_reward_balance(db, customer.id) == 100

    def test_debit_within_balance(self, client, db, customer, admin_headers, give_points):
        give_points(customer, 100)
        response = client.post("/admin/rewards/adjust", json={"user_id": customer.id, "points": -40},
                               headers=admin_headers)
        assert response.status_code == 201
        assert response.json()["type"] == "ADJUSTMENT"
        assert crud.get_reward_balance(db, customer.id) == 60

    def test_ledger_types_reserved_for_system(self, client, customer, admin_headers):
        response = client.post("/admin/rewards/adjust", json={
            "user_id": customer.id, "points": 100, "type": "EARNED_PURCHASE",
        }, headers=admin_headers)
        assert response.status_code == 400

    def test_zero_points_rejected(self, client, customer, admin_headers):
        response = client.post("/admin/rewards/adjust", json={"user_id": customer.id, "points": 0},
                               headers=admin_headers)
        assert response.status_code == 422

    def test_unknown_user(self, client, admin_headers):
        response = client.post("/admin/rewards/adjust", json={"user_id": 9999, "points": 10},
                               headers=admin_headers)
        assert response.status_code == 404

    def test_staff_forbidden(self, client, customer, staff_headers):
        response = client.post("/admin/rewards/adjust", json={"user_id": customer.id, "points": 10},
                               headers=staff_headers)
        assert response.status_code == 403
