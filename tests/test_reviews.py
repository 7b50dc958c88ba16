"""Tests for product reviews and moderation."""

from conftest import auth_headers


def review(product, rating=5, **extra):
    return {"product_id": product.id, "rating": rating, **extra}


class TestSubmitReview:
    def test_review_hidden_until_approved(self, client, customer_headers, catalog):
        response = client.post("/reviews", json=review(catalog["serum"], title="Love it"), headers=customer_headers)
        assert response.status_code == 201
        assert response.json()["is_approved"] is False

        summary = client.get(f"/products/{catalog['serum'].id}/reviews").json()
        assert summary["total_reviews"] == 0
        assert summary["reviews"] == []

    def test_one_review_per_product(self, client, customer_headers, catalog):
        client.post("/reviews", json=review(catalog["serum"]), headers=customer_headers)
        response = client.post("/reviews", json=review(catalog["serum"], rating=1), headers=customer_headers)
        assert response.status_code == 400
        assert response.json()["detail"] == "You have already reviewed this product"

    def test_rating_bounds(self, client, customer_headers, catalog):
        response = client.post("/reviews", json=review(catalog["serum"], rating=6), headers=customer_headers)
        assert response.status_code == 422

    def test_unknown_product(self, client, customer_headers):
        response = client.post("/reviews", json={"product_id": 9999, "rating": 4}, headers=customer_headers)
        assert response.status_code == 404


class TestModeration:
    def test_approved_reviews_summarised(self, client, make_user, staff_headers, catalog):
        product = catalog["serum"]
        for i, rating in enumerate((5, 4, 4)):
            headers = auth_headers(make_user(email=f"reviewer{i}@example.com"))
            created = client.post("/reviews", json=review(product, rating=rating), headers=headers).json()
            response = client.put(f"/admin/reviews/{created['id']}", json={"is_approved": True},
                                  headers=staff_headers)
            assert response.status_code == 200

        summary = client.get(f"/products/{product.id}/reviews").json()
        assert summary["total_reviews"] == 3
        assert summary["average_rating"] == 4.3
        assert summary["distribution"] == {"1": 0, "2": 0, "3": 0, "4": 2, "5": 1}

        detail = client.get(f"/products/{product.slug}").json()
        assert detail["review_count"] == 3

    def test_pending_queue(self, client, customer_headers, admin_headers, catalog):
        client.post("/reviews", json=review(catalog["cream"]), headers=customer_headers)
        pending = client.get("/admin/reviews?approved=false", headers=admin_headers).json()
        assert len(pending) == 1

    def test_delete(self, client, customer_headers, admin_headers, catalog):
        created = client.post("/reviews", json=review(catalog["cream"]), headers=customer_headers).json()
        assert client.delete(f"/admin/reviews/{created['id']}", headers=admin_headers).status_code == 204
        assert client.delete(f"/admin/reviews/{created['id']}", headers=admin_headers).status_code == 404

    def test_customer_cannot_moderate(self, client, customer_headers, catalog):
        created = client.post("/reviews", json=review(catalog["cream"]), headers=customer_headers).json()
        response = client.put(f"/admin/reviews/{created['id']}", json={"is_approved": True},
                              headers=customer_headers)
        assert response.status_code == 403
