"""Tests for the public catalog and the cart."""

from decimal import Decimal

from conftest import auth_headers


class TestProducts:
    def test_list_only_active(self, client, db, catalog):
        catalog["cream"].is_active = False
        db.commit()
        data = client.get("/products").json()
        assert data["pagination"]["total"] == 2
        assert {p["slug"] for p in data["data"]} == {"glow-serum", "matte-lipstick"}

    def test_filters(self, client, catalog):
        assert client.get("/products?category=skincare").json()["pagination"]["total"] == 2
        assert client.get("/products?brand=glow-co").json()["pagination"]["total"] == 2
        assert client.get("/products?featured=true").json()["data"][0]["slug"] == "glow-serum"
        assert client.get("/products?min_price=21000&max_price=30000").json()["data"][0]["slug"] == "matte-lipstick"
        assert client.get("/products?search=serum").json()["pagination"]["total"] == 1

    def test_sort_and_paginate(self, client, catalog):
        data = client.get("/products?sort_by=price&sort_order=asc&limit=2").json()
        assert [p["slug"] for p in data["data"]] == ["night-cream", "matte-lipstick"]
        assert data["pagination"] == {"page": 1, "limit": 2, "total": 3, "total_pages": 2, "has_more": True}

        popular = client.get("/products?sort_by=popularity").json()
        assert popular["data"][0]["slug"] == "night-cream"

    def test_invalid_sort(self, client, catalog):
        assert client.get("/products?sort_by=color").status_code == 422

    def test_detail_by_slug_and_id(self, client, catalog):
        by_slug = client.get("/products/glow-serum")
        assert by_slug.status_code == 200
        data = by_slug.json()
        assert data["category"]["slug"] == "skincare"
        assert data["brand"]["slug"] == "glow-co"
        assert data["review_count"] == 0

        by_id = client.get(f"/products/{catalog['serum'].id}")
        assert by_id.json()["sku"] == "SER-001"

    def test_detail_missing(self, client, catalog):
        assert client.get("/products/no-such-thing").status_code == 404

    def test_categories_and_brands(self, client, catalog):
        assert [c["slug"] for c in client.get("/categories").json()] == ["skincare"]
        assert [b["slug"] for b in client.get("/brands").json()] == ["glow-co"]


class TestCart:
    def test_add_merges_lines(self, client, customer_headers, catalog):
        product_id = catalog["serum"].id
        client.post("/cart", json={"product_id": product_id, "quantity": 1}, headers=customer_headers)
        response = client.post("/cart", json={"product_id": product_id, "quantity": 2}, headers=customer_headers)
        assert response.status_code == 201
        cart = response.json()
        assert len(cart["items"]) == 1
        assert cart["items"][0]["quantity"] == 3
        assert cart["item_count"] == 3

    def test_variants_are_separate_lines(self, client, customer_headers, catalog):
        product_id = catalog["serum"].id
        client.post("/cart", json={"product_id": product_id, "variant_name": "30ml"}, headers=customer_headers)
        cart = client.post("/cart", json={"product_id": product_id, "variant_name": "50ml"},
                           headers=customer_headers).json()
        assert len(cart["items"]) == 2

    def test_cannot_exceed_stock(self, client, customer_headers, catalog):
        response = client.post("/cart", json={"product_id": catalog["lipstick"].id, "quantity": 2},
                               headers=customer_headers)
        assert response.status_code == 400

    def test_update_and_remove(self, client, customer_headers, catalog):
        cart = client.post("/cart", json={"product_id": catalog["cream"].id}, headers=customer_headers).json()
        item_id = cart["items"][0]["id"]

        cart = client.put(f"/cart/{item_id}", json={"quantity": 4}, headers=customer_headers).json()
        assert cart["items"][0]["quantity"] == 4
        assert Decimal(cart["subtotal"]) == Decimal("80000")

        cart = client.delete(f"/cart/{item_id}", headers=customer_headers).json()
        assert cart["items"] == []

    def test_cart_is_private(self, client, make_user, customer_headers, catalog):
        cart = client.post("/cart", json={"product_id": catalog["cream"].id}, headers=customer_headers).json()
        other = auth_headers(make_user(email="other@example.com"))
        response = client.put(f"/cart/{cart['items'][0]['id']}", json={"quantity": 2}, headers=other)
        assert response.status_code == 404

    def test_clear(self, client, customer_headers, catalog):
        client.post("/cart", json={"product_id": catalog["cream"].id}, headers=customer_headers)
        assert client.delete("/cart", headers=customer_headers).json()["item_count"] == 0

    def test_requires_auth(self, client):
        assert client.get("/cart").status_code == 401
