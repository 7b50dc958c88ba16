"""Tests for the in-app notification inbox."""

from storefront import notifications

from conftest import auth_headers


def test_inbox_newest_first(client, db, customer, customer_headers):
    notifications.create_notification(db, customer.id, "SYSTEM", "Welcome", "Welcome to the shop")
    notifications.create_order_notification(db, customer.id, "CHK-TEST-0001", "SHIPPED", 7)

    data = client.get("/notifications", headers=customer_headers).json()
    assert [n["title"] for n in data] == ["Order Shipped", "Welcome"]
    assert data[0]["type"] == "ORDER_SHIPPED"
    assert data[0]["link"] == "/account/orders/7"
    assert "CHK-TEST-0001" in data[0]["message"]


def test_unknown_status_creates_nothing(db, customer):
    assert notifications.create_order_notification(db, customer.id, "CHK-TEST-0001", "LOST", 7) is None


def test_mark_read(client, db, customer, customer_headers):
    first = notifications.create_notification(db, customer.id, "SYSTEM", "One", "First")
    notifications.create_notification(db, customer.id, "SYSTEM", "Two", "Second")

    response = client.put(f"/notifications/{first.id}/read", headers=customer_headers)
    assert response.status_code == 200
    assert response.json()["is_read"] is True

    unread = client.get("/notifications?unread_only=true", headers=customer_headers).json()
    assert [n["title"] for n in unread] == ["Two"]


def test_mark_all_read(client, db, customer, customer_headers):
    for title in ("One", "Two"):
        notifications.create_notification(db, customer.id, "SYSTEM", title, title)
    assert client.put("/notifications/read-all", headers=customer_headers).json() == {"updated": 2}
    assert client.get("/notifications?unread_only=true", headers=customer_headers).json() == []


def test_cannot_read_other_users_notification(client, db, customer, make_user):
    notification = notifications.create_notification(db, customer.id, "SYSTEM", "Private", "Private")
    other = auth_headers(make_user(email="other@example.com"))
    assert client.put(f"/notifications/{notification.id}/read", headers=other).status_code == 404
