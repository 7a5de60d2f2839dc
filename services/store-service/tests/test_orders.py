import re

from models import CartItem, Product

ADDRESS = "Bole Road, House 12, Addis Ababa"


def _stock(db, product_id):
    db.expire_all()
    return db.get(Product, product_id).stock_quantity


def test_create_order_from_items_prices_from_catalog(client, db, customer, auth_headers, make_product):
    rose = make_product(name="Rose", price="10.00", stock=10)
    tulip = make_product(name="Tulip", price="7.25", stock=5)

    response = client.post(
        "/api/client/orders",
        json={
            "shipping_address": ADDRESS,
            "payment_method": "cash_on_delivery",
            "items": [
                {"product_id": rose.id, "quantity": 2},
                {"product_id": tulip.id, "quantity": 1, "price": "7.25"},
                {"product_id": rose.id, "quantity": 1},
            ],
        },
        headers=auth_headers(customer),
    )

    assert response.status_code == 201
    order = response.json()["data"]
    assert re.match(r"^ORD-\d+-[A-Z0-9]{9}$", order["order_number"])
    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert order["total_amount"] == 37.25
    assert {item["product_name"]: item["quantity"] for item in order["items"]} == {"Rose": 3, "Tulip": 1}
    assert _stock(db, rose.id) == 7
    assert _stock(db, tulip.id) == 4


def test_create_order_rejects_stale_price(client, db, customer, auth_headers, make_product):
    rose = make_product(price="10.00", stock=3)

    response = client.post(
        "/api/client/orders",
        json={"shipping_address": ADDRESS, "items": [{"product_id": rose.id, "quantity": 1, "price": "8.00"}]},
        headers=auth_headers(customer),
    )

    assert response.status_code == 409
    assert _stock(db, rose.id) == 3


def test_create_order_insufficient_stock_rolls_back_everything(client, db, customer, auth_headers, make_product):
    plenty = make_product(name="Plenty", stock=10)
    scarce = make_product(name="Scarce", stock=1)

    response = client.post(
        "/api/client/orders",
        json={
            "shipping_address": ADDRESS,
            "items": [{"product_id": plenty.id, "quantity": 2}, {"product_id": scarce.id, "quantity": 2}],
        },
        headers=auth_headers(customer),
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Insufficient stock available for 'Scarce'"
    assert _stock(db, plenty.id) == 10
    assert client.get("/api/client/orders", headers=auth_headers(customer)).json()["data"] == []


def test_create_order_unknown_or_inactive_product(client, customer, auth_headers, make_product):
    hidden = make_product(is_active=False)
    headers = auth_headers(customer)

    for product_id in (hidden.id, 9999):
        response = client.post(
            "/api/client/orders",
            json={"shipping_address": ADDRESS, "items": [{"product_id": product_id, "quantity": 1}]},
            headers=headers,
        )
        assert response.status_code == 404


def test_create_order_from_cart_clears_purchased_lines(client, db, customer, auth_headers, make_product):
    rose = make_product(name="Rose", price="10.00", stock=5)
    headers = auth_headers(customer)
    client.post("/api/cart", json={"product_id": rose.id, "quantity": 2}, headers=headers)

    response = client.post("/api/client/orders", json={"shipping_address": ADDRESS}, headers=headers)

    assert response.status_code == 201
    assert response.json()["data"]["total_amount"] == 20.0
    assert db.query(CartItem).filter(CartItem.user_id == customer.id).count() == 0
    assert _stock(db, rose.id) == 3


def test_create_order_with_empty_cart(client, customer, auth_headers):
    response = client.post("/api/client/orders", json={"shipping_address": ADDRESS}, headers=auth_headers(customer))

    assert response.status_code == 400
    assert response.json()["message"] == "Order must contain at least one item"


def test_create_order_validates_address(client, customer, auth_headers, make_product):
    product = make_product()

    response = client.post(
        "/api/client/orders",
        json={"shipping_address": "short", "items": [{"product_id": product.id, "quantity": 1}]},
        headers=auth_headers(customer),
    )

    assert response.status_code == 400
    assert "shipping_address" in response.json()["message"]


def test_user_orders_are_paginated_and_filtered(client, customer, auth_headers, make_product, make_order):
    product = make_product()
    make_order(customer, product)
    make_order(customer, product)
    make_order(customer, product, status="cancelled")

    headers = auth_headers(customer)
    page = client.get("/api/client/orders", params={"limit": 2}, headers=headers).json()
    pending = client.get("/api/client/orders", params={"status": "pending"}, headers=headers).json()

    assert len(page["data"]) == 2
    assert page["pagination"] == {"page": 1, "limit": 2, "total": 3, "totalPages": 2}
    assert pending["pagination"]["total"] == 2


def test_order_detail_is_owner_only(client, make_user, auth_headers, make_product, make_order):
    owner = make_user()
    other = make_user()
    order = make_order(owner, make_product())

    assert client.get(f"/api/client/orders/{order.id}", headers=auth_headers(owner)).status_code == 200

    response = client.get(f"/api/client/orders/{order.id}", headers=auth_headers(other))
    assert response.status_code == 403
    assert response.json()["message"] == "Access denied"

    assert client.get("/api/client/orders/9999", headers=auth_headers(owner)).status_code == 404


def test_customer_cancel_restores_stock(client, db, customer, auth_headers, make_product):
    rose = make_product(stock=5)
    headers = auth_headers(customer)
    order_id = client.post(
        "/api/client/orders",
        json={"shipping_address": ADDRESS, "items": [{"product_id": rose.id, "quantity": 3}]},
        headers=headers,
    ).json()["data"]["id"]
    assert _stock(db, rose.id) == 2

    response = client.patch(f"/api/client/orders/{order_id}/cancel", headers=headers)

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "cancelled"
    assert _stock(db, rose.id) == 5

    again = client.patch(f"/api/client/orders/{order_id}/cancel", headers=headers)
    assert again.status_code == 400
    assert again.json()["message"] == "Only pending orders can be cancelled"
    assert _stock(db, rose.id) == 5


def test_customer_cannot_cancel_someone_elses_order(client, make_user, auth_headers, make_product, make_order):
    owner = make_user()
    other = make_user()
    order = make_order(owner, make_product())

    response = client.patch(f"/api/client/orders/{order.id}/cancel", headers=auth_headers(other))

    assert response.status_code == 403
