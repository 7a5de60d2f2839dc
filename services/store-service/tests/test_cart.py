def test_cart_requires_client_role(client, admin, auth_headers):
    assert client.get("/api/cart").status_code == 401

    response = client.get("/api/cart", headers=auth_headers(admin))
    assert response.status_code == 403
    assert response.json()["message"] == "Client access required"


def test_adding_same_product_twice_sums_quantity(client, customer, auth_headers, make_product):
    product = make_product(price="12.50", stock=10)
    headers = auth_headers(customer)

    client.post("/api/cart", json={"product_id": product.id, "quantity": 2}, headers=headers)
    response = client.post("/api/cart", json={"product_id": product.id, "quantity": 3}, headers=headers)

    assert response.status_code == 200
    assert response.json()["data"]["quantity"] == 5
    assert response.json()["data"]["subtotal"] == 62.5

    cart = client.get("/api/cart", headers=headers).json()["data"]
    assert len(cart) == 1

    summary = client.get("/api/cart/summary", headers=headers).json()["data"]
    assert summary == {"totalItems": 5, "totalPrice": 62.5}


def test_add_to_cart_checks_stock_including_existing_quantity(client, customer, auth_headers, make_product):
    product = make_product(stock=4)
    headers = auth_headers(customer)

    client.post("/api/cart", json={"product_id": product.id, "quantity": 3}, headers=headers)
    response = client.post("/api/cart", json={"product_id": product.id, "quantity": 2}, headers=headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Insufficient stock available"


def test_add_inactive_product_is_not_found(client, customer, auth_headers, make_product):
    product = make_product(is_active=False)

    response = client.post("/api/cart", json={"product_id": product.id}, headers=auth_headers(customer))

    assert response.status_code == 404


def test_summed_quantity_is_capped_per_product(client, customer, auth_headers, make_product):
    product = make_product(stock=500)
    headers = auth_headers(customer)

    assert client.post("/api/cart", json={"product_id": product.id, "quantity": 100}, headers=headers).status_code == 200
    response = client.post("/api/cart", json={"product_id": product.id, "quantity": 1}, headers=headers)

    assert response.status_code == 400
    assert response.json()["message"] == "Cart quantity cannot exceed 100 per product"
    summary = client.get("/api/cart/summary", headers=headers).json()["data"]
    assert summary["totalItems"] == 100


def test_add_rejects_out_of_range_quantity(client, customer, auth_headers, make_product):
    product = make_product()

    response = client.post(
        "/api/cart", json={"product_id": product.id, "quantity": 0}, headers=auth_headers(customer)
    )

    assert response.status_code == 400
    assert "quantity" in response.json()["message"]


def test_update_and_remove_cart_item(client, customer, auth_headers, make_product):
    product = make_product(stock=5)
    headers = auth_headers(customer)
    item_id = client.post("/api/cart", json={"product_id": product.id}, headers=headers).json()["data"]["id"]

    updated = client.put(f"/api/cart/{item_id}", json={"quantity": 4}, headers=headers)
    assert updated.json()["data"]["quantity"] == 4

    too_many = client.put(f"/api/cart/{item_id}", json={"quantity": 6}, headers=headers)
    assert too_many.status_code == 400

    removed = client.delete(f"/api/cart/{item_id}", headers=headers)
    assert removed.status_code == 200
    assert client.get("/api/cart", headers=headers).json()["data"] == []


def test_cannot_touch_another_users_cart_item(client, make_user, auth_headers, make_product):
    owner = make_user()
    other = make_user()
    product = make_product()
    item_id = client.post(
        "/api/cart", json={"product_id": product.id}, headers=auth_headers(owner)
    ).json()["data"]["id"]

    response = client.put(f"/api/cart/{item_id}", json={"quantity": 2}, headers=auth_headers(other))

    assert response.status_code == 404
    assert response.json()["message"] == "Cart item not found"


def test_clear_cart(client, customer, auth_headers, make_product):
    headers = auth_headers(customer)
    for name in ("Rose", "Tulip"):
        client.post("/api/cart", json={"product_id": make_product(name=name).id}, headers=headers)

    response = client.delete("/api/cart/clear", headers=headers)

    assert response.status_code == 200
    assert client.get("/api/cart/summary", headers=headers).json()["data"] == {"totalItems": 0, "totalPrice": 0}


def test_cart_hides_lines_for_deactivated_products(client, db, customer, auth_headers, make_product):
    product = make_product()
    headers = auth_headers(customer)
    client.post("/api/cart", json={"product_id": product.id}, headers=headers)

    product.is_active = False
    db.commit()

    assert client.get("/api/cart", headers=headers).json()["data"] == []
