from services.dashboard_service import percent_change


def test_percent_change():
    assert percent_change(150, 100) == 50.0
    assert percent_change(50, 100) == -50.0
    assert percent_change(10, 0) == 0.0


def test_dashboard_stats(client, admin, make_user, auth_headers, make_product, make_order):
    repeat = make_user()
    single = make_user()
    make_user()
    product = make_product(price="40.00")
    make_order(repeat, product, payment_status="paid")
    make_order(repeat, product, quantity=2, payment_status="paid")
    make_order(single, product)

    response = client.get("/api/admin/dashboard", headers=auth_headers(admin))

    assert response.status_code == 200
    stats = response.json()["data"]
    assert stats["totalRevenue"] == 120.0
    assert stats["totalOrders"] == 3
    assert stats["totalProducts"] == 1
    assert stats["totalCustomers"] == 3
    assert stats["averageOrderValue"] == 60.0
    assert stats["conversionRate"] == 66.67
    assert stats["repeatCustomerRate"] == 50.0
    assert stats["revenueChange"] == 0.0


def test_dashboard_requires_admin(client, customer, auth_headers):
    assert client.get("/api/admin/dashboard", headers=auth_headers(customer)).status_code == 403


def test_recent_orders_and_activity(client, admin, customer, auth_headers, make_product, make_order):
    product = make_product(name="Gerbera Mix")
    first = make_order(customer, product)
    second = make_order(customer, product)
    headers = auth_headers(admin)

    orders = client.get("/api/admin/dashboard/recent-orders", params={"limit": 5}, headers=headers).json()["data"]
    assert [o["id"] for o in orders] == [second.id, first.id]
    assert orders[0]["customer_name"] == "Abebe Kebede"

    activity = client.get("/api/admin/dashboard/recent-activity", params={"limit": 4}, headers=headers).json()["data"]
    assert {entry["type"] for entry in activity} == {"order", "product"}
    assert len(activity) == 3


def test_top_products_and_category_performance(
    client, admin, customer, auth_headers, make_category, make_product, make_order
):
    roses = make_category("Roses")
    plants = make_category("Plants")
    rose = make_product(name="Rose Box", price="100.00", category=roses)
    fern = make_product(name="Fern", price="20.00", category=plants)
    make_order(customer, rose, payment_status="paid")
    make_order(customer, fern, quantity=4, payment_status="paid")
    make_order(customer, fern, quantity=10)
    headers = auth_headers(admin)

    top = client.get("/api/admin/dashboard/top-products", headers=headers).json()["data"]
    assert [p["name"] for p in top] == ["Rose Box", "Fern"]
    assert top[0]["revenue"] == 100.0

    categories = client.get("/api/admin/dashboard/category-performance", headers=headers).json()["data"]
    assert [(c["name"], c["revenue"], c["percentage"]) for c in categories] == [
        ("Roses", 100.0, 55.56),
        ("Plants", 80.0, 44.44),
    ]


def test_analytics_by_period(client, admin, customer, auth_headers, make_product, make_order):
    product = make_product(price="25.00")
    make_order(customer, product, payment_status="paid")
    make_order(customer, product)
    headers = auth_headers(admin)

    for period in ("day", "week", "month", "year"):
        rows = client.get("/api/admin/analytics", params={"period": period}, headers=headers).json()["data"]
        assert len(rows) == 1
        assert rows[0]["revenue"] == 25.0
        assert rows[0]["orders"] == 2
        assert rows[0]["customers"] == 1

    assert client.get("/api/admin/analytics", params={"period": "decade"}, headers=headers).status_code == 400


def test_admin_creates_admin_by_default(client, admin, auth_headers):
    response = client.post(
        "/api/admin/users",
        json={"email": "Ops@Mail.com", "password": "Admin1234", "first_name": "Ops", "last_name": "Team"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 201
    user = response.json()["data"]
    assert user["role"] == "admin"
    assert user["email"] == "ops@mail.com"
    assert user["email_verified"] is True


def test_admin_user_listing_filters_and_stats(client, admin, make_user, auth_headers):
    make_user(first_name="Liya")
    make_user(is_active=False)
    headers = auth_headers(admin)

    clients = client.get("/api/admin/users", params={"role": "client"}, headers=headers).json()
    inactive = client.get("/api/admin/users", params={"is_active": "false"}, headers=headers).json()
    search = client.get("/api/admin/users", params={"search": "liya"}, headers=headers).json()

    assert clients["pagination"]["total"] == 2
    assert inactive["pagination"]["total"] == 1
    assert [u["first_name"] for u in search["data"]] == ["Liya"]

    stats = client.get("/api/admin/users/stats", headers=headers).json()["data"]
    assert stats == {
        "total_users": 3,
        "active_users": 2,
        "admin_users": 1,
        "client_users": 2,
        "verified_users": 1,
    }


def test_admin_updates_user(client, admin, customer, auth_headers):
    response = client.put(
        f"/api/admin/users/{customer.id}", json={"is_active": False}, headers=auth_headers(admin)
    )

    assert response.status_code == 200
    assert response.json()["data"]["is_active"] is False


def test_admin_cannot_demote_or_delete_self(client, admin, auth_headers):
    headers = auth_headers(admin)

    demote = client.put(f"/api/admin/users/{admin.id}", json={"role": "client"}, headers=headers)
    delete = client.delete(f"/api/admin/users/{admin.id}", headers=headers)

    assert demote.status_code == 400
    assert delete.status_code == 400


def test_admin_deletes_user_without_orders(client, admin, make_user, auth_headers, make_product, make_order):
    buyer = make_user()
    browser = make_user()
    make_order(buyer, make_product())
    headers = auth_headers(admin)

    blocked = client.delete(f"/api/admin/users/{buyer.id}", headers=headers)
    assert blocked.status_code == 400
    assert blocked.json()["message"] == "Cannot delete user that has orders"

    assert client.delete(f"/api/admin/users/{browser.id}", headers=headers).status_code == 200
    assert client.get(f"/api/admin/users/{browser.id}", headers=headers).status_code == 404
