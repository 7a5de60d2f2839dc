import pytest

from errors import AppError
from models import Product
from services.order_service import can_transition, check_transition


@pytest.mark.parametrize("current,target,allowed", [
    ("pending", "confirmed", True),
    ("pending", "shipped", False),
    ("confirmed", "cancelled", True),
    ("shipped", "cancelled", False),
    ("delivered", "pending", False),
    ("cancelled", "confirmed", False),
])
def test_order_status_table(current, target, allowed):
    assert can_transition("status", current, target) is allowed


@pytest.mark.parametrize("current,target,allowed", [
    ("pending", "paid", True),
    ("failed", "pending", True),
    ("paid", "refunded", True),
    ("paid", "failed", False),
    ("refunded", "paid", False),
])
def test_payment_status_table(current, target, allowed):
    assert can_transition("payment_status", current, target) is allowed


def test_check_transition_names_both_states():
    with pytest.raises(AppError) as excinfo:
        check_transition("status", "delivered", "pending")

    assert excinfo.value.status_code == 400
    assert excinfo.value.message == "Cannot change order status from 'delivered' to 'pending'"
    assert check_transition("status", "pending", "pending") is False


def test_admin_walks_order_to_delivered_with_history(client, admin, customer, auth_headers, make_product, make_order):
    order = make_order(customer, make_product())
    headers = auth_headers(admin)

    for status in ("confirmed", "shipped", "delivered"):
        response = client.patch(
            f"/api/admin/orders/{order.id}/status", json={"status": status, "note": f"to {status}"}, headers=headers
        )
        assert response.status_code == 200
        assert response.json()["data"]["status"] == status

    history = client.get(f"/api/admin/orders/{order.id}/history", headers=headers).json()["data"]
    status_changes = [(h["from_value"], h["to_value"]) for h in history if h["field"] == "status"]
    assert status_changes[:3] == [("shipped", "delivered"), ("confirmed", "shipped"), ("pending", "confirmed")]
    assert history[0]["changed_by"] == admin.id
    assert history[0]["note"] == "to delivered"


def test_admin_illegal_status_jump(client, admin, customer, auth_headers, make_product, make_order):
    order = make_order(customer, make_product(), status="delivered")

    response = client.patch(
        f"/api/admin/orders/{order.id}/status", json={"status": "pending"}, headers=auth_headers(admin)
    )

    assert response.status_code == 400
    assert response.json()["message"] == "Cannot change order status from 'delivered' to 'pending'"


def test_admin_rejects_unknown_status_value(client, admin, customer, auth_headers, make_product, make_order):
    order = make_order(customer, make_product())

    response = client.patch(
        f"/api/admin/orders/{order.id}/status", json={"status": "lost"}, headers=auth_headers(admin)
    )

    assert response.status_code == 400


def test_admin_cancel_of_confirmed_order_restores_stock(
    client, db, admin, customer, auth_headers, make_product, make_order
):
    product = make_product(stock=4)
    order = make_order(customer, product, quantity=3, status="confirmed")
    headers = auth_headers(admin)

    response = client.patch(f"/api/admin/orders/{order.id}/status", json={"status": "cancelled"}, headers=headers)
    assert response.status_code == 200

    db.expire_all()
    assert db.get(Product, product.id).stock_quantity == 7

    again = client.patch(f"/api/admin/orders/{order.id}/status", json={"status": "cancelled"}, headers=headers)
    assert again.status_code == 200
    db.expire_all()
    assert db.get(Product, product.id).stock_quantity == 7


def test_repeating_current_status_records_no_history(client, admin, customer, auth_headers, make_product, make_order):
    order = make_order(customer, make_product())
    headers = auth_headers(admin)

    client.patch(f"/api/admin/orders/{order.id}/status", json={"status": "pending"}, headers=headers)

    history = client.get(f"/api/admin/orders/{order.id}/history", headers=headers).json()["data"]
    assert len(history) == 1


def test_admin_payment_status_flow(client, admin, customer, auth_headers, make_product, make_order):
    order = make_order(customer, make_product())
    headers = auth_headers(admin)
    url = f"/api/admin/orders/{order.id}/payment-status"

    assert client.patch(url, json={"payment_status": "paid"}, headers=headers).json()["data"]["payment_status"] == "paid"

    back = client.patch(url, json={"payment_status": "failed"}, headers=headers)
    assert back.status_code == 400
    assert back.json()["message"] == "Cannot change payment status from 'paid' to 'failed'"

    refund = client.patch(url, json={"payment_status": "refunded"}, headers=headers)
    assert refund.json()["data"]["payment_status"] == "refunded"


def test_admin_order_listing_filters(client, admin, make_user, auth_headers, make_product, make_order):
    first = make_user()
    second = make_user()
    product = make_product()
    make_order(first, product, payment_status="paid")
    make_order(first, product)
    make_order(second, product, status="shipped")

    headers = auth_headers(admin)
    by_user = client.get("/api/admin/orders", params={"user_id": first.id}, headers=headers).json()
    paid = client.get("/api/admin/orders", params={"payment_status": "paid"}, headers=headers).json()
    shipped = client.get("/api/admin/orders", params={"status": "shipped"}, headers=headers).json()

    assert by_user["pagination"]["total"] == 2
    assert paid["pagination"]["total"] == 1
    assert shipped["data"][0]["customer_email"] == second.email


def test_admin_order_stats(client, admin, make_user, auth_headers, make_product, make_order):
    buyer = make_user(first_name="Meron", last_name="Alemu")
    product = make_product(price="50.00")
    make_order(buyer, product, quantity=2, payment_status="paid")
    make_order(buyer, product, status="cancelled")

    stats = client.get("/api/admin/orders/stats", headers=auth_headers(admin)).json()["data"]

    assert stats["totalOrders"] == 2
    assert stats["totalRevenue"] == 100.0
    assert {row["status"]: row["count"] for row in stats["statusBreakdown"]} == {"pending": 1, "cancelled": 1}
    assert stats["topCustomers"][0]["name"] == "Meron Alemu"
    assert stats["topCustomers"][0]["order_count"] == 1
    assert len(stats["monthlyRevenue"]) == 1


def test_admin_order_analytics(client, admin, customer, auth_headers, make_product, make_order):
    product = make_product(name="Lily Vase", price="30.00")
    make_order(customer, product, quantity=2, payment_status="paid")
    make_order(customer, product, quantity=1)

    response = client.get("/api/admin/orders/analytics", params={"group_by": "month"}, headers=auth_headers(admin))

    data = response.json()["data"]
    assert response.status_code == 200
    assert data["orderTrends"][0]["orders"] == 2
    assert data["orderTrends"][0]["revenue"] == 60.0
    assert data["productPerformance"][0] == {
        "product_id": product.id,
        "name": "Lily Vase",
        "units_sold": 3,
        "revenue": 90.0,
        "order_count": 2,
    }
    assert data["customerAnalytics"]["repeat_customers"] == 1

    backwards = client.get(
        "/api/admin/orders/analytics",
        params={"start_date": "2024-05-01", "end_date": "2024-04-01"},
        headers=auth_headers(admin),
    )
    assert backwards.status_code == 400
