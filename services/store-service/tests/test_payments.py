import hashlib
import hmac
import json
import re

import httpx
import pytest
from fastapi import Depends

from dependencies import get_order_service, get_payment_gateway, get_payment_service
from main import app
from services.payment_service import PaymentService, generate_tx_ref

WEBHOOK_SECRET = "webhook-secret"


class FakeChapa:
    """Records gateway calls and answers them from a status table."""

    def __init__(self):
        self.requests = []
        self.verify_status = "success"
        self.amount = "90.00"
        self.currency = "ETB"
        self.fail_with = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with == "network":
            raise httpx.ConnectError("connection refused", request=request)
        if self.fail_with is not None:
            return httpx.Response(self.fail_with, json={"message": "Invalid currency", "status": "failed"})
        if request.url.path.endswith("/transaction/initialize"):
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "message": "Hosted Link",
                "status": "success",
                "data": {"checkout_url": f"https://checkout.chapa.co/checkout/payment/{body['tx_ref']}"},
            })
        if "/transaction/verify/" in request.url.path:
            tx_ref = request.url.path.rsplit("/", 1)[-1]
            return httpx.Response(200, json={
                "message": "Payment details",
                "status": "success",
                "data": {
                    "tx_ref": tx_ref,
                    "status": self.verify_status,
                    "amount": self.amount,
                    "currency": self.currency,
                },
            })
        return httpx.Response(200, json={"message": "Banks retrieved", "data": []})

    @property
    def verify_calls(self):
        return [r for r in self.requests if "/transaction/verify/" in r.url.path]


@pytest.fixture
def chapa():
    fake = FakeChapa()
    app.state.http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
    yield fake
    del app.state.http_client


@pytest.fixture
def unsigned_webhooks():
    """Run the app as if no webhook secret were configured."""
    def _service(gateway=Depends(get_payment_gateway), order_service=Depends(get_order_service)):
        return PaymentService(gateway, order_service, webhook_secret="")

    app.dependency_overrides[get_payment_service] = _service
    yield
    app.dependency_overrides.pop(get_payment_service, None)


def _signed(payload):
    body = json.dumps(payload).encode()
    signature = hmac.new(WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()
    return body, {"Chapa-Signature": signature, "Content-Type": "application/json"}


def _event(tx_ref, status="success", amount="45.00", **extra):
    return {"tx_ref": tx_ref, "status": status, "amount": amount, "currency": "ETB", **extra}


def _init_payload(order_id=None, amount="90.00", **extra):
    payload = {"amount": amount, "currency": "ETB", "email": "buyer@mail.com", "first_name": "Abebe", **extra}
    if order_id is not None:
        payload["meta"] = {"order_id": order_id}
    return payload


def test_generate_tx_ref_format():
    assert re.match(r"^habu_\d+_[a-z0-9]{9}$", generate_tx_ref())
    assert generate_tx_ref() != generate_tx_ref()


def test_initialize_links_order_and_returns_checkout_url(
    client, db, chapa, customer, auth_headers, make_product, make_order
):
    order = make_order(customer, make_product())

    response = client.post(
        "/api/chapa/initialize", json=_init_payload(order.id, amount="45.00"), headers=auth_headers(customer)
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["data"]["checkout_url"].endswith(data["tx_ref"])

    sent = chapa.requests[0]
    assert sent.headers["Authorization"].startswith("Bearer ")
    assert json.loads(sent.content)["amount"] == "45.00"

    db.refresh(order)
    assert order.payment_reference == data["tx_ref"]


def test_initialize_requires_order_total(client, db, chapa, customer, auth_headers, make_product, make_order):
    order = make_order(customer, make_product(price="900.00"))
    headers = auth_headers(customer)

    underpaid = client.post("/api/chapa/initialize", json=_init_payload(order.id, amount="1.00"), headers=headers)
    wrong_currency = client.post(
        "/api/chapa/initialize", json=_init_payload(order.id, amount="900.00", currency="USD"), headers=headers
    )

    assert underpaid.status_code == 400
    assert underpaid.json()["message"] == "Payment amount must equal the order total of 900.00 ETB"
    assert wrong_currency.status_code == 400
    assert chapa.requests == []
    db.refresh(order)
    assert order.payment_reference is None


def test_initialize_requires_authentication(client, chapa):
    assert client.post("/api/chapa/initialize", json=_init_payload()).status_code == 401
    assert chapa.requests == []


def test_initialize_rejects_foreign_and_paid_orders(client, chapa, make_user, auth_headers, make_product, make_order):
    owner = make_user()
    other = make_user()
    product = make_product()
    foreign = make_order(owner, product)
    paid = make_order(other, product, payment_status="paid")

    forbidden = client.post("/api/chapa/initialize", json=_init_payload(foreign.id), headers=auth_headers(other))
    already = client.post("/api/chapa/initialize", json=_init_payload(paid.id), headers=auth_headers(other))

    assert forbidden.status_code == 403
    assert already.status_code == 400
    assert already.json()["message"] == "Order is already paid"
    assert chapa.requests == []


def test_gateway_errors_are_passed_through(client, chapa, customer, auth_headers):
    chapa.fail_with = 400
    rejected = client.post("/api/chapa/initialize", json=_init_payload(), headers=auth_headers(customer))

    chapa.fail_with = "network"
    unreachable = client.post("/api/chapa/initialize", json=_init_payload(), headers=auth_headers(customer))

    assert rejected.status_code == 400
    assert rejected.json() == {"success": False, "message": "Invalid currency"}
    assert unreachable.status_code == 502
    assert unreachable.json()["message"] == "Payment gateway unavailable"


def test_verify_marks_order_paid_once(client, chapa, customer, auth_headers, make_product, make_order):
    order = make_order(customer, make_product(), payment_reference="habu_1_abcdefghi")
    headers = auth_headers(customer)

    first = client.get("/api/chapa/verify/habu_1_abcdefghi", headers=headers).json()["data"]
    second = client.get("/api/chapa/verify/habu_1_abcdefghi", headers=headers).json()["data"]

    assert first["order_id"] == order.id
    assert first["payment_status"] == "paid"
    assert first["outcome"] == "applied"
    assert second["outcome"] == "duplicate"


def test_verify_ignores_underpayment(client, chapa, customer, auth_headers, make_product, make_order):
    make_order(customer, make_product(price="900.00"), payment_reference="habu_6_abcdefghi")
    chapa.amount = "1.00"

    data = client.get("/api/chapa/verify/habu_6_abcdefghi", headers=auth_headers(customer)).json()["data"]

    assert data["outcome"] == "ignored"
    assert data["payment_status"] == "pending"


def test_webhook_rejects_bad_signature(client, chapa, customer, make_product, make_order):
    make_order(customer, make_product(), payment_reference="habu_2_abcdefghi")
    body, _ = _signed(_event("habu_2_abcdefghi"))

    response = client.post(
        "/api/chapa/webhook", content=body, headers={"Chapa-Signature": "0" * 64, "Content-Type": "application/json"}
    )

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid webhook signature"


def test_webhook_is_idempotent(client, chapa, admin, customer, auth_headers, make_product, make_order):
    order = make_order(customer, make_product(), payment_reference="habu_3_abcdefghi")
    body, headers = _signed(_event("habu_3_abcdefghi"))

    first = client.post("/api/chapa/webhook", content=body, headers=headers)
    replay = client.post("/api/chapa/webhook", content=body, headers=headers)

    assert first.status_code == replay.status_code == 200
    assert first.json()["data"] == {"order_id": order.id, "payment_status": "paid", "outcome": "applied"}
    assert replay.json()["data"]["outcome"] == "duplicate"
    assert chapa.verify_calls == []

    history = client.get(f"/api/admin/orders/{order.id}/history", headers=auth_headers(admin)).json()["data"]
    assert [h["to_value"] for h in history if h["field"] == "payment_status"] == ["paid"]


def test_webhook_finds_order_by_meta_and_ignores_late_failure(client, chapa, db, customer, make_product, make_order):
    order = make_order(customer, make_product())
    body, headers = _signed(_event("habu_4_abcdefghi", meta={"order_id": order.id}))
    assert client.post("/api/chapa/webhook", content=body, headers=headers).json()["data"]["outcome"] == "applied"

    db.refresh(order)
    assert order.payment_reference == "habu_4_abcdefghi"

    late, late_headers = _signed(_event("habu_4_abcdefghi", status="failed"))
    response = client.post("/api/chapa/webhook", content=late, headers=late_headers)
    assert response.status_code == 200
    assert response.json()["data"]["outcome"] == "ignored"
    assert response.json()["data"]["payment_status"] == "paid"


def test_webhook_ignores_underpaid_event(client, chapa, db, customer, make_product, make_order):
    order = make_order(customer, make_product(price="900.00"), payment_reference="habu_7_abcdefghi")
    body, headers = _signed(_event("habu_7_abcdefghi", amount="1.00"))

    response = client.post("/api/chapa/webhook", content=body, headers=headers)

    assert response.status_code == 200
    assert response.json()["data"]["outcome"] == "ignored"
    db.refresh(order)
    assert order.payment_status == "pending"


def test_webhook_refuses_tx_ref_of_another_transaction(client, chapa, db, customer, make_product, make_order):
    order = make_order(customer, make_product(), payment_reference="habu_8_abcdefghi")
    body, headers = _signed(_event("attacker", meta={"order_id": order.id}))

    response = client.post("/api/chapa/webhook", content=body, headers=headers)

    assert response.status_code == 409
    assert response.json()["message"] == "Transaction does not belong to this order"
    db.refresh(order)
    assert order.payment_status == "pending"


def test_webhook_requires_tx_ref(client, chapa, customer, make_product, make_order):
    order = make_order(customer, make_product())
    body, headers = _signed({"status": "success", "meta": {"order_id": order.id}})

    assert client.post("/api/chapa/webhook", content=body, headers=headers).status_code == 400


def test_unsigned_webhook_is_confirmed_with_gateway(
    client, chapa, db, unsigned_webhooks, customer, make_product, make_order
):
    order = make_order(customer, make_product())
    forged = json.dumps(_event("habu_9_abcdefghi", meta={"order_id": order.id})).encode()
    chapa.verify_status = "failed"

    response = client.post("/api/chapa/webhook", content=forged, headers={"Content-Type": "application/json"})

    assert response.status_code == 200
    assert [r.url.path.rsplit("/", 1)[-1] for r in chapa.verify_calls] == ["habu_9_abcdefghi"]
    db.refresh(order)
    assert order.payment_status == "failed"


def test_unsigned_webhook_applies_confirmed_payment(
    client, chapa, db, unsigned_webhooks, customer, make_product, make_order
):
    order = make_order(customer, make_product(), payment_reference="habu_10_abcdefghi")
    body = json.dumps({"tx_ref": "habu_10_abcdefghi", "status": "success"}).encode()

    response = client.post("/api/chapa/webhook", content=body, headers={"Content-Type": "application/json"})

    assert response.json()["data"] == {"order_id": order.id, "payment_status": "paid", "outcome": "applied"}


def test_webhook_unknown_transaction(client, chapa):
    body, headers = _signed(_event("habu_missing"))

    response = client.post("/api/chapa/webhook", content=body, headers=headers)

    assert response.status_code == 404
    assert response.json()["message"] == "Order not found for this transaction"


def test_availability(client, chapa):
    assert client.get("/api/chapa/availability").json()["data"] == {"available": True, "status_code": 200}

    chapa.fail_with = 503
    assert client.get("/api/chapa/availability").json()["data"] == {"available": False, "status_code": 503}
