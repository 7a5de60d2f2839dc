import time

import jwt

from config import JWT_ALGORITHM, JWT_SECRET
from security import create_refresh_token
from conftest import PASSWORD

REGISTRATION = {
    "email": "Selam@Mail.com",
    "password": "Flowers123",
    "first_name": "Selam",
    "last_name": "Tesfaye",
    "phone": "+251911234567",
}


def test_register_creates_client_and_returns_tokens(client):
    response = client.post("/api/auth/register", json=REGISTRATION)

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["user"]["email"] == "selam@mail.com"
    assert body["data"]["user"]["role"] == "client"
    assert "password_hash" not in body["data"]["user"]
    assert body["data"]["accessToken"]
    assert body["data"]["refreshToken"]


def test_register_rejects_duplicate_email(client):
    client.post("/api/auth/register", json=REGISTRATION)
    response = client.post("/api/auth/register", json={**REGISTRATION, "email": "selam@mail.com"})

    assert response.status_code == 409
    assert response.json() == {"success": False, "message": "User with this email already exists"}


def test_register_rejects_weak_password(client):
    response = client.post("/api/auth/register", json={**REGISTRATION, "password": "flowers123"})

    assert response.status_code == 400
    assert "uppercase" in response.json()["message"]


def test_register_validation_errors_use_envelope(client):
    response = client.post("/api/auth/register", json={**REGISTRATION, "email": "not-an-email", "phone": "abc"})

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert "email" in body["message"]
    assert "phone" in body["message"]


def test_login_success(client, customer):
    response = client.post("/api/auth/login", json={"email": customer.email.upper(), "password": PASSWORD})

    assert response.status_code == 200
    assert response.json()["data"]["user"]["id"] == customer.id


def test_login_wrong_password_and_unknown_email_share_message(client, customer):
    wrong = client.post("/api/auth/login", json={"email": customer.email, "password": "Wrong1234"})
    unknown = client.post("/api/auth/login", json={"email": "nobody@mail.com", "password": PASSWORD})

    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json()["message"] == unknown.json()["message"] == "Invalid email or password"


def test_login_rejects_deactivated_account(client, make_user):
    user = make_user(is_active=False)
    response = client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD})

    assert response.status_code == 401
    assert response.json()["message"] == "Account is deactivated"


def test_profile_requires_token(client):
    response = client.get("/api/auth/profile")

    assert response.status_code == 401
    assert response.json()["message"] == "Access token is required"


def test_profile_rejects_garbage_and_expired_tokens(client, customer):
    garbage = client.get("/api/auth/profile", headers={"Authorization": "Bearer not-a-jwt"})
    expired_token = jwt.encode(
        {"userId": customer.id, "type": "access", "exp": int(time.time()) - 10},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )
    expired = client.get("/api/auth/profile", headers={"Authorization": f"Bearer {expired_token}"})

    assert garbage.status_code == 401
    assert garbage.json()["message"] == "Invalid token"
    assert expired.status_code == 401
    assert expired.json()["message"] == "Token expired"


def test_deactivated_user_token_stops_working(client, db, customer, auth_headers):
    headers = auth_headers(customer)
    assert client.get("/api/auth/profile", headers=headers).status_code == 200

    customer.is_active = False
    db.commit()

    response = client.get("/api/auth/profile", headers=headers)
    assert response.status_code == 401
    assert response.json()["message"] == "User not found or inactive"


def test_refresh_token_cannot_be_used_as_access_token(client, customer):
    refresh = create_refresh_token(customer.id, customer.email, customer.role)
    response = client.get("/api/auth/profile", headers={"Authorization": f"Bearer {refresh}"})

    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token type"


def test_refresh_issues_access_token_with_current_role(client, db, customer):
    refresh = create_refresh_token(customer.id, customer.email, "client")
    customer.role = "admin"
    db.commit()

    response = client.post("/api/auth/refresh", json={"refreshToken": refresh})

    assert response.status_code == 200
    access = response.json()["data"]["accessToken"]
    payload = jwt.decode(access, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    assert payload["role"] == "admin"
    assert payload["type"] == "access"


def test_refresh_rejects_access_token(client, customer, auth_headers):
    access = auth_headers(customer)["Authorization"].split()[1]
    response = client.post("/api/auth/refresh", json={"refreshToken": access})

    assert response.status_code == 401


def test_update_profile(client, customer, auth_headers):
    response = client.put("/api/auth/profile", json={"first_name": "Hanna"}, headers=auth_headers(customer))

    assert response.status_code == 200
    assert response.json()["data"]["first_name"] == "Hanna"

    empty = client.put("/api/auth/profile", json={}, headers=auth_headers(customer))
    assert empty.status_code == 400
    assert empty.json()["message"] == "No fields to update"


def test_change_password(client, customer, auth_headers):
    headers = auth_headers(customer)
    wrong = client.post(
        "/api/auth/change-password",
        json={"current_password": "Wrong1234", "new_password": "NewSecret1"},
        headers=headers,
    )
    assert wrong.status_code == 400
    assert wrong.json()["message"] == "Current password is incorrect"

    ok = client.post(
        "/api/auth/change-password",
        json={"current_password": PASSWORD, "new_password": "NewSecret1"},
        headers=headers,
    )
    assert ok.status_code == 200

    login = client.post("/api/auth/login", json={"email": customer.email, "password": "NewSecret1"})
    assert login.status_code == 200


def test_logout_requires_authentication(client, customer, auth_headers):
    assert client.post("/api/auth/logout").status_code == 401
    response = client.post("/api/auth/logout", headers=auth_headers(customer))
    assert response.status_code == 200
    assert response.json()["message"] == "Logout successful"
