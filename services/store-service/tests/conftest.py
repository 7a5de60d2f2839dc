"""Shared fixtures: in-memory database, test client and record factories."""
import os
import tempfile
import uuid
from decimal import Decimal

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TELEMETRY_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["CHAPA_WEBHOOK_SECRET"] = "webhook-secret"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="habu-uploads-")

import pytest
from fastapi.testclient import TestClient

from database import SessionLocal, engine
from main import app
from models import Base, Category, Order, OrderItem, OrderStatusHistory, Product, User
from security import create_access_token, hash_password

PASSWORD = "Secret123"


@pytest.fixture(autouse=True)
def schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(schema):
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role="client", email=None, password=PASSWORD, is_active=True, **fields):
        counter["n"] += 1
        user = User(
            email=email or f"{role}{counter['n']}@mail.com",
            password_hash=hash_password(password),
            first_name=fields.pop("first_name", "Abebe"),
            last_name=fields.pop("last_name", "Kebede"),
            role=role,
            is_active=is_active,
            email_verified=role == "admin",
            **fields
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id, user.email, user.role)}"}

    return _headers


@pytest.fixture
def customer(make_user):
    return make_user("client")


@pytest.fixture
def admin(make_user):
    return make_user("admin")


@pytest.fixture
def make_category(db):
    def _make(name="Roses", is_active=True):
        category = Category(name=name, description=f"{name} for every occasion", is_active=is_active)
        db.add(category)
        db.commit()
        db.refresh(category)
        return category

    return _make


@pytest.fixture
def make_product(db):
    def _make(name="Red Rose Bouquet", price="45.00", stock=10, category=None, is_active=True):
        product = Product(
            name=name,
            description=f"{name}, hand tied and fresh",
            price=Decimal(price),
            stock_quantity=stock,
            category_id=category.id if category else None,
            is_active=is_active,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def make_order(db):
    """Insert an order directly, bypassing checkout."""
    def _make(user, product, quantity=1, status="pending", payment_status="pending", payment_reference=None):
        order = Order(
            user_id=user.id,
            order_number=f"ORD-TEST-{uuid.uuid4().hex[:12].upper()}",
            total_amount=Decimal(product.price) * quantity,
            status=status,
            payment_status=payment_status,
            payment_reference=payment_reference,
            shipping_address="Bole Road, Addis Ababa",
            items=[OrderItem(product_id=product.id, quantity=quantity, price=product.price)],
        )
        order.history.append(OrderStatusHistory(field="status", from_value=None, to_value=status))
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    return _make
