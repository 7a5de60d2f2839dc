"""Database connection and session management."""
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from typing import Generator
import logging

from config import DATABASE_URL, BOOTSTRAP_ADMIN_EMAIL, BOOTSTRAP_ADMIN_PASSWORD
from models import Base, Category, Product, User
from security import hash_password

logger = logging.getLogger(__name__)


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        # In-memory SQLite must share one connection across threads
        return {
            "connect_args": {"check_same_thread": False},
            "poolclass": StaticPool,
        }
    return {
        "pool_size": 10,
        "max_overflow": 20,  # Burst traffic
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "pool_timeout": 30,
        "echo_pool": False,
    }


engine = create_engine(DATABASE_URL, **_engine_options(DATABASE_URL))

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    Dependency for getting database session.

    Yields:
        Database session
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


SEED_CATALOG = {
    "Roses": (
        "Classic roses for every occasion",
        [
            ("Red Rose Bouquet", "Twelve long-stem red roses wrapped in kraft paper", "45.00", 40),
            ("White Rose Vase", "Ten white roses arranged in a clear glass vase", "55.00", 25),
        ],
    ),
    "Tulips": (
        "Seasonal tulips in bright colours",
        [
            ("Mixed Tulip Bunch", "Fifteen tulips in assorted spring colours", "32.50", 60),
            ("Yellow Tulip Basket", "A woven basket of fresh yellow tulips", "38.00", 30),
        ],
    ),
    "Lilies": (
        "Fragrant lilies and arrangements",
        [
            ("Stargazer Lily Bouquet", "Pink stargazer lilies with eucalyptus greens", "49.99", 20),
        ],
    ),
    "Plants": (
        "Potted plants that last",
        [
            ("Orchid in Ceramic Pot", "White phalaenopsis orchid in a glazed ceramic pot", "64.00", 15),
            ("Succulent Trio", "Three small succulents in terracotta pots", "24.00", 50),
        ],
    ),
}


def seed_catalog(db: Session) -> None:
    """Seed flower categories and products when the catalog is empty."""
    if db.query(Category).count() > 0:
        return
    for category_name, (description, products) in SEED_CATALOG.items():
        category = Category(name=category_name, description=description)
        db.add(category)
        db.flush()
        db.add_all([
            Product(
                name=name,
                description=product_description,
                price=Decimal(price),
                stock_quantity=stock,
                category_id=category.id,
            )
            for name, product_description, price, stock in products
        ])
    db.commit()
    logger.info("Seeded database with sample catalog", extra={
        "categories": len(SEED_CATALOG)
    })


def ensure_bootstrap_admin(db: Session) -> None:
    """Create the configured bootstrap admin if it does not exist yet."""
    if not BOOTSTRAP_ADMIN_EMAIL or not BOOTSTRAP_ADMIN_PASSWORD:
        return
    email = BOOTSTRAP_ADMIN_EMAIL.lower()
    if db.query(User).filter(User.email == email).first():
        return
    db.add(User(
        email=email,
        password_hash=hash_password(BOOTSTRAP_ADMIN_PASSWORD),
        first_name="Store",
        last_name="Admin",
        role="admin",
        is_active=True,
        email_verified=True,
    ))
    db.commit()
    logger.info("Created bootstrap admin account", extra={"email": email})


def init_db() -> None:
    """Initialize database tables and seed data."""
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        seed_catalog(db)
        ensure_bootstrap_admin(db)
    finally:
        db.close()
