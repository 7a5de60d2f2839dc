"""Product catalog service."""
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import or_, update
from sqlalchemy.orm import Session, joinedload
from opentelemetry import trace

from errors import AppError
from models import CartItem, Category, OrderItem, Product, utcnow
from monitoring import product_views_counter
from schemas import PageParams

logger = logging.getLogger(__name__)


class ProductService:
    """Service for reading and maintaining the product catalog."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def get_products(
        self,
        db: Session,
        params: PageParams,
        category_id: Optional[int] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        search: Optional[str] = None,
        is_active: Optional[bool] = None
    ) -> Tuple[List[Product], int]:
        """
        Filter, sort and page the catalog.

        Args:
            db: Database session
            params: Page, limit and whitelisted sort column/direction
            category_id: Only products in this category
            min_price: Inclusive lower price bound
            max_price: Inclusive upper price bound
            search: Substring matched against name and description
            is_active: Active flag filter; clients always pass True

        Returns:
            Tuple of (products on this page, total matching products)
        """
        with self.tracer.start_as_current_span("db.query.get_products") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "products")

            query = db.query(Product)
            if category_id is not None:
                query = query.filter(Product.category_id == category_id)
            if min_price is not None:
                query = query.filter(Product.price >= min_price)
            if max_price is not None:
                query = query.filter(Product.price <= max_price)
            if search:
                pattern = f"%{search}%"
                query = query.filter(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
            if is_active is not None:
                query = query.filter(Product.is_active.is_(is_active))

            total = query.count()
            sort_column = getattr(Product, params.sort)
            ordering = sort_column.asc() if params.order == "asc" else sort_column.desc()
            products = (
                query.options(joinedload(Product.category))
                .order_by(ordering, Product.id.desc())
                .offset(params.offset)
                .limit(params.limit)
                .all()
            )

            db_span.set_attribute("db.rows_returned", len(products))
            db_span.set_attribute("db.total_rows", total)
            product_views_counter.add(1, {"view": "listing"})
            return products, total

    def get_product(self, db: Session, product_id: int, active_only: bool = False) -> Product:
        """
        Fetch one product.

        Raises:
            AppError: 404 when missing, or inactive and active_only is set
        """
        query = db.query(Product).options(joinedload(Product.category)).filter(Product.id == product_id)
        if active_only:
            query = query.filter(Product.is_active.is_(True))
        product = query.first()
        if product is None:
            raise AppError("Product not found", 404)
        if active_only:
            product_views_counter.add(1, {"view": "detail"})
        return product

    def get_featured_products(self, db: Session, limit: int = 8) -> List[Product]:
        """Latest active products."""
        return (
            db.query(Product)
            .options(joinedload(Product.category))
            .filter(Product.is_active.is_(True))
            .order_by(Product.created_at.desc(), Product.id.desc())
            .limit(limit)
            .all()
        )

    def _ensure_active_category(self, db: Session, category_id: Optional[int]) -> None:
        if category_id is None:
            return
        exists = db.query(Category.id).filter(
            Category.id == category_id,
            Category.is_active.is_(True)
        ).first()
        if not exists:
            raise AppError("Category not found", 404)

    def create_product(self, db: Session, data: Dict[str, Any]) -> Product:
        """
        Create a product.

        Raises:
            AppError: 404 if category_id does not name an active category
        """
        self._ensure_active_category(db, data.get("category_id"))
        product = Product(**data)
        try:
            db.add(product)
            db.commit()
            db.refresh(product)
        except Exception:
            db.rollback()
            raise
        logger.info("Product created", extra={"product_id": product.id, "product_name": product.name})
        return product

    def update_product(self, db: Session, product_id: int, changes: Dict[str, Any]) -> Product:
        """Apply a partial update. Only the keys present in changes are written."""
        product = self.get_product(db, product_id)
        if not changes:
            raise AppError("No fields to update", 400)
        if "category_id" in changes:
            self._ensure_active_category(db, changes["category_id"])

        for field, value in changes.items():
            setattr(product, field, value)
        try:
            db.commit()
            db.refresh(product)
        except Exception:
            db.rollback()
            raise
        logger.info("Product updated", extra={"product_id": product.id, "fields": sorted(changes)})
        return product

    def delete_product(self, db: Session, product_id: int) -> Optional[str]:
        """
        Delete a product that has never been ordered.

        Returns:
            The image URL the product had, so callers can remove the file

        Raises:
            AppError: 404 if missing, 400 if any order item references it
        """
        product = self.get_product(db, product_id)
        if db.query(OrderItem.id).filter(OrderItem.product_id == product.id).first():
            raise AppError("Cannot delete product that has been ordered", 400)
        image_url = product.image_url
        try:
            db.query(CartItem).filter(CartItem.product_id == product.id).delete(synchronize_session=False)
            db.delete(product)
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("Product deleted", extra={"product_id": product_id})
        return image_url

    def update_stock(self, db: Session, product_id: int, quantity: int, operation: str = "decrement") -> Product:
        """
        Adjust stock by hand.

        Args:
            db: Database session
            product_id: Product identifier
            quantity: Units to remove, add, or the new absolute level
            operation: "decrement", "increment" or "set"

        Raises:
            AppError: 404 if missing, 400 if a decrement would go below zero
        """
        with self.tracer.start_as_current_span("db.query.update_product_stock") as db_span:
            db_span.set_attribute("db.operation", "UPDATE")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("product.id", product_id)
            db_span.set_attribute("stock.operation", operation)

            product = self.get_product(db, product_id)
            statement = update(Product).where(Product.id == product.id)
            if operation == "decrement":
                statement = statement.where(Product.stock_quantity >= quantity).values(
                    stock_quantity=Product.stock_quantity - quantity, updated_at=utcnow()
                )
            elif operation == "increment":
                statement = statement.values(stock_quantity=Product.stock_quantity + quantity, updated_at=utcnow())
            else:
                statement = statement.values(stock_quantity=quantity, updated_at=utcnow())

            try:
                result = db.execute(statement.execution_options(synchronize_session=False))
                if result.rowcount == 0:
                    raise AppError("Insufficient stock available", 400)
                db.commit()
            except Exception:
                db.rollback()
                raise

            db.refresh(product)
            db_span.set_attribute("product.stock.after", product.stock_quantity)
            logger.info("Product stock updated", extra={
                "product_id": product.id,
                "operation": operation,
                "quantity": quantity,
                "stock_quantity": product.stock_quantity
            })
            return product
