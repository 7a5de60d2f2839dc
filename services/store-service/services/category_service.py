"""Category management service."""
import logging
from typing import Any, Dict, List
from sqlalchemy.orm import Session
from opentelemetry import trace

from errors import AppError
from models import Category, Product

logger = logging.getLogger(__name__)


class CategoryService:
    """Service for managing product categories."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def list_categories(self, db: Session, active_only: bool = True) -> List[Category]:
        """List categories ordered by name. Admins pass active_only=False."""
        with self.tracer.start_as_current_span("db.query.list_categories") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "categories")
            query = db.query(Category)
            if active_only:
                query = query.filter(Category.is_active.is_(True))
            categories = query.order_by(Category.name).all()
            db_span.set_attribute("db.rows_returned", len(categories))
            return categories

    def get_category(self, db: Session, category_id: int, active_only: bool = False) -> Category:
        query = db.query(Category).filter(Category.id == category_id)
        if active_only:
            query = query.filter(Category.is_active.is_(True))
        category = query.first()
        if category is None:
            raise AppError("Category not found", 404)
        return category

    def _ensure_unique_name(self, db: Session, name: str, exclude_id: int = None) -> None:
        query = db.query(Category.id).filter(Category.name == name)
        if exclude_id is not None:
            query = query.filter(Category.id != exclude_id)
        if query.first():
            raise AppError("Category with this name already exists", 409)

    def create_category(self, db: Session, data: Dict[str, Any]) -> Category:
        """
        Create a category.

        Raises:
            AppError: 409 if the name is already used
        """
        self._ensure_unique_name(db, data["name"])
        category = Category(**data)
        try:
            db.add(category)
            db.commit()
            db.refresh(category)
        except Exception:
            db.rollback()
            raise
        logger.info("Category created", extra={"category_id": category.id, "category_name": category.name})
        return category

    def update_category(self, db: Session, category_id: int, changes: Dict[str, Any]) -> Category:
        category = self.get_category(db, category_id)
        if not changes:
            raise AppError("No fields to update", 400)
        if "name" in changes:
            self._ensure_unique_name(db, changes["name"], exclude_id=category.id)

        for field, value in changes.items():
            setattr(category, field, value)
        try:
            db.commit()
            db.refresh(category)
        except Exception:
            db.rollback()
            raise
        logger.info("Category updated", extra={"category_id": category.id, "fields": sorted(changes)})
        return category

    def delete_category(self, db: Session, category_id: int) -> None:
        """
        Delete a category nothing references.

        Raises:
            AppError: 404 if missing, 400 if any product uses it
        """
        category = self.get_category(db, category_id)
        if db.query(Product.id).filter(Product.category_id == category.id).first():
            raise AppError("Cannot delete category that has products", 400)
        try:
            db.delete(category)
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("Category deleted", extra={"category_id": category_id})
