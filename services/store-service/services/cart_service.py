"""Cart management service."""
import logging
from typing import Any, Dict, Iterable, List
from sqlalchemy.orm import Session
from opentelemetry import trace

from errors import AppError
from models import CartItem, Product
from monitoring import cart_additions_counter

logger = logging.getLogger(__name__)

# Upper bound of a single cart line, summed over repeated adds
MAX_LINE_QUANTITY = 100


class CartService:
    """Service for managing shopping carts."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    @staticmethod
    def _serialize(item: CartItem, product: Product) -> Dict[str, Any]:
        return {
            "id": item.id,
            "product_id": product.id,
            "quantity": item.quantity,
            "name": product.name,
            "price": float(product.price),
            "image_url": product.image_url,
            "stock_quantity": product.stock_quantity,
            "subtotal": float(product.price * item.quantity),
            "created_at": item.created_at,
            "updated_at": item.updated_at,
        }

    def _lock_active_product(self, db: Session, product_id: int) -> Product:
        with self.tracer.start_as_current_span("db.query.lock_product") as db_span:
            db_span.set_attribute("db.operation", "SELECT FOR UPDATE")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("product.id", product_id)

            product = (
                db.query(Product)
                .filter(Product.id == product_id, Product.is_active.is_(True))
                .with_for_update()
                .first()
            )
            db_span.set_attribute("db.rows_returned", 1 if product else 0)
            if product is None:
                raise AppError("Product not found", 404)
            return product

    def add_to_cart(
        self,
        db: Session,
        user_id: int,
        product_id: int,
        quantity: int
    ) -> Dict[str, Any]:
        """
        Add item to user's cart.

        Repeated adds of the same product sum into one row. The product row
        stays locked until commit, so concurrent adds cannot overcommit stock.

        Args:
            db: Database session
            user_id: User identifier
            product_id: Product identifier
            quantity: Quantity to add

        Returns:
            The cart line after the add

        Raises:
            AppError: 404 if the product is missing or inactive, 400 if the
                resulting quantity exceeds stock
        """
        span = trace.get_current_span()
        span.set_attribute("product.id", product_id)
        span.set_attribute("quantity", quantity)

        try:
            product = self._lock_active_product(db, product_id)
            item = db.query(CartItem).filter(
                CartItem.user_id == user_id,
                CartItem.product_id == product_id
            ).first()

            new_quantity = quantity + (item.quantity if item else 0)
            if new_quantity > MAX_LINE_QUANTITY:
                raise AppError(f"Cart quantity cannot exceed {MAX_LINE_QUANTITY} per product", 400)
            if new_quantity > product.stock_quantity:
                raise AppError("Insufficient stock available", 400)

            if item:
                item.quantity = new_quantity
            else:
                item = CartItem(user_id=user_id, product_id=product_id, quantity=quantity)
                db.add(item)
            db.commit()
            db.refresh(item)
        except Exception:
            db.rollback()
            raise

        cart_additions_counter.add(1, {"product_id": str(product_id)})
        logger.info("Added item to cart", extra={
            "user_id": user_id,
            "product_id": product_id,
            "quantity": quantity,
            "cart_quantity": item.quantity
        })
        return self._serialize(item, product)

    def get_cart_items(self, db: Session, user_id: int) -> List[Dict[str, Any]]:
        """Cart lines whose product is still active, newest first."""
        with self.tracer.start_as_current_span("db.query.get_cart_items") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "cart_items")
            db_span.set_attribute("user.id", user_id)

            rows = (
                db.query(CartItem, Product)
                .join(Product, CartItem.product_id == Product.id)
                .filter(CartItem.user_id == user_id, Product.is_active.is_(True))
                .order_by(CartItem.created_at.desc(), CartItem.id.desc())
                .all()
            )
            db_span.set_attribute("db.rows_returned", len(rows))
            return [self._serialize(item, product) for item, product in rows]

    def get_cart_summary(self, db: Session, user_id: int) -> Dict[str, Any]:
        items = self.get_cart_items(db, user_id)
        return {
            "totalItems": sum(item["quantity"] for item in items),
            "totalPrice": round(sum(item["subtotal"] for item in items), 2),
        }

    def _get_owned_item(self, db: Session, user_id: int, item_id: int) -> CartItem:
        item = db.query(CartItem).filter(CartItem.id == item_id, CartItem.user_id == user_id).first()
        if item is None:
            raise AppError("Cart item not found", 404)
        return item

    def update_cart_item(self, db: Session, user_id: int, item_id: int, quantity: int) -> Dict[str, Any]:
        """
        Set the quantity of one of the caller's cart lines.

        Raises:
            AppError: 404 if the line is not the caller's, 400 if stock is short
        """
        try:
            item = self._get_owned_item(db, user_id, item_id)
            product = self._lock_active_product(db, item.product_id)
            if quantity > product.stock_quantity:
                raise AppError("Insufficient stock available", 400)
            item.quantity = quantity
            db.commit()
            db.refresh(item)
        except Exception:
            db.rollback()
            raise

        logger.info("Updated cart item", extra={
            "user_id": user_id,
            "cart_item_id": item_id,
            "quantity": quantity
        })
        return self._serialize(item, product)

    def remove_from_cart(self, db: Session, user_id: int, item_id: int) -> None:
        item = self._get_owned_item(db, user_id, item_id)
        try:
            db.delete(item)
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("Removed cart item", extra={"user_id": user_id, "cart_item_id": item_id})

    def clear_cart(self, db: Session, user_id: int) -> int:
        """Delete every line in the caller's cart. Returns the number removed."""
        try:
            removed = db.query(CartItem).filter(CartItem.user_id == user_id).delete(synchronize_session=False)
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("Cleared cart", extra={"user_id": user_id, "removed_items": removed})
        return removed

    def remove_products(self, db: Session, user_id: int, product_ids: Iterable[int]) -> int:
        """Drop purchased products from the cart inside the caller's transaction."""
        product_ids = list(product_ids)
        if not product_ids:
            return 0
        return db.query(CartItem).filter(
            CartItem.user_id == user_id,
            CartItem.product_id.in_(product_ids)
        ).delete(synchronize_session=False)

    def get_checkout_lines(self, db: Session, user_id: int) -> List[Dict[str, int]]:
        """The caller's cart as order lines (product_id, quantity)."""
        rows = db.query(CartItem.product_id, CartItem.quantity).filter(CartItem.user_id == user_id).all()
        return [{"product_id": product_id, "quantity": quantity} for product_id, quantity in rows]
