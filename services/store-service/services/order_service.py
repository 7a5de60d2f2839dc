"""Order management service."""
import logging
import secrets
import string
import time
from collections import OrderedDict
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import case, distinct, func, update
from sqlalchemy.orm import Session, joinedload, selectinload
from opentelemetry import trace

from errors import AppError
from models import Order, OrderItem, OrderStatusHistory, Product, User, utcnow
from monitoring import (
    order_amount_histogram,
    order_transitions_counter,
    orders_created_counter,
    stock_restored_counter,
)
from services.cart_service import CartService
from services.periods import day_start, period_label, shift_months

logger = logging.getLogger(__name__)

ORDER_TRANSITIONS = {
    "pending": ("confirmed", "cancelled"),
    "confirmed": ("shipped", "cancelled"),
    "shipped": ("delivered",),
    "delivered": (),
    "cancelled": (),
}

PAYMENT_TRANSITIONS = {
    "pending": ("paid", "failed"),
    "failed": ("pending", "paid"),
    "paid": ("refunded",),
    "refunded": (),
}

_TRANSITION_TABLES = {
    "status": ("order status", ORDER_TRANSITIONS),
    "payment_status": ("payment status", PAYMENT_TRANSITIONS),
}

_ORDER_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
CENTS = Decimal("0.01")


def generate_order_number() -> str:
    """ORD-<epoch ms>-<9 uppercase alphanumerics>."""
    suffix = "".join(secrets.choice(_ORDER_NUMBER_ALPHABET) for _ in range(9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def can_transition(field: str, current: str, target: str) -> bool:
    """True when target is reachable from current in one step (or equal to it)."""
    _, table = _TRANSITION_TABLES[field]
    return current == target or target in table.get(current, ())


def check_transition(field: str, current: str, target: str) -> bool:
    """
    Validate a status change against its transition table.

    Args:
        field: "status" or "payment_status"
        current: Value stored on the order
        target: Requested value

    Returns:
        False when target equals current (nothing to do), True otherwise

    Raises:
        AppError: 400 naming both states when the jump is not allowed
    """
    label, table = _TRANSITION_TABLES[field]
    if current == target:
        return False
    if target not in table.get(current, ()):
        order_transitions_counter.add(1, {"field": field, "outcome": "rejected"})
        raise AppError(f"Cannot change {label} from '{current}' to '{target}'", 400)
    return True


class OrderService:
    """Service for managing orders."""

    def __init__(self, cart_service: CartService):
        """
        Initialize order service.

        Args:
            cart_service: Cart service, used to read and prune the cart at checkout
        """
        self.cart_service = cart_service
        self.tracer = trace.get_tracer(__name__)

    # --- Checkout ---

    @staticmethod
    def _merge_lines(lines: List[Dict[str, Any]]) -> "OrderedDict[int, Dict[str, Any]]":
        merged: "OrderedDict[int, Dict[str, Any]]" = OrderedDict()
        for line in lines:
            entry = merged.setdefault(line["product_id"], {"quantity": 0, "prices": []})
            entry["quantity"] += line["quantity"]
            if line.get("price") is not None:
                entry["prices"].append(Decimal(str(line["price"])).quantize(CENTS))
        return merged

    def create_order(
        self,
        db: Session,
        user: User,
        shipping_address: str,
        items: Optional[List[Dict[str, Any]]] = None,
        billing_address: Optional[str] = None,
        payment_method: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Order:
        """
        Place an order in a single transaction.

        Every product row is locked and re-priced from the database. Stock is
        taken with a conditional UPDATE, so two checkouts can never both take
        the last unit. Purchased products leave the caller's cart.

        Args:
            db: Database session
            user: Buyer
            shipping_address: Delivery address
            items: Lines of {product_id, quantity, price?}; the cart when empty
            billing_address: Optional billing address
            payment_method: Optional payment method
            notes: Optional order notes

        Returns:
            The created order with its items

        Raises:
            AppError: 400 for an empty order or insufficient stock, 404 for an
                unknown or inactive product, 409 when a supplied price is stale
        """
        source = "request" if items else "cart"
        if not items:
            items = self.cart_service.get_checkout_lines(db, user.id)
        if not items:
            raise AppError("Order must contain at least one item", 400)

        lines = self._merge_lines(items)
        span = trace.get_current_span()
        span.set_attribute("order.line_count", len(lines))
        span.set_attribute("order.item_source", source)

        with self.tracer.start_as_current_span("db.transaction.create_order") as db_span:
            db_span.set_attribute("db.operation", "INSERT")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("user.id", user.id)

            try:
                # Lock in id order so concurrent checkouts cannot deadlock
                products = {
                    product.id: product
                    for product in db.query(Product)
                    .filter(Product.id.in_(sorted(lines)))
                    .order_by(Product.id)
                    .with_for_update()
                    .all()
                }

                total_amount = Decimal("0.00")
                order_items = []
                for product_id, line in lines.items():
                    product = products.get(product_id)
                    if product is None or not product.is_active:
                        raise AppError(f"Product {product_id} not found", 404)

                    current_price = Decimal(product.price).quantize(CENTS)
                    if any(price != current_price for price in line["prices"]):
                        raise AppError(
                            f"The price of '{product.name}' has changed to {current_price}. "
                            "Please review your order",
                            409
                        )

                    quantity = line["quantity"]
                    with self.tracer.start_as_current_span("db.query.decrement_stock") as stock_span:
                        stock_span.set_attribute("db.operation", "UPDATE")
                        stock_span.set_attribute("product.id", product_id)
                        stock_span.set_attribute("quantity", quantity)
                        result = db.execute(
                            update(Product)
                            .where(Product.id == product_id, Product.stock_quantity >= quantity)
                            .values(stock_quantity=Product.stock_quantity - quantity, updated_at=utcnow())
                            .execution_options(synchronize_session=False)
                        )
                        stock_span.set_attribute("db.rows_affected", result.rowcount)
                    if result.rowcount == 0:
                        raise AppError(f"Insufficient stock available for '{product.name}'", 400)

                    total_amount += current_price * quantity
                    order_items.append(OrderItem(product_id=product_id, quantity=quantity, price=current_price))

                order = Order(
                    user_id=user.id,
                    order_number=generate_order_number(),
                    total_amount=total_amount,
                    status="pending",
                    payment_status="pending",
                    shipping_address=shipping_address,
                    billing_address=billing_address,
                    payment_method=payment_method,
                    notes=notes,
                    items=order_items,
                )
                order.history.append(OrderStatusHistory(
                    field="status",
                    from_value=None,
                    to_value="pending",
                    changed_by=user.id,
                    note="Order placed",
                ))
                db.add(order)
                self.cart_service.remove_products(db, user.id, lines.keys())
                db.commit()
            except Exception as e:
                db.rollback()
                logger.warning("Failed to create order", extra={
                    "user_id": user.id,
                    "line_count": len(lines),
                    "error": str(e)
                })
                raise

            db_span.set_attribute("order.id", order.id)
            db_span.set_attribute("order.total_amount", float(total_amount))

        orders_created_counter.add(1, {
            "payment_method": payment_method or "unspecified",
            "source": source
        })
        order_amount_histogram.record(float(total_amount), {"payment_method": payment_method or "unspecified"})
        logger.info("Order created", extra={
            "user_id": user.id,
            "order_id": order.id,
            "order_number": order.order_number,
            "amount": float(total_amount),
            "item_count": len(order_items)
        })
        return self.get_order(db, order.id)

    # --- Reads ---

    def _order_query(self, db: Session):
        return db.query(Order).options(
            joinedload(Order.user),
            selectinload(Order.items).joinedload(OrderItem.product),
        )

    def _page(self, db: Session, query, page: int, limit: int) -> Tuple[List[Order], int]:
        """Page ids first, then load the full rows with their items."""
        total = query.count()
        newest_first = (Order.created_at.desc(), Order.id.desc())
        page_ids = [
            row[0] for row in query.with_entities(Order.id)
            .order_by(*newest_first)
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        ]
        if not page_ids:
            return [], total
        orders = self._order_query(db).filter(Order.id.in_(page_ids)).order_by(*newest_first).all()
        return orders, total

    def get_order(self, db: Session, order_id: int) -> Order:
        order = self._order_query(db).filter(Order.id == order_id).first()
        if order is None:
            raise AppError("Order not found", 404)
        return order

    def get_order_for_user(self, db: Session, order_id: int, user: User) -> Order:
        """
        Fetch an order on behalf of its owner.

        Raises:
            AppError: 404 if missing, 403 if it belongs to someone else
        """
        order = self.get_order(db, order_id)
        if order.user_id != user.id:
            logger.warning("Order access denied", extra={
                "order_id": order_id,
                "user_id": user.id
            })
            raise AppError("Access denied", 403)
        return order

    def get_user_orders(
        self,
        db: Session,
        user_id: int,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None
    ) -> Tuple[List[Order], int]:
        """
        Get a page of a user's orders, newest first.

        Args:
            db: Database session
            user_id: User identifier
            page: 1-based page
            limit: Page size
            status: Optional status filter

        Returns:
            Tuple of (orders, total)
        """
        with self.tracer.start_as_current_span("db.query.get_user_orders") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "orders")
            db_span.set_attribute("user.id", user_id)

            query = db.query(Order).filter(Order.user_id == user_id)
            if status:
                query = query.filter(Order.status == status)
            orders, total = self._page(db, query, page, limit)

            db_span.set_attribute("db.rows_returned", len(orders))
            return orders, total

    def get_all_orders(
        self,
        db: Session,
        page: int = 1,
        limit: int = 10,
        status: Optional[str] = None,
        payment_status: Optional[str] = None,
        user_id: Optional[int] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None
    ) -> Tuple[List[Order], int]:
        """Admin order listing with filters. date_to is inclusive."""
        with self.tracer.start_as_current_span("db.query.get_all_orders") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "orders")

            query = db.query(Order)
            if status:
                query = query.filter(Order.status == status)
            if payment_status:
                query = query.filter(Order.payment_status == payment_status)
            if user_id is not None:
                query = query.filter(Order.user_id == user_id)
            if date_from is not None:
                query = query.filter(Order.created_at >= day_start(date_from))
            if date_to is not None:
                query = query.filter(Order.created_at < day_start(date_to) + timedelta(days=1))

            orders, total = self._page(db, query, page, limit)
            db_span.set_attribute("db.rows_returned", len(orders))
            return orders, total

    def get_order_history(self, db: Session, order_id: int) -> List[OrderStatusHistory]:
        """Status and payment transitions of an order, newest first."""
        if not db.query(Order.id).filter(Order.id == order_id).first():
            raise AppError("Order not found", 404)
        return (
            db.query(OrderStatusHistory)
            .filter(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.created_at.desc(), OrderStatusHistory.id.desc())
            .all()
        )

    # --- Transitions ---

    def _lock_order(self, db: Session, order_id: int) -> Order:
        order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
        if order is None:
            raise AppError("Order not found", 404)
        return order

    def _restore_stock(self, db: Session, order: Order) -> None:
        with self.tracer.start_as_current_span("db.query.restore_stock") as db_span:
            db_span.set_attribute("db.operation", "UPDATE")
            db_span.set_attribute("db.table", "products")
            db_span.set_attribute("order.id", order.id)
            for item in order.items:
                db.execute(
                    update(Product)
                    .where(Product.id == item.product_id)
                    .values(stock_quantity=Product.stock_quantity + item.quantity, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                stock_restored_counter.add(item.quantity, {"product_id": str(item.product_id)})

    def _apply_transition(
        self,
        db: Session,
        order: Order,
        field: str,
        target: str,
        changed_by: Optional[int],
        note: Optional[str]
    ) -> bool:
        current = getattr(order, field)
        if not check_transition(field, current, target):
            return False
        if field == "status" and target == "cancelled":
            self._restore_stock(db, order)
        setattr(order, field, target)
        order.history.append(OrderStatusHistory(
            field=field,
            from_value=current,
            to_value=target,
            changed_by=changed_by,
            note=note,
        ))
        order_transitions_counter.add(1, {"field": field, "to": target, "outcome": "applied"})
        return True

    def _transition(
        self,
        db: Session,
        order_id: int,
        field: str,
        target: str,
        changed_by: Optional[int],
        note: Optional[str]
    ) -> Order:
        try:
            order = self._lock_order(db, order_id)
            changed = self._apply_transition(db, order, field, target, changed_by, note)
            if changed:
                db.commit()
            else:
                db.rollback()
        except Exception:
            db.rollback()
            raise

        if changed:
            logger.info("Order transition applied", extra={
                "order_id": order_id,
                "field": field,
                "to": target,
                "changed_by": changed_by
            })
        return self.get_order(db, order_id)

    def update_order_status(
        self,
        db: Session,
        order_id: int,
        status: str,
        changed_by: Optional[int] = None,
        note: Optional[str] = None
    ) -> Order:
        """
        Move an order along the status table. Cancelling restores stock.

        Raises:
            AppError: 404 if missing, 400 for a disallowed transition
        """
        return self._transition(db, order_id, "status", status, changed_by, note)

    def update_payment_status(
        self,
        db: Session,
        order_id: int,
        payment_status: str,
        changed_by: Optional[int] = None,
        note: Optional[str] = None
    ) -> Order:
        """
        Move an order along the payment status table.

        Raises:
            AppError: 404 if missing, 400 for a disallowed transition
        """
        return self._transition(db, order_id, "payment_status", payment_status, changed_by, note)

    def cancel_order(self, db: Session, order_id: int, user: User) -> Order:
        """
        Cancel one of the caller's own pending orders and restore its stock.

        Raises:
            AppError: 404 if missing, 403 if not the caller's, 400 unless pending
        """
        try:
            order = self._lock_order(db, order_id)
            if order.user_id != user.id:
                raise AppError("Access denied", 403)
            if order.status != "pending":
                raise AppError("Only pending orders can be cancelled", 400)
            self._apply_transition(db, order, "status", "cancelled", user.id, "Cancelled by customer")
            db.commit()
        except Exception:
            db.rollback()
            raise

        logger.info("Order cancelled by customer", extra={"order_id": order_id, "user_id": user.id})
        return self.get_order(db, order_id)

    # --- Reporting ---

    def get_order_stats(self, db: Session) -> Dict[str, Any]:
        """Headline order statistics for the admin orders page."""
        now = utcnow()
        paid = Order.payment_status == "paid"

        total_orders = db.query(func.count(Order.id)).scalar() or 0
        total_revenue = db.query(func.coalesce(func.sum(Order.total_amount), 0)).filter(paid).scalar()
        recent_orders = db.query(func.count(Order.id)).filter(
            Order.created_at >= now - timedelta(days=30)
        ).scalar() or 0

        status_breakdown = [
            {"status": status, "count": count}
            for status, count in db.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
        ]
        payment_breakdown = [
            {"payment_status": status, "count": count}
            for status, count in db.query(Order.payment_status, func.count(Order.id))
            .group_by(Order.payment_status).all()
        ]

        month = period_label(db, Order.created_at, "month").label("month")
        monthly_revenue = [
            {"month": label, "revenue": float(revenue or 0), "orders": count}
            for label, revenue, count in db.query(month, func.sum(Order.total_amount), func.count(Order.id))
            .filter(paid, Order.created_at >= shift_months(now, -11))
            .group_by(month)
            .order_by(month)
            .all()
        ]

        spent = func.sum(Order.total_amount).label("total_spent")
        top_customers = [
            {
                "user_id": user_id,
                "name": f"{first_name} {last_name}",
                "email": email,
                "order_count": order_count,
                "total_spent": float(total_spent or 0),
            }
            for user_id, first_name, last_name, email, order_count, total_spent in db.query(
                User.id, User.first_name, User.last_name, User.email, func.count(Order.id), spent
            )
            .join(Order, Order.user_id == User.id)
            .filter(Order.status != "cancelled")
            .group_by(User.id, User.first_name, User.last_name, User.email)
            .order_by(spent.desc())
            .limit(10)
            .all()
        ]

        day = period_label(db, Order.created_at, "day").label("day")
        status_timeline = [
            {"date": label, "status": status, "count": count}
            for label, status, count in db.query(day, Order.status, func.count(Order.id))
            .filter(Order.created_at >= now - timedelta(days=30))
            .group_by(day, Order.status)
            .order_by(day)
            .all()
        ]

        return {
            "totalOrders": total_orders,
            "totalRevenue": float(total_revenue or 0),
            "recentOrders": recent_orders,
            "statusBreakdown": status_breakdown,
            "paymentStatusBreakdown": payment_breakdown,
            "monthlyRevenue": monthly_revenue,
            "topCustomers": top_customers,
            "statusTimeline": status_timeline,
        }

    def get_order_analytics(
        self,
        db: Session,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        group_by: str = "day"
    ) -> Dict[str, Any]:
        """
        Order trends, product performance and customer analytics.

        Args:
            db: Database session
            start_date: Inclusive start, defaults to 30 days ago
            end_date: Inclusive end, defaults to today
            group_by: "day", "week" or "month"
        """
        today = utcnow().date()
        end_date = end_date or today
        start_date = start_date or end_date - timedelta(days=30)
        if start_date > end_date:
            raise AppError("start_date must be before end_date", 400)

        window = (
            Order.created_at >= day_start(start_date),
            Order.created_at < day_start(end_date) + timedelta(days=1),
        )
        paid_amount = case((Order.payment_status == "paid", Order.total_amount), else_=0)

        bucket = period_label(db, Order.created_at, group_by).label("period")
        trends = [
            {
                "period": label,
                "orders": count,
                "revenue": float(revenue or 0),
                "average_order_value": float(average or 0),
            }
            for label, count, revenue, average in db.query(
                bucket, func.count(Order.id), func.sum(paid_amount), func.avg(Order.total_amount)
            )
            .filter(*window)
            .group_by(bucket)
            .order_by(bucket)
            .all()
        ]

        units = func.sum(OrderItem.quantity).label("units_sold")
        product_performance = [
            {
                "product_id": product_id,
                "name": name,
                "units_sold": int(units_sold or 0),
                "revenue": float(revenue or 0),
                "order_count": order_count,
            }
            for product_id, name, units_sold, revenue, order_count in db.query(
                Product.id,
                Product.name,
                units,
                func.sum(OrderItem.price * OrderItem.quantity),
                func.count(distinct(OrderItem.order_id)),
            )
            .join(OrderItem, OrderItem.product_id == Product.id)
            .join(Order, Order.id == OrderItem.order_id)
            .filter(Order.status != "cancelled", *window)
            .group_by(Product.id, Product.name)
            .order_by(units.desc())
            .limit(20)
            .all()
        ]

        per_customer = (
            db.query(Order.user_id.label("user_id"), func.count(Order.id).label("order_count"))
            .filter(*window)
            .group_by(Order.user_id)
            .subquery()
        )
        customers, repeat_customers, orders_total = db.query(
            func.count(per_customer.c.user_id),
            func.count(case((per_customer.c.order_count > 1, 1))),
            func.coalesce(func.sum(per_customer.c.order_count), 0),
        ).one()

        first_orders = (
            db.query(Order.user_id, func.min(Order.created_at).label("first_order"))
            .group_by(Order.user_id)
            .subquery()
        )
        new_customers = db.query(func.count(first_orders.c.user_id)).filter(
            first_orders.c.first_order >= day_start(start_date),
            first_orders.c.first_order < day_start(end_date) + timedelta(days=1),
        ).scalar() or 0

        return {
            "range": {"start_date": start_date.isoformat(), "end_date": end_date.isoformat(), "group_by": group_by},
            "orderTrends": trends,
            "productPerformance": product_performance,
            "customerAnalytics": {
                "total_customers": customers or 0,
                "new_customers": new_customers,
                "repeat_customers": repeat_customers or 0,
                "average_orders_per_customer": round(float(orders_total) / customers, 2) if customers else 0,
            },
        }
