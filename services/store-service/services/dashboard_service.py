"""Read-only aggregations behind the admin dashboard."""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List
from sqlalchemy import case, distinct, func
from sqlalchemy.orm import Session, joinedload
from opentelemetry import trace

from errors import AppError
from models import Category, Order, OrderItem, Product, User, utcnow
from services.periods import month_start, period_label, shift_months

logger = logging.getLogger(__name__)

ANALYTICS_WINDOWS = {
    "day": timedelta(days=30),
    "week": timedelta(weeks=12),
    "month": timedelta(days=365),
    "year": timedelta(days=5 * 365),
}


def percent_change(current: float, previous: float) -> float:
    """Month-over-month change in percent. 0 when there is no baseline."""
    if not previous:
        return 0.0
    return round((current - previous) / previous * 100, 2)


class DashboardService:
    """Service for dashboard statistics."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def _paid_revenue(self, db: Session, start: datetime, end: datetime) -> float:
        value = db.query(func.coalesce(func.sum(Order.total_amount), 0)).filter(
            Order.payment_status == "paid",
            Order.created_at >= start,
            Order.created_at < end,
        ).scalar()
        return float(value or 0)

    @staticmethod
    def _count_between(db: Session, column, created_at, start: datetime, end: datetime, *criteria) -> int:
        return db.query(func.count(column)).filter(created_at >= start, created_at < end, *criteria).scalar() or 0

    def get_dashboard_stats(self, db: Session) -> Dict[str, Any]:
        """
        Headline numbers for the current month with month-over-month deltas.

        Returns:
            Revenue and order totals for this month, active products and
            clients, percentage changes, average paid order value, conversion
            and repeat-customer rates. Floats are rounded to 2 decimals.
        """
        with self.tracer.start_as_current_span("db.query.dashboard_stats") as db_span:
            db_span.set_attribute("db.operation", "SELECT")

            now = utcnow()
            this_month = month_start(now)
            last_month = shift_months(now, -1)
            next_month = shift_months(now, 1)

            revenue = self._paid_revenue(db, this_month, next_month)
            previous_revenue = self._paid_revenue(db, last_month, this_month)

            orders = self._count_between(db, Order.id, Order.created_at, this_month, next_month)
            previous_orders = self._count_between(db, Order.id, Order.created_at, last_month, this_month)

            new_products = self._count_between(db, Product.id, Product.created_at, this_month, next_month)
            previous_new_products = self._count_between(db, Product.id, Product.created_at, last_month, this_month)

            is_client = User.role == "client"
            new_customers = self._count_between(db, User.id, User.created_at, this_month, next_month, is_client)
            previous_new_customers = self._count_between(
                db, User.id, User.created_at, last_month, this_month, is_client
            )

            active_products = db.query(func.count(Product.id)).filter(Product.is_active.is_(True)).scalar() or 0
            active_clients = db.query(func.count(User.id)).filter(is_client, User.is_active.is_(True)).scalar() or 0
            total_clients = db.query(func.count(User.id)).filter(is_client).scalar() or 0

            average_order_value = db.query(func.avg(Order.total_amount)).filter(
                Order.payment_status == "paid"
            ).scalar()

            per_client = (
                db.query(Order.user_id.label("user_id"), func.count(Order.id).label("order_count"))
                .join(User, User.id == Order.user_id)
                .filter(is_client)
                .group_by(Order.user_id)
                .subquery()
            )
            buyers, repeat_buyers = db.query(
                func.count(per_client.c.user_id),
                func.count(case((per_client.c.order_count > 1, 1))),
            ).one()
            buyers = buyers or 0
            repeat_buyers = repeat_buyers or 0

            return {
                "totalRevenue": round(revenue, 2),
                "totalOrders": orders,
                "totalProducts": active_products,
                "totalCustomers": active_clients,
                "revenueChange": percent_change(revenue, previous_revenue),
                "ordersChange": percent_change(orders, previous_orders),
                "productsChange": percent_change(new_products, previous_new_products),
                "customersChange": percent_change(new_customers, previous_new_customers),
                "averageOrderValue": round(float(average_order_value or 0), 2),
                "conversionRate": round(buyers / total_clients * 100, 2) if total_clients else 0.0,
                "repeatCustomerRate": round(repeat_buyers / buyers * 100, 2) if buyers else 0.0,
            }

    def get_recent_orders(self, db: Session, limit: int = 10) -> List[Order]:
        return (
            db.query(Order)
            .options(joinedload(Order.user))
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
            .all()
        )

    def get_top_products(self, db: Session, limit: int = 5) -> List[Dict[str, Any]]:
        """Best sellers by revenue across this month's paid orders."""
        this_month = month_start(utcnow())
        revenue = func.sum(OrderItem.price * OrderItem.quantity).label("revenue")
        rows = (
            db.query(
                Product.id,
                Product.name,
                Product.image_url,
                Product.price,
                func.sum(OrderItem.quantity),
                revenue,
            )
            .join(OrderItem, OrderItem.product_id == Product.id)
            .join(Order, Order.id == OrderItem.order_id)
            .filter(Order.payment_status == "paid", Order.created_at >= this_month)
            .group_by(Product.id, Product.name, Product.image_url, Product.price)
            .order_by(revenue.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                "id": product_id,
                "name": name,
                "image_url": image_url,
                "price": float(price),
                "units_sold": int(units or 0),
                "revenue": float(total or 0),
            }
            for product_id, name, image_url, price, units, total in rows
        ]

    def get_category_performance(self, db: Session) -> List[Dict[str, Any]]:
        """Paid revenue per active category and its share of the total."""
        paid_item_revenue = case(
            (Order.payment_status == "paid", OrderItem.price * OrderItem.quantity),
            else_=0,
        )
        rows = (
            db.query(
                Category.id,
                Category.name,
                func.count(distinct(Product.id)),
                func.coalesce(func.sum(paid_item_revenue), 0),
            )
            .outerjoin(Product, Product.category_id == Category.id)
            .outerjoin(OrderItem, OrderItem.product_id == Product.id)
            .outerjoin(Order, Order.id == OrderItem.order_id)
            .filter(Category.is_active.is_(True))
            .group_by(Category.id, Category.name)
            .all()
        )
        grand_total = sum(float(total or 0) for *_, total in rows)
        performance = [
            {
                "id": category_id,
                "name": name,
                "product_count": product_count,
                "revenue": round(float(total or 0), 2),
                "percentage": round(float(total or 0) / grand_total * 100, 2) if grand_total else 0.0,
            }
            for category_id, name, product_count, total in rows
        ]
        performance.sort(key=lambda entry: entry["revenue"], reverse=True)
        return performance

    def get_recent_activity(self, db: Session, limit: int = 10) -> List[Dict[str, Any]]:
        """Recent orders and recently updated products, merged by time."""
        half = max(1, limit // 2)
        activity = [
            {
                "type": "order",
                "id": order.id,
                "title": f"New order {order.order_number}",
                "description": f"{order.customer_name} placed an order of {float(order.total_amount):.2f}",
                "status": order.status,
                "timestamp": order.created_at,
            }
            for order in self.get_recent_orders(db, half)
        ]
        products = (
            db.query(Product)
            .filter(Product.updated_at >= utcnow() - timedelta(days=7))
            .order_by(Product.updated_at.desc(), Product.id.desc())
            .limit(half)
            .all()
        )
        activity.extend(
            {
                "type": "product",
                "id": product.id,
                "title": f"Product updated: {product.name}",
                "description": f"Stock level {product.stock_quantity}",
                "status": "active" if product.is_active else "inactive",
                "timestamp": product.updated_at,
            }
            for product in products
        )
        activity.sort(key=lambda entry: entry["timestamp"] or datetime.min, reverse=True)
        return activity[:limit]

    def get_analytics(self, db: Session, period: str = "month") -> List[Dict[str, Any]]:
        """
        Revenue and order counts bucketed by period.

        Args:
            db: Database session
            period: "day" (30 days), "week" (12 weeks), "month" (12 months) or "year" (5 years)
        """
        if period not in ANALYTICS_WINDOWS:
            raise AppError("Period must be one of day, week, month, year", 400)

        with self.tracer.start_as_current_span("db.query.dashboard_analytics") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("analytics.period", period)

            bucket = period_label(db, Order.created_at, period).label("period")
            paid_amount = case((Order.payment_status == "paid", Order.total_amount), else_=0)
            rows = (
                db.query(
                    bucket,
                    func.coalesce(func.sum(paid_amount), 0),
                    func.count(Order.id),
                    func.count(distinct(Order.user_id)),
                )
                .filter(Order.created_at >= utcnow() - ANALYTICS_WINDOWS[period])
                .group_by(bucket)
                .order_by(bucket)
                .all()
            )
            return [
                {"period": label, "revenue": float(revenue or 0), "orders": orders, "customers": customers}
                for label, revenue, orders, customers in rows
            ]
