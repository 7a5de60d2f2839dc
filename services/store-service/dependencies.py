"""Dependency injection for services."""
from typing import Any
import redis
from fastapi import Depends, Query, Request

from services.auth_service import AuthService
from services.cart_service import CartService
from services.category_service import CategoryService
from services.dashboard_service import DashboardService
from services.image_storage import ImageStorage
from services.order_service import OrderService
from services.payment_gateway import ChapaClient
from services.payment_service import PaymentService
from services.product_service import ProductService
from services.user_service import UserService
from schemas import PageParams, SortField, SortOrder


def get_redis(request: Request) -> redis.Redis:
    """Get Redis client from app state."""
    return request.app.state.redis_client


def get_http_client(request: Request) -> Any:
    """Get HTTP client from app state."""
    return request.app.state.http_client


def get_auth_service() -> AuthService:
    return AuthService()


def get_user_service() -> UserService:
    return UserService()


def get_category_service() -> CategoryService:
    return CategoryService()


def get_product_service() -> ProductService:
    return ProductService()


def get_image_storage() -> ImageStorage:
    return ImageStorage()


def get_cart_service() -> CartService:
    return CartService()


def get_order_service(cart_service: CartService = Depends(get_cart_service)) -> OrderService:
    """Get order service instance."""
    return OrderService(cart_service)


def get_dashboard_service() -> DashboardService:
    return DashboardService()


def get_payment_gateway(http_client: Any = Depends(get_http_client)) -> ChapaClient:
    """Get the Chapa client bound to the shared HTTP client."""
    return ChapaClient(http_client)


def get_payment_service(
    gateway: ChapaClient = Depends(get_payment_gateway),
    order_service: OrderService = Depends(get_order_service)
) -> PaymentService:
    return PaymentService(gateway, order_service)


def page_params(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort: SortField = Query("created_at"),
    order: SortOrder = Query("desc")
) -> PageParams:
    """Paging and whitelisted sorting from the query string."""
    return PageParams(page=page, limit=limit, sort=sort, order=order)
