"""Client orders API router."""
from typing import List, Optional
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from auth import require_client
from database import get_db
from dependencies import get_order_service
from models import User
from schemas import ApiResponse, CreateOrderRequest, OrderResponse, OrderStatus, Pagination
from services.order_service import OrderService

router = APIRouter(prefix="/client/orders", tags=["orders"])


@router.post("", response_model=ApiResponse[OrderResponse], status_code=201)
async def create_order(
    request: CreateOrderRequest,
    user: User = Depends(require_client),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    """
    Place an order.

    Sends the listed items, or the caller's cart when items is empty. Prices
    are taken from the catalog; a stale client price is answered with 409.
    """
    order = order_service.create_order(
        db,
        user,
        shipping_address=request.shipping_address,
        items=[item.model_dump() for item in request.items],
        billing_address=request.billing_address,
        payment_method=request.payment_method,
        notes=request.notes
    )
    return ApiResponse(message="Order created successfully", data=OrderResponse.model_validate(order))


@router.get("", response_model=ApiResponse[List[OrderResponse]])
async def get_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
    user: User = Depends(require_client),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    """Get the caller's orders, newest first."""
    orders, total = order_service.get_user_orders(db, user.id, page, limit, status)
    return ApiResponse(
        message="Orders retrieved successfully",
        data=[OrderResponse.model_validate(order) for order in orders],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/{order_id}", response_model=ApiResponse[OrderResponse])
async def get_order(
    order_id: int = Path(..., ge=1),
    user: User = Depends(require_client),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    order = order_service.get_order_for_user(db, order_id, user)
    return ApiResponse(message="Order retrieved successfully", data=OrderResponse.model_validate(order))


@router.patch("/{order_id}/cancel", response_model=ApiResponse[OrderResponse])
async def cancel_order(
    order_id: int = Path(..., ge=1),
    user: User = Depends(require_client),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    """Cancel a pending order and return its items to stock."""
    order = order_service.cancel_order(db, order_id, user)
    return ApiResponse(message="Order cancelled successfully", data=OrderResponse.model_validate(order))
