"""Admin orders API router."""
from datetime import date
from typing import Any, Dict, List, Literal, Optional
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from auth import require_admin
from database import get_db
from dependencies import get_order_service
from models import User
from schemas import (
    ApiResponse,
    OrderHistoryResponse,
    OrderResponse,
    OrderStatus,
    OrderStatusUpdate,
    Pagination,
    PaymentStatus,
    PaymentStatusUpdate,
)
from services.order_service import OrderService

router = APIRouter(prefix="/admin/orders", tags=["admin"])


@router.get("", response_model=ApiResponse[List[OrderResponse]])
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[OrderStatus] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None),
    user_id: Optional[int] = Query(None, ge=1),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    """All orders, filtered by status, payment status, customer or date range."""
    orders, total = order_service.get_all_orders(
        db,
        page=page,
        limit=limit,
        status=status,
        payment_status=payment_status,
        user_id=user_id,
        date_from=date_from,
        date_to=date_to
    )
    return ApiResponse(
        message="Orders retrieved successfully",
        data=[OrderResponse.model_validate(order) for order in orders],
        pagination=Pagination.build(page, limit, total),
    )


@router.get("/stats", response_model=ApiResponse[Dict[str, Any]])
async def get_order_stats(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    return ApiResponse(message="Order statistics retrieved successfully", data=order_service.get_order_stats(db))


@router.get("/analytics", response_model=ApiResponse[Dict[str, Any]])
async def get_order_analytics(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    group_by: Literal["day", "week", "month"] = Query("day"),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    analytics = order_service.get_order_analytics(db, start_date, end_date, group_by)
    return ApiResponse(message="Order analytics retrieved successfully", data=analytics)


@router.get("/{order_id}", response_model=ApiResponse[OrderResponse])
async def get_order(
    order_id: int = Path(..., ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    order = order_service.get_order(db, order_id)
    return ApiResponse(message="Order retrieved successfully", data=OrderResponse.model_validate(order))


@router.get("/{order_id}/history", response_model=ApiResponse[List[OrderHistoryResponse]])
async def get_order_history(
    order_id: int = Path(..., ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    history = order_service.get_order_history(db, order_id)
    return ApiResponse(
        message="Order history retrieved successfully",
        data=[OrderHistoryResponse.model_validate(entry) for entry in history],
    )


@router.patch("/{order_id}/status", response_model=ApiResponse[OrderResponse])
async def update_order_status(
    request: OrderStatusUpdate,
    order_id: int = Path(..., ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    """Move an order along pending, confirmed, shipped, delivered or cancel it."""
    order = order_service.update_order_status(db, order_id, request.status, changed_by=admin.id, note=request.note)
    return ApiResponse(message="Order status updated successfully", data=OrderResponse.model_validate(order))


@router.patch("/{order_id}/payment-status", response_model=ApiResponse[OrderResponse])
async def update_payment_status(
    request: PaymentStatusUpdate,
    order_id: int = Path(..., ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    order_service: OrderService = Depends(get_order_service)
):
    order = order_service.update_payment_status(
        db, order_id, request.payment_status, changed_by=admin.id, note=request.note
    )
    return ApiResponse(message="Payment status updated successfully", data=OrderResponse.model_validate(order))
