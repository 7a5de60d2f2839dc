"""Admin dashboard API router."""
from typing import Any, Dict, List, Literal
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from auth import require_admin
from database import get_db
from dependencies import get_dashboard_service
from schemas import ApiResponse, OrderResponse
from services.dashboard_service import DashboardService

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/dashboard", response_model=ApiResponse[Dict[str, Any]])
async def get_dashboard_stats(
    db: Session = Depends(get_db),
    dashboard_service: DashboardService = Depends(get_dashboard_service)
):
    return ApiResponse(message="Dashboard statistics retrieved successfully", data=dashboard_service.get_dashboard_stats(db))


@router.get("/dashboard/recent-orders", response_model=ApiResponse[List[OrderResponse]])
async def get_recent_orders(
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    dashboard_service: DashboardService = Depends(get_dashboard_service)
):
    orders = dashboard_service.get_recent_orders(db, limit)
    return ApiResponse(
        message="Recent orders retrieved successfully",
        data=[OrderResponse.model_validate(order) for order in orders],
    )


@router.get("/dashboard/top-products", response_model=ApiResponse[List[Dict[str, Any]]])
async def get_top_products(
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
    dashboard_service: DashboardService = Depends(get_dashboard_service)
):
    return ApiResponse(message="Top products retrieved successfully", data=dashboard_service.get_top_products(db, limit))


@router.get("/dashboard/category-performance", response_model=ApiResponse[List[Dict[str, Any]]])
async def get_category_performance(
    db: Session = Depends(get_db),
    dashboard_service: DashboardService = Depends(get_dashboard_service)
):
    return ApiResponse(
        message="Category performance retrieved successfully",
        data=dashboard_service.get_category_performance(db),
    )


@router.get("/dashboard/recent-activity", response_model=ApiResponse[List[Dict[str, Any]]])
async def get_recent_activity(
    limit: int = Query(10, ge=1, le=50),
    db: Session = Depends(get_db),
    dashboard_service: DashboardService = Depends(get_dashboard_service)
):
    return ApiResponse(
        message="Recent activity retrieved successfully",
        data=dashboard_service.get_recent_activity(db, limit),
    )


@router.get("/analytics", response_model=ApiResponse[List[Dict[str, Any]]])
async def get_analytics(
    period: Literal["day", "week", "month", "year"] = Query("month"),
    db: Session = Depends(get_db),
    dashboard_service: DashboardService = Depends(get_dashboard_service)
):
    """Revenue, orders and distinct customers per period."""
    return ApiResponse(message="Analytics retrieved successfully", data=dashboard_service.get_analytics(db, period))
