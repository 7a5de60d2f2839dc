"""Admin category API router."""
from typing import List
from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from auth import require_admin
from database import get_db
from dependencies import get_category_service
from schemas import ApiResponse, CategoryCreate, CategoryResponse, CategoryUpdate
from services.category_service import CategoryService

router = APIRouter(prefix="/admin/categories", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("", response_model=ApiResponse[List[CategoryResponse]])
async def list_categories(
    db: Session = Depends(get_db),
    category_service: CategoryService = Depends(get_category_service)
):
    """All categories, active or not, ordered by name."""
    categories = category_service.list_categories(db, active_only=False)
    return ApiResponse(
        message="Categories retrieved successfully",
        data=[CategoryResponse.model_validate(category) for category in categories],
    )


@router.post("", response_model=ApiResponse[CategoryResponse], status_code=201)
async def create_category(
    request: CategoryCreate,
    db: Session = Depends(get_db),
    category_service: CategoryService = Depends(get_category_service)
):
    category = category_service.create_category(db, request.model_dump())
    return ApiResponse(message="Category created successfully", data=CategoryResponse.model_validate(category))


@router.get("/{category_id}", response_model=ApiResponse[CategoryResponse])
async def get_category(
    category_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    category_service: CategoryService = Depends(get_category_service)
):
    category = category_service.get_category(db, category_id)
    return ApiResponse(message="Category retrieved successfully", data=CategoryResponse.model_validate(category))


@router.put("/{category_id}", response_model=ApiResponse[CategoryResponse])
async def update_category(
    request: CategoryUpdate,
    category_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    category_service: CategoryService = Depends(get_category_service)
):
    category = category_service.update_category(db, category_id, request.model_dump(exclude_unset=True))
    return ApiResponse(message="Category updated successfully", data=CategoryResponse.model_validate(category))


@router.delete("/{category_id}", response_model=ApiResponse[None])
async def delete_category(
    category_id: int = Path(..., ge=1),
    db: Session = Depends(get_db),
    category_service: CategoryService = Depends(get_category_service)
):
    category_service.delete_category(db, category_id)
    return ApiResponse(message="Category deleted successfully")
