"""Admin user management API router."""
from typing import Dict, List, Literal, Optional
from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.orm import Session

from auth import require_admin
from database import get_db
from dependencies import get_user_service
from models import User
from schemas import AdminUserCreate, AdminUserUpdate, ApiResponse, Pagination, UserResponse
from services.user_service import UserService

router = APIRouter(prefix="/admin/users", tags=["admin"])


@router.get("", response_model=ApiResponse[List[UserResponse]])
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    role: Optional[Literal["client", "admin"]] = Query(None),
    is_active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, min_length=1, max_length=100),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service)
):
    users, total = user_service.list_users(db, page, limit, role=role, is_active=is_active, search=search)
    return ApiResponse(
        message="Users retrieved successfully",
        data=[UserResponse.model_validate(user) for user in users],
        pagination=Pagination.build(page, limit, total),
    )


@router.post("", response_model=ApiResponse[UserResponse], status_code=201)
async def create_user(
    request: AdminUserCreate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service)
):
    """Create an account; admin role unless another is requested."""
    user = user_service.create_user(
        db,
        email=request.email,
        password=request.password,
        first_name=request.first_name,
        last_name=request.last_name,
        phone=request.phone,
        role=request.role
    )
    return ApiResponse(message="User created successfully", data=UserResponse.model_validate(user))


@router.get("/stats", response_model=ApiResponse[Dict[str, int]])
async def get_user_stats(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service)
):
    return ApiResponse(message="User statistics retrieved successfully", data=user_service.get_user_stats(db))


@router.get("/{user_id}", response_model=ApiResponse[UserResponse])
async def get_user(
    user_id: int = Path(..., ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service)
):
    user = user_service.get_user(db, user_id)
    return ApiResponse(message="User retrieved successfully", data=UserResponse.model_validate(user))


@router.put("/{user_id}", response_model=ApiResponse[UserResponse])
async def update_user(
    request: AdminUserUpdate,
    user_id: int = Path(..., ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service)
):
    user = user_service.update_user(db, user_id, request.model_dump(exclude_unset=True), acting_user_id=admin.id)
    return ApiResponse(message="User updated successfully", data=UserResponse.model_validate(user))


@router.delete("/{user_id}", response_model=ApiResponse[None])
async def delete_user(
    user_id: int = Path(..., ge=1),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service)
):
    user_service.delete_user(db, user_id, acting_user_id=admin.id)
    return ApiResponse(message="User deleted successfully")
