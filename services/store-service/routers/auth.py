"""Authentication API router."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from dependencies import get_auth_service
from models import User
from schemas import (
    AccessTokenData,
    ApiResponse,
    AuthData,
    ChangePasswordRequest,
    LoginRequest,
    ProfileUpdateRequest,
    RefreshRequest,
    RegisterRequest,
    UserResponse,
)
from services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["authentication"])


def _auth_payload(result: dict) -> AuthData:
    return AuthData(
        user=UserResponse.model_validate(result["user"]),
        accessToken=result["accessToken"],
        refreshToken=result["refreshToken"],
    )


@router.post("/register", response_model=ApiResponse[AuthData], status_code=201)
async def register(
    request: RegisterRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Register a client account and sign it in."""
    result = auth_service.register(
        db,
        email=request.email,
        password=request.password,
        first_name=request.first_name,
        last_name=request.last_name,
        phone=request.phone
    )
    return ApiResponse(message="User registered successfully", data=_auth_payload(result))


@router.post("/login", response_model=ApiResponse[AuthData])
async def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Authenticate with email and password."""
    result = auth_service.login(db, request.email, request.password)
    return ApiResponse(message="Login successful", data=_auth_payload(result))


@router.post("/refresh", response_model=ApiResponse[AccessTokenData])
async def refresh(
    request: RefreshRequest,
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    """Exchange a refresh token for a new access token."""
    tokens = auth_service.refresh(db, request.refresh_token)
    return ApiResponse(message="Token refreshed successfully", data=AccessTokenData(**tokens))


@router.post("/logout", response_model=ApiResponse[None])
async def logout(user: User = Depends(get_current_user)):
    """Tokens are stateless; the client discards them."""
    return ApiResponse(message="Logout successful")


@router.get("/profile", response_model=ApiResponse[UserResponse])
async def get_profile(user: User = Depends(get_current_user)):
    return ApiResponse(message="Profile retrieved successfully", data=UserResponse.model_validate(user))


@router.put("/profile", response_model=ApiResponse[UserResponse])
async def update_profile(
    request: ProfileUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    updated = auth_service.update_profile(db, user, request.model_dump(exclude_unset=True))
    return ApiResponse(message="Profile updated successfully", data=UserResponse.model_validate(updated))


@router.post("/change-password", response_model=ApiResponse[None])
async def change_password(
    request: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    auth_service: AuthService = Depends(get_auth_service)
):
    auth_service.change_password(db, user, request.current_password, request.new_password)
    return ApiResponse(message="Password changed successfully")
