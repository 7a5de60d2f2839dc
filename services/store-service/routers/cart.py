"""Cart API router."""
from typing import List
from fastapi import APIRouter, Depends, Path
from sqlalchemy.orm import Session

from auth import require_client
from database import get_db
from dependencies import get_cart_service
from models import User
from schemas import AddToCartRequest, ApiResponse, CartItemResponse, CartSummary, UpdateCartItemRequest
from services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=ApiResponse[List[CartItemResponse]])
async def get_cart(
    user: User = Depends(require_client),
    db: Session = Depends(get_db),
    cart_service: CartService = Depends(get_cart_service)
):
    """Get the caller's cart."""
    items = cart_service.get_cart_items(db, user.id)
    return ApiResponse(message="Cart retrieved successfully", data=items)


@router.post("", response_model=ApiResponse[CartItemResponse])
async def add_to_cart(
    request: AddToCartRequest,
    user: User = Depends(require_client),
    db: Session = Depends(get_db),
    cart_service: CartService = Depends(get_cart_service)
):
    """Add a product, summing with any existing line for it."""
    item = cart_service.add_to_cart(db, user.id, request.product_id, request.quantity)
    return ApiResponse(message="Item added to cart successfully", data=item)


@router.get("/summary", response_model=ApiResponse[CartSummary])
async def get_cart_summary(
    user: User = Depends(require_client),
    db: Session = Depends(get_db),
    cart_service: CartService = Depends(get_cart_service)
):
    return ApiResponse(message="Cart summary retrieved successfully", data=cart_service.get_cart_summary(db, user.id))


# Declared before /{item_id} so "clear" is not parsed as an id
@router.delete("/clear", response_model=ApiResponse[None])
async def clear_cart(
    user: User = Depends(require_client),
    db: Session = Depends(get_db),
    cart_service: CartService = Depends(get_cart_service)
):
    cart_service.clear_cart(db, user.id)
    return ApiResponse(message="Cart cleared successfully")


@router.put("/{item_id}", response_model=ApiResponse[CartItemResponse])
async def update_cart_item(
    request: UpdateCartItemRequest,
    item_id: int = Path(..., ge=1),
    user: User = Depends(require_client),
    db: Session = Depends(get_db),
    cart_service: CartService = Depends(get_cart_service)
):
    item = cart_service.update_cart_item(db, user.id, item_id, request.quantity)
    return ApiResponse(message="Cart item updated successfully", data=item)


@router.delete("/{item_id}", response_model=ApiResponse[None])
async def remove_from_cart(
    item_id: int = Path(..., ge=1),
    user: User = Depends(require_client),
    db: Session = Depends(get_db),
    cart_service: CartService = Depends(get_cart_service)
):
    cart_service.remove_from_cart(db, user.id, item_id)
    return ApiResponse(message="Item removed from cart successfully")
