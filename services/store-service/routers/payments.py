"""Chapa payment API router."""
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Header, Path, Request
from sqlalchemy.orm import Session

from auth import get_current_user
from database import get_db
from dependencies import get_payment_gateway, get_payment_service
from models import User
from schemas import ApiResponse, PaymentInitializeRequest
from services.payment_gateway import ChapaClient
from services.payment_service import PaymentService

router = APIRouter(prefix="/chapa", tags=["payments"])


@router.post("/initialize", response_model=ApiResponse[Dict[str, Any]])
async def initialize_payment(
    request: PaymentInitializeRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """Start a hosted Chapa checkout; the response carries data.checkout_url."""
    result = await payment_service.initialize_payment(db, user, request)
    return ApiResponse(message="Payment initialized successfully", data=result)


@router.get("/verify/{tx_ref}", response_model=ApiResponse[Dict[str, Any]])
async def verify_payment(
    tx_ref: str = Path(..., min_length=1, max_length=100),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    payment_service: PaymentService = Depends(get_payment_service)
):
    result = await payment_service.verify_payment(db, tx_ref)
    return ApiResponse(message="Payment verified successfully", data=result)


@router.post("/webhook", response_model=ApiResponse[Dict[str, Any]])
async def payment_webhook(
    request: Request,
    chapa_signature: Optional[str] = Header(None),
    x_chapa_signature: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    payment_service: PaymentService = Depends(get_payment_service)
):
    """Gateway callback. Public; trusted when signed, otherwise confirmed with the gateway."""
    raw_body = await request.body()
    result = await payment_service.handle_webhook(db, raw_body, x_chapa_signature or chapa_signature)
    return ApiResponse(message="Webhook processed successfully", data=result)


@router.get("/availability", response_model=ApiResponse[Dict[str, Any]])
async def check_availability(gateway: ChapaClient = Depends(get_payment_gateway)):
    status = await gateway.check_availability()
    return ApiResponse(message="Payment gateway status retrieved", data=status)
