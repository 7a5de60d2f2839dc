"""Authentication and role dependencies."""
from typing import Optional
from fastapi import Depends, Header, Request
from sqlalchemy.orm import Session
import logging

from database import get_db
from errors import AppError
from models import User
from monitoring import auth_failures_counter, auth_attempts_counter
from security import ACCESS_TOKEN, decode_token

logger = logging.getLogger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token part of a "Bearer <token>" header, if well formed."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db)
) -> User:
    """
    Authenticate the request from its bearer token.

    The user is re-read from the database on every request, so a deactivated
    account is rejected as soon as its next request arrives.

    Args:
        request: Incoming request, the user is attached to request.state
        authorization: Authorization header value
        db: Database session

    Returns:
        Authenticated user

    Raises:
        AppError: If the token is missing, or the user is gone or inactive
        jwt.PyJWTError: If the token signature or expiry is invalid
    """
    auth_attempts_counter.add(1, {"type": "bearer_token"})

    token = extract_bearer_token(authorization)
    if token is None:
        auth_failures_counter.add(1, {"reason": "missing_token"})
        logger.warning("Authentication failed: Missing bearer token", extra={
            "path": request.url.path
        })
        raise AppError("Access token is required", 401)

    try:
        payload = decode_token(token, ACCESS_TOKEN)
    except Exception:
        auth_failures_counter.add(1, {"reason": "invalid_token"})
        raise

    user = db.query(User).filter(User.id == payload.get("userId")).first()
    if user is None or not user.is_active:
        auth_failures_counter.add(1, {"reason": "inactive_user"})
        logger.warning("Authentication failed: User not found or inactive", extra={
            "user_id": payload.get("userId")
        })
        raise AppError("User not found or inactive", 401)

    request.state.user = user
    logger.debug("Authentication successful", extra={
        "user_id": user.id,
        "role": user.role
    })
    return user


def require_admin(user: User = Depends(get_current_user)) -> User:
    """Allow only admin accounts."""
    if user.role != "admin":
        auth_failures_counter.add(1, {"reason": "role_mismatch"})
        raise AppError("Admin access required", 403)
    return user


def require_client(user: User = Depends(get_current_user)) -> User:
    """Allow only client accounts."""
    if user.role != "client":
        auth_failures_counter.add(1, {"reason": "role_mismatch"})
        raise AppError("Client access required", 403)
    return user
