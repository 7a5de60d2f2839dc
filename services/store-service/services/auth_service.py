"""Registration, login and profile management."""
import logging
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session
from opentelemetry import trace

from errors import AppError
from models import User
from monitoring import auth_attempts_counter, auth_failures_counter
from security import (
    REFRESH_TOKEN,
    create_access_token,
    create_token_pair,
    decode_token,
    hash_password,
    validate_password_strength,
    verify_password,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


class AuthService:
    """Service for account authentication."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def register(
        self,
        db: Session,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Register a client account.

        Args:
            db: Database session
            email: Login email, stored lower-cased
            password: Plain text password
            first_name: Given name
            last_name: Family name
            phone: Optional phone number

        Returns:
            The new user and a token pair

        Raises:
            AppError: 400 for a weak password, 409 if the email is taken
        """
        validate_password_strength(password)
        email = email.lower()

        with self.tracer.start_as_current_span("db.query.find_user_by_email") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "users")
            if db.query(User.id).filter(User.email == email).first():
                raise AppError("User with this email already exists", 409)

        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            role="client",
            is_active=True,
            email_verified=False,
        )
        try:
            db.add(user)
            db.commit()
            db.refresh(user)
        except Exception:
            db.rollback()
            raise

        logger.info("User registered", extra={"user_id": user.id})
        return {"user": user, **create_token_pair(user)}

    def login(self, db: Session, email: str, password: str) -> Dict[str, Any]:
        """
        Authenticate with email and password.

        Unknown emails and wrong passwords share one message.

        Raises:
            AppError: 401 on bad credentials or a deactivated account
        """
        auth_attempts_counter.add(1, {"type": "login"})
        user = db.query(User).filter(User.email == email.lower()).first()

        if user is None or not verify_password(password, user.password_hash):
            auth_failures_counter.add(1, {"reason": "invalid_credentials"})
            logger.warning("Login failed: Invalid credentials")
            raise AppError(INVALID_CREDENTIALS, 401)

        if not user.is_active:
            auth_failures_counter.add(1, {"reason": "deactivated"})
            logger.warning("Login failed: Account deactivated", extra={"user_id": user.id})
            raise AppError("Account is deactivated", 401)

        logger.info("User logged in successfully", extra={
            "user_id": user.id,
            "role": user.role
        })
        return {"user": user, **create_token_pair(user)}

    def refresh(self, db: Session, refresh_token: str) -> Dict[str, str]:
        """
        Exchange a refresh token for a new access token.

        The role in the new token comes from the database, not the old token.

        Raises:
            AppError: 401 if the user no longer exists or is inactive
            jwt.PyJWTError: If the refresh token is invalid or expired
        """
        payload = decode_token(refresh_token, REFRESH_TOKEN)
        user = db.query(User).filter(User.id == payload.get("userId")).first()
        if user is None or not user.is_active:
            auth_failures_counter.add(1, {"reason": "refresh_inactive_user"})
            raise AppError("User not found or inactive", 401)
        return {"accessToken": create_access_token(user.id, user.email, user.role)}

    def update_profile(self, db: Session, user: User, changes: Dict[str, Any]) -> User:
        """Update the caller's own name and phone."""
        if not changes:
            raise AppError("No fields to update", 400)
        for field, value in changes.items():
            setattr(user, field, value)
        try:
            db.commit()
            db.refresh(user)
        except Exception:
            db.rollback()
            raise
        logger.info("Profile updated", extra={
            "user_id": user.id,
            "fields": sorted(changes)
        })
        return user

    def change_password(self, db: Session, user: User, current_password: str, new_password: str) -> None:
        """
        Replace the caller's password.

        Raises:
            AppError: 400 if the current password is wrong or the new one is weak
        """
        if not verify_password(current_password, user.password_hash):
            raise AppError("Current password is incorrect", 400)
        validate_password_strength(new_password)
        user.password_hash = hash_password(new_password)
        try:
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("Password changed", extra={"user_id": user.id})
