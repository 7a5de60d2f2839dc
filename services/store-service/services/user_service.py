"""User administration service."""
import logging
from typing import Any, Dict, List, Optional, Tuple
from sqlalchemy import case, func, or_
from sqlalchemy.orm import Session
from opentelemetry import trace

from errors import AppError
from models import Order, User
from security import hash_password, validate_password_strength

logger = logging.getLogger(__name__)


class UserService:
    """Admin-side management of user and admin accounts."""

    def __init__(self):
        self.tracer = trace.get_tracer(__name__)

    def list_users(
        self,
        db: Session,
        page: int = 1,
        limit: int = 10,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None
    ) -> Tuple[List[User], int]:
        """
        Page through users, newest first.

        Returns:
            Tuple of (users on this page, total matching users)
        """
        with self.tracer.start_as_current_span("db.query.list_users") as db_span:
            db_span.set_attribute("db.operation", "SELECT")
            db_span.set_attribute("db.table", "users")

            query = db.query(User)
            if role:
                query = query.filter(User.role == role)
            if is_active is not None:
                query = query.filter(User.is_active == is_active)
            if search:
                pattern = f"%{search}%"
                query = query.filter(or_(
                    User.email.ilike(pattern),
                    User.first_name.ilike(pattern),
                    User.last_name.ilike(pattern),
                ))

            total = query.count()
            users = (
                query.order_by(User.created_at.desc(), User.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            db_span.set_attribute("db.rows_returned", len(users))
            return users, total

    def list_admins(self, db: Session) -> List[User]:
        return db.query(User).filter(User.role == "admin").order_by(User.created_at.desc()).all()

    def get_user(self, db: Session, user_id: int) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise AppError("User not found", 404)
        return user

    def create_user(
        self,
        db: Session,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        phone: Optional[str] = None,
        role: str = "admin"
    ) -> User:
        """
        Create an account on behalf of an admin.

        Admin-created accounts are active and verified.

        Raises:
            AppError: 400 for a weak password, 409 if the email is taken
        """
        validate_password_strength(password)
        email = email.lower()
        if db.query(User.id).filter(User.email == email).first():
            raise AppError("User with this email already exists", 409)

        user = User(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            role=role,
            is_active=True,
            email_verified=True,
        )
        try:
            db.add(user)
            db.commit()
            db.refresh(user)
        except Exception:
            db.rollback()
            raise

        logger.info("User created by admin", extra={"user_id": user.id, "role": role})
        return user

    def update_user(self, db: Session, user_id: int, changes: Dict[str, Any], acting_user_id: Optional[int] = None) -> User:
        """
        Apply a partial update (names, phone, role, status flags).

        Raises:
            AppError: 404 for an unknown user, 400 for an empty update or an
                admin removing their own access
        """
        user = self.get_user(db, user_id)
        if not changes:
            raise AppError("No fields to update", 400)
        if acting_user_id == user.id and (changes.get("is_active") is False or changes.get("role") == "client"):
            raise AppError("You cannot remove your own admin access", 400)

        for field, value in changes.items():
            setattr(user, field, value)
        try:
            db.commit()
            db.refresh(user)
        except Exception:
            db.rollback()
            raise

        logger.info("User updated", extra={"user_id": user.id, "fields": sorted(changes)})
        return user

    def delete_user(self, db: Session, user_id: int, acting_user_id: Optional[int] = None) -> None:
        """
        Delete a user that has never ordered.

        Raises:
            AppError: 404 for an unknown user, 400 if the user has orders or
                is the caller
        """
        user = self.get_user(db, user_id)
        if acting_user_id == user.id:
            raise AppError("You cannot delete your own account", 400)
        if db.query(Order.id).filter(Order.user_id == user.id).first():
            raise AppError("Cannot delete user that has orders", 400)
        try:
            db.delete(user)
            db.commit()
        except Exception:
            db.rollback()
            raise
        logger.info("User deleted", extra={"user_id": user_id})

    def get_user_stats(self, db: Session) -> Dict[str, int]:
        row = db.query(
            func.count(User.id),
            func.count(case((User.is_active.is_(True), 1))),
            func.count(case((User.role == "admin", 1))),
            func.count(case((User.role == "client", 1))),
            func.count(case((User.email_verified.is_(True), 1))),
        ).one()
        return {
            "total_users": row[0] or 0,
            "active_users": row[1] or 0,
            "admin_users": row[2] or 0,
            "client_users": row[3] or 0,
            "verified_users": row[4] or 0,
        }
