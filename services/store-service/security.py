"""Password hashing and JWT token primitives."""
import re
import time
from typing import Any, Dict

import jwt
from passlib.context import CryptContext

from config import (
    BCRYPT_ROUNDS,
    JWT_ACCESS_TTL_SECONDS,
    JWT_ALGORITHM,
    JWT_REFRESH_TTL_SECONDS,
    JWT_SECRET,
)
from errors import AppError

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=BCRYPT_ROUNDS,
)

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"

_PASSWORD_RULES = (
    (re.compile(r"[a-z]"), "one lowercase letter"),
    (re.compile(r"[A-Z]"), "one uppercase letter"),
    (re.compile(r"\d"), "one number"),
)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def validate_password_strength(password: str) -> None:
    """
    Enforce the password policy.

    Args:
        password: Plain text password

    Raises:
        AppError: 400 naming the first rule the password breaks
    """
    if len(password) < 8:
        raise AppError("Password must be at least 8 characters long", 400)
    for pattern, description in _PASSWORD_RULES:
        if not pattern.search(password):
            raise AppError(f"Password must contain at least {description}", 400)


def _create_token(user_id: int, email: str, role: str, token_type: str, ttl_seconds: int) -> str:
    issued_at = int(time.time())
    payload = {
        "userId": user_id,
        "email": email,
        "role": role,
        "type": token_type,
        "iat": issued_at,
        "exp": issued_at + ttl_seconds,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def create_access_token(user_id: int, email: str, role: str) -> str:
    return _create_token(user_id, email, role, ACCESS_TOKEN, JWT_ACCESS_TTL_SECONDS)


def create_refresh_token(user_id: int, email: str, role: str) -> str:
    return _create_token(user_id, email, role, REFRESH_TOKEN, JWT_REFRESH_TTL_SECONDS)


def create_token_pair(user: Any) -> Dict[str, str]:
    """Issue an access/refresh pair for a user row."""
    return {
        "accessToken": create_access_token(user.id, user.email, user.role),
        "refreshToken": create_refresh_token(user.id, user.email, user.role),
    }


def decode_token(token: str, expected_type: str = ACCESS_TOKEN) -> Dict[str, Any]:
    """
    Verify a token's signature, expiry and type.

    Args:
        token: Encoded JWT
        expected_type: "access" or "refresh"

    Returns:
        Decoded payload

    Raises:
        jwt.PyJWTError: If the signature or expiry check fails
        AppError: If the token is of the wrong type
    """
    payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    if payload.get("type") != expected_type:
        raise AppError("Invalid token type", 401)
    return payload
