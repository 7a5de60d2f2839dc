"""Redis-backed rate limiter."""
import logging
import time
from typing import Iterable, Optional, Tuple
import jwt
import redis
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from errors import AppError, error_response
from monitoring import rate_limit_exceeded_counter, suspicious_activity_counter
from security import ACCESS_TOKEN, decode_token

logger = logging.getLogger(__name__)

AUTH_PATHS = ("/api/auth/login", "/api/auth/register")


class RedisRateLimiter(BaseHTTPMiddleware):
    """
    Distributed sliding-window rate limiter backed by Redis sorted sets.

    Three tiers are checked in order:
    - Per IP on every request
    - Per authenticated user (the userId in a valid access token)
    - A strict per-IP budget for login and registration attempts

    Rejected requests get a 429 envelope with a Retry-After header. When
    Redis is unreachable the request is allowed through.
    """

    def __init__(
        self,
        app,
        redis_client: redis.Redis,
        enabled: bool = True,
        requests_per_minute_ip: int = 600,
        requests_per_minute_user: int = 300,
        auth_attempts: int = 20,
        auth_window_seconds: int = 900,
        auth_paths: Iterable[str] = AUTH_PATHS,
        window_seconds: int = 60
    ):
        """
        Initialize Redis-backed rate limiter.

        Args:
            app: FastAPI application
            redis_client: Redis connection
            enabled: When False every request passes untouched
            requests_per_minute_ip: Max requests per IP per window
            requests_per_minute_user: Max requests per user per window
            auth_attempts: Max login/register attempts per IP per auth window
            auth_window_seconds: Window for the auth budget
            auth_paths: Paths that count against the auth budget
            window_seconds: Sliding window size for the IP and user tiers
        """
        super().__init__(app)
        self.redis = redis_client
        self.enabled = enabled
        self.requests_per_minute_ip = requests_per_minute_ip
        self.requests_per_minute_user = requests_per_minute_user
        self.auth_attempts = auth_attempts
        self.auth_window_seconds = auth_window_seconds
        self.auth_paths = tuple(auth_paths)
        self.window_seconds = window_seconds

    def _check_rate_limit(
        self,
        key: str,
        limit: int,
        window: int
    ) -> Tuple[bool, int]:
        """
        Check rate limit using Redis sorted set (sliding window).

        Algorithm:
        1. Remove timestamps older than window
        2. Count requests in window
        3. Add current request
        4. Set TTL

        Args:
            key: Redis key for this limit (e.g., "rate:ip:192.168.1.1")
            limit: Maximum requests allowed
            window: Time window in seconds

        Returns:
            Tuple of (is_allowed, current_count)
        """
        try:
            current_time = time.time()
            window_start = current_time - window

            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(key, 0, window_start)
            pipe.zcard(key)
            # Member must be unique per request even within the same tick
            pipe.zadd(key, {f"{current_time}:{time.perf_counter_ns()}": current_time})
            pipe.expire(key, window + 1)
            results = pipe.execute()

            # Count BEFORE adding the current request
            count = results[1]
            return count < limit, count + 1

        except redis.RedisError as e:
            logger.error("Redis rate limit error", extra={"key": key, "error": str(e)})
            # Fail open
            return True, 0

    @staticmethod
    def _client_ip(request: Request) -> str:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    @staticmethod
    def _user_id(request: Request) -> Optional[str]:
        """userId from a valid bearer access token, None otherwise."""
        auth_header = request.headers.get("authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return None
        try:
            payload = decode_token(auth_header[7:].strip(), ACCESS_TOKEN)
        except (jwt.PyJWTError, AppError):
            return None
        user_id = payload.get("userId")
        return str(user_id) if user_id is not None else None

    def _reject(self, limit_type: str, identifier: str, count: int, limit: int, window: int):
        rate_limit_exceeded_counter.add(1, {"limit_type": limit_type})
        logger.warning("Rate limit exceeded", extra={
            "limit_type": limit_type,
            "identifier": identifier,
            "count": count,
            "limit": limit
        })
        if limit_type == "auth":
            message = "Too many authentication attempts, please try again later."
        else:
            message = "Too many requests, please try again later."
        return error_response(429, message, headers={"Retry-After": str(window)})

    async def dispatch(self, request: Request, call_next):
        """
        Process request with Redis-backed rate limiting.

        Args:
            request: Incoming request
            call_next: Next middleware in chain

        Returns:
            Response or 429 if rate limited
        """
        if not self.enabled or request.method == "OPTIONS":
            return await call_next(request)

        client_ip = self._client_ip(request)
        user_id = self._user_id(request)

        # --- IP-based rate limiting ---
        ip_allowed, ip_count = self._check_rate_limit(
            f"rate:ip:{client_ip}",
            self.requests_per_minute_ip,
            self.window_seconds
        )
        if not ip_allowed:
            return self._reject("ip", client_ip, ip_count, self.requests_per_minute_ip, self.window_seconds)

        # --- User-based rate limiting ---
        if user_id:
            user_allowed, user_count = self._check_rate_limit(
                f"rate:user:{user_id}",
                self.requests_per_minute_user,
                self.window_seconds
            )
            if not user_allowed:
                return self._reject(
                    "user", user_id, user_count, self.requests_per_minute_user, self.window_seconds
                )

        # --- Login/registration budget ---
        if request.method == "POST" and request.url.path in self.auth_paths:
            auth_allowed, auth_count = self._check_rate_limit(
                f"rate:auth:{client_ip}",
                self.auth_attempts,
                self.auth_window_seconds
            )
            if not auth_allowed:
                return self._reject("auth", client_ip, auth_count, self.auth_attempts, self.auth_window_seconds)

        response = await call_next(request)

        self._detect_suspicious_activity(response.status_code, client_ip)

        return response

    def _record_and_count(self, key: str, window: int) -> int:
        current_time = time.time()
        pipe = self.redis.pipeline()
        pipe.zadd(key, {f"{current_time}:{time.perf_counter_ns()}": current_time})
        pipe.expire(key, window + 1)
        pipe.zcount(key, current_time - window, current_time)
        return pipe.execute()[2]

    def _detect_suspicious_activity(self, status_code: int, client_ip: str) -> None:
        """
        Detect suspicious activity patterns using Redis.

        Patterns:
        - Credential stuffing: 5+ failed auths in 5 minutes
        - Endpoint scanning: 10+ 404s in 5 minutes
        - Abuse: 20+ 4xx errors in 5 minutes
        """
        window = 300
        patterns = []
        if status_code == 401:
            patterns.append(("401", "credential_stuffing", 5))
        if status_code == 404:
            patterns.append(("404", "endpoint_scanning", 10))
        if 400 <= status_code < 500:
            patterns.append(("4xx", "abuse", 20))

        try:
            for suffix, activity, threshold in patterns:
                count = self._record_and_count(f"suspicious:{suffix}:{client_ip}", window)
                if count >= threshold:
                    suspicious_activity_counter.add(1, {"type": activity})
                    logger.warning("Suspicious activity detected", extra={
                        "type": activity,
                        "client_ip": client_ip,
                        "count": count,
                        "window_seconds": window
                    })
        except redis.RedisError as e:
            logger.error("Error detecting suspicious activity", extra={"error": str(e)})
