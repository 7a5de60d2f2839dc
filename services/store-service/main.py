"""Main application entry point."""
import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
import redis
import httpx
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from config import (
    API_PREFIX,
    API_VERSION,
    CHAPA_TIMEOUT_SECONDS,
    CORS_ORIGINS,
    RATE_LIMIT_AUTH_ATTEMPTS,
    RATE_LIMIT_AUTH_WINDOW_SECONDS,
    RATE_LIMIT_ENABLED,
    RATE_LIMIT_PER_MINUTE_IP,
    RATE_LIMIT_PER_MINUTE_USER,
    REDIS_URL,
    UPLOAD_DIR,
)
from database import init_db, engine
from errors import register_exception_handlers
from monitoring import init_profiling
from logging_config import setup_logging
from routers import (
    admin_categories,
    admin_dashboard,
    admin_orders,
    admin_products,
    admin_users,
    auth as auth_router,
    cart,
    orders,
    payments,
    products,
)
from redis_rate_limiter import RedisRateLimiter

# Setup structured logging
setup_logging()
logger = logging.getLogger(__name__)

# Sync client shared by the rate limiter middleware and the health check
redis_client = redis.from_url(REDIS_URL, decode_responses=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    logger.info("Starting application...")

    init_db()

    RedisInstrumentor().instrument(redis_client=redis_client)
    app.state.redis_client = redis_client

    # Shared client for the payment gateway
    http_client = httpx.AsyncClient(timeout=CHAPA_TIMEOUT_SECONDS)
    HTTPXClientInstrumentor().instrument_client(http_client)
    app.state.http_client = http_client
    logger.info("HTTP client initialized")

    init_profiling()

    logger.info("Application startup complete")

    yield

    logger.info("Shutting down application...")
    await http_client.aclose()
    logger.info("Application shutdown complete")


app = FastAPI(
    title="Habu Flower Store API",
    version=API_VERSION,
    lifespan=lifespan
)
app.state.redis_client = redis_client

register_exception_handlers(app)

app.add_middleware(
    RedisRateLimiter,
    redis_client=redis_client,
    enabled=RATE_LIMIT_ENABLED,
    requests_per_minute_ip=RATE_LIMIT_PER_MINUTE_IP,
    requests_per_minute_user=RATE_LIMIT_PER_MINUTE_USER,
    auth_attempts=RATE_LIMIT_AUTH_ATTEMPTS,
    auth_window_seconds=RATE_LIMIT_AUTH_WINDOW_SECONDS
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Instrument FastAPI and SQLAlchemy
FastAPIInstrumentor.instrument_app(app)
SQLAlchemyInstrumentor().instrument(engine=engine)


@app.get("/health")
async def health():
    """Health check endpoint."""
    try:
        redis_status = "up" if redis_client.ping() else "down"
    except redis.RedisError:
        redis_status = "down"
    return {
        "success": True,
        "message": "Habu API is running",
        "data": {"status": "healthy", "version": API_VERSION, "redis": redis_status},
    }


# Product images are served from the upload directory
os.makedirs(UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=UPLOAD_DIR), name="uploads")

for module in (
    auth_router,
    products,
    cart,
    orders,
    payments,
    admin_dashboard,
    admin_users,
    admin_categories,
    admin_products,
    admin_orders,
):
    app.include_router(module.router, prefix=API_PREFIX)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
