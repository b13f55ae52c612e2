"""
Box Office Purchase API - Main Application Entry Point

The purchase and payment reconciliation core of a ticketing platform:
- Oversell-free inventory reservation with conditional UPDATEs
- Checkout sessions at an external payment gateway
- Exactly-once ticket issuance, whichever of return, poll or sweep gets there first
- Structured logging with request correlation and Prometheus metrics
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from boxoffice.core.config import get_settings
from boxoffice.core.logging import setup_logging, get_logger
from boxoffice.core.metrics import metrics_endpoint
from boxoffice.api.router import api_router
from boxoffice.api.middleware import RequestLoggingMiddleware
from boxoffice.api.errors import register_exception_handlers
from boxoffice.db.session import engine, get_session_factory
from boxoffice.infrastructure.redis_client import get_redis, close_redis
from boxoffice.services.gateway_factory import close_payment_gateway, get_payment_gateway
from boxoffice.services.sweeper import Sweeper

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        gateway=settings.PAYMENT_GATEWAY,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Status polls are not throttled")

    sweeper = None
    if settings.SWEEP_ENABLED:
        sweeper = Sweeper(get_session_factory(), get_payment_gateway())
        sweeper.start()

    yield

    if sweeper is not None:
        await sweeper.stop()
    await close_payment_gateway()
    await close_redis()
    await engine.dispose()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Ticket purchase and payment reconciliation API",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)
register_exception_handlers(app)

# Routes
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    redis_client = await get_redis()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "gateway": settings.PAYMENT_GATEWAY,
        "redis": "connected" if redis_client else "disabled",
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
