import asyncio
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api import (
    admin,
    admin_analytics,
    admin_payments,
    affiliate,
    cart,
    catalog,
    orders,
    users,
    wishlist,
)
from backend.app.api.deps import get_session, require_admin
from backend.app.core.database import async_session
from backend.app.core.limiter import limiter
from backend.app.core.logging import setup_logging, get_logger, clear_request_context, bind_request_context
from backend.app.core.metrics import PrometheusMiddleware, get_metrics_response
from backend.app.core.settings import get_settings
from backend.app.services.balances import BalanceService
from backend.app.services.cache import CacheService

# Load and validate settings
try:
    settings = get_settings()
except ValueError as e:
    print(f"Configuration error: {e}", file=sys.stderr)
    sys.exit(1)

setup_logging(
    log_level=settings.LOG_LEVEL,
    json_format=settings.is_production
)

logger = get_logger(__name__)

logger.info(
    "Application configuration loaded",
    environment=settings.ENVIRONMENT,
    db_host=settings.DB_HOST,
    redis_host=settings.REDIS_HOST,
)

# Reconciliation runs once a day at this UTC hour
RECONCILE_HOUR_UTC = 3


async def _daily_scheduler():
    """Background task: recompute affiliate balances from the ledgers once a day."""
    while True:
        try:
            now = datetime.now(tz=timezone.utc)
            target = now.replace(hour=RECONCILE_HOUR_UTC, minute=0, second=0, microsecond=0)
            if now >= target:
                target += timedelta(days=1)
            wait_secs = (target - now).total_seconds()
            logger.info("Daily scheduler: sleeping", next_run=target.isoformat(), wait_seconds=int(wait_secs))
            await asyncio.sleep(wait_secs)

            async with async_session() as session:
                try:
                    fixed = await BalanceService(session).reconcile_all()
                    logger.info("Daily scheduler: balances reconciled", corrected=fixed)
                except Exception as e:
                    await session.rollback()
                    logger.error("Daily scheduler: reconcile failed", error=str(e))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Daily scheduler: unexpected error", error=str(e))
            await asyncio.sleep(60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: start the daily scheduler.
    Shutdown: stop it and close Redis.
    """
    logger.info("Application starting up", version="1.0.0")
    scheduler_task = asyncio.create_task(_daily_scheduler())
    yield
    scheduler_task.cancel()
    logger.info("Application shutting down")
    await CacheService.close()


app = FastAPI(title="Affiliate Marketplace Backend", lifespan=lifespan)

# Routers use the same limiter instance for @limiter.limit
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

ALLOWED_ORIGINS = settings.allowed_origins_list
logger.info("CORS configuration", allowed_origins=ALLOWED_ORIGINS, is_production=settings.is_production)
if not ALLOWED_ORIGINS:
    if settings.is_production:
        logger.error("ALLOWED_ORIGINS must be set in production environment")
        raise ValueError("ALLOWED_ORIGINS environment variable is required in production")
    ALLOWED_ORIGINS = ["*"]
    logger.warning("CORS: Allowing all origins (development mode). Set ALLOWED_ORIGINS in production!")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)

app.add_middleware(PrometheusMiddleware)


@app.middleware("http")
async def request_log_context(request: Request, call_next):
    """Fresh structlog context per request; dependencies add user_id and affiliate_code."""
    clear_request_context()
    bind_request_context(method=request.method, path=request.url.path)
    try:
        return await call_next(request)
    finally:
        clear_request_context()


app.include_router(catalog.router, prefix="/products", tags=["products"])
app.include_router(cart.router, prefix="/cart", tags=["cart"])
app.include_router(wishlist.router, prefix="/wishlist", tags=["wishlist"])
app.include_router(orders.router, prefix="/orders", tags=["orders"])
app.include_router(users.router, tags=["users"])
app.include_router(affiliate.router, prefix="/affiliate", tags=["affiliate"])
# Admin API: X-Admin-Token or an admin user's Bearer token
app.include_router(
    admin_payments.router,
    prefix="/admin/payments",
    tags=["admin-payments"],
    dependencies=[Depends(require_admin)],
)
app.include_router(
    admin_analytics.router,
    prefix="/admin/analytics",
    tags=["admin-analytics"],
    dependencies=[Depends(require_admin)],
)
app.include_router(
    admin.router,
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


@app.get("/")
async def root():
    return {"status": "ok"}


@app.get("/health")
async def health_check(session: AsyncSession = Depends(get_session)):
    """
    Health check endpoint for monitoring and orchestration.
    Checks database and Redis connectivity.
    """
    health_status = {
        "status": "healthy",
        "version": "1.0.0",
        "checks": {
            "database": "ok",
            "redis": "ok"
        }
    }

    try:
        await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Database health check failed", error=str(e))
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    try:
        redis = await CacheService.get_redis()
        await redis.ping()
    except Exception as e:
        logger.error("Redis health check failed", error=str(e))
        health_status["status"] = "unhealthy"
        health_status["checks"]["redis"] = f"error: {str(e)}"

    return health_status


@app.get("/metrics")
async def metrics_endpoint(openmetrics: bool = False):
    """Prometheus metrics (OpenMetrics format when openmetrics=true)."""
    return get_metrics_response(openmetrics=openmetrics)
