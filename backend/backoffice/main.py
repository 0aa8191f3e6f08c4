import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import configure_mappers

from backoffice.api.v1 import (
    accounts,
    audit,
    auth,
    clients,
    instruments,
    reference,
    roles,
    trade_orders,
    trade_transactions,
    users,
)
from backoffice.api.v1.deps import DbSession
from backoffice.audit.change_tracking import register_change_tracking
from backoffice.audit.middleware import AuditMiddleware
from backoffice.core.config import settings
from backoffice.core.database import async_session_maker
from backoffice.core.exceptions import register_exception_handlers
from backoffice.core.logging import configure_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan events.

    Startup:
    - Configure logging
    - Verify ORM mappings to fail fast if models are misconfigured
    - Register the change-tracking session hook
    """
    configure_logging()

    try:
        import backoffice.models  # noqa: F401
        configure_mappers()
    except Exception as e:
        logger.critical(f"ORM mapper configuration failed: {e}")
        raise RuntimeError(f"Application cannot start: ORM mapping error - {e}") from e

    register_change_tracking(async_session_maker)
    logger.info("Application started", extra={"event": "startup", "env": settings.ENV})

    yield

    logger.info("Application shutdown complete")


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# Audit middleware runs inside CORS so error responses still get CORS headers
app.add_middleware(AuditMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-Id"],
)

register_exception_handlers(app)

# API v1 router
api_v1_router = APIRouter(prefix="/api/v1")
api_v1_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_v1_router.include_router(clients.router, prefix="/clients", tags=["clients"])
api_v1_router.include_router(accounts.router, prefix="/accounts", tags=["accounts"])
api_v1_router.include_router(instruments.router, prefix="/instruments", tags=["instruments"])
api_v1_router.include_router(trade_orders.router, prefix="/trade-orders", tags=["trade-orders"])
api_v1_router.include_router(trade_transactions.router, prefix="/trade-transactions", tags=["trade-transactions"])
api_v1_router.include_router(users.router, prefix="/users", tags=["users"])
api_v1_router.include_router(roles.router, prefix="/roles", tags=["roles"])
api_v1_router.include_router(roles.permissions_router, prefix="/permissions", tags=["permissions"])
api_v1_router.include_router(reference.router, tags=["reference"])
api_v1_router.include_router(audit.router, prefix="/audit", tags=["audit"])
api_v1_router.include_router(audit.entity_changes_router, prefix="/entity-changes", tags=["entity-changes"])

app.include_router(api_v1_router)


@app.get("/health")
async def health_check(db: DbSession):
    """
    Health check endpoint.

    Returns 200 when the database answers ``SELECT 1``, otherwise 503.
    """
    health = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {"database": {"status": "unknown", "message": None}},
    }

    try:
        await db.execute(text("SELECT 1"))
        health["components"]["database"] = {"status": "healthy", "message": "Connected"}
    except Exception as e:
        logger.error(f"Health check database query failed: {e}")
        health["components"]["database"] = {"status": "unhealthy", "message": str(e)}
        health["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health)

    return health


@app.get("/")
async def root():
    return {
        "message": "Broker Back-Office API",
        "version": "1.0.0",
        "docs": "/docs",
    }
