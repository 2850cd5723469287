from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError

from fulfillment.config import settings
from fulfillment.api.deps import DB
from fulfillment.api.router import api_router
from fulfillment.core.exceptions import FulfillmentError
from fulfillment.database import init_db
from fulfillment.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler
from fulfillment.models.fulfillment_event import EventStatus, FulfillmentEvent


logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create tables when AUTO_CREATE_TABLES is set
    - Start background scheduler
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    if settings.AUTO_CREATE_TABLES:
        await init_db()

    if settings.SCHEDULER_ENABLED:
        start_scheduler()

    yield

    # Shutdown
    shutdown_scheduler()
    logger.info("Shutting down...")


OPENAPI_TAGS = [
    {"name": "Orders", "description": "Orders, status transitions, payments and cancellation"},
    {"name": "Dispatch", "description": "Dispatch notes applied to order item balances"},
    {"name": "Pending Dispatch", "description": "Order items still waiting to be dispatched"},
    {"name": "Purchase Requests", "description": "Vendor PRs, PI and payment milestones, material receipt"},
    {"name": "Payment Receipts", "description": "Customer payments against order balances"},
    {"name": "Sell Records", "description": "Bills raised out of fresh stock"},
    {"name": "Products", "description": "Products and stock counters"},
    {"name": "Fulfillment Events", "description": "Cross-aggregate event outbox"},
    {"name": "Jobs", "description": "Scheduled background jobs"},
]

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


@app.exception_handler(FulfillmentError)
async def fulfillment_exception_handler(request: Request, exc: FulfillmentError):
    """Domain errors: {"detail": message, **extra} with the error's status code."""
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"detail": "Validation failed", "details": jsonable_encoder(exc.errors())},
    )


# Global exception handler for unexpected errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return error information; the traceback only in DEBUG."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")

    error_detail = {
        "detail": "Internal server error",
        "error": str(exc),
        "type": type(exc).__name__,
        "path": str(request.url.path),
        "method": request.method,
    }
    if settings.DEBUG:
        error_detail["traceback"] = traceback.format_exc()

    return JSONResponse(status_code=500, content=error_detail)


@app.get("/health", tags=["Health"])
async def health_check(db: DB):
    """
    Database connectivity plus the fulfillment event backlog.

    FAILED events need an operator (POST /api/fulfillment-events/{id}/retry);
    they are reported but do not make the service unhealthy.
    """
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "scheduler": "running" if scheduler.running else "stopped",
        "checks": {"database": "unknown"},
    }

    try:
        result = await db.execute(
            select(FulfillmentEvent.status, func.count(FulfillmentEvent.id))
            .where(FulfillmentEvent.status != EventStatus.PROCESSED.value)
            .group_by(FulfillmentEvent.status)
        )
        backlog = dict(result.all())
        health_status["checks"]["database"] = "connected"
        health_status["events"] = {
            "pending": backlog.get(EventStatus.PENDING.value, 0),
            "failed": backlog.get(EventStatus.FAILED.value, 0),
        }
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Health check database error: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {e}"
        return JSONResponse(status_code=503, content=health_status)

    return health_status
