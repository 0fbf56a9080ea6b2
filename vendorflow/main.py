from contextlib import asynccontextmanager
from datetime import datetime, timezone
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from vendorflow.config import settings
from vendorflow.api.deps import DB
from vendorflow.api.v1.router import api_router
from vendorflow.core.exceptions import DomainError
from vendorflow.database import async_session_factory
from vendorflow.jobs.scheduler import build_scheduler, get_job_status


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
    - Build the background scheduler with the application's session factory
    - Start it unless SCHEDULER_ENABLED is off

    Schema changes are applied with Alembic, not at startup.
    """
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    app.state.scheduler = None
    if settings.SCHEDULER_ENABLED:
        scheduler = build_scheduler(async_session_factory, settings)
        scheduler.start()
        app.state.scheduler = scheduler
        for job in get_job_status(scheduler):
            logger.info(f"Scheduled job: {job['name']} - Next run: {job['next_run_time']}")
    else:
        logger.info("Background scheduler disabled")

    yield

    # Shutdown
    if app.state.scheduler is not None and app.state.scheduler.running:
        app.state.scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")
    logger.info("Shutting down...")


# OpenAPI Tags with detailed descriptions
OPENAPI_TAGS = [
    {"name": "Orders", "description": "Order ingestion, vendor assignment and assignment lifecycle"},
    {"name": "Order Splitting", "description": "Partial assignment of item quantities across vendors"},
    {"name": "Tracking", "description": "Carrier tracking numbers for vendor shipments"},
    {"name": "Proof Approvals", "description": "Design/production proofs and customer approval links"},
    {"name": "Order Monitoring", "description": "Staleness alerts and monitoring thresholds"},
    {"name": "Vendor Financials", "description": "Vendor ledger, balances and payouts"},
    {"name": "Health", "description": "Liveness and database connectivity"},
]

API_DESCRIPTION = """
## VendorFlow Fulfillment API

Order assignment and fulfillment core for a multi-vendor marketplace.

### Authentication

All endpoints except `/health` and `/api/v1/proofs/customer/*` require a
JWT issued by the identity service. Include it as `Authorization: Bearer <token>`.

### Response envelope

Every response is `{"success": bool, "data": ..., "message": ..., "errors": [...]}`.
Errors carry a stable `code` in `errors[0].code`.

| HTTP | Meaning |
|------|---------|
| 400 | Validation failed / invalid assignment type |
| 401 | Missing or invalid token |
| 403 | Not allowed for this actor |
| 404 | Not found |
| 409 | Invalid transition, over-allocation, duplicate assignment or payout inclusion |
| 410 | Proof approval link expired |
| 422 | Malformed request / vendor inactive |
| 500 | Internal Server Error |
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


def error_response(status_code: int, message: str, errors: list, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder({"success": False, "message": message, "errors": errors}),
        headers=headers,
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    """Business-rule violations raised by the services."""
    logger.info(f"{request.method} {request.url.path} -> {exc.code}: {exc.message}")
    return error_response(exc.status_code, exc.message, [exc.to_error()])


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Authentication failures and unknown routes, in the standard envelope."""
    code = {401: "UNAUTHENTICATED", 403: "FORBIDDEN", 404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}.get(
        exc.status_code, "HTTP_ERROR"
    )
    return error_response(
        exc.status_code,
        str(exc.detail),
        [{"code": code}],
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "code": "REQUEST_VALIDATION",
            "field": ".".join(str(p) for p in err.get("loc", [])),
            "message": err.get("msg"),
        }
        for err in exc.errors()
    ]
    return error_response(422, "Request validation failed", errors)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Unexpected errors: logged with traceback, reported without internals."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return error_response(500, "Internal server error", [{"code": "INTERNAL_ERROR", "type": type(exc).__name__}])


# Health check endpoint
@app.get("/health", tags=["Health"])
async def health_check(db: DB):
    """Health check endpoint with database validation."""
    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    # Check database connectivity
    try:
        result = await db.execute(text("SELECT 1"))
        result.scalar()
        health_status["checks"]["database"] = "connected"
    except SQLAlchemyError as e:
        logger.warning(f"Health check database error: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status
