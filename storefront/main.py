# main.py
"""
Storefront orders API application.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .config.database import db_manager
from .config.settings import get_settings
from .errors import StorefrontError
from .routers import orders_router
from .schemas.common import ErrorResponse, HealthCheckResponse, RootResponse, ValidationErrorDetail, ValidationErrorResponse
from .services.gateway import RazorpayGateway
from .services.holds import StockHoldRegistry
from .services.inventory import InventoryLedger
from .services.notifications import EmailNotifier
from .utils.serializers import utcnow

settings = get_settings()

# Setup logging
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)


async def sweep_expired_holds(interval_seconds: int) -> None:
    """Periodically release stock held for checkouts nobody paid for."""
    while True:
        await asyncio.sleep(interval_seconds)
        if not db_manager.is_connected():
            continue
        database = db_manager.get_database()
        registry = StockHoldRegistry(database, InventoryLedger(database), ttl_minutes=settings.hold_ttl_minutes)
        try:
            await registry.release_expired()
        except Exception as e:
            logger.error(f"❌ Stock hold sweep failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    sweeper = None
    try:
        logger.info("🚀 Starting up application...")
        await db_manager.connect()
        await db_manager.create_indexes()
        app.state.db_manager = db_manager
        app.state.gateway = RazorpayGateway.from_settings(settings)
        app.state.notifier = EmailNotifier.from_settings(settings)
        sweeper = asyncio.create_task(sweep_expired_holds(settings.hold_sweep_interval_seconds))
    except Exception as e:
        logger.error(f"❌ Failed to initialize application: {e}")

    yield

    # Shutdown
    if sweeper is not None:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass
    notifier = getattr(app.state, "notifier", None)
    if notifier is not None:
        await notifier.drain(timeout=settings.notification_timeout_seconds)
    gateway = getattr(app.state, "gateway", None)
    if gateway is not None:
        await gateway.aclose()
    await db_manager.disconnect()


app = FastAPI(
    title=settings.app_name,
    description=settings.app_description,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map order errors to the error envelope with their own status code."""
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=exc.message, status_code=exc.status_code).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=str(exc.detail), status_code=exc.status_code).model_dump(),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        ValidationErrorDetail(
            field=".".join(str(part) for part in error["loc"] if part != "body"),
            message=error["msg"],
            input_value=error.get("input") if isinstance(error.get("input"), (str, int, float, bool)) else None,
        )
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=ValidationErrorResponse(
            message="Request validation failed", status_code=400, details=details
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(message="Internal server error", status_code=500).model_dump(),
    )


@app.get("/", response_model=RootResponse, tags=["Root"])
async def root():
    """Root endpoint - Always accessible"""
    return RootResponse(
        message=f"Welcome to {settings.app_name}",
        version=settings.app_version,
        docs="/docs",
        health="/health",
        status="running",
        timestamp=utcnow().isoformat(),
    )


@app.get("/health", response_model=HealthCheckResponse, tags=["Health"])
async def health_check():
    """Health check endpoint - Always accessible"""
    try:
        if db_manager.is_connected():
            await db_manager.get_database().command('ping')
            db_status = "connected"
        else:
            db_status = "disconnected"
    except Exception as e:
        db_status = f"error: {str(e)}"

    return HealthCheckResponse(
        status="healthy",
        database=db_status,
        timestamp=utcnow().isoformat(),
        version=settings.app_version,
    )


app.include_router(orders_router, prefix=f"{settings.api_v1_prefix}/orders")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("storefront.main:app", host=settings.host, port=settings.port, reload=settings.reload)
