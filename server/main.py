import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from config import config
from .database import init_database
from .models import ErrorResponse, HealthResponse
from .routes import ROUTER_METADATA, export_router, metrics_router, sessions_router, stats_router
from .storage import BaseStorage, get_storage

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Application metadata
APP_NAME = f"{config.APP_NAME} API"
APP_VERSION = config.APP_VERSION
APP_DESCRIPTION = """
# FocusBand API

Backend for the FocusBand attention tracker. The tracking client scores the
user's attention from facial landmarks and ships the samples here.

## API Endpoints

- `/api/sessions/*` - Tracking sessions and their summary statistics
- `/api/metrics/*` - Per-sample attention metrics
- `/api/stats` - Aggregate statistics across sessions
- `/api/export/*` - CSV and JSON export
- `/health` - Health checks and monitoring
- `/docs` - Interactive API documentation
"""

# Generic messages returned for request validation failures, by path prefix
VALIDATION_MESSAGES = {
    ROUTER_METADATA["sessions"]["prefix"]: "Invalid session data",
    ROUTER_METADATA["metrics"]["prefix"]: "Invalid metric data",
}

# Global variables for application state
app_start_time = None
request_count = 0

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    global app_start_time

    # Startup
    logger.info(f"Starting {APP_NAME} (storage: {config.STORAGE_BACKEND})...")
    app_start_time = time.time()

    if config.STORAGE_BACKEND == "database":
        logger.info("Initializing database...")
        if not init_database():
            logger.warning("Failed to initialize database tables")

    logger.info(f"{APP_NAME} started successfully")

    yield

    # Shutdown
    logger.info(f"Shutting down {APP_NAME}...")
    logger.info(f"Total requests processed: {request_count}")

# Create FastAPI application
app = FastAPI(
    title=APP_NAME,
    description=APP_DESCRIPTION,
    version=APP_VERSION,
    debug=config.DEBUG,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan
)

# ============================================================================
# MIDDLEWARE CONFIGURATION
# ============================================================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=config.ALLOWED_HOSTS)

# ============================================================================
# REQUEST MIDDLEWARE
# ============================================================================

@app.middleware("http")
async def request_middleware(request: Request, call_next):
    """Middleware for request logging and monitoring."""
    global request_count

    request_count += 1
    request_id = request_count

    start_time = time.time()
    logger.info(f"Request {request_id}: {request.method} {request.url.path}")

    try:
        response = await call_next(request)
    except Exception as e:
        process_time = time.time() - start_time
        logger.error(f"Request {request_id} failed after {process_time:.3f}s: {str(e)}")
        raise

    process_time = time.time() - start_time
    logger.info(f"Request {request_id} completed in {process_time:.3f}s - Status: {response.status_code}")

    response.headers["X-Process-Time"] = str(process_time)
    response.headers["X-Request-ID"] = str(request_id)

    return response

# ============================================================================
# ERROR HANDLERS
# ============================================================================

def _error_response(status_code: int, error: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder(error))

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with consistent error response format."""
    return _error_response(
        exc.status_code,
        ErrorResponse(
            error=str(exc.detail),
            error_code=f"HTTP_{exc.status_code}",
            timestamp=datetime.now(timezone.utc)
        )
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Validation failures are reported as a generic 400 for the resource."""
    message = "Invalid request data"
    for prefix, resource_message in VALIDATION_MESSAGES.items():
        if request.url.path.startswith(prefix):
            message = resource_message
            break

    logger.warning(f"{message} for {request.method} {request.url.path}: {exc.errors()}")

    return _error_response(
        status.HTTP_400_BAD_REQUEST,
        ErrorResponse(
            error=message,
            detail=jsonable_encoder(exc.errors()),
            error_code="VALIDATION_ERROR",
            timestamp=datetime.now(timezone.utc)
        )
    )

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions with consistent error response format."""
    logger.error(f"Unhandled exception: {str(exc)}", exc_info=True)

    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorResponse(
            error="Internal server error",
            detail=str(exc) if app.debug else "An unexpected error occurred",
            error_code="INTERNAL_ERROR",
            timestamp=datetime.now(timezone.utc)
        )
    )

# ============================================================================
# HEALTH CHECK ENDPOINTS
# ============================================================================

def _uptime() -> float:
    return time.time() - app_start_time if app_start_time else 0

@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="Health Check",
    description="Check the health status of the API and its storage"
)
async def health_check(storage: BaseStorage = Depends(get_storage)):
    storage_health = storage.health()
    overall_status = "healthy" if storage_health["status"] == "healthy" else "unhealthy"

    return HealthResponse(
        status=overall_status,
        timestamp=datetime.now(timezone.utc),
        storage=storage_health,
        api_version=APP_VERSION,
        uptime=_uptime()
    )

@app.get(
    "/health/storage",
    tags=["Health"],
    summary="Storage Health Check",
    description="Check storage connectivity and record counts"
)
async def storage_health(storage: BaseStorage = Depends(get_storage)):
    return storage.health()

@app.get(
    "/health/stats",
    tags=["Health"],
    summary="API Statistics",
    description="Get API usage statistics"
)
async def api_stats():
    uptime = _uptime()

    return {
        "requests_total": request_count,
        "uptime_seconds": uptime,
        "requests_per_second": request_count / uptime if uptime > 0 else 0,
        "storage_backend": config.STORAGE_BACKEND,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }

# ============================================================================
# ROUTE REGISTRATION
# ============================================================================

app.include_router(
    sessions_router,
    prefix=ROUTER_METADATA["sessions"]["prefix"],
    tags=ROUTER_METADATA["sessions"]["tags"]
)

app.include_router(
    metrics_router,
    prefix=ROUTER_METADATA["metrics"]["prefix"],
    tags=ROUTER_METADATA["metrics"]["tags"]
)

app.include_router(
    stats_router,
    prefix=ROUTER_METADATA["stats"]["prefix"],
    tags=ROUTER_METADATA["stats"]["tags"]
)

app.include_router(
    export_router,
    prefix=ROUTER_METADATA["export"]["prefix"],
    tags=ROUTER_METADATA["export"]["tags"]
)

# ============================================================================
# ROOT ENDPOINT
# ============================================================================

@app.get(
    "/",
    tags=["Root"],
    summary="API Root",
    description="Welcome endpoint with API information"
)
async def root():
    return {
        "message": f"Welcome to {APP_NAME}",
        "version": APP_VERSION,
        "status": "running",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "documentation": "/docs",
        "health_check": "/health"
    }

# ============================================================================
# DEVELOPMENT SERVER
# ============================================================================

def run():
    """Run the API with uvicorn."""
    uvicorn.run(
        "server.main:app",
        host=config.API_HOST,
        port=config.API_PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
        access_log=True
    )

if __name__ == "__main__":
    run()
