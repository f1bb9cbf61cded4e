"""
Main FastAPI application for API Aggregator Service.
Includes lifespan management for provider connections and request logging.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException
import httpx
import time

from .core.config import settings
from .core.logging_config import setup_logging, create_logger
from .api.endpoints import router as api_router
from .api.schemas import ErrorResponse
from .providers.base import ProviderError
from .services.data_aggregator import aggregator_service

# Setup logging first
setup_logging()
logger = create_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI application.
    Opens provider connections on startup and closes them on shutdown.
    """
    logger.info("Starting API Aggregator Service", extra={
        "version": settings.app_version,
        "debug": settings.debug
    })

    try:
        await aggregator_service.initialize()
        logger.info("API Aggregator Service started successfully")
    except Exception as e:
        logger.error("Failed to start API Aggregator Service", extra={
            "error": str(e)
        })
        raise

    yield  # Application is running

    logger.info("Shutting down API Aggregator Service")
    await aggregator_service.shutdown()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Aggregates weather, news and GitHub data with cache, retry and circuit breaker resilience",
    version=settings.app_version,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    openapi_url="/openapi.json" if settings.debug else None,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins_list(),
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["*"],
)


def _unhandled_error_response(exc: Exception) -> JSONResponse:
    """Map an exception that escaped a route to a status and error body."""
    if isinstance(exc, ValueError):
        status_code, error, error_code, details = 400, str(exc), "VALIDATION_ERROR", None
    elif isinstance(exc, (ProviderError, httpx.HTTPError)):
        status_code, error, error_code, details = 502, "External API request failed", "UPSTREAM_ERROR", {"reason": str(exc)}
    elif isinstance(exc, asyncio.TimeoutError):
        status_code, error, error_code, details = 408, "Request timed out", "TIMEOUT", None
    else:
        status_code, error, error_code, details = 500, "Internal server error", "INTERNAL_ERROR", None

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=error, error_code=error_code, details=details).model_dump(mode="json")
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every request and turn unhandled exceptions into error responses."""
    started = time.perf_counter()
    context = {
        "method": request.method,
        "path": request.url.path,
        "client_ip": request.client.host if request.client else None
    }
    logger.info("Request received", extra=context)

    try:
        response = await call_next(request)
    except Exception as e:
        logger.exception("Unhandled exception", extra={
            **context,
            "error": str(e),
            "elapsed_ms": round((time.perf_counter() - started) * 1000, 2)
        })
        return _unhandled_error_response(e)

    elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
    logger.info("Request completed", extra={
        **context,
        "status_code": response.status_code,
        "elapsed_ms": elapsed_ms
    })

    response.headers["X-Response-Time-Ms"] = str(elapsed_ms)
    return response


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors with the structured error body."""
    error_code = "NOT_FOUND" if exc.status_code == 404 else "HTTP_ERROR"
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=str(exc.detail),
            error_code=error_code,
            details={
                "path": request.url.path,
                "method": request.method
            }
        ).model_dump(mode="json")
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed query parameters get the same 400 body as every other validation failure."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = first.get("loc", ("query",))[-1]
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error=f"Invalid value for '{field}': {first.get('msg', 'invalid request')}.",
            error_code="VALIDATION_ERROR",
            details={
                "path": request.url.path,
                "errors": [
                    {"field": str(error.get("loc", ("",))[-1]), "message": error.get("msg", "")}
                    for error in errors
                ]
            }
        ).model_dump(mode="json")
    )


# Include API routes
app.include_router(api_router, tags=["Aggregation API"])


@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint with service information."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "status": "running",
        "docs_url": "/docs" if settings.debug else "disabled",
        "timestamp": datetime.now(timezone.utc)
    }


def run() -> None:
    """Run the service with uvicorn."""
    import uvicorn

    uvicorn.run(
        "api_aggregator.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True
    )


if __name__ == "__main__":
    run()
