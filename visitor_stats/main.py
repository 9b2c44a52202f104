from fastapi import FastAPI, Request
from contextlib import asynccontextmanager
import logging
import structlog
import time

from visitor_stats.core.config import settings
from visitor_stats.core.database import create_tables
from visitor_stats.core.errors import register_exception_handlers
from visitor_stats.api import visitor_stats
from visitor_stats.middleware.rate_limit import rate_limit_middleware, rate_limiter

# Configure structured logging
structlog.configure(
    processors=[
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        logging.getLevelName(settings.log_level)
    )
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle events"""
    logger.info("application_startup", app_name=settings.app_name, environment=settings.environment)
    if settings.auto_create_tables:
        await create_tables()
    yield
    await rate_limiter.close()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.app_name,
    debug=settings.debug,
    lifespan=lifespan
)

register_exception_handlers(app)

if settings.rate_limit_enabled:
    app.middleware("http")(rate_limit_middleware)


# Middleware for logging requests
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        "request_completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(duration * 1000, 2)
    )

    return response


# Include routers
app.include_router(visitor_stats.router)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "app": settings.app_name}


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": settings.app_name,
        "endpoints": {
            "health": "/health",
            "track": f"{settings.api_prefix}/track",
            "stats": f"{settings.api_prefix}/stats",
            "session": f"{settings.api_prefix}/session",
            "reset": f"{settings.api_prefix}/reset",
            "docs": "/docs"
        }
    }
