"""FastAPI application entry point."""

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from zion import __version__
from zion.api import dialogue, health, intake
from zion.api.health import ERRORS
from zion.config import settings
from zion.errors import ZionError
from zion.schemas.common import ErrorResponse

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(0),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
)

logger = structlog.get_logger()

app = FastAPI(
    title=settings.app_name,
    description="Lead intake, proposal generation and the Zion qualification dialogue",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS - the intake widget is embedded on arbitrary client sites
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=False,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type"],
)

# Mount routers
app.include_router(health.router, prefix=settings.api_prefix)
app.include_router(intake.router, prefix=settings.api_prefix)
app.include_router(dialogue.router, prefix=settings.api_prefix)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=message).model_dump())


@app.exception_handler(ZionError)
async def zion_error_handler(request: Request, exc: ZionError):
    if exc.status_code >= 500:
        logger.error("request_failed", path=request.url.path, error=exc.message, error_type=type(exc).__name__)
    return _error(exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return _error(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    ERRORS.labels(type="unhandled").inc()
    logger.error("unhandled_error", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
    return _error(500, "Server error")


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs",
    }
