"""FastAPI application — Hours Bank API."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hours_bank.config import get_settings
from hours_bank.models import (
    ConfigurationError,
    HoursBankError,
    IntegrationError,
    NotFoundError,
    StaleVersionError,
    ValidationError,
)

from api.routes import router
from api.schemas import ErrorResponse

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(
    title="Hours Bank API",
    description="Versioned, auditable monthly hours and ticket bank balances.",
    version="1.0.0",
)

# CORS: allow frontend origins
# Set HOURS_BANK_ALLOWED_ORIGINS='["*"]' to allow any origin
_allow_all = "*" in settings.allowed_origins
ALLOWED_ORIGINS: list[str] = ["*"] if _allow_all else list(settings.allowed_origins)

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=not _allow_all,  # credentials not allowed with wildcard
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)

app.include_router(router)


def _status_for(exc: HoursBankError) -> tuple[int, str]:
    if isinstance(exc, ConfigurationError):
        return 409, "configuration_error"
    if isinstance(exc, StaleVersionError):
        return 409, "version_conflict"
    if isinstance(exc, ValidationError):
        return 422, "validation_error"
    if isinstance(exc, NotFoundError):
        return 404, "not_found"
    if isinstance(exc, IntegrationError):
        return (503 if exc.retryable else 502), "integration_error"
    return 500, "processing_error"


@app.exception_handler(HoursBankError)
async def hours_bank_error_handler(request: Request, exc: HoursBankError) -> JSONResponse:
    status, error_type = _status_for(exc)
    errors = exc.errors if isinstance(exc, ValidationError) else [exc.message]
    if status >= 500:
        logger.error("%s on %s: %s", error_type, request.url.path, exc)
    else:
        logger.info("%s on %s: %s", error_type, request.url.path, exc)
    body = ErrorResponse(
        error_type=error_type,
        errors=errors,
        context={k: v for k, v in exc.context.items() if v is not None},
    )
    return JSONResponse(status_code=status, content=body.model_dump())


@app.get("/")
async def root():
    return {
        "name": "Hours Bank API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/api/v1/health",
    }
