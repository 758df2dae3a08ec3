"""FastAPI application setup."""

import logging
import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import ConnectionFailure, ServerSelectionTimeoutError

from memo_service.api import response as codes
from memo_service.api.exceptions import (
    AccessDeniedError,
    AuthError,
    BackendMisconfiguredError,
    NotFoundError,
    ValidationError,
)
from memo_service.api.response import error_response
from memo_service.api.routes import health, memo, quality
from memo_service.db.mongo import close_database
from memo_service.llm import LLMError, PaymentRequiredError, RateLimitError
from memo_service.logging_config import configure_logging
from memo_service.services.memo_job_service import drain_background_tasks
from memo_service.services.memo_job_store import get_memo_job_store

logger = logging.getLogger(__name__)

# Seconds to wait for in-flight generations on shutdown
SHUTDOWN_DRAIN_SECONDS = 30.0

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://127.0.0.1:5173"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    configure_logging()
    await get_memo_job_store().initialize()
    logger.info("Memo service started")
    yield
    # Shutdown
    await drain_background_tasks(timeout=SHUTDOWN_DRAIN_SECONDS)
    await close_database()


app = FastAPI(
    title="Memo Service API",
    description="Asynchronous investment memo generation and answer quality checks",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        origin.strip()
        for origin in os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",")
        if origin.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers. Starlette picks the most specific class, so
# AccessDeniedError wins over AuthError and RateLimitError over LLMError.
@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Handle missing or invalid caller identity."""
    return JSONResponse(
        status_code=401,
        content=error_response(codes.UNAUTHORIZED, exc.message),
    )


@app.exception_handler(AccessDeniedError)
async def access_denied_handler(request: Request, exc: AccessDeniedError) -> JSONResponse:
    """Handle callers touching a company they do not own."""
    return JSONResponse(
        status_code=403,
        content=error_response(codes.ACCESS_DENIED, exc.message),
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Handle unknown jobs and companies."""
    return JSONResponse(
        status_code=404,
        content=error_response(codes.NOT_FOUND, str(exc)),
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content=error_response(codes.VALIDATION_ERROR, exc.message),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies in the standard envelope."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content=error_response(
            codes.VALIDATION_ERROR,
            f"{location}: {message}" if location else message,
        ),
    )


@app.exception_handler(BackendMisconfiguredError)
async def misconfigured_handler(request: Request, exc: BackendMisconfiguredError) -> JSONResponse:
    """Handle missing secrets or settings."""
    logger.error(f"Backend misconfigured: {exc.setting}")
    return JSONResponse(
        status_code=503,
        content=error_response(codes.BACKEND_MISCONFIGURED, "Service is not configured. Please contact support."),
    )


@app.exception_handler(ServerSelectionTimeoutError)
async def mongo_timeout_handler(request: Request, exc: ServerSelectionTimeoutError) -> JSONResponse:
    """Handle MongoDB connection timeout."""
    return JSONResponse(
        status_code=503,
        content=error_response(codes.DATABASE_UNAVAILABLE, "Database is not available. Please try again later."),
    )


@app.exception_handler(ConnectionFailure)
async def mongo_connection_handler(request: Request, exc: ConnectionFailure) -> JSONResponse:
    """Handle MongoDB connection failure."""
    return JSONResponse(
        status_code=503,
        content=error_response(codes.DATABASE_UNAVAILABLE, "Database connection failed. Please try again later."),
    )


@app.exception_handler(RateLimitError)
async def rate_limit_handler(request: Request, exc: RateLimitError) -> JSONResponse:
    """Surface AI rate limiting to the client."""
    headers = {"Retry-After": str(int(exc.retry_after))} if exc.retry_after else None
    return JSONResponse(
        status_code=429,
        content=error_response(codes.RATE_LIMITED, "Rate limit exceeded. Please try again later."),
        headers=headers,
    )


@app.exception_handler(PaymentRequiredError)
async def payment_required_handler(request: Request, exc: PaymentRequiredError) -> JSONResponse:
    """Surface exhausted AI credits to the client."""
    return JSONResponse(
        status_code=402,
        content=error_response(codes.PAYMENT_REQUIRED, "AI credits exhausted. Please add credits to continue."),
    )


@app.exception_handler(LLMError)
async def llm_error_handler(request: Request, exc: LLMError) -> JSONResponse:
    """Handle LLM/AI service errors."""
    return JSONResponse(
        status_code=503,
        content=error_response(codes.AI_SERVICE_ERROR, "AI service is temporarily unavailable. Please try again."),
    )


# Register routes
app.include_router(health.router)
app.include_router(memo.router, prefix="/api")
app.include_router(quality.router, prefix="/api")
