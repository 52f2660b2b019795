"""Main FastAPI application"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional
import logging
import time
import traceback
import uuid

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.exc import SQLAlchemyError

from authgate.api.v1 import auth, users
from authgate.config import Settings, get_settings
from authgate.core.database import build_engine, build_session_factory, init_db
from authgate.core.exceptions import BaseAPIException
from authgate.core.metrics import REQUEST_COUNT, REQUEST_LATENCY
from authgate.core.security import AccessTokenCodec, RefreshTokenCodec
from authgate.schemas.response import HealthResponse
from authgate.services.credential_store import (
    CredentialStore,
    InMemoryCredentialStore,
    SqlCredentialStore,
)
from authgate.services.token_service import TokenService
from authgate.services.token_sweeper import TokenSweeper
from authgate.services.user_service import UserService

logger = logging.getLogger(__name__)

_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(settings: Settings) -> None:
    """Configure root logging once; a log file is optional"""
    handlers = [logging.StreamHandler()]
    log_file = settings.get_log_file()
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format=_LOG_FORMAT,
        handlers=handlers,
    )


def _error_content(request: Request, error: str, details=None) -> dict:
    return {
        "success": False,
        "error": error,
        "details": details,
        "path": request.url.path,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application from an immutable settings object.

    Raises:
        ConfigurationError: If secrets are missing or invalid.
    """
    settings = settings or get_settings()
    settings.validate_security_settings()
    configure_logging(settings)

    engine = build_engine(settings)
    session_factory = build_session_factory(engine)

    store: CredentialStore
    if settings.STORE_BACKEND == "memory":
        store = InMemoryCredentialStore(lock_timeout=settings.STORE_TIMEOUT_SECONDS)
    else:
        store = SqlCredentialStore(session_factory)

    access_codec = AccessTokenCodec(
        settings.ACCESS_TOKEN_SECRET, settings.ACCESS_TOKEN_LIFETIME, settings.ALGORITHM
    )
    refresh_codec = RefreshTokenCodec(
        settings.REFRESH_TOKEN_SECRET, settings.REFRESH_TOKEN_LIFETIME, settings.ALGORITHM
    )
    token_service = TokenService(access_codec, refresh_codec, store)
    # Same parsed lifetime as the refresh codec.
    sweeper = TokenSweeper(
        store,
        refresh_codec.lifetime,
        interval_seconds=settings.SWEEP_INTERVAL_SECONDS,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
        logger.info(f"Environment: {settings.ENVIRONMENT}")

        try:
            init_db(engine, settings)
            logger.info("Database initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

        if settings.RUN_EMBEDDED_SWEEPER:
            sweeper.start()

        yield

        if sweeper.is_running():
            sweeper.stop()
        engine.dispose()
        logger.info(f"Shutting down {settings.APP_NAME}")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        docs_url="/api/docs" if settings.DEBUG else None,
        redoc_url="/api/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.credential_store = store
    app.state.token_service = token_service
    app.state.user_service = UserService(bcrypt_rounds=settings.BCRYPT_ROUNDS)
    app.state.sweeper = sweeper

    # GZip compression for large responses
    app.add_middleware(GZipMiddleware, minimum_size=500)

    # CORS middleware; credentials allowed so the refresh cookie is sent
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Security headers + request timing middleware
    @app.middleware("http")
    async def add_headers_and_timing(request: Request, call_next):
        """Add security headers and log slow requests"""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id

        start = time.time()
        response = await call_next(request)
        duration = time.time() - start

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        response.headers["X-Request-ID"] = request_id

        REQUEST_COUNT.labels(request.method, request.url.path, str(response.status_code)).inc()
        REQUEST_LATENCY.labels(request.method, request.url.path).observe(duration)

        if duration > 1.0:
            logger.warning(
                "Slow request: %s %s took %.2fs request_id=%s",
                request.method,
                request.url.path,
                duration,
                request_id,
            )

        return response

    # Exception handlers
    @app.exception_handler(BaseAPIException)
    async def api_exception_handler(request: Request, exc: BaseAPIException):
        """Handle custom API exceptions"""
        log = logger.error if exc.status_code >= 500 else logger.info
        log(
            f"API Exception: {exc.message}",
            extra={
                "status_code": exc.status_code,
                "path": request.url.path,
                "method": request.method
            }
        )

        return JSONResponse(
            status_code=exc.status_code,
            content=_error_content(request, exc.message, exc.details or None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle Pydantic validation errors"""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"]
            })

        logger.warning(
            f"Validation error: {errors}",
            extra={"path": request.url.path, "method": request.method}
        )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=_error_content(request, "Validation failed", errors),
        )

    @app.exception_handler(SQLAlchemyError)
    async def database_exception_handler(request: Request, exc: SQLAlchemyError):
        """Handle database errors"""
        logger.error(
            f"Database error: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "traceback": traceback.format_exc()
            }
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_content(request, "A database error occurred. Please try again later."),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle all other exceptions"""
        logger.critical(
            f"Unhandled exception: {str(exc)}",
            extra={
                "path": request.url.path,
                "method": request.method,
                "traceback": traceback.format_exc()
            }
        )

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_content(request, "An unexpected error occurred."),
        )

    # Health check endpoint
    @app.get("/health", response_model=HealthResponse)
    def health_check():
        """Health check endpoint"""
        store_ok = True
        store_error = None
        try:
            store.ping()
        except Exception as exc:
            store_ok = False
            store_error = str(exc)

        return HealthResponse(
            status="healthy" if store_ok else "degraded",
            version=settings.APP_VERSION,
            readiness={
                "store": {"ok": store_ok, "error": store_error, "backend": settings.STORE_BACKEND},
                "sweeper": sweeper.status(),
            },
        )

    @app.get("/metrics")
    def metrics():
        """Prometheus metrics endpoint."""
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Root endpoint
    @app.get("/")
    def root():
        """Root endpoint"""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "status": "running",
            "docs": "/api/docs" if settings.DEBUG else "disabled"
        }

    # Include routers
    prefix = settings.API_PREFIX.rstrip("/")
    app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["Authentication"])
    app.include_router(users.router, prefix=f"{prefix}/user", tags=["Users"])

    return app


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(
        "authgate.main:create_app",
        factory=True,
        host=_settings.HOST,
        port=_settings.PORT,
        reload=_settings.DEBUG,
        workers=1 if _settings.DEBUG else _settings.WORKERS
    )
