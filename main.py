"""Main application entry point."""

import asyncio
import logging
import traceback
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import async_sessionmaker
from starlette.middleware.base import BaseHTTPMiddleware

from roadbook_auth import __version__
from roadbook_auth.api.errors import register_exception_handlers
from roadbook_auth.api.routes import api_router
from roadbook_auth.core.config import Settings, get_settings
from roadbook_auth.core.login_attempts import InMemoryLoginAttemptTracker
from roadbook_auth.core.security import PasswordHasher, TokenCodec
from roadbook_auth.db.session import AsyncSessionLocal, close_db, init_db
from roadbook_auth.services.auth_service import AuthService
from roadbook_auth.services.credential_store import SQLAlchemyCredentialStore
from roadbook_auth.services.maintenance import maintenance_loop
from roadbook_auth.services.notifier import LoggingResetNotifier, ResetNotifier
from roadbook_auth.services.password_reset_service import PasswordResetService

# ─────────────────────────────────────────────────────────────
# Logging Setup
# ─────────────────────────────────────────────────────────────
settings = get_settings()

log_level = logging.DEBUG if settings.debug else logging.INFO

logging.basicConfig(
    level=log_level,
    format="%(asctime)s | %(levelname)-8s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("roadbook_auth")

# Suppress verbose SQLAlchemy logs in production
if not settings.debug:
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


# ─────────────────────────────────────────────────────────────
# Global exception handler - logs full traceback
# ─────────────────────────────────────────────────────────────
async def catch_exceptions_middleware(request: Request, call_next):
    try:
        return await call_next(request)
    except Exception as exc:
        logger.error("=" * 60)
        logger.error(f"500 ERROR on {request.method} {request.url.path}")
        logger.error(f"Exception: {type(exc).__name__}")
        logger.error(traceback.format_exc())
        logger.error("=" * 60)
        return JSONResponse(
            status_code=500,
            content={"status": "error", "code": "server_error", "message": "Internal server error"},
        )


# ─────────────────────────────────────────────────────────────
# Lifespan: Startup + Shutdown
# ─────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting up {app.title} v{app.version}...")
    await init_db()
    logger.info("Database tables initialized")
    cleanup_task = asyncio.create_task(
        maintenance_loop(
            app.state.login_tracker,
            app.state.password_reset_service,
            app.state.settings.cleanup_interval_minutes * 60,
        )
    )
    yield
    logger.info("Shutting down application...")
    cleanup_task.cancel()
    try:
        await cleanup_task
    except asyncio.CancelledError:
        pass
    await close_db()


# ─────────────────────────────────────────────────────────────
# FastAPI App
# ─────────────────────────────────────────────────────────────
def create_app(
    app_settings: Optional[Settings] = None,
    session_factory: Optional[async_sessionmaker] = None,
    notifier: Optional[ResetNotifier] = None,
) -> FastAPI:
    """Build the app; tests pass their own settings and session factory."""
    app_settings = app_settings or settings
    custom_store = session_factory is not None

    app = FastAPI(
        title=app_settings.app_name,
        description="Credential and session-token service for the roadbook backend",
        version=__version__,
        docs_url="/docs" if app_settings.debug else None,
        redoc_url="/redoc" if app_settings.debug else None,
        openapi_url="/openapi.json" if app_settings.debug else None,
        lifespan=None if custom_store else lifespan,
        default_response_class=JSONResponse,
    )

    # One hasher, codec and attempt tracker per process, shared by both services
    store = SQLAlchemyCredentialStore(
        session_factory or AsyncSessionLocal,
        timeout=app_settings.store_timeout_seconds,
    )
    hasher = PasswordHasher(rounds=app_settings.bcrypt_rounds)
    tracker = InMemoryLoginAttemptTracker(
        max_attempts=app_settings.max_login_attempts,
        lockout_seconds=app_settings.lockout_seconds,
    )
    app.state.settings = app_settings
    app.state.login_tracker = tracker
    app.state.auth_service = AuthService(
        store,
        app_settings,
        hasher=hasher,
        codec=TokenCodec(algorithm=app_settings.jwt_algorithm),
        tracker=tracker,
    )
    app.state.password_reset_service = PasswordResetService(store, app_settings, hasher=hasher)
    app.state.reset_notifier = notifier or LoggingResetNotifier()

    # ─── Security Middleware ───
    app.add_middleware(BaseHTTPMiddleware, dispatch=catch_exceptions_middleware)
    app.add_middleware(TrustedHostMiddleware, allowed_hosts=app_settings.allowed_hosts_list)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        max_age=600,
    )

    register_exception_handlers(app)
    app.include_router(api_router, prefix="/api/v1")
    return app


app = create_app()


# ─────────────────────────────────────────────────────────────
# Run with Uvicorn (only when running directly)
# ─────────────────────────────────────────────────────────────
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level="info" if not settings.debug else "debug",
    )
