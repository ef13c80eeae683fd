from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
import sys
import time
from pathlib import Path
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional
import traceback

import httpx

# Load environment variables first
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from config import Settings, get_settings, get_cors_config, validate_environment
from logging_config import setup_logging, get_logger, set_request_context, clear_request_context
from sentry_integration import init_sentry
from database import create_engine_from_settings, create_session_factory, ping
from identity import IdentityDirectoryClient
from routers import employees_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    settings: Settings = app.state.settings

    # Startup
    setup_logging(
        level=settings.LOG_LEVEL,
        json_format=settings.is_production,
        service_name="staff-directory"
    )
    logger.info("=" * 60)
    logger.info("Starting Staff Directory Core API...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Debug Mode: {settings.debug_enabled}")
    logger.info("=" * 60)

    # The backend URL, service credential and database are mandatory
    missing = settings.validate_required()
    if missing:
        for error in missing:
            logger.error(f"Configuration Error: {error}")
        logger.error("Missing required environment variables, exiting")
        sys.exit(1)

    env_status = validate_environment(settings)
    for error in env_status["errors"]:
        logger.error(f"Configuration Error: {error}")
    if not env_status["valid"] and settings.is_production:
        raise RuntimeError("Cannot start in production with invalid configuration")
    for warning in env_status.get("warnings", []):
        logger.warning(f"Configuration Warning: {warning}")

    if settings.SENTRY_DSN:
        init_sentry(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            release=settings.API_VERSION,
        )

    # Identity directory client (one connection pool per process)
    http_client = httpx.AsyncClient()
    app.state.identity_directory = IdentityDirectoryClient(
        base_url=settings.SUPABASE_URL,
        service_key=settings.SUPABASE_SERVICE_ROLE_KEY,
        http_client=http_client,
        create_timeout=settings.IDENTITY_CREATE_TIMEOUT_SECONDS,
    )
    logger.info(f"Identity directory client initialized for {settings.SUPABASE_URL}")

    # Employee directory database
    engine = create_engine_from_settings(settings)
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    if not await ping(engine):
        await http_client.aclose()
        await engine.dispose()
        raise RuntimeError("Failed to initialize database")
    logger.info("PostgreSQL connection established")

    logger.info("Staff Directory Core API started successfully")

    yield

    # Shutdown
    logger.info("Shutting down Staff Directory Core API...")
    await http_client.aclose()
    await engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.API_TITLE,
        description="""
        Employee provisioning and directory API.

        ### Employees
        - POST /create-employee - Create identity account + employee row (rolled back on failure)
        - GET /employees, GET /employees/{id}
        - PUT /employees/{id} - Partial update
        - DELETE /employees/{id}
        - POST /employees/{id}/deactivate

        ### Health
        - GET /health, /health/live, /health/ready
        """,
        version=settings.API_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug_enabled else None,
        redoc_url="/redoc" if settings.debug_enabled else None,
    )
    app.state.settings = settings

    # ==================== HEALTH CHECK ENDPOINTS ====================

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Report whether the backend credentials are configured."""
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": settings.API_VERSION,
            "backend_configured": settings.has_backend_credentials,
            "env_vars": {
                "has_supabase_url": bool(settings.SUPABASE_URL),
                "has_service_key": bool(settings.SUPABASE_SERVICE_ROLE_KEY),
                "has_database_url": bool(settings.DATABASE_URL),
            },
        }

    @app.get("/health/live", tags=["Health"])
    async def liveness_check():
        """
        Kubernetes liveness check.
        Returns 200 if the process is running (doesn't check dependencies).
        """
        return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}

    @app.get("/health/ready", tags=["Health"])
    async def readiness_check(request: Request):
        """
        Kubernetes readiness check.
        Returns 200 only when both the database and the identity service answer.
        """
        checks = {}

        engine = getattr(request.app.state, "engine", None)
        checks["database"] = "connected" if engine is not None and await ping(engine) else "disconnected"

        identity = getattr(request.app.state, "identity_directory", None)
        if identity is not None:
            identity_health = await identity.check_health()
            checks["identity"] = identity_health["status"]
        else:
            checks["identity"] = "not_initialized"

        ready = checks["database"] == "connected" and checks["identity"] == "healthy"
        return JSONResponse(
            status_code=200 if ready else 503,
            content={
                "status": "ready" if ready else "not_ready",
                "checks": checks,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )

    app.include_router(employees_router)

    # ==================== MIDDLEWARE ====================

    app.add_middleware(CORSMiddleware, **get_cors_config(settings))

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all requests with timing information"""
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID", f"req-{int(start_time * 1000)}")
        set_request_context(request_id)

        if settings.debug_enabled:
            logger.debug(f"[{request_id}] {request.method} {request.url.path}")

        try:
            response = await call_next(request)

            process_time = time.time() - start_time
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))

            if settings.debug_enabled or response.status_code >= 400:
                logger.info(f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} ({process_time:.3f}s)")

            return response
        except Exception as e:
            logger.error(f"[{request_id}] Request failed: {str(e)}")
            raise
        finally:
            clear_request_context()

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions"""
        logger.error(f"Unhandled exception: {exc}")
        if settings.debug_enabled:
            logger.error(traceback.format_exc())

        content = {
            "success": False,
            "error": "Internal server error",
            "message": "Internal server error" if settings.is_production else str(exc),
        }
        if not settings.is_production:
            content["stack"] = traceback.format_exception(type(exc), exc, exc.__traceback__)
        return JSONResponse(status_code=500, content=content)

    return app


app = create_app()
