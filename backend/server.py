import time
import traceback
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from config import Settings, load_settings, validate_environment
from database import ConnectionProvider
from directory import DirectoryRepository, UserApi, WritePolicyGate
from directory import router as user_router
from logging_config import clear_request_context, get_logger, set_request_context, setup_logging
from sentry_integration import init_sentry

logger = get_logger(__name__)


# ==================== HEALTH CHECK ENDPOINTS ====================

health_router = APIRouter(prefix="/api", tags=["Health"])


@health_router.get("/health")
async def health_check(request: Request):
    """
    Detailed health check for load balancers and uptime monitors.

    Returns:
    - 200: directory store reachable
    - 503: directory store unavailable
    """
    settings: Settings = request.app.state.settings
    connections: ConnectionProvider = request.app.state.connections

    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.API_VERSION,
        "environment": settings.ENVIRONMENT,
        "checks": {}
    }

    try:
        await connections.check()
        health_status["checks"]["database"] = {
            "status": "connected",
            "type": connections.engine.dialect.name
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = {"status": "disconnected"}

    env_status = validate_environment(settings)
    health_status["checks"]["configuration"] = {
        "status": "valid" if env_status["valid"] else "invalid",
        "warnings": len(env_status["warnings"]),
        "errors": len(env_status["errors"])
    }

    if health_status["status"] == "unhealthy":
        raise HTTPException(status_code=503, detail=health_status)

    return health_status


@health_router.get("/health/live")
async def liveness_check():
    """Liveness probe; does not check dependencies."""
    return {"status": "alive", "timestamp": datetime.now(timezone.utc).isoformat()}


# ==================== APPLICATION FACTORY ====================

def create_app(
    settings: Optional[Settings] = None,
    connections: Optional[ConnectionProvider] = None
) -> FastAPI:
    """
    Build the application.

    The settings, connection provider, repository and dispatcher are
    created here once and live as long as the application.
    """
    if settings is None:
        load_dotenv()
        settings = load_settings()

    setup_logging(
        level=settings.LOG_LEVEL,
        json_format=settings.is_production,
        service_name="user-directory"
    )

    if settings.SENTRY_DSN:
        init_sentry(
            dsn=settings.SENTRY_DSN,
            environment=settings.ENVIRONMENT,
            release=settings.API_VERSION,
        )

    connections = connections or ConnectionProvider.from_settings(settings)
    repository = DirectoryRepository.from_settings(connections, settings)
    user_api = UserApi(
        repository,
        WritePolicyGate.from_settings(settings),
        default_provider=settings.DEFAULT_PROVIDER,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("=" * 60)
        logger.info(f"Starting {settings.API_TITLE} ({settings.ENVIRONMENT})")
        logger.info("=" * 60)

        env_status = validate_environment(settings)
        for error in env_status["errors"]:
            logger.error(f"Configuration Error: {error}")
        for warning in env_status["warnings"]:
            logger.warning(f"Configuration Warning: {warning}")
        if not env_status["valid"] and settings.is_production:
            raise RuntimeError("Cannot start in production with invalid configuration")

        try:
            await connections.check()
            logger.info("Directory store connection established")
        except Exception as e:
            logger.error(f"Failed to connect to the directory store: {e}")
            raise

        yield

        logger.info(f"Shutting down {settings.API_TITLE}...")
        await connections.dispose()

    app = FastAPI(
        title=settings.API_TITLE,
        description="User lookup, creation, update and activation for OIDC-provisioned users.",
        version=settings.API_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs" if settings.debug_enabled else None,
        redoc_url="/api/redoc" if settings.debug_enabled else None,
    )

    app.state.settings = settings
    app.state.connections = connections
    app.state.user_api = user_api

    app.include_router(health_router)
    app.include_router(user_router)

    # ==================== MIDDLEWARE ====================

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Tag logs with the request id and log timing information"""
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        set_request_context(request_id)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(f"Request failed: {e}")
            raise
        finally:
            clear_request_context()

        process_time = time.time() - start_time
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(round(process_time * 1000, 2))

        if settings.debug_enabled or response.status_code >= 400:
            logger.info(f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} ({process_time:.3f}s)")

        return response

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions"""
        logger.error(f"Unhandled exception: {exc}")
        if settings.debug_enabled:
            logger.error(traceback.format_exc())

        if settings.is_production:
            return JSONResponse(status_code=500, content={"detail": "Internal server error"})
        return JSONResponse(
            status_code=500,
            content={"detail": str(exc), "type": type(exc).__name__}
        )

    return app


def main():
    import uvicorn

    uvicorn.run("server:create_app", factory=True, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
