import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from sleepchat.api import api_router
from sleepchat.config import settings
from sleepchat.core.errors import AuthError, PlatformError, RateLimitError, ValidationError
from sleepchat.engine import Engine
from sleepchat.logging_config import setup_logging

logger = logging.getLogger(__name__)


def _status_for(exc: PlatformError) -> int:
    if isinstance(exc, AuthError):
        return 401
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, RateLimitError):
        return 429
    return 502


def create_app(engine: Engine | None = None) -> FastAPI:
    # Configure logging first
    setup_logging(app_env=settings.app_env, log_level=settings.log_level)

    # Initialize Sentry if DSN is configured
    if settings.sentry_dsn:
        try:
            import sentry_sdk
            from sentry_sdk.integrations.fastapi import FastApiIntegration

            sentry_sdk.init(
                dsn=settings.sentry_dsn,
                environment=settings.app_env,
                integrations=[FastApiIntegration()],
                traces_sample_rate=0.1 if settings.is_production else 1.0,
                send_default_pii=False,
            )
            logger.info("Sentry initialized")
        except ImportError:
            logger.warning("sentry-sdk not installed, skipping Sentry initialization")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.engine = engine or Engine.create()
        await app.state.engine.bind_session()
        yield
        await app.state.engine.shutdown()

    app = FastAPI(
        title=settings.app_name,
        version="0.1.0",
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None if settings.is_production else "/redoc",
        lifespan=lifespan,
    )

    app.include_router(api_router)

    @app.exception_handler(PlatformError)
    async def platform_exception_handler(request: Request, exc: PlatformError):
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.warning(f"Platform error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": exc.message})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content={"detail": exc.errors()},
        )

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "app": settings.app_name, "version": "0.1.0"}

    logger.info(f"SleepChat started (env={settings.app_env})")
    return app


def run() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


app = create_app()
