"""
drip-core auth service

FastAPI application entry point.
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from dripcore.config import Settings, get_settings
from dripcore.database import build_engine, build_session_factory
from dripcore.errors import StoreError
from dripcore.logging_config import configure_logging, get_logger
from dripcore.middleware.logging import LoggingMiddleware
from dripcore.routes.auth import router as auth_router
from dripcore.routes.metrics import router as metrics_router
from dripcore.sentry_config import configure_sentry

log = get_logger(component="app")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    configure_logging()
    configure_sentry(settings)

    engine = build_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await engine.dispose()
        log.info("database_engine_disposed")

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Google sign-in and credential issuance for the drip-core storefront",
        lifespan=lifespan,
    )
    app.dependency_overrides[get_settings] = lambda: settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)

    app.add_middleware(LoggingMiddleware)

    # The storefront calls /api/auth/me with the issued bearer token
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreError)
    async def store_error_handler(request: Request, exc: StoreError):
        log.error("identity_store_failed", route=request.url.path, error_code=exc.code, error=exc.message)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Service temporarily unavailable"},
        )

    app.include_router(metrics_router)
    app.include_router(auth_router)

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {
            "name": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "status": "running"
        }

    @app.get("/health")
    async def health():
        return {"status": "healthy"}

    return app


app = create_app()
