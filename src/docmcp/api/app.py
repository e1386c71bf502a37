"""FastAPI application factory."""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from docmcp import __version__
from docmcp.api.routes import health_router, libraries_router, search_router, sync_router
from docmcp.api.service import Services, build_services
from docmcp.config import get_settings
from docmcp.errors import (
    AuthenticationError,
    EmbeddingError,
    FilterExpressionError,
    InvalidSearchRequestError,
    InvalidSourceError,
    NotFoundError,
    RateLimitExceededError,
    SyncAlreadyRunningError,
)
from docmcp.storage import dispose_database

logger = structlog.get_logger()


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AuthenticationError)
    async def auth_error(request: Request, exc: AuthenticationError):
        # One body for every auth failure
        return JSONResponse(
            status_code=401,
            content={"detail": "Invalid API key"},
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(RateLimitExceededError)
    async def rate_limited(request: Request, exc: RateLimitExceededError):
        return JSONResponse(
            status_code=429,
            content={"detail": "Rate limit exceeded", "retry_after": exc.retry_after},
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidSearchRequestError)
    async def invalid_search(request: Request, exc: InvalidSearchRequestError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(FilterExpressionError)
    async def invalid_filter(request: Request, exc: FilterExpressionError):
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(InvalidSourceError)
    async def invalid_source(request: Request, exc: InvalidSourceError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(SyncAlreadyRunningError)
    async def sync_running(request: Request, exc: SyncAlreadyRunningError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(EmbeddingError)
    async def embedding_failed(request: Request, exc: EmbeddingError):
        logger.error("embedding_unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(status_code=503, content={"detail": "Embedding service unavailable"})


def create_app(services: Services | None = None, start_scheduler: bool = True) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        services: Prebuilt service container (tests); built on startup when None
        start_scheduler: Start the cron scheduler with the app
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        app.state.services = services or await build_services()
        if start_scheduler:
            app.state.services.scheduler.start()

        yield

        app.state.services.scheduler.shutdown()
        await app.state.services.gate.drain()
        if owned:
            await dispose_database()

    app = FastAPI(
        title="DocMCP",
        description="Versioned documentation search with hybrid retrieval",
        version=__version__,
        lifespan=lifespan,
    )

    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)

    app.include_router(search_router)
    app.include_router(libraries_router)
    app.include_router(sync_router)
    app.include_router(health_router)

    @app.get("/")
    async def root():
        return {
            "name": "DocMCP",
            "version": __version__,
            "docs": "/docs",
        }

    return app


# Create app instance for uvicorn
app = create_app()
