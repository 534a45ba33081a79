"""
BizIntel API: FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import Settings, get_settings
from dispatch.context import AppContext, build_context
from dispatch.dispatcher import Dispatcher

logger = structlog.get_logger()


def create_app(settings: Settings | None = None, context: AppContext | None = None) -> FastAPI:
    """Build the application. A supplied context is used as-is and not disposed on shutdown."""
    if settings is None:
        settings = context.settings if context is not None else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown events."""
        owned = getattr(app.state, "context", None) is None
        if owned:
            app.state.context = build_context(settings)
            app.state.dispatcher = Dispatcher(app.state.context)
        logger.info("api.startup", version=settings.app_version, env=settings.app_env)
        yield
        if owned:
            await app.state.context.dispose()
        logger.info("api.shutdown")

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Business intelligence over customers, sales, inventory and finance",
        lifespan=lifespan,
    )
    if context is not None:
        app.state.context = context
        app.state.dispatcher = Dispatcher(context)

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from api.v1.routers import intelligence

    app.include_router(intelligence.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for load balancers."""
        return {"status": "healthy", "version": settings.app_version}

    return app


app = create_app()
