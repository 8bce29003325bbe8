"""
PawSitters API - application factory

Holds the per-process handles (engine, session factory, metadata registry)
on app.state; routes get a request-scoped UnitOfWork through get_uow().
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from pawsitters.api.errors import LoggingMiddleware, register_exception_handlers, require_json
from pawsitters.config import Settings, get_settings
from pawsitters.database import Base, close_db_connections, create_engine, create_session_factory, init_models
from pawsitters.infrastructure.metadata import MetadataRegistry
from pawsitters.infrastructure.uow import UnitOfWork
from pawsitters.logging_config import get_logger, setup_logging

logger = get_logger(__name__)

VERSION = "1.0.0"


def create_app(settings: Settings | None = None, engine: AsyncEngine | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level, settings.log_file, settings.json_logs)

    engine = engine or create_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        await init_models(engine)
        logger.info("app_started", version=VERSION)

        yield

        await close_db_connections(engine)
        logger.info("app_stopped")

    app = FastAPI(
        title="PawSitters API",
        description="Pet-sitting marketplace core",
        version=VERSION,
        lifespan=lifespan,
        dependencies=[Depends(require_json)],
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.registry = MetadataRegistry.from_base(Base)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.allowed_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )
    app.add_middleware(LoggingMiddleware)
    register_exception_handlers(app)

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        async with request.app.state.session_factory() as session:
            await session.execute(text("SELECT 1"))
        return {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": VERSION,
        }

    return app


async def get_uow(request: Request) -> AsyncIterator[UnitOfWork]:
    """Dependency: one UnitOfWork (one transaction) per request"""
    async with UnitOfWork(request.app.state.session_factory) as uow:
        yield uow


def get_registry(request: Request) -> MetadataRegistry:
    return request.app.state.registry
