import logging
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from app.database import DatabaseStorage
from app.routes import analyze, health, profiles
from app.services.analyzer import AnalysisOrchestrator
from app.services.profile_store import KeyValueStorage, ProfileStore
from app.services.profiles import ProfileManager

logger = logging.getLogger(__name__)


def create_app(
    storage: Optional[KeyValueStorage] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    default_api_key: Optional[str] = None,
) -> FastAPI:
    """
    Build the API application.

    Args:
        storage: Profile storage backend; SQLite at settings.database_url if omitted
        transport: httpx transport for outbound LLM calls (tests pass a mock)
        default_api_key: Credential for the default profile; settings.default_api_key if omitted
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup and shutdown lifecycle events"""
        backend = storage if storage is not None else DatabaseStorage()

        manager = ProfileManager(ProfileStore(backend), default_api_key=default_api_key)
        manager.ensure_default_profile()
        app.state.profile_manager = manager
        app.state.orchestrator = AnalysisOrchestrator(manager, transport=transport)
        logger.info(f"Profiles loaded: {len(manager.get_profiles())}")

        yield

        # Shutdown: release database connections we opened ourselves
        if storage is None:
            backend.close()

    app = FastAPI(
        title="Startup Analyzer API",
        description="LLM analysis of Spring Boot startup reports",
        version="1.0.0",
        lifespan=lifespan,
    )

    # CORS middleware (the dashboard is often opened from a different origin)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(profiles.router, prefix="/api", tags=["profiles"])
    app.include_router(analyze.router, prefix="/api", tags=["analyze"])
    return app


app = create_app()
