"""
FastAPI application entry point.

This module initializes the FastAPI application, configures middleware,
and registers the API routers.
"""
import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from property_import.api.dependencies import reset_orchestrator
from property_import.api.routers import imports, jobs
from property_import.core.config import settings
from property_import.core.logging_config import configure_logging

# Ensure logging is configured before the application starts serving requests.
configure_logging(settings.log_level)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the property tables on startup and stop cleanup timers on shutdown."""
    if os.getenv("SKIP_DB_INIT") == "1":
        logger.info("SKIP_DB_INIT=1 detected; skipping database bootstrap during startup")
    else:
        from property_import.db.models import create_tables
        from property_import.db.session import get_engine

        try:
            create_tables(get_engine())
            logger.info("✓ Property tables ready")
        except Exception as e:
            logger.error("Failed to initialize database tables: %s", e)
            raise

    yield

    reset_orchestrator()


app = FastAPI(
    title="Property Import API",
    version="1.0.0",
    description="Bulk import of owners, buildings, tenants and lots from Excel or CSV uploads",
    lifespan=lifespan,
)

allowed_origins = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
allowed_origins = [origin.strip() for origin in allowed_origins]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(imports.router)
app.include_router(jobs.router)


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "service": "property-import-api",
    }
