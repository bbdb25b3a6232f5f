"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from collections.abc import AsyncIterator

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from deckster import __version__
from deckster.config import settings
from deckster.database import close_db, init_db
from deckster.errors import register_exception_handlers
from deckster.middleware import route_gate
from deckster.api import (
    admin,
    auth,
    billing,
    health,
    messages,
    presentations,
    sessions,
    uploads,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.add_log_level,
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager."""
    # Startup
    logger.info("Starting Deckster API", environment=settings.environment)
    await init_db()

    yield

    # Shutdown
    logger.info("Shutting down Deckster API")
    await close_db()


app = FastAPI(
    title="Deckster API",
    description="Session, upload and billing backend for the Deckster presentation builder",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

register_exception_handlers(app)

app.middleware("http")(route_gate)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, prefix=settings.api_prefix, tags=["Auth"])
app.include_router(sessions.router, prefix=settings.api_prefix, tags=["Sessions"])
app.include_router(messages.router, prefix=settings.api_prefix, tags=["Messages"])
app.include_router(uploads.router, prefix=settings.api_prefix, tags=["Uploads"])
app.include_router(presentations.router, prefix=settings.api_prefix, tags=["Presentations"])
app.include_router(billing.router, prefix=settings.api_prefix, tags=["Billing"])
app.include_router(admin.router, prefix=settings.api_prefix, tags=["Admin"])


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {
        "name": "Deckster API",
        "version": __version__,
        "docs": "/docs",
    }
