"""FastAPI application entry point for the Title Escrow Ledger.

Lifecycle:
    1. Startup: Initialize logging, database (create tables in dev mode), and
       Redis when the distributed lock backend is selected.
    2. Running: Serve the REST API on a single Uvicorn process.
    3. Shutdown: Close database and Redis connections gracefully.

Run with:
    uvicorn title_escrow.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from title_escrow.config import get_settings
from title_escrow.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info(
        "app.starting",
        env=settings.app_env,
        debug=settings.app_debug,
        lock_backend=settings.lock_backend,
        finalizer_policy=settings.finalizer_policy.value,
    )

    # 2. Initialize database
    from title_escrow.infrastructure.database.engine import close_db, init_db

    await init_db()

    # 3. Initialize Redis (only the distributed lock backend needs it)
    from title_escrow.infrastructure.redis_client import close_redis, init_redis

    if settings.lock_backend == "redis":
        await init_redis()

    if not settings.api_keys:
        logger.warning("app.no_api_keys", hint="set API_KEYS to allow mutations")

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    from title_escrow.api.deps import reset_ledger

    logger.info("app.shutting_down")
    reset_ledger()
    await close_db()
    await close_redis()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory — creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Title Escrow Ledger",
        description=(
            "Conditional multi-party escrow for unique assets. Custody moves to "
            "the buyer only when funding, inspection and approvals all hold."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from title_escrow.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from title_escrow.api.routes.escrow import router as escrow_router
    from title_escrow.api.routes.health import router as health_router
    from title_escrow.api.routes.registry import router as registry_router

    app.include_router(health_router)
    app.include_router(registry_router)
    app.include_router(escrow_router)

    return app


# The app instance used by Uvicorn
app = create_app()
