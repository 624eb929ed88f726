"""
BlockTrace - Product Provenance Ledger

Main application entry point.

Every product carries its custody history: who handled it,
in what role, where, and when. Steps are appended, never edited.

Run: uvicorn blocktrace.main:app --port 8000
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from blocktrace.api.routes import router
from blocktrace.host import LedgerHost
from blocktrace.observability import (
    setup_logging,
    get_logger,
    RequestContextMiddleware,
    check_health,
    get_metrics,
)

logger = get_logger(__name__)


def create_app(host: Optional[LedgerHost] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        host: Ledger + snapshot store to serve. If None, one is built
              from configuration when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: restore on startup, snapshot on shutdown."""
        ledger_host = host or LedgerHost.from_config()

        # Restore failures abort startup
        ledger_host.start()

        app.state.host = ledger_host
        app.state.ledger = ledger_host.ledger
        app.state.snapshot_store = ledger_host.store

        logger.info(
            "Application startup complete",
            product_count=ledger_host.ledger.product_count(),
            total_steps=ledger_host.ledger.total_step_count(),
            backend=ledger_host.store.describe(),
        )

        yield

        # Save failures abort shutdown loudly
        ledger_host.on_before_shutdown()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="BlockTrace",
        description="""
## Product Provenance Ledger

An append-only record of custody steps, keyed by product.

### Core Principles

- **Append-only**: Steps cannot be edited or deleted
- **Server time**: The ledger stamps every step; caller timestamps are ignored
- **Chronological**: Histories are returned oldest first
- **Durable**: The ledger is snapshotted on shutdown and restored on startup

### Snapshot Backends

- **file**: Single file on disk (default)
- **psycopg2**: PostgreSQL row (set `DATABASE_URL` or `DATABASE_HOST`)
- **memory**: Development only

Select with `BLOCKTRACE_SNAPSHOT_DRIVER`.
        """,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(RequestContextMiddleware)
    app.include_router(router)

    @app.get("/health", tags=["System"])
    async def health():
        """
        Basic health check endpoint.

        Returns 200 if the service is running.
        For detailed health, use /health/detailed
        """
        return {"status": "healthy", "service": "blocktrace"}

    @app.get("/health/detailed", tags=["System"])
    async def health_detailed(request: Request):
        """
        Detailed health check.

        Checks:
        - Service liveness
        - Ledger totals agree with per-product histories
        - Snapshot backend

        Returns 200 if healthy, 503 if unhealthy.
        """
        health_status = check_health(
            ledger=request.app.state.ledger,
            snapshot_store=request.app.state.snapshot_store,
        )
        return JSONResponse(
            status_code=200 if health_status.healthy else 503,
            content={
                "status": "healthy" if health_status.healthy else "unhealthy",
                "checks": health_status.checks,
                "duration_ms": health_status.duration_ms,
            },
        )

    @app.get("/metrics", tags=["System"])
    async def metrics():
        """
        Get application metrics.

        Returns counters and latency percentiles.
        """
        return get_metrics().get_summary()

    return app


setup_logging()
app = create_app()
