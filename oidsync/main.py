"""OID Sync — FastAPI Application Entry Point.

Keeps the local OID catalog synchronized with the HLI group members API.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from oidsync.database import init_db, test_connection
from oidsync.scheduler.jobs import start_scheduler, stop_scheduler
from oidsync.api.sync_routes import router as sync_router
from oidsync.api.oid_routes import router as oid_router
from oidsync.api.scheduler_routes import router as scheduler_router
from oidsync.core.logging import get_logger

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 OID Sync starting up...")
    db_ok = test_connection()
    if db_ok:
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected, sync runs will fail until it is")
    start_scheduler()
    yield
    stop_scheduler()
    logger.info("OID Sync shut down")


app = FastAPI(
    title="OID Sync",
    description="Synchronizes locally tracked code-system OIDs with the HLI lookup service.",
    version="1.0.0",
    lifespan=lifespan,
)

# Routers
app.include_router(sync_router)
app.include_router(oid_router)
app.include_router(scheduler_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    from oidsync.scheduler.jobs import scheduler

    return {
        "status": "healthy",
        "service": "oidsync",
        "version": "1.0.0",
        "scheduler_running": scheduler.running,
    }
