"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Lifespan manager — table creation, background jobs, engine cleanup
  2. CORS middleware — allows frontend origins to make cross-origin requests
  3. Exception handlers — maps domain errors to HTTP responses
  4. Router registration — mounts all API endpoint groups

Running locally:
    uvicorn app.main:app --reload

The --reload flag watches for file changes and restarts automatically,
which is ideal for development but should not be used in production.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app import listeners, models  # noqa: F401  (register event listeners and tables)
from app.config import settings
from app.database import Base, engine
from app.exceptions import register_exception_handlers
from app.logging_config import configure_logging
from app.routers import (
    accounts,
    balance_query,
    balance_snapshots,
    bank_link,
    dashboard,
    exchange_rates,
    transactions,
    user,
)
from app.scheduler import scheduler


configure_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
      Creates all database tables if they don't exist and starts the
      background jobs when SCHEDULER_ENABLED is set.

    Shutdown:
      Stops the jobs and disposes of the database engine.
    """
    # --- Startup ---
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    if settings.SCHEDULER_ENABLED:
        scheduler.start()
    logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)
    yield
    # --- Shutdown ---
    if scheduler.running:
        await scheduler.stop()
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Personal finance API: linked and manual accounts, balance history, and multi-currency net worth",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(user.router, prefix="/user", tags=["User"])
app.include_router(accounts.router, prefix="/accounts", tags=["Accounts"])
app.include_router(balance_snapshots.router, prefix="/balance-snapshots", tags=["Balance Snapshots"])
app.include_router(transactions.router, prefix="/transactions", tags=["Transactions"])
app.include_router(exchange_rates.router, prefix="/exchange-rates", tags=["Exchange Rates"])
app.include_router(balance_query.router, prefix="/balance-query", tags=["Balance Query"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["Dashboard"])
app.include_router(bank_link.router, prefix="/bank-link", tags=["Bank Link"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness probe for deployments."""
    return {"status": "ok", "version": settings.APP_VERSION}
