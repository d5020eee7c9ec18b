"""BookOps HTTP server entry point.

Lifespan loads the RBAC enforcer at startup so the first request does not
pay the policy-load cost, and disposes the database engine on shutdown.

Entry point:
    uvicorn bookops.server.main:app --host 0.0.0.0 --port 8000

Or run directly:
    python -m bookops.server.main
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from bookops.api.router import api_router
from bookops.config import settings
from bookops.db.session import engine
from bookops.security.rbac import init_enforcer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup: configure logging and load RBAC policies. Shutdown: dispose engine."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("BookOps server starting up...")

    logger.info("Loading RBAC enforcer...")
    init_enforcer()
    logger.info("RBAC enforcer ready.")

    yield

    logger.info("BookOps server shutting down — disposing database engine...")
    await engine.dispose()
    logger.info("Database engine disposed.")


app = FastAPI(
    title="BookOps",
    description="Clash detection and resolution for sales-territory builds.",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(api_router)


@app.get("/health", tags=["ops"])
async def health() -> dict:
    """Liveness probe."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
