"""Top-level FastAPI APIRouter for the BookOps REST API (v1).

Prefix:  /api/v1

Sub-routers included:
- clashes_router — GET /api/v1/clashes, /clashes/by-build-pair, /clashes/resolutions,
                   POST /api/v1/clashes/{sfdc_account_id}/resolve
- builds_router  — GET /api/v1/builds, /builds/{build_id}/clashes,
                   POST /api/v1/builds/{build_id}/clashes/{sfdc_account_id}/resolve
"""

from __future__ import annotations

from fastapi import APIRouter

from bookops.api.routes.builds import builds_router
from bookops.api.routes.clashes import clashes_router

api_router = APIRouter(prefix="/api/v1", tags=["rest-api"])

api_router.include_router(clashes_router)
api_router.include_router(builds_router)
