"""Build listing and same-build clash endpoints.

Endpoints:
- GET  /builds                                             — builds visible to the caller
- GET  /builds/{build_id}/clashes                          — same-build clashes
- POST /builds/{build_id}/clashes/{sfdc_account_id}/resolve — record a same-build outcome

Builds outside the caller's regions return 404, not 403, so their existence
is not disclosed.
"""

from __future__ import annotations

import datetime
import logging
import uuid as _uuid

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from bookops.api.auth import require_auth
from bookops.api.routes.clashes import ClashSummary, clash_error_to_http
from bookops.clash import service
from bookops.clash.collector import list_visible_builds
from bookops.clash.errors import ClashResolutionError
from bookops.server.auth import AuthContext

logger = logging.getLogger(__name__)

builds_router = APIRouter(prefix="/builds", tags=["builds"])


class BuildItem(BaseModel):
    id: str
    name: str
    status: str
    region: str
    owner_id: str | None
    created_at: datetime.datetime
    target_date: datetime.date | None


class BuildListResponse(BaseModel):
    items: list[BuildItem]
    total: int


class SameBuildClashItem(BaseModel):
    sfdc_account_id: str
    account_name: str
    current_owner_id: str
    current_owner_name: str | None
    new_owner_id: str
    new_owner_name: str | None
    arr: float
    severity: str
    conflict_type: str
    is_resolved: bool
    resolved_at: datetime.datetime | None
    resolved_by: str | None


class SameBuildClashResponse(BaseModel):
    build_id: str
    build_name: str
    summary: ClashSummary
    clashes: list[SameBuildClashItem]


class SameBuildResolveRequest(BaseModel):
    """``resolution_type`` is one of keep_current, keep_new, manual_review, reassign."""

    resolution_type: str
    rationale: str
    owner_id: str | None = None
    owner_name: str | None = None


class SameBuildResolveResponse(BaseModel):
    status: str
    resolution_id: str
    sfdc_account_id: str
    resolution_type: str
    owner_id: str | None
    owner_name: str | None
    builds_updated: list[str]
    resolved_at: datetime.datetime


@builds_router.get(
    "",
    response_model=BuildListResponse,
    operation_id="list_builds",
    summary="List builds visible to the caller",
)
async def list_builds(auth: AuthContext = Depends(require_auth)) -> BuildListResponse:
    builds = await list_visible_builds(auth)
    items = [
        BuildItem(
            id=str(build.id),
            name=build.name,
            status=build.status.value,
            region=build.region,
            owner_id=build.owner_id,
            created_at=build.created_at,
            target_date=build.target_date,
        )
        for build in builds
    ]
    return BuildListResponse(items=items, total=len(items))


@builds_router.get(
    "/{build_id}/clashes",
    response_model=SameBuildClashResponse,
    operation_id="list_same_build_clashes",
    summary="Accounts whose current and proposed owner differ inside one build",
)
async def list_same_build_clashes(
    build_id: _uuid.UUID,
    auth: AuthContext = Depends(require_auth),
) -> SameBuildClashResponse:
    try:
        report = await service.same_build_report(auth, build_id)
    except ClashResolutionError as exc:
        raise clash_error_to_http(exc) from exc

    return SameBuildClashResponse(
        build_id=str(report.build.id),
        build_name=report.build.name,
        summary=ClashSummary(**report.summary),
        clashes=[
            SameBuildClashItem(
                sfdc_account_id=clash.sfdc_account_id,
                account_name=clash.account_name,
                current_owner_id=clash.current_owner_id,
                current_owner_name=clash.current_owner_name,
                new_owner_id=clash.new_owner_id,
                new_owner_name=clash.new_owner_name,
                arr=clash.arr,
                severity=clash.severity.value,
                conflict_type=clash.conflict_type,
                is_resolved=clash.is_resolved,
                resolved_at=clash.resolved_at,
                resolved_by=clash.resolved_by,
            )
            for clash in report.clashes
        ],
    )


@builds_router.post(
    "/{build_id}/clashes/{sfdc_account_id}/resolve",
    response_model=SameBuildResolveResponse,
    operation_id="resolve_same_build_clash",
    summary="Record the outcome of a same-build clash",
)
async def resolve_same_build_clash_endpoint(
    build_id: _uuid.UUID,
    sfdc_account_id: str,
    body: SameBuildResolveRequest,
    auth: AuthContext = Depends(require_auth),
) -> SameBuildResolveResponse:
    try:
        result = await service.resolve_same_build_for_caller(
            auth,
            build_id,
            sfdc_account_id,
            body.resolution_type,
            body.rationale,
            owner_id=body.owner_id,
            owner_name=body.owner_name,
        )
    except ClashResolutionError as exc:
        logger.info(
            "Same-build resolution rejected for %s in %s: %s", sfdc_account_id, build_id, exc
        )
        raise clash_error_to_http(exc) from exc

    return SameBuildResolveResponse(status="resolved", **result)
