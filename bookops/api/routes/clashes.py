"""Cross-build clash REST endpoints for the BookOps dashboard.

Endpoints:
- GET  /clashes                            — detection report for the caller
- GET  /clashes/by-build-pair              — same report grouped by build pair
- GET  /clashes/resolutions                — resolution audit history
- POST /clashes/{sfdc_account_id}/resolve  — apply one owner across builds

Security:
- All endpoints require a JWT or API key via the require_auth dependency
- Visible builds are always derived from the authenticated caller's role and
  region, never from query params

Failure mapping:
- ResolutionPreconditionError → 422 (nothing written)
- ResolutionNotPermittedError → 403
- ClashNotFoundError / BuildNotFoundError → 404
- ResolutionWriteError → 500 "Failed to resolve clash" (rolled back)
"""

from __future__ import annotations

import datetime
import logging
import uuid as _uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from bookops.api.auth import require_auth
from bookops.clash import service
from bookops.clash.classifier import group_by_build_pair
from bookops.clash.errors import (
    BuildNotFoundError,
    ClashNotFoundError,
    ClashResolutionError,
    ResolutionNotPermittedError,
    ResolutionPreconditionError,
    ResolutionWriteError,
)
from bookops.clash.types import AssignmentView, Clash
from bookops.server.auth import AuthContext

logger = logging.getLogger(__name__)

clashes_router = APIRouter(prefix="/clashes", tags=["clashes"])


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class AssignmentItem(BaseModel):
    """One build's assignment inside a clash."""

    build_id: str
    build_name: str
    region: str | None
    current_owner_id: str | None
    current_owner_name: str | None
    new_owner_id: str | None
    new_owner_name: str | None
    effective_owner_id: str | None
    effective_owner_name: str | None
    is_current_build: bool

    @classmethod
    def from_view(cls, view: AssignmentView) -> "AssignmentItem":
        return cls(
            build_id=str(view.build_id),
            build_name=view.build_name,
            region=view.region,
            current_owner_id=view.current_owner_id,
            current_owner_name=view.current_owner_name,
            new_owner_id=view.new_owner_id,
            new_owner_name=view.new_owner_name,
            effective_owner_id=view.effective_owner_id,
            effective_owner_name=view.effective_owner_name,
            is_current_build=view.is_current_build,
        )


class ClashItem(BaseModel):
    sfdc_account_id: str
    account_name: str
    arr: float
    severity: str
    conflict_types: list[str]
    builds: list[AssignmentItem]
    is_resolved: bool
    resolved_at: datetime.datetime | None
    resolved_by: str | None

    @classmethod
    def from_clash(cls, clash: Clash) -> "ClashItem":
        return cls(
            sfdc_account_id=clash.sfdc_account_id,
            account_name=clash.account_name,
            arr=clash.arr,
            severity=clash.severity.value,
            conflict_types=list(clash.conflict_types),
            builds=[AssignmentItem.from_view(view) for view in clash.builds],
            is_resolved=clash.is_resolved,
            resolved_at=clash.resolved_at,
            resolved_by=clash.resolved_by,
        )


class ClashSummary(BaseModel):
    total: int
    high_severity: int
    resolved: int
    pending: int


class OmittedBuild(BaseModel):
    build_id: str
    build_name: str
    error: str


class ClashListResponse(BaseModel):
    """Response body for GET /clashes."""

    build_count: int
    summary: ClashSummary
    clashes: list[ClashItem]
    omitted_builds: list[OmittedBuild]


class BuildPairGroup(BaseModel):
    build_ids: list[str]
    build_names: list[str]
    clashes: list[ClashItem]


class BuildPairResponse(BaseModel):
    """Response body for GET /clashes/by-build-pair."""

    groups: list[BuildPairGroup]
    omitted_builds: list[OmittedBuild]


class ResolveRequest(BaseModel):
    """Request body for POST /clashes/{sfdc_account_id}/resolve.

    Give either ``target_build_id`` (that build's effective owner wins) or
    ``custom_owner_id`` (an owner outside the clash).
    """

    rationale: str
    target_build_id: _uuid.UUID | None = None
    custom_owner_id: str | None = None
    custom_owner_name: str | None = None


class ResolveResponse(BaseModel):
    status: str
    resolution_id: str
    sfdc_account_id: str
    owner_id: str | None
    owner_name: str | None
    builds_updated: list[str]
    resolved_at: datetime.datetime


class ResolutionItem(BaseModel):
    id: str
    sfdc_account_id: str
    account_name: str | None
    build_ids: list[str]
    resolution_type: str
    proposed_resolution: str
    resolution_rationale: str
    resolved_owner_id: str | None
    resolved_owner_name: str | None
    resolved_by: str
    resolved_at: datetime.datetime


class ResolutionListResponse(BaseModel):
    items: list[ResolutionItem]
    total: int


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------


def clash_error_to_http(exc: ClashResolutionError) -> HTTPException:
    """Translate a clash-layer exception into the matching HTTP error."""
    if isinstance(exc, ResolutionPreconditionError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, ResolutionNotPermittedError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, (ClashNotFoundError, BuildNotFoundError)):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ResolutionWriteError):
        return HTTPException(status_code=500, detail="Failed to resolve clash")
    return HTTPException(status_code=500, detail=str(exc))


def _omitted(report: service.ClashReport) -> list[OmittedBuild]:
    return [OmittedBuild(**entry) for entry in report.omitted_builds]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@clashes_router.get(
    "",
    response_model=ClashListResponse,
    operation_id="list_clashes",
    summary="Detect ownership clashes across the caller's builds",
    description=(
        "Recomputes clashes over every build visible to the caller. "
        "Ordered by severity, then account ARR. Builds whose accounts could "
        "not be fetched are listed in omitted_builds instead of failing the call."
    ),
)
async def list_clashes(
    current_build_id: Annotated[
        _uuid.UUID | None, Query(description="Build to list first inside each clash")
    ] = None,
    auth: AuthContext = Depends(require_auth),
) -> ClashListResponse:
    report = await service.detect_for_caller(auth, current_build_id=current_build_id)
    return ClashListResponse(
        build_count=report.build_count,
        summary=ClashSummary(**report.summary),
        clashes=[ClashItem.from_clash(clash) for clash in report.clashes],
        omitted_builds=_omitted(report),
    )


@clashes_router.get(
    "/by-build-pair",
    response_model=BuildPairResponse,
    operation_id="list_clashes_by_build_pair",
    summary="Clashes grouped by the pair of builds they span",
)
async def list_clashes_by_build_pair(
    auth: AuthContext = Depends(require_auth),
) -> BuildPairResponse:
    report = await service.detect_for_caller(auth)
    groups = []
    for (first, second), clashes in group_by_build_pair(report.clashes).items():
        names = {view.build_id: view.build_name for view in clashes[0].builds}
        groups.append(
            BuildPairGroup(
                build_ids=[str(first), str(second)],
                build_names=[names.get(first, ""), names.get(second, "")],
                clashes=[ClashItem.from_clash(clash) for clash in clashes],
            )
        )
    groups.sort(key=lambda group: -len(group.clashes))
    return BuildPairResponse(groups=groups, omitted_builds=_omitted(report))


@clashes_router.get(
    "/resolutions",
    response_model=ResolutionListResponse,
    operation_id="list_clash_resolutions",
    summary="Resolution audit history",
)
async def list_clash_resolutions(
    sfdc_account_id: Annotated[str | None, Query(description="Filter by account")] = None,
    limit: Annotated[int, Query(ge=1, le=500, description="Max results")] = 50,
    auth: AuthContext = Depends(require_auth),
) -> ResolutionListResponse:
    rows = await service.list_resolutions(auth, sfdc_account_id=sfdc_account_id, limit=limit)
    items = [
        ResolutionItem(
            id=str(row.id),
            sfdc_account_id=row.sfdc_account_id,
            account_name=row.account_name,
            build_ids=list(row.build_ids or []),
            resolution_type=row.resolution_type,
            proposed_resolution=row.proposed_resolution,
            resolution_rationale=row.resolution_rationale,
            resolved_owner_id=row.resolved_owner_id,
            resolved_owner_name=row.resolved_owner_name,
            resolved_by=row.resolved_by,
            resolved_at=row.resolved_at,
        )
        for row in rows
    ]
    return ResolutionListResponse(items=items, total=len(items))


@clashes_router.post(
    "/{sfdc_account_id}/resolve",
    response_model=ResolveResponse,
    operation_id="resolve_clash",
    summary="Resolve a clash by applying one owner to every member build",
    description=(
        "Re-detects the clash for the account, then writes the chosen owner as "
        "the proposed owner in every member build and appends an audit record, "
        "all in one transaction. Returns 404 if the account has no clash among "
        "the caller's builds."
    ),
)
async def resolve_clash_endpoint(
    sfdc_account_id: str,
    body: ResolveRequest,
    auth: AuthContext = Depends(require_auth),
) -> ResolveResponse:
    try:
        result = await service.resolve_for_caller(
            auth,
            sfdc_account_id,
            body.rationale,
            target_build_id=body.target_build_id,
            custom_owner_id=body.custom_owner_id,
            custom_owner_name=body.custom_owner_name,
        )
    except ClashResolutionError as exc:
        logger.info("Clash resolution rejected for %s: %s", sfdc_account_id, exc)
        raise clash_error_to_http(exc) from exc

    return ResolveResponse(status="resolved", **result)
