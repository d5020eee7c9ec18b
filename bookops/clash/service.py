"""Caller-facing clash operations used by the REST API and the CLI.

Each function takes an explicit AuthContext, scopes the visible builds to it,
and composes collector → classifier → (resolver).  Clashes are recomputed on
every call; the only persisted state consulted is the ClashResolution log,
which annotates each clash with the latest resolution of its clash key.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field

import sqlalchemy as sa

from bookops.clash.classifier import detect_clashes, summarize
from bookops.clash.collector import collect_assignments, fetch_build_accounts, list_visible_builds
from bookops.clash.errors import BuildNotFoundError, ClashNotFoundError
from bookops.clash.resolver import resolve_clash, resolve_same_build_clash
from bookops.clash.same_build import detect_same_build_clashes
from bookops.clash.types import REOPENED_AFTER_RESOLUTION, Clash, SameBuildClash, Severity
from bookops.config import settings
from bookops.db.models import Build, ClashResolution
from bookops.db.session import get_session
from bookops.security.rbac import enforce, has_global_scope
from bookops.server.auth import AuthContext

logger = logging.getLogger(__name__)

# Audit rows scanned per query when filtering history by visible builds
RESOLUTION_PAGE_SIZE = 200


@dataclass
class ClashReport:
    clashes: list[Clash] = field(default_factory=list)
    omitted_builds: list[dict] = field(default_factory=list)
    build_count: int = 0

    @property
    def summary(self) -> dict:
        return summarize(self.clashes)


@dataclass
class SameBuildReport:
    build: Build
    clashes: list[SameBuildClash] = field(default_factory=list)

    @property
    def summary(self) -> dict:
        resolved = sum(1 for clash in self.clashes if clash.is_resolved)
        return {
            "total": len(self.clashes),
            "high_severity": sum(1 for c in self.clashes if c.severity is Severity.HIGH),
            "resolved": resolved,
            "pending": len(self.clashes) - resolved,
        }


async def _latest_resolutions(clash_keys: set[str]) -> dict[str, ClashResolution]:
    if not clash_keys:
        return {}
    async with get_session() as session:
        result = await session.execute(
            sa.select(ClashResolution)
            .where(ClashResolution.clash_key.in_(clash_keys))
            .order_by(ClashResolution.resolved_at.desc())
        )
        rows = result.scalars().all()

    latest: dict[str, ClashResolution] = {}
    for row in rows:
        latest.setdefault(row.clash_key, row)
    return latest


async def annotate_resolutions(clashes, reopen: bool = False) -> None:
    """Attach the latest resolution of each clash key to the clash in place.

    With ``reopen`` set, a clash whose key was resolved before is open again:
    a successful cross-build resolution removes the clash, so seeing it now
    means the builds drifted apart afterwards.  It keeps ``is_resolved`` False
    and carries the previous resolution plus the reopened tag.
    """
    latest = await _latest_resolutions({clash.clash_key for clash in clashes})
    for clash in clashes:
        record = latest.get(clash.clash_key)
        if record is None:
            continue
        clash.resolved_at = record.resolved_at
        clash.resolved_by = record.resolved_by
        if not reopen:
            clash.is_resolved = True
        elif REOPENED_AFTER_RESOLUTION not in clash.conflict_types:
            clash.conflict_types.append(REOPENED_AFTER_RESOLUTION)


async def detect_for_caller(
    auth: AuthContext,
    current_build_id: uuid.UUID | None = None,
) -> ClashReport:
    """Run a full detection pass over the builds visible to *auth*."""
    builds = await list_visible_builds(auth)
    if len(builds) < 2:
        logger.debug("Clash detection skipped: %d visible builds", len(builds))
        return ClashReport(build_count=len(builds))

    collection = await collect_assignments(builds, current_build_id=current_build_id)
    clashes = detect_clashes(collection.assignments_by_account, current_build_id=current_build_id)
    await annotate_resolutions(clashes, reopen=True)

    if collection.omitted_builds:
        logger.warning(
            "Clash detection for %s ran without %d build(s)",
            auth.user_id,
            len(collection.omitted_builds),
        )

    return ClashReport(
        clashes=clashes,
        omitted_builds=collection.omitted_builds,
        build_count=len(builds),
    )


async def find_clash(
    auth: AuthContext,
    sfdc_account_id: str,
    current_build_id: uuid.UUID | None = None,
) -> Clash:
    report = await detect_for_caller(auth, current_build_id=current_build_id)
    for clash in report.clashes:
        if clash.sfdc_account_id == sfdc_account_id:
            return clash
    raise ClashNotFoundError(f"No clash found for account '{sfdc_account_id}'")


async def resolve_for_caller(
    auth: AuthContext,
    sfdc_account_id: str,
    rationale: str,
    target_build_id: uuid.UUID | None = None,
    custom_owner_id: str | None = None,
    custom_owner_name: str | None = None,
) -> dict:
    """Re-detect the clash for one account and resolve it."""
    clash = await find_clash(auth, sfdc_account_id)
    return await resolve_clash(
        clash,
        rationale,
        auth,
        target_build_id=target_build_id,
        custom_owner_id=custom_owner_id,
        custom_owner_name=custom_owner_name,
    )


async def get_visible_build(auth: AuthContext, build_id: uuid.UUID) -> Build:
    async with get_session() as session:
        build = await session.get(Build, build_id)
    # 404 rather than 403 so other regions' builds are not discoverable
    if build is None or not enforce(auth, build.region, "builds", "read"):
        raise BuildNotFoundError(f"Build '{build_id}' not found")
    return build


async def same_build_report(auth: AuthContext, build_id: uuid.UUID) -> SameBuildReport:
    build = await get_visible_build(auth, build_id)
    accounts = await fetch_build_accounts(build.id)
    clashes = detect_same_build_clashes(
        build.id,
        accounts,
        high_threshold=settings.high_value_arr_threshold,
        medium_threshold=settings.sales_tools_arr_threshold,
        region=build.region,
    )
    await annotate_resolutions(clashes)
    return SameBuildReport(build=build, clashes=clashes)


async def resolve_same_build_for_caller(
    auth: AuthContext,
    build_id: uuid.UUID,
    sfdc_account_id: str,
    resolution_type: str,
    rationale: str,
    owner_id: str | None = None,
    owner_name: str | None = None,
) -> dict:
    report = await same_build_report(auth, build_id)
    for clash in report.clashes:
        if clash.sfdc_account_id == sfdc_account_id:
            return await resolve_same_build_clash(
                clash,
                resolution_type,
                rationale,
                auth,
                owner_id=owner_id,
                owner_name=owner_name,
            )
    raise ClashNotFoundError(
        f"No clash found for account '{sfdc_account_id}' in build '{build_id}'"
    )


async def list_resolutions(
    auth: AuthContext,
    sfdc_account_id: str | None = None,
    limit: int | None = None,
) -> list[ClashResolution]:
    """Resolution history, newest first, limited to builds the caller can see."""
    limit = min(limit or settings.default_resolution_limit, settings.max_resolution_limit)

    query = sa.select(ClashResolution).order_by(
        ClashResolution.resolved_at.desc(), ClashResolution.id
    )
    if sfdc_account_id:
        query = query.where(ClashResolution.sfdc_account_id == sfdc_account_id)

    if has_global_scope(auth, obj="clashes"):
        async with get_session() as session:
            result = await session.execute(query.limit(limit))
            return list(result.scalars().all())

    visible = {str(build.id) for build in await list_visible_builds(auth)}
    if not visible:
        return []

    # build_ids is a JSON list; membership is checked per page to stay dialect-neutral
    matches: list[ClashResolution] = []
    offset = 0
    async with get_session() as session:
        while len(matches) < limit:
            result = await session.execute(
                query.offset(offset).limit(RESOLUTION_PAGE_SIZE)
            )
            page = result.scalars().all()
            matches.extend(row for row in page if visible.intersection(row.build_ids or []))
            if len(page) < RESOLUTION_PAGE_SIZE:
                break
            offset += RESOLUTION_PAGE_SIZE
    return matches[:limit]
