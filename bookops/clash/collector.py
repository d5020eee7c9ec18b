"""Assignment collector: per-build account ownership, merged by account id.

A detection pass starts here.  The collector:
  1. Resolves which builds the caller may see (global roles see every
     region, everyone else only their own).
  2. Fetches the top-level accounts of every build concurrently, one
     session per build, joined with asyncio.gather.
  3. Merges the rows into ``sfdc_account_id -> [AssignmentView, ...]``.

Failure policy is best-effort: a build whose fetch raises is logged, listed
in ``CollectionResult.omitted_builds`` and left out.  The remaining builds
are still merged and classified.
"""

from __future__ import annotations

import asyncio
import logging
import uuid

import sqlalchemy as sa

from bookops.clash.classifier import effective_owner
from bookops.clash.types import AssignmentView, CollectionResult, get_account_arr
from bookops.db.models import Account, Build
from bookops.db.session import get_session
from bookops.security.rbac import has_global_scope
from bookops.server.auth import AuthContext

logger = logging.getLogger(__name__)


async def list_visible_builds(auth: AuthContext) -> list[Build]:
    """Return the builds the caller may run clash detection over, newest first."""
    query = sa.select(Build).order_by(Build.created_at.desc())

    if not has_global_scope(auth):
        if not auth.region:
            logger.info(
                "Caller %s (%s) has no region and no global scope; no builds visible",
                auth.user_id,
                auth.role.value,
            )
            return []
        query = query.where(Build.region == auth.region)

    async with get_session() as session:
        result = await session.execute(query)
        return list(result.scalars().all())


async def fetch_build_accounts(build_id: uuid.UUID) -> list[Account]:
    """Fetch the top-level (parent) account rows of one build."""
    async with get_session() as session:
        result = await session.execute(
            sa.select(Account).where(
                Account.build_id == build_id,
                Account.is_parent.is_(True),
            )
        )
        return list(result.scalars().all())


def build_assignment_view(
    account: Account,
    build: Build,
    current_build_id: uuid.UUID | None = None,
) -> AssignmentView:
    owner_id, owner_name = effective_owner(
        account.owner_id,
        account.owner_name,
        account.new_owner_id,
        account.new_owner_name,
    )
    return AssignmentView(
        build_id=build.id,
        build_name=build.name,
        region=build.region,
        current_owner_id=account.owner_id,
        current_owner_name=account.owner_name,
        new_owner_id=account.new_owner_id,
        new_owner_name=account.new_owner_name,
        effective_owner_id=owner_id,
        effective_owner_name=owner_name,
        arr=get_account_arr(
            account.hierarchy_bookings_arr_converted,
            account.calculated_arr,
            account.arr,
        ),
        account_name=account.account_name,
        is_current_build=current_build_id is not None and build.id == current_build_id,
    )


async def collect_assignments(
    builds: list[Build],
    current_build_id: uuid.UUID | None = None,
) -> CollectionResult:
    """Fetch every build's accounts concurrently and merge them by account id.

    Args:
        builds:           Builds to scan. Duplicate ids are scanned once.
        current_build_id: Build the caller is looking at, if any; its views
                          are flagged ``is_current_build``.

    Returns:
        CollectionResult whose per-account lists never repeat a build id.
    """
    unique_builds: list[Build] = []
    seen: set[uuid.UUID] = set()
    for build in builds:
        if build.id not in seen:
            seen.add(build.id)
            unique_builds.append(build)

    results = await asyncio.gather(
        *(fetch_build_accounts(build.id) for build in unique_builds),
        return_exceptions=True,
    )

    collection = CollectionResult()
    for build, result in zip(unique_builds, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, Exception):
            logger.warning(
                "Clash collector: account fetch failed for build %s (%s), omitting: %s",
                build.id,
                build.name,
                result,
            )
            collection.omitted_builds.append(
                {"build_id": str(build.id), "build_name": build.name, "error": str(result)}
            )
            continue

        for account in result:
            views = collection.assignments_by_account.setdefault(account.sfdc_account_id, [])
            if any(view.build_id == build.id for view in views):
                # Duplicate parent row inside one build: first row wins
                continue
            views.append(build_assignment_view(account, build, current_build_id))

    logger.debug(
        "Clash collector: %d accounts across %d builds (%d omitted)",
        len(collection.assignments_by_account),
        len(unique_builds),
        len(collection.omitted_builds),
    )
    return collection
