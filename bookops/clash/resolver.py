"""Clash resolution: propagate one owner to every build holding an account.

resolve_clash() takes a detected Clash and an operator's choice (either the
assignment of one member build, or a custom owner) and writes that owner as
the proposed owner on the account row of every member build, then appends a
ClashResolution audit row.

Outcome vocabulary (``resolution_type`` on the audit row):
  build          — the winning build's effective owner is applied everywhere
  custom         — an operator-supplied owner is applied everywhere
  keep_current   — same-build: proposed owner cleared, current owner governs
  keep_new       — same-build: proposed owner accepted as is
  manual_review  — same-build: recorded for follow-up, no data change
  reassign       — same-build: a different proposed owner is written

Atomicity:
  Every account update and the audit insert share one transaction.  If any
  update fails, or a member row has disappeared since detection, the whole
  transaction rolls back and ResolutionWriteError is raised: no build is
  left with the new owner while another keeps the old one, and no audit row
  is written.

Known limitation:
  There is no lock around a resolution.  Two operators resolving the same
  account concurrently both succeed; the later commit wins at the row level
  and both audit rows are kept.
"""

from __future__ import annotations

import datetime
import logging
import uuid

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from bookops.clash.errors import (
    ClashResolutionError,
    ResolutionNotPermittedError,
    ResolutionPreconditionError,
    ResolutionWriteError,
)
from bookops.clash.types import Clash, SameBuildClash
from bookops.db.models import Account, ClashResolution
from bookops.db.session import get_session
from bookops.security.rbac import enforce
from bookops.server.auth import AuthContext

logger = logging.getLogger(__name__)

RESOLUTION_BUILD = "build"
RESOLUTION_CUSTOM = "custom"

KEEP_CURRENT = "keep_current"
KEEP_NEW = "keep_new"
MANUAL_REVIEW = "manual_review"
REASSIGN = "reassign"

SAME_BUILD_RESOLUTION_TYPES = frozenset({KEEP_CURRENT, KEEP_NEW, MANUAL_REVIEW, REASSIGN})


def _require_rationale(rationale: str | None) -> str:
    cleaned = (rationale or "").strip()
    if not cleaned:
        raise ResolutionPreconditionError("A resolution rationale is required")
    return cleaned


def _require_permission(auth: AuthContext, regions) -> None:
    for region in sorted({r or "" for r in regions}):
        if not enforce(auth, region, "clashes", "resolve"):
            raise ResolutionNotPermittedError(
                f"Role {auth.role.value} may not resolve clashes in region '{region}'"
            )


async def _apply_owner(
    session: AsyncSession,
    build_id: uuid.UUID,
    sfdc_account_id: str,
    owner_id: str | None,
    owner_name: str | None,
    now: datetime.datetime,
) -> None:
    """Set the proposed owner on one build's top-level row(s) for an account."""
    result = await session.execute(
        sa.update(Account)
        .where(Account.build_id == build_id)
        .where(Account.sfdc_account_id == sfdc_account_id)
        .where(Account.is_parent.is_(True))
        .values(new_owner_id=owner_id, new_owner_name=owner_name, updated_at=now)
    )
    if result.rowcount == 0:
        raise ResolutionWriteError(
            f"Account {sfdc_account_id} no longer exists in build {build_id}"
        )


async def _write_resolution(
    updates: list[uuid.UUID],
    sfdc_account_id: str,
    owner_id: str | None,
    owner_name: str | None,
    record: ClashResolution,
) -> None:
    """Apply the owner to every build in *updates* and insert *record*, atomically."""
    try:
        async with get_session() as session:
            async with session.begin():
                for build_id in updates:
                    await _apply_owner(
                        session, build_id, sfdc_account_id, owner_id, owner_name, record.resolved_at
                    )
                session.add(record)
    except ClashResolutionError:
        logger.error(
            "Clash resolver: resolution of %s rolled back, member row missing",
            sfdc_account_id,
        )
        raise
    except SQLAlchemyError as exc:
        logger.error(
            "Clash resolver: resolution of %s rolled back: %s",
            sfdc_account_id,
            exc,
        )
        raise ResolutionWriteError() from exc


async def resolve_clash(
    clash: Clash,
    rationale: str,
    auth: AuthContext,
    target_build_id: uuid.UUID | None = None,
    custom_owner_id: str | None = None,
    custom_owner_name: str | None = None,
) -> dict:
    """Apply one owner to every member build of a cross-build clash.

    Exactly one of ``target_build_id`` or ``custom_owner_id`` must be given.

    Args:
        clash:             The clash, as returned by the latest detection pass.
        rationale:         Free-text justification; must be non-empty.
        auth:              Caller identity, recorded as ``resolved_by``.
        target_build_id:   Member build whose effective owner wins.
        custom_owner_id:   Owner to apply instead of any member's assignment.
        custom_owner_name: Display name for ``custom_owner_id``.

    Returns:
        Dict with resolution_id, sfdc_account_id, owner_id, owner_name,
        builds_updated (list of build id strings) and resolved_at.

    Raises:
        ResolutionPreconditionError: Bad input; nothing was written.
        ResolutionNotPermittedError: Caller may not resolve in a member region.
        ResolutionWriteError:        An update failed; everything rolled back.
    """
    cleaned_rationale = _require_rationale(rationale)
    custom_owner_id = (custom_owner_id or "").strip() or None

    if target_build_id is not None and custom_owner_id is not None:
        raise ResolutionPreconditionError(
            "Choose either a winning build or a custom owner, not both"
        )

    if target_build_id is not None:
        winner = clash.member(target_build_id)
        if winner is None:
            raise ResolutionPreconditionError(
                f"Build {target_build_id} is not part of the clash for {clash.sfdc_account_id}"
            )
        if not winner.effective_owner_id:
            raise ResolutionPreconditionError(
                f"Build {winner.build_name} has no owner for {clash.sfdc_account_id}"
            )
        owner_id, owner_name = winner.effective_owner_id, winner.effective_owner_name
        resolution_type = RESOLUTION_BUILD
        description = f"Use assignment from build: {winner.build_name} ({winner.build_id})"
    elif custom_owner_id is not None:
        owner_id, owner_name = custom_owner_id, custom_owner_name
        resolution_type = RESOLUTION_CUSTOM
        description = f"Custom assignment: {custom_owner_name or custom_owner_id}"
    else:
        raise ResolutionPreconditionError("A winning build or a custom owner is required")

    _require_permission(auth, (view.region for view in clash.builds))

    now = datetime.datetime.now(datetime.timezone.utc)
    record = ClashResolution(
        id=uuid.uuid4(),
        clash_key=clash.clash_key,
        sfdc_account_id=clash.sfdc_account_id,
        account_name=clash.account_name,
        build_id=None,
        build_ids=[str(build_id) for build_id in clash.build_ids],
        resolution_type=resolution_type,
        proposed_resolution=description,
        resolution_rationale=cleaned_rationale,
        resolved_owner_id=owner_id,
        resolved_owner_name=owner_name,
        previous_assignments=[
            {
                "build_id": str(view.build_id),
                "owner_id": view.current_owner_id,
                "new_owner_id": view.new_owner_id,
                "new_owner_name": view.new_owner_name,
            }
            for view in clash.builds
        ],
        resolved_by=auth.user_id,
        resolved_at=now,
    )

    await _write_resolution(clash.build_ids, clash.sfdc_account_id, owner_id, owner_name, record)

    logger.info(
        "Clash resolved: account=%s owner=%s builds=%d type=%s by=%s",
        clash.sfdc_account_id,
        owner_id,
        len(clash.builds),
        resolution_type,
        auth.user_id,
    )
    return {
        "resolution_id": str(record.id),
        "sfdc_account_id": clash.sfdc_account_id,
        "owner_id": owner_id,
        "owner_name": owner_name,
        "builds_updated": [str(build_id) for build_id in clash.build_ids],
        "resolved_at": now,
    }


async def resolve_same_build_clash(
    clash: SameBuildClash,
    resolution_type: str,
    rationale: str,
    auth: AuthContext,
    owner_id: str | None = None,
    owner_name: str | None = None,
) -> dict:
    """Record the outcome for a current-vs-proposed disagreement inside one build.

    ``keep_current`` clears the proposed owner, ``reassign`` writes ``owner_id``
    as the new proposed owner; ``keep_new`` and ``manual_review`` only write
    the audit row.
    """
    cleaned_rationale = _require_rationale(rationale)
    if resolution_type not in SAME_BUILD_RESOLUTION_TYPES:
        raise ResolutionPreconditionError(f"Unknown resolution type: {resolution_type!r}")

    owner_id = (owner_id or "").strip() or None
    updates: list[uuid.UUID] = []

    if resolution_type == KEEP_CURRENT:
        final_id, final_name = None, None
        updates = [clash.build_id]
        description = f"Keep current owner: {clash.current_owner_name or clash.current_owner_id}"
    elif resolution_type == REASSIGN:
        if owner_id is None:
            raise ResolutionPreconditionError("Reassignment requires an owner")
        final_id, final_name = owner_id, owner_name
        updates = [clash.build_id]
        description = f"Reassign to: {owner_name or owner_id}"
    elif resolution_type == KEEP_NEW:
        final_id, final_name = clash.new_owner_id, clash.new_owner_name
        description = f"Apply new assignment: {clash.new_owner_name or clash.new_owner_id}"
    else:
        final_id, final_name = None, None
        description = "Requires manual review"

    _require_permission(auth, [clash.region])

    now = datetime.datetime.now(datetime.timezone.utc)
    record = ClashResolution(
        id=uuid.uuid4(),
        clash_key=clash.clash_key,
        sfdc_account_id=clash.sfdc_account_id,
        account_name=clash.account_name,
        build_id=clash.build_id,
        build_ids=[str(clash.build_id)],
        resolution_type=resolution_type,
        proposed_resolution=description,
        resolution_rationale=cleaned_rationale,
        resolved_owner_id=final_id,
        resolved_owner_name=final_name,
        previous_assignments=[
            {
                "build_id": str(clash.build_id),
                "owner_id": clash.current_owner_id,
                "new_owner_id": clash.new_owner_id,
                "new_owner_name": clash.new_owner_name,
            }
        ],
        resolved_by=auth.user_id,
        resolved_at=now,
    )

    await _write_resolution(updates, clash.sfdc_account_id, final_id, final_name, record)

    logger.info(
        "Same-build clash resolved: build=%s account=%s type=%s by=%s",
        clash.build_id,
        clash.sfdc_account_id,
        resolution_type,
        auth.user_id,
    )
    return {
        "resolution_id": str(record.id),
        "sfdc_account_id": clash.sfdc_account_id,
        "resolution_type": resolution_type,
        "owner_id": final_id,
        "owner_name": final_name,
        "builds_updated": [str(build_id) for build_id in updates],
        "resolved_at": now,
    }
