"""Clash classification over merged per-account assignments.

Everything in this module is a pure function of its input: no database
access, no clock, no logging side effects beyond DEBUG.  A detection pass is
``collect_assignments`` followed by ``detect_clashes``; the output is
recomputed on every read and never stored.

Clash predicate, per account:
    >= 2 builds represented
    AND (distinct non-null effective owners > 1
         OR some builds carry a proposed owner while others do not)

Severity, first match wins:
    high    distinct effective owners > 1 and a proposed owner exists somewhere
    medium  mixed proposed/unproposed state, or current owners differ with no
            proposed owner anywhere
    low     fallback — unreachable under the predicate above
"""

from __future__ import annotations

import itertools
import logging
import uuid
from dataclasses import replace

from bookops.clash.types import (
    DIFFERENT_CURRENT_OWNERS,
    DIFFERENT_NEW_ASSIGNMENTS,
    MIXED_ASSIGNMENT_STATE,
    AssignmentView,
    Clash,
    Severity,
)

logger = logging.getLogger(__name__)


def effective_owner(
    owner_id: str | None,
    owner_name: str | None,
    new_owner_id: str | None,
    new_owner_name: str | None,
) -> tuple[str | None, str | None]:
    """Return the (id, name) pair that currently governs an account.

    The proposed owner wins whenever a proposed owner id is set; the name
    travels with its id so a proposed id is never paired with the current
    owner's name.
    """
    if new_owner_id:
        return new_owner_id, new_owner_name
    return owner_id, owner_name


def classify(views: list[AssignmentView]) -> tuple[Severity, list[str]] | None:
    """Return ``(severity, conflict_types)`` for a clash, or None when consistent."""
    if len({view.build_id for view in views}) < 2:
        return None

    distinct_owners = {view.effective_owner_id for view in views if view.effective_owner_id}
    has_new = any(view.has_new_owner for view in views)
    is_mixed = has_new and any(not view.has_new_owner for view in views)
    owners_differ = len(distinct_owners) > 1

    if not owners_differ and not is_mixed:
        return None

    if has_new and owners_differ:
        return Severity.HIGH, [DIFFERENT_NEW_ASSIGNMENTS]
    if is_mixed:
        return Severity.MEDIUM, [MIXED_ASSIGNMENT_STATE]
    if owners_differ:
        return Severity.MEDIUM, [DIFFERENT_CURRENT_OWNERS]
    return Severity.LOW, []


def _order_members(views: list[AssignmentView]) -> list[AssignmentView]:
    # Current build first, then alphabetical by build name
    return sorted(views, key=lambda view: (not view.is_current_build, view.build_name, str(view.build_id)))


def sort_clashes(clashes: list[Clash]) -> list[Clash]:
    """Severity descending, then revenue descending, then account id."""
    return sorted(
        clashes,
        key=lambda clash: (-clash.severity.rank, -clash.arr, clash.sfdc_account_id),
    )


def detect_clashes(
    assignments_by_account: dict[str, list[AssignmentView]],
    current_build_id: uuid.UUID | None = None,
) -> list[Clash]:
    """Emit one Clash per account whose builds disagree on ownership.

    Args:
        assignments_by_account: Output of the collector, keyed by sfdc id.
        current_build_id:       Optional build to list first inside each clash.
                                Overrides ``is_current_build`` on the views
                                when given.

    Returns:
        Clashes ordered by severity, then account revenue, both descending.
    """
    clashes: list[Clash] = []

    for sfdc_account_id, views in assignments_by_account.items():
        result = classify(views)
        if result is None:
            continue
        severity, conflict_types = result

        if current_build_id is not None:
            views = [
                _with_current(view, view.build_id == current_build_id) for view in views
            ]
        members = _order_members(views)

        clashes.append(
            Clash(
                sfdc_account_id=sfdc_account_id,
                account_name=next((v.account_name for v in members if v.account_name), ""),
                arr=max(view.arr for view in members),
                builds=members,
                severity=severity,
                conflict_types=list(conflict_types),
            )
        )

    logger.debug(
        "Clash classifier: %d clashes from %d accounts",
        len(clashes),
        len(assignments_by_account),
    )
    return sort_clashes(clashes)


def _with_current(view: AssignmentView, is_current: bool) -> AssignmentView:
    if view.is_current_build == is_current:
        return view
    return replace(view, is_current_build=is_current)


def group_by_build_pair(clashes: list[Clash]) -> dict[tuple[uuid.UUID, uuid.UUID], list[Clash]]:
    """Group clashes under every unordered pair of builds they span.

    A clash across three builds appears under each of its three pairs.  Pair
    keys are ordered by build id string so (a, b) and (b, a) coincide.
    """
    groups: dict[tuple[uuid.UUID, uuid.UUID], list[Clash]] = {}
    for clash in clashes:
        member_ids = sorted(set(clash.build_ids), key=str)
        for pair in itertools.combinations(member_ids, 2):
            groups.setdefault(pair, []).append(clash)
    return groups


def summarize(clashes: list[Clash]) -> dict:
    """Dashboard counters for a list of clashes."""
    resolved = sum(1 for clash in clashes if clash.is_resolved)
    return {
        "total": len(clashes),
        "high_severity": sum(1 for clash in clashes if clash.severity is Severity.HIGH),
        "resolved": resolved,
        "pending": len(clashes) - resolved,
    }
