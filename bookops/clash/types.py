"""Value types shared by the clash collector, classifier and resolver.

None of these are persisted: an AssignmentView is derived from one Account
row, and a Clash is derived from a group of AssignmentViews on every
detection pass.
"""

from __future__ import annotations

import datetime
import enum
import uuid
from dataclasses import dataclass, field


class Severity(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.HIGH: 3, Severity.MEDIUM: 2, Severity.LOW: 1}


# Conflict-type tags attached to cross-build clashes
DIFFERENT_NEW_ASSIGNMENTS = "Different New Assignments"
MIXED_ASSIGNMENT_STATE = "Mixed Assignment State"
DIFFERENT_CURRENT_OWNERS = "Different Current Owners"
REOPENED_AFTER_RESOLUTION = "Reopened After Resolution"

# Conflict type of a same-build clash
ASSIGNMENT_CONFLICT = "assignment_conflict"


@dataclass(frozen=True)
class AssignmentView:
    """One build's view of an account's ownership.

    ``effective_owner_id`` is the proposed owner when one is set, otherwise
    the current owner.
    """

    build_id: uuid.UUID
    build_name: str
    region: str | None
    current_owner_id: str | None
    current_owner_name: str | None
    new_owner_id: str | None
    new_owner_name: str | None
    effective_owner_id: str | None
    effective_owner_name: str | None
    arr: float = 0.0
    account_name: str = ""
    is_current_build: bool = False

    @property
    def has_new_owner(self) -> bool:
        return bool(self.new_owner_id)


@dataclass
class Clash:
    """A disagreement in effective ownership for one account across builds."""

    sfdc_account_id: str
    account_name: str
    arr: float
    builds: list[AssignmentView]
    severity: Severity
    conflict_types: list[str]
    is_resolved: bool = False
    resolved_at: datetime.datetime | None = None
    resolved_by: str | None = None

    @property
    def build_ids(self) -> list[uuid.UUID]:
        return [view.build_id for view in self.builds]

    @property
    def clash_key(self) -> str:
        return make_clash_key(self.sfdc_account_id, self.build_ids)

    def member(self, build_id: uuid.UUID) -> AssignmentView | None:
        for view in self.builds:
            if view.build_id == build_id:
                return view
        return None


@dataclass
class SameBuildClash:
    """An account whose current and proposed owner differ inside one build."""

    build_id: uuid.UUID
    sfdc_account_id: str
    account_name: str
    current_owner_id: str
    current_owner_name: str | None
    new_owner_id: str
    new_owner_name: str | None
    arr: float
    severity: Severity
    conflict_type: str = ASSIGNMENT_CONFLICT
    region: str | None = None
    is_resolved: bool = False
    resolved_at: datetime.datetime | None = None
    resolved_by: str | None = None

    @property
    def clash_key(self) -> str:
        return make_clash_key(self.sfdc_account_id, [self.build_id])


@dataclass
class CollectionResult:
    """Output of one collector pass.

    ``omitted_builds`` lists the builds whose account fetch failed; their
    accounts are absent from ``assignments_by_account``.
    """

    assignments_by_account: dict[str, list[AssignmentView]] = field(default_factory=dict)
    omitted_builds: list[dict] = field(default_factory=list)


def make_clash_key(sfdc_account_id: str, build_ids) -> str:
    """Stable key for a logical clash: account id plus sorted member builds."""
    members = ",".join(sorted(str(build_id) for build_id in build_ids))
    return f"{sfdc_account_id}:{members}"


def get_account_arr(
    hierarchy_bookings_arr_converted: float | None,
    calculated_arr: float | None,
    arr: float | None,
) -> float:
    """Account revenue: hierarchy bookings, then calculated, then raw ARR."""
    return hierarchy_bookings_arr_converted or calculated_arr or arr or 0.0
