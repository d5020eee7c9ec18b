"""Same-build clash detection.

Inside a single build an account clashes with itself when both a current
owner and a proposed owner are set and they differ.  Severity is driven by
account revenue rather than by ownership shape:

    revenue > high_threshold    -> high
    revenue > medium_threshold  -> medium
    otherwise                   -> low
"""

from __future__ import annotations

import uuid

from bookops.clash.types import SameBuildClash, Severity, get_account_arr
from bookops.db.models import Account


def severity_for_arr(arr: float, high_threshold: float, medium_threshold: float) -> Severity:
    if arr > high_threshold:
        return Severity.HIGH
    if arr > medium_threshold:
        return Severity.MEDIUM
    return Severity.LOW


def detect_same_build_clashes(
    build_id: uuid.UUID,
    accounts: list[Account],
    high_threshold: float,
    medium_threshold: float,
    region: str | None = None,
) -> list[SameBuildClash]:
    """Return one SameBuildClash per top-level account whose owners disagree.

    Ordered by severity, then revenue, both descending.
    """
    clashes: list[SameBuildClash] = []
    seen: set[str] = set()

    for account in accounts:
        if not account.is_parent or account.sfdc_account_id in seen:
            continue
        if not account.owner_id or not account.new_owner_id:
            continue
        if account.owner_id == account.new_owner_id:
            continue
        seen.add(account.sfdc_account_id)

        arr = get_account_arr(
            account.hierarchy_bookings_arr_converted,
            account.calculated_arr,
            account.arr,
        )
        clashes.append(
            SameBuildClash(
                build_id=build_id,
                sfdc_account_id=account.sfdc_account_id,
                account_name=account.account_name,
                current_owner_id=account.owner_id,
                current_owner_name=account.owner_name,
                new_owner_id=account.new_owner_id,
                new_owner_name=account.new_owner_name,
                arr=arr,
                severity=severity_for_arr(arr, high_threshold, medium_threshold),
                region=region,
            )
        )

    return sorted(
        clashes,
        key=lambda clash: (-clash.severity.rank, -clash.arr, clash.sfdc_account_id),
    )
