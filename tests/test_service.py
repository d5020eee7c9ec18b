"""Tests for caller-scoped detection, resolution state and audit history."""

import uuid

import pytest
import sqlalchemy as sa

from bookops.clash import collector, service
from bookops.clash.errors import BuildNotFoundError, ClashNotFoundError
from bookops.clash.types import REOPENED_AFTER_RESOLUTION, Severity
from bookops.db.models import Account


class TestDetectForCaller:
    async def test_report_for_regional_manager(self, territory, emea_manager) -> None:
        report = await service.detect_for_caller(emea_manager)

        assert report.build_count == 2
        assert [c.sfdc_account_id for c in report.clashes] == ["001A", "001D", "001B"]
        assert report.clashes[0].severity is Severity.HIGH
        assert report.summary == {"total": 3, "high_severity": 1, "resolved": 0, "pending": 3}

    async def test_global_caller_sees_cross_region_clash(self, territory, revops) -> None:
        report = await service.detect_for_caller(revops)
        acme = next(c for c in report.clashes if c.sfdc_account_id == "001A")
        assert {v.build_id for v in acme.builds} == {b.id for b in territory.values()}

    async def test_fewer_than_two_builds_gives_empty_report(
        self, territory, na_manager
    ) -> None:
        report = await service.detect_for_caller(na_manager)
        assert report.build_count == 1
        assert report.clashes == []

    async def test_omitted_builds_surface_in_report(
        self, territory, revops, monkeypatch
    ) -> None:
        real_fetch = collector.fetch_build_accounts

        async def flaky_fetch(build_id):
            if build_id == territory["na"].id:
                raise RuntimeError("timeout")
            return await real_fetch(build_id)

        monkeypatch.setattr(collector, "fetch_build_accounts", flaky_fetch)

        report = await service.detect_for_caller(revops)
        assert [o["build_id"] for o in report.omitted_builds] == [str(territory["na"].id)]
        assert report.build_count == 3
        assert "001A" in {c.sfdc_account_id for c in report.clashes}

    async def test_find_clash_unknown_account(self, territory, emea_manager) -> None:
        with pytest.raises(ClashNotFoundError):
            await service.find_clash(emea_manager, "001C")


class TestResolutionState:
    async def test_reappearing_clash_is_open_and_tagged_reopened(
        self, db, territory, emea_manager
    ) -> None:
        await service.resolve_for_caller(
            emea_manager, "001A", "agreed", target_build_id=territory["draft"].id
        )

        # Someone edits one build again after the resolution
        async with db() as session:
            await session.execute(
                sa.update(Account)
                .where(Account.build_id == territory["alt"].id)
                .where(Account.sfdc_account_id == "001A")
                .values(new_owner_id="u3", new_owner_name="Ula Three")
            )
            await session.commit()

        report = await service.detect_for_caller(emea_manager)
        clash = next(c for c in report.clashes if c.sfdc_account_id == "001A")

        assert not clash.is_resolved
        assert clash.resolved_by == "ana"
        assert clash.resolved_at is not None
        assert REOPENED_AFTER_RESOLUTION in clash.conflict_types
        assert report.summary["resolved"] == 0
        assert report.summary["pending"] == report.summary["total"] == 3

    async def test_unresolved_clash_not_marked(self, territory, emea_manager) -> None:
        clash = await service.find_clash(emea_manager, "001D")
        assert not clash.is_resolved
        assert REOPENED_AFTER_RESOLUTION not in clash.conflict_types

    async def test_same_build_resolution_marks_clash_resolved(
        self, territory, emea_manager
    ) -> None:
        await service.resolve_same_build_for_caller(
            emea_manager, territory["draft"].id, "001A", "manual_review", "check with finance"
        )
        report = await service.same_build_report(emea_manager, territory["draft"].id)
        [clash] = report.clashes
        assert clash.is_resolved
        assert report.summary["resolved"] == 1


class TestBuildVisibility:
    async def test_other_region_build_is_not_found(self, territory, emea_manager) -> None:
        with pytest.raises(BuildNotFoundError):
            await service.same_build_report(emea_manager, territory["na"].id)

    async def test_missing_build_is_not_found(self, territory, revops) -> None:
        with pytest.raises(BuildNotFoundError):
            await service.get_visible_build(revops, uuid.uuid4())

    async def test_same_build_unknown_account(self, territory, emea_manager) -> None:
        with pytest.raises(ClashNotFoundError):
            await service.resolve_same_build_for_caller(
                emea_manager, territory["draft"].id, "001C", "keep_new", "x"
            )


class TestListResolutions:
    async def resolve_both_regions(self, territory, revops, emea_manager) -> None:
        await service.resolve_for_caller(
            emea_manager, "001D", "EMEA call", custom_owner_id="u5"
        )
        await service.resolve_for_caller(
            revops, "001A", "global call", target_build_id=territory["na"].id
        )

    async def test_global_caller_sees_all(self, territory, revops, emea_manager) -> None:
        await self.resolve_both_regions(territory, revops, emea_manager)
        rows = await service.list_resolutions(revops)
        assert {r.sfdc_account_id for r in rows} == {"001A", "001D"}

    async def test_regional_caller_sees_resolutions_touching_their_builds(
        self, territory, revops, emea_manager, na_manager
    ) -> None:
        await self.resolve_both_regions(territory, revops, emea_manager)

        emea_rows = await service.list_resolutions(emea_manager)
        assert {r.sfdc_account_id for r in emea_rows} == {"001A", "001D"}

        na_rows = await service.list_resolutions(na_manager)
        assert [r.sfdc_account_id for r in na_rows] == ["001A"]

    async def test_filter_and_limit(self, territory, revops, emea_manager) -> None:
        await self.resolve_both_regions(territory, revops, emea_manager)
        assert [r.sfdc_account_id for r in await service.list_resolutions(
            revops, sfdc_account_id="001D"
        )] == ["001D"]
        assert len(await service.list_resolutions(revops, limit=1)) == 1

    async def test_regional_history_pages_through_audit_log(
        self, territory, revops, emea_manager, na_manager, monkeypatch
    ) -> None:
        monkeypatch.setattr(service, "RESOLUTION_PAGE_SIZE", 1)
        await self.resolve_both_regions(territory, revops, emea_manager)

        # Newest row touches NA; the older EMEA-only row sits on the next page
        assert [r.sfdc_account_id for r in await service.list_resolutions(emea_manager)] == [
            "001A",
            "001D",
        ]
        assert [r.sfdc_account_id for r in await service.list_resolutions(na_manager)] == [
            "001A"
        ]
        assert len(await service.list_resolutions(emea_manager, limit=1)) == 1

    async def test_caller_without_region_sees_nothing(
        self, territory, revops, emea_manager, unscoped_manager
    ) -> None:
        await self.resolve_both_regions(territory, revops, emea_manager)
        assert await service.list_resolutions(unscoped_manager) == []
