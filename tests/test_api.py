"""Tests for the REST endpoints.

Requests go through httpx's ASGI transport so the app shares the test's
event loop and database fixture.  Authentication is exercised with real JWTs;
the dependency override is used where only the route logic matters.
"""

import uuid

import httpx
import pytest
from fastapi.testclient import TestClient

from bookops.api.auth import require_auth
from bookops.clash import resolver, service
from bookops.clash.errors import ResolutionWriteError
from bookops.db.models import UserRole
from bookops.security.api_key import create_api_key
from bookops.server.auth import AuthContext, create_token
from bookops.server.main import app


def bearer(user_id: str, role: UserRole, region: str | None = None) -> dict:
    return {"Authorization": f"Bearer {create_token(user_id, role, region)}"}


EMEA = bearer("ana", UserRole.SLM, "EMEA")
GLOBAL = bearer("rita", UserRole.REVOPS)


@pytest.fixture
async def client(db):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


class TestHealthAndAuth:
    def test_health(self) -> None:
        with TestClient(app) as client:
            response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_missing_credentials(self) -> None:
        with TestClient(app) as client:
            response = client.get("/api/v1/clashes")
        assert response.status_code == 401

    async def test_garbage_token(self, client) -> None:
        response = await client.get(
            "/api/v1/clashes", headers={"Authorization": "Bearer nope"}
        )
        assert response.status_code == 401

    async def test_api_key_header(self, client, territory) -> None:
        raw, _ = await create_api_key("ana", UserRole.SLM, "EMEA")
        response = await client.get("/api/v1/builds", headers={"X-API-Key": raw})
        assert response.status_code == 200
        assert response.json()["total"] == 2


class TestClashEndpoints:
    async def test_list_clashes(self, client, territory) -> None:
        response = await client.get("/api/v1/clashes", headers=EMEA)

        assert response.status_code == 200
        body = response.json()
        assert body["build_count"] == 2
        assert body["summary"] == {"total": 3, "high_severity": 1, "resolved": 0, "pending": 3}
        assert body["omitted_builds"] == []

        acme = body["clashes"][0]
        assert acme["sfdc_account_id"] == "001A"
        assert acme["severity"] == "high"
        assert acme["conflict_types"] == ["Different New Assignments"]
        assert {b["effective_owner_id"] for b in acme["builds"]} == {"u2", "u3"}

    async def test_current_build_listed_first(self, client, territory) -> None:
        current = territory["draft"].id
        response = await client.get(
            "/api/v1/clashes", params={"current_build_id": str(current)}, headers=EMEA
        )
        for clash in response.json()["clashes"]:
            assert clash["builds"][0]["build_id"] == str(current)
            assert clash["builds"][0]["is_current_build"] is True

    async def test_by_build_pair(self, client, territory) -> None:
        response = await client.get("/api/v1/clashes/by-build-pair", headers=GLOBAL)

        assert response.status_code == 200
        groups = response.json()["groups"]
        # Acme spans all three builds; Beta and Delta only the two EMEA builds
        assert len(groups) == 3
        assert len(groups[0]["clashes"]) == 3
        assert sorted(groups[0]["build_names"]) == ["FY27 EMEA Alternate", "FY27 EMEA Draft"]

    async def test_resolve_then_history(self, client, territory) -> None:
        response = await client.post(
            "/api/v1/clashes/001A/resolve",
            json={"rationale": "EMEA holds it", "target_build_id": str(territory["draft"].id)},
            headers=EMEA,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "resolved"
        assert body["owner_id"] == "u2"
        assert len(body["builds_updated"]) == 2

        history = await client.get(
            "/api/v1/clashes/resolutions", params={"sfdc_account_id": "001A"}, headers=EMEA
        )
        assert history.status_code == 200
        [item] = history.json()["items"]
        assert item["resolution_rationale"] == "EMEA holds it"
        assert item["resolved_by"] == "ana"

    async def test_resolve_without_rationale_is_422(self, client, territory) -> None:
        response = await client.post(
            "/api/v1/clashes/001A/resolve",
            json={"rationale": " ", "target_build_id": str(territory["draft"].id)},
            headers=EMEA,
        )
        assert response.status_code == 422

    async def test_resolve_unknown_account_is_404(self, client, territory) -> None:
        response = await client.post(
            "/api/v1/clashes/001C/resolve",
            json={"rationale": "x", "custom_owner_id": "u1"},
            headers=EMEA,
        )
        assert response.status_code == 404

    async def test_resolve_outside_region_is_403(self, client, territory, monkeypatch) -> None:
        """Permission is checked against every member region of the clash."""
        real_resolve = service.resolve_clash
        scoped = AuthContext("ana", UserRole.SLM, "EMEA")

        async def resolve_as_emea(clash, rationale, auth, **kwargs):
            return await real_resolve(clash, rationale, scoped, **kwargs)

        monkeypatch.setattr(service, "resolve_clash", resolve_as_emea)

        # Detected by a global caller, so the clash also spans the NA build
        response = await client.post(
            "/api/v1/clashes/001A/resolve",
            json={"rationale": "x", "target_build_id": str(territory["draft"].id)},
            headers=GLOBAL,
        )
        assert response.status_code == 403

    async def test_dependency_override(self, client, territory) -> None:
        app.dependency_overrides[require_auth] = lambda: AuthContext("rita", UserRole.REVOPS)
        response = await client.get("/api/v1/builds")
        assert response.json()["total"] == 3

    async def test_write_failure_is_500(self, client, territory, monkeypatch) -> None:
        async def broken_write(*args, **kwargs):
            raise ResolutionWriteError()

        monkeypatch.setattr(resolver, "_write_resolution", broken_write)

        response = await client.post(
            "/api/v1/clashes/001A/resolve",
            json={"rationale": "x", "target_build_id": str(territory["draft"].id)},
            headers=EMEA,
        )
        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to resolve clash"


class TestBuildEndpoints:
    async def test_list_builds_scoped(self, client, territory) -> None:
        response = await client.get("/api/v1/builds", headers=EMEA)
        names = {item["name"] for item in response.json()["items"]}
        assert names == {"FY27 EMEA Draft", "FY27 EMEA Alternate"}

    async def test_same_build_clashes(self, client, territory) -> None:
        build_id = territory["draft"].id
        response = await client.get(f"/api/v1/builds/{build_id}/clashes", headers=EMEA)

        assert response.status_code == 200
        body = response.json()
        assert body["build_name"] == "FY27 EMEA Draft"
        [clash] = body["clashes"]
        assert clash["sfdc_account_id"] == "001A"
        assert clash["severity"] == "high"
        assert clash["conflict_type"] == "assignment_conflict"

    async def test_other_region_build_is_404(self, client, territory) -> None:
        response = await client.get(
            f"/api/v1/builds/{territory['na'].id}/clashes", headers=EMEA
        )
        assert response.status_code == 404

    async def test_unknown_build_is_404(self, client, territory) -> None:
        response = await client.get(f"/api/v1/builds/{uuid.uuid4()}/clashes", headers=GLOBAL)
        assert response.status_code == 404

    async def test_resolve_same_build(self, client, territory) -> None:
        build_id = territory["draft"].id
        response = await client.post(
            f"/api/v1/builds/{build_id}/clashes/001A/resolve",
            json={"resolution_type": "keep_current", "rationale": "stay"},
            headers=EMEA,
        )

        assert response.status_code == 200
        assert response.json()["resolution_type"] == "keep_current"

        after = await client.get(f"/api/v1/builds/{build_id}/clashes", headers=EMEA)
        assert after.json()["clashes"] == []
