"""HTTP API tests for permissions, organizations and delegation."""

import pytest
import pytest_asyncio
from httpx import AsyncClient

from app.core.records.store import get_record_store
from app.features.delegation.managers import Owner, ResourceGrantManager, ScopeRule, ScopeRuleManager
from app.features.delegation.models import DelegationKind
from app.features.permissions.resolution import JOB_PERMISSIONS
from app.features.permissions.scopes import ControlScope
from app.features.services.models import Service, SubService, SubSubService


@pytest_asyncio.fixture
async def catalog(add_rows):
    await add_rows(
        Service(id="1", label_ar="الموارد البشرية", label_en="Human Resources", is_active=True),
        Service(id="3", label_ar="الحراسات", label_en="Guards", is_active=True),
    )
    await add_rows(
        SubService(id="11", service_id="1", label_ar="الموظفون", label_en="Employees", order=0),
        SubSubService(id="301", service_id="3", label_ar="تصدير", label_en="Export"),
    )


@pytest_asyncio.fixture
async def delegating_admin(api, users):
    """admin may manage j-guard and hand out s:3 and ss:12."""
    store = api.state.record_store
    await ScopeRuleManager(store, DelegationKind.ACCESS).grant(
        Owner.user("admin"), ScopeRule(target_job_id="j-guard")
    )
    await ScopeRuleManager(store, DelegationKind.CONTROL).grant(
        Owner.job("j-admin"), ScopeRule(target_job_id="j-guard", scope=ControlScope())
    )
    control = ResourceGrantManager(store, DelegationKind.CONTROL)
    await control.grant(Owner.job("j-admin"), "s:3")
    await control.grant(Owner.job("j-admin"), "ss:12")
    return users["admin"]


@pytest.mark.api
class TestPermissionRoutes:

    async def test_check_follows_job_grants(self, client: AsyncClient, api, login, users):
        login(users["guard"])
        await api.state.record_store.create(JOB_PERMISSIONS, {
            "job_id": "j-guard", "resource_id": "ss:12", "scope_company_id": "c1",
        })

        resp = await client.get("/permissions/check", params={"resource_id": "ss:12"})
        assert resp.status_code == 200
        assert resp.json() == {"resource_id": "ss:12", "is_allowed": True}

        resp = await client.get("/permissions/check", params={"resource_id": "ss:13"})
        assert resp.json()["is_allowed"] is False

    async def test_check_rejects_missing_resource(self, client, login, users):
        login(users["guard"])
        resp = await client.get("/permissions/check")
        assert resp.status_code == 400

    async def test_effective_permissions(self, client, api, login, users):
        login(users["clerk"])
        await api.state.record_store.create(JOB_PERMISSIONS, {"job_id": "j-clerk", "resource_id": "s:1"})

        resp = await client.get("/permissions/effective")
        assert resp.status_code == 200
        assert resp.json() == {
            "user_id": "clerk",
            "permissions": {"general_access": True, "s:1": True},
        }

    async def test_effective_permissions_for_super_admin(self, client, login, users, catalog):
        login(users["root"])
        resp = await client.get("/permissions/effective")
        assert resp.json()["permissions"] == {
            "general_access": True, "s:1": True, "ss:11": True, "s:3": True, "sss:301": True,
        }

    async def test_super_admin_runs_procedures(self, client, login, users):
        login(users["root"])
        resp = await client.post("/permissions/call/manageJobPermissions", json={
            "payload": {"job_id": "j-guard", "to_add": ["s:3"]},
        })
        assert resp.status_code == 200
        assert resp.json() == {
            "name": "manageJobPermissions",
            "result": {"success": True, "added": ["s:3"], "removed": 0},
        }

        resp = await client.get("/permissions/jobs/j-guard")
        assert [r["resource_id"] for r in resp.json()] == ["s:3"]

    async def test_unknown_procedure(self, client, login, users):
        login(users["root"])
        resp = await client.post("/permissions/call/dropEverything", json={"payload": {}})
        assert resp.status_code == 404

    async def test_procedure_needs_authority_over_target(self, client, login, users):
        login(users["clerk"])
        resp = await client.post("/permissions/call/manageJobPermissions", json={
            "payload": {"job_id": "j-guard", "to_add": ["s:3"]},
        })
        assert resp.status_code == 403

    async def test_delegated_admin_runs_procedures(self, client, login, delegating_admin, users):
        login(delegating_admin)
        resp = await client.post("/permissions/call/manageJobPermissions", json={
            "payload": {"job_id": "j-guard", "to_add": ["s:3"]},
        })
        assert resp.status_code == 200

        resp = await client.post("/permissions/call/manageJobPermissions", json={
            "payload": {"job_id": "j-guard", "to_add": ["s:4"]},
        })
        assert resp.status_code == 403

        login(users["guard"])
        resp = await client.get("/permissions/check", params={"resource_id": "s:3"})
        assert resp.json()["is_allowed"] is True

    async def test_user_exceptions_listing(self, client, login, users):
        login(users["root"])
        await client.post("/permissions/call/manageUserPermissions", json={
            "payload": {"user_id": "guard", "permissions": [{"resource_id": "ss:7", "is_allowed": False}]},
        })
        await client.post("/permissions/call/manageUserPermissions", json={
            "payload": {"user_id": "guard", "permissions": [{"resource_id": "ss:8", "is_allowed": True}]},
        })
        resp = await client.get("/permissions/users/guard/exceptions")
        assert [(r["resource_id"], r["state"]) for r in resp.json()] == [("ss:8", "granted")]


@pytest.mark.api
class TestOrganizationRoutes:

    async def test_valid_scopes(self, client, login, users):
        login(users["admin"])
        resp = await client.get("/organizations/jobs/j-guard/valid-scopes")
        assert resp.status_code == 200
        assert resp.json() == {"job_id": "j-guard", "companies": ["c1"], "sections": ["s1"], "global_only": False}

        resp = await client.get("/organizations/jobs/j-clerk/valid-scopes")
        assert resp.json()["global_only"] is True

        resp = await client.get("/organizations/jobs/j-nope/valid-scopes")
        assert resp.status_code == 404

    async def test_distribution_is_super_admin_only(self, client, login, users):
        login(users["admin"])
        resp = await client.post("/organizations/distribution", json={"job_id": "j-clerk", "company_id": "c1"})
        assert resp.status_code == 403

        login(users["root"])
        resp = await client.post("/organizations/distribution", json={"job_id": "j-clerk", "company_id": "c1"})
        assert resp.status_code == 201
        distribution_id = resp.json()["id"]

        resp = await client.get("/organizations/jobs/j-clerk/valid-scopes")
        assert resp.json()["companies"] == ["c1"]

        resp = await client.delete(f"/organizations/distribution/{distribution_id}")
        assert resp.status_code == 204

    async def test_distribution_needs_a_placement(self, client, login, users):
        login(users["root"])
        resp = await client.post("/organizations/distribution", json={"job_id": "j-clerk"})
        assert resp.status_code == 400


@pytest.mark.api
class TestDelegationRoutes:

    async def test_profile(self, client, login, delegating_admin):
        login(delegating_admin)
        resp = await client.get("/delegation/profile")
        assert resp.status_code == 200
        body = resp.json()
        assert body["allowed_resources"] == ["s:3", "ss:12"]
        assert len(body["control_rules"]) == 1
        assert len(body["access_rules"]) == 1

    async def test_grant_requires_control(self, client, login, users):
        login(users["clerk"])
        resp = await client.post("/delegation/access/resources", json={
            "owner_type": "job", "owner_id": "j-guard", "resource_id": "ss:12",
        })
        assert resp.status_code == 403

    async def test_grant_within_authority(self, client, login, delegating_admin):
        login(delegating_admin)
        resp = await client.post("/delegation/access/resources", json={
            "owner_type": "job", "owner_id": "j-guard", "resource_id": "ss:12",
            "scope": {"company_id": "c1"},
        })
        assert resp.status_code == 201
        body = resp.json()
        assert body["kind"] == "access"
        assert body["scope_company_id"] == "c1"
        assert body["created_by"] == "admin"

    async def test_grant_outside_authority(self, client, login, delegating_admin):
        login(delegating_admin)
        not_grantable = await client.post("/delegation/access/resources", json={
            "owner_type": "job", "owner_id": "j-guard", "resource_id": "s:9",
        })
        assert not_grantable.status_code == 403

        other_job = await client.post("/delegation/access/resources", json={
            "owner_type": "job", "owner_id": "j-clerk", "resource_id": "ss:12",
        })
        assert other_job.status_code == 403

        # c2 is distributed but inactive
        undistributed = await client.post("/delegation/access/resources", json={
            "owner_type": "job", "owner_id": "j-guard", "resource_id": "ss:12",
            "scope": {"company_id": "c2"},
        })
        assert undistributed.status_code == 400

    async def test_missing_user_owner(self, client, login, users):
        login(users["root"])
        resp = await client.post("/delegation/access/resources", json={
            "owner_type": "user", "owner_id": "ghost", "resource_id": "ss:12",
        })
        assert resp.status_code == 404

    async def test_rule_without_target_is_rejected(self, client, api, login, users):
        login(users["root"])
        resp = await client.post("/delegation/control/scopes", json={
            "owner_type": "job", "owner_id": "j-guard", "scope": {"company_id": "c1"},
        })
        assert resp.status_code == 400
        assert await api.state.record_store.query("delegation_scopes") == []

    async def test_rule_grant_replace_revoke(self, client, login, users):
        login(users["root"])
        resp = await client.post("/delegation/control/scopes", json={
            "owner_type": "user", "owner_id": "admin", "target_job_id": "ALL",
            "scope": {"restricted_to_grantor_company": True},
        })
        assert resp.status_code == 201
        rule_id = resp.json()["id"]
        assert resp.json()["restricted_to_company"] is True

        resp = await client.put(f"/delegation/control/scopes/{rule_id}/scope", json={
            "owner_type": "user", "owner_id": "admin", "scope": {"sector_id": "north"},
        })
        assert resp.status_code == 200
        new_id = resp.json()["id"]
        assert new_id != rule_id
        assert resp.json()["target_job_id"] == "ALL"
        assert resp.json()["scope_sector_id"] == "north"
        assert resp.json()["restricted_to_company"] is False

        owner = {"owner_type": "user", "owner_id": "admin"}
        resp = await client.delete(f"/delegation/control/scopes/{new_id}", params=owner)
        assert resp.status_code == 204
        resp = await client.get("/delegation/control/scopes", params=owner)
        assert resp.json() == []

    async def test_replace_resource_scope(self, client, login, users):
        login(users["root"])
        resp = await client.post("/delegation/access/resources", json={
            "owner_type": "job", "owner_id": "j-guard", "resource_id": "ss:12",
        })
        old_id = resp.json()["id"]

        resp = await client.put("/delegation/access/resources/ss:12/scope", json={
            "owner_type": "job", "owner_id": "j-guard", "scope": {"section_id": "s1"},
        })
        assert resp.status_code == 200
        assert resp.json()["scope_section_id"] == "s1"

        resp = await client.get("/delegation/access/resources", params={"owner_type": "job", "owner_id": "j-guard"})
        assert [r["id"] for r in resp.json()] != [old_id]
        assert len(resp.json()) == 1

    async def test_batch_save(self, client, login, users):
        login(users["root"])
        resp = await client.post("/delegation/access/resources/batch", json={
            "owner_type": "job", "owner_id": "j-guard",
            "baseline": {},
            "edited": {"ss:12": {}, "s:3": {"scope": {"company_id": "c1"}}},
        })
        assert resp.status_code == 200
        assert set(resp.json()["created"]) == {"ss:12", "s:3"}

    async def test_partial_batch_failure(self, client, api, login, users, flaky_store):
        login(users["root"])
        api.dependency_overrides[get_record_store] = lambda: flaky_store(api.state.record_store, ["ss:13"])

        resp = await client.post("/delegation/access/resources/batch", json={
            "owner_type": "job", "owner_id": "j-guard",
            "baseline": {},
            "edited": {"ss:12": {}, "ss:13": {}},
        })
        assert resp.status_code == 502
        body = resp.json()
        assert body["failed"] == {"ss:13": "write rejected"}
        assert body["succeeded"] == ["ss:12"]

        remaining = await api.state.record_store.query("delegation_resources")
        assert [r["resource_id"] for r in remaining] == ["ss:12"]


@pytest.mark.api
class TestCatalogRoutes:

    async def test_resource_tree(self, client, login, users, catalog):
        login(users["guard"])
        resp = await client.get("/services/tree", params={"language": "en"})
        assert resp.status_code == 200
        services = resp.json()["services"]
        assert [s["id"] for s in services] == ["s:1", "s:3"]
        assert services[1]["children"][0]["label"] == "Export"

    async def test_public_user_profile(self, client, login, users):
        login(users["guard"])
        resp = await client.get("/users/admin")
        assert resp.status_code == 200
        assert resp.json()["job_id"] == "j-admin"
