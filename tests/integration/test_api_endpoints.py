"""End-to-end tests of the HTTP API against an in-memory database."""

import logging
import uuid

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient
from jose import jwt

from modulegate.api.deps import RequireAccess, get_db
from modulegate.api.main import app
from modulegate.core.config import get_settings
from modulegate.core.rbac import Actor
from modulegate.db.models import Capability, MemberCapabilityGrant

from tests.factories import create_capability, create_grant, enable_access


pytestmark = pytest.mark.integration


def _headers(user) -> dict:
    settings = get_settings()
    token = jwt.encode(
        {"sub": str(user.id), "type": "access"},
        settings.secret_key,
        algorithm=settings.algorithm,
    )
    return {"Authorization": f"Bearer {token}"}


def _override_db(application: FastAPI, db_session) -> None:
    def override_get_db():
        yield db_session

    application.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def client(db_session, registry):
    _override_db(app, db_session)
    app.state.registry = registry
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seeded(db_session, tenant, owner, member, operator, invoicing_enabled):
    """Commit the shared scenario so request-level rollbacks keep it."""
    db_session.commit()
    return {"tenant": tenant, "owner": owner, "member": member, "operator": operator}


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data


class TestCapabilityEndpoints:

    def test_anonymous_is_rejected(self, client, seeded):
        response = client.get("/api/capabilities")
        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"

    def test_invalid_token_is_anonymous(self, client, seeded):
        response = client.get("/api/capabilities", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401

    def test_owner_lists_enabled(self, client, seeded):
        response = client.get("/api/capabilities", headers=_headers(seeded["owner"]))

        assert response.status_code == 200
        assert [c["identifier"] for c in response.json()] == ["invoicing"]

    def test_member_without_grant_sees_nothing(self, client, seeded):
        response = client.get("/api/capabilities", headers=_headers(seeded["member"]))
        assert response.json() == []

    def test_get_unreachable_is_generic(self, client, seeded):
        response = client.get("/api/capabilities/invoicing", headers=_headers(seeded["member"]))

        assert response.status_code == 403
        assert response.json()["detail"] == "You do not have permission"

    def test_get_unknown_is_indistinguishable_from_unreachable(self, client, seeded):
        response = client.get("/api/capabilities/payroll", headers=_headers(seeded["member"]))
        assert response.status_code == 403

    def test_get_reachable(self, client, seeded):
        response = client.get("/api/capabilities/invoicing", headers=_headers(seeded["owner"]))

        assert response.status_code == 200
        data = response.json()
        assert data["actions"] == ["delete", "read", "write"]
        assert data["default_actions"] == ["read"]

    def test_operator_creates_capability(self, client, seeded):
        payload = {"identifier": "reports", "name": "Reports", "version": "1.0.0", "actions": ["read", "export"]}

        response = client.post("/api/capabilities", json=payload, headers=_headers(seeded["operator"]))

        assert response.status_code == 201
        assert response.json()["source"] == "operator"

    def test_create_duplicate_conflicts(self, client, seeded):
        payload = {"identifier": "invoicing", "name": "Invoicing", "version": "1.0.0", "actions": ["read"]}

        response = client.post("/api/capabilities", json=payload, headers=_headers(seeded["operator"]))

        assert response.status_code == 409

    def test_create_invalid_identifier(self, client, seeded):
        payload = {"identifier": "Invoicing!", "name": "Invoicing", "version": "1.0.0", "actions": ["read"]}

        response = client.post("/api/capabilities", json=payload, headers=_headers(seeded["operator"]))

        assert response.status_code == 422

    def test_owner_cannot_create(self, client, seeded):
        payload = {"identifier": "reports", "name": "Reports", "version": "1.0.0", "actions": ["read"]}

        response = client.post("/api/capabilities", json=payload, headers=_headers(seeded["owner"]))

        assert response.status_code == 403

    def test_update_and_deactivate(self, client, seeded, db_session):
        headers = _headers(seeded["operator"])

        response = client.patch("/api/capabilities/invoicing", json={"version": "1.1.0"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["version"] == "1.1.0"

        response = client.delete("/api/capabilities/invoicing", headers=headers)
        assert response.status_code == 200
        assert response.json()["is_active"] is False

        response = client.get("/api/capabilities/invoicing", headers=_headers(seeded["owner"]))
        assert response.status_code == 403

    def test_update_unknown(self, client, seeded):
        response = client.patch("/api/capabilities/payroll", json={"name": "Payroll"}, headers=_headers(seeded["operator"]))
        assert response.status_code == 404

    @pytest.mark.parametrize("payload", [{"is_active": None}, {"name": None}, {"actions": None}])
    def test_update_cannot_clear_required_field(self, client, seeded, payload):
        headers = _headers(seeded["operator"])

        response = client.patch("/api/capabilities/invoicing", json=payload, headers=headers)
        assert response.status_code == 400
        assert "cannot be null" in response.json()["detail"]

        response = client.get("/api/capabilities/invoicing", headers=headers)
        assert response.status_code == 200
        assert response.json()["is_active"] is True


class TestAccessEndpoints:

    def test_operator_enables_and_disables(self, client, seeded, db_session):
        create_capability(db_session, identifier="tasks", name="Tasks")
        db_session.commit()
        tenant_id = seeded["tenant"].id
        headers = _headers(seeded["operator"])

        response = client.put(f"/api/access/tenants/{tenant_id}/capabilities/tasks", headers=headers)
        assert response.status_code == 200
        assert response.json()["is_enabled"] is True

        response = client.delete(f"/api/access/tenants/{tenant_id}/capabilities/tasks", headers=headers)
        assert response.status_code == 204

        response = client.get(f"/api/access/tenants/{tenant_id}/capabilities", headers=headers)
        assert {(a["capability"], a["is_enabled"]) for a in response.json()} == {("invoicing", True), ("tasks", False)}

    def test_owner_cannot_enable(self, client, seeded):
        tenant_id = seeded["tenant"].id

        response = client.put(f"/api/access/tenants/{tenant_id}/capabilities/invoicing", headers=_headers(seeded["owner"]))

        assert response.status_code == 403

    def test_enable_unknown_tenant(self, client, seeded):
        response = client.put(
            f"/api/access/tenants/{uuid.uuid4()}/capabilities/invoicing",
            headers=_headers(seeded["operator"]),
        )
        assert response.status_code == 404
        assert "Tenant" in response.json()["detail"]

    def test_owner_grants_and_revokes(self, client, seeded, db_session):
        member_id = seeded["member"].id
        headers = _headers(seeded["owner"])

        response = client.put(
            f"/api/access/members/{member_id}/capabilities/invoicing",
            json={"actions": ["read", "write"]},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["actions"] == ["read", "write"]

        response = client.get(f"/api/access/members/{member_id}/capabilities", headers=headers)
        assert [g["capability"] for g in response.json()] == ["invoicing"]

        response = client.delete(f"/api/access/members/{member_id}/capabilities/invoicing", headers=headers)
        assert response.status_code == 204
        assert db_session.query(MemberCapabilityGrant).count() == 0

        # Revoking again is a no-op
        response = client.delete(f"/api/access/members/{member_id}/capabilities/invoicing", headers=headers)
        assert response.status_code == 204

    def test_grant_defaults(self, client, seeded):
        response = client.put(
            f"/api/access/members/{seeded['member'].id}/capabilities/invoicing",
            json={},
            headers=_headers(seeded["owner"]),
        )
        assert response.json()["actions"] == ["read"]

    def test_grant_invalid_action(self, client, seeded):
        response = client.put(
            f"/api/access/members/{seeded['member'].id}/capabilities/invoicing",
            json={"actions": ["approve"]},
            headers=_headers(seeded["owner"]),
        )
        assert response.status_code == 400

    def test_operator_cannot_grant(self, client, seeded):
        response = client.put(
            f"/api/access/members/{seeded['member'].id}/capabilities/invoicing",
            json={"actions": ["read"]},
            headers=_headers(seeded["operator"]),
        )
        assert response.status_code == 403

    def test_check(self, client, seeded, db_session, invoicing):
        create_grant(db_session, user=seeded["member"], capability=invoicing, actions=["read"])
        db_session.commit()
        headers = _headers(seeded["member"])

        allowed = client.post("/api/access/check", json={"requirements": ["requires-action:invoicing:read"]}, headers=headers)
        denied = client.post("/api/access/check", json={"requirements": ["requires-action:invoicing:write"]}, headers=headers)
        anonymous = client.post("/api/access/check", json={"requirements": []})
        malformed = client.post("/api/access/check", json={"requirements": ["requires-magic"]}, headers=headers)

        assert allowed.json() == {"allowed": True}
        assert denied.json() == {"allowed": False}
        assert anonymous.json() == {"allowed": False}
        assert malformed.status_code == 400


class TestAdminEndpoints:

    def test_stats(self, client, seeded):
        response = client.get("/api/admin/discovery/stats", headers=_headers(seeded["operator"]))

        assert response.status_code == 200
        assert response.json()["cache_ttl"] == 300

    def test_reload_syncs_units(self, client, seeded, db_session, write_unit):
        write_unit("tasks", {"identifier": "tasks", "name": "Tasks", "version": "1.0.0", "actions": ["read"]})

        response = client.post("/api/admin/discovery/reload", headers=_headers(seeded["operator"]))

        assert response.status_code == 200
        assert response.json()["discovered"] == ["tasks"]
        assert db_session.query(Capability).filter_by(identifier="tasks").count() == 1

    def test_invalidate(self, client, seeded, registry, db_session):
        registry.lookup(db_session, "invoicing")
        headers = _headers(seeded["operator"])

        response = client.post("/api/admin/cache/invalidate", json={"identifier": "invoicing"}, headers=headers)
        assert response.json() == {"invalidated": "invoicing"}
        assert registry.stats()["cache_size"] == 0

        response = client.post("/api/admin/cache/invalidate", json={}, headers=headers)
        assert response.json() == {"invalidated": "all"}

    def test_cleanup(self, client, seeded, db_session):
        orphan = create_capability(db_session, identifier="tasks")
        create_grant(db_session, user=seeded["member"], capability=orphan)
        db_session.commit()

        response = client.post("/api/admin/grants/cleanup", headers=_headers(seeded["operator"]))

        assert response.status_code == 200
        assert [(r["capability"], r["removed"]) for r in response.json()] == [("tasks", 1)]

    def test_member_denied(self, client, seeded):
        response = client.get("/api/admin/discovery/stats", headers=_headers(seeded["member"]))

        assert response.status_code == 403
        assert response.json()["detail"] == "You do not have permission"


class TestRequireAccessDependency:
    """An endpoint guarded the way a business router would guard it."""

    @pytest.fixture
    def guarded(self, db_session, registry):
        guarded_app = FastAPI()
        guarded_app.state.registry = registry
        _override_db(guarded_app, db_session)

        @guarded_app.post("/invoices")
        async def create_invoice(actor: Actor = Depends(RequireAccess("requires-tenant", "requires-action:invoicing:write"))):
            return {"created_by": str(actor.id)}

        return TestClient(guarded_app)

    def test_anonymous(self, guarded, seeded):
        response = guarded.post("/invoices")

        assert response.status_code == 401
        assert response.json()["detail"] == "Not authenticated"

    def test_member_without_grant(self, guarded, seeded, caplog):
        with caplog.at_level(logging.WARNING):
            response = guarded.post("/invoices", headers=_headers(seeded["member"]))

        assert response.status_code == 403
        assert response.json()["detail"] == "You do not have permission"
        assert "capability_unreachable" in caplog.text

    def test_member_with_read_only_grant(self, guarded, seeded, db_session, invoicing, caplog):
        create_grant(db_session, user=seeded["member"], capability=invoicing, actions=["read"])
        db_session.commit()

        with caplog.at_level(logging.WARNING):
            response = guarded.post("/invoices", headers=_headers(seeded["member"]))

        assert response.status_code == 403
        assert response.json()["detail"] == "You do not have permission"
        assert "action_forbidden" in caplog.text

    def test_operator_has_no_tenant(self, guarded, seeded):
        response = guarded.post("/invoices", headers=_headers(seeded["operator"]))
        assert response.status_code == 403

    def test_member_with_write_grant(self, guarded, seeded, db_session, invoicing):
        create_grant(db_session, user=seeded["member"], capability=invoicing, actions=["read", "write"])
        db_session.commit()

        response = guarded.post("/invoices", headers=_headers(seeded["member"]))

        assert response.status_code == 200
        assert response.json() == {"created_by": str(seeded["member"].id)}

    def test_malformed_declaration_fails_early(self):
        with pytest.raises(ValueError):
            RequireAccess("requires-action:invoicing")
