"""
System smoke test: full API flow in-process with SQLite.

Verifies health, code redemption, bearer and enrollment-code resolution,
code administration, tier changes, permission checks and the audit trail.
Each test gets its own database file through the conftest engine.
"""

import uuid
from typing import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from agora.api.deps import get_db
from agora.api.middleware.rate_limit import get_store
from agora.kernel.identity.enrollment import EnrollmentLedger
from agora.kernel.models import Deliberation, DeliberationStatus, Participant, ParticipantRole
from agora.main import app

API = "/api/v1"


@pytest_asyncio.fixture
async def client(session_maker):
    """Async client with a per-test database and rate limit disabled."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    get_store().clear()
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _seed_admin_code(session_maker) -> str:
    async with session_maker() as session:
        entry = await EnrollmentLedger(session).seed_admin_code()
        await session.commit()
        return entry.code


async def _bootstrap_admin(client, session_maker) -> dict:
    """Redeem a seeded admin code; returns auth headers for the new admin."""
    code = await _seed_admin_code(session_maker)
    response = await client.post(f"{API}/auth/redeem", json={"code": code})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


async def _new_member(client, admin_headers) -> tuple:
    """Issue and redeem a user code; returns (headers, principal_id, code)."""
    issued = await client.post(f"{API}/admin/codes", json={}, headers=admin_headers)
    assert issued.status_code == 201, issued.text
    code = issued.json()["code"]

    redeemed = await client.post(f"{API}/auth/redeem", json={"code": code})
    assert redeemed.status_code == 200, redeemed.text
    data = redeemed.json()
    return {"Authorization": f"Bearer {data['access_token']}"}, data["principal"]["id"], code


class TestHealthAndIdentity:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["database"] == "connected"
        assert data["status"] == ("ok" if data["audit_failures"] == 0 else "degraded")
        assert "X-Request-ID" in response.headers

    async def test_request_id_echoed(self, client):
        response = await client.get("/health", headers={"X-Request-ID": "trace-abc"})
        assert response.headers["X-Request-ID"] == "trace-abc"

    async def test_anonymous_me(self, client):
        response = await client.get(f"{API}/auth/me")
        assert response.status_code == 200
        assert response.json() == {
            "authenticated": False,
            "principal_id": None,
            "auth_method": "anonymous",
            "is_admin": False,
        }

    async def test_garbage_bearer_is_anonymous(self, client):
        response = await client.get(f"{API}/auth/me", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 200
        assert response.json()["authenticated"] is False


class TestEnrollmentFlow:
    async def test_admin_bootstrap_through_seeded_code(self, client, session_maker):
        admin_headers = await _bootstrap_admin(client, session_maker)

        me = await client.get(f"{API}/auth/me", headers=admin_headers)
        assert me.json()["is_admin"] is True
        assert me.json()["auth_method"] == "bearer"

        state = await client.get(f"{API}/admin/escalation", headers=admin_headers)
        assert state.status_code == 200
        assert state.json()["phase"] == "admin_exists"
        assert state.json()["first_admin_id"] == me.json()["principal_id"]

    async def test_code_header_and_bearer_resolve_same_principal(self, client, session_maker):
        admin_headers = await _bootstrap_admin(client, session_maker)
        member_headers, member_id, code = await _new_member(client, admin_headers)

        by_bearer = await client.get(f"{API}/auth/me", headers=member_headers)
        by_code = await client.get(f"{API}/auth/me", headers={"X-Enrollment-Code": code.lower()})

        assert by_bearer.json()["principal_id"] == member_id
        assert by_code.json()["principal_id"] == member_id
        assert by_code.json()["auth_method"] == "enrollment_code"
        assert by_code.json()["is_admin"] is False

    async def test_redemption_errors(self, client, session_maker):
        admin_headers = await _bootstrap_admin(client, session_maker)
        _, _, used_code = await _new_member(client, admin_headers)

        again = await client.post(f"{API}/auth/redeem", json={"code": used_code})
        assert again.status_code == 409
        assert again.json()["code"] == "code_already_redeemed"

        unknown = await client.post(f"{API}/auth/redeem", json={"code": "ZZZZ9999XXXX"})
        assert unknown.status_code == 404

        issued = await client.post(f"{API}/admin/codes", json={}, headers=admin_headers)
        fresh = issued.json()["code"]
        deactivated = await client.post(f"{API}/admin/codes/{fresh}/deactivate", headers=admin_headers)
        assert deactivated.status_code == 200
        assert deactivated.json()["is_active"] is False

        gone = await client.post(f"{API}/auth/redeem", json={"code": fresh})
        assert gone.status_code == 410

        malformed = await client.post(f"{API}/auth/redeem", json={"code": "no spaces!"})
        assert malformed.status_code == 422

    async def test_failed_redemption_leaves_no_principal(self, client, session_maker):
        admin_headers = await _bootstrap_admin(client, session_maker)
        await client.post(f"{API}/auth/redeem", json={"code": "ZZZZ9999XXXX"})

        audit = await client.get(f"{API}/admin/audit", params={"action": "principal.provisioned"}, headers=admin_headers)
        assert len(audit.json()) == 1

    async def test_code_administration_requires_admin(self, client, session_maker):
        admin_headers = await _bootstrap_admin(client, session_maker)
        member_headers, _, code = await _new_member(client, admin_headers)

        anonymous = await client.post(f"{API}/admin/codes", json={})
        assert anonymous.status_code == 401

        forbidden = await client.post(f"{API}/admin/codes", json={}, headers=member_headers)
        assert forbidden.status_code == 403
        assert forbidden.json()["code"] == "authorization_denied"

        assert (await client.get(f"{API}/admin/codes", headers=member_headers)).json() == []
        listed = await client.get(f"{API}/admin/codes", headers=admin_headers)
        assert code in [c["code"] for c in listed.json()]

        admin_type = await client.post(f"{API}/admin/codes", json={"code_type": "admin"}, headers=admin_headers)
        assert admin_type.status_code == 400

    async def test_reset_code_rebinds(self, client, session_maker):
        admin_headers = await _bootstrap_admin(client, session_maker)
        _, first_id, code = await _new_member(client, admin_headers)

        reset = await client.post(f"{API}/admin/codes/{code}/reset", headers=admin_headers)
        assert reset.status_code == 200
        assert reset.json()["principal_id"] is None

        again = await client.post(f"{API}/auth/redeem", json={"code": code})
        assert again.status_code == 200
        assert again.json()["principal"]["id"] != first_id


class TestEscalation:
    async def test_member_cannot_change_tiers(self, client, session_maker):
        admin_headers = await _bootstrap_admin(client, session_maker)
        member_headers, member_id, _ = await _new_member(client, admin_headers)

        response = await client.put(
            f"{API}/admin/principals/{member_id}/tier",
            json={"tier": "admin"},
            headers=member_headers,
        )
        assert response.status_code == 403
        assert response.json()["code"] == "escalation_denied"

    async def test_admin_promotes_member(self, client, session_maker):
        admin_headers = await _bootstrap_admin(client, session_maker)
        member_headers, member_id, _ = await _new_member(client, admin_headers)

        response = await client.put(
            f"{API}/admin/principals/{member_id}/tier",
            json={"tier": "admin"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["tier"] == "admin"

        me = await client.get(f"{API}/auth/me", headers=member_headers)
        assert me.json()["is_admin"] is True

    async def test_last_admin_protected(self, client, session_maker):
        admin_headers = await _bootstrap_admin(client, session_maker)
        me = (await client.get(f"{API}/auth/me", headers=admin_headers)).json()

        demote = await client.put(
            f"{API}/admin/principals/{me['principal_id']}/tier",
            json={"tier": "standard"},
            headers=admin_headers,
        )
        assert demote.status_code == 403
        assert demote.json()["code"] == "last_admin"

        archive = await client.post(f"{API}/admin/principals/{me['principal_id']}/archive", headers=admin_headers)
        assert archive.status_code == 403

    async def test_unknown_principal(self, client, session_maker):
        admin_headers = await _bootstrap_admin(client, session_maker)
        response = await client.put(
            f"{API}/admin/principals/{uuid.uuid4()}/tier",
            json={"tier": "admin"},
            headers=admin_headers,
        )
        assert response.status_code == 404

    async def test_archived_member_resolves_anonymous(self, client, session_maker):
        admin_headers = await _bootstrap_admin(client, session_maker)
        member_headers, member_id, _ = await _new_member(client, admin_headers)

        archived = await client.post(
            f"{API}/admin/principals/{member_id}/archive",
            json={"reason": "duplicate account"},
            headers=admin_headers,
        )
        assert archived.status_code == 200
        assert archived.json()["is_archived"] is True

        me = await client.get(f"{API}/auth/me", headers=member_headers)
        assert me.json()["authenticated"] is False

        restored = await client.post(f"{API}/admin/principals/{member_id}/unarchive", headers=admin_headers)
        assert restored.status_code == 200
        me = await client.get(f"{API}/auth/me", headers=member_headers)
        assert me.json()["authenticated"] is True


class TestAuthorizeEndpoint:
    async def test_visibility_through_api(self, client, session_maker):
        admin_headers = await _bootstrap_admin(client, session_maker)
        member_headers, member_id, _ = await _new_member(client, admin_headers)

        async with session_maker() as session:
            public = Deliberation(title="Budget", status=DeliberationStatus.ACTIVE, is_public=True)
            concluded = Deliberation(title="Parks", status=DeliberationStatus.CONCLUDED, is_public=True)
            draft = Deliberation(title="Transit", status=DeliberationStatus.DRAFT, is_public=False)
            session.add_all([public, concluded, draft])
            await session.flush()
            session.add(Participant(
                principal_id=uuid.UUID(member_id),
                deliberation_id=concluded.id,
                role=ParticipantRole.PARTICIPANT,
            ))
            await session.commit()
            ids = {"public": str(public.id), "concluded": str(concluded.id), "draft": str(draft.id)}

        async def check(headers, key, operation="read"):
            response = await client.post(
                f"{API}/authorize",
                json={"resource_type": "deliberation", "resource_id": ids[key], "operation": operation},
                headers=headers,
            )
            assert response.status_code == 200, response.text
            return response.json()

        assert (await check({}, "public"))["allowed"] is True
        assert (await check({}, "concluded")) == {"allowed": False, "reason": "not found"}
        assert (await check(member_headers, "concluded"))["allowed"] is True
        assert (await check(member_headers, "draft")) == {"allowed": False, "reason": "not found"}
        assert (await check(admin_headers, "draft"))["allowed"] is True
        assert (await check({}, "public", "update"))["allowed"] is False

    async def test_insert_check_and_validation(self, client, session_maker):
        admin_headers = await _bootstrap_admin(client, session_maker)
        member_headers, member_id, _ = await _new_member(client, admin_headers)

        allowed = await client.post(
            f"{API}/authorize",
            json={
                "resource_type": "document",
                "operation": "insert",
                "attributes": {"uploaded_by": member_id, "filename": "brief.pdf"},
            },
            headers=member_headers,
        )
        assert allowed.json()["allowed"] is True

        missing_ref = await client.post(
            f"{API}/authorize",
            json={"resource_type": "document", "operation": "read"},
            headers=member_headers,
        )
        assert missing_ref.status_code == 422


class TestAuditSurface:
    async def test_audit_admin_only(self, client, session_maker):
        admin_headers = await _bootstrap_admin(client, session_maker)
        member_headers, _, _ = await _new_member(client, admin_headers)

        entries = await client.get(f"{API}/admin/audit", headers=admin_headers)
        assert entries.status_code == 200
        actions = {e["action"] for e in entries.json()}
        assert {"code.seeded", "code.redeemed", "principal.tier_changed", "escalation.bootstrapped", "code.issued"} <= actions
        assert all(e["request_id"] for e in entries.json() if e["action"] != "code.seeded")

        hidden = await client.get(f"{API}/admin/audit", headers=member_headers)
        assert hidden.status_code == 200
        assert hidden.json() == []
