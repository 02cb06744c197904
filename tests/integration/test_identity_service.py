"""Integration tests for principal provisioning and archival."""

import asyncio
import uuid

import pytest
from sqlalchemy import select

from agora.kernel.errors import AuthorizationDenied, LastAdminError, PrincipalNotFound
from agora.kernel.identity.identity_service import IdentityService
from agora.kernel.models import AuditAction, AuditEntry, PrincipalTier
from agora.kernel.permissions.escalation import EscalationGuard, EscalationPhase
from agora.kernel.permissions.role_oracle import RoleOracle


class TestEnsurePrincipal:
    async def test_creates_standard_principal_once(self, db_session):
        service = IdentityService(db_session)
        principal_id = uuid.uuid4()

        first = await service.ensure_principal(principal_id, display_name="  Dana ")
        second = await service.ensure_principal(principal_id)

        assert first is second
        assert first.tier == PrincipalTier.STANDARD
        assert first.display_name == "Dana"

        entries = (
            await db_session.execute(
                select(AuditEntry).where(AuditEntry.action == AuditAction.PRINCIPAL_PROVISIONED)
            )
        ).scalars().all()
        assert len(entries) == 1


class TestArchival:
    async def test_admin_archives_member(self, db_session, admin, member):
        service = IdentityService(db_session)
        archived = await service.archive_principal(member.id, archived_by=admin.id, reason="left")

        assert archived.is_archived
        assert archived.archived_by == admin.id
        assert archived.archive_reason == "left"

    async def test_archived_admin_loses_admin(self, db_session, admin, make_principal):
        other_admin = await make_principal(tier=PrincipalTier.ADMIN)
        oracle = RoleOracle(db_session)
        service = IdentityService(db_session, oracle=oracle)

        assert await oracle.is_admin(other_admin.id)
        await service.archive_principal(other_admin.id, archived_by=admin.id)
        assert not await oracle.is_admin(other_admin.id)

    async def test_last_admin_cannot_be_archived(self, db_session, admin):
        with pytest.raises(LastAdminError):
            await IdentityService(db_session).archive_principal(admin.id, archived_by=admin.id)

    async def test_non_admin_cannot_archive(self, db_session, member, make_principal):
        target = await make_principal()
        with pytest.raises(AuthorizationDenied):
            await IdentityService(db_session).archive_principal(target.id, archived_by=member.id)

    async def test_unknown_principal(self, db_session, admin):
        with pytest.raises(PrincipalNotFound):
            await IdentityService(db_session).archive_principal(uuid.uuid4(), archived_by=admin.id)

    async def test_unarchive_restores(self, db_session, admin, make_principal):
        target = await make_principal(archived=True)
        restored = await IdentityService(db_session).unarchive_principal(target.id, unarchived_by=admin.id)

        assert not restored.is_archived
        assert restored.archived_at is None


class TestArchivalSerialization:
    """Archival changes the admin population, so it takes the escalation lock."""

    async def test_archive_and_unarchive_take_the_lock(self, db_session, admin, make_principal):
        target = await make_principal(tier=PrincipalTier.ADMIN)
        guard = EscalationGuard(db_session)
        service = IdentityService(db_session, guard=guard)

        await service.archive_principal(target.id, archived_by=admin.id)
        after_archive = (await guard.state()).revision
        await service.unarchive_principal(target.id, unarchived_by=admin.id)

        assert after_archive >= 1
        assert (await guard.state()).revision == after_archive + 1

    async def test_admins_archiving_each_other_leave_one_admin(self, session_maker, admin, make_principal):
        other = await make_principal(tier=PrincipalTier.ADMIN)

        async def attempt(target_id, actor_id):
            async with session_maker() as session:
                try:
                    await IdentityService(session).archive_principal(target_id, archived_by=actor_id)
                    await session.commit()
                    return True
                except (AuthorizationDenied, LastAdminError):
                    await session.rollback()
                    return False

        results = await asyncio.gather(attempt(other.id, admin.id), attempt(admin.id, other.id))
        assert sorted(results) == [False, True]

        async with session_maker() as session:
            assert await RoleOracle(session).admin_count() == 1
            assert (await EscalationGuard(session).state()).phase == EscalationPhase.ADMIN_EXISTS
