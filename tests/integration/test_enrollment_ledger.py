"""Integration tests for the enrollment-code ledger."""

import asyncio
import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from agora.kernel.errors import (
    AuthorizationDenied,
    CodeAlreadyRedeemed,
    CodeInactive,
    CodeNotFound,
    EnrollmentError,
)
from agora.kernel.identity.enrollment import EnrollmentLedger
from agora.kernel.models import AuditAction, AuditEntry, CodeType, EnrollmentCode, Principal


async def _actions(session):
    result = await session.execute(select(AuditEntry.action))
    return [row[0] for row in result.all()]


class TestIssue:
    """Code issuance."""

    async def test_admin_issues_user_code(self, db_session, admin):
        ledger = EnrollmentLedger(db_session)
        entry = await ledger.issue(CodeType.USER, issued_by=admin.id, max_uses=5)

        assert len(entry.code) == 12
        assert entry.is_active
        assert entry.current_uses == 0
        assert entry.principal_id is None
        assert AuditAction.CODE_ISSUED.value in await _actions(db_session)

    async def test_non_admin_cannot_issue(self, db_session, member):
        with pytest.raises(AuthorizationDenied):
            await EnrollmentLedger(db_session).issue(CodeType.USER, issued_by=member.id)

    async def test_admin_codes_are_not_issued_here(self, db_session, admin):
        with pytest.raises(ValueError):
            await EnrollmentLedger(db_session).issue(CodeType.ADMIN, issued_by=admin.id)

    async def test_max_uses_must_be_positive(self, db_session, admin):
        with pytest.raises(ValueError):
            await EnrollmentLedger(db_session).issue(CodeType.USER, issued_by=admin.id, max_uses=0)

    async def test_expiry_stored(self, db_session, admin):
        expires = datetime.now(timezone.utc) + timedelta(days=1)
        entry = await EnrollmentLedger(db_session).issue(CodeType.USER, issued_by=admin.id, expires_at=expires)
        assert entry.expires_at == expires


class TestRedeem:
    """Code redemption and binding."""

    async def test_redeem_provisions_and_binds(self, db_session, admin):
        ledger = EnrollmentLedger(db_session)
        entry = await ledger.issue(CodeType.USER, issued_by=admin.id)

        principal = await ledger.redeem(entry.code)

        await db_session.refresh(entry)
        assert entry.principal_id == principal.id
        assert entry.current_uses == 1
        assert entry.is_used
        assert principal.tier == "standard"
        actions = await _actions(db_session)
        assert AuditAction.PRINCIPAL_PROVISIONED.value in actions
        assert AuditAction.CODE_REDEEMED.value in actions

    async def test_redeem_normalizes_input(self, db_session, admin):
        ledger = EnrollmentLedger(db_session)
        entry = await ledger.issue(CodeType.USER, issued_by=admin.id)

        principal = await ledger.redeem(f"  {entry.code.lower()} ")
        assert principal.id is not None

    async def test_redeem_binds_to_candidate(self, db_session, admin, member):
        ledger = EnrollmentLedger(db_session)
        entry = await ledger.issue(CodeType.USER, issued_by=admin.id)

        principal = await ledger.redeem(entry.code, candidate_principal_id=member.id)
        assert principal.id == member.id

    async def test_single_use_code_redeems_once(self, db_session, admin):
        ledger = EnrollmentLedger(db_session)
        entry = await ledger.issue(CodeType.USER, issued_by=admin.id)
        await ledger.redeem(entry.code)

        with pytest.raises(CodeAlreadyRedeemed):
            await ledger.redeem(entry.code)

    async def test_multi_use_code_counts_uses(self, db_session, admin):
        ledger = EnrollmentLedger(db_session)
        entry = await ledger.issue(CodeType.USER, issued_by=admin.id, max_uses=2)

        first = await ledger.redeem(entry.code)
        second = await ledger.redeem(entry.code)
        assert first.id == second.id

        await db_session.refresh(entry)
        assert entry.current_uses == 2
        assert entry.is_used

        with pytest.raises(CodeAlreadyRedeemed):
            await ledger.redeem(entry.code)

    async def test_bound_code_never_rebinds(self, db_session, admin, member):
        ledger = EnrollmentLedger(db_session)
        entry = await ledger.issue(CodeType.USER, issued_by=admin.id, max_uses=None)
        await ledger.redeem(entry.code)

        with pytest.raises(CodeAlreadyRedeemed):
            await ledger.redeem(entry.code, candidate_principal_id=member.id)

    async def test_unknown_code(self, db_session):
        with pytest.raises(CodeNotFound):
            await EnrollmentLedger(db_session).redeem("ZZZZ9999XXXX")

    async def test_deactivated_code(self, db_session, admin):
        ledger = EnrollmentLedger(db_session)
        entry = await ledger.issue(CodeType.USER, issued_by=admin.id)
        await ledger.deactivate(entry.code, admin.id)

        with pytest.raises(CodeInactive):
            await ledger.redeem(entry.code)

    async def test_expired_code(self, db_session, admin):
        ledger = EnrollmentLedger(db_session)
        entry = await ledger.issue(
            CodeType.USER,
            issued_by=admin.id,
            expires_at=datetime.now(timezone.utc) - timedelta(minutes=1),
        )
        with pytest.raises(CodeInactive):
            await ledger.redeem(entry.code)

    async def test_archived_principal_cannot_redeem(self, db_session, admin, make_principal):
        archived = await make_principal(archived=True)
        ledger = EnrollmentLedger(db_session)
        entry = await ledger.issue(CodeType.USER, issued_by=admin.id)

        with pytest.raises(EnrollmentError):
            await ledger.redeem(entry.code, candidate_principal_id=archived.id)

    async def test_concurrent_redemption_single_winner(self, db_session, session_maker, admin):
        """Two sessions race for one single-use code; exactly one wins."""
        entry = await EnrollmentLedger(db_session).issue(CodeType.USER, issued_by=admin.id)
        await db_session.commit()

        async def attempt():
            async with session_maker() as session:
                try:
                    principal = await EnrollmentLedger(session).redeem(entry.code)
                    await session.commit()
                    return principal.id
                except CodeAlreadyRedeemed:
                    await session.rollback()
                    return None

        results = await asyncio.gather(attempt(), attempt())

        winners = [r for r in results if r is not None]
        assert len(winners) == 1

        async with session_maker() as session:
            stored = await session.scalar(select(EnrollmentCode).where(EnrollmentCode.code == entry.code))
            assert stored.principal_id == winners[0]
            assert stored.current_uses == 1


class TestAdministration:
    """Deactivate, reset, list, lookup."""

    async def test_reset_allows_new_binding(self, db_session, admin, member):
        ledger = EnrollmentLedger(db_session)
        entry = await ledger.issue(CodeType.USER, issued_by=admin.id)
        first = await ledger.redeem(entry.code)

        await ledger.reset(entry.code, admin.id)
        assert await ledger.lookup_bound_principal(entry.code) is None

        second = await ledger.redeem(entry.code, candidate_principal_id=member.id)
        assert second.id == member.id != first.id
        assert AuditAction.CODE_RESET.value in await _actions(db_session)

    async def test_non_admin_cannot_deactivate(self, db_session, admin, member):
        ledger = EnrollmentLedger(db_session)
        entry = await ledger.issue(CodeType.USER, issued_by=admin.id)

        with pytest.raises(AuthorizationDenied):
            await ledger.deactivate(entry.code, member.id)

    async def test_deactivate_unknown_code(self, db_session, admin):
        with pytest.raises(CodeNotFound):
            await EnrollmentLedger(db_session).deactivate("NOPE2345", admin.id)

    async def test_lookup_bound_principal(self, db_session, admin):
        ledger = EnrollmentLedger(db_session)
        entry = await ledger.issue(CodeType.USER, issued_by=admin.id)
        assert await ledger.lookup_bound_principal(entry.code) is None

        principal = await ledger.redeem(entry.code)
        assert await ledger.lookup_bound_principal(entry.code.lower()) == principal.id

        await ledger.deactivate(entry.code, admin.id)
        assert await ledger.lookup_bound_principal(entry.code) is None

    async def test_list_codes_admin_only(self, db_session, admin, member):
        ledger = EnrollmentLedger(db_session)
        await ledger.issue(CodeType.USER, issued_by=admin.id)
        inactive = await ledger.issue(CodeType.USER, issued_by=admin.id)
        await ledger.deactivate(inactive.code, admin.id)

        assert len(await ledger.list_codes(admin.id)) == 2
        assert len(await ledger.list_codes(admin.id, include_inactive=False)) == 1
        assert await ledger.list_codes(member.id) == []

    async def test_seeded_admin_code_is_single_use_admin(self, db_session):
        entry = await EnrollmentLedger(db_session).seed_admin_code()
        assert entry.code_type == CodeType.ADMIN
        assert entry.max_uses == 1
        assert entry.issued_by is None

    async def test_seed_with_non_admin_issuer_denied(self, db_session, member):
        with pytest.raises(AuthorizationDenied):
            await EnrollmentLedger(db_session).seed_admin_code(issued_by=member.id)

    async def test_no_principal_left_behind_on_failed_redemption(self, session_maker):
        async with session_maker() as session:
            with pytest.raises(CodeNotFound):
                await EnrollmentLedger(session).redeem("ZZZZ9999XXXX")
            await session.rollback()

        async with session_maker() as session:
            count = len((await session.execute(select(Principal.id))).all())
            assert count == 0
