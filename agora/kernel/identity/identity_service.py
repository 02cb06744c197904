"""
Identity service for principal lifecycle operations.
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from agora.kernel.audit.audit_log import AuditLog
from agora.kernel.errors import AuthorizationDenied, LastAdminError, PrincipalNotFound
from agora.kernel.models.audit_entry import AuditAction
from agora.kernel.models.principal import Principal, PrincipalTier
from agora.kernel.permissions.escalation import EscalationGuard
from agora.kernel.permissions.role_oracle import RoleOracle
from agora.logging_config import get_logger

logger = get_logger(__name__)


class IdentityService:
    """
    Service for principal identity operations.

    Handles provisioning, lookup and archival. Tier changes go through
    EscalationGuard, never through here; archival takes the guard's lock
    because it changes who counts as an admin.
    """

    def __init__(
        self,
        session: AsyncSession,
        oracle: Optional[RoleOracle] = None,
        audit: Optional[AuditLog] = None,
        guard: Optional[EscalationGuard] = None,
    ):
        self.session = session
        self.oracle = oracle or RoleOracle(session)
        self.audit = audit or AuditLog(session)
        self.guard = guard or EscalationGuard(session, oracle=self.oracle, audit=self.audit)

    async def get_principal(self, principal_id: uuid.UUID) -> Optional[Principal]:
        """Get a principal by ID."""
        query = select(Principal).where(Principal.id == principal_id)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def ensure_principal(
        self,
        principal_id: uuid.UUID,
        display_name: Optional[str] = None,
    ) -> Principal:
        """
        Return the principal, creating it at standard tier on first sight.

        Idempotent. A concurrent first provisioning of the same id is
        absorbed by re-reading the winner's row.
        """
        principal = await self.get_principal(principal_id)
        if principal is not None:
            return principal

        principal = Principal(
            id=principal_id,
            display_name=display_name.strip() if display_name else None,
            tier=PrincipalTier.STANDARD,
            is_archived=False,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(principal)
        except IntegrityError:
            existing = await self.get_principal(principal_id)
            if existing is None:
                raise
            return existing

        await self.audit.record(
            actor_id=principal_id,
            action=AuditAction.PRINCIPAL_PROVISIONED,
            resource_type="principal",
            resource_id=principal_id,
            after={"tier": PrincipalTier.STANDARD},
        )
        logger.info("Principal provisioned", extra={"principal_id": str(principal_id)})
        return principal

    async def archive_principal(
        self,
        principal_id: uuid.UUID,
        archived_by: Optional[uuid.UUID],
        reason: Optional[str] = None,
    ) -> Principal:
        """
        Soft-delete a principal (admin only).

        An archived principal resolves as unauthenticated and is never admin.
        The last active admin cannot be archived.
        """
        await self.guard.lock()
        if not await self.oracle.is_admin(archived_by, use_cache=False):
            raise AuthorizationDenied("only administrators may archive principals", resource_type="principal")

        principal = await self.session.get(Principal, principal_id, populate_existing=True)
        if principal is None:
            raise PrincipalNotFound(f"principal {principal_id} not found")
        if principal.is_archived:
            return principal

        if principal.tier == PrincipalTier.ADMIN and await self.oracle.admin_count() <= 1:
            raise LastAdminError("cannot archive the last administrator")

        principal.is_archived = True
        principal.archived_at = datetime.now(timezone.utc)
        principal.archived_by = archived_by
        principal.archive_reason = reason
        await self.session.flush()
        self.oracle.forget(principal_id)

        await self.audit.record(
            actor_id=archived_by,
            action=AuditAction.PRINCIPAL_ARCHIVED,
            resource_type="principal",
            resource_id=principal_id,
            before={"is_archived": False},
            after={"is_archived": True, "reason": reason},
        )
        return principal

    async def unarchive_principal(
        self,
        principal_id: uuid.UUID,
        unarchived_by: Optional[uuid.UUID],
    ) -> Principal:
        """Restore an archived principal (admin only)."""
        await self.guard.lock()
        if not await self.oracle.is_admin(unarchived_by, use_cache=False):
            raise AuthorizationDenied("only administrators may unarchive principals", resource_type="principal")

        principal = await self.session.get(Principal, principal_id, populate_existing=True)
        if principal is None:
            raise PrincipalNotFound(f"principal {principal_id} not found")
        if not principal.is_archived:
            return principal

        previous_reason = principal.archive_reason
        principal.is_archived = False
        principal.archived_at = None
        principal.archived_by = None
        principal.archive_reason = None
        await self.session.flush()
        self.oracle.forget(principal_id)

        await self.audit.record(
            actor_id=unarchived_by,
            action=AuditAction.PRINCIPAL_UNARCHIVED,
            resource_type="principal",
            resource_id=principal_id,
            before={"is_archived": True, "reason": previous_reason},
            after={"is_archived": False},
        )
        return principal
