"""
Escalation guard around principal tier changes.

Two states, persisted in the escalation_state singleton row:

    NO_ADMIN_EXISTS  any tier change is accepted (bootstrap window)
    ADMIN_EXISTS     only a current admin may change tiers

The guard locks the singleton row before it reads anything, so two
concurrent bootstrap attempts serialize and only the first sees the
window open.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from agora.kernel.audit.audit_log import AuditLog
from agora.kernel.errors import EscalationDenied, LastAdminError, PrincipalNotFound
from agora.kernel.models.audit_entry import AuditAction
from agora.kernel.models.base import enum_value
from agora.kernel.models.escalation import EscalationState, SINGLETON_ID
from agora.kernel.models.principal import Principal, PrincipalTier
from agora.kernel.permissions.role_oracle import RoleOracle
from agora.logging_config import get_logger

logger = get_logger(__name__)


class EscalationPhase(str, Enum):
    NO_ADMIN_EXISTS = "no_admin_exists"
    ADMIN_EXISTS = "admin_exists"


@dataclass(frozen=True)
class EscalationSnapshot:
    """Read-only view of the guard state."""

    phase: EscalationPhase
    first_admin_id: Optional[uuid.UUID]
    bootstrapped_at: Optional[datetime]
    revision: int


class EscalationGuard:
    """
    The only code path that changes Principal.tier.

    Runs inside the caller's transaction; a denial raises before anything
    is written, so the caller's rollback leaves the database untouched.
    """

    def __init__(
        self,
        session: AsyncSession,
        oracle: Optional[RoleOracle] = None,
        audit: Optional[AuditLog] = None,
    ):
        self.session = session
        self.oracle = oracle or RoleOracle(session)
        self.audit = audit or AuditLog(session)

    async def lock(self) -> EscalationState:
        """
        Take the write lock on the singleton row, creating it if needed.

        Every change to the admin population (tier changes, archival) takes
        this lock before counting admins.
        """
        bump = (
            update(EscalationState)
            .where(EscalationState.id == SINGLETON_ID)
            .values(revision=EscalationState.revision + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(bump)

        if result.rowcount == 0:
            # First tier change on this database; seed from the principals table
            admin_exists = await self.oracle.admin_exists()
            try:
                async with self.session.begin_nested():
                    self.session.add(EscalationState(
                        id=SINGLETON_ID,
                        admin_exists=admin_exists,
                        bootstrapped_at=datetime.now(timezone.utc) if admin_exists else None,
                        revision=1,
                    ))
            except IntegrityError:
                # Another transaction created it first
                await self.session.execute(bump)

        state = await self.session.get(EscalationState, SINGLETON_ID, populate_existing=True)
        return state

    async def set_tier(
        self,
        actor_id: Optional[uuid.UUID],
        target_id: uuid.UUID,
        new_tier: PrincipalTier,
    ) -> Principal:
        """
        Change a principal's tier.

        Raises:
            EscalationDenied: actor is not an admin and an admin exists
            LastAdminError: the change would leave no active admin
            PrincipalNotFound: unknown target
        """
        new_tier = PrincipalTier(new_tier)
        state = await self.lock()

        if state.admin_exists:
            if not await self.oracle.is_admin(actor_id, use_cache=False):
                logger.warning(
                    "Escalation denied",
                    extra={
                        "actor_id": str(actor_id) if actor_id else None,
                        "target_id": str(target_id),
                        "new_tier": new_tier.value,
                    },
                )
                raise EscalationDenied("only an administrator may change tiers")

        target = await self.session.get(Principal, target_id, populate_existing=True)
        if target is None:
            raise PrincipalNotFound(f"principal {target_id} not found")
        if target.is_archived:
            raise EscalationDenied("cannot change the tier of an archived principal")

        old_tier = PrincipalTier(enum_value(target.tier))
        if old_tier == new_tier:
            return target

        if old_tier == PrincipalTier.ADMIN and await self.oracle.admin_count() <= 1:
            raise LastAdminError("cannot demote the last administrator")

        target.tier = new_tier
        bootstrapping = new_tier == PrincipalTier.ADMIN and not state.admin_exists
        if bootstrapping:
            state.admin_exists = True
            state.first_admin_id = target.id
            state.bootstrapped_at = datetime.now(timezone.utc)

        await self.session.flush()
        self.oracle.forget(target.id)

        await self.audit.record(
            actor_id=actor_id,
            action=AuditAction.PRINCIPAL_TIER_CHANGED,
            resource_type="principal",
            resource_id=target.id,
            before={"tier": old_tier},
            after={"tier": new_tier},
        )
        if bootstrapping:
            await self.audit.record(
                actor_id=actor_id,
                action=AuditAction.ESCALATION_BOOTSTRAPPED,
                resource_type="escalation_state",
                resource_id=None,
                before={"admin_exists": False},
                after={"admin_exists": True, "first_admin_id": target.id},
            )
            logger.info("Escalation window closed", extra={"first_admin_id": str(target.id)})

        logger.info(
            "Tier changed",
            extra={
                "actor_id": str(actor_id) if actor_id else None,
                "target_id": str(target.id),
                "old_tier": old_tier.value,
                "new_tier": new_tier.value,
            },
        )
        return target

    async def state(self) -> EscalationSnapshot:
        """Current state without taking the lock."""
        state = await self.session.get(EscalationState, SINGLETON_ID, populate_existing=True)
        if state is None:
            admin_exists = await self.oracle.admin_exists()
            return EscalationSnapshot(
                phase=EscalationPhase.ADMIN_EXISTS if admin_exists else EscalationPhase.NO_ADMIN_EXISTS,
                first_admin_id=None,
                bootstrapped_at=None,
                revision=0,
            )
        return EscalationSnapshot(
            phase=EscalationPhase.ADMIN_EXISTS if state.admin_exists else EscalationPhase.NO_ADMIN_EXISTS,
            first_admin_id=state.first_admin_id,
            bootstrapped_at=state.bootstrapped_at,
            revision=state.revision,
        )
