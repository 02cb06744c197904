"""
Enrollment-code ledger.

Codes are issued by admins (user codes) or seeded out of band (admin codes),
and bind to exactly one principal on first redemption. Redemption is a
single conditional UPDATE, so two concurrent redemptions of a single-use code
cannot both succeed.
"""

import secrets
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import and_, case, desc, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from agora.config import get_settings
from agora.kernel.audit.audit_log import AuditLog
from agora.kernel.errors import (
    AuthorizationDenied,
    CodeAlreadyRedeemed,
    CodeInactive,
    CodeNotFound,
    EnrollmentError,
)
from agora.kernel.identity.identity_service import IdentityService
from agora.kernel.models.audit_entry import AuditAction
from agora.kernel.models.base import enum_value
from agora.kernel.models.enrollment import CodeType, EnrollmentCode
from agora.kernel.models.principal import Principal, PrincipalTier
from agora.kernel.permissions.escalation import EscalationGuard
from agora.kernel.permissions.role_oracle import RoleOracle
from agora.logging_config import get_logger

logger = get_logger(__name__)

# No O, 0, 1, I or L
CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


def has_weak_pattern(code: str) -> bool:
    """True for three identical characters in a row or an ascending run like ABC or 234."""
    for a, b, c in zip(code, code[1:], code[2:]):
        if a == b == c:
            return True
        if ord(b) - ord(a) == 1 and ord(c) - ord(b) == 1:
            return True
    return False


def generate_code(length: Optional[int] = None) -> str:
    """Random code from CODE_ALPHABET without weak patterns."""
    length = length or get_settings().enrollment_code_length
    while True:
        code = "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))
        if not has_weak_pattern(code):
            return code


def normalize_code(code: str) -> str:
    return code.strip().upper()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class EnrollmentLedger:
    """
    Issuance, redemption and administration of enrollment codes.

    Usage:
        ledger = EnrollmentLedger(session)
        principal = await ledger.redeem("K7MPQ2XRTW9C")
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
        self.identity = IdentityService(session, oracle=self.oracle, audit=self.audit, guard=self.guard)

    async def issue(
        self,
        code_type: CodeType,
        issued_by: Optional[uuid.UUID],
        max_uses: Optional[int] = 1,
        expires_at: Optional[datetime] = None,
    ) -> EnrollmentCode:
        """
        Issue a user code.

        Raises:
            ValueError: admin codes or a bad max_uses
            AuthorizationDenied: issuer is not an admin
        """
        if CodeType(code_type) == CodeType.ADMIN:
            raise ValueError("admin codes are only created by seed_admin_code")
        if not await self.oracle.is_admin(issued_by, use_cache=False):
            raise AuthorizationDenied("only administrators may issue codes", resource_type="enrollment_code")

        entry = await self._create(CodeType.USER, issued_by, max_uses, expires_at)
        await self.audit.record(
            actor_id=issued_by,
            action=AuditAction.CODE_ISSUED,
            resource_type="enrollment_code",
            resource_id=entry.id,
            after={"code_type": entry.code_type, "max_uses": entry.max_uses, "expires_at": entry.expires_at},
        )
        return entry

    async def seed_admin_code(
        self,
        issued_by: Optional[uuid.UUID] = None,
        expires_at: Optional[datetime] = None,
    ) -> EnrollmentCode:
        """
        Create a single-use admin code.

        Without issued_by, redeeming it only grants admin while no admin
        exists. With an admin issuer, redemption is authorized by that admin.
        """
        if issued_by is not None and not await self.oracle.is_admin(issued_by, use_cache=False):
            raise AuthorizationDenied("only administrators may issue admin codes", resource_type="enrollment_code")

        entry = await self._create(CodeType.ADMIN, issued_by, 1, expires_at)
        await self.audit.record(
            actor_id=issued_by,
            action=AuditAction.CODE_SEEDED,
            resource_type="enrollment_code",
            resource_id=entry.id,
            after={"code_type": entry.code_type, "expires_at": entry.expires_at},
        )
        logger.info("Admin code seeded", extra={"code_id": str(entry.id)})
        return entry

    async def _create(
        self,
        code_type: CodeType,
        issued_by: Optional[uuid.UUID],
        max_uses: Optional[int],
        expires_at: Optional[datetime],
    ) -> EnrollmentCode:
        if max_uses is not None and max_uses < 1:
            raise ValueError("max_uses must be at least 1 or None for unlimited")

        attempts = get_settings().enrollment_code_max_attempts
        for attempt in range(1, attempts + 1):
            entry = EnrollmentCode(
                code=generate_code(),
                code_type=code_type,
                is_active=True,
                is_used=False,
                max_uses=max_uses,
                current_uses=0,
                issued_by=issued_by,
                expires_at=_as_utc(expires_at),
            )
            try:
                async with self.session.begin_nested():
                    self.session.add(entry)
            except IntegrityError:
                logger.warning("Enrollment code collision", extra={"attempt": attempt})
                continue
            return entry

        raise EnrollmentError(f"no unique code after {attempts} attempts")

    async def redeem(
        self,
        code: str,
        candidate_principal_id: Optional[uuid.UUID] = None,
    ) -> Principal:
        """
        Bind a code to a principal and return the principal.

        Without a candidate, a code already bound resolves to its principal
        and an unbound code provisions a new one. Admin codes then raise the
        principal to admin through the escalation guard.

        Raises:
            CodeNotFound, CodeInactive, CodeAlreadyRedeemed
            EscalationDenied: admin code redeemed outside the bootstrap window
                without an admin issuer
        """
        code = normalize_code(code)

        if candidate_principal_id is None:
            candidate_principal_id = await self._bound_principal_any_state(code)
        if candidate_principal_id is None:
            principal = await self.identity.ensure_principal(uuid.uuid4())
        else:
            principal = await self.identity.ensure_principal(candidate_principal_id)
        if principal.is_archived:
            raise EnrollmentError("archived principals cannot redeem codes", code=code)

        now = datetime.now(timezone.utc)
        claim = (
            update(EnrollmentCode)
            .where(
                and_(
                    EnrollmentCode.code == code,
                    EnrollmentCode.is_active == True,  # noqa: E712
                    EnrollmentCode.is_used == False,  # noqa: E712
                    or_(EnrollmentCode.expires_at.is_(None), EnrollmentCode.expires_at > now),
                    or_(
                        EnrollmentCode.max_uses.is_(None),
                        EnrollmentCode.current_uses < EnrollmentCode.max_uses,
                    ),
                    or_(
                        EnrollmentCode.principal_id.is_(None),
                        EnrollmentCode.principal_id == principal.id,
                    ),
                )
            )
            .values(
                principal_id=principal.id,
                current_uses=EnrollmentCode.current_uses + 1,
                is_used=case(
                    (
                        and_(
                            EnrollmentCode.max_uses.is_not(None),
                            EnrollmentCode.current_uses + 1 >= EnrollmentCode.max_uses,
                        ),
                        True,
                    ),
                    else_=False,
                ),
                redeemed_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(claim)

        if result.rowcount == 0:
            await self._raise_for_unclaimable(code)

        entry = await self._get(code)
        logger.info(
            "Code redeemed",
            extra={
                "code_id": str(entry.id),
                "principal_id": str(principal.id),
                "code_type": enum_value(entry.code_type),
                "uses": entry.current_uses,
            },
        )
        await self.audit.record(
            actor_id=principal.id,
            action=AuditAction.CODE_REDEEMED,
            resource_type="enrollment_code",
            resource_id=entry.id,
            after={"principal_id": principal.id, "current_uses": entry.current_uses, "is_used": entry.is_used},
        )

        if enum_value(entry.code_type) == CodeType.ADMIN.value:
            actor_id = entry.issued_by or principal.id
            principal = await self.guard.set_tier(actor_id, principal.id, PrincipalTier.ADMIN)

        return principal

    async def _raise_for_unclaimable(self, code: str) -> None:
        entry = await self._get(code)
        if entry is None:
            raise CodeNotFound("enrollment code not found", code=code)
        if not entry.is_active or entry.is_expired:
            raise CodeInactive("enrollment code is inactive or expired", code=code)
        raise CodeAlreadyRedeemed("enrollment code already redeemed", code=code)

    async def _get(self, code: str) -> Optional[EnrollmentCode]:
        query = (
            select(EnrollmentCode)
            .where(EnrollmentCode.code == code)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def _bound_principal_any_state(self, code: str) -> Optional[uuid.UUID]:
        query = select(EnrollmentCode.principal_id).where(EnrollmentCode.code == code)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def lookup_bound_principal(self, code: str) -> Optional[uuid.UUID]:
        """
        Principal a code is bound to, for credential resolution.

        Only active, unexpired, bound codes resolve. Never writes.
        """
        now = datetime.now(timezone.utc)
        query = select(EnrollmentCode.principal_id).where(
            and_(
                EnrollmentCode.code == normalize_code(code),
                EnrollmentCode.is_active == True,  # noqa: E712
                EnrollmentCode.principal_id.is_not(None),
                or_(EnrollmentCode.expires_at.is_(None), EnrollmentCode.expires_at > now),
            )
        )
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def _require_admin(self, actor_id: Optional[uuid.UUID]) -> None:
        if not await self.oracle.is_admin(actor_id, use_cache=False):
            raise AuthorizationDenied("only administrators may manage codes", resource_type="enrollment_code")

    async def _get_or_raise(self, code: str) -> EnrollmentCode:
        entry = await self._get(normalize_code(code))
        if entry is None:
            raise CodeNotFound("enrollment code not found", code=code)
        return entry

    async def deactivate(self, code: str, actor_id: Optional[uuid.UUID]) -> EnrollmentCode:
        """Stop a code from redeeming or resolving."""
        await self._require_admin(actor_id)
        entry = await self._get_or_raise(code)

        was_active = entry.is_active
        entry.is_active = False
        await self.session.flush()

        await self.audit.record(
            actor_id=actor_id,
            action=AuditAction.CODE_DEACTIVATED,
            resource_type="enrollment_code",
            resource_id=entry.id,
            before={"is_active": was_active},
            after={"is_active": False},
        )
        return entry

    async def reset(self, code: str, actor_id: Optional[uuid.UUID]) -> EnrollmentCode:
        """Clear binding and counters so the code can bind anew."""
        await self._require_admin(actor_id)
        entry = await self._get_or_raise(code)

        before = {
            "principal_id": entry.principal_id,
            "current_uses": entry.current_uses,
            "is_used": entry.is_used,
            "is_active": entry.is_active,
        }
        entry.principal_id = None
        entry.current_uses = 0
        entry.is_used = False
        entry.redeemed_at = None
        entry.is_active = True
        await self.session.flush()

        await self.audit.record(
            actor_id=actor_id,
            action=AuditAction.CODE_RESET,
            resource_type="enrollment_code",
            resource_id=entry.id,
            before=before,
            after={"principal_id": None, "current_uses": 0, "is_used": False, "is_active": True},
        )
        return entry

    async def list_codes(
        self,
        actor_id: Optional[uuid.UUID],
        code_type: Optional[CodeType] = None,
        include_inactive: bool = True,
        limit: int = 100,
        offset: int = 0,
    ) -> List[EnrollmentCode]:
        """Codes newest first. Non-admins get an empty list."""
        if not await self.oracle.is_admin(actor_id):
            return []

        conditions = []
        if code_type:
            conditions.append(EnrollmentCode.code_type == CodeType(code_type))
        if not include_inactive:
            conditions.append(EnrollmentCode.is_active == True)  # noqa: E712

        query = select(EnrollmentCode)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(desc(EnrollmentCode.created_at)).offset(offset).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())
