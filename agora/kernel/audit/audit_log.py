"""
Audit log service for privileged mutations.

Entries are written in a SAVEPOINT of the caller's transaction: they commit
and roll back together with the mutation, but a failed audit write never
rolls back or blocks the mutation itself. Failures are logged and counted.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import select, and_, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agora.kernel.models.audit_entry import AuditEntry, AuditAction
from agora.logging_config import get_logger, get_request_id

if TYPE_CHECKING:
    from agora.kernel.identity.context import PrincipalContext

logger = get_logger(__name__)

_failure_count = 0


def audit_failure_count() -> int:
    """Number of audit writes that failed since process start."""
    return _failure_count


def _note_failure() -> None:
    global _failure_count
    _failure_count += 1


class AuditLog:
    """
    Append-only audit trail.

    Usage:
        audit = AuditLog(session)
        await audit.record(
            actor_id=actor.principal_id,
            action=AuditAction.PRINCIPAL_TIER_CHANGED,
            resource_type="principal",
            resource_id=target.id,
            before={"tier": "standard"},
            after={"tier": "admin"},
        )
    """

    def __init__(self, session: AsyncSession, ip_address: Optional[str] = None):
        self.session = session
        self.ip_address = ip_address

    async def record(
        self,
        actor_id: Optional[uuid.UUID],
        action: AuditAction,
        resource_type: str,
        resource_id: Optional[uuid.UUID],
        before: Optional[Dict[str, Any]] = None,
        after: Optional[Dict[str, Any]] = None,
    ) -> Optional[AuditEntry]:
        """
        Record a privileged mutation.

        Returns the entry, or None when the write failed. Never raises for
        storage errors.
        """
        entry = AuditEntry(
            actor_id=actor_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            before=self._serialize_payload(before) if before is not None else None,
            after=self._serialize_payload(after) if after is not None else None,
            ip_address=self.ip_address,
            request_id=get_request_id(),
        )
        try:
            async with self.session.begin_nested():
                self.session.add(entry)
        except SQLAlchemyError:
            _note_failure()
            logger.exception(
                "Audit write failed",
                extra={
                    "action": action.value,
                    "resource_type": resource_type,
                    "resource_id": str(resource_id) if resource_id else None,
                    "audit_failures": _failure_count,
                },
            )
            return None
        return entry

    async def query(
        self,
        ctx: "PrincipalContext",
        is_admin: bool,
        actor_id: Optional[uuid.UUID] = None,
        action: Optional[AuditAction] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[uuid.UUID] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditEntry]:
        """
        Admin-only read surface, newest first.

        Non-admins get an empty list rather than an error.
        """
        if not (ctx.is_authenticated and is_admin):
            return []

        conditions = []
        if actor_id:
            conditions.append(AuditEntry.actor_id == actor_id)
        if action:
            conditions.append(AuditEntry.action == action)
        if resource_type:
            conditions.append(AuditEntry.resource_type == resource_type)
        if resource_id:
            conditions.append(AuditEntry.resource_id == resource_id)
        if since:
            conditions.append(AuditEntry.created_at >= since)
        if until:
            conditions.append(AuditEntry.created_at <= until)

        query = select(AuditEntry)
        if conditions:
            query = query.where(and_(*conditions))
        query = query.order_by(desc(AuditEntry.created_at)).offset(offset).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    def _serialize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Convert payload values to JSON-serializable types."""
        return {key: self._serialize_value(value) for key, value in payload.items()}

    def _serialize_value(self, value: Any) -> Any:
        if isinstance(value, uuid.UUID):
            return str(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, dict):
            return self._serialize_payload(value)
        if isinstance(value, (list, tuple)):
            return [self._serialize_value(v) for v in value]
        return value
