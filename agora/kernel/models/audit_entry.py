"""
Append-only audit trail of privileged mutations.

Entries are written inside the mutation's transaction and never updated or
deleted. Policy checks never read this table.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, String, Text, func, Index, JSON, Uuid, event
from sqlalchemy.orm import Mapped, mapped_column

from agora.kernel.models.base import Base, generate_uuid


class AuditAction(str, Enum):
    """Action tags recorded in the audit trail."""

    # Principal lifecycle
    PRINCIPAL_PROVISIONED = "principal.provisioned"
    PRINCIPAL_TIER_CHANGED = "principal.tier_changed"
    PRINCIPAL_ARCHIVED = "principal.archived"
    PRINCIPAL_UNARCHIVED = "principal.unarchived"

    # Escalation guard
    ESCALATION_BOOTSTRAPPED = "escalation.bootstrapped"

    # Enrollment codes
    CODE_ISSUED = "code.issued"
    CODE_SEEDED = "code.seeded"
    CODE_REDEEMED = "code.redeemed"
    CODE_DEACTIVATED = "code.deactivated"
    CODE_RESET = "code.reset"


class AuditEntry(Base):
    """
    Immutable audit record.

    before/after hold JSON snapshots of the affected row.
    """

    __tablename__ = "audit_entries"
    __mapper_args__ = {"eager_defaults": True}

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )

    # Actor (NULL for system and out-of-band operations)
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
        index=True,
    )
    action: Mapped[AuditAction] = mapped_column(
        String(100),
        nullable=False,
        index=True,
    )

    # Affected resource
    resource_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    resource_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
    )

    before: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
    )
    after: Mapped[Optional[dict]] = mapped_column(
        JSON,
        nullable=True,
    )

    # Request metadata
    ip_address: Mapped[Optional[str]] = mapped_column(
        String(45),  # IPv6 max length
        nullable=True,
    )
    request_id: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )

    __table_args__ = (
        Index("ix_audit_entries_resource", "resource_type", "resource_id"),
        Index("ix_audit_entries_actor_time", "actor_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AuditEntry {self.action} {self.resource_type}:{self.resource_id}>"


class AuditImmutableError(RuntimeError):
    """Raised when code tries to change or remove an audit entry."""


@event.listens_for(AuditEntry, "before_update")
def _reject_update(mapper, connection, target):
    raise AuditImmutableError("audit entries are append-only")


@event.listens_for(AuditEntry, "before_delete")
def _reject_delete(mapper, connection, target):
    raise AuditImmutableError("audit entries are append-only")
