"""
Deliberation and participation models.

Owned by the feature domain; the kernel only reads them to gate access.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint, func, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from agora.kernel.models.base import Base, TimestampMixin, generate_uuid


class DeliberationStatus(str, Enum):
    """Deliberation lifecycle status."""
    DRAFT = "draft"
    ACTIVE = "active"
    CONCLUDED = "concluded"
    ARCHIVED = "archived"


class ParticipantRole(str, Enum):
    """Role of a principal within one deliberation."""
    PARTICIPANT = "participant"
    FACILITATOR = "facilitator"
    OBSERVER = "observer"


class Deliberation(Base, TimestampMixin):
    """A deliberation. Visibility depends on status and is_public together."""

    __tablename__ = "deliberations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    status: Mapped[DeliberationStatus] = mapped_column(
        String(20),
        default=DeliberationStatus.DRAFT,
        nullable=False,
        index=True,
    )
    is_public: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    facilitator_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<Deliberation {self.id} {self.status} public={self.is_public}>"


class Participant(Base):
    """Membership of one principal in one deliberation."""

    __tablename__ = "participants"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    principal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("principals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    deliberation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("deliberations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[ParticipantRole] = mapped_column(
        String(20),
        default=ParticipantRole.PARTICIPANT,
        nullable=False,
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("principal_id", "deliberation_id", name="uq_participants_principal_deliberation"),
    )

    def __repr__(self) -> str:
        return f"<Participant {self.principal_id} in {self.deliberation_id}>"
