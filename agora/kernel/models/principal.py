"""
Principal model for identity management.
"""

import uuid
from enum import Enum
from typing import Optional

from sqlalchemy import String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from agora.kernel.models.base import ArchivableMixin, Base, TimestampMixin, generate_uuid


class PrincipalTier(str, Enum):
    """Privilege tiers. Mutated only through the escalation guard."""
    STANDARD = "standard"
    ADMIN = "admin"


class Principal(Base, TimestampMixin, ArchivableMixin):
    """Canonical identity every policy decision is made about."""

    __tablename__ = "principals"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    display_name: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
    )
    tier: Mapped[PrincipalTier] = mapped_column(
        String(20),
        default=PrincipalTier.STANDARD,
        nullable=False,
        index=True,
    )
    archive_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )

    @property
    def is_admin(self) -> bool:
        return self.tier == PrincipalTier.ADMIN and not self.is_archived

    def __repr__(self) -> str:
        return f"<Principal {self.id} tier={self.tier}>"
