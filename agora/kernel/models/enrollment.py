"""
Enrollment codes: redeemable tokens that bind to a principal.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from agora.kernel.models.base import Base, TimestampMixin, generate_uuid


class CodeType(str, Enum):
    """What redeeming the code grants."""
    USER = "user"
    ADMIN = "admin"


class EnrollmentCode(Base, TimestampMixin):
    """
    Enrollment code record.

    A bound code never re-binds to another principal unless reset.
    Single-use codes (max_uses=1) flip is_used on the first bind; multi-use
    codes count current_uses until max_uses (NULL means unlimited).
    """

    __tablename__ = "enrollment_codes"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    code: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        nullable=False,
    )
    code_type: Mapped[CodeType] = mapped_column(
        String(20),
        default=CodeType.USER,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )
    is_used: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    max_uses: Mapped[Optional[int]] = mapped_column(
        Integer,
        default=1,
        nullable=True,
    )
    current_uses: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    # Binding
    principal_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,
        index=True,
    )
    redeemed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Issuance
    issued_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        # SQLite hands back naive datetimes
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at <= datetime.now(timezone.utc)

    def __repr__(self) -> str:
        return f"<EnrollmentCode {self.code_type} uses={self.current_uses}/{self.max_uses}>"
