"""
Persisted state of the escalation guard.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Integer, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from agora.kernel.models.base import Base

SINGLETON_ID = 1


class EscalationState(Base):
    """
    Singleton row (id=1).

    admin_exists flips once, when the first principal becomes admin, and never
    flips back. Tier mutations lock this row before reading it.
    """

    __tablename__ = "escalation_state"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        default=SINGLETON_ID,
    )
    admin_exists: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    first_admin_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        nullable=True,
    )
    bootstrapped_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    # Bumped by every lock acquisition
    revision: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<EscalationState admin_exists={self.admin_exists} rev={self.revision}>"
