"""
Administration schemas: enrollment codes, tiers, archival, audit, escalation.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from agora.kernel.models.enrollment import CodeType
from agora.kernel.models.principal import PrincipalTier


class CodeIssueRequest(BaseModel):
    """Issue a user enrollment code."""

    code_type: CodeType = CodeType.USER
    max_uses: Optional[int] = Field(1, ge=1)
    expires_at: Optional[datetime] = None


class CodeResponse(BaseModel):
    """Enrollment code as seen by admins."""

    id: uuid.UUID
    code: str
    code_type: str
    is_active: bool
    is_used: bool
    max_uses: Optional[int] = None
    current_uses: int
    principal_id: Optional[uuid.UUID] = None
    redeemed_at: Optional[datetime] = None
    issued_by: Optional[uuid.UUID] = None
    expires_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class TierChangeRequest(BaseModel):
    """Change a principal's tier."""

    tier: PrincipalTier


class ArchiveRequest(BaseModel):
    """Archive a principal."""

    reason: Optional[str] = Field(None, max_length=1000)


class AuditEntryResponse(BaseModel):
    """Audit trail entry."""

    id: uuid.UUID
    actor_id: Optional[uuid.UUID] = None
    action: str
    resource_type: str
    resource_id: Optional[uuid.UUID] = None
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    request_id: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class EscalationStateResponse(BaseModel):
    """Escalation guard state."""

    phase: str
    first_admin_id: Optional[uuid.UUID] = None
    bootstrapped_at: Optional[datetime] = None
    revision: int
