"""
Pydantic schemas for API request/response validation.
"""

from agora.schemas.auth import (
    RedeemRequest,
    RedeemResponse,
    PrincipalResponse,
    MeResponse,
)
from agora.schemas.authorization import (
    AuthorizeRequest,
    AuthorizeResponse,
)
from agora.schemas.admin import (
    CodeIssueRequest,
    CodeResponse,
    TierChangeRequest,
    ArchiveRequest,
    AuditEntryResponse,
    EscalationStateResponse,
)
from agora.schemas.common import (
    ErrorResponse,
    HealthResponse,
)

__all__ = [
    # Identity
    "RedeemRequest",
    "RedeemResponse",
    "PrincipalResponse",
    "MeResponse",
    # Authorization
    "AuthorizeRequest",
    "AuthorizeResponse",
    # Admin
    "CodeIssueRequest",
    "CodeResponse",
    "TierChangeRequest",
    "ArchiveRequest",
    "AuditEntryResponse",
    "EscalationStateResponse",
    # Common
    "ErrorResponse",
    "HealthResponse",
]
