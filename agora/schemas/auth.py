"""
Identity schemas.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class RedeemRequest(BaseModel):
    """Enrollment code redemption request."""

    code: str = Field(..., min_length=4, max_length=32)

    @field_validator("code")
    @classmethod
    def normalize_code(cls, v: str) -> str:
        v = v.strip().upper()
        if not v.isalnum():
            raise ValueError("Code must be alphanumeric")
        return v


class PrincipalResponse(BaseModel):
    """Principal profile response."""

    id: uuid.UUID
    display_name: Optional[str] = None
    tier: str
    is_archived: bool
    created_at: datetime

    class Config:
        from_attributes = True


class RedeemResponse(BaseModel):
    """Bearer token issued for the redeemed code's principal."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    principal: PrincipalResponse


class MeResponse(BaseModel):
    """The resolved principal context of the request."""

    authenticated: bool
    principal_id: Optional[uuid.UUID] = None
    auth_method: str
    is_admin: bool = False
