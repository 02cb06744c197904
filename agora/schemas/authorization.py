"""
Permission check schemas.
"""

import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator

from agora.kernel.permissions.policies import Operation, ResourceType


class AuthorizeRequest(BaseModel):
    """
    Permission check for one resource.

    Read, update and delete name an existing row by resource_id. Insert
    describes the proposed row in attributes; update may carry the changed
    attributes.
    """

    resource_type: ResourceType
    resource_id: Optional[uuid.UUID] = None
    operation: Operation
    attributes: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_reference(self) -> "AuthorizeRequest":
        if self.operation != Operation.INSERT and self.resource_id is None:
            raise ValueError("resource_id is required for read, update and delete")
        return self


class AuthorizeResponse(BaseModel):
    """Policy decision."""

    allowed: bool
    reason: str
