"""
Request-scoped principal context and canonical id normalisation.

Every policy check receives a PrincipalContext as an explicit argument.
"""

import re
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

# Legacy prefixes seen on principal ids issued by older clients
_ID_PREFIXES = ("principal:", "user:", "urn:uuid:")
_HEX32 = re.compile(r"^[0-9a-fA-F]{32}$")


class AuthMethod(str, Enum):
    """How the principal of a request was established."""
    BEARER = "bearer"
    ENROLLMENT_CODE = "enrollment_code"
    ANONYMOUS = "anonymous"
    SYSTEM = "system"


def canonical_principal_id(raw: Any) -> Optional[uuid.UUID]:
    """
    Normalise any accepted principal id format to a UUID.

    Accepts uuid.UUID, hyphenated or bare hex strings in any case, braces and
    the legacy prefixes. Returns None for anything else.
    """
    if isinstance(raw, uuid.UUID):
        return raw
    if not isinstance(raw, str):
        return None

    value = raw.strip()
    lowered = value.lower()
    for prefix in _ID_PREFIXES:
        if lowered.startswith(prefix):
            value = value[len(prefix):]
            break
    value = value.strip("{}")

    if not value:
        return None
    if _HEX32.match(value):
        return uuid.UUID(hex=value)
    try:
        return uuid.UUID(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class PrincipalContext:
    """
    The resolved identity of one request.

    The anonymous context has no principal id, standard tier and empty
    participation. The system context is the elevated path for AI
    collaborators and is never produced by credential resolution.
    """

    principal_id: Optional[uuid.UUID]
    auth_method: AuthMethod

    @classmethod
    def anonymous(cls) -> "PrincipalContext":
        return cls(principal_id=None, auth_method=AuthMethod.ANONYMOUS)

    @classmethod
    def system(cls) -> "PrincipalContext":
        return cls(principal_id=None, auth_method=AuthMethod.SYSTEM)

    @classmethod
    def for_principal(
        cls,
        principal_id: uuid.UUID,
        auth_method: AuthMethod = AuthMethod.BEARER,
    ) -> "PrincipalContext":
        return cls(principal_id=principal_id, auth_method=auth_method)

    @property
    def is_authenticated(self) -> bool:
        return self.principal_id is not None and self.auth_method not in (
            AuthMethod.ANONYMOUS,
            AuthMethod.SYSTEM,
        )

    @property
    def is_system(self) -> bool:
        return self.auth_method == AuthMethod.SYSTEM

    def __str__(self) -> str:
        if self.is_system:
            return "system"
        if not self.is_authenticated:
            return "anonymous"
        return f"{self.auth_method.value}:{self.principal_id}"
