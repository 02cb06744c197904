"""
Identity: principal contexts, bearer tokens, enrollment codes and resolution.
"""

from agora.kernel.identity.context import AuthMethod, PrincipalContext, canonical_principal_id
from agora.kernel.identity.jwt import JWTManager, get_jwt_manager
from agora.kernel.identity.identity_service import IdentityService
from agora.kernel.identity.enrollment import EnrollmentLedger, generate_code
from agora.kernel.identity.resolver import IdentityResolver, RequestCredentials

__all__ = [
    "AuthMethod",
    "PrincipalContext",
    "canonical_principal_id",
    "JWTManager",
    "get_jwt_manager",
    "IdentityService",
    "EnrollmentLedger",
    "generate_code",
    "IdentityResolver",
    "RequestCredentials",
]
