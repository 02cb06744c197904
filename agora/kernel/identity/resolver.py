"""
Identity resolver: raw credentials to a PrincipalContext.
"""

import uuid
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agora.kernel.identity.context import AuthMethod, PrincipalContext, canonical_principal_id
from agora.kernel.identity.enrollment import EnrollmentLedger
from agora.kernel.identity.jwt import JWTManager, get_jwt_manager
from agora.kernel.models.principal import Principal
from agora.logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RequestCredentials:
    """Credentials extracted from a request. Either may be missing."""

    bearer_token: Optional[str] = None
    enrollment_code: Optional[str] = None


class IdentityResolver:
    """
    Resolve credentials to a canonical principal.

    Never raises for bad credentials and never writes: invalid, unknown
    or archived identities resolve to the anonymous context. The bearer
    token wins when both credentials are present; if it does not verify,
    the enrollment code is tried.
    """

    def __init__(
        self,
        session: AsyncSession,
        jwt_manager: Optional[JWTManager] = None,
        ledger: Optional[EnrollmentLedger] = None,
    ):
        self.session = session
        self.jwt_manager = jwt_manager or get_jwt_manager()
        self.ledger = ledger or EnrollmentLedger(session)

    async def resolve(self, credentials: RequestCredentials) -> PrincipalContext:
        if credentials.bearer_token:
            principal_id = self._from_bearer(credentials.bearer_token)
            if principal_id is not None:
                return await self._context_for(principal_id, AuthMethod.BEARER)

        if credentials.enrollment_code:
            principal_id = await self.ledger.lookup_bound_principal(credentials.enrollment_code)
            if principal_id is not None:
                return await self._context_for(principal_id, AuthMethod.ENROLLMENT_CODE)
            logger.debug("Enrollment code did not resolve")

        return PrincipalContext.anonymous()

    def _from_bearer(self, token: str) -> Optional[uuid.UUID]:
        payload = self.jwt_manager.verify_access_token(token)
        if payload is None:
            logger.debug("Bearer token rejected")
            return None
        principal_id = canonical_principal_id(payload.sub)
        if principal_id is None:
            logger.debug("Bearer subject is not a principal id", extra={"sub": payload.sub})
        return principal_id

    async def _context_for(self, principal_id: uuid.UUID, method: AuthMethod) -> PrincipalContext:
        query = select(Principal.is_archived).where(Principal.id == principal_id)
        result = await self.session.execute(query)
        is_archived = result.scalar_one_or_none()
        if is_archived:
            logger.info("Archived principal resolved as anonymous", extra={"principal_id": str(principal_id)})
            return PrincipalContext.anonymous()
        # Unknown ids still resolve; the API boundary provisions them
        return PrincipalContext.for_principal(principal_id, method)
