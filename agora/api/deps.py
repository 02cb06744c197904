"""
FastAPI dependencies for identity resolution, kernel services and database sessions.

Service dependencies are cached per request by FastAPI, so every service in a
request shares one RoleOracle and one AuditLog.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from agora.config import get_settings
from agora.database import async_session_maker
from agora.kernel.audit.audit_log import AuditLog
from agora.kernel.identity.context import PrincipalContext
from agora.kernel.identity.enrollment import EnrollmentLedger
from agora.kernel.identity.identity_service import IdentityService
from agora.kernel.identity.resolver import IdentityResolver, RequestCredentials
from agora.kernel.permissions.escalation import EscalationGuard
from agora.kernel.permissions.permission_service import PermissionService
from agora.kernel.permissions.role_oracle import RoleOracle


# Security scheme
security = HTTPBearer(auto_error=False)


async def get_db() -> AsyncSession:
    """Dependency that yields database sessions."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


DbSession = Annotated[AsyncSession, Depends(get_db)]


def get_request_id(request: Request) -> Optional[str]:
    """Get request correlation ID (set by RequestIdMiddleware)."""
    return getattr(request.state, "request_id", None)


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_role_oracle(db: DbSession) -> RoleOracle:
    return RoleOracle(db)


Oracle = Annotated[RoleOracle, Depends(get_role_oracle)]


def get_audit_log(request: Request, db: DbSession) -> AuditLog:
    return AuditLog(db, ip_address=get_client_ip(request))


Audit = Annotated[AuditLog, Depends(get_audit_log)]


def get_escalation_guard(db: DbSession, oracle: Oracle, audit: Audit) -> EscalationGuard:
    return EscalationGuard(db, oracle=oracle, audit=audit)


Guard = Annotated[EscalationGuard, Depends(get_escalation_guard)]


def get_identity_service(db: DbSession, oracle: Oracle, audit: Audit, guard: Guard) -> IdentityService:
    return IdentityService(db, oracle=oracle, audit=audit, guard=guard)


def get_ledger(db: DbSession, oracle: Oracle, audit: Audit, guard: Guard) -> EnrollmentLedger:
    return EnrollmentLedger(db, oracle=oracle, audit=audit, guard=guard)


def get_permission_service(db: DbSession, oracle: Oracle) -> PermissionService:
    return PermissionService(db, oracle=oracle)


Identity = Annotated[IdentityService, Depends(get_identity_service)]
Ledger = Annotated[EnrollmentLedger, Depends(get_ledger)]
Permissions = Annotated[PermissionService, Depends(get_permission_service)]


async def get_principal_context(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: DbSession,
    ledger: Ledger,
    identity: Identity,
) -> PrincipalContext:
    """
    Resolve the current principal.

    Never fails: missing or bad credentials give the anonymous context.
    An authenticated principal seen for the first time is provisioned here.
    """
    settings = get_settings()
    resolver = IdentityResolver(db, ledger=ledger)
    ctx = await resolver.resolve(
        RequestCredentials(
            bearer_token=credentials.credentials if credentials else None,
            enrollment_code=request.headers.get(settings.enrollment_header),
        )
    )
    if ctx.is_authenticated:
        await identity.ensure_principal(ctx.principal_id)
    return ctx


CurrentPrincipal = Annotated[PrincipalContext, Depends(get_principal_context)]


async def require_authenticated(ctx: CurrentPrincipal) -> PrincipalContext:
    """Require a resolved principal or raise 401."""
    if not ctx.is_authenticated:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return ctx


AuthenticatedPrincipal = Annotated[PrincipalContext, Depends(require_authenticated)]
