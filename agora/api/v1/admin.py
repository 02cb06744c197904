"""
Administration endpoints.

Authorization is decided by the kernel services, not here: the ledger and
identity service check the actor's tier, the escalation guard decides tier
changes, and list endpoints return nothing to non-admins.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status

from agora.api.deps import AuthenticatedPrincipal, Audit, Guard, Identity, Ledger, Oracle
from agora.kernel.models.audit_entry import AuditAction
from agora.kernel.models.enrollment import CodeType
from agora.schemas.admin import (
    ArchiveRequest,
    AuditEntryResponse,
    CodeIssueRequest,
    CodeResponse,
    EscalationStateResponse,
    TierChangeRequest,
)
from agora.schemas.auth import PrincipalResponse

router = APIRouter()


# Enrollment codes

@router.post("/codes", response_model=CodeResponse, status_code=status.HTTP_201_CREATED)
async def issue_code(
    data: CodeIssueRequest,
    ctx: AuthenticatedPrincipal,
    ledger: Ledger,
):
    """Issue a user enrollment code. Admin codes are only seeded out of band."""
    try:
        entry = await ledger.issue(
            data.code_type,
            issued_by=ctx.principal_id,
            max_uses=data.max_uses,
            expires_at=data.expires_at,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    return CodeResponse.model_validate(entry)


@router.get("/codes", response_model=List[CodeResponse])
async def list_codes(
    ctx: AuthenticatedPrincipal,
    ledger: Ledger,
    code_type: Optional[CodeType] = None,
    include_inactive: bool = True,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """List enrollment codes, newest first."""
    entries = await ledger.list_codes(
        ctx.principal_id,
        code_type=code_type,
        include_inactive=include_inactive,
        limit=limit,
        offset=offset,
    )
    return [CodeResponse.model_validate(e) for e in entries]


@router.post("/codes/{code}/deactivate", response_model=CodeResponse)
async def deactivate_code(code: str, ctx: AuthenticatedPrincipal, ledger: Ledger):
    entry = await ledger.deactivate(code, ctx.principal_id)
    return CodeResponse.model_validate(entry)


@router.post("/codes/{code}/reset", response_model=CodeResponse)
async def reset_code(code: str, ctx: AuthenticatedPrincipal, ledger: Ledger):
    """Clear a code's binding so it can be redeemed again."""
    entry = await ledger.reset(code, ctx.principal_id)
    return CodeResponse.model_validate(entry)


# Principals

@router.put("/principals/{principal_id}/tier", response_model=PrincipalResponse)
async def set_tier(
    principal_id: uuid.UUID,
    data: TierChangeRequest,
    ctx: AuthenticatedPrincipal,
    guard: Guard,
):
    """
    Change a principal's tier.

    Open to every resolved principal: while no admin exists anyone may
    promote, afterwards only admins.
    """
    principal = await guard.set_tier(ctx.principal_id, principal_id, data.tier)
    return PrincipalResponse.model_validate(principal)


@router.post("/principals/{principal_id}/archive", response_model=PrincipalResponse)
async def archive_principal(
    principal_id: uuid.UUID,
    ctx: AuthenticatedPrincipal,
    identity: Identity,
    data: Optional[ArchiveRequest] = None,
):
    principal = await identity.archive_principal(
        principal_id,
        archived_by=ctx.principal_id,
        reason=data.reason if data else None,
    )
    return PrincipalResponse.model_validate(principal)


@router.post("/principals/{principal_id}/unarchive", response_model=PrincipalResponse)
async def unarchive_principal(
    principal_id: uuid.UUID,
    ctx: AuthenticatedPrincipal,
    identity: Identity,
):
    principal = await identity.unarchive_principal(principal_id, unarchived_by=ctx.principal_id)
    return PrincipalResponse.model_validate(principal)


# Audit and escalation state

@router.get("/audit", response_model=List[AuditEntryResponse])
async def query_audit(
    ctx: AuthenticatedPrincipal,
    audit: Audit,
    oracle: Oracle,
    actor_id: Optional[uuid.UUID] = None,
    action: Optional[AuditAction] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[uuid.UUID] = None,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
):
    """Audit entries, newest first. Empty for non-admins."""
    entries = await audit.query(
        ctx,
        is_admin=await oracle.is_admin(ctx.principal_id),
        actor_id=actor_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        since=since,
        until=until,
        limit=limit,
        offset=offset,
    )
    return [AuditEntryResponse.model_validate(e) for e in entries]


@router.get("/escalation", response_model=EscalationStateResponse)
async def escalation_state(ctx: AuthenticatedPrincipal, guard: Guard):
    snapshot = await guard.state()
    return EscalationStateResponse(
        phase=snapshot.phase.value,
        first_admin_id=snapshot.first_admin_id,
        bootstrapped_at=snapshot.bootstrapped_at,
        revision=snapshot.revision,
    )
