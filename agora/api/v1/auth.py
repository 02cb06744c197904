"""
Identity endpoints: code redemption and the current principal.
"""

from fastapi import APIRouter

from agora.api.deps import CurrentPrincipal, Ledger, Oracle
from agora.kernel.identity.jwt import get_jwt_manager
from agora.schemas.auth import MeResponse, PrincipalResponse, RedeemRequest, RedeemResponse

router = APIRouter()


@router.post("/redeem", response_model=RedeemResponse)
async def redeem(
    data: RedeemRequest,
    ctx: CurrentPrincipal,
    ledger: Ledger,
):
    """
    Redeem an enrollment code.

    An authenticated caller binds the code to themselves; otherwise the
    code's bound principal is reused or a new principal is provisioned.
    The returned bearer token resolves to the same principal as the code.
    """
    candidate = ctx.principal_id if ctx.is_authenticated else None
    principal = await ledger.redeem(data.code, candidate_principal_id=candidate)

    issued = get_jwt_manager().issue(principal.id)
    return RedeemResponse(
        access_token=issued.access_token,
        token_type=issued.token_type,
        expires_in=issued.expires_in,
        principal=PrincipalResponse.model_validate(principal),
    )


@router.get("/me", response_model=MeResponse)
async def me(ctx: CurrentPrincipal, oracle: Oracle):
    """The resolved principal context. Unauthenticated requests get the anonymous context."""
    return MeResponse(
        authenticated=ctx.is_authenticated,
        principal_id=ctx.principal_id,
        auth_method=ctx.auth_method.value,
        is_admin=await oracle.is_admin(ctx.principal_id),
    )
