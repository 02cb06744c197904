"""
Permission check endpoint for collaborators.
"""

from fastapi import APIRouter

from agora.api.deps import CurrentPrincipal, Permissions
from agora.schemas.authorization import AuthorizeRequest, AuthorizeResponse

router = APIRouter()


@router.post("", response_model=AuthorizeResponse)
async def authorize(
    data: AuthorizeRequest,
    ctx: CurrentPrincipal,
    permissions: Permissions,
):
    """
    May the current principal perform the operation on the resource?

    Always answers 200; a missing or invisible resource is a denial with
    reason "not found".
    """
    decision = await permissions.authorize(
        ctx,
        data.resource_type,
        data.resource_id,
        data.operation,
        attributes=data.attributes,
    )
    return AuthorizeResponse(allowed=decision.allowed, reason=decision.reason)
