"""
Permission service: gathers facts and applies the access rules.
"""

import uuid
from contextvars import ContextVar
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.ext.asyncio import AsyncSession

from agora.kernel.errors import AuthorizationDenied, RecursiveEvaluationError
from agora.kernel.identity.context import PrincipalContext, canonical_principal_id
from agora.kernel.models.deliberation import Deliberation
from agora.kernel.permissions.participation import ParticipationIndex
from agora.kernel.permissions.policies import (
    MODEL_FOR,
    Decision,
    Operation,
    PolicyFacts,
    ResourceType,
    evaluate,
    resource_type_of,
)
from agora.kernel.permissions.role_oracle import RoleOracle
from agora.logging_config import get_logger

logger = get_logger(__name__)

# Set while a rule is being evaluated in the current task
_evaluating: ContextVar[bool] = ContextVar("policy_evaluating", default=False)

# Resource types whose rule needs the parent deliberation row
_NEEDS_PARENT = {ResourceType.PARTICIPANT}

# Candidate attributes holding principal or deliberation ids
_ID_ATTRIBUTES = {
    "id", "deliberation_id", "principal_id", "owner_id", "created_by",
    "uploaded_by", "facilitator_id", "source_node_id", "target_node_id",
}


class PermissionService:
    """
    Policy evaluator for gated resources.

    One instance per request: the role oracle and participation index it
    holds cache their answers for the lifetime of the instance.

    Reads degrade (invisible rows are dropped, missing rows deny with
    "not found"); writes raise AuthorizationDenied through require_write.
    """

    def __init__(
        self,
        session: AsyncSession,
        oracle: Optional[RoleOracle] = None,
        participation: Optional[ParticipationIndex] = None,
    ):
        self.session = session
        self.oracle = oracle or RoleOracle(session)
        self.participation = participation or ParticipationIndex(session)

    async def facts_for(self, ctx: PrincipalContext) -> PolicyFacts:
        if ctx.is_system:
            return PolicyFacts(principal_id=None, is_system=True)
        if not ctx.is_authenticated:
            return PolicyFacts(principal_id=None)
        return PolicyFacts(
            principal_id=ctx.principal_id,
            is_admin=await self.oracle.is_admin(ctx.principal_id),
            participation=await self.participation.deliberations_for(ctx.principal_id),
        )

    async def decide(
        self,
        ctx: PrincipalContext,
        resource: Any,
        operation: Operation,
    ) -> Decision:
        """Decision for an already loaded (or candidate) row."""
        if _evaluating.get():
            raise RecursiveEvaluationError(
                f"policy evaluation re-entered while checking {type(resource).__name__}"
            )
        token = _evaluating.set(True)
        try:
            resource_type = resource_type_of(resource)
            facts = await self.facts_for(ctx)
            parent = None
            if resource_type in _NEEDS_PARENT and resource.deliberation_id is not None:
                parent = await self.session.get(Deliberation, resource.deliberation_id)
            decision = evaluate(facts, resource_type, resource, operation, parent)
        finally:
            _evaluating.reset(token)

        logger.debug(
            "Policy decision",
            extra={
                "principal": str(ctx),
                "resource_type": resource_type.value,
                "operation": operation.value,
                "allowed": decision.allowed,
                "reason": decision.reason,
            },
        )
        return decision

    async def can_read(self, ctx: PrincipalContext, resource: Any) -> bool:
        return (await self.decide(ctx, resource, Operation.READ)).allowed

    async def can_write(
        self,
        ctx: PrincipalContext,
        resource: Any,
        operation: Operation,
    ) -> bool:
        if not operation.is_write:
            raise ValueError(f"{operation.value} is not a write operation")
        return (await self.decide(ctx, resource, operation)).allowed

    async def require_write(
        self,
        ctx: PrincipalContext,
        resource: Any,
        operation: Operation,
    ) -> None:
        """Raise AuthorizationDenied unless the write is allowed."""
        if not operation.is_write:
            raise ValueError(f"{operation.value} is not a write operation")
        decision = await self.decide(ctx, resource, operation)
        if not decision.allowed:
            resource_type = resource_type_of(resource).value
            logger.info(
                "Write denied",
                extra={
                    "principal": str(ctx),
                    "resource_type": resource_type,
                    "operation": operation.value,
                    "reason": decision.reason,
                },
            )
            raise AuthorizationDenied(decision.reason, resource_type=resource_type)

    async def filter_readable(
        self,
        ctx: PrincipalContext,
        resources: Iterable[Any],
    ) -> List[Any]:
        """Rows the context may read, in their original order."""
        visible = []
        for resource in resources:
            if await self.can_read(ctx, resource):
                visible.append(resource)
        return visible

    async def authorize(
        self,
        ctx: PrincipalContext,
        resource_type: ResourceType,
        resource_ref: Optional[uuid.UUID],
        operation: Operation,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> Decision:
        """
        Permission check by reference, for collaborators.

        Existing rows are loaded by id; a missing row denies with "not found"
        whatever the reason. Inserts are checked against a candidate row
        built from attributes. An update carrying attributes must also be
        allowed on the row as it would read afterwards.
        """
        if operation == Operation.INSERT:
            candidate = build_candidate(resource_type, attributes or {})
            return await self.decide(ctx, candidate, operation)

        resource = None
        if resource_ref is not None:
            resource = await self.session.get(MODEL_FOR[resource_type], resource_ref)
        if resource is None:
            return Decision.deny("not found")

        decision = await self.decide(ctx, resource, operation)
        if operation == Operation.READ and not decision.allowed:
            return Decision.deny("not found")
        if operation == Operation.UPDATE and decision.allowed and attributes:
            decision = await self._check_updated(ctx, resource_type, resource, attributes)
        return decision

    async def _check_updated(
        self,
        ctx: PrincipalContext,
        resource_type: ResourceType,
        resource: Any,
        attributes: Dict[str, Any],
    ) -> Decision:
        updated = build_candidate(resource_type, attributes, base=resource)
        decision = await self.decide(ctx, updated, Operation.UPDATE)
        moved = getattr(updated, "deliberation_id", None) != getattr(resource, "deliberation_id", None)
        if decision.allowed and moved:
            # Moving a row into another deliberation counts as inserting it there
            decision = await self.decide(ctx, updated, Operation.INSERT)
        return decision


def build_candidate(
    resource_type: ResourceType,
    attributes: Dict[str, Any],
    base: Any = None,
) -> Any:
    """
    Transient row for an insert or update check.

    With base, the candidate starts as a copy of that row and attributes
    overwrite it; the primary key is never overwritten. Unknown attributes
    are ignored. Id attributes accept every principal id format the
    resolver accepts.
    """
    model = MODEL_FOR[resource_type]
    columns = {column.key for column in sa_inspect(model).column_attrs}
    values = {}
    if base is not None:
        loaded = sa_inspect(base).dict
        values = {key: loaded[key] for key in columns if key in loaded}
    for key, value in attributes.items():
        if key not in columns or (base is not None and key == "id"):
            continue
        if key in _ID_ATTRIBUTES and value is not None:
            value = canonical_principal_id(value)
        values[key] = value
    return model(**values)
