"""
Access rules, the permission service and the escalation guard.

The role oracle and participation index stay internal to this package.
"""

from agora.kernel.permissions.policies import (
    Decision,
    Operation,
    PolicyFacts,
    ResourceType,
    evaluate,
)
from agora.kernel.permissions.permission_service import PermissionService
from agora.kernel.permissions.escalation import (
    EscalationGuard,
    EscalationPhase,
    EscalationSnapshot,
)

__all__ = [
    "Decision",
    "Operation",
    "PolicyFacts",
    "ResourceType",
    "evaluate",
    "PermissionService",
    "EscalationGuard",
    "EscalationPhase",
    "EscalationSnapshot",
]
