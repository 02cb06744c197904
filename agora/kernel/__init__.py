"""
Access Kernel

Identity resolution and policy evaluation for the deliberation platform:
- Identity Resolver (bearer tokens, enrollment codes, canonical principal ids)
- Enrollment-Code Ledger (issuance, atomic redemption)
- Policy Evaluator (one rule per resource type)
- Escalation Guard (tier changes, bootstrap window)
- Audit Log (privileged mutations)

Architectural invariants:
- The principal context is passed explicitly to every check
- Admin and membership facts are read directly, never through a policy
- Tier changes only through the escalation guard
"""

from agora.kernel.errors import (
    AccessKernelError,
    AuthorizationDenied,
    CodeAlreadyRedeemed,
    CodeInactive,
    CodeNotFound,
    EnrollmentError,
    EscalationDenied,
    LastAdminError,
    PrincipalNotFound,
    RecursiveEvaluationError,
)

__all__ = [
    "AccessKernelError",
    "AuthorizationDenied",
    "CodeAlreadyRedeemed",
    "CodeInactive",
    "CodeNotFound",
    "EnrollmentError",
    "EscalationDenied",
    "LastAdminError",
    "PrincipalNotFound",
    "RecursiveEvaluationError",
]
