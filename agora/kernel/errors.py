"""
Error taxonomy for the access kernel.

Unauthenticated requests are not an error here: they resolve to the
anonymous PrincipalContext and are evaluated as maximally restricted.
"""

from typing import Optional


class AccessKernelError(Exception):
    """Base class for every error raised by the kernel."""


class AuthorizationDenied(AccessKernelError):
    """A resolved principal lacks permission for a write."""

    def __init__(self, reason: str, resource_type: Optional[str] = None):
        super().__init__(reason)
        self.reason = reason
        self.resource_type = resource_type


class EscalationDenied(AccessKernelError):
    """Tier mutation attempted by a non-admin outside the bootstrap window."""


class LastAdminError(EscalationDenied):
    """The mutation would leave the system without an active administrator."""


class EnrollmentError(AccessKernelError):
    """Base class for enrollment-code ledger failures."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class CodeNotFound(EnrollmentError):
    """No enrollment code with this value exists."""


class CodeInactive(EnrollmentError):
    """The code was deactivated or has expired."""


class CodeAlreadyRedeemed(EnrollmentError):
    """The code is used up or bound to a different principal."""


class PrincipalNotFound(AccessKernelError):
    """No principal with this id exists."""


class RecursiveEvaluationError(AccessKernelError):
    """A policy re-entered its own evaluation. Always a defect."""
