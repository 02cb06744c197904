"""
Audit trail of privileged mutations.
"""

from agora.kernel.audit.audit_log import AuditLog, audit_failure_count

__all__ = [
    "AuditLog",
    "audit_failure_count",
]
