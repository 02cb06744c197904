"""
Kernel Data Models

Core SQLAlchemy models for the access kernel: principals, enrollment codes,
the escalation state, the gated deliberation resources and the audit trail.
"""

from agora.kernel.models.base import Base, TimestampMixin, ArchivableMixin, generate_uuid, enum_value
from agora.kernel.models.principal import Principal, PrincipalTier
from agora.kernel.models.enrollment import EnrollmentCode, CodeType
from agora.kernel.models.escalation import EscalationState, SINGLETON_ID
from agora.kernel.models.deliberation import (
    Deliberation,
    DeliberationStatus,
    Participant,
    ParticipantRole,
)
from agora.kernel.models.resources import (
    Message,
    MessageType,
    GraphNode,
    GraphNodeType,
    GraphRelationship,
    RelationshipType,
    AgentConfiguration,
    Document,
)
from agora.kernel.models.audit_entry import AuditEntry, AuditAction, AuditImmutableError

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "ArchivableMixin",
    "generate_uuid",
    "enum_value",
    # Identity
    "Principal",
    "PrincipalTier",
    "EnrollmentCode",
    "CodeType",
    "EscalationState",
    "SINGLETON_ID",
    # Deliberations
    "Deliberation",
    "DeliberationStatus",
    "Participant",
    "ParticipantRole",
    # Resources
    "Message",
    "MessageType",
    "GraphNode",
    "GraphNodeType",
    "GraphRelationship",
    "RelationshipType",
    "AgentConfiguration",
    "Document",
    # Audit
    "AuditEntry",
    "AuditAction",
    "AuditImmutableError",
]
