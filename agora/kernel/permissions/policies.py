"""
Access rules, one function per resource type.

Rules are pure: they only look at the PolicyFacts gathered for the request
and at the row being checked. First matching clause wins. Gathering facts
(tier, memberships, parent deliberation) is PermissionService's job.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional

from agora.kernel.models.base import enum_value
from agora.kernel.models.deliberation import Deliberation, DeliberationStatus, Participant
from agora.kernel.models.resources import (
    AgentConfiguration,
    Document,
    GraphNode,
    GraphRelationship,
    Message,
)


class Operation(str, Enum):
    """Operations a policy decides on."""
    READ = "read"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def is_write(self) -> bool:
        return self != Operation.READ


class ResourceType(str, Enum):
    """Gated resource types."""
    DELIBERATION = "deliberation"
    PARTICIPANT = "participant"
    MESSAGE = "message"
    GRAPH_NODE = "graph_node"
    GRAPH_RELATIONSHIP = "graph_relationship"
    AGENT_CONFIGURATION = "agent_configuration"
    DOCUMENT = "document"


MODEL_FOR: Dict[ResourceType, type] = {
    ResourceType.DELIBERATION: Deliberation,
    ResourceType.PARTICIPANT: Participant,
    ResourceType.MESSAGE: Message,
    ResourceType.GRAPH_NODE: GraphNode,
    ResourceType.GRAPH_RELATIONSHIP: GraphRelationship,
    ResourceType.AGENT_CONFIGURATION: AgentConfiguration,
    ResourceType.DOCUMENT: Document,
}

_TYPE_FOR_MODEL = {model: rtype for rtype, model in MODEL_FOR.items()}


def resource_type_of(resource: Any) -> ResourceType:
    """Resource type of an ORM row. Raises TypeError for ungated objects."""
    try:
        return _TYPE_FOR_MODEL[type(resource)]
    except KeyError:
        raise TypeError(f"{type(resource).__name__} is not a gated resource") from None


@dataclass(frozen=True)
class Decision:
    """Outcome of a policy check."""

    allowed: bool
    reason: str

    @classmethod
    def allow(cls, reason: str) -> "Decision":
        return cls(True, reason)

    @classmethod
    def deny(cls, reason: str) -> "Decision":
        return cls(False, reason)

    def __bool__(self) -> bool:
        return self.allowed


@dataclass(frozen=True)
class PolicyFacts:
    """Everything a rule may know about the requesting principal."""

    principal_id: Optional[uuid.UUID]
    is_admin: bool = False
    participation: FrozenSet[uuid.UUID] = field(default_factory=frozenset)
    is_system: bool = False

    @property
    def authenticated(self) -> bool:
        return self.principal_id is not None

    def participates(self, deliberation_id: Optional[uuid.UUID]) -> bool:
        return deliberation_id is not None and deliberation_id in self.participation

    def is_self(self, owner_id: Optional[uuid.UUID]) -> bool:
        return owner_id is not None and owner_id == self.principal_id


def deliberation_policy(
    facts: PolicyFacts,
    deliberation: Deliberation,
    operation: Operation,
    parent: Optional[Deliberation] = None,
) -> Decision:
    """
    Visibility ladder.

    draft and archived are admin-only; active is open when public and
    otherwise to its facilitator and participants; concluded is limited to
    participants. Only admins create or delete deliberations; the
    facilitator may update their own.
    """
    if facts.is_admin:
        return Decision.allow("admin")

    if operation in (Operation.INSERT, Operation.DELETE):
        return Decision.deny("only admins may create or delete deliberations")
    if operation == Operation.UPDATE:
        if facts.is_self(deliberation.facilitator_id):
            return Decision.allow("facilitator of own deliberation")
        return Decision.deny("only admins and the facilitator may modify a deliberation")

    status = deliberation.status
    if status == DeliberationStatus.ACTIVE:
        if deliberation.is_public:
            return Decision.allow("public active deliberation")
        if facts.is_self(deliberation.facilitator_id):
            return Decision.allow("facilitator of active deliberation")
        if facts.participates(deliberation.id):
            return Decision.allow("participant of active deliberation")
    elif status == DeliberationStatus.CONCLUDED:
        if facts.participates(deliberation.id):
            return Decision.allow("participant of concluded deliberation")
    return Decision.deny(f"{enum_value(status)} deliberation not visible")


def participant_policy(
    facts: PolicyFacts,
    participant: Participant,
    operation: Operation,
    parent: Optional[Deliberation] = None,
) -> Decision:
    if facts.is_admin:
        return Decision.allow("admin")

    is_facilitator = parent is not None and facts.is_self(parent.facilitator_id)

    if operation == Operation.READ:
        if facts.is_self(participant.principal_id):
            return Decision.allow("own membership")
        if facts.participates(participant.deliberation_id):
            return Decision.allow("peer in same deliberation")
        return Decision.deny("not a member of this deliberation")

    if operation == Operation.INSERT:
        if is_facilitator:
            return Decision.allow("facilitator adds member")
        if facts.is_self(participant.principal_id):
            if parent is not None and parent.status == DeliberationStatus.ACTIVE:
                return Decision.allow("self-join of active deliberation")
            return Decision.deny("deliberation is not open for joining")
        return Decision.deny("cannot add other principals")

    if operation == Operation.UPDATE:
        if is_facilitator:
            return Decision.allow("facilitator")
        return Decision.deny("only admins and the facilitator may change memberships")

    if facts.is_self(participant.principal_id):
        return Decision.allow("leaving own membership")
    return Decision.deny("only admins and the member may remove a membership")


def message_policy(
    facts: PolicyFacts,
    message: Message,
    operation: Operation,
    parent: Optional[Deliberation] = None,
) -> Decision:
    if operation == Operation.READ:
        if facts.is_admin:
            return Decision.allow("admin")
        if facts.is_self(message.owner_id):
            return Decision.allow("owner")
        if facts.participates(message.deliberation_id):
            return Decision.allow("participant")
        return Decision.deny("not a participant")

    # Agent and system messages are written only through the system context
    if message.owner_id is None:
        return Decision.deny("message has no human owner")

    if operation == Operation.INSERT:
        if not facts.is_self(message.owner_id):
            return Decision.deny("owner must be the requesting principal")
        if not facts.participates(message.deliberation_id):
            return Decision.deny("not a participant")
        return Decision.allow("participant posts own message")

    if facts.is_self(message.owner_id):
        return Decision.allow("owner")
    if facts.is_admin:
        return Decision.allow("admin")
    return Decision.deny("not the owner")


def graph_policy(
    facts: PolicyFacts,
    row: Any,
    operation: Operation,
    parent: Optional[Deliberation] = None,
) -> Decision:
    """Shared by graph nodes and relationships."""
    if operation == Operation.READ:
        if facts.is_admin:
            return Decision.allow("admin")
        if facts.participates(row.deliberation_id):
            return Decision.allow("participant")
        return Decision.deny("not a participant")

    if row.owner_id is None:
        return Decision.deny("AI-authored graph entries are read-only")
    if facts.is_admin:
        return Decision.allow("admin")
    if not facts.participates(row.deliberation_id):
        return Decision.deny("not a participant")
    if operation == Operation.INSERT and not facts.is_self(row.owner_id):
        return Decision.deny("owner must be the requesting principal")
    return Decision.allow("participant")


def agent_configuration_policy(
    facts: PolicyFacts,
    config: AgentConfiguration,
    operation: Operation,
    parent: Optional[Deliberation] = None,
) -> Decision:
    scoped = not config.is_global

    if operation == Operation.READ:
        if not scoped:
            return Decision.allow("global configuration")
        if config.is_default:
            return Decision.allow("default configuration")
        if facts.is_admin:
            return Decision.allow("admin")
        if facts.participates(config.deliberation_id):
            return Decision.allow("participant")
        return Decision.deny("not a participant")

    if facts.is_admin:
        return Decision.allow("admin")
    if not scoped:
        return Decision.deny("global configurations are admin-only")
    if facts.participates(config.deliberation_id) and facts.is_self(config.created_by):
        return Decision.allow("participant manages own configuration")
    return Decision.deny("only the creating participant may modify this configuration")


def document_policy(
    facts: PolicyFacts,
    document: Document,
    operation: Operation,
    parent: Optional[Deliberation] = None,
) -> Decision:
    if operation == Operation.INSERT:
        if facts.is_self(document.uploaded_by):
            return Decision.allow("uploader")
        return Decision.deny("uploader must be the requesting principal")

    if facts.is_admin:
        return Decision.allow("admin")
    if facts.is_self(document.uploaded_by):
        return Decision.allow("uploader")
    return Decision.deny("not the uploader")


Rule = Callable[[PolicyFacts, Any, Operation, Optional[Deliberation]], Decision]

POLICIES: Dict[ResourceType, Rule] = {
    ResourceType.DELIBERATION: deliberation_policy,
    ResourceType.PARTICIPANT: participant_policy,
    ResourceType.MESSAGE: message_policy,
    ResourceType.GRAPH_NODE: graph_policy,
    ResourceType.GRAPH_RELATIONSHIP: graph_policy,
    ResourceType.AGENT_CONFIGURATION: agent_configuration_policy,
    ResourceType.DOCUMENT: document_policy,
}


def evaluate(
    facts: PolicyFacts,
    resource_type: ResourceType,
    resource: Any,
    operation: Operation,
    parent: Optional[Deliberation] = None,
) -> Decision:
    """Apply the rule for resource_type after the context-wide clauses."""
    if facts.is_system:
        return Decision.allow("system context")
    if operation.is_write and not facts.authenticated:
        return Decision.deny("unauthenticated principals cannot write")
    return POLICIES[resource_type](facts, resource, operation, parent)
