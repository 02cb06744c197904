"""
Gated resources of the deliberation platform.

Only the columns the policies need are modelled here: the owning principal
(NULL for system or AI-authored rows) and the deliberation association.
"""

import uuid
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, String, Text, Uuid, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from agora.kernel.models.base import Base, TimestampMixin, generate_uuid


class MessageType(str, Enum):
    """Who produced a message."""
    USER = "user"
    AGENT = "agent"
    SYSTEM = "system"


class GraphNodeType(str, Enum):
    """Argument graph node kinds."""
    ISSUE = "issue"
    POSITION = "position"
    ARGUMENT = "argument"


class RelationshipType(str, Enum):
    """Links between graph nodes."""
    SUPPORTS = "supports"
    OPPOSES = "opposes"
    RESPONDS_TO = "responds_to"
    RELATES_TO = "relates_to"


class Message(Base, TimestampMixin):
    """Discussion message in a deliberation."""

    __tablename__ = "messages"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    deliberation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("deliberations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    owner_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,
        index=True,
    )
    message_type: Mapped[MessageType] = mapped_column(
        String(20),
        default=MessageType.USER,
        nullable=False,
    )
    content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
    )


class GraphNode(Base, TimestampMixin):
    """Issue, position or argument in the argument graph."""

    __tablename__ = "graph_nodes"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    deliberation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("deliberations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    owner_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,
    )
    node_type: Mapped[GraphNodeType] = mapped_column(
        String(20),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )


class GraphRelationship(Base, TimestampMixin):
    """Directed link between two graph nodes of one deliberation."""

    __tablename__ = "graph_relationships"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    deliberation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("deliberations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    owner_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,
    )
    source_node_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("graph_nodes.id", ondelete="CASCADE"),
        nullable=False,
    )
    target_node_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("graph_nodes.id", ondelete="CASCADE"),
        nullable=False,
    )
    relationship_type: Mapped[RelationshipType] = mapped_column(
        String(20),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_graph_relationships_source_target", "source_node_id", "target_node_id"),
    )


class AgentConfiguration(Base, TimestampMixin):
    """AI agent configuration. deliberation_id NULL means global default."""

    __tablename__ = "agent_configurations"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    deliberation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("deliberations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    agent_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    is_default: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    settings: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
    )

    @property
    def is_global(self) -> bool:
        return self.deliberation_id is None


class Document(Base, TimestampMixin):
    """Uploaded document. Storage lives outside the kernel."""

    __tablename__ = "documents"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    deliberation_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("deliberations.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    uploaded_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("principals.id"),
        nullable=True,
        index=True,
    )
    filename: Mapped[str] = mapped_column(
        String(500),
        nullable=False,
    )
    content_type: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        default="application/octet-stream",
    )
