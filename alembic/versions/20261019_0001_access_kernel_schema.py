"""Access kernel schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Principals
    op.create_table(
        'principals',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('tier', sa.String(20), nullable=False, default='standard', index=True),
        sa.Column('is_archived', sa.Boolean(), nullable=False, default=False, index=True),
        sa.Column('archived_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('archived_by', sa.Uuid(), nullable=True),
        sa.Column('archive_reason', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Enrollment codes
    op.create_table(
        'enrollment_codes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('code', sa.String(32), unique=True, nullable=False),
        sa.Column('code_type', sa.String(20), nullable=False, default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, default=True),
        sa.Column('is_used', sa.Boolean(), nullable=False, default=False),
        sa.Column('max_uses', sa.Integer(), nullable=True, default=1),
        sa.Column('current_uses', sa.Integer(), nullable=False, default=0),
        sa.Column('principal_id', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True, index=True),
        sa.Column('redeemed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('issued_by', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Escalation guard singleton
    op.create_table(
        'escalation_state',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('admin_exists', sa.Boolean(), nullable=False, default=False),
        sa.Column('first_admin_id', sa.Uuid(), nullable=True),
        sa.Column('bootstrapped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revision', sa.Integer(), nullable=False, default=0),
    )

    # Deliberations
    op.create_table(
        'deliberations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, default='draft', index=True),
        sa.Column('is_public', sa.Boolean(), nullable=False, default=False),
        sa.Column('facilitator_id', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True, index=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'participants',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('principal_id', sa.Uuid(), sa.ForeignKey('principals.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('deliberation_id', sa.Uuid(), sa.ForeignKey('deliberations.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('role', sa.String(20), nullable=False, default='participant'),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint('principal_id', 'deliberation_id', name='uq_participants_principal_deliberation'),
    )

    # Gated resources
    op.create_table(
        'messages',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('deliberation_id', sa.Uuid(), sa.ForeignKey('deliberations.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('owner_id', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True, index=True),
        sa.Column('message_type', sa.String(20), nullable=False, default='user'),
        sa.Column('content', sa.Text(), nullable=False, default=''),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'graph_nodes',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('deliberation_id', sa.Uuid(), sa.ForeignKey('deliberations.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('owner_id', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True),
        sa.Column('node_type', sa.String(20), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'graph_relationships',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('deliberation_id', sa.Uuid(), sa.ForeignKey('deliberations.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('owner_id', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True),
        sa.Column('source_node_id', sa.Uuid(), sa.ForeignKey('graph_nodes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('target_node_id', sa.Uuid(), sa.ForeignKey('graph_nodes.id', ondelete='CASCADE'), nullable=False),
        sa.Column('relationship_type', sa.String(20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_graph_relationships_source_target', 'graph_relationships', ['source_node_id', 'target_node_id'])

    op.create_table(
        'agent_configurations',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('deliberation_id', sa.Uuid(), sa.ForeignKey('deliberations.id', ondelete='CASCADE'), nullable=True, index=True),
        sa.Column('created_by', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('agent_type', sa.String(50), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False, default=False),
        sa.Column('settings', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'documents',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('deliberation_id', sa.Uuid(), sa.ForeignKey('deliberations.id', ondelete='SET NULL'), nullable=True, index=True),
        sa.Column('uploaded_by', sa.Uuid(), sa.ForeignKey('principals.id'), nullable=True, index=True),
        sa.Column('filename', sa.String(500), nullable=False),
        sa.Column('content_type', sa.String(100), nullable=False, default='application/octet-stream'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Audit trail
    op.create_table(
        'audit_entries',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('actor_id', sa.Uuid(), nullable=True, index=True),
        sa.Column('action', sa.String(100), nullable=False, index=True),
        sa.Column('resource_type', sa.String(50), nullable=False),
        sa.Column('resource_id', sa.Uuid(), nullable=True),
        sa.Column('before', sa.JSON(), nullable=True),
        sa.Column('after', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('request_id', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )
    op.create_index('ix_audit_entries_resource', 'audit_entries', ['resource_type', 'resource_id'])
    op.create_index('ix_audit_entries_actor_time', 'audit_entries', ['actor_id', 'created_at'])


def downgrade() -> None:
    op.drop_table('audit_entries')
    op.drop_table('documents')
    op.drop_table('agent_configurations')
    op.drop_table('graph_relationships')
    op.drop_table('graph_nodes')
    op.drop_table('messages')
    op.drop_table('participants')
    op.drop_table('deliberations')
    op.drop_table('escalation_state')
    op.drop_table('enrollment_codes')
    op.drop_table('principals')
