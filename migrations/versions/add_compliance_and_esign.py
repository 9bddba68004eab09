"""add compliance rule sets, document envelopes, document events and audit events

Revision ID: c1d2e3f4a5b6
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision = 'c1d2e3f4a5b6'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    conn = op.get_bind()
    inspector = inspect(conn)
    tables = inspector.get_table_names()

    # Versioned, jurisdiction-scoped rule sets (org_id NULL = platform-wide)
    if 'compliance_rule_sets' not in tables:
        op.create_table(
            'compliance_rule_sets',
            sa.Column('id', sa.String(length=32), nullable=False),
            sa.Column('org_id', sa.String(length=64), nullable=True),
            sa.Column('jurisdiction', sa.String(length=2), nullable=False),
            sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
            sa.Column('effective_from', sa.DateTime(), nullable=False),
            sa.Column('effective_to', sa.DateTime(), nullable=True),
            sa.Column('rules_json', sa.JSON(), nullable=False),
            sa.Column('metadata_json', sa.JSON(), nullable=True),
            sa.Column('not_legal_advice_notice', sa.String(length=500), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.PrimaryKeyConstraint('id', name='pk_compliance_rule_sets'),
            sa.UniqueConstraint('org_id', 'jurisdiction', 'version', name='uq_rule_set_version')
        )
        op.create_index('ix_rule_sets_scope', 'compliance_rule_sets',
                        ['jurisdiction', 'org_id', 'effective_from'], unique=False)

    # Canonical envelope records
    if 'document_envelopes' not in tables:
        op.create_table(
            'document_envelopes',
            sa.Column('id', sa.String(length=32), nullable=False),
            sa.Column('org_id', sa.String(length=64), nullable=False),
            sa.Column('deal_id', sa.String(length=64), nullable=False),
            sa.Column('provider', sa.String(length=32), nullable=False),
            sa.Column('provider_envelope_id', sa.String(length=128), nullable=True),
            sa.Column('request_id', sa.String(length=120), nullable=True),
            sa.Column('status', sa.String(length=20), nullable=False),
            sa.Column('recipients_json', sa.JSON(), nullable=False),
            sa.Column('documents_json', sa.JSON(), nullable=False),
            sa.Column('signed_file_key', sa.String(length=500), nullable=True),
            sa.Column('signed_file_sha256', sa.String(length=64), nullable=True),
            sa.Column('void_reason', sa.String(length=500), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.Column('sent_at', sa.DateTime(), nullable=True),
            sa.Column('completed_at', sa.DateTime(), nullable=True),
            sa.Column('voided_at', sa.DateTime(), nullable=True),
            sa.Column('updated_at', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id', name='pk_document_envelopes'),
            sa.UniqueConstraint('org_id', 'request_id', name='uq_envelope_request_id')
        )
        op.create_index('ix_envelopes_provider_ref', 'document_envelopes',
                        ['provider', 'provider_envelope_id'], unique=False)
        op.create_index('ix_envelopes_deal', 'document_envelopes', ['org_id', 'deal_id'], unique=False)

    # Consumed webhook events; idempotency_key is the dedup record
    if 'document_events' not in tables:
        op.create_table(
            'document_events',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('envelope_id', sa.String(length=32), nullable=False),
            sa.Column('provider', sa.String(length=32), nullable=False),
            sa.Column('event_type', sa.String(length=80), nullable=False),
            sa.Column('status', sa.String(length=20), nullable=False),
            sa.Column('provider_event_id', sa.String(length=255), nullable=True),
            sa.Column('idempotency_key', sa.String(length=300), nullable=False),
            sa.Column('payload_json', sa.JSON(), nullable=True),
            sa.Column('applied', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.ForeignKeyConstraint(['envelope_id'], ['document_envelopes.id'],
                                    name='fk_document_events_envelope_id', ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id', name='pk_document_events'),
            sa.UniqueConstraint('idempotency_key', name='uq_document_events_idempotency_key')
        )

    if 'audit_events' not in tables:
        op.create_table(
            'audit_events',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('org_id', sa.String(length=64), nullable=True),
            sa.Column('entity_type', sa.String(length=50), nullable=False),
            sa.Column('entity_id', sa.String(length=64), nullable=True),
            sa.Column('event_type', sa.String(length=50), nullable=False),
            sa.Column('description', sa.String(length=500), nullable=True),
            sa.Column('event_data', sa.JSON(), nullable=True),
            sa.Column('source', sa.String(length=50), nullable=True, server_default='app'),
            sa.Column('ip_address', sa.String(length=45), nullable=True),
            sa.Column('user_agent', sa.String(length=500), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
            sa.PrimaryKeyConstraint('id', name='pk_audit_events')
        )

        # Create indexes for common queries
        op.create_index('ix_audit_events_org_id', 'audit_events', ['org_id'], unique=False)
        op.create_index('ix_audit_events_entity_id', 'audit_events', ['entity_id'], unique=False)
        op.create_index('ix_audit_events_event_type', 'audit_events', ['event_type'], unique=False)
        op.create_index('ix_audit_events_created_at', 'audit_events', ['created_at'], unique=False)


def downgrade():
    conn = op.get_bind()
    inspector = inspect(conn)
    tables = inspector.get_table_names()

    if 'audit_events' in tables:
        op.drop_index('ix_audit_events_created_at', table_name='audit_events')
        op.drop_index('ix_audit_events_event_type', table_name='audit_events')
        op.drop_index('ix_audit_events_entity_id', table_name='audit_events')
        op.drop_index('ix_audit_events_org_id', table_name='audit_events')
        op.drop_table('audit_events')

    if 'document_events' in tables:
        op.drop_table('document_events')

    if 'document_envelopes' in tables:
        op.drop_index('ix_envelopes_deal', table_name='document_envelopes')
        op.drop_index('ix_envelopes_provider_ref', table_name='document_envelopes')
        op.drop_table('document_envelopes')

    if 'compliance_rule_sets' in tables:
        op.drop_index('ix_rule_sets_scope', table_name='compliance_rule_sets')
        op.drop_table('compliance_rule_sets')
