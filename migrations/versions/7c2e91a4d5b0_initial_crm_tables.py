"""Initial CRM tables: users, leads, clients, deals, activities, crm_settings

Revision ID: 7c2e91a4d5b0
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7c2e91a4d5b0'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    ]


def upgrade():
    op.create_table('users',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    op.create_table('leads',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('origin', sa.String(length=50), nullable=False),
        sa.Column('source', sa.String(length=100), nullable=True),
        sa.Column('service_type', sa.String(length=100), nullable=True),
        sa.Column('estimated_value', sa.Float(), nullable=True),
        sa.Column('priority', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('referred_by', sa.String(length=255), nullable=True),
        sa.Column('original_message', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('internal_notes', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('form_id', sa.String(length=100), nullable=True),
        sa.Column('converted_to_client_id', sa.String(length=36), nullable=True),
        sa.Column('deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_leads_status', 'leads', ['status'])
    op.create_index('ix_leads_received_at', 'leads', ['received_at'])
    op.create_index('ix_leads_deleted', 'leads', ['deleted'])

    op.create_table('clients',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=50), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('client_since', sa.DateTime(timezone=True), nullable=True),
        sa.Column('preferred_contact', sa.String(length=20), nullable=True),
        sa.Column('property_type', sa.String(length=50), nullable=True),
        sa.Column('internal_notes', sa.Text(), nullable=True),
        sa.Column('source_lead_id', sa.String(length=36), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['source_lead_id'], ['leads.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_clients_status', 'clients', ['status'])
    op.create_index('ix_clients_source_lead_id', 'clients', ['source_lead_id'])

    op.create_table('deals',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('client_id', sa.String(length=36), nullable=False),
        sa.Column('deal_type', sa.String(length=100), nullable=True),
        sa.Column('value', sa.Float(), nullable=True),
        sa.Column('status', sa.String(length=50), nullable=False),
        sa.Column('project_address', sa.Text(), nullable=True),
        sa.Column('permit_number', sa.String(length=100), nullable=True),
        sa.Column('estimated_duration', sa.String(length=100), nullable=True),
        sa.Column('scope', sa.JSON(), nullable=True),
        sa.Column('contract_signed_date', sa.Date(), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('expected_end_date', sa.Date(), nullable=True),
        sa.Column('actual_end_date', sa.Date(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('internal_notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_deals_client_id', 'deals', ['client_id'])
    op.create_index('ix_deals_status', 'deals', ['status'])

    op.create_table('activities',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('type', sa.String(length=50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('lead_id', sa.String(length=36), nullable=True),
        sa.Column('client_id', sa.String(length=36), nullable=True),
        sa.Column('deal_id', sa.String(length=36), nullable=True),
        sa.Column('performed_by', sa.String(length=255), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.CheckConstraint(
            'lead_id IS NOT NULL OR client_id IS NOT NULL OR deal_id IS NOT NULL',
            name='ck_activities_has_reference',
        ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_activities_type', 'activities', ['type'])
    op.create_index('ix_activities_timestamp', 'activities', ['timestamp'])
    op.create_index('ix_activities_lead_id', 'activities', ['lead_id'])
    op.create_index('ix_activities_client_id', 'activities', ['client_id'])
    op.create_index('ix_activities_deal_id', 'activities', ['deal_id'])

    op.create_table('crm_settings',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('pipeline_stages', sa.JSON(), nullable=True),
        sa.Column('deal_statuses', sa.JSON(), nullable=True),
        sa.Column('lead_sources', sa.JSON(), nullable=True),
        sa.Column('service_types', sa.JSON(), nullable=True),
        sa.Column('default_priority', sa.String(length=20), nullable=True),
        sa.Column('currency', sa.String(length=10), nullable=True),
        sa.Column('industry_label', sa.String(length=100), nullable=True),
        sa.Column('deal_label', sa.String(length=100), nullable=True),
        sa.Column('leads_page_size', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade():
    op.drop_table('crm_settings')
    op.drop_table('activities')
    op.drop_table('deals')
    op.drop_table('clients')
    op.drop_table('leads')
    op.drop_table('users')
