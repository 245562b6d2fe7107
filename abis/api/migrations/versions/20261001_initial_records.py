"""initial records schema: documents, blotter, certificates, settings

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'documents',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tracking_number', sa.String(length=64), nullable=False),
        sa.Column('doc_type', sa.String(length=100), nullable=False, server_default='general'),
        sa.Column('resident_name', sa.String(length=200), nullable=True),
        sa.Column('form_data', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=30), nullable=False, server_default='pending'),
        sa.Column('pickup_code', sa.String(length=20), nullable=True),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('appointment_datetime', sa.DateTime(), nullable=True),
        sa.Column('issued_at', sa.DateTime(), nullable=True),
        sa.Column('payment_method', sa.String(length=20), nullable=False, server_default='none'),
        sa.Column('payment_status', sa.String(length=30), nullable=False, server_default='unpaid'),
        sa.Column('payment_proof_url', sa.String(length=500), nullable=True),
        sa.Column('certificate_url', sa.String(length=500), nullable=True),
        sa.Column('certificate_filename', sa.String(length=255), nullable=True),
        sa.Column('certification_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('crime_record_status', sa.String(length=10), nullable=False, server_default='unknown'),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('tracking_number', name='uq_documents_tracking_number'),
    )
    op.create_index('idx_document_status', 'documents', ['status'])
    op.create_index('idx_document_created_at', 'documents', ['created_at'])

    op.create_table(
        'blotter',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('reporter_name', sa.String(length=200), nullable=True, server_default='Anonymous'),
        sa.Column('reporter_contact', sa.String(length=200), nullable=True, server_default=''),
        sa.Column('incident_date', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('attachments', sa.JSON(), nullable=True),
        sa.Column('public_token', sa.String(length=64), nullable=False),
        sa.Column('show_reporter', sa.Boolean(), nullable=False, server_default=sa.text('FALSE')),
        sa.Column('payment_method', sa.String(length=20), nullable=False, server_default='gcash'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='pending'),
        sa.Column('payment_proof_url', sa.String(length=500), nullable=True),
        sa.Column('certificate_url', sa.String(length=500), nullable=True),
        sa.Column('certificate_filename', sa.String(length=255), nullable=True),
        sa.Column('crime_record_status', sa.String(length=10), nullable=True),
        sa.Column('certification_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('public_token', name='uq_blotter_public_token'),
    )
    op.create_index('idx_blotter_status', 'blotter', ['status'])
    op.create_index('idx_blotter_created_at', 'blotter', ['created_at'])

    op.create_table(
        'certificates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('tracking_number', sa.String(length=64), nullable=False),
        sa.Column('filename', sa.String(length=500), nullable=False),
        sa.Column('originalname', sa.String(length=255), nullable=True),
        sa.Column('uploaded_by', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('idx_certificate_tracking_created', 'certificates', ['tracking_number', 'created_at'])

    op.create_table(
        'settings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('key', sa.String(length=100), nullable=False),
        sa.Column('value', sa.JSON(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('key', name='uq_settings_key'),
    )


def downgrade():
    op.drop_table('settings')
    op.drop_index('idx_certificate_tracking_created', table_name='certificates')
    op.drop_table('certificates')
    op.drop_index('idx_blotter_created_at', table_name='blotter')
    op.drop_index('idx_blotter_status', table_name='blotter')
    op.drop_table('blotter')
    op.drop_index('idx_document_created_at', table_name='documents')
    op.drop_index('idx_document_status', table_name='documents')
    op.drop_table('documents')
