"""Create consent_documents table

Revision ID: 001_consent_documents
Revises:
Create Date: 2025-10-20 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001_consent_documents'
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    # Signed consent PDFs waiting to be picked up by the confirmation view
    op.create_table('consent_documents',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('token', sa.String(length=64), nullable=False),
        sa.Column('participant_national_id', sa.String(length=50), nullable=True),
        sa.Column('content', sa.LargeBinary(), nullable=False),
        sa.Column('content_type', sa.String(length=100), nullable=False),
        sa.Column('filename', sa.String(length=255), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_index(op.f('ix_consent_documents_id'), 'consent_documents', ['id'])
    op.create_index(op.f('ix_consent_documents_token'), 'consent_documents', ['token'], unique=True)
    op.create_index(op.f('ix_consent_documents_expires_at'), 'consent_documents', ['expires_at'])

def downgrade() -> None:
    op.drop_index(op.f('ix_consent_documents_expires_at'), table_name='consent_documents')
    op.drop_index(op.f('ix_consent_documents_token'), table_name='consent_documents')
    op.drop_index(op.f('ix_consent_documents_id'), table_name='consent_documents')
    op.drop_table('consent_documents')
