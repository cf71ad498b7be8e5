"""initial schema: audit, scoring_settings, error_logs

Revision ID: 001
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SIGNAL_PREFIXES = ('w3c', 'psi', 'wave', 'ai')
JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def signal_columns(prefix: str) -> list[sa.Column]:
    return [
        sa.Column(f'{prefix}_status', sa.String(20), server_default='idle', nullable=False),
        sa.Column(f'{prefix}_last_error', sa.Text(), nullable=True),
        sa.Column(f'{prefix}_fetched_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column(f'{prefix}_score', sa.Float(), nullable=True),
        sa.Column(f'{prefix}_grade', sa.String(2), nullable=True),
        sa.Column(f'{prefix}_details', JSON_TYPE, nullable=True),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'audit',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('website_url', sa.String(2000), nullable=True),
        sa.Column('company_name', sa.String(255), nullable=True),
        sa.Column('design_score', sa.Float(), nullable=True),
        sa.Column('overall_score', sa.Float(), nullable=True),
        sa.Column('overall_grade', sa.String(2), nullable=True),
        *[column for prefix in SIGNAL_PREFIXES for column in signal_columns(prefix)],
        sa.Column('is_deleted', sa.Boolean(), server_default=sa.false(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_created_at', 'audit', ['created_at'], unique=False)
    op.create_index('ix_audit_is_deleted', 'audit', ['is_deleted'], unique=False)

    op.create_table(
        'scoring_settings',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('weight_w3c', sa.Float(), nullable=False),
        sa.Column('weight_psi_mobile', sa.Float(), nullable=False),
        sa.Column('weight_accessibility', sa.Float(), nullable=False),
        sa.Column('weight_design', sa.Float(), nullable=False),
        sa.Column('weight_ai', sa.Float(), nullable=False),
        sa.Column('w3c_issue_penalty', sa.Float(), nullable=False),
        sa.Column('grade_a_min', sa.Integer(), nullable=False),
        sa.Column('grade_b_min', sa.Integer(), nullable=False),
        sa.Column('grade_c_min', sa.Integer(), nullable=False),
        sa.Column('grade_d_min', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('updated_by', sa.String(255), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_scoring_settings_is_active', 'scoring_settings', ['is_active'], unique=False)

    op.create_table(
        'error_logs',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('severity', sa.String(20), nullable=False),
        sa.Column('source', sa.String(100), nullable=False),
        sa.Column('action', sa.String(100), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('extra_data', JSON_TYPE, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_error_logs_created_at', 'error_logs', ['created_at'], unique=False)
    op.create_index('ix_error_logs_action', 'error_logs', ['action'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_error_logs_action', table_name='error_logs')
    op.drop_index('ix_error_logs_created_at', table_name='error_logs')
    op.drop_table('error_logs')
    op.drop_index('ix_scoring_settings_is_active', table_name='scoring_settings')
    op.drop_table('scoring_settings')
    op.drop_index('ix_audit_is_deleted', table_name='audit')
    op.drop_index('ix_audit_created_at', table_name='audit')
    op.drop_table('audit')
