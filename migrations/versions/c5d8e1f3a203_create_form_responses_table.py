"""create_form_responses_table

Revision ID: c5d8e1f3a203
Revises: 7a2e4d9c1b02
Create Date: 2025-10-25 21:11:30.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = 'c5d8e1f3a203'
down_revision = '7a2e4d9c1b02'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Public form submissions, identified by e-mail instead of a participation record
    op.create_table('form_responses',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('study_id', sa.UUID(), nullable=False),
        sa.Column('participant_email', sa.Text(), nullable=False),
        sa.Column('participant_name', sa.Text(), nullable=True),
        sa.Column('response_data', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('ip_address', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['study_id'], ['studies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('form_responses_study_id_idx', 'form_responses', ['study_id'], unique=False)
    op.create_index('form_responses_submitted_at_idx', 'form_responses', ['submitted_at'], unique=False)
    op.create_index('form_responses_participant_email_idx', 'form_responses', ['participant_email'], unique=False)


def downgrade() -> None:
    op.drop_index('form_responses_participant_email_idx', table_name='form_responses')
    op.drop_index('form_responses_submitted_at_idx', table_name='form_responses')
    op.drop_index('form_responses_study_id_idx', table_name='form_responses')
    op.drop_table('form_responses')
