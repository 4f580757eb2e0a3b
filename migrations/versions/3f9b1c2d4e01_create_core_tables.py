"""create_core_tables

Revision ID: 3f9b1c2d4e01
Revises:
Create Date: 2025-10-25 21:10:58.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '3f9b1c2d4e01'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Identity provider accounts referenced by profiles and studies
    op.create_table('auth_users',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table('users',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('auth_id', sa.UUID(), nullable=False),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('role', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.CheckConstraint("role IN ('researcher', 'participant')", name='users_role_check'),
        sa.ForeignKeyConstraint(['auth_id'], ['auth_users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('auth_id'),
        sa.UniqueConstraint('email')
    )
    op.create_index('users_auth_id_idx', 'users', ['auth_id'], unique=False)
    op.create_index('users_email_idx', 'users', ['email'], unique=False)

    op.create_table('studies',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('researcher_id', sa.UUID(), nullable=True),
        sa.Column('title', sa.Text(), server_default='', nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.Text(), nullable=True),
        sa.Column('compensation', sa.Numeric(), server_default='0', nullable=True),
        sa.Column('duration', sa.Integer(), nullable=True),
        sa.Column('location', sa.Text(), server_default='remote', nullable=True),
        sa.Column('participants_needed', sa.Integer(), nullable=True),
        sa.Column('deadline', sa.Text(), nullable=True),
        sa.Column('requirements', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=True),
        sa.Column('screening_questions', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=True),
        sa.Column('auto_approve', sa.Boolean(), server_default=sa.text('false'), nullable=True),
        sa.Column('payment_schedule', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), server_default='draft', nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.CheckConstraint("status IN ('draft', 'active', 'completed', 'paused')", name='studies_status_check'),
        sa.ForeignKeyConstraint(['researcher_id'], ['auth_users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('studies_researcher_id_idx', 'studies', ['researcher_id'], unique=False)
    op.create_index('studies_status_idx', 'studies', ['status'], unique=False)
    op.create_index('studies_created_at_idx', 'studies', ['created_at'], unique=False)

    op.create_table('participants',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('study_id', sa.UUID(), nullable=True),
        sa.Column('user_id', sa.UUID(), nullable=True),
        sa.Column('status', sa.Text(), server_default='pending', nullable=True),
        sa.Column('payout_amount', sa.Numeric(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.CheckConstraint("status IN ('pending', 'approved', 'completed', 'rejected')", name='participants_status_check'),
        sa.ForeignKeyConstraint(['study_id'], ['studies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('participants_study_id_idx', 'participants', ['study_id'], unique=False)
    op.create_index('participants_user_id_idx', 'participants', ['user_id'], unique=False)

    op.create_table('forms',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('study_id', sa.UUID(), nullable=True),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('questions', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['study_id'], ['studies.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('forms_study_id_idx', 'forms', ['study_id'], unique=False)

    op.create_table('responses',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('form_id', sa.UUID(), nullable=True),
        sa.Column('participant_id', sa.UUID(), nullable=True),
        sa.Column('response_data', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'{}'::jsonb"), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['form_id'], ['forms.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['participant_id'], ['participants.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('responses_form_id_idx', 'responses', ['form_id'], unique=False)
    op.create_index('responses_participant_id_idx', 'responses', ['participant_id'], unique=False)


def downgrade() -> None:
    op.drop_index('responses_participant_id_idx', table_name='responses')
    op.drop_index('responses_form_id_idx', table_name='responses')
    op.drop_table('responses')
    op.drop_index('forms_study_id_idx', table_name='forms')
    op.drop_table('forms')
    op.drop_index('participants_user_id_idx', table_name='participants')
    op.drop_index('participants_study_id_idx', table_name='participants')
    op.drop_table('participants')
    op.drop_index('studies_created_at_idx', table_name='studies')
    op.drop_index('studies_status_idx', table_name='studies')
    op.drop_index('studies_researcher_id_idx', table_name='studies')
    op.drop_table('studies')
    op.drop_index('users_email_idx', table_name='users')
    op.drop_index('users_auth_id_idx', table_name='users')
    op.drop_table('users')
    op.drop_table('auth_users')
