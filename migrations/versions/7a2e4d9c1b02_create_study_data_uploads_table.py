"""create_study_data_uploads_table

Revision ID: 7a2e4d9c1b02
Revises: 3f9b1c2d4e01
Create Date: 2025-10-25 21:11:27.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '7a2e4d9c1b02'
down_revision = '3f9b1c2d4e01'
branch_labels = None
depends_on = None


def upgrade() -> None:
    # Metadata for files kept in the study-data bucket; the bucket itself is provisioned
    # by the storage service at startup
    op.create_table('study_data_uploads',
        sa.Column('id', sa.UUID(), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('study_id', sa.UUID(), nullable=False),
        sa.Column('researcher_id', sa.UUID(), nullable=False),
        sa.Column('file_name', sa.Text(), nullable=False),
        sa.Column('file_path', sa.Text(), nullable=False),
        sa.Column('file_size', sa.BigInteger(), nullable=False),
        sa.Column('upload_date', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('row_count', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['study_id'], ['studies.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['researcher_id'], ['auth_users.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('study_data_uploads_study_id_idx', 'study_data_uploads', ['study_id'], unique=False)
    op.create_index('study_data_uploads_researcher_id_idx', 'study_data_uploads', ['researcher_id'], unique=False)


def downgrade() -> None:
    op.drop_index('study_data_uploads_researcher_id_idx', table_name='study_data_uploads')
    op.drop_index('study_data_uploads_study_id_idx', table_name='study_data_uploads')
    op.drop_table('study_data_uploads')
