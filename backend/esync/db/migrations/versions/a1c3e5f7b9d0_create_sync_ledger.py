"""create sync job / import ledger and shop sessions

Revision ID: a1c3e5f7b9d0
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = 'a1c3e5f7b9d0'
down_revision = None
branch_labels = None
depends_on = None


JOB_STATUS = sa.Enum('QUEUED', 'RUNNING', 'COMPLETED', 'FAILED', 'CANCELLED', name='sync_job_status')
IMPORT_STATUS = sa.Enum('PENDING', 'SUCCESS', 'FAILED', name='sync_import_status')
JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')


def upgrade():
    op.create_table(
        'sync_jobs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('shop_domain', sa.String(length=255), nullable=False),
        sa.Column('status', JOB_STATUS, server_default='QUEUED', nullable=False),
        sa.Column('total', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('processed', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('succeeded', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('failed', sa.Integer(), server_default=sa.text('0'), nullable=False),
        sa.Column('options', JSON_TYPE, nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_sync_jobs')),
    )
    op.create_index('ix_sync_jobs_status_created', 'sync_jobs', ['status', 'created_at'], unique=False)
    op.create_index('ix_sync_jobs_shop_status_created', 'sync_jobs', ['shop_domain', 'status', 'created_at'], unique=False)

    op.create_table(
        'sync_imports',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('shop_domain', sa.String(length=255), nullable=False),
        sa.Column('job_id', sa.String(length=36), nullable=True),
        sa.Column('status', IMPORT_STATUS, server_default='PENDING', nullable=False),
        sa.Column('product_data', JSON_TYPE, nullable=False),
        sa.Column('shopify_product_id', sa.String(length=64), nullable=True),
        sa.Column('title', sa.String(length=512), nullable=True),
        sa.Column('sku', sa.String(length=255), nullable=True),
        sa.Column('action', sa.String(length=16), nullable=True),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(
            ['job_id'], ['sync_jobs.id'],
            name=op.f('fk_sync_imports_job_id_sync_jobs'),
            ondelete='CASCADE',
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_sync_imports')),
    )
    op.create_index('ix_sync_imports_job_status', 'sync_imports', ['job_id', 'status'], unique=False)
    op.create_index('ix_sync_imports_shop_created', 'sync_imports', ['shop_domain', 'created_at'], unique=False)

    op.create_table(
        'shop_sessions',
        sa.Column('id', sa.String(length=255), nullable=False),
        sa.Column('shop_domain', sa.String(length=255), nullable=False),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('scope', sa.String(length=1024), nullable=True),
        sa.Column('is_online', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_shop_sessions')),
    )
    op.create_index(op.f('ix_shop_sessions_shop_domain'), 'shop_sessions', ['shop_domain'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_shop_sessions_shop_domain'), table_name='shop_sessions')
    op.drop_table('shop_sessions')

    op.drop_index('ix_sync_imports_shop_created', table_name='sync_imports')
    op.drop_index('ix_sync_imports_job_status', table_name='sync_imports')
    op.drop_table('sync_imports')

    op.drop_index('ix_sync_jobs_shop_status_created', table_name='sync_jobs')
    op.drop_index('ix_sync_jobs_status_created', table_name='sync_jobs')
    op.drop_table('sync_jobs')

    IMPORT_STATUS.drop(op.get_bind(), checkfirst=True)
    JOB_STATUS.drop(op.get_bind(), checkfirst=True)
