"""initial workflow schema

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-17 09:00:00.000000

Creates users, content items, their version snapshots and the workflow
history log.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import advanced_alchemy.types


# revision identifiers, used by Alembic.
revision: str = '1a2b3c4d5e6f'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('users',
        sa.Column('id', advanced_alchemy.types.guid.GUID(length=16), nullable=False),
        sa.Column('username', sa.String(length=150), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=50), server_default='author', nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=False),
        sa.Column('sa_orm_sentinel', sa.Integer(), nullable=True),
        sa.Column('updated_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users'))
    )
    op.create_index(op.f('ix_users_username'), 'users', ['username'], unique=True)

    op.create_table('content_items',
        sa.Column('id', advanced_alchemy.types.guid.GUID(length=16), nullable=False),
        sa.Column('title', sa.String(length=500), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=32), server_default='draft', nullable=False),
        sa.Column('version', sa.Integer(), server_default='1', nullable=False),
        sa.Column('created_by', advanced_alchemy.types.guid.GUID(length=16), nullable=True),
        sa.Column('last_modified_by', advanced_alchemy.types.guid.GUID(length=16), nullable=True),
        sa.Column('scheduled_publish_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=True),
        sa.Column('expiration_date', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=True),
        sa.Column('published_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=True),
        sa.Column('archived_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=True),
        sa.Column('archive_reason', sa.Text(), nullable=True),
        sa.Column('created_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=False),
        sa.Column('sa_orm_sentinel', sa.Integer(), nullable=True),
        sa.Column('updated_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], name=op.f('fk_content_items_created_by_users'), ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['last_modified_by'], ['users.id'], name=op.f('fk_content_items_last_modified_by_users'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_content_items'))
    )
    op.create_index(op.f('ix_content_items_status'), 'content_items', ['status'], unique=False)
    op.create_index(op.f('ix_content_items_created_by'), 'content_items', ['created_by'], unique=False)
    op.create_index(op.f('ix_content_items_scheduled_publish_at'), 'content_items', ['scheduled_publish_at'], unique=False)
    op.create_index(op.f('ix_content_items_expiration_date'), 'content_items', ['expiration_date'], unique=False)

    op.create_table('content_versions',
        sa.Column('id', advanced_alchemy.types.guid.GUID(length=16), nullable=False),
        sa.Column('content_id', advanced_alchemy.types.guid.GUID(length=16), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('created_by', advanced_alchemy.types.guid.GUID(length=16), nullable=True),
        sa.Column('created_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=False),
        sa.Column('sa_orm_sentinel', sa.Integer(), nullable=True),
        sa.Column('updated_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['content_id'], ['content_items.id'], name=op.f('fk_content_versions_content_id_content_items'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], name=op.f('fk_content_versions_created_by_users'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_content_versions')),
        sa.UniqueConstraint('content_id', 'version', name=op.f('uq_content_versions_content_id'))
    )
    op.create_index(op.f('ix_content_versions_content_id'), 'content_versions', ['content_id'], unique=False)

    op.create_table('content_workflow_history',
        sa.Column('id', sa.BigInteger().with_variant(sa.Integer(), 'sqlite'), autoincrement=True, nullable=False),
        sa.Column('content_id', advanced_alchemy.types.guid.GUID(length=16), nullable=False),
        sa.Column('user_id', advanced_alchemy.types.guid.GUID(length=16), nullable=True),
        sa.Column('action', sa.String(length=32), nullable=False),
        sa.Column('comments', sa.Text(), nullable=True),
        sa.Column('created_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=False),
        sa.Column('updated_at', advanced_alchemy.types.datetime.DateTimeUTC(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['content_id'], ['content_items.id'], name=op.f('fk_content_workflow_history_content_id_content_items'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_content_workflow_history_user_id_users'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_content_workflow_history'))
    )
    op.create_index(op.f('ix_content_workflow_history_content_id'), 'content_workflow_history', ['content_id'], unique=False)
    op.create_index(op.f('ix_content_workflow_history_user_id'), 'content_workflow_history', ['user_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_content_workflow_history_user_id'), table_name='content_workflow_history')
    op.drop_index(op.f('ix_content_workflow_history_content_id'), table_name='content_workflow_history')
    op.drop_table('content_workflow_history')
    op.drop_index(op.f('ix_content_versions_content_id'), table_name='content_versions')
    op.drop_table('content_versions')
    op.drop_index(op.f('ix_content_items_expiration_date'), table_name='content_items')
    op.drop_index(op.f('ix_content_items_scheduled_publish_at'), table_name='content_items')
    op.drop_index(op.f('ix_content_items_created_by'), table_name='content_items')
    op.drop_index(op.f('ix_content_items_status'), table_name='content_items')
    op.drop_table('content_items')
    op.drop_index(op.f('ix_users_username'), table_name='users')
    op.drop_table('users')
