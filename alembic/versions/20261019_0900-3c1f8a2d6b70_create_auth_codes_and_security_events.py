"""create_auth_codes_and_security_events

Revision ID: 3c1f8a2d6b70
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3c1f8a2d6b70'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'auth_codes',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('code', sa.String(length=128), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=False),
        sa.Column('token', sa.Text(), nullable=False),
        sa.Column('client_id', sa.String(length=32), nullable=False),
        sa.Column('redirect_uri', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code'),
    )
    op.create_index('ix_auth_codes_user_id', 'auth_codes', ['user_id'])
    op.create_index('idx_auth_codes_expires_at', 'auth_codes', ['expires_at'])

    op.create_table(
        'security_events',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('severity', sa.String(length=16), nullable=False),
        sa.Column('user_id', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=255), nullable=False),
        sa.Column('user_agent', sa.String(length=512), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_security_events_type_created', 'security_events', ['event_type', 'created_at'])


def downgrade() -> None:
    op.drop_index('idx_security_events_type_created', table_name='security_events')
    op.drop_table('security_events')
    op.drop_index('idx_auth_codes_expires_at', table_name='auth_codes')
    op.drop_index('ix_auth_codes_user_id', table_name='auth_codes')
    op.drop_table('auth_codes')
