"""Add account status and last login to users

Revision ID: 7b41e0c2d9a5
Revises: 3f2a9c1d7e40
Create Date: 2026-10-20 10:41:27.530114

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision = '7b41e0c2d9a5'
down_revision = '3f2a9c1d7e40'
branch_labels = None
depends_on = None


def upgrade():
    inspector = inspect(op.get_bind())
    columns = [col['name'] for col in inspector.get_columns('users')]

    with op.batch_alter_table('users', schema=None) as batch_op:
        if 'is_active' not in columns:
            batch_op.add_column(sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()))
        if 'last_login' not in columns:
            batch_op.add_column(sa.Column('last_login', sa.DateTime(), nullable=True))


def downgrade():
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.drop_column('last_login')
        batch_op.drop_column('is_active')
