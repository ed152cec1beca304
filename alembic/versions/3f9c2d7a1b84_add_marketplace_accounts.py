"""Add marketplace accounts and tenant preferences tables

Revision ID: 3f9c2d7a1b84
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c2d7a1b84'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create marketplace_accounts and tenant_preferences tables."""
    op.create_table(
        'marketplace_accounts',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('client_id', sa.String(), nullable=True),
        sa.Column('client_secret', sa.Text(), nullable=True),
        sa.Column('access_token', sa.Text(), nullable=True),
        sa.Column('refresh_token', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(), nullable=True),
        sa.Column('token_scopes', sa.Text(), nullable=True),
        sa.Column('oauth_state', sa.String(), nullable=True),
        sa.Column('oauth_code_verifier', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'name', name='uq_marketplace_accounts_tenant_name'),
        sa.UniqueConstraint('oauth_state'),
    )
    op.create_index(
        'ix_marketplace_accounts_tenant_id', 'marketplace_accounts', ['tenant_id']
    )
    # At most one active account per tenant
    op.create_index(
        'ix_marketplace_accounts_one_active',
        'marketplace_accounts',
        ['tenant_id'],
        unique=True,
        sqlite_where=sa.text('is_active = 1'),
        postgresql_where=sa.text('is_active'),
    )

    op.create_table(
        'tenant_preferences',
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('active_account_id', sa.String(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(
            ['active_account_id'], ['marketplace_accounts.id'], ondelete='SET NULL'
        ),
        sa.PrimaryKeyConstraint('tenant_id'),
    )


def downgrade() -> None:
    """Drop marketplace_accounts and tenant_preferences tables."""
    op.drop_table('tenant_preferences')
    op.drop_index('ix_marketplace_accounts_one_active', table_name='marketplace_accounts')
    op.drop_index('ix_marketplace_accounts_tenant_id', table_name='marketplace_accounts')
    op.drop_table('marketplace_accounts')
