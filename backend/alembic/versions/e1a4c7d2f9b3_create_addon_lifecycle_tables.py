"""Create add-on catalog, installation and install history tables

Revision ID: e1a4c7d2f9b3
Revises:
Create Date: 2026-10-16T09:12:44.180331
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = 'e1a4c7d2f9b3'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- addons ---
    op.create_table(
        'addons',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', sa.Enum('DRAFT', 'PUBLISHED', 'DEPRECATED', name='addonstatus'), nullable=False, server_default='DRAFT'),
        sa.Column('install_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('dependencies', sa.JSON(), nullable=False, server_default='[]'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('install_count >= 0', name='ck_addon_install_count_non_negative'),
    )
    op.create_index('ix_addons_slug', 'addons', ['slug'], unique=True)
    op.create_index('ix_addons_status', 'addons', ['status'])

    # --- addon_versions ---
    op.create_table(
        'addon_versions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('addon_id', sa.String(), sa.ForeignKey('addons.id'), nullable=False),
        sa.Column('semver_major', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('semver_minor', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('semver_patch', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_latest', sa.Boolean(), nullable=False, server_default='false'),
        sa.Column('dependencies', sa.JSON(), nullable=True),
        sa.Column('changelog', sa.Text(), nullable=True),
        sa.Column('released_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_addon_versions_addon_id', 'addon_versions', ['addon_id'])
    op.create_index('idx_addon_version_latest', 'addon_versions', ['addon_id', 'is_latest'])

    # --- addon_pricing ---
    op.create_table(
        'addon_pricing',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('addon_id', sa.String(), sa.ForeignKey('addons.id'), nullable=False),
        sa.Column('name', sa.String(), nullable=False, server_default='Standard'),
        sa.Column('billing_cycle', sa.String(), nullable=False, server_default='monthly'),
        sa.Column('trial_days', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_addon_pricing_addon_id', 'addon_pricing', ['addon_id'])

    # --- tenant_addons ---
    op.create_table(
        'tenant_addons',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('addon_id', sa.String(), sa.ForeignKey('addons.id'), nullable=False),
        sa.Column('version_id', sa.String(), sa.ForeignKey('addon_versions.id'), nullable=False),
        sa.Column('pricing_id', sa.String(), sa.ForeignKey('addon_pricing.id'), nullable=True),
        sa.Column('status', sa.Enum('INSTALLING', 'ACTIVE', 'DISABLED', 'UPDATING', name='installationstatus'), nullable=False, server_default='INSTALLING'),
        sa.Column('config', sa.JSON(), nullable=False, server_default='{}'),
        sa.Column('trial_ends_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('installed_by', sa.String(), nullable=False),
        sa.Column('installed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tenant_id', 'addon_id', name='uq_tenant_addon'),
    )
    op.create_index('ix_tenant_addons_tenant_id', 'tenant_addons', ['tenant_id'])
    op.create_index('ix_tenant_addons_addon_id', 'tenant_addons', ['addon_id'])
    op.create_index('idx_tenant_addon_status', 'tenant_addons', ['tenant_id', 'status'])

    # --- addon_install_history ---
    op.create_table(
        'addon_install_history',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('tenant_addon_id', sa.String(), nullable=True),
        sa.Column('tenant_id', sa.String(), nullable=False),
        sa.Column('addon_id', sa.String(), nullable=False),
        sa.Column('action', sa.Enum('INSTALL', 'UPDATE', 'DISABLE', 'ENABLE', 'UNINSTALL', 'CONFIGURE', name='historyaction'), nullable=False),
        sa.Column('from_version_id', sa.String(), nullable=True),
        sa.Column('to_version_id', sa.String(), nullable=True),
        sa.Column('status', sa.Enum('COMPLETED', 'FAILED', name='historystatus'), nullable=False, server_default='COMPLETED'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('performed_by', sa.String(), nullable=False),
        sa.Column('performed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_addon_install_history_tenant_addon_id', 'addon_install_history', ['tenant_addon_id'])
    op.create_index('ix_addon_install_history_tenant_id', 'addon_install_history', ['tenant_id'])
    op.create_index('ix_addon_install_history_addon_id', 'addon_install_history', ['addon_id'])
    op.create_index('ix_addon_install_history_performed_at', 'addon_install_history', ['performed_at'])
    op.create_index('idx_history_tenant_time', 'addon_install_history', ['tenant_id', 'performed_at'])


def downgrade() -> None:
    op.drop_table('addon_install_history')
    op.drop_table('tenant_addons')
    op.drop_table('addon_pricing')
    op.drop_table('addon_versions')
    op.drop_table('addons')
    op.execute("DROP TYPE IF EXISTS historystatus")
    op.execute("DROP TYPE IF EXISTS historyaction")
    op.execute("DROP TYPE IF EXISTS installationstatus")
    op.execute("DROP TYPE IF EXISTS addonstatus")
