"""Initial schema: users, accounts, team, scans, billing and rules

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None

user_role = sa.Enum('USER', 'ADMIN', name='userrole')
plan = sa.Enum('FREE', 'DELUXE', 'ONE_TIME', name='plan')
subscription_status = sa.Enum('ACTIVE', 'INACTIVE', 'PAST_DUE', 'CANCELED', 'TRIALING', name='subscriptionstatus')
account_role = sa.Enum('ADMIN', 'EDITOR', 'VIEWER', name='accountrole')
scan_status = sa.Enum('QUEUED', 'PROCESSING', 'COMPLETED', 'FAILED', name='scanstatus')
category = sa.Enum('TOYS', 'BABY_PRODUCTS', 'COSMETICS_PERSONAL_CARE', name='category')
marketplace = sa.Enum('US', 'UK', 'DE', name='marketplace')
risk_level = sa.Enum('LOW', 'MEDIUM', 'HIGH', 'CRITICAL', name='risklevel')
issue_severity = sa.Enum('CRITICAL', 'WARNING', 'MEDIUM', 'LOW', 'INFO', name='issueseverity')
payment_status = sa.Enum('PENDING', 'COMPLETED', 'FAILED', 'REFUNDED', name='paymentstatus')
rule_criticality = sa.Enum('CRITICAL', 'HIGH', 'MEDIUM', 'LOW', name='rulecriticality')


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('email', sa.String(), nullable=False, unique=True, index=True),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('hashed_password', sa.String(), nullable=True),
        sa.Column('role', user_role, nullable=False, server_default='USER'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('email_verified_at', sa.DateTime(), nullable=True),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False, unique=True, index=True),
        sa.Column('owner_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False, unique=True),
        sa.Column('business_name', sa.String(), nullable=True),
        sa.Column('billing_email', sa.String(), nullable=True),
        sa.Column('plan', plan, nullable=False, server_default='FREE'),
        sa.Column('subscription_status', subscription_status, nullable=False, server_default='ACTIVE'),
        sa.Column('stripe_customer_id', sa.String(), nullable=True, unique=True),
        sa.Column('stripe_subscription_id', sa.String(), nullable=True),
        sa.Column('subscription_cancel_at', sa.DateTime(), nullable=True),
        sa.Column('scan_limit_per_month', sa.Integer(), nullable=True),
        sa.Column('scans_used_this_month', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('scan_limit_reset_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'account_members',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('role', account_role, nullable=False, server_default='VIEWER'),
        sa.Column('permissions', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('invited_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('joined_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('account_id', 'user_id', name='uq_account_member'),
    )

    op.create_table(
        'account_invites',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('email', sa.String(), nullable=False, index=True),
        sa.Column('role', account_role, nullable=False, server_default='VIEWER'),
        sa.Column('permissions', sa.JSON(), nullable=False),
        sa.Column('token', sa.String(64), nullable=False, unique=True, index=True),
        sa.Column('invited_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'password_reset_tokens',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token', sa.String(255), nullable=False, unique=True, index=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'scans',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('product_name', sa.String(), nullable=False),
        sa.Column('category', category, nullable=False),
        sa.Column('marketplaces', sa.JSON(), nullable=False),
        sa.Column('label_url', sa.String(), nullable=False),
        sa.Column('original_filename', sa.String(), nullable=True),
        sa.Column('content_type', sa.String(), nullable=True),
        sa.Column('status', scan_status, nullable=False, server_default='QUEUED', index=True),
        sa.Column('score', sa.Integer(), nullable=True),
        sa.Column('risk_level', risk_level, nullable=True),
        sa.Column('results', sa.JSON(), nullable=True),
        sa.Column('extracted_text', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now(), index=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'scan_issues',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('scan_id', sa.Integer(), sa.ForeignKey('scans.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('category', sa.String(), nullable=False),
        sa.Column('severity', issue_severity, nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('recommendation', sa.Text(), nullable=True),
        sa.Column('regulation', sa.String(), nullable=True),
    )

    op.create_table(
        'payments',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('account_id', sa.Integer(), sa.ForeignKey('accounts.id', ondelete='CASCADE'), nullable=False, index=True),
        sa.Column('stripe_payment_intent_id', sa.String(), nullable=True, unique=True, index=True),
        sa.Column('stripe_invoice_id', sa.String(), nullable=True, unique=True, index=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(8), nullable=False, server_default='usd'),
        sa.Column('status', payment_status, nullable=False, server_default='PENDING'),
        sa.Column('plan', plan, nullable=True),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('receipt_url', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'regulatory_rules',
        sa.Column('id', sa.Integer(), primary_key=True, index=True),
        sa.Column('category', category, nullable=False, index=True),
        sa.Column('marketplace', marketplace, nullable=False, index=True),
        sa.Column('requirement', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('regulation', sa.String(), nullable=True),
        sa.Column('criticality', rule_criticality, nullable=False, server_default='MEDIUM'),
        sa.Column('example', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('category', 'marketplace', 'requirement', name='uq_rule_category_marketplace_requirement'),
    )

    op.create_table(
        'system_settings',
        sa.Column('id', sa.String(), primary_key=True),
        sa.Column('master_prompt', sa.Text(), nullable=True),
        sa.Column('common_rules', sa.Text(), nullable=True),
        sa.Column('us_rules', sa.Text(), nullable=True),
        sa.Column('uk_rules', sa.Text(), nullable=True),
        sa.Column('eu_rules', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('system_settings')
    op.drop_table('regulatory_rules')
    op.drop_table('payments')
    op.drop_table('scan_issues')
    op.drop_table('scans')
    op.drop_table('password_reset_tokens')
    op.drop_table('account_invites')
    op.drop_table('account_members')
    op.drop_table('accounts')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (
        rule_criticality, payment_status, issue_severity, risk_level, marketplace,
        category, scan_status, account_role, subscription_status, plan, user_role,
    ):
        enum_type.drop(bind, checkfirst=True)
