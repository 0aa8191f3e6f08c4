"""initial schema

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17 09:00:00.000000

Baseline schema for the broker back-office:
- identity (users, roles, permissions, overrides, refresh tokens)
- reference data (countries, currencies)
- clients, addresses, investment profiles
- accounts and account holders
- instruments
- orders / trade orders, transactions / trade transactions
- audit_logs and entity_changes (append-only)

Enum columns are stored as VARCHAR(32) holding the enum value.
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSONB

# revision identifiers, used by Alembic.
revision = '001_initial'
down_revision = None
branch_labels = None
depends_on = None


def _enum():
    return sa.String(32)


def _auditable_columns():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_by', sa.String(100), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_by', sa.String(100), nullable=True),
        sa.Column('row_version', sa.Integer(), nullable=False),
    ]


def upgrade() -> None:
    # Revision ids are human-readable and longer than the default VARCHAR(32)
    op.execute("ALTER TABLE alembic_version ALTER COLUMN version_num TYPE VARCHAR(128)")

    # Reference data
    op.create_table(
        'countries',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('iso2', sa.String(2), nullable=False, unique=True),
        sa.Column('iso3', sa.String(3), nullable=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('flag_emoji', sa.String(16), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_table(
        'currencies',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('code', sa.String(3), nullable=False, unique=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('symbol', sa.String(8), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    # Identity
    op.create_table(
        'users',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('username', sa.String(100), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(200), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_auditable_columns(),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'roles',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.String(100), nullable=False, unique=True),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_auditable_columns(),
    )
    op.create_table(
        'permissions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('code', sa.String(100), nullable=False, unique=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('group', sa.String(100), nullable=False),
    )
    op.create_table(
        'user_roles',
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('role_id', UUID(as_uuid=True), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
    )
    op.create_table(
        'role_permissions',
        sa.Column('role_id', UUID(as_uuid=True), sa.ForeignKey('roles.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('permission_id', UUID(as_uuid=True), sa.ForeignKey('permissions.id', ondelete='CASCADE'), primary_key=True),
    )
    op.create_table(
        'user_permission_overrides',
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('permission_id', UUID(as_uuid=True), sa.ForeignKey('permissions.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('is_allowed', sa.Boolean(), nullable=False),
    )
    op.create_table(
        'user_refresh_tokens',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False, unique=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_by_ip', sa.String(64), nullable=True),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('replaced_by_token_hash', sa.String(64), nullable=True),
    )
    op.create_index('ix_user_refresh_tokens_user_id', 'user_refresh_tokens', ['user_id'])

    # Clients
    op.create_table(
        'clients',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('client_type', _enum(), nullable=False),
        sa.Column('external_id', sa.String(64), nullable=True),
        sa.Column('status', _enum(), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('preferred_language', sa.String(10), nullable=True),
        sa.Column('time_zone', sa.String(64), nullable=True),
        sa.Column('residence_country_id', UUID(as_uuid=True), sa.ForeignKey('countries.id'), nullable=True),
        sa.Column('citizenship_country_id', UUID(as_uuid=True), sa.ForeignKey('countries.id'), nullable=True),
        sa.Column('pep_status', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('risk_level', _enum(), nullable=True),
        sa.Column('kyc_status', _enum(), nullable=False),
        sa.Column('kyc_reviewed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('middle_name', sa.String(100), nullable=True),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('gender', _enum(), nullable=True),
        sa.Column('marital_status', _enum(), nullable=True),
        sa.Column('education', _enum(), nullable=True),
        sa.Column('ssn', sa.String(32), nullable=True),
        sa.Column('passport_number', sa.String(32), nullable=True),
        sa.Column('driver_license_number', sa.String(32), nullable=True),
        sa.Column('company_name', sa.String(300), nullable=True),
        sa.Column('registration_number', sa.String(64), nullable=True),
        sa.Column('tax_id', sa.String(64), nullable=True),
        *_auditable_columns(),
    )
    op.create_index('ix_clients_email', 'clients', ['email'], unique=True)

    op.create_table(
        'client_addresses',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', _enum(), nullable=False),
        sa.Column('line1', sa.String(200), nullable=False),
        sa.Column('line2', sa.String(200), nullable=True),
        sa.Column('city', sa.String(100), nullable=False),
        sa.Column('state', sa.String(100), nullable=True),
        sa.Column('postal_code', sa.String(20), nullable=True),
        sa.Column('country_id', UUID(as_uuid=True), sa.ForeignKey('countries.id'), nullable=False),
    )
    op.create_index('ix_client_addresses_client_id', 'client_addresses', ['client_id'])

    op.create_table(
        'investment_profiles',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('objective', _enum(), nullable=True),
        sa.Column('risk_tolerance', _enum(), nullable=True),
        sa.Column('liquidity_needs', _enum(), nullable=True),
        sa.Column('time_horizon', _enum(), nullable=True),
        sa.Column('knowledge', _enum(), nullable=True),
        sa.Column('experience', _enum(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
    )

    # Accounts
    op.create_table(
        'accounts',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('number', sa.String(50), nullable=False),
        sa.Column('status', _enum(), nullable=False),
        sa.Column('account_type', _enum(), nullable=False),
        sa.Column('margin_type', _enum(), nullable=False),
        sa.Column('option_level', _enum(), nullable=False),
        sa.Column('tariff', _enum(), nullable=False),
        sa.Column('delivery_type', _enum(), nullable=True),
        sa.Column('opened_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('comment', sa.String(500), nullable=True),
        sa.Column('external_id', sa.String(64), nullable=True),
        *_auditable_columns(),
    )
    op.create_index('ix_accounts_number', 'accounts', ['number'], unique=True)

    op.create_table(
        'account_holders',
        sa.Column('account_id', UUID(as_uuid=True), sa.ForeignKey('accounts.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('client_id', UUID(as_uuid=True), sa.ForeignKey('clients.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('role', _enum(), primary_key=True),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('added_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_account_holders_client_id', 'account_holders', ['client_id'])

    # Instruments
    op.create_table(
        'instruments',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('symbol', sa.String(32), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('isin', sa.String(12), nullable=True),
        sa.Column('cusip', sa.String(9), nullable=True),
        sa.Column('type', _enum(), nullable=False),
        sa.Column('asset_class', _enum(), nullable=False),
        sa.Column('status', _enum(), nullable=False),
        sa.Column('currency_id', UUID(as_uuid=True), sa.ForeignKey('currencies.id'), nullable=True),
        sa.Column('country_id', UUID(as_uuid=True), sa.ForeignKey('countries.id'), nullable=True),
        sa.Column('sector', _enum(), nullable=True),
        sa.Column('lot_size', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('tick_size', sa.Numeric(18, 8), nullable=True),
        sa.Column('margin_requirement', sa.Numeric(18, 4), nullable=True),
        sa.Column('is_margin_eligible', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('listing_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delisting_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expiration_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('issuer_name', sa.String(200), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('external_id', sa.String(64), nullable=True),
        *_auditable_columns(),
    )
    op.create_index('ix_instruments_symbol', 'instruments', ['symbol'], unique=True)

    # Orders
    op.create_table(
        'orders',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('account_id', UUID(as_uuid=True), sa.ForeignKey('accounts.id'), nullable=False),
        sa.Column('order_number', sa.String(32), nullable=False, unique=True),
        sa.Column('category', _enum(), nullable=False),
        sa.Column('status', _enum(), nullable=False),
        sa.Column('order_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('comment', sa.String(500), nullable=True),
        sa.Column('external_id', sa.String(64), nullable=True),
        *_auditable_columns(),
    )
    op.create_index('ix_orders_account_id', 'orders', ['account_id'])

    op.create_table(
        'trade_orders',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('instrument_id', UUID(as_uuid=True), sa.ForeignKey('instruments.id'), nullable=False),
        sa.Column('side', _enum(), nullable=False),
        sa.Column('order_type', _enum(), nullable=False),
        sa.Column('time_in_force', _enum(), nullable=False),
        sa.Column('quantity', sa.Numeric(18, 8), nullable=False),
        sa.Column('price', sa.Numeric(18, 8), nullable=True),
        sa.Column('stop_price', sa.Numeric(18, 8), nullable=True),
        sa.Column('executed_quantity', sa.Numeric(18, 8), nullable=False, server_default='0'),
        sa.Column('average_price', sa.Numeric(18, 8), nullable=True),
        sa.Column('commission', sa.Numeric(18, 8), nullable=True),
        sa.Column('executed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expiration_date', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_trade_orders_instrument_id', 'trade_orders', ['instrument_id'])

    # Transactions
    op.create_table(
        'transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', UUID(as_uuid=True), sa.ForeignKey('orders.id'), nullable=True),
        sa.Column('transaction_number', sa.String(32), nullable=False, unique=True),
        sa.Column('category', _enum(), nullable=False),
        sa.Column('status', _enum(), nullable=False),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('comment', sa.String(500), nullable=True),
        sa.Column('external_id', sa.String(64), nullable=True),
        *_auditable_columns(),
    )
    op.create_index('ix_transactions_order_id', 'transactions', ['order_id'])

    op.create_table(
        'trade_transactions',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('transaction_id', UUID(as_uuid=True), sa.ForeignKey('transactions.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('instrument_id', UUID(as_uuid=True), sa.ForeignKey('instruments.id'), nullable=False),
        sa.Column('side', _enum(), nullable=False),
        sa.Column('quantity', sa.Numeric(18, 8), nullable=False),
        sa.Column('price', sa.Numeric(18, 8), nullable=False),
        sa.Column('commission', sa.Numeric(18, 8), nullable=True),
        sa.Column('settlement_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('venue', sa.String(100), nullable=True),
    )
    op.create_index('ix_trade_transactions_instrument_id', 'trade_transactions', ['instrument_id'])

    # Audit trail (append-only)
    op.create_table(
        'audit_logs',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', UUID(as_uuid=True), nullable=True),
        sa.Column('user_name', sa.String(100), nullable=True),
        sa.Column('action', sa.String(200), nullable=False),
        sa.Column('entity_type', sa.String(100), nullable=True),
        sa.Column('entity_id', sa.String(200), nullable=True),
        sa.Column('before_json', JSONB, nullable=True),
        sa.Column('after_json', JSONB, nullable=True),
        sa.Column('correlation_id', sa.String(64), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('path', sa.String(500), nullable=False),
        sa.Column('method', sa.String(10), nullable=False),
        sa.Column('status_code', sa.Integer(), nullable=False),
        sa.Column('is_success', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_audit_logs_user_id', 'audit_logs', ['user_id'])
    op.create_index('ix_audit_logs_created_at', 'audit_logs', ['created_at'])
    op.create_index('ix_audit_logs_correlation_id', 'audit_logs', ['correlation_id'])
    op.create_index('ix_audit_logs_entity', 'audit_logs', ['entity_type', 'entity_id'])

    op.create_table(
        'entity_changes',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('operation_id', UUID(as_uuid=True), nullable=False),
        sa.Column('entity_type', sa.String(100), nullable=False),
        sa.Column('entity_id', sa.String(200), nullable=False),
        sa.Column('entity_display_name', sa.String(300), nullable=True),
        sa.Column('related_entity_type', sa.String(100), nullable=True),
        sa.Column('related_entity_id', sa.String(300), nullable=True),
        sa.Column('related_entity_display_name', sa.String(300), nullable=True),
        sa.Column('change_type', sa.String(16), nullable=False),
        sa.Column('field_name', sa.String(100), nullable=False),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('user_id', sa.String(64), nullable=True),
        sa.Column('user_name', sa.String(100), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_entity_changes_entity', 'entity_changes', ['entity_type', 'entity_id'])
    op.create_index('ix_entity_changes_operation_id', 'entity_changes', ['operation_id'])
    op.create_index('ix_entity_changes_timestamp', 'entity_changes', ['timestamp'])


def downgrade() -> None:
    for table in (
        'entity_changes',
        'audit_logs',
        'trade_transactions',
        'transactions',
        'trade_orders',
        'orders',
        'instruments',
        'account_holders',
        'accounts',
        'investment_profiles',
        'client_addresses',
        'clients',
        'user_refresh_tokens',
        'user_permission_overrides',
        'role_permissions',
        'user_roles',
        'permissions',
        'roles',
        'users',
        'currencies',
        'countries',
    ):
        op.drop_table(table)
