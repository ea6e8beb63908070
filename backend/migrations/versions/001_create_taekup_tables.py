"""Create club, billing and audit tables

Revision ID: 001
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_DELIVERY = sa.text("status IN ('pending', 'sent')")


def upgrade() -> None:
    # Tables may already exist if Base.metadata.create_all ran first
    conn = op.get_bind()
    inspector = inspect(conn)
    existing_tables = inspector.get_table_names()

    if 'clubs' not in existing_tables:
        op.create_table(
            'clubs',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('owner_email', sa.String(length=255), nullable=False),
            sa.Column('owner_name', sa.String(length=255), nullable=True),
            sa.Column('country', sa.String(length=100), nullable=True),
            sa.Column('city', sa.String(length=100), nullable=True),
            sa.Column('art_type', sa.String(length=100), nullable=True),
            sa.Column('trial_start', sa.DateTime(timezone=True), nullable=True),
            sa.Column('trial_end', sa.DateTime(timezone=True), nullable=True),
            sa.Column('trial_status', sa.String(length=50), nullable=False, server_default='active'),
            sa.Column('status', sa.String(length=50), nullable=False, server_default='active'),
            sa.Column('stripe_customer_id', sa.String(length=255), nullable=True),
            sa.Column('wizard_data', sa.JSON(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_clubs_id', 'clubs', ['id'])
        op.create_index('ix_clubs_owner_email', 'clubs', ['owner_email'], unique=True)
        op.create_index('ix_clubs_stripe_customer_id', 'clubs', ['stripe_customer_id'])

    if 'users' not in existing_tables:
        op.create_table(
            'users',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('club_id', sa.Integer(), nullable=True),
            sa.Column('email', sa.String(length=255), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=True),
            sa.Column('role', sa.String(length=50), nullable=False, server_default='owner'),
            sa.Column('password_hash', sa.String(length=255), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default='true'),
            sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(['club_id'], ['clubs.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_users_id', 'users', ['id'])
        op.create_index('ix_users_club_id', 'users', ['club_id'])
        op.create_index('ix_users_email', 'users', ['email'], unique=True)

    if 'students' not in existing_tables:
        op.create_table(
            'students',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('club_id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('parent_name', sa.String(length=255), nullable=True),
            sa.Column('parent_email', sa.String(length=255), nullable=True),
            sa.Column('parent_phone', sa.String(length=50), nullable=True),
            sa.Column('belt', sa.String(length=100), nullable=False, server_default='white'),
            sa.Column('birthday', sa.Date(), nullable=True),
            sa.Column('total_points', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_xp', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('global_xp', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('premium_status', sa.String(length=50), nullable=False, server_default='none'),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(['club_id'], ['clubs.id'], ondelete='CASCADE'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_students_id', 'students', ['id'])
        op.create_index('ix_students_club_id', 'students', ['club_id'])
        op.create_index('ix_students_parent_email', 'students', ['parent_email'])

    if 'payments' not in existing_tables:
        op.create_table(
            'payments',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('club_id', sa.Integer(), nullable=True),
            sa.Column('stripe_invoice_id', sa.String(length=255), nullable=True),
            sa.Column('stripe_payment_intent_id', sa.String(length=255), nullable=True),
            sa.Column('amount', sa.Integer(), nullable=False),
            sa.Column('currency', sa.String(length=10), nullable=False, server_default='usd'),
            sa.Column('status', sa.String(length=50), nullable=False),
            sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('period_start', sa.DateTime(timezone=True), nullable=True),
            sa.Column('period_end', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(['club_id'], ['clubs.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_payments_id', 'payments', ['id'])
        op.create_index('ix_payments_club_id', 'payments', ['club_id'])
        op.create_index('ix_payments_stripe_invoice_id', 'payments', ['stripe_invoice_id'])
        op.create_index('ix_payments_status', 'payments', ['status'])

    if 'email_log' not in existing_tables:
        op.create_table(
            'email_log',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('club_id', sa.Integer(), nullable=True),
            sa.Column('recipient', sa.String(length=255), nullable=False),
            sa.Column('email_type', sa.String(length=100), nullable=False),
            sa.Column('reference', sa.String(length=255), nullable=False, server_default=''),
            sa.Column('subject', sa.String(length=500), nullable=True),
            sa.Column('status', sa.String(length=50), nullable=False, server_default='pending'),
            sa.Column('message_id', sa.String(length=255), nullable=True),
            sa.Column('error', sa.Text(), nullable=True),
            sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(['club_id'], ['clubs.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_email_log_id', 'email_log', ['id'])
        op.create_index('ix_email_log_club_id', 'email_log', ['club_id'])
        op.create_index('ix_email_log_email_type', 'email_log', ['email_type'])

    existing_indexes = [idx['name'] for idx in inspect(conn).get_indexes('email_log')]
    if 'uq_email_log_active_delivery' not in existing_indexes:
        op.create_index(
            'uq_email_log_active_delivery', 'email_log', ['club_id', 'email_type', 'reference'],
            unique=True, postgresql_where=ACTIVE_DELIVERY, sqlite_where=ACTIVE_DELIVERY
        )

    if 'activity_log' not in existing_tables:
        op.create_table(
            'activity_log',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('club_id', sa.Integer(), nullable=True),
            sa.Column('event_type', sa.String(length=100), nullable=False),
            sa.Column('event_title', sa.String(length=255), nullable=False),
            sa.Column('event_description', sa.Text(), nullable=True),
            sa.Column('metadata', sa.JSON(), nullable=True),
            sa.Column('actor_email', sa.String(length=255), nullable=True),
            sa.Column('actor_type', sa.String(length=50), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(['club_id'], ['clubs.id'], ondelete='SET NULL'),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_activity_log_id', 'activity_log', ['id'])
        op.create_index('ix_activity_log_club_id', 'activity_log', ['club_id'])
        op.create_index('ix_activity_log_event_type', 'activity_log', ['event_type'])

    if 'stripe_events' not in existing_tables:
        op.create_table(
            'stripe_events',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('event_id', sa.String(length=255), nullable=False),
            sa.Column('event_type', sa.String(length=100), nullable=False),
            sa.Column('processed', sa.Boolean(), nullable=False, server_default='false'),
            sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
            sa.Column('payload', sa.JSON(), nullable=False),
            sa.Column('error_message', sa.Text(), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id')
        )
        op.create_index('ix_stripe_events_id', 'stripe_events', ['id'])
        op.create_index('ix_stripe_events_event_id', 'stripe_events', ['event_id'], unique=True)
        op.create_index('ix_stripe_events_event_type', 'stripe_events', ['event_type'])


def downgrade() -> None:
    conn = op.get_bind()
    existing_tables = inspect(conn).get_table_names()

    for table in ('stripe_events', 'activity_log', 'email_log', 'payments', 'students', 'users', 'clubs'):
        if table in existing_tables:
            op.drop_table(table)
