"""Consultants, clients, sessions, availability and payments

Revision ID: 001_booking_pipeline
Revises:
Create Date: 2026-10-16

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = '001_booking_pipeline'
down_revision = None
branch_labels = None
depends_on = None

session_type = postgresql.ENUM('PERSONAL', 'WEBINAR', name='sessiontype', create_type=False)
session_status = postgresql.ENUM(
    'PENDING', 'CONFIRMED', 'IN_PROGRESS', 'ONGOING', 'COMPLETED', 'CANCELLED', 'NO_SHOW', 'RETURNED',
    name='sessionstatus', create_type=False
)
payment_status = postgresql.ENUM(
    'PENDING', 'PROCESSING', 'PAID', 'FAILED', 'REFUNDED',
    name='paymentstatus', create_type=False
)
transaction_status = postgresql.ENUM(
    'PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'CANCELLED', 'REFUNDED',
    name='paymenttransactionstatus', create_type=False
)
quotation_status = postgresql.ENUM(
    'DRAFT', 'SENT', 'VIEWED', 'ACCEPTED', 'REJECTED', 'EXPIRED',
    name='quotationstatus', create_type=False
)
ENUMS = (session_type, session_status, payment_status, transaction_status, quotation_status)


def timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade():
    bind = op.get_bind()
    for enum in ENUMS:
        enum.create(bind, checkfirst=True)

    op.create_table(
        'consultants',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False),
        sa.Column('last_name', sa.String(100), nullable=False, server_default=''),
        sa.Column('phone_country_code', sa.String(5), nullable=False, server_default='+91'),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.Column('slug', sa.String(120), nullable=False),
        sa.Column('consultancy_sector', sa.String(255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('personal_session_title', sa.String(255), nullable=True),
        sa.Column('webinar_session_title', sa.String(255), nullable=True),
        sa.Column('personal_session_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('webinar_session_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_email_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_approved_by_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('teams_access_token', sa.Text(), nullable=True),
        sa.Column('teams_token_expires_at', sa.DateTime(), nullable=True),
        *timestamps(),
    )
    op.create_index('ix_consultants_email', 'consultants', ['email'], unique=True)
    op.create_index('ix_consultants_slug', 'consultants', ['slug'], unique=True)
    op.create_index('ix_consultants_is_active', 'consultants', ['is_active'])
    op.create_index('ix_consultants_is_approved_by_admin', 'consultants', ['is_approved_by_admin'])

    op.create_table(
        'clients',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('consultant_id', sa.String(36), sa.ForeignKey('consultants.id'), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('first_name', sa.String(100), nullable=False, server_default=''),
        sa.Column('last_name', sa.String(100), nullable=False, server_default=''),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.Column('phone_country_code', sa.String(5), nullable=True, server_default='+91'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('total_sessions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_amount_paid', sa.Numeric(10, 2), nullable=False, server_default='0'),
        *timestamps(),
        sa.UniqueConstraint('email', 'consultant_id', name='clients_email_consultant_id_key'),
    )
    op.create_index('ix_clients_consultant_id', 'clients', ['consultant_id'])
    op.create_index('ix_clients_email', 'clients', ['email'])

    op.create_table(
        'sessions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('consultant_id', sa.String(36), sa.ForeignKey('consultants.id'), nullable=False),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id'), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('session_type', session_type, nullable=False),
        sa.Column('status', session_status, nullable=False, server_default='PENDING'),
        sa.Column('scheduled_date', sa.DateTime(), nullable=False),
        sa.Column('scheduled_time', sa.String(5), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='Asia/Kolkata'),
        sa.Column('platform', sa.String(50), nullable=True),
        sa.Column('meeting_id', sa.String(255), nullable=True),
        sa.Column('meeting_link', sa.String(500), nullable=True),
        sa.Column('meeting_password', sa.String(255), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='INR'),
        sa.Column('payment_status', payment_status, nullable=False, server_default='PENDING'),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('payment_id', sa.String(100), nullable=True),
        sa.Column('client_notes', sa.Text(), nullable=True),
        sa.Column('consultant_notes', sa.Text(), nullable=True),
        sa.Column('reminder_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('booking_source', sa.String(50), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        *timestamps(),
    )
    op.create_index('ix_sessions_consultant_id', 'sessions', ['consultant_id'])
    op.create_index('ix_sessions_client_id', 'sessions', ['client_id'])
    op.create_index('ix_sessions_session_type', 'sessions', ['session_type'])
    op.create_index('ix_sessions_status', 'sessions', ['status'])
    op.create_index('ix_sessions_scheduled_date', 'sessions', ['scheduled_date'])
    op.create_index('ix_sessions_payment_status', 'sessions', ['payment_status'])

    op.create_table(
        'weekly_availability_patterns',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('consultant_id', sa.String(36), sa.ForeignKey('consultants.id'), nullable=False),
        sa.Column('session_type', session_type, nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.String(5), nullable=False),
        sa.Column('end_time', sa.String(5), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('timezone', sa.String(64), nullable=False, server_default='Asia/Kolkata'),
        *timestamps(),
        sa.UniqueConstraint(
            'consultant_id', 'session_type', 'day_of_week', 'start_time',
            name='weekly_availability_patterns_consultant_id_session_type_day_key'
        ),
    )
    op.create_index('ix_weekly_availability_patterns_consultant_id', 'weekly_availability_patterns', ['consultant_id'])
    op.create_index('ix_weekly_availability_patterns_session_type', 'weekly_availability_patterns', ['session_type'])
    op.create_index('ix_weekly_availability_patterns_day_of_week', 'weekly_availability_patterns', ['day_of_week'])
    op.create_index('ix_weekly_availability_patterns_is_active', 'weekly_availability_patterns', ['is_active'])

    op.create_table(
        'availability_slots',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('consultant_id', sa.String(36), sa.ForeignKey('consultants.id'), nullable=False),
        sa.Column('session_type', session_type, nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.String(5), nullable=False),
        sa.Column('end_time', sa.String(5), nullable=False),
        sa.Column('is_booked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_blocked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('session_id', sa.String(36), sa.ForeignKey('sessions.id'), nullable=True),
        *timestamps(),
        sa.UniqueConstraint(
            'consultant_id', 'session_type', 'date', 'start_time',
            name='availability_slots_consultant_id_session_type_date_start_ti_key'
        ),
        sa.UniqueConstraint('session_id', name='availability_slots_session_id_key'),
    )
    op.create_index('ix_availability_slots_consultant_id', 'availability_slots', ['consultant_id'])
    op.create_index('ix_availability_slots_session_type', 'availability_slots', ['session_type'])
    op.create_index('ix_availability_slots_date', 'availability_slots', ['date'])
    op.create_index('ix_availability_slots_is_booked', 'availability_slots', ['is_booked'])
    op.create_index(
        'availability_slots_open_lookup_idx',
        'availability_slots',
        ['consultant_id', 'is_booked', 'is_blocked', 'date']
    )

    op.create_table(
        'quotations',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('consultant_id', sa.String(36), sa.ForeignKey('consultants.id'), nullable=False),
        sa.Column('quotation_number', sa.String(50), nullable=False, unique=True),
        sa.Column('client_name', sa.String(200), nullable=False),
        sa.Column('client_email', sa.String(255), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('base_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('discount_percentage', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('final_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='INR'),
        sa.Column('status', quotation_status, nullable=False, server_default='DRAFT'),
        sa.Column('valid_until', sa.DateTime(), nullable=True),
        sa.Column('view_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('responded_at', sa.DateTime(), nullable=True),
        *timestamps(),
    )
    op.create_index('ix_quotations_consultant_id', 'quotations', ['consultant_id'])
    op.create_index('ix_quotations_client_email', 'quotations', ['client_email'])
    op.create_index('ix_quotations_status', 'quotations', ['status'])

    op.create_table(
        'payment_transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('session_id', sa.String(36), sa.ForeignKey('sessions.id'), nullable=True),
        sa.Column('quotation_id', sa.String(36), sa.ForeignKey('quotations.id'), nullable=True),
        sa.Column('consultant_id', sa.String(36), sa.ForeignKey('consultants.id'), nullable=False),
        sa.Column('client_id', sa.String(36), sa.ForeignKey('clients.id'), nullable=True),
        sa.Column('client_email', sa.String(255), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='INR'),
        sa.Column('payment_method', sa.String(50), nullable=True),
        sa.Column('gateway_order_id', sa.String(100), nullable=True, unique=True),
        sa.Column('gateway_payment_id', sa.String(100), nullable=True, unique=True),
        sa.Column('gateway_response', sa.JSON(), nullable=True),
        sa.Column('status', transaction_status, nullable=False, server_default='PENDING'),
        sa.Column('transaction_type', sa.String(20), nullable=False, server_default='payment'),
        sa.Column('failure_reason', sa.String(500), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        *timestamps(),
    )
    op.create_index('ix_payment_transactions_session_id', 'payment_transactions', ['session_id'])
    op.create_index('ix_payment_transactions_quotation_id', 'payment_transactions', ['quotation_id'])
    op.create_index('ix_payment_transactions_consultant_id', 'payment_transactions', ['consultant_id'])
    op.create_index('ix_payment_transactions_status', 'payment_transactions', ['status'])


def downgrade():
    op.drop_table('payment_transactions')
    op.drop_table('quotations')
    op.drop_table('availability_slots')
    op.drop_table('weekly_availability_patterns')
    op.drop_table('sessions')
    op.drop_table('clients')
    op.drop_table('consultants')

    bind = op.get_bind()
    for enum in reversed(ENUMS):
        enum.drop(bind, checkfirst=True)
