"""create_booking_engine_tables

Revision ID: 3f1c2a7b9d10
Revises:
Create Date: 2026-10-16 10:12:41.204518

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f1c2a7b9d10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


user_type = sa.Enum('customer', 'provider', 'admin', name='user_type')
service_category = sa.Enum('cleaning', 'cooking', 'beauty', 'tutoring', 'other', name='service_category')
BOOKING_STATUSES = ('pending', 'confirmed', 'in_progress', 'completed', 'cancelled', 'declined', 'no_show')
booking_status = sa.Enum(*BOOKING_STATUSES, name='booking_status')
# Second use of the type; created with the bookings table on PostgreSQL
booking_status_existing = sa.Enum(*BOOKING_STATUSES, name='booking_status').with_variant(
    postgresql.ENUM(*BOOKING_STATUSES, name='booking_status', create_type=False), 'postgresql'
)
location_type = sa.Enum('customer_address', 'provider_address', 'custom', name='location_type')
payment_method = sa.Enum('cash', 'online', 'bank_transfer', name='payment_method')
job_type = sa.Enum('rating_recalculation', 'other', name='job_type')
job_status = sa.Enum('processing', 'done', 'failed', name='job_status')


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', user_type, nullable=False),
        sa.Column('address', sa.String(length=500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('phone IS NOT NULL OR email IS NOT NULL', name='user_contact_required'),
    )
    op.create_index('ix_users_phone', 'users', ['phone'], unique=True)
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_type', 'users', ['type'])

    op.create_table(
        'providers',
        sa.Column('id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('rating_average', sa.Numeric(3, 1), nullable=False, server_default='0'),
        sa.Column('rating_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('completed_services', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.CheckConstraint('completed_services >= 0', name='provider_completed_non_negative'),
    )

    op.create_table(
        'services',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('provider_id', sa.Uuid(), sa.ForeignKey('providers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('category', service_category, nullable=False),
        sa.Column('description', sa.String(length=1000), nullable=True),
        sa.Column('base_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=True),
        sa.Column('duration_minutes', sa.Integer(), nullable=False, server_default='60'),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_approved', sa.Boolean(), nullable=False),
        sa.Column('total_bookings', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('rating_average', sa.Numeric(3, 1), nullable=False, server_default='0'),
        sa.Column('rating_count', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_services_provider_id', 'services', ['provider_id'])
    op.create_index('ix_services_name', 'services', ['name'])
    op.create_index('ix_services_category', 'services', ['category'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('booking_code', sa.String(length=32), nullable=False, unique=True),
        sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider_id', sa.Uuid(), sa.ForeignKey('providers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('service_id', sa.Uuid(), sa.ForeignKey('services.id', ondelete='CASCADE'), nullable=False),
        sa.Column('scheduled_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=False),
        sa.Column('end_time', sa.String(length=5), nullable=True),
        sa.Column('duration_estimated', sa.Integer(), nullable=True),
        sa.Column('duration_actual', sa.Integer(), nullable=True),
        sa.Column('slot_key', sa.String(length=100), nullable=True),
        sa.Column('location_type', location_type, nullable=False),
        sa.Column('location_address', sa.String(length=500), nullable=True),
        sa.Column('location_instructions', sa.String(length=500), nullable=True),
        sa.Column('agreed_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('payment_method', payment_method, nullable=False),
        sa.Column('status', booking_status, nullable=False),
        sa.Column('customer_notes', sa.String(length=500), nullable=True),
        sa.Column('provider_notes', sa.String(length=500), nullable=True),
        sa.Column('cancelled_by', sa.Uuid(), nullable=True),
        sa.Column('cancellation_reason', sa.String(length=500), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_by', sa.Uuid(), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_reviewed', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('agreed_amount >= 0', name='booking_amount_non_negative'),
        # Occupied slots: at most one pending/confirmed booking per provider/date/start
        sa.UniqueConstraint('slot_key', name='uq_bookings_slot_key'),
    )
    op.create_index('ix_bookings_customer_id', 'bookings', ['customer_id'])
    op.create_index('ix_bookings_provider_id', 'bookings', ['provider_id'])
    op.create_index('ix_bookings_service_id', 'bookings', ['service_id'])
    op.create_index('ix_bookings_scheduled_date', 'bookings', ['scheduled_date'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index('ix_bookings_provider_date', 'bookings', ['provider_id', 'scheduled_date'])
    op.create_index('ix_bookings_customer_status', 'bookings', ['customer_id', 'status'])

    op.create_table(
        'booking_status_events',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('booking_id', sa.Uuid(), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False),
        sa.Column('from_status', booking_status_existing, nullable=True),
        sa.Column('to_status', booking_status_existing, nullable=False),
        sa.Column('actor_id', sa.Uuid(), nullable=False),
        sa.Column('actor_role', sa.String(length=20), nullable=False),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_booking_status_events_booking_id', 'booking_status_events', ['booking_id'])

    op.create_table(
        'reviews',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('booking_id', sa.Uuid(), sa.ForeignKey('bookings.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('customer_id', sa.Uuid(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('provider_id', sa.Uuid(), nullable=False),
        sa.Column('service_id', sa.Uuid(), nullable=False),
        sa.Column('rating_overall', sa.Integer(), nullable=False),
        sa.Column('rating_quality', sa.Integer(), nullable=True),
        sa.Column('rating_punctuality', sa.Integer(), nullable=True),
        sa.Column('rating_communication', sa.Integer(), nullable=True),
        sa.Column('rating_value', sa.Integer(), nullable=True),
        sa.Column('comment', sa.String(length=1000), nullable=False),
        sa.Column('pros', sa.JSON(), nullable=False),
        sa.Column('cons', sa.JSON(), nullable=False),
        sa.Column('would_recommend', sa.Boolean(), nullable=False),
        sa.Column('is_anonymous', sa.Boolean(), nullable=False),
        sa.Column('is_visible', sa.Boolean(), nullable=False),
        sa.Column('is_reported', sa.Boolean(), nullable=False),
        sa.Column('is_editable', sa.Boolean(), nullable=False),
        sa.Column('editable_until', sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('rating_overall >= 1 AND rating_overall <= 5', name='review_rating_range'),
        sa.CheckConstraint(
            'rating_quality IS NULL OR (rating_quality >= 1 AND rating_quality <= 5)',
            name='review_quality_range',
        ),
        sa.CheckConstraint(
            'rating_punctuality IS NULL OR (rating_punctuality >= 1 AND rating_punctuality <= 5)',
            name='review_punctuality_range',
        ),
        sa.CheckConstraint(
            'rating_communication IS NULL OR (rating_communication >= 1 AND rating_communication <= 5)',
            name='review_communication_range',
        ),
        sa.CheckConstraint(
            'rating_value IS NULL OR (rating_value >= 1 AND rating_value <= 5)',
            name='review_value_range',
        ),
    )
    op.create_index('ix_reviews_customer_id', 'reviews', ['customer_id'])
    op.create_index('ix_reviews_provider_id', 'reviews', ['provider_id'])
    op.create_index('ix_reviews_service_id', 'reviews', ['service_id'])
    op.create_index('ix_reviews_provider_visible', 'reviews', ['provider_id', 'is_visible'])
    op.create_index('ix_reviews_service_visible', 'reviews', ['service_id', 'is_visible'])

    op.create_table(
        'jobs',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('type', job_type, nullable=False),
        sa.Column('status', job_status, nullable=False),
        sa.Column('triggered_by', sa.String(length=100), nullable=True, comment="Actor id or 'cli'"),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('error', sa.String(length=1000), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_jobs_type', 'jobs', ['type'])
    op.create_index('ix_jobs_status', 'jobs', ['status'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('jobs')
    op.drop_table('reviews')
    op.drop_table('booking_status_events')
    op.drop_table('bookings')
    op.drop_table('services')
    op.drop_table('providers')
    op.drop_table('users')

    bind = op.get_bind()
    for enum_type in (job_status, job_type, payment_method, location_type, booking_status, service_category, user_type):
        enum_type.drop(bind, checkfirst=True)
