"""Create scheduling tables

Revision ID: 3f7a9c2e1b54
Revises:
Create Date: 2026-10-19

Creates the scheduling engine's tables:
- facilities: Bookable spaces with duration bounds and opening hours
- programs: Recurring activities and their recurrence parameters
- program_sessions: Materialized dated occurrences of programs
- facility_rentals: Customer rentals with hold lifecycle
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

from arena_scheduler.models.base import GUID, UTCDateTime, get_json_type


# revision identifiers, used by Alembic.
revision: str = '3f7a9c2e1b54'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _audit_columns() -> list:
    return [
        sa.Column('id', GUID(), nullable=False),
        sa.Column('created_at', UTCDateTime(), nullable=False),
        sa.Column('updated_at', UTCDateTime(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table('facilities',
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('facility_type', sa.String(length=50), nullable=False),
        sa.Column('bookable', sa.Boolean(), nullable=False),
        sa.Column('allow_clashes', sa.Boolean(), nullable=False),
        sa.Column('min_booking_duration_minutes', sa.Integer(), nullable=True),
        sa.Column('max_booking_duration_minutes', sa.Integer(), nullable=True),
        sa.Column('open_time', sa.Time(), nullable=True),
        sa.Column('close_time', sa.Time(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('facilities', schema=None) as batch_op:
        batch_op.create_index('idx_facility_type', ['facility_type'], unique=False)
        batch_op.create_index('idx_facility_bookable', ['bookable'], unique=False)

    op.create_table('programs',
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('program_type', sa.String(length=50), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('allow_drop_in', sa.Boolean(), nullable=False),
        sa.Column('drop_in_price', sa.Float(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('start_date', sa.Date(), nullable=False),
        sa.Column('end_date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('repeats', sa.Boolean(), nullable=False),
        sa.Column('frequency', sa.String(length=20), nullable=False),
        sa.Column('days_of_week', get_json_type(), nullable=False),
        sa.Column('recurrence_ends', sa.String(length=20), nullable=False),
        sa.Column('recurrence_end_date', sa.Date(), nullable=True),
        sa.Column('recurrence_count', sa.Integer(), nullable=True),
        sa.Column('custom_sessions', sa.Boolean(), nullable=False),
        sa.Column('facility_id', GUID(), nullable=True),
        *_audit_columns(),
        sa.CheckConstraint('start_date <= end_date', name='ck_program_date_range'),
        sa.ForeignKeyConstraint(['facility_id'], ['facilities.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('programs', schema=None) as batch_op:
        batch_op.create_index('idx_program_facility', ['facility_id'], unique=False)
        batch_op.create_index('idx_program_dates', ['start_date', 'end_date'], unique=False)

    op.create_table('program_sessions',
        sa.Column('program_id', GUID(), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('end_time', sa.Time(), nullable=False),
        sa.Column('facility_id', GUID(), nullable=True),
        sa.Column('drop_in_price', sa.Float(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['program_id'], ['programs.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['facility_id'], ['facilities.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('program_sessions', schema=None) as batch_op:
        batch_op.create_index('idx_session_program', ['program_id'], unique=False)
        batch_op.create_index('idx_session_facility_date', ['facility_id', 'date'], unique=False)

    op.create_table('facility_rentals',
        sa.Column('facility_id', GUID(), nullable=False),
        sa.Column('customer_ref', sa.String(length=100), nullable=True),
        sa.Column('start_time', UTCDateTime(), nullable=False),
        sa.Column('end_time', UTCDateTime(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('hold_expires_at', UTCDateTime(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(['facility_id'], ['facilities.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('facility_rentals', schema=None) as batch_op:
        batch_op.create_index('idx_rental_facility', ['facility_id'], unique=False)
        batch_op.create_index('idx_rental_status', ['status'], unique=False)
        batch_op.create_index('idx_rental_facility_time', ['facility_id', 'start_time', 'end_time'], unique=False)


def downgrade() -> None:
    with op.batch_alter_table('facility_rentals', schema=None) as batch_op:
        batch_op.drop_index('idx_rental_facility_time')
        batch_op.drop_index('idx_rental_status')
        batch_op.drop_index('idx_rental_facility')
    op.drop_table('facility_rentals')

    with op.batch_alter_table('program_sessions', schema=None) as batch_op:
        batch_op.drop_index('idx_session_facility_date')
        batch_op.drop_index('idx_session_program')
    op.drop_table('program_sessions')

    with op.batch_alter_table('programs', schema=None) as batch_op:
        batch_op.drop_index('idx_program_dates')
        batch_op.drop_index('idx_program_facility')
    op.drop_table('programs')

    with op.batch_alter_table('facilities', schema=None) as batch_op:
        batch_op.drop_index('idx_facility_bookable')
        batch_op.drop_index('idx_facility_type')
    op.drop_table('facilities')
