"""inventory and seat locks

Revision ID: 0001_seat_locks
Revises: 
Create Date: 2026-10-19 00:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0001_seat_locks'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('buses',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('registration_number', sa.String(length=64), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_buses_registration_number', 'buses', ['registration_number'], unique=True)

    op.create_table('seatmaps',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('bus_id', sa.Integer(), nullable=False),
        sa.Column('layout', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['bus_id'], ['buses.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_seatmaps_bus_id', 'seatmaps', ['bus_id'], unique=False)

    op.create_table('seats',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('seatmap_id', sa.Integer(), nullable=False),
        sa.Column('seat_number', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['seatmap_id'], ['seatmaps.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('seatmap_id', 'seat_number', name='uq_seatmap_seat_number'),
    )
    op.create_index('ix_seats_seatmap_id', 'seats', ['seatmap_id'], unique=False)

    op.create_table('trips',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('bus_id', sa.Integer(), nullable=True),
        sa.Column('departure_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='scheduled'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['bus_id'], ['buses.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_trips_bus_id', 'trips', ['bus_id'], unique=False)
    op.create_index('ix_trips_departure_time', 'trips', ['departure_time'], unique=False)
    op.create_index('ix_trips_status', 'trips', ['status'], unique=False)

    op.create_table('bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('trip_id', sa.Integer(), nullable=False),
        sa.Column('seat_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=50), nullable=False, server_default='pending'),
        sa.Column('booked_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(['trip_id'], ['trips.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['seat_id'], ['seats.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('trip_id', 'seat_id', name='uq_trip_seat'),
    )
    op.create_index('ix_bookings_trip_id', 'bookings', ['trip_id'], unique=False)
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'], unique=False)
    op.create_index('ix_bookings_seat_id', 'bookings', ['seat_id'], unique=False)
    op.create_index('ix_bookings_status', 'bookings', ['status'], unique=False)

    op.create_table('seat_locks',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('trip_id', sa.Integer(), nullable=False),
        sa.Column('seat_numbers', sa.JSON(), nullable=False),
        sa.Column('holder_id', sa.String(length=64), nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='HELD'),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['trip_id'], ['trips.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ondelete='SET NULL'),
    )
    op.create_index('ix_seat_locks_trip_id', 'seat_locks', ['trip_id'], unique=False)
    op.create_index('ix_seat_locks_holder_id', 'seat_locks', ['holder_id'], unique=False)
    op.create_index('ix_seat_locks_trip_status_expires', 'seat_locks', ['trip_id', 'status', 'expires_at'], unique=False)
    op.create_index('ix_seat_locks_status_expires', 'seat_locks', ['status', 'expires_at'], unique=False)

    # one row per held seat; the unique constraint is the double-booking guard
    op.create_table('seat_claims',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('trip_id', sa.Integer(), nullable=False),
        sa.Column('seat_number', sa.String(length=32), nullable=False),
        sa.Column('lock_id', sa.String(length=36), nullable=False),
        sa.ForeignKeyConstraint(['lock_id'], ['seat_locks.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('trip_id', 'seat_number', name='uq_seat_claim_trip_seat'),
    )
    op.create_index('ix_seat_claims_lock_id', 'seat_claims', ['lock_id'], unique=False)


def downgrade():
    op.drop_index('ix_seat_claims_lock_id', table_name='seat_claims')
    op.drop_table('seat_claims')
    op.drop_index('ix_seat_locks_status_expires', table_name='seat_locks')
    op.drop_index('ix_seat_locks_trip_status_expires', table_name='seat_locks')
    op.drop_index('ix_seat_locks_holder_id', table_name='seat_locks')
    op.drop_index('ix_seat_locks_trip_id', table_name='seat_locks')
    op.drop_table('seat_locks')
    op.drop_index('ix_bookings_status', table_name='bookings')
    op.drop_index('ix_bookings_seat_id', table_name='bookings')
    op.drop_index('ix_bookings_user_id', table_name='bookings')
    op.drop_index('ix_bookings_trip_id', table_name='bookings')
    op.drop_table('bookings')
    op.drop_index('ix_trips_status', table_name='trips')
    op.drop_index('ix_trips_departure_time', table_name='trips')
    op.drop_index('ix_trips_bus_id', table_name='trips')
    op.drop_table('trips')
    op.drop_index('ix_seats_seatmap_id', table_name='seats')
    op.drop_table('seats')
    op.drop_index('ix_seatmaps_bus_id', table_name='seatmaps')
    op.drop_table('seatmaps')
    op.drop_index('ix_buses_registration_number', table_name='buses')
    op.drop_table('buses')
