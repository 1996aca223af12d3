from datetime import datetime
from typing import Iterable

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    ForeignKey,
    JSON,
    UniqueConstraint,
    Index,
    and_,
    or_,
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from seatlock.db.base import Base


# Seat lock statuses
HELD = "HELD"
CONFIRMED = "CONFIRMED"
RELEASED = "RELEASED"
LOCK_STATUSES = (HELD, CONFIRMED, RELEASED)

# Booking statuses that take a seat out of inventory for good
SOLD_BOOKING_STATUSES = ("confirmed", "paid")

# unique constraint that stops two live locks from claiming the same seat
SEAT_CLAIM_CONSTRAINT = "uq_seat_claim_trip_seat"


class Bus(Base):
    __tablename__ = "buses"
    id = Column(Integer, primary_key=True)
    registration_number = Column(String(64), nullable=False, unique=True, index=True)
    capacity = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    seatmaps = relationship("SeatMap", back_populates="bus")


class SeatMap(Base):
    __tablename__ = "seatmaps"
    id = Column(Integer, primary_key=True)
    bus_id = Column(Integer, ForeignKey("buses.id", ondelete="CASCADE"), nullable=False, index=True)
    layout = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    bus = relationship("Bus", back_populates="seatmaps")
    seats = relationship("Seat", back_populates="seatmap")


class Seat(Base):
    __tablename__ = "seats"
    id = Column(Integer, primary_key=True)
    seatmap_id = Column(Integer, ForeignKey("seatmaps.id", ondelete="CASCADE"), nullable=False, index=True)
    seat_number = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    seatmap = relationship("SeatMap", back_populates="seats")

    __table_args__ = (UniqueConstraint("seatmap_id", "seat_number", name="uq_seatmap_seat_number"),)


class Trip(Base):
    __tablename__ = "trips"
    id = Column(Integer, primary_key=True)
    bus_id = Column(Integer, ForeignKey("buses.id", ondelete="SET NULL"), nullable=True, index=True)
    departure_time = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(String(50), nullable=False, default="scheduled", index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class Booking(Base):
    __tablename__ = "bookings"
    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=True, index=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    seat_id = Column(Integer, ForeignKey("seats.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(String(50), nullable=False, default="pending", index=True)
    booked_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (UniqueConstraint("trip_id", "seat_id", name="uq_trip_seat"),)


class SeatLock(Base):
    __tablename__ = "seat_locks"
    id = Column(String(36), primary_key=True)
    trip_id = Column(Integer, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    seat_numbers = Column(JSON, nullable=False)
    holder_id = Column(String(64), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(16), nullable=False, default=HELD)
    # naive UTC
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_seat_locks_trip_status_expires", "trip_id", "status", "expires_at"),
        Index("ix_seat_locks_status_expires", "status", "expires_at"),
    )

    def is_active(self, now: datetime) -> bool:
        return self.status == CONFIRMED or (self.status == HELD and self.expires_at > now)

    def is_expired(self, now: datetime) -> bool:
        return self.status == HELD and self.expires_at < now

    @classmethod
    def active_clause(cls, now: datetime):
        """SQL form of is_active(); every query for "active" locks goes through this."""
        return or_(cls.status == CONFIRMED, and_(cls.status == HELD, cls.expires_at > now))

    @classmethod
    def expired_clause(cls, now: datetime):
        return and_(cls.status == HELD, cls.expires_at < now)


class SeatClaim(Base):
    """One row per seat referenced by a not-yet-released lock.

    The unique constraint is what makes two holds on the same seat impossible.
    """

    __tablename__ = "seat_claims"
    id = Column(Integer, primary_key=True)
    trip_id = Column(Integer, nullable=False)
    seat_number = Column(String(32), nullable=False)
    lock_id = Column(String(36), ForeignKey("seat_locks.id", ondelete="CASCADE"), nullable=False, index=True)

    __table_args__ = (UniqueConstraint("trip_id", "seat_number", name=SEAT_CLAIM_CONSTRAINT),)


def collect_seats(locks: Iterable[SeatLock]) -> list:
    seats = set()
    for lock in locks:
        seats.update(lock.seat_numbers)
    return sorted(seats)
