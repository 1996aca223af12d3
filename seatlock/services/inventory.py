from dataclasses import dataclass, field
from typing import List

from sqlalchemy import select as sa_select
from sqlalchemy.ext.asyncio import AsyncSession

from seatlock.exceptions import InvalidLockRequestError, SeatsUnavailableError, TripNotFoundError
from seatlock.models.models import SOLD_BOOKING_STATUSES, Booking, Seat, SeatMap, Trip


@dataclass
class TripInventory:
    trip_id: int
    all_seats: List[str] = field(default_factory=list)
    sold_seats: List[str] = field(default_factory=list)
    locked_seats: List[str] = field(default_factory=list)

    @property
    def available_seats(self) -> List[str]:
        taken = set(self.sold_seats) | set(self.locked_seats)
        return [s for s in self.all_seats if s not in taken]


async def get_trip(db: AsyncSession, trip_id: int) -> Trip:
    trip = await db.get(Trip, trip_id)
    if trip is None:
        raise TripNotFoundError(trip_id)
    return trip


async def get_trip_inventory(db: AsyncSession, trip_id: int, locked_seats: List[str] = None) -> TripInventory:
    """All seats on the trip's bus, the ones sold through bookings, and the ones currently held.

    `locked_seats` comes from SeatLockManager.get_locked_seats(); this module only reads
    the trip and booking tables.
    """
    trip = await get_trip(db, trip_id)

    all_seats: List[str] = []
    if trip.bus_id is not None:
        stmt = (
            sa_select(Seat.seat_number)
            .join(SeatMap, SeatMap.id == Seat.seatmap_id)
            .where(SeatMap.bus_id == trip.bus_id)
            .order_by(Seat.id)
        )
        res = await db.execute(stmt)
        all_seats = list(dict.fromkeys(res.scalars().all()))

    stmt = (
        sa_select(Seat.seat_number)
        .join(Booking, Booking.seat_id == Seat.id)
        .where(Booking.trip_id == trip_id)
        .where(Booking.status.in_(SOLD_BOOKING_STATUSES))
    )
    res = await db.execute(stmt)
    sold = sorted(set(res.scalars().all()))

    return TripInventory(trip_id=trip_id, all_seats=all_seats, sold_seats=sold, locked_seats=sorted(set(locked_seats or [])))


async def validate_seat_selection(db: AsyncSession, trip_id: int, seat_numbers: List[str]) -> TripInventory:
    """Reject seats that do not exist on the trip or are already sold.

    Held seats are left to SeatLockManager.acquire(), which checks them atomically.
    """
    inventory = await get_trip_inventory(db, trip_id)
    known = set(inventory.all_seats)
    unknown = sorted(s for s in seat_numbers if s not in known)
    if unknown:
        raise InvalidLockRequestError("Unknown seats for trip %s: %s" % (trip_id, ", ".join(unknown)))
    sold = sorted(set(seat_numbers) & set(inventory.sold_seats))
    if sold:
        raise SeatsUnavailableError(sold)
    return inventory
