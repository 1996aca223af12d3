from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from seatlock.db.session import get_session
from seatlock.deps import get_lock_manager
from seatlock.schemas.seat_lock import AvailabilityResponse, SeatLockResponse, TripSeatsResponse
from seatlock.services.inventory import get_trip_inventory
from seatlock.services.seat_lock import SeatLockManager

router = APIRouter()


@router.get("/{trip_id}/locks", response_model=List[SeatLockResponse])
async def active_locks(trip_id: int, manager: SeatLockManager = Depends(get_lock_manager)):
    return await manager.get_active_locks(trip_id)


@router.get("/{trip_id}/availability", response_model=AvailabilityResponse)
async def seat_availability(
    trip_id: int,
    seats: List[str] = Query(..., description="seat numbers to check"),
    manager: SeatLockManager = Depends(get_lock_manager),
):
    available = await manager.are_seats_available(trip_id, seats)
    return AvailabilityResponse(trip_id=trip_id, seat_numbers=seats, available=available)


@router.get("/{trip_id}/seats", response_model=TripSeatsResponse)
async def trip_seats(
    trip_id: int,
    db: AsyncSession = Depends(get_session),
    manager: SeatLockManager = Depends(get_lock_manager),
):
    """Effective seat availability: every seat minus sold seats minus held seats."""
    locked = await manager.get_locked_seats(trip_id)
    async with db.begin():
        inventory = await get_trip_inventory(db, trip_id, locked)
    return TripSeatsResponse(
        trip_id=trip_id,
        all_seats=inventory.all_seats,
        sold_seats=inventory.sold_seats,
        locked_seats=inventory.locked_seats,
        available_seats=inventory.available_seats,
    )
