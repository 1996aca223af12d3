from typing import Optional

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from seatlock.db.session import get_session
from seatlock.deps import get_lock_manager
from seatlock.schemas.seat_lock import (
    AcquireLockRequest,
    AcquireLockResponse,
    ConfirmLockRequest,
    PaymentOutcomeRequest,
    PaymentOutcomeResponse,
    ReleaseCountResponse,
    ReleaseResponse,
    SeatLockResponse,
)
from seatlock.services.inventory import validate_seat_selection
from seatlock.services.payment_outcome import apply_payment_outcome
from seatlock.services.seat_lock import SeatLockManager

router = APIRouter()


@router.post("/", response_model=AcquireLockResponse, status_code=status.HTTP_201_CREATED)
async def acquire_lock(
    req: AcquireLockRequest,
    db: AsyncSession = Depends(get_session),
    manager: SeatLockManager = Depends(get_lock_manager),
):
    """Hold seats on a trip for a short TTL. All requested seats are held, or none."""
    # reject unknown or already sold seats before touching the lock table
    async with db.begin():
        await validate_seat_selection(db, req.trip_id, req.seat_numbers)

    lock_id = await manager.acquire(req.trip_id, req.seat_numbers, req.holder_id, ttl_seconds=req.ttl_seconds)
    lock = await manager.get_lock(lock_id)
    return AcquireLockResponse(lock_id=lock.id, seat_numbers=lock.seat_numbers, expires_at=lock.expires_at)


@router.post("/sweep", response_model=ReleaseCountResponse)
async def sweep_expired(manager: SeatLockManager = Depends(get_lock_manager)):
    """Manual trigger for the expiry sweep that celery beat normally runs."""
    return ReleaseCountResponse(released=await manager.release_expired_locks())


@router.post("/holders/{holder_id}/release", response_model=ReleaseCountResponse)
async def release_holder(holder_id: str, manager: SeatLockManager = Depends(get_lock_manager)):
    return ReleaseCountResponse(released=await manager.release_holder_locks(holder_id))


@router.get("/{lock_id}", response_model=SeatLockResponse)
async def get_lock(lock_id: str, manager: SeatLockManager = Depends(get_lock_manager)):
    return await manager.get_lock(lock_id)


@router.post("/{lock_id}/confirm", response_model=SeatLockResponse)
async def confirm_lock(
    lock_id: str,
    req: Optional[ConfirmLockRequest] = None,
    manager: SeatLockManager = Depends(get_lock_manager),
):
    """Confirm a hold after payment succeeded."""
    await manager.confirm(lock_id, booking_id=req.booking_id if req else None)
    return await manager.get_lock(lock_id)


@router.post("/{lock_id}/release", response_model=ReleaseResponse)
async def release_lock(lock_id: str, force: bool = False, manager: SeatLockManager = Depends(get_lock_manager)):
    """Release a hold. `force` is required to hand back the seats of a confirmed booking."""
    released = await manager.release(lock_id, force=force)
    return ReleaseResponse(lock_id=lock_id, released=released)


@router.post("/{lock_id}/payment-outcome", response_model=PaymentOutcomeResponse)
async def payment_outcome(
    lock_id: str,
    req: PaymentOutcomeRequest,
    manager: SeatLockManager = Depends(get_lock_manager),
):
    action = await apply_payment_outcome(manager, lock_id, req.status, booking_id=req.booking_id)
    return PaymentOutcomeResponse(lock_id=lock_id, action=action)
