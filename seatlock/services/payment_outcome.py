import logging
from typing import Optional

from seatlock.services.seat_lock import SeatLockManager

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = ("successful", "success", "succeeded", "paid", "completed")
FAILURE_STATUSES = ("failed", "failed_attempt", "error", "declined", "cancelled", "canceled", "expired", "timeout")

CONFIRMED_ACTION = "confirmed"
RELEASED_ACTION = "released"
IGNORED_ACTION = "ignored"


def classify_payment_status(status: Optional[str]) -> str:
    lcstatus = (status or "").strip().lower()
    if lcstatus in SUCCESS_STATUSES:
        return CONFIRMED_ACTION
    if lcstatus in FAILURE_STATUSES:
        return RELEASED_ACTION
    return IGNORED_ACTION


async def apply_payment_outcome(manager: SeatLockManager, lock_id: str, status: Optional[str], booking_id: Optional[int] = None) -> str:
    """Confirm or release a hold from a payment provider status. Returns the action taken.

    Pending/unknown statuses leave the hold alone; it either gets a final status later
    or expires and is swept.
    """
    action = classify_payment_status(status)
    if action == CONFIRMED_ACTION:
        await manager.confirm(lock_id, booking_id=booking_id)
    elif action == RELEASED_ACTION:
        await manager.release(lock_id)
    else:
        logger.info("Ignoring non-final payment status %r for seat lock %s", status, lock_id)
    return action
