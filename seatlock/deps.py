from seatlock.db.session import async_session
from seatlock.services.seat_lock import SeatLockManager

_manager = SeatLockManager(async_session)


def get_lock_manager() -> SeatLockManager:
    return _manager
