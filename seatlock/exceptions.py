from typing import Iterable, Optional


class SeatLockError(Exception):
    """Base class for seat hold errors. `status_code` is the HTTP status the API answers with."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": self.__class__.__name__, "detail": self.message}


class SeatsUnavailableError(SeatLockError):
    """One or more requested seats are already actively held or sold."""

    status_code = 409

    def __init__(self, seats: Iterable[str], message: Optional[str] = None):
        self.seats = sorted(set(seats))
        super().__init__(message or "Seats unavailable: %s" % ", ".join(self.seats))

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["seats"] = self.seats
        return data


class LockNotFoundError(SeatLockError):
    status_code = 404

    def __init__(self, lock_id: str):
        self.lock_id = lock_id
        super().__init__(f"Seat lock not found: {lock_id}")


class InvalidStateTransitionError(SeatLockError):
    status_code = 409

    def __init__(self, lock_id: str, current_status: str, target_status: str, message: Optional[str] = None):
        self.lock_id = lock_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            message or f"Cannot move seat lock {lock_id} from {current_status} to {target_status}"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["current_status"] = self.current_status
        return data


class LockExpiredError(InvalidStateTransitionError):
    """The hold expired and its seats were taken by another holder before it was confirmed."""

    def __init__(self, lock_id: str, seats: Iterable[str]):
        self.seats = sorted(set(seats))
        super().__init__(
            lock_id,
            "HELD",
            "CONFIRMED",
            message="Your seats are no longer held, please try again (%s)" % ", ".join(self.seats),
        )


class InvalidLockRequestError(SeatLockError):
    status_code = 422


class TripNotFoundError(SeatLockError):
    status_code = 404

    def __init__(self, trip_id: int):
        self.trip_id = trip_id
        super().__init__(f"Trip not found: {trip_id}")
