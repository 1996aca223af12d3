from .models import *

__all__ = [
    "Base",
    "Bus",
    "SeatMap",
    "Seat",
    "Trip",
    "Booking",
    "SeatLock",
    "SeatClaim",
    "HELD",
    "CONFIRMED",
    "RELEASED",
]
