from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional
from datetime import datetime


class AcquireLockRequest(BaseModel):
    trip_id: int
    seat_numbers: List[str] = Field(..., min_length=1)
    holder_id: str = Field(..., min_length=1, max_length=64, description="user id or guest session id")
    ttl_seconds: Optional[int] = Field(None, description="Hold TTL in seconds, defaults to 900")


class AcquireLockResponse(BaseModel):
    lock_id: str
    seat_numbers: List[str]
    expires_at: datetime


class ConfirmLockRequest(BaseModel):
    booking_id: Optional[int] = None


class PaymentOutcomeRequest(BaseModel):
    status: str = Field(..., description="provider payment status, e.g. success / failed")
    booking_id: Optional[int] = None


class PaymentOutcomeResponse(BaseModel):
    lock_id: str
    action: str


class SeatLockResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    trip_id: int
    seat_numbers: List[str]
    holder_id: str
    booking_id: Optional[int] = None
    status: str
    expires_at: datetime
    created_at: datetime
    updated_at: datetime


class ReleaseResponse(BaseModel):
    lock_id: str
    released: bool


class ReleaseCountResponse(BaseModel):
    released: int


class AvailabilityResponse(BaseModel):
    trip_id: int
    seat_numbers: List[str]
    available: bool


class TripSeatsResponse(BaseModel):
    trip_id: int
    all_seats: List[str]
    sold_seats: List[str]
    locked_seats: List[str]
    available_seats: List[str]
