from datetime import datetime, timedelta

import httpx
import pytest
from sqlalchemy import select as sa_select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seatlock.db.base import Base
from seatlock.db.session import get_session, make_engine
from seatlock.deps import get_lock_manager
from seatlock.main import app
from seatlock.models.models import Booking, Bus, Seat, SeatMap, Trip
from seatlock.services.seat_lock import SeatLockManager

SEAT_NUMBERS = ["A1", "A2", "A3", "A4", "B1", "B2", "B3", "B4"]


class FakeClock:
    """Controllable stand-in for seatlock.clock.utcnow."""

    def __init__(self, now=None):
        self.now = now or datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def engine(tmp_path):
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'seatlock.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def manager(session_factory, clock):
    return SeatLockManager(session_factory, clock=clock, default_ttl_seconds=900, max_ttl_seconds=3600, acquire_retries=3)


@pytest.fixture
async def trip_id(session_factory):
    """A trip on a bus with seats A1-A4 and B1-B4."""
    async with session_factory() as db:
        async with db.begin():
            bus = Bus(registration_number="UAX 123K", capacity=len(SEAT_NUMBERS))
            db.add(bus)
            await db.flush()
            seatmap = SeatMap(bus_id=bus.id, layout={"rows": 2, "cols": 4})
            db.add(seatmap)
            await db.flush()
            db.add_all([Seat(seatmap_id=seatmap.id, seat_number=n) for n in SEAT_NUMBERS])
            trip = Trip(bus_id=bus.id, departure_time=datetime(2026, 1, 2, 8, 0, 0), status="scheduled")
            db.add(trip)
            await db.flush()
            return trip.id


@pytest.fixture
async def other_trip_id(session_factory, trip_id):
    """A second trip, with no bus of its own."""
    async with session_factory() as db:
        async with db.begin():
            trip = Trip(bus_id=None, departure_time=datetime(2026, 1, 3, 8, 0, 0), status="scheduled")
            db.add(trip)
            await db.flush()
            return trip.id


@pytest.fixture
def sell_seat(session_factory):
    """Record a confirmed booking for a seat, taking it out of inventory."""

    async def _sell(trip_id, seat_number, status="confirmed"):
        async with session_factory() as db:
            async with db.begin():
                trip = await db.get(Trip, trip_id)
                stmt = (
                    sa_select(Seat)
                    .join(SeatMap, SeatMap.id == Seat.seatmap_id)
                    .where(SeatMap.bus_id == trip.bus_id)
                    .where(Seat.seat_number == seat_number)
                )
                seat = (await db.execute(stmt)).scalars().first()
                booking = Booking(trip_id=trip_id, seat_id=seat.id, status=status)
                db.add(booking)
                await db.flush()
                return booking.id

    return _sell


@pytest.fixture
async def client(session_factory, manager):
    async def _get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _get_session
    app.dependency_overrides[get_lock_manager] = lambda: manager
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
