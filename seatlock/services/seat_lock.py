import logging
import time
from datetime import datetime, timedelta
from typing import Iterable, List, Optional
from uuid import uuid4

from sqlalchemy import delete as sa_delete
from sqlalchemy import or_, and_
from sqlalchemy import select as sa_select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from seatlock.clock import Clock, utcnow
from seatlock.config import settings
from seatlock.exceptions import (
    InvalidLockRequestError,
    InvalidStateTransitionError,
    LockExpiredError,
    LockNotFoundError,
    SeatsUnavailableError,
    TripNotFoundError,
)
from seatlock.metrics import (
    SEAT_LOCK_ATTEMPTS,
    SEAT_LOCK_LATENCY,
    SEAT_LOCK_SWEEP_FAILURES,
    SEAT_LOCK_TRANSITIONS,
    SEAT_LOCKS_SWEPT,
)
from seatlock.models.models import (
    CONFIRMED,
    HELD,
    RELEASED,
    SEAT_CLAIM_CONSTRAINT,
    Booking,
    SeatClaim,
    SeatLock,
    Trip,
    collect_seats,
)

logger = logging.getLogger(__name__)

# deadlock_detected, serialization_failure
RETRYABLE_SQLSTATES = ("40P01", "40001")


def _reclaimable(now: datetime):
    # locks whose claims may be taken over by a new holder
    return or_(SeatLock.status == RELEASED, and_(SeatLock.status == HELD, SeatLock.expires_at <= now))


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    return getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)


def is_seat_claim_conflict(exc: IntegrityError) -> bool:
    """True when the violated constraint is the one-claim-per-seat guard.

    Postgres names the constraint in the message; SQLite names its columns.
    """
    message = str(exc.orig)
    return SEAT_CLAIM_CONSTRAINT in message or "seat_claims.trip_id, seat_claims.seat_number" in message


def is_retryable(exc: DBAPIError) -> bool:
    return _sqlstate(exc) in RETRYABLE_SQLSTATES


async def _drop_stale_claims(db: AsyncSession, trip_id: int, seats: List[str], now: datetime) -> None:
    """Delete claims on `seats` left behind by released or expired holds.

    Rows are locked in seat order, the same order new claims are inserted in.
    """
    stmt = (
        sa_select(SeatClaim.id)
        .where(SeatClaim.trip_id == trip_id)
        .where(SeatClaim.seat_number.in_(seats))
        .where(SeatClaim.lock_id.in_(sa_select(SeatLock.id).where(_reclaimable(now))))
        .order_by(SeatClaim.seat_number)
        .with_for_update(of=SeatClaim)
    )
    stale_ids = (await db.execute(stmt)).scalars().all()
    if stale_ids:
        await db.execute(
            sa_delete(SeatClaim)
            .where(SeatClaim.id.in_(stale_ids))
            .execution_options(synchronize_session=False)
        )


def _claims(trip_id: int, seats: Iterable[str], lock_id: str) -> List[SeatClaim]:
    return [SeatClaim(trip_id=trip_id, seat_number=s, lock_id=lock_id) for s in sorted(seats)]


class SeatLockManager:
    """Owns the lifecycle of seat holds: acquire, confirm, release and the expiry sweep.

    Every operation opens its own session from `session_factory` and commits before
    returning, so a manager instance is safe to share between concurrent requests.
    Availability is always re-derived from the database; nothing is cached here.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        clock: Clock = utcnow,
        default_ttl_seconds: Optional[int] = None,
        max_ttl_seconds: Optional[int] = None,
        acquire_retries: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.default_ttl_seconds = default_ttl_seconds or settings.SEAT_LOCK_DEFAULT_TTL_SECONDS
        self.max_ttl_seconds = max_ttl_seconds or settings.SEAT_LOCK_MAX_TTL_SECONDS
        self.acquire_retries = settings.SEAT_LOCK_ACQUIRE_RETRIES if acquire_retries is None else acquire_retries

    # -- acquisition -------------------------------------------------------

    def _validate(self, seat_numbers: Iterable[str], ttl_seconds: Optional[int]):
        seats = list(seat_numbers or [])
        if not seats:
            raise InvalidLockRequestError("At least one seat must be requested")
        if any(not isinstance(s, str) or not s.strip() for s in seats):
            raise InvalidLockRequestError("Seat numbers must be non-empty strings")
        dupes = sorted({s for s in seats if seats.count(s) > 1})
        if dupes:
            raise InvalidLockRequestError("Duplicate seats in request: %s" % ", ".join(dupes))
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0 or ttl > self.max_ttl_seconds:
            raise InvalidLockRequestError(f"ttl_seconds must be between 1 and {self.max_ttl_seconds}")
        return seats, ttl

    async def acquire(self, trip_id: int, seat_numbers: List[str], holder_id: str, ttl_seconds: Optional[int] = None) -> str:
        """Hold `seat_numbers` on `trip_id` for `holder_id`; all seats or none.

        Returns the new lock id. Raises SeatsUnavailableError naming the seats that
        are already covered by an active lock.
        """
        try:
            seats, ttl = self._validate(seat_numbers, ttl_seconds)
        except InvalidLockRequestError:
            SEAT_LOCK_ATTEMPTS.labels(result="invalid").inc()
            raise

        start = time.perf_counter()
        for attempt in range(self.acquire_retries + 1):
            try:
                lock_id = await self._insert_hold(trip_id, seats, holder_id, ttl)
            except IntegrityError as exc:
                if not is_seat_claim_conflict(exc):
                    await self._raise_for_unknown_trip(trip_id)
                    SEAT_LOCK_ATTEMPTS.labels(result="error").inc()
                    logger.error("Seat hold on trip %s failed: %s", trip_id, exc.orig)
                    raise
                conflicts = await self._conflicting_seats(trip_id, seats)
                if conflicts:
                    SEAT_LOCK_ATTEMPTS.labels(result="conflict").inc()
                    logger.info(
                        "Seats unavailable on trip %s for holder %s: %s",
                        trip_id, holder_id, ", ".join(conflicts),
                    )
                    raise SeatsUnavailableError(conflicts)
                # the blocking hold went away between our insert and the lookup
                SEAT_LOCK_ATTEMPTS.labels(result="retry").inc()
                logger.debug("Retrying seat hold on trip %s (attempt %d)", trip_id, attempt + 1)
                continue
            except DBAPIError as exc:
                if not is_retryable(exc):
                    raise
                SEAT_LOCK_ATTEMPTS.labels(result="retry").inc()
                logger.warning(
                    "Seat hold on trip %s hit %s, retrying (attempt %d)", trip_id, _sqlstate(exc), attempt + 1
                )
                continue

            SEAT_LOCK_ATTEMPTS.labels(result="success").inc()
            SEAT_LOCK_TRANSITIONS.labels(to_status=HELD).inc()
            SEAT_LOCK_LATENCY.labels(operation="acquire").observe(time.perf_counter() - start)
            logger.info(
                "Acquired seat lock %s on trip %s for holder %s: %s (ttl=%ss)",
                lock_id, trip_id, holder_id, ", ".join(seats), ttl,
            )
            return lock_id

        SEAT_LOCK_ATTEMPTS.labels(result="conflict").inc()
        raise SeatsUnavailableError(seats, message="Seats are being booked by someone else, please retry")

    async def _insert_hold(self, trip_id: int, seats: List[str], holder_id: str, ttl: int) -> str:
        now = self.clock()
        lock = SeatLock(
            id=str(uuid4()),
            trip_id=trip_id,
            seat_numbers=list(seats),
            holder_id=holder_id,
            status=HELD,
            expires_at=now + timedelta(seconds=ttl),
            created_at=now,
            updated_at=now,
        )
        async with self.session_factory() as db:
            async with db.begin():
                await _drop_stale_claims(db, trip_id, seats, now)
                db.add(lock)
                await db.flush()
                db.add_all(_claims(trip_id, seats, lock.id))
        return lock.id

    async def _raise_for_unknown_trip(self, trip_id: int) -> None:
        async with self.session_factory() as db:
            trip = await db.get(Trip, trip_id)
        if trip is None:
            SEAT_LOCK_ATTEMPTS.labels(result="invalid").inc()
            logger.info("Seat hold requested for unknown trip %s", trip_id)
            raise TripNotFoundError(trip_id)

    async def _conflicting_seats(self, trip_id: int, seats: List[str]) -> List[str]:
        now = self.clock()
        stmt = (
            sa_select(SeatClaim.seat_number)
            .join(SeatLock, SeatLock.id == SeatClaim.lock_id)
            .where(SeatClaim.trip_id == trip_id)
            .where(SeatClaim.seat_number.in_(seats))
            .where(SeatLock.active_clause(now))
        )
        async with self.session_factory() as db:
            res = await db.execute(stmt)
            return sorted(set(res.scalars().all()))

    # -- transitions -------------------------------------------------------

    async def _load_for_update(self, db: AsyncSession, lock_id: str, action: str) -> SeatLock:
        lock = await db.get(SeatLock, lock_id, with_for_update=True)
        if lock is None:
            logger.error("%s called with unknown seat lock %s", action, lock_id)
            raise LockNotFoundError(lock_id)
        return lock

    async def confirm(self, lock_id: str, booking_id: Optional[int] = None) -> None:
        """Mark a HELD lock CONFIRMED once payment has succeeded.

        Expiry is not re-checked: a successful payment wins over a lapsed TTL, as
        long as nobody else has picked up the seats in the meantime.
        """
        start = time.perf_counter()
        now = self.clock()
        taken = []
        try:
            async with self.session_factory() as db:
                async with db.begin():
                    lock = await self._load_for_update(db, lock_id, "confirm")
                    if lock.status != HELD:
                        logger.warning("Refusing to confirm seat lock %s in status %s", lock_id, lock.status)
                        raise InvalidStateTransitionError(lock_id, lock.status, CONFIRMED)
                    if booking_id is not None and await db.get(Booking, booking_id) is None:
                        raise InvalidLockRequestError(f"Unknown booking {booking_id} for seat lock {lock_id}")

                    res = await db.execute(sa_select(SeatClaim.seat_number).where(SeatClaim.lock_id == lock_id))
                    claimed = set(res.scalars().all())
                    missing = [s for s in lock.seat_numbers if s not in claimed]
                    if missing:
                        # expired hold whose claims were reclaimed; take them back if still free
                        taken = missing
                        await _drop_stale_claims(db, lock.trip_id, missing, now)
                        db.add_all(_claims(lock.trip_id, missing, lock_id))
                        await db.flush()

                    values = {"status": CONFIRMED, "updated_at": now}
                    if booking_id is not None:
                        values["booking_id"] = booking_id
                    result = await db.execute(
                        sa_update(SeatLock)
                        .where(SeatLock.id == lock_id)
                        .where(SeatLock.status == HELD)
                        .values(**values)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        raise InvalidStateTransitionError(lock_id, "unknown", CONFIRMED)
        except IntegrityError as exc:
            if not is_seat_claim_conflict(exc):
                raise
            logger.warning("Seat lock %s expired and its seats were re-held: %s", lock_id, ", ".join(taken))
            raise LockExpiredError(lock_id, taken)

        SEAT_LOCK_TRANSITIONS.labels(to_status=CONFIRMED).inc()
        SEAT_LOCK_LATENCY.labels(operation="confirm").observe(time.perf_counter() - start)
        logger.info("Confirmed seat lock %s (booking %s)", lock_id, booking_id)

    async def release(self, lock_id: str, force: bool = False) -> bool:
        """Release a lock. Returns True if this call moved it to RELEASED.

        Releasing an already released lock is a no-op. A CONFIRMED lock is left alone
        (no-op, logged) unless `force` is set, which is how a cancelled confirmed
        booking hands its seats back.
        """
        start = time.perf_counter()
        now = self.clock()
        async with self.session_factory() as db:
            async with db.begin():
                lock = await self._load_for_update(db, lock_id, "release")
                if lock.status == RELEASED:
                    return False
                if lock.status == CONFIRMED:
                    if not force:
                        logger.warning("Ignoring release of CONFIRMED seat lock %s", lock_id)
                        return False
                    logger.warning("Force releasing CONFIRMED seat lock %s; seats %s return to inventory", lock_id, lock.seat_numbers)
                await self._mark_released(db, lock_id, now)

        SEAT_LOCK_TRANSITIONS.labels(to_status=RELEASED).inc()
        SEAT_LOCK_LATENCY.labels(operation="release").observe(time.perf_counter() - start)
        logger.info("Released seat lock %s", lock_id)
        return True

    async def _mark_released(self, db: AsyncSession, lock_id: str, now: datetime, *conditions) -> bool:
        stmt = (
            sa_update(SeatLock)
            .where(SeatLock.id == lock_id)
            .where(SeatLock.status != RELEASED)
            .values(status=RELEASED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        for cond in conditions:
            stmt = stmt.where(cond)
        result = await db.execute(stmt)
        if result.rowcount == 0:
            return False
        await db.execute(
            sa_delete(SeatClaim).where(SeatClaim.lock_id == lock_id).execution_options(synchronize_session=False)
        )
        return True

    async def _release_held(self, lock_id: str, *conditions) -> bool:
        """Release only if the lock is still HELD (and matches `conditions`)."""
        now = self.clock()
        async with self.session_factory() as db:
            async with db.begin():
                released = await self._mark_released(db, lock_id, now, SeatLock.status == HELD, *conditions)
        if released:
            SEAT_LOCK_TRANSITIONS.labels(to_status=RELEASED).inc()
        return released

    async def release_holder_locks(self, holder_id: str) -> int:
        """Release every HELD lock of a holder, e.g. when their session ends."""
        stmt = sa_select(SeatLock.id).where(SeatLock.holder_id == holder_id).where(SeatLock.status == HELD)
        async with self.session_factory() as db:
            res = await db.execute(stmt)
            lock_ids = list(res.scalars().all())

        count = 0
        for lock_id in lock_ids:
            if await self._release_held(lock_id):
                count += 1
        logger.info("Released %d seat locks for holder %s", count, holder_id)
        return count

    # -- queries -----------------------------------------------------------

    async def get_lock(self, lock_id: str) -> SeatLock:
        async with self.session_factory() as db:
            lock = await db.get(SeatLock, lock_id)
        if lock is None:
            raise LockNotFoundError(lock_id)
        return lock

    async def get_active_locks(self, trip_id: int, holder_id: Optional[str] = None) -> List[SeatLock]:
        stmt = (
            sa_select(SeatLock)
            .where(SeatLock.trip_id == trip_id)
            .where(SeatLock.active_clause(self.clock()))
            .order_by(SeatLock.created_at)
        )
        if holder_id is not None:
            stmt = stmt.where(SeatLock.holder_id == holder_id)
        async with self.session_factory() as db:
            res = await db.execute(stmt)
            return list(res.scalars().all())

    async def get_locked_seats(self, trip_id: int) -> List[str]:
        return collect_seats(await self.get_active_locks(trip_id))

    async def get_holder_seats(self, trip_id: int, holder_id: str) -> List[str]:
        return collect_seats(await self.get_active_locks(trip_id, holder_id=holder_id))

    async def are_seats_available(self, trip_id: int, seat_numbers: List[str]) -> bool:
        """Display-only check. acquire() re-checks inside its own transaction."""
        if not seat_numbers:
            return True
        return not await self._conflicting_seats(trip_id, list(seat_numbers))

    # -- expiry sweep ------------------------------------------------------

    async def find_expired_locks(self, now: Optional[datetime] = None) -> List[SeatLock]:
        stmt = sa_select(SeatLock).where(SeatLock.expired_clause(now or self.clock())).order_by(SeatLock.expires_at)
        async with self.session_factory() as db:
            res = await db.execute(stmt)
            return list(res.scalars().all())

    async def release_expired_locks(self) -> int:
        """Release every expired HELD lock and return how many this run released.

        Safe to run concurrently with itself and with confirm(): each release is a
        conditional write that only matches a lock still HELD and still expired.
        """
        start = time.perf_counter()
        now = self.clock()
        released = 0
        failed = 0
        for lock in await self.find_expired_locks(now):
            try:
                if await self._release_held(lock.id, SeatLock.expires_at < now):
                    released += 1
                    SEAT_LOCKS_SWEPT.inc()
            except Exception:
                failed += 1
                SEAT_LOCK_SWEEP_FAILURES.inc()
                logger.exception("Failed to release expired seat lock %s", lock.id)

        SEAT_LOCK_LATENCY.labels(operation="sweep").observe(time.perf_counter() - start)
        logger.info("Released %d expired seat locks (%d failed)", released, failed)
        return released
