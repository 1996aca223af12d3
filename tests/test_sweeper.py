import asyncio
from datetime import timedelta

from seatlock.celery_app import celery_app
from seatlock.clock import utcnow
from seatlock.models.models import HELD, RELEASED
from seatlock.services.seat_lock import SeatLockManager
from seatlock.sweeper import tasks


async def test_sweep_releases_only_expired_holds(manager, clock, trip_id):
    expired = [await manager.acquire(trip_id, [seat], f"user-{seat}", ttl_seconds=30) for seat in ["A1", "A2", "A3", "A4", "B1"]]
    live = [await manager.acquire(trip_id, [seat], f"user-{seat}", ttl_seconds=600) for seat in ["B2", "B3"]]
    clock.advance(60)

    found = await manager.find_expired_locks()
    assert sorted(l.id for l in found) == sorted(expired)

    assert await manager.release_expired_locks() == 5

    for lock_id in expired:
        assert (await manager.get_lock(lock_id)).status == RELEASED
    for lock_id in live:
        assert (await manager.get_lock(lock_id)).status == HELD
    assert await manager.find_expired_locks() == []
    assert await manager.release_expired_locks() == 0


async def test_sweep_does_not_release_a_reheld_seat(manager, clock, trip_id):
    stale_id = await manager.acquire(trip_id, ["A1"], "user-1", ttl_seconds=30)
    clock.advance(60)
    fresh_id = await manager.acquire(trip_id, ["A1"], "user-2")

    assert await manager.release_expired_locks() == 1

    assert (await manager.get_lock(stale_id)).status == RELEASED
    assert (await manager.get_lock(fresh_id)).status == HELD
    assert not await manager.are_seats_available(trip_id, ["A1"])


async def test_overlapping_sweeps_release_each_lock_once(manager, clock, trip_id):
    for seat in ["A1", "A2", "A3"]:
        await manager.acquire(trip_id, [seat], "user-1", ttl_seconds=30)
    clock.advance(60)

    counts = await asyncio.gather(manager.release_expired_locks(), manager.release_expired_locks())

    assert sum(counts) == 3
    assert await manager.find_expired_locks() == []


async def test_sweep_continues_past_a_failing_lock(manager, clock, trip_id, monkeypatch):
    lock_ids = [await manager.acquire(trip_id, [seat], "user-1", ttl_seconds=30) for seat in ["A1", "A2", "A3"]]
    clock.advance(60)
    broken = lock_ids[1]
    release_held = manager._release_held

    async def flaky_release(lock_id, *conditions):
        if lock_id == broken:
            raise RuntimeError("database went away")
        return await release_held(lock_id, *conditions)

    monkeypatch.setattr(manager, "_release_held", flaky_release)

    assert await manager.release_expired_locks() == 2
    assert (await manager.get_lock(broken)).status == HELD
    assert (await manager.get_lock(lock_ids[0])).status == RELEASED
    assert (await manager.get_lock(lock_ids[2])).status == RELEASED


async def test_run_sweep_with_session_factory_uses_wall_clock(session_factory, trip_id):
    # holds created two hours ago with a 15 minute TTL
    past = utcnow() - timedelta(hours=2)
    old_manager = SeatLockManager(session_factory, clock=lambda: past)
    await old_manager.acquire(trip_id, ["A1"], "user-1")
    await old_manager.acquire(trip_id, ["A2"], "user-2")

    assert await tasks.run_sweep(session_factory=session_factory) == 2


async def test_run_sweep_with_manager(manager, clock, trip_id):
    await manager.acquire(trip_id, ["A1"], "user-1", ttl_seconds=30)
    clock.advance(31)

    assert await tasks.run_sweep(manager=manager) == 1


def test_celery_task_runs_sweep(monkeypatch):
    async def fake_run_sweep():
        return 7

    monkeypatch.setattr(tasks, "run_sweep", fake_run_sweep)

    assert tasks.release_expired_locks_task.run() == 7


def test_sweep_is_scheduled_with_celery_beat():
    entry = celery_app.conf.beat_schedule["release-expired-seat-locks"]
    assert entry["task"] == tasks.release_expired_locks_task.name
    assert entry["schedule"] > 0
