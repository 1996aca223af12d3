from celery import Celery
from seatlock.config import settings


celery_app = Celery(
    "seatlock_tasks",
    broker=settings.REDIS_URL,
    backend=settings.REDIS_URL,
    include=["seatlock.sweeper.tasks"],
)

celery_app.conf.update(task_track_started=True)

# expired holds are reclaimed on a fixed schedule; the sweep is safe to overlap
celery_app.conf.beat_schedule = {
    "release-expired-seat-locks": {
        "task": "seatlock.sweeper.tasks.release_expired_locks_task",
        "schedule": float(settings.SEAT_LOCK_SWEEP_INTERVAL_SECONDS),
    },
}
