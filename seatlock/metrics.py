from prometheus_client import Counter, Histogram

# Acquire outcomes: success, conflict, retry, invalid, error
SEAT_LOCK_ATTEMPTS = Counter("seatlock_acquire_attempts_total", "Total seat hold acquisition attempts", ["result"])
SEAT_LOCK_LATENCY = Histogram(
    "seatlock_operation_latency_seconds", "Latency for seat lock operations", ["operation"]
)

# State machine transitions actually written to the store
SEAT_LOCK_TRANSITIONS = Counter("seatlock_transitions_total", "Seat lock state transitions", ["to_status"])

# Expiry sweep
SEAT_LOCKS_SWEPT = Counter("seatlock_swept_total", "Expired holds released by the sweeper")
SEAT_LOCK_SWEEP_FAILURES = Counter("seatlock_sweep_failures_total", "Expired holds the sweeper failed to release")
