async def acquire(client, trip_id, seats, holder="user-1", ttl=None):
    payload = {"trip_id": trip_id, "seat_numbers": seats, "holder_id": holder}
    if ttl is not None:
        payload["ttl_seconds"] = ttl
    return await client.post("/locks/", json=payload)


async def test_health_and_trace_id(client):
    r = await client.get("/health", headers={"X-Trace-Id": "trace-123"})
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    assert r.headers["X-Trace-Id"] == "trace-123"

    r = await client.get("/")
    assert r.headers["X-Trace-Id"]


async def test_acquire_and_conflict(client, trip_id):
    r = await acquire(client, trip_id, ["A1", "A2"], ttl=300)
    assert r.status_code == 201, r.text
    body = r.json()
    assert body["seat_numbers"] == ["A1", "A2"]
    assert body["lock_id"]

    r = await acquire(client, trip_id, ["A2", "A3"], holder="user-2")
    assert r.status_code == 409
    assert r.json()["error"] == "SeatsUnavailableError"
    assert r.json()["seats"] == ["A2"]


async def test_acquire_validates_against_inventory(client, trip_id, sell_seat):
    await sell_seat(trip_id, "B4")

    r = await acquire(client, trip_id, ["A1", "Z9"])
    assert r.status_code == 422
    assert r.json()["error"] == "InvalidLockRequestError"

    r = await acquire(client, trip_id, ["B4"])
    assert r.status_code == 409
    assert r.json()["seats"] == ["B4"]

    r = await acquire(client, trip_id + 100, ["A1"])
    assert r.status_code == 404
    assert r.json()["error"] == "TripNotFoundError"

    r = await acquire(client, trip_id, [])
    assert r.status_code == 422


async def test_confirm_release_and_get(client, trip_id):
    lock_id = (await acquire(client, trip_id, ["A1"])).json()["lock_id"]

    r = await client.post(f"/locks/{lock_id}/confirm", json={"booking_id": None})
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "CONFIRMED"

    r = await client.post(f"/locks/{lock_id}/confirm")
    assert r.status_code == 409
    assert r.json()["current_status"] == "CONFIRMED"

    r = await client.post(f"/locks/{lock_id}/release")
    assert r.status_code == 200
    assert r.json() == {"lock_id": lock_id, "released": False}

    r = await client.post(f"/locks/{lock_id}/release", params={"force": "true"})
    assert r.json() == {"lock_id": lock_id, "released": True}

    r = await client.get(f"/locks/{lock_id}")
    assert r.status_code == 200
    assert r.json()["status"] == "RELEASED"
    assert r.json()["trip_id"] == trip_id


async def test_unknown_lock_is_404(client):
    for path in ["/locks/missing/confirm", "/locks/missing/release"]:
        r = await client.post(path)
        assert r.status_code == 404
        assert r.json()["error"] == "LockNotFoundError"
    r = await client.get("/locks/missing")
    assert r.status_code == 404


async def test_trip_locks_availability_and_seats(client, trip_id, sell_seat):
    await sell_seat(trip_id, "B4")
    await acquire(client, trip_id, ["A1", "A2"])

    r = await client.get(f"/trips/{trip_id}/locks")
    assert r.status_code == 200
    assert [l["seat_numbers"] for l in r.json()] == [["A1", "A2"]]

    r = await client.get(f"/trips/{trip_id}/availability", params=[("seats", "A2"), ("seats", "A3")])
    assert r.json()["available"] is False
    r = await client.get(f"/trips/{trip_id}/availability", params={"seats": "A3"})
    assert r.json()["available"] is True

    r = await client.get(f"/trips/{trip_id}/seats")
    assert r.status_code == 200
    body = r.json()
    assert body["sold_seats"] == ["B4"]
    assert body["locked_seats"] == ["A1", "A2"]
    assert body["available_seats"] == ["A3", "A4", "B1", "B2", "B3"]


async def test_payment_outcome_endpoint(client, trip_id):
    paid = (await acquire(client, trip_id, ["A1"])).json()["lock_id"]
    failed = (await acquire(client, trip_id, ["A2"])).json()["lock_id"]
    pending = (await acquire(client, trip_id, ["A3"])).json()["lock_id"]

    r = await client.post(f"/locks/{paid}/payment-outcome", json={"status": "SUCCESS"})
    assert r.json() == {"lock_id": paid, "action": "confirmed"}
    r = await client.post(f"/locks/{failed}/payment-outcome", json={"status": "declined"})
    assert r.json()["action"] == "released"
    r = await client.post(f"/locks/{pending}/payment-outcome", json={"status": "pending"})
    assert r.json()["action"] == "ignored"

    statuses = {lock_id: (await client.get(f"/locks/{lock_id}")).json()["status"] for lock_id in (paid, failed, pending)}
    assert statuses == {paid: "CONFIRMED", failed: "RELEASED", pending: "HELD"}


async def test_sweep_and_holder_release_endpoints(client, clock, trip_id):
    await acquire(client, trip_id, ["A1"], ttl=30)
    await acquire(client, trip_id, ["A2"], holder="user-2")
    await acquire(client, trip_id, ["A3"], holder="user-2")
    clock.advance(60)

    r = await client.post("/locks/sweep")
    assert r.json() == {"released": 1}

    r = await client.post("/locks/holders/user-2/release")
    assert r.json() == {"released": 2}

    r = await client.get(f"/trips/{trip_id}/locks")
    assert r.json() == []


async def test_metrics_endpoint(client, trip_id):
    await acquire(client, trip_id, ["A1"])
    r = await client.get("/metrics")
    assert r.status_code == 200
    assert "seatlock_acquire_attempts_total" in r.text
