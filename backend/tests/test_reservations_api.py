"""
HTTP-level tests for the reservation and availability endpoints.
"""

import asyncio
from datetime import timedelta

import pytest
from httpx import AsyncClient


def _hold_body(day, **overrides) -> dict:
    body = {"service": "Daycare", "date": day.isoformat(), "userEmail": "owner@example.com", "dogId": "dog-1"}
    body.update(overrides)
    return body


async def _limit_daycare(client: AsyncClient, admin_headers, day, capacity: int):
    response = await client.post(
        "/api/v1/admin/capacity/overrides",
        json={"service": "Daycare", "date_start": day.isoformat(), "capacity": capacity},
        headers=admin_headers,
    )
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_create_reservation(client: AsyncClient, day):
    response = await client.post("/api/v1/reservations", json=_hold_body(day))

    assert response.status_code == 201
    data = response.json()
    assert data["reservationId"]
    assert data["service"] == "Daycare"
    assert data["date"] == day.isoformat()
    assert data["slot"] is None
    assert data["status"] == "active"
    assert "expiresAt" in data


@pytest.mark.asyncio
async def test_create_reservation_accepts_service_keys(client: AsyncClient, day):
    response = await client.post(
        "/api/v1/reservations", json=_hold_body(day, service="boarding:large", slot="PM")
    )
    assert response.status_code == 201
    assert response.json()["service"] == "Boarding Large"
    assert response.json()["slot"] == "PM"


@pytest.mark.asyncio
async def test_get_reservation(client: AsyncClient, day):
    created = (await client.post("/api/v1/reservations", json=_hold_body(day))).json()

    response = await client.get(f"/api/v1/reservations/{created['reservationId']}")
    assert response.status_code == 200
    assert response.json()["reservationId"] == created["reservationId"]


@pytest.mark.asyncio
async def test_get_unknown_reservation(client: AsyncClient):
    response = await client.get("/api/v1/reservations/nope")
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_full_returns_conflict(client: AsyncClient, admin_headers, day):
    await _limit_daycare(client, admin_headers, day, 1)
    await client.post("/api/v1/reservations", json=_hold_body(day))

    response = await client.post("/api/v1/reservations", json=_hold_body(day, dogId="dog-2"))
    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "FULL"
    assert detail["message"]


@pytest.mark.asyncio
async def test_concurrent_requests_for_last_place(client: AsyncClient, admin_headers, day):
    await _limit_daycare(client, admin_headers, day, 2)

    responses = await asyncio.gather(
        *(client.post("/api/v1/reservations", json=_hold_body(day, dogId=f"dog-{i}")) for i in range(6))
    )

    codes = sorted(r.status_code for r in responses)
    assert codes == [201, 201, 409, 409, 409, 409]


@pytest.mark.asyncio
async def test_idempotent_retry_over_http(client: AsyncClient, day):
    body = _hold_body(day, idempotencyKey="client-retry-1")
    first = await client.post("/api/v1/reservations", json=body)
    second = await client.post("/api/v1/reservations", json=body)

    assert first.status_code == second.status_code == 201
    assert first.json()["reservationId"] == second.json()["reservationId"]

    availability = await client.get(
        "/api/v1/availability", params={"service": "Daycare", "date": day.isoformat()}
    )
    assert availability.json()["reserved"] == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"service": "grooming"},
        {"userEmail": "not-an-email"},
        {"date": "next tuesday"},
        {"idempotencyKey": ""},
    ],
)
async def test_invalid_requests_are_rejected(client: AsyncClient, day, overrides):
    response = await client.post("/api/v1/reservations", json=_hold_body(day, **overrides))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_past_date_is_rejected(client: AsyncClient, day):
    response = await client.post(
        "/api/v1/reservations", json=_hold_body(day - timedelta(days=30))
    )
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "INVALID"


@pytest.mark.asyncio
async def test_release_returns_capacity(client: AsyncClient, day):
    created = (await client.post("/api/v1/reservations", json=_hold_body(day))).json()

    response = await client.post(f"/api/v1/reservations/{created['reservationId']}/release")
    assert response.status_code == 200
    assert response.json() == {
        "reservationId": created["reservationId"],
        "status": "released",
        "released": True,
    }

    again = await client.post(f"/api/v1/reservations/{created['reservationId']}/release")
    assert again.json()["released"] is False
    assert again.json()["status"] == "released"

    availability = await client.get(
        "/api/v1/availability", params={"service": "Daycare", "date": day.isoformat()}
    )
    assert availability.json()["available"] == 10


@pytest.mark.asyncio
async def test_release_unknown_reservation_is_a_noop(client: AsyncClient):
    response = await client.post("/api/v1/reservations/unknown/release")
    assert response.status_code == 200
    assert response.json() == {"reservationId": "unknown", "status": None, "released": False}


@pytest.mark.asyncio
async def test_availability(client: AsyncClient, day):
    await client.post("/api/v1/reservations", json=_hold_body(day, service="Boarding Small"))

    response = await client.get(
        "/api/v1/availability", params={"service": "boarding small", "date": day.isoformat()}
    )
    assert response.status_code == 200
    assert response.json() == {
        "service": "Boarding Small",
        "date": day.isoformat(),
        "slot": None,
        "capacity": 10,
        "confirmed": 0,
        "reserved": 1,
        "available": 9,
    }


@pytest.mark.asyncio
async def test_availability_unknown_service(client: AsyncClient, day):
    response = await client.get(
        "/api/v1/availability", params={"service": "grooming", "date": day.isoformat()}
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_capacity_overview(client: AsyncClient, day):
    await client.post("/api/v1/reservations", json=_hold_body(day, service="Boarding Large"))

    response = await client.get("/api/v1/capacity/overview", params={"date": day.isoformat()})
    assert response.status_code == 200
    data = response.json()

    assert data["date"] == day.isoformat()
    assert data["cached"] is False
    assert set(data["resources"]) == {"daycare", "boarding:small", "boarding:large", "trial:day"}
    assert data["resources"]["boarding:large"] == {"capacity": 8, "booked": 0, "reserved": 1, "available": 7}
    assert data["aggregate"]["boarding"]["capacity"] == 18
    assert data["aggregate"]["boarding"]["available"] == 17
    assert data["totals"]["occupied"] == 1
    assert data["totals"]["utilisationPct"] == round(1 / 36 * 100)


@pytest.mark.asyncio
async def test_request_id_is_echoed(client: AsyncClient):
    response = await client.get("/health", headers={"X-Request-ID": "trace-123"})
    assert response.status_code == 200
    assert response.headers["X-Request-ID"] == "trace-123"


@pytest.mark.asyncio
async def test_request_id_is_minted(client: AsyncClient):
    response = await client.get("/health")
    assert response.json()["status"] == "healthy"
    assert response.json()["sweeper"] == "disabled"
    assert len(response.headers["X-Request-ID"]) == 12


@pytest.mark.asyncio
async def test_metrics_endpoint(client: AsyncClient, day):
    await client.post("/api/v1/reservations", json=_hold_body(day))

    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "reservation_attempts_total" in response.text
