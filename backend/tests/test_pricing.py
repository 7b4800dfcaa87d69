"""
Tests for the calendar-day pricing engine.
"""

import pytest
from httpx import AsyncClient

from kennel.models.catalog import ServiceType
from kennel.services import pricing

# Week of Monday 2025-03-03
MON = "2025-03-03"
TUE = "2025-03-04"
THU = "2025-03-06"
FRI = "2025-03-07"
SAT = "2025-03-08"


def test_one_dog_one_night_morning_pickup():
    quote = pricing.price_boarding(1, f"{MON}T08:00", f"{TUE}T08:00", "08:00 - 10:00")
    assert quote.nights == 1
    assert quote.per_night == 25
    assert quote.pm_surcharge == 0
    assert quote.total == 25


def test_one_dog_one_night_afternoon_pickup():
    quote = pricing.price_boarding(1, f"{MON}T08:00", f"{TUE}T16:00", "16:00 - 18:00")
    assert quote.nights == 1
    assert quote.pm_surcharge == 10
    assert quote.total == 35


def test_two_dogs_one_night_afternoon_pickup():
    quote = pricing.price_boarding(2, f"{FRI}T16:00", f"{SAT}T16:00", "16:00 - 18:00")
    assert quote.nights == 1
    assert quote.per_night == 40
    assert quote.total == 50


def test_two_dogs_two_nights():
    quote = pricing.price_boarding(2, f"{THU}T08:00", f"{SAT}T08:00", "08:00 - 10:00")
    assert quote.nights == 2
    assert quote.total == 80


def test_surcharge_applies_to_long_stays():
    quote = pricing.price_boarding(2, "2025-03-01T09:00", "2025-03-08T17:00", "16:00 - 18:00")
    assert quote.nights == 7
    assert quote.total == 7 * 40 + 10


def test_time_of_day_is_ignored():
    # 23 hours apart but across one date boundary
    late = pricing.price_boarding(1, f"{MON}T23:00", f"{TUE}T22:00")
    # 47 hours apart across two boundaries
    early = pricing.price_boarding(1, f"{MON}T00:30", f"{THU}T23:30")
    assert late.nights == 1
    assert early.nights == 3


def test_nights_counted_in_facility_time_zone():
    # 23:30 UTC on 1 July is already 2 July in Dublin (UTC+1)
    quote = pricing.price_boarding(1, "2025-07-01T23:30:00Z", "2025-07-03T08:00:00Z")
    assert quote.nights == 1


def test_minimum_one_night():
    same_day = pricing.price_boarding(1, f"{MON}T08:00", f"{MON}T18:00")
    backwards = pricing.price_boarding(1, f"{TUE}T08:00", f"{MON}T08:00")
    assert same_day.nights == 1
    assert backwards.nights == 1
    assert backwards.total == 25


def test_unparseable_dates_fall_back_to_one_night():
    quote = pricing.price_boarding(2, "not a date", None, "17:00 - 19:00")
    assert quote.nights == 1
    assert quote.total == 50


@pytest.mark.parametrize(
    "label, expected",
    [
        ("16:00 - 18:00", True),
        ("17:30-19:00", True),
        ("15:59 - 16:30", False),
        ("08:00 - 10:00", False),
        ("", False),
        (None, False),
        ("afternoon", False),
    ],
)
def test_is_pm_label(label, expected):
    assert pricing.is_pm_label(label) is expected


def test_flat_rate_services():
    assert pricing.price_daycare().total == 20
    assert pricing.price_trial().total == 20
    quote = pricing.quote(ServiceType.TRIAL, dog_count=2, checkin=MON, checkout=SAT, checkout_time_label="16:00 - 18:00")
    assert quote.total == 20
    assert quote.nights is None
    assert quote.model == "calendar_v2"


def test_quote_dispatches_boarding_sizes():
    for service in (ServiceType.BOARDING_SMALL, ServiceType.BOARDING_LARGE):
        assert pricing.quote(service, 1, MON, THU).total == 75


def test_to_minor_units():
    assert pricing.to_minor_units(35) == 3500


@pytest.mark.asyncio
async def test_quote_endpoint(client: AsyncClient):
    response = await client.post(
        "/api/v1/pricing/quote",
        json={
            "service": "boarding:small",
            "dogCount": 2,
            "checkin": f"{FRI}T16:00:00",
            "checkout": f"{SAT}T16:00:00",
            "checkoutTimeLabel": "16:00 - 18:00",
        },
    )
    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 50
    assert data["nights"] == 1
    assert data["perNight"] == 40
    assert data["pmSurcharge"] == 10
    assert data["model"] == "calendar_v2"


@pytest.mark.asyncio
async def test_quote_endpoint_rejects_unknown_service(client: AsyncClient):
    response = await client.post("/api/v1/pricing/quote", json={"service": "grooming"})
    assert response.status_code == 422
