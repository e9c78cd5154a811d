from __future__ import annotations

from datetime import timedelta

from booking_utils import next_weekday, weekday_schedule
from trpi.models import AvailabilityOverride, TherapySession


def add_session(db, therapist, patient, slot_date, start="09:00", end="10:00", status="scheduled"):
    session = TherapySession(
        user_id=patient.id,
        therapist_id=therapist.id,
        session_date=slot_date,
        start_time=start,
        end_time=end,
        duration_minutes=60,
        status=status,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def slot_starts(response):
    return [s["start_time"] for s in response.json()["slots"]]


def test_slots_for_approved_therapist(client, make_therapist):
    therapist = make_therapist()
    monday = next_weekday(0)

    response = client.get("/availability/slots", params={"therapist_id": therapist.id, "date": monday.isoformat()})

    assert response.status_code == 200
    assert response.headers["Cache-Control"] == "no-store"
    body = response.json()
    assert body["total_slots"] == 3
    assert slot_starts(response) == ["09:00", "10:00", "11:00"]
    assert body["slots"][0]["end_time"] == "10:00"


def test_slots_on_weekend_are_empty(client, make_therapist):
    therapist = make_therapist()
    sunday = next_weekday(6)

    response = client.get("/availability/slots", params={"therapist_id": therapist.id, "date": sunday.isoformat()})

    assert response.status_code == 200
    assert response.json()["slots"] == []
    assert response.json()["message"] == "No available slots for this date"


def test_slots_require_a_valid_date(client, make_therapist):
    therapist = make_therapist()

    missing = client.get("/availability/slots", params={"therapist_id": therapist.id})
    malformed = client.get("/availability/slots", params={"therapist_id": therapist.id, "date": "03/17/2025"})

    assert missing.status_code == 400
    assert malformed.status_code == 400


def test_slots_for_unknown_or_unapproved_therapist(client, make_therapist):
    pending = make_therapist(status="pending")
    day = next_weekday(0).isoformat()

    assert client.get("/availability/slots", params={"therapist_id": 9999, "date": day}).status_code == 404
    response = client.get("/availability/slots", params={"therapist_id": pending.id, "date": day})
    assert response.status_code == 404
    assert response.json()["detail"] == "Therapist not found or not available for bookings"


def test_booked_slots_are_never_offered_even_when_configuration_is_cached(client, db, make_therapist, make_user):
    therapist = make_therapist()
    patient = make_user()
    monday = next_weekday(0)
    params = {"therapist_id": therapist.id, "date": monday.isoformat()}

    assert slot_starts(client.get("/availability/slots", params=params)) == ["09:00", "10:00", "11:00"]

    add_session(db, therapist, patient, monday, "10:00", "11:00")
    add_session(db, therapist, patient, monday, "11:00", "12:00", status="cancelled")

    assert slot_starts(client.get("/availability/slots", params=params)) == ["09:00", "11:00"]


def test_override_blocks_a_day_and_deletion_restores_it(client, make_therapist, auth_headers):
    therapist = make_therapist()
    headers = auth_headers(therapist)
    monday = next_weekday(0)
    params = {"therapist_id": therapist.id, "date": monday.isoformat()}

    assert len(client.get("/availability/slots", params=params).json()["slots"]) == 3

    created = client.post(
        "/therapist/availability/override",
        json={"date": monday.isoformat(), "is_available": False, "reason": "<b>Conference</b>"},
        headers=headers,
    )
    assert created.status_code == 200
    override = created.json()["override"]
    assert override["reason"] == "Conference"
    assert override["start_time"] is None

    assert client.get("/availability/slots", params=params).json()["slots"] == []

    deleted = client.delete(f"/therapist/availability/override/{override['id']}", headers=headers)
    assert deleted.status_code == 200
    assert len(client.get("/availability/slots", params=params).json()["slots"]) == 3


def test_override_opens_a_weekend_day(client, make_therapist, auth_headers):
    therapist = make_therapist()
    saturday = next_weekday(5)

    response = client.post(
        "/therapist/availability/override",
        json={
            "date": saturday.isoformat(),
            "is_available": True,
            "start_time": "10:00",
            "end_time": "12:00",
            "session_duration": 60,
            "max_sessions": 2,
        },
        headers=auth_headers(therapist),
    )
    assert response.status_code == 200

    slots = client.get(
        "/availability/slots", params={"therapist_id": therapist.id, "date": saturday.isoformat()}
    ).json()["slots"]
    assert [s["start_time"] for s in slots] == ["10:00", "11:00"]
    assert all(s["is_override"] for s in slots)

    public = client.get("/availability/overrides", params={"therapist_id": therapist.id})
    assert public.status_code == 200
    assert public.json()["overrides"][0]["date"] == saturday.isoformat()


def test_override_validation(client, make_therapist, auth_headers):
    therapist = make_therapist()
    headers = auth_headers(therapist)
    day = next_weekday(2).isoformat()

    no_times = client.post(
        "/therapist/availability/override", json={"date": day, "is_available": True}, headers=headers
    )
    inverted = client.post(
        "/therapist/availability/override",
        json={"date": day, "is_available": True, "start_time": "15:00", "end_time": "09:00"},
        headers=headers,
    )
    bad_date = client.post("/therapist/availability/override", json={"date": "soon"}, headers=headers)

    assert no_times.status_code == 400
    assert inverted.status_code == 400
    assert bad_date.status_code == 400


def test_therapist_cannot_delete_another_therapists_override(client, db, make_therapist, auth_headers):
    owner = make_therapist()
    other = make_therapist()
    override = AvailabilityOverride(therapist_id=owner.id, override_date=next_weekday(1), is_available=False)
    db.add(override)
    db.commit()

    response = client.delete(f"/therapist/availability/override/{override.id}", headers=auth_headers(other))
    missing = client.delete("/therapist/availability/override/424242", headers=auth_headers(other))

    assert response.status_code == 403
    assert missing.status_code == 404


def test_saving_weekly_schedule_invalidates_cached_configuration(client, make_therapist, auth_headers):
    therapist = make_therapist()
    headers = auth_headers(therapist)
    monday = next_weekday(0)
    params = {"therapist_id": therapist.id, "date": monday.isoformat()}

    assert len(client.get("/availability/slots", params=params).json()["slots"]) == 3

    saved = client.post(
        "/therapist/availability/weekly",
        json={"availability": weekday_schedule(start="13:00", end="15:00", duration=30, buffer=15)},
        headers=headers,
    )
    assert saved.status_code == 200
    assert saved.json()["availability"]["sessionSettings"]["bufferTime"] == 15

    assert slot_starts(client.get("/availability/slots", params=params)) == ["13:00", "13:45"]

    fetched = client.get("/therapist/availability/weekly", headers=headers).json()
    assert fetched["is_default"] is False
    assert fetched["availability"]["standardHours"]["monday"]["generalHours"]["start"] == "13:00"


def test_invalid_weekly_schedule_is_rejected_with_errors(client, make_therapist, auth_headers):
    therapist = make_therapist()
    schedule = weekday_schedule()
    schedule["standardHours"]["monday"]["generalHours"] = {"start": "17:00", "end": "09:00"}

    response = client.post(
        "/therapist/availability/weekly", json={"availability": schedule}, headers=auth_headers(therapist)
    )

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["message"] == "Invalid availability"
    assert "monday general hours start time must be before end time" in detail["errors"]


def test_new_therapist_sees_default_schedule(client, make_user, auth_headers):
    therapist = make_user("therapist")

    body = client.get("/therapist/availability/weekly", headers=auth_headers(therapist)).json()

    assert body["is_default"] is True
    assert body["availability"]["standardHours"]["monday"]["generalHours"] == {
        "start": "09:00",
        "end": "17:00",
        "sessionDuration": 60,
    }


def test_schedule_management_requires_profile_and_therapist_role(client, make_user, auth_headers):
    therapist = make_user("therapist")
    individual = make_user("individual")

    no_profile = client.post(
        "/therapist/availability/weekly", json={"availability": weekday_schedule()}, headers=auth_headers(therapist)
    )
    wrong_role = client.get("/therapist/availability/weekly", headers=auth_headers(individual))
    anonymous = client.get("/therapist/availability/weekly")

    assert no_profile.status_code == 404
    assert no_profile.json()["detail"]["code"] == "PROFILE_MISSING"
    assert wrong_role.status_code == 403
    assert anonymous.status_code == 401


def test_available_days_skip_weekends_and_fully_booked_days(client, db, make_therapist, make_user):
    therapist = make_therapist(weekly=weekday_schedule(max_per_day=1))
    patient = make_user()
    monday = next_weekday(0)
    sunday = monday + timedelta(days=6)
    add_session(db, therapist, patient, monday + timedelta(days=1))

    response = client.get(
        "/availability/days",
        params={"therapist_id": therapist.id, "start_date": monday.isoformat(), "end_date": sunday.isoformat()},
    )

    assert response.status_code == 200
    days = response.json()["available_days"]
    assert days == [(monday + timedelta(days=n)).isoformat() for n in (0, 2, 3, 4)]
    assert response.json()["total_days"] == 4


def test_available_days_validation_and_clamping(client, make_therapist):
    therapist = make_therapist()
    monday = next_weekday(0)

    inverted = client.get(
        "/availability/days",
        params={
            "therapist_id": therapist.id,
            "start_date": monday.isoformat(),
            "end_date": (monday - timedelta(days=1)).isoformat(),
        },
    )
    assert inverted.status_code == 400

    clamped = client.get(
        "/availability/days",
        params={
            "therapist_id": therapist.id,
            "start_date": monday.isoformat(),
            "end_date": (monday + timedelta(days=200)).isoformat(),
        },
    )
    assert clamped.status_code == 200
    assert clamped.json()["end_date"] == (monday + timedelta(days=61)).isoformat()


def test_available_days_for_a_calendar_month(client, make_therapist):
    therapist = make_therapist()
    target = next_weekday(0, weeks_ahead=6)

    response = client.get(
        "/availability/days", params={"therapist_id": therapist.id, "month": target.month, "year": target.year}
    )

    assert response.status_code == 200
    assert response.json()["start_date"] == target.replace(day=1).isoformat()
    assert target.isoformat() in response.json()["available_days"]


def test_next_available_slot(client, make_therapist):
    therapist = make_therapist()
    monday = next_weekday(0)

    response = client.get(
        "/availability/next-slot", params={"therapist_id": therapist.id, "start_date": monday.isoformat()}
    )

    assert response.status_code == 200
    assert response.json()["next_slot"]["date"] == monday.isoformat()
    assert response.json()["next_slot"]["start_time"] == "09:00"


def test_next_available_slot_is_none_without_hours(client, make_therapist):
    closed = weekday_schedule()
    for day in closed["standardHours"].values():
        day["enabled"] = False
    therapist = make_therapist(weekly=closed)

    response = client.get("/availability/next-slot", params={"therapist_id": therapist.id})

    assert response.status_code == 200
    assert response.json()["next_slot"] is None


def test_check_availability_reports_conflicts(client, db, make_therapist, make_user, auth_headers):
    therapist = make_therapist()
    headers = auth_headers(therapist)
    monday = next_weekday(0)
    add_session(db, therapist, make_user(), monday, "10:00", "11:00")

    free = client.get(
        "/therapist/check-availability",
        params={"date": monday.isoformat(), "start_time": "09:00", "duration": 60},
        headers=headers,
    ).json()
    clash = client.get(
        "/therapist/check-availability",
        params={"date": monday.isoformat(), "start_time": "10:30", "duration": 60},
        headers=headers,
    ).json()
    late = client.get(
        "/therapist/check-availability",
        params={"date": monday.isoformat(), "start_time": "16:00", "duration": 60},
        headers=headers,
    ).json()

    assert free == {"available": True, "conflicts": []}
    assert clash["available"] is False
    assert clash["conflicts"][0]["type"] == "double_booking"
    assert [c["type"] for c in late["conflicts"]] == ["unavailable_time"]


def test_malformed_weekly_schedules_are_rejected_with_errors(client, make_therapist, auth_headers):
    therapist = make_therapist()
    headers = auth_headers(therapist)
    fractional = weekday_schedule()
    fractional["sessionSettings"]["sessionDuration"] = 0.5
    fractional["standardHours"]["monday"]["generalHours"]["sessionDuration"] = 0.5
    string_hours = weekday_schedule()
    string_hours["standardHours"]["monday"]["generalHours"] = "09:00-17:00"
    string_slots = weekday_schedule()
    string_slots["standardHours"]["monday"]["customSlots"] = ["09:00-10:00"]

    responses = [
        client.post("/therapist/availability/weekly", json={"availability": schedule}, headers=headers)
        for schedule in (fractional, string_hours, string_slots)
    ]

    assert [r.status_code for r in responses] == [400, 400, 400]
    assert "Session duration must be a whole number" in responses[0].json()["detail"]["errors"]
    assert "monday general hours must be an object" in responses[1].json()["detail"]["errors"]
    assert "monday custom slot 1 must be an object" in responses[2].json()["detail"]["errors"]


def test_public_availability_survives_a_bad_stored_schedule(client, make_therapist):
    broken = weekday_schedule()
    broken["sessionSettings"]["sessionDuration"] = 0.5
    broken["standardHours"]["monday"]["generalHours"]["sessionDuration"] = 0.5
    therapist = make_therapist(weekly=broken)
    monday = next_weekday(0)

    slots = client.get("/availability/slots", params={"therapist_id": therapist.id, "date": monday.isoformat()})
    days = client.get(
        "/availability/days",
        params={
            "therapist_id": therapist.id,
            "start_date": monday.isoformat(),
            "end_date": (monday + timedelta(days=1)).isoformat(),
        },
    )
    next_slot = client.get("/availability/next-slot", params={"therapist_id": therapist.id})

    assert slots.status_code == 200
    assert slots.json()["slots"] == []
    assert days.status_code == 200
    assert days.json()["available_days"] == [(monday + timedelta(days=1)).isoformat()]
    assert next_slot.status_code == 200
