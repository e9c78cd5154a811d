from __future__ import annotations

from datetime import date, timedelta

import pytest

from trpi.domain.earnings.service import split_session_amount
from trpi.models import EarningsTransaction, TherapistProfile, TherapySession
from trpi.utils.time_utils import utcnow


def _session(db, patient, therapist, status="completed", start="10:00"):
    session = TherapySession(
        user_id=patient.id,
        therapist_id=therapist.id,
        session_date=date(2025, 3, 17),
        start_time=start,
        end_time="11:00",
        status=status,
    )
    db.add(session)
    db.commit()
    return session


@pytest.mark.parametrize(
    "rate, amount, fee",
    [
        (5000, 500000, 75000),
        (None, 500000, 75000),
        (12345.67, 1234567, 185185),
        (0.1, 10, 2),
    ],
)
def test_platform_fee_is_taken_in_whole_kobo(rate, amount, fee):
    split = split_session_amount(rate, fee_rate=0.15)

    assert split == {
        "session_amount_kobo": amount,
        "platform_fee_kobo": fee,
        "therapist_earnings_kobo": amount - fee,
    }


def test_therapist_records_earnings_for_a_completed_session(client, db, make_user, make_therapist, auth_headers):
    therapist = make_therapist()
    db.query(TherapistProfile).filter(TherapistProfile.user_id == therapist.id).update({"session_rate": 8000})
    db.commit()
    session = _session(db, make_user(), therapist)
    headers = auth_headers(therapist)

    response = client.post("/earnings/calculate", json={"session_id": session.id}, headers=headers)

    assert response.status_code == 201
    body = response.json()
    assert body["therapist_earnings_kobo"] == 680000
    assert body["platform_fee_kobo"] == 120000
    rows = {t.transaction_type: t.amount_kobo for t in db.query(EarningsTransaction).all()}
    assert rows == {"session_completion": 680000, "platform_fee": -120000}

    again = client.post("/earnings/calculate", json={"session_id": session.id}, headers=headers)
    assert again.status_code == 409
    assert db.query(EarningsTransaction).count() == 2


def test_earnings_need_a_completed_session_of_your_own(client, db, make_user, make_therapist, auth_headers):
    therapist = make_therapist()
    other = make_therapist()
    patient = make_user()
    scheduled = _session(db, patient, therapist, status="scheduled")
    completed = _session(db, patient, therapist, start="14:00")

    headers = auth_headers(therapist)
    assert client.post("/earnings/calculate", json={"session_id": scheduled.id}, headers=headers).status_code == 409
    assert client.post("/earnings/calculate", json={"session_id": 9999}, headers=headers).status_code == 404
    denied = client.post("/earnings/calculate", json={"session_id": completed.id}, headers=auth_headers(other))
    assert denied.status_code == 403
    assert client.post("/earnings/calculate", json={"session_id": completed.id}, headers=auth_headers(patient)).status_code == 403

    admin = auth_headers(make_user("admin"))
    assert client.post("/earnings/calculate", json={"session_id": completed.id}, headers=admin).status_code == 201


def test_report_totals_do_not_count_the_fee_twice(client, db, make_user, make_therapist, auth_headers):
    therapist = make_therapist()
    patient = make_user()
    headers = auth_headers(therapist)
    for start in ("09:00", "10:00"):
        session = _session(db, patient, therapist, start=start)
        client.post("/earnings/calculate", json={"session_id": session.id}, headers=headers)
    db.add(
        EarningsTransaction(
            therapist_id=therapist.id,
            transaction_type="bonus",
            amount_kobo=10000,
            calculated_at=utcnow(),
        )
    )
    db.commit()

    today = utcnow().date()
    report = client.get(
        "/earnings/report",
        params={"start_date": (today - timedelta(days=1)).isoformat(), "end_date": today.isoformat()},
        headers=headers,
    ).json()["report"]

    assert report["total_sessions"] == 2
    assert report["gross_earnings_kobo"] == 1000000
    assert report["platform_fees_kobo"] == 150000
    assert report["adjustments_kobo"] == 10000
    assert report["net_earnings_kobo"] == 860000
    assert len(report["transactions"]) == 5


def test_report_parameters(client, make_user, make_therapist, auth_headers):
    therapist = make_therapist()
    headers = auth_headers(therapist)

    inverted = client.get(
        "/earnings/report", params={"start_date": "2025-03-10", "end_date": "2025-03-01"}, headers=headers
    )
    assert inverted.status_code == 400

    empty = client.get("/earnings/report", headers=headers).json()["report"]
    assert empty["therapist_id"] == therapist.id
    assert empty["net_earnings_kobo"] == 0

    admin = auth_headers(make_user("admin"))
    assert client.get("/earnings/report", headers=admin).status_code == 400
    on_behalf = client.get("/earnings/report", params={"therapist_id": therapist.id}, headers=admin)
    assert on_behalf.status_code == 200
    assert on_behalf.json()["report"]["therapist_id"] == therapist.id
