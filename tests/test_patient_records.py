from __future__ import annotations

from datetime import date

import pytest

from trpi.models import Notification, TherapySession


def _session_between(db, patient, therapist, status="completed"):
    session = TherapySession(
        user_id=patient.id,
        therapist_id=therapist.id,
        session_date=date(2025, 3, 17),
        start_time="10:00",
        end_time="11:00",
        status=status,
    )
    db.add(session)
    db.commit()
    return session


@pytest.fixture
def treating_pair(db, make_user, make_therapist):
    patient = make_user()
    therapist = make_therapist()
    _session_between(db, patient, therapist)
    return patient, therapist


def test_patient_saves_biodata_in_parts(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    assert client.get("/patient/biodata", headers=headers).json() == {"success": True, "data": None}

    first = client.put(
        "/patient/biodata",
        json={"name": "Ada <b>Obi</b>", "age": 29, "sex": "female", "complaints": "Trouble sleeping"},
        headers=headers,
    )
    assert first.status_code == 200
    assert first.json()["data"]["name"] == "Ada Obi"

    client.put("/patient/biodata", json={"occupation": "Engineer"}, headers=headers)

    data = client.get("/patient/biodata", headers=headers).json()["data"]
    assert data["occupation"] == "Engineer"
    assert data["complaints"] == "Trouble sleeping"
    assert data["age"] == 29


def test_biodata_validation(client, make_user, auth_headers):
    headers = auth_headers(make_user())
    assert client.put("/patient/biodata", json={"sex": "unknown"}, headers=headers).status_code == 422
    assert client.put("/patient/biodata", json={"age": -1}, headers=headers).status_code == 422
    assert client.put("/patient/biodata", json={"level_of_education": "phd"}, headers=headers).status_code == 200


def test_family_history_is_patient_only(client, make_user, make_therapist, auth_headers):
    patient_headers = auth_headers(make_user())
    saved = client.put(
        "/patient/family-history", json={"mental_health_history": "Depression (mother)"}, headers=patient_headers
    )
    assert saved.status_code == 200
    assert client.get("/patient/family-history", headers=patient_headers).json()["data"]["mental_health_history"] == (
        "Depression (mother)"
    )

    therapist_headers = auth_headers(make_therapist())
    assert client.get("/patient/family-history", headers=therapist_headers).status_code == 403


def test_treating_therapist_records_history_and_sees_full_profile(client, db, treating_pair, auth_headers):
    patient, therapist = treating_pair
    patient_headers = auth_headers(patient)
    therapist_headers = auth_headers(therapist)
    client.put("/patient/biodata", json={"name": "Ada", "religion": "None"}, headers=patient_headers)

    medical = client.post(
        f"/therapist/patients/{patient.id}/medical-history",
        json={"condition": "Generalised anxiety", "diagnosis_date": "2025-03-17", "notes": "Mild"},
        headers=therapist_headers,
    )
    drug = client.post(
        f"/therapist/patients/{patient.id}/drug-history",
        json={"medication_name": "Sertraline", "dosage": "50mg", "start_date": "2025-03-18"},
        headers=therapist_headers,
    )
    assert medical.status_code == 201
    assert drug.status_code == 201
    assert medical.json()["data"]["diagnosis_date"] == "2025-03-17"
    assert drug.json()["data"]["therapist_id"] == therapist.id

    profile = client.get(f"/therapist/patients/{patient.id}/records", headers=therapist_headers).json()["data"]
    assert profile["biodata"]["name"] == "Ada"
    assert profile["family_history"] is None
    assert [m["condition"] for m in profile["medical_history"]] == ["Generalised anxiety"]
    assert [d["medication_name"] for d in profile["drug_history"]] == ["Sertraline"]

    own = client.get("/patient/health-records", headers=patient_headers).json()
    assert len(own["medical_history"]) == 1
    assert len(own["drug_history"]) == 1
    assert db.query(Notification).filter(
        Notification.user_id == patient.id, Notification.type == "patient_record_added"
    ).count() == 2


def test_records_are_closed_to_therapists_without_a_session(client, db, make_user, make_therapist, auth_headers):
    patient = make_user()
    stranger = make_therapist()
    headers = auth_headers(stranger)

    assert client.get(f"/therapist/patients/{patient.id}/records", headers=headers).status_code == 403
    response = client.post(
        f"/therapist/patients/{patient.id}/medical-history",
        json={"condition": "Insomnia", "diagnosis_date": "2025-01-01"},
        headers=headers,
    )
    assert response.status_code == 403

    _session_between(db, patient, stranger, status="cancelled")
    assert client.get(f"/therapist/patients/{patient.id}/records", headers=headers).status_code == 403

    assert client.get("/therapist/patients/9999/records", headers=headers).status_code == 404


def test_only_the_recording_therapist_edits_a_record(client, db, treating_pair, make_therapist, auth_headers):
    patient, therapist = treating_pair
    colleague = make_therapist()
    _session_between(db, patient, colleague)
    record = client.post(
        f"/therapist/patients/{patient.id}/drug-history",
        json={"medication_name": "Sertraline", "dosage": "50mg", "start_date": "2025-03-18"},
        headers=auth_headers(therapist),
    ).json()["data"]

    update = {"medication_name": "Sertraline", "dosage": "100mg", "start_date": "2025-03-18"}
    denied = client.put(f"/therapist/drug-history/{record['id']}", json=update, headers=auth_headers(colleague))
    assert denied.status_code == 403

    updated = client.put(f"/therapist/drug-history/{record['id']}", json=update, headers=auth_headers(therapist))
    assert updated.status_code == 200
    assert updated.json()["data"]["dosage"] == "100mg"

    missing = client.put(
        "/therapist/medical-history/9999",
        json={"condition": "Insomnia", "diagnosis_date": "2025-01-01"},
        headers=auth_headers(therapist),
    )
    assert missing.status_code == 404


def test_history_dates_must_be_valid(client, treating_pair, auth_headers):
    patient, therapist = treating_pair
    response = client.post(
        f"/therapist/patients/{patient.id}/medical-history",
        json={"condition": "Insomnia", "diagnosis_date": "17/03/2025"},
        headers=auth_headers(therapist),
    )
    assert response.status_code == 422
