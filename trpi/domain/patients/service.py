"""Patient record service - intake forms and therapist-kept clinical history"""

import logging
from typing import Any, Optional

from fastapi import HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ...models import PatientBiodata, PatientDrugHistory, PatientFamilyHistory, PatientMedicalHistory, User
from ...services.notification_service import notify
from ...utils.sanitization import sanitize_string
from ..sessions.repository import SessionRepository
from .repository import PatientRepository
from .schemas import DrugHistoryRequest, MedicalHistoryRequest

logger = logging.getLogger(__name__)


def serialize_record(record: Optional[Any]) -> Optional[dict]:
    if record is None:
        return None
    return {column.name: getattr(record, column.name) for column in record.__table__.columns}


def _clean_fields(data: BaseModel, only_set: bool = False) -> dict:
    fields = data.model_dump(exclude_unset=only_set)
    return {key: sanitize_string(value) if isinstance(value, str) else value for key, value in fields.items()}


class PatientRecordService:
    """Service layer for patient intake and history records"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = PatientRepository()
        self.sessions = SessionRepository()

    # ------------------------------------------------------------------
    # Patient-owned intake
    # ------------------------------------------------------------------

    def get_biodata(self, user: User) -> Optional[dict]:
        return serialize_record(self.repo.get_single(self.db, PatientBiodata, user.id))

    def save_biodata(self, user: User, data: BaseModel) -> dict:
        record = self.repo.upsert_single(self.db, PatientBiodata, user.id, _clean_fields(data, only_set=True))
        logger.info(f"📝 Biodata saved for user {user.id}")
        return serialize_record(record)

    def get_family_history(self, user: User) -> Optional[dict]:
        return serialize_record(self.repo.get_single(self.db, PatientFamilyHistory, user.id))

    def save_family_history(self, user: User, data: BaseModel) -> dict:
        record = self.repo.upsert_single(self.db, PatientFamilyHistory, user.id, _clean_fields(data, only_set=True))
        logger.info(f"📝 Family history saved for user {user.id}")
        return serialize_record(record)

    def get_clinical_history(self, patient_id: int) -> dict:
        return {
            "medical_history": [serialize_record(r) for r in self.repo.list_medical_history(self.db, patient_id)],
            "drug_history": [serialize_record(r) for r in self.repo.list_drug_history(self.db, patient_id)],
        }

    # ------------------------------------------------------------------
    # Therapist access
    # ------------------------------------------------------------------

    def _patient_for_therapist(self, therapist: User, patient_id: int) -> User:
        patient = self.sessions.get_user(self.db, patient_id)
        if not patient or patient.user_type != "individual":
            raise HTTPException(status_code=404, detail="Patient not found")
        if not self.sessions.has_previous_session(self.db, patient.id, therapist.id):
            logger.warning(f"⚠️ Therapist {therapist.id} denied access to records of user {patient.id}")
            raise HTTPException(status_code=403, detail="You can only access records of your own patients")
        return patient

    def get_patient_profile(self, therapist: User, patient_id: int) -> dict:
        """Everything a treating therapist sees about a patient"""
        patient = self._patient_for_therapist(therapist, patient_id)
        return {
            "patient": {"id": patient.id, "full_name": patient.full_name, "email": patient.email},
            "biodata": serialize_record(self.repo.get_single(self.db, PatientBiodata, patient.id)),
            "family_history": serialize_record(self.repo.get_single(self.db, PatientFamilyHistory, patient.id)),
            **self.get_clinical_history(patient.id),
        }

    def add_medical_record(self, therapist: User, patient_id: int, data: MedicalHistoryRequest) -> dict:
        patient = self._patient_for_therapist(therapist, patient_id)
        record = PatientMedicalHistory(user_id=patient.id, therapist_id=therapist.id, **_clean_fields(data))
        return self._add_record(record, therapist, patient, "medical history")

    def add_drug_record(self, therapist: User, patient_id: int, data: DrugHistoryRequest) -> dict:
        patient = self._patient_for_therapist(therapist, patient_id)
        record = PatientDrugHistory(user_id=patient.id, therapist_id=therapist.id, **_clean_fields(data))
        return self._add_record(record, therapist, patient, "medication")

    def _add_record(self, record, therapist: User, patient: User, label: str) -> dict:
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        logger.info(f"🩺 Therapist {therapist.id} added {label} record {record.id} for user {patient.id}")
        notify(
            self.db,
            patient.id,
            "Health record updated",
            f"Your therapist added a {label} entry to your record.",
            "patient_record_added",
            {"record_id": record.id},
        )
        return serialize_record(record)

    def update_medical_record(self, therapist: User, record_id: int, data: MedicalHistoryRequest) -> dict:
        record = self.repo.get_medical_record(self.db, record_id)
        return self._update_record(record, therapist, data, "Medical history record not found")

    def update_drug_record(self, therapist: User, record_id: int, data: DrugHistoryRequest) -> dict:
        record = self.repo.get_drug_record(self.db, record_id)
        return self._update_record(record, therapist, data, "Drug history record not found")

    def _update_record(self, record, therapist: User, data: BaseModel, missing: str) -> dict:
        if record is None:
            raise HTTPException(status_code=404, detail=missing)
        if record.therapist_id != therapist.id:
            raise HTTPException(status_code=403, detail="You can only edit records you created")
        for key, value in _clean_fields(data).items():
            setattr(record, key, value)
        self.db.commit()
        self.db.refresh(record)
        return serialize_record(record)
