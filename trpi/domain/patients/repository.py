"""Patient record repository - Database operations for intake and history records"""

from typing import Optional, Type, TypeVar

from sqlalchemy.orm import Session

from ...models import (
    PatientBiodata,
    PatientDrugHistory,
    PatientFamilyHistory,
    PatientMedicalHistory,
)

Record = TypeVar("Record", PatientBiodata, PatientFamilyHistory)


class PatientRepository:
    """Repository for patient record database operations"""

    @staticmethod
    def get_single(db: Session, model: Type[Record], user_id: int) -> Optional[Record]:
        return db.query(model).filter(model.user_id == user_id).first()

    @staticmethod
    def upsert_single(db: Session, model: Type[Record], user_id: int, fields: dict) -> Record:
        record = db.query(model).filter(model.user_id == user_id).first()
        if record is None:
            record = model(user_id=user_id)
            db.add(record)
        for key, value in fields.items():
            setattr(record, key, value)
        db.commit()
        db.refresh(record)
        return record

    @staticmethod
    def list_medical_history(db: Session, user_id: int) -> list[PatientMedicalHistory]:
        return (
            db.query(PatientMedicalHistory)
            .filter(PatientMedicalHistory.user_id == user_id)
            .order_by(PatientMedicalHistory.diagnosis_date.desc(), PatientMedicalHistory.id.desc())
            .all()
        )

    @staticmethod
    def list_drug_history(db: Session, user_id: int) -> list[PatientDrugHistory]:
        return (
            db.query(PatientDrugHistory)
            .filter(PatientDrugHistory.user_id == user_id)
            .order_by(PatientDrugHistory.start_date.desc(), PatientDrugHistory.id.desc())
            .all()
        )

    @staticmethod
    def get_medical_record(db: Session, record_id: int) -> Optional[PatientMedicalHistory]:
        return db.query(PatientMedicalHistory).filter(PatientMedicalHistory.id == record_id).first()

    @staticmethod
    def get_drug_record(db: Session, record_id: int) -> Optional[PatientDrugHistory]:
        return db.query(PatientDrugHistory).filter(PatientDrugHistory.id == record_id).first()
