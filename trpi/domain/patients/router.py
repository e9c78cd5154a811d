"""Patient record router - intake forms and clinical history"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import require_individual, require_therapist
from ...database import get_db
from ...models import User
from .schemas import BiodataRequest, DrugHistoryRequest, FamilyHistoryRequest, MedicalHistoryRequest
from .service import PatientRecordService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/patient", tags=["Patient Records"])
therapist_router = APIRouter(prefix="/therapist", tags=["Patient Records"])


def get_patient_service(db: Session = Depends(get_db)) -> PatientRecordService:
    """Dependency injection for PatientRecordService"""
    return PatientRecordService(db)


@router.get("/biodata")
async def get_biodata(
    current_user: User = Depends(require_individual),
    service: PatientRecordService = Depends(get_patient_service),
):
    return {"success": True, "data": service.get_biodata(current_user)}


@router.put("/biodata")
async def save_biodata(
    data: BiodataRequest,
    current_user: User = Depends(require_individual),
    service: PatientRecordService = Depends(get_patient_service),
):
    """Create or update the caller's biodata; omitted fields are kept"""
    return {"success": True, "data": service.save_biodata(current_user, data)}


@router.get("/family-history")
async def get_family_history(
    current_user: User = Depends(require_individual),
    service: PatientRecordService = Depends(get_patient_service),
):
    return {"success": True, "data": service.get_family_history(current_user)}


@router.put("/family-history")
async def save_family_history(
    data: FamilyHistoryRequest,
    current_user: User = Depends(require_individual),
    service: PatientRecordService = Depends(get_patient_service),
):
    return {"success": True, "data": service.save_family_history(current_user, data)}


@router.get("/health-records")
async def get_own_health_records(
    current_user: User = Depends(require_individual),
    service: PatientRecordService = Depends(get_patient_service),
):
    """Medical and drug history entries recorded by the caller's therapists"""
    return {"success": True, **service.get_clinical_history(current_user.id)}


@therapist_router.get("/patients/{patient_id}/records")
async def get_patient_records(
    patient_id: int,
    current_user: User = Depends(require_therapist),
    service: PatientRecordService = Depends(get_patient_service),
):
    return {"success": True, "data": service.get_patient_profile(current_user, patient_id)}


@therapist_router.post("/patients/{patient_id}/medical-history", status_code=201)
async def add_medical_history(
    patient_id: int,
    data: MedicalHistoryRequest,
    current_user: User = Depends(require_therapist),
    service: PatientRecordService = Depends(get_patient_service),
):
    return {"success": True, "data": service.add_medical_record(current_user, patient_id, data)}


@therapist_router.post("/patients/{patient_id}/drug-history", status_code=201)
async def add_drug_history(
    patient_id: int,
    data: DrugHistoryRequest,
    current_user: User = Depends(require_therapist),
    service: PatientRecordService = Depends(get_patient_service),
):
    return {"success": True, "data": service.add_drug_record(current_user, patient_id, data)}


@therapist_router.put("/medical-history/{record_id}")
async def update_medical_history(
    record_id: int,
    data: MedicalHistoryRequest,
    current_user: User = Depends(require_therapist),
    service: PatientRecordService = Depends(get_patient_service),
):
    return {"success": True, "data": service.update_medical_record(current_user, record_id, data)}


@therapist_router.put("/drug-history/{record_id}")
async def update_drug_history(
    record_id: int,
    data: DrugHistoryRequest,
    current_user: User = Depends(require_therapist),
    service: PatientRecordService = Depends(get_patient_service),
):
    return {"success": True, "data": service.update_drug_record(current_user, record_id, data)}
