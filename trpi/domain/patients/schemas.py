"""Patient record schemas - Pydantic models for validation"""

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ...utils.time_utils import parse_date

Sex = Literal["male", "female", "other"]
MaritalStatus = Literal["single", "married", "divorced", "widowed", "separated"]
EducationLevel = Literal["primary", "secondary", "diploma", "bachelor", "master", "phd", "other"]


class BiodataRequest(BaseModel):
    """Schema for a patient's own intake biodata; omitted fields are left unchanged"""

    name: Optional[str] = Field(None, max_length=255)
    age: Optional[int] = Field(None, ge=0, le=130)
    sex: Optional[Sex] = None
    religion: Optional[str] = Field(None, max_length=100)
    occupation: Optional[str] = Field(None, max_length=255)
    marital_status: Optional[MaritalStatus] = None
    tribe: Optional[str] = Field(None, max_length=100)
    level_of_education: Optional[EducationLevel] = None
    complaints: Optional[str] = Field(None, max_length=5000)
    therapist_preference: Optional[str] = Field(None, max_length=2000)


class FamilyHistoryRequest(BaseModel):
    mental_health_history: Optional[str] = Field(None, max_length=5000)
    substance_abuse_history: Optional[str] = Field(None, max_length=5000)
    other_medical_history: Optional[str] = Field(None, max_length=5000)


def _parse_record_date(value):
    if isinstance(value, date):
        return value
    return parse_date(value)


class MedicalHistoryRequest(BaseModel):
    """Schema for a therapist-recorded diagnosis"""

    condition: str = Field(..., min_length=1, max_length=255)
    diagnosis_date: date
    notes: Optional[str] = Field(None, max_length=5000)

    @field_validator("diagnosis_date", mode="before")
    @classmethod
    def validate_diagnosis_date(cls, v):
        return _parse_record_date(v)


class DrugHistoryRequest(BaseModel):
    """Schema for a therapist-recorded medication"""

    medication_name: str = Field(..., min_length=1, max_length=255)
    dosage: str = Field(..., min_length=1, max_length=100)
    start_date: date
    prescribing_doctor: Optional[str] = Field(None, max_length=255)
    duration_of_usage: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=5000)

    @field_validator("start_date", mode="before")
    @classmethod
    def validate_start_date(cls, v):
        return _parse_record_date(v)
