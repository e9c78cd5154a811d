from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

USER_TYPES = ("individual", "therapist", "partner", "admin")

# Statuses that hold a therapist's time slot
BLOCKING_SESSION_STATUSES = ("pending_approval", "scheduled", "confirmed", "in_progress")
TERMINAL_SESSION_STATUSES = ("completed", "cancelled", "no_show")

_BLOCKING_STATUS_SQL = "status IN ('pending_approval', 'scheduled', 'confirmed', 'in_progress')"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    user_type = Column(String(20), nullable=False, default="individual")  # individual, therapist, partner, admin
    is_active = Column(Boolean, default=True, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    # Partner organisation that sponsors this member (individual users only)
    partner_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    organization_name = Column(String(255), nullable=True)  # Partner accounts only
    phone = Column(String(50), nullable=True)
    onboarding_data = Column(JSON, nullable=True)  # Partner-supplied member details
    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    therapist_profile = relationship(
        "TherapistProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    partner = relationship("User", remote_side=[id], backref="members")


class TherapistProfile(Base):
    __tablename__ = "therapist_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    verification_status = Column(String(20), default="pending", nullable=False)  # pending, approved, rejected
    bio = Column(Text, nullable=True)
    specializations = Column(JSON, default=list, nullable=True)
    licence_number = Column(String(100), nullable=True)
    session_rate = Column(Float, nullable=True)
    phone = Column(String(50), nullable=True)
    languages = Column(JSON, default=list, nullable=True)
    gender = Column(String(50), nullable=True)
    marital_status = Column(String(50), nullable=True)
    age = Column(Integer, nullable=True)
    # Snapshot taken on the first profile edit, and the fields changed since
    original_enrollment_data = Column(JSON, nullable=True)
    edited_fields = Column(JSON, default=list, nullable=True)
    profile_updated_at = Column(DateTime, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="therapist_profile")


class MagicLink(Base):
    __tablename__ = "magic_links"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), index=True, nullable=False)
    # SHA-256 of the emailed token; the raw token is never stored
    token_hash = Column(String(64), unique=True, index=True, nullable=False)
    type = Column(String(20), nullable=False, default="login")  # login, signup, booking
    auth_type = Column(String(20), nullable=False, default="individual")
    link_metadata = Column("metadata", JSON, nullable=True)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class AuthSession(Base):
    __tablename__ = "auth_sessions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    jti = Column(String(64), unique=True, index=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)
    user_agent = Column(String(500), nullable=True)
    ip_address = Column(String(64), nullable=True)
    last_accessed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User")


class AvailabilityWeeklySchedule(Base):
    __tablename__ = "availability_weekly_schedules"
    __table_args__ = (UniqueConstraint("therapist_id", "template_name", name="uq_weekly_schedule_template"),)

    id = Column(Integer, primary_key=True, index=True)
    therapist_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    template_name = Column(String(50), default="primary", nullable=False)
    weekly_availability = Column(JSON, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class AvailabilityOverride(Base):
    __tablename__ = "availability_overrides"
    __table_args__ = (UniqueConstraint("therapist_id", "override_date", name="uq_override_therapist_date"),)

    id = Column(Integer, primary_key=True, index=True)
    therapist_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    override_date = Column(Date, nullable=False)
    is_available = Column(Boolean, default=False, nullable=False)
    start_time = Column(String(5), nullable=True)  # HH:MM
    end_time = Column(String(5), nullable=True)  # HH:MM
    session_duration = Column(Integer, default=45, nullable=False)
    session_type = Column(String(20), default="individual", nullable=False)
    max_sessions = Column(Integer, default=1, nullable=False)
    reason = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class TherapySession(Base):
    __tablename__ = "sessions"
    __table_args__ = (
        # Write-time guard against double booking a therapist's slot
        Index(
            "uq_sessions_therapist_slot",
            "therapist_id",
            "session_date",
            "start_time",
            unique=True,
            postgresql_where=text(_BLOCKING_STATUS_SQL),
            sqlite_where=text(_BLOCKING_STATUS_SQL),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    therapist_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    session_date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)  # HH:MM clinic time
    end_time = Column(String(5), nullable=False)
    duration_minutes = Column(Integer, default=60, nullable=False)
    session_type = Column(String(20), default="video", nullable=False)  # video, audio, chat
    status = Column(String(30), default="scheduled", nullable=False, index=True)
    title = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    therapist_notes = Column(Text, nullable=True)
    room_name = Column(String(255), nullable=True, index=True)
    session_url = Column(String(500), nullable=True)
    credit_id = Column(Integer, nullable=True)  # session_credits.id consumed by this booking
    cancelled_at = Column(DateTime, nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("User", foreign_keys=[user_id])
    therapist = relationship("User", foreign_keys=[therapist_id])
    feedback = relationship("SessionFeedback", back_populates="session", uselist=False)


class SessionCredit(Base):
    __tablename__ = "session_credits"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    # Partner that purchased the credit, when issued through a partner
    partner_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=True)
    is_free_credit = Column(Boolean, default=False, nullable=False)
    session_duration_minutes = Column(Integer, default=60, nullable=False)
    expires_at = Column(DateTime, nullable=True)
    used_at = Column(DateTime, nullable=True)
    session_id = Column(Integer, ForeignKey("sessions.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    session = relationship("TherapySession", foreign_keys=[session_id])


class SessionFeedback(Base):
    __tablename__ = "session_feedback"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(Integer, ForeignKey("sessions.id"), unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    rating = Column(Integer, nullable=False)  # 1-5
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    session = relationship("TherapySession", back_populates="feedback")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(String(50), default="info", nullable=False)
    is_read = Column(Boolean, default=False, nullable=False)
    data = Column(JSON, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class PatientBiodata(Base):
    __tablename__ = "patient_biodata"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    name = Column(String(255), nullable=True)
    age = Column(Integer, nullable=True)
    sex = Column(String(20), nullable=True)  # male, female, other
    religion = Column(String(100), nullable=True)
    occupation = Column(String(255), nullable=True)
    marital_status = Column(String(20), nullable=True)
    tribe = Column(String(100), nullable=True)
    level_of_education = Column(String(20), nullable=True)
    complaints = Column(Text, nullable=True)
    therapist_preference = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class PatientFamilyHistory(Base):
    __tablename__ = "patient_family_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    mental_health_history = Column(Text, nullable=True)
    substance_abuse_history = Column(Text, nullable=True)
    other_medical_history = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class PatientMedicalHistory(Base):
    __tablename__ = "patient_medical_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    therapist_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    condition = Column(String(255), nullable=False)
    diagnosis_date = Column(Date, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class PatientDrugHistory(Base):
    __tablename__ = "patient_drug_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    therapist_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    medication_name = Column(String(255), nullable=False)
    dosage = Column(String(100), nullable=False)
    start_date = Column(Date, nullable=False)
    prescribing_doctor = Column(String(255), nullable=True)
    duration_of_usage = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class EarningsTransaction(Base):
    __tablename__ = "earnings_transactions"
    # One completion entry and one fee entry per session
    __table_args__ = (UniqueConstraint("session_id", "transaction_type", name="uq_earnings_session_type"),)

    id = Column(Integer, primary_key=True, index=True)
    therapist_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    session_id = Column(Integer, ForeignKey("sessions.id"), nullable=True)
    transaction_type = Column(String(30), nullable=False)  # session_completion, platform_fee, adjustment, bonus, refund
    amount_kobo = Column(Integer, nullable=False)
    currency = Column(String(3), default="NGN", nullable=False)
    status = Column(String(20), default="confirmed", nullable=False)
    calculated_at = Column(DateTime, nullable=False)
    calculated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    audit_data = Column(JSON, nullable=True)
