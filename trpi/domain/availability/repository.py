"""Availability repository - Database operations for schedules, overrides and bookings"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import (
    BLOCKING_SESSION_STATUSES,
    AvailabilityOverride,
    AvailabilityWeeklySchedule,
    TherapistProfile,
    TherapySession,
    User,
)

PRIMARY_TEMPLATE = "primary"


class AvailabilityRepository:
    """Repository for availability database operations"""

    @staticmethod
    def get_bookable_therapist(db: Session, therapist_id: int) -> Optional[User]:
        """Active, verified therapist with an approved profile"""
        return (
            db.query(User)
            .join(TherapistProfile, TherapistProfile.user_id == User.id)
            .filter(
                User.id == therapist_id,
                User.user_type == "therapist",
                User.is_active.is_(True),
                User.is_verified.is_(True),
                TherapistProfile.verification_status == "approved",
            )
            .first()
        )

    @staticmethod
    def get_profile(db: Session, therapist_id: int) -> Optional[TherapistProfile]:
        return db.query(TherapistProfile).filter(TherapistProfile.user_id == therapist_id).first()

    @staticmethod
    def get_weekly_schedule(db: Session, therapist_id: int) -> Optional[AvailabilityWeeklySchedule]:
        return (
            db.query(AvailabilityWeeklySchedule)
            .filter(
                AvailabilityWeeklySchedule.therapist_id == therapist_id,
                AvailabilityWeeklySchedule.template_name == PRIMARY_TEMPLATE,
                AvailabilityWeeklySchedule.is_active.is_(True),
            )
            .first()
        )

    @staticmethod
    def upsert_weekly_schedule(db: Session, therapist_id: int, weekly: dict) -> AvailabilityWeeklySchedule:
        schedule = (
            db.query(AvailabilityWeeklySchedule)
            .filter(
                AvailabilityWeeklySchedule.therapist_id == therapist_id,
                AvailabilityWeeklySchedule.template_name == PRIMARY_TEMPLATE,
            )
            .first()
        )
        if schedule:
            schedule.weekly_availability = weekly
            schedule.is_active = True
        else:
            schedule = AvailabilityWeeklySchedule(
                therapist_id=therapist_id,
                template_name=PRIMARY_TEMPLATE,
                weekly_availability=weekly,
                is_active=True,
            )
            db.add(schedule)
        db.commit()
        db.refresh(schedule)
        return schedule

    @staticmethod
    def get_overrides(
        db: Session, therapist_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[AvailabilityOverride]:
        query = db.query(AvailabilityOverride).filter(AvailabilityOverride.therapist_id == therapist_id)
        if start:
            query = query.filter(AvailabilityOverride.override_date >= start)
        if end:
            query = query.filter(AvailabilityOverride.override_date <= end)
        return query.order_by(AvailabilityOverride.override_date.asc()).all()

    @staticmethod
    def get_override_by_date(db: Session, therapist_id: int, override_date: date) -> Optional[AvailabilityOverride]:
        return (
            db.query(AvailabilityOverride)
            .filter(
                AvailabilityOverride.therapist_id == therapist_id,
                AvailabilityOverride.override_date == override_date,
            )
            .first()
        )

    @staticmethod
    def get_override_by_id(db: Session, override_id: int) -> Optional[AvailabilityOverride]:
        return db.query(AvailabilityOverride).filter(AvailabilityOverride.id == override_id).first()

    @staticmethod
    def save_override(db: Session, therapist_id: int, override_date: date, **fields) -> AvailabilityOverride:
        """Create or update the single override for a date"""
        override = AvailabilityRepository.get_override_by_date(db, therapist_id, override_date)
        if override is None:
            override = AvailabilityOverride(therapist_id=therapist_id, override_date=override_date)
            db.add(override)
        for key, value in fields.items():
            setattr(override, key, value)
        db.commit()
        db.refresh(override)
        return override

    @staticmethod
    def delete_override(db: Session, override: AvailabilityOverride) -> None:
        db.delete(override)
        db.commit()

    @staticmethod
    def get_blocking_sessions(
        db: Session,
        therapist_id: int,
        start: date,
        end: Optional[date] = None,
        exclude_session_id: Optional[int] = None,
    ) -> list[TherapySession]:
        """Sessions that hold the therapist's time between start and end (inclusive)"""
        query = db.query(TherapySession).filter(
            TherapySession.therapist_id == therapist_id,
            TherapySession.status.in_(BLOCKING_SESSION_STATUSES),
            TherapySession.session_date >= start,
            TherapySession.session_date <= (end or start),
        )
        if exclude_session_id is not None:
            query = query.filter(TherapySession.id != exclude_session_id)
        return query.order_by(TherapySession.session_date, TherapySession.start_time).all()
