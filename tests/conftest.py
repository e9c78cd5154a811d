from __future__ import annotations

import os
from typing import Callable, Optional

# Must be set before trpi modules read configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-jwt-signing")
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ.pop("DAILY_API_KEY", None)

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from booking_utils import weekday_schedule  # noqa: E402
from trpi import rate_limiter  # noqa: E402
from trpi.cache import availability_cache  # noqa: E402
from trpi.database import Base, get_db  # noqa: E402
from trpi.domain.auth.service import MagicLinkService  # noqa: E402
from trpi.domain.credits.repository import CreditRepository  # noqa: E402
from trpi.main import app  # noqa: E402
from trpi.models import AvailabilityWeeklySchedule, TherapistProfile, User  # noqa: E402
from trpi.routes import daily_webhooks  # noqa: E402

RATE_LIMITERS = (
    rate_limiter.rate_limit_magic_link,
    rate_limiter.rate_limit_magic_link_verify,
    rate_limiter.rate_limit_booking,
    rate_limiter.rate_limit_public_availability,
    daily_webhooks.rate_limit_webhook,
)


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


async def _no_rate_limit():
    return None


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    for limiter in RATE_LIMITERS:
        app.dependency_overrides[limiter] = _no_rate_limit
    availability_cache.clear()

    # Lifespan is not entered: tables come from the engine fixture and Redis is not needed
    test_client = TestClient(app)
    yield test_client

    app.dependency_overrides.clear()
    availability_cache.clear()


@pytest.fixture
def make_user(db) -> Callable[..., User]:
    counter = {"n": 0}

    def _make(user_type: str = "individual", email: Optional[str] = None, **fields) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"{user_type}{counter['n']}@example.com",
            full_name=fields.pop("full_name", f"{user_type.title()} {counter['n']}"),
            user_type=user_type,
            is_active=fields.pop("is_active", True),
            is_verified=fields.pop("is_verified", True),
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_therapist(db, make_user) -> Callable[..., User]:
    def _make(status: str = "approved", weekly: Optional[dict] = None, **fields) -> User:
        therapist = make_user("therapist", **fields)
        db.add(TherapistProfile(user_id=therapist.id, verification_status=status, bio="Licensed counsellor"))
        db.add(
            AvailabilityWeeklySchedule(
                therapist_id=therapist.id,
                template_name="primary",
                weekly_availability=weekly if weekly is not None else weekday_schedule(),
                is_active=True,
            )
        )
        db.commit()
        db.refresh(therapist)
        return therapist

    return _make


@pytest.fixture
def auth_headers(db) -> Callable[[User], dict[str, str]]:
    def _make(user: User) -> dict[str, str]:
        token = MagicLinkService(db).create_session(user)
        db.commit()
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def give_credits(db) -> Callable[..., list]:
    def _give(user: User, count: int = 1, **kwargs) -> list:
        return CreditRepository.create_credits(db, user.id, count, **kwargs)

    return _give
