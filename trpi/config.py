import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower()
IS_PRODUCTION = ENVIRONMENT == "production"

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./trpi.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Frontend base URL for redirects and magic links
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
APP_BASE_URL = os.getenv("APP_BASE_URL", FRONTEND_URL)

# Clinic wall-clock timezone. Slot times are stored as local HH:MM in this zone.
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "Africa/Lagos")

# Availability / booking rules
AVAILABILITY_CACHE_TTL_SECONDS = int(os.getenv("AVAILABILITY_CACHE_TTL_SECONDS", "300"))
BOOKING_LEAD_TIME_MINUTES = int(os.getenv("BOOKING_LEAD_TIME_MINUTES", "30"))
CANCELLATION_REFUND_HOURS = int(os.getenv("CANCELLATION_REFUND_HOURS", "24"))
MAX_AVAILABILITY_RANGE_DAYS = int(os.getenv("MAX_AVAILABILITY_RANGE_DAYS", "62"))
DEFAULT_SESSION_DURATION = int(os.getenv("DEFAULT_SESSION_DURATION", "60"))

# Session lifecycle
SESSION_JOIN_WINDOW_MINUTES = int(os.getenv("SESSION_JOIN_WINDOW_MINUTES", "15"))
SESSION_COMPLETION_GRACE_MINUTES = int(os.getenv("SESSION_COMPLETION_GRACE_MINUTES", "5"))

# Authentication
MAGIC_LINK_TTL_MINUTES = int(os.getenv("MAGIC_LINK_TTL_MINUTES", "15"))
SESSION_TOKEN_TTL_DAYS = int(os.getenv("SESSION_TOKEN_TTL_DAYS", "7"))
JWT_ALGORITHM = "HS256"

# Therapist earnings
PLATFORM_FEE_RATE = float(os.getenv("PLATFORM_FEE_RATE", "0.15"))
DEFAULT_SESSION_RATE_NGN = float(os.getenv("DEFAULT_SESSION_RATE_NGN", "5000"))

# Partner member imports
MEMBER_IMPORT_MAX_ROWS = int(os.getenv("MEMBER_IMPORT_MAX_ROWS", "500"))
MEMBER_IMPORT_MAX_BYTES = int(os.getenv("MEMBER_IMPORT_MAX_BYTES", str(1024 * 1024)))

# Daily.co video rooms
DAILY_API_KEY = os.getenv("DAILY_API_KEY")
DAILY_API_URL = os.getenv("DAILY_API_URL", "https://api.daily.co/v1")
DAILY_DOMAIN = os.getenv("DAILY_DOMAIN")
DAILY_WEBHOOK_SECRET = os.getenv("DAILY_WEBHOOK_SECRET")
