import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import models  # noqa: F401 - register tables with Base
from .cache import get_cache_stats
from .config import FRONTEND_URL
from .database import Base, engine
from .domain.auth.router import router as auth_router
from .domain.availability.router import router as availability_router
from .domain.availability.router import therapist_router as therapist_availability_router
from .domain.credits.router import router as credits_router
from .domain.earnings.router import router as earnings_router
from .domain.patients.router import router as patients_router
from .domain.patients.router import therapist_router as therapist_patients_router
from .domain.sessions.router import router as sessions_router
from .domain.sessions.router import therapist_router as therapist_sessions_router
from .routes.admin import router as admin_router
from .routes.daily_webhooks import router as daily_webhooks_router
from .routes.notifications import router as notifications_router
from .routes.partners import router as partners_router
from .routes.therapists import router as therapists_router
from .security_headers import SECURITY_HEADERS_ENABLED, SecurityHeadersMiddleware

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    try:
        from .rate_limiter import get_redis_client

        get_redis_client()  # Connection test
        logger.info("Redis connection established")
    except Exception as e:
        logger.warning(f"Redis connection failed - rate limited endpoints will return 503: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="TRPI API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert validation errors on the Authorization header to 401 authentication errors
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                },
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry exception instances that JSON cannot encode
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(error)
    return errors


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"{request.method} {request.url.path} - Error: {str(exc)}")
    logger.exception("Full error traceback:")
    return JSONResponse(status_code=500, content={"detail": "An unexpected error occurred. Please try again."})


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"])
    logger.info("Security headers enabled")
else:
    logger.warning("Security headers DISABLED - only use in development!")


# CORS Configuration
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", f"{FRONTEND_URL},http://localhost:3000").split(",")
logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=False,  # Bearer tokens only, no cookies
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(auth_router)
app.include_router(availability_router)
app.include_router(therapist_availability_router)
app.include_router(therapist_sessions_router)
app.include_router(therapists_router)
app.include_router(sessions_router)
app.include_router(credits_router)
app.include_router(earnings_router)
app.include_router(patients_router)
app.include_router(therapist_patients_router)
app.include_router(partners_router)
app.include_router(notifications_router)
app.include_router(admin_router)
app.include_router(daily_webhooks_router)


@app.get("/")
def root():
    return {"message": "TRPI API is running"}


@app.get("/health")
def health():
    return {"status": "healthy", "availability_cache": get_cache_stats()}
