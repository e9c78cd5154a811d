import logging
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .models import AuthSession, User
from .security_utils import verify_jwt_token
from .utils.time_utils import utcnow

logger = logging.getLogger(__name__)

# auto_error=False so a missing header is a 401 rather than FastAPI's default
security = HTTPBearer(auto_error=False)


def resolve_auth_session(db: Session, token: str) -> AuthSession:
    """Verify a bearer JWT and return its live auth session row"""
    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed token received: length {len(token)}")
        raise HTTPException(status_code=401, detail="Invalid token format. Expected a valid JWT token.")

    payload = verify_jwt_token(token)
    if not payload or not payload.get("jti") or not payload.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    auth_session = db.query(AuthSession).filter(AuthSession.jti == payload["jti"]).first()
    now = utcnow()
    if not auth_session or auth_session.revoked_at is not None or auth_session.expires_at <= now:
        logger.info("ℹ️ Rejected token for a revoked or expired session")
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    if str(auth_session.user_id) != str(payload["sub"]):
        logger.warning(f"⚠️ Token subject mismatch for session {auth_session.id}")
        raise HTTPException(status_code=401, detail="Invalid or expired session")

    return auth_session


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from a bearer session token"""

    if not credentials or not credentials.credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    auth_session = resolve_auth_session(db, credentials.credentials)

    user = db.query(User).filter(User.id == auth_session.user_id).first()
    if not user or not user.is_active:
        logger.warning(f"⚠️ Inactive or missing user for session {auth_session.id}")
        raise HTTPException(status_code=401, detail="Account is not active")

    auth_session.last_accessed_at = utcnow()
    db.commit()

    logger.debug(f"✅ User authenticated: {user.id} ({user.user_type})")
    return user


def require_roles(*user_types: str):
    """
    Dependency factory restricting a route to the given user types

    Example usage:
        @router.post("/enroll")
        async def enroll(current_user: User = Depends(require_roles("therapist"))):
            ...
    """

    async def role_checker(current_user: User = Depends(get_current_user)) -> User:
        if current_user.user_type not in user_types:
            logger.warning(
                f"⚠️ User {current_user.id} ({current_user.user_type}) denied, requires one of {user_types}"
            )
            raise HTTPException(status_code=403, detail="You do not have access to this resource")
        return current_user

    return role_checker


require_therapist = require_roles("therapist")
require_individual = require_roles("individual")
require_partner = require_roles("partner")
require_admin = require_roles("admin")
