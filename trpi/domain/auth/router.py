"""Auth router - magic link sign-in and session endpoints"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ...auth import get_current_user, resolve_auth_session, security
from ...database import get_db
from ...models import User
from ...rate_limiter import get_client_ip, rate_limit_magic_link, rate_limit_magic_link_verify
from .schemas import MagicLinkRequest, TokenResponse, UserResponse, VerifyMagicLinkRequest
from .service import MagicLinkService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def get_magic_link_service(db: Session = Depends(get_db)) -> MagicLinkService:
    """Dependency injection for MagicLinkService"""
    return MagicLinkService(db)


@router.post("/magic-link")
async def request_magic_link(
    data: MagicLinkRequest,
    service: MagicLinkService = Depends(get_magic_link_service),
    _: None = Depends(rate_limit_magic_link),
):
    """Issue a single-use sign-in link for the email address"""
    link, _token = service.create_magic_link(data)
    action = "sign up" if link.type == "signup" else "sign in"
    return {"success": True, "message": f"Check your email for a link to {action}."}


@router.post("/verify-magic-link", response_model=TokenResponse)
async def verify_magic_link(
    data: VerifyMagicLinkRequest,
    request: Request,
    service: MagicLinkService = Depends(get_magic_link_service),
    _: None = Depends(rate_limit_magic_link_verify),
):
    """Exchange a magic link token for a bearer session"""
    result = service.verify_magic_link(
        data.token,
        data.auth_type,
        user_agent=request.headers.get("User-Agent"),
        ip_address=get_client_ip(request),
    )
    result["user"] = UserResponse.model_validate(result["user"])
    return result


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    profile = current_user.therapist_profile
    return {
        "success": True,
        "user": UserResponse.model_validate(current_user),
        "therapist_status": profile.verification_status if profile else None,
        "last_login_at": current_user.last_login_at,
    }


@router.post("/logout")
async def logout(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")
    auth_session = resolve_auth_session(db, credentials.credentials)
    MagicLinkService(db).logout(auth_session)
    return {"success": True, "message": "Logged out"}
