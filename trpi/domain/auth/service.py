"""Auth service - Magic link issuance/verification and bearer sessions"""

import logging
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import urlencode

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import APP_BASE_URL, MAGIC_LINK_TTL_MINUTES, SESSION_TOKEN_TTL_DAYS
from ...models import AuthSession, MagicLink, TherapistProfile, User
from ...security_utils import create_jwt_token, generate_secure_token, hash_token, mask_email, mask_token
from ...utils.sanitization import sanitize_string
from ...utils.time_utils import utcnow
from .schemas import SIGNUP_AUTH_TYPES, MagicLinkRequest

logger = logging.getLogger(__name__)

INVALID_LINK = "Invalid or expired magic link"


class MagicLinkService:
    """Passwordless sign-in through single-use emailed links"""

    def __init__(self, db: Session):
        self.db = db

    def build_link(self, token: str, auth_type: str) -> str:
        return f"{APP_BASE_URL.rstrip('/')}/auth/verify?{urlencode({'token': token, 'auth_type': auth_type})}"

    def create_magic_link(self, data: MagicLinkRequest, now: Optional[datetime] = None) -> tuple[MagicLink, str]:
        """Store a hashed single-use token; returns the row and the raw token for delivery"""
        now = now or utcnow()
        user = self.db.query(User).filter(User.email == data.email).first()
        link_type = data.type

        if link_type == "signup":
            if data.auth_type not in SIGNUP_AUTH_TYPES:
                raise HTTPException(status_code=400, detail="Signup is not available for this account type")
            if user:
                # Existing account: fall back to a login link
                logger.info(f"ℹ️ Signup requested for existing account {mask_email(data.email)}, issuing login link")
                link_type = "login"
        elif not user:
            raise HTTPException(status_code=404, detail="No account found with this email. Please sign up first.")

        if user and user.user_type != data.auth_type:
            raise HTTPException(
                status_code=400, detail=f"This email is registered as a {user.user_type} account"
            )

        token = generate_secure_token(32)
        metadata = {
            "first_name": sanitize_string(data.first_name),
            "last_name": sanitize_string(data.last_name),
            "organization_name": sanitize_string(data.organization_name),
        }
        link = MagicLink(
            email=data.email,
            token_hash=hash_token(token),
            type=link_type,
            auth_type=data.auth_type,
            link_metadata={k: v for k, v in metadata.items() if v},
            expires_at=now + timedelta(minutes=MAGIC_LINK_TTL_MINUTES),
        )
        self.db.add(link)
        self.db.commit()
        self.db.refresh(link)

        # Delivery is handled outside this service; only a masked token is logged
        logger.info(
            f"🔗 Magic link ({link_type}/{data.auth_type}) for {mask_email(data.email)}: "
            f"{APP_BASE_URL.rstrip('/')}/auth/verify?token={mask_token(token)}"
        )
        return link, token

    def _create_user(self, link: MagicLink) -> User:
        metadata = link.link_metadata or {}
        name = " ".join(p for p in (metadata.get("first_name"), metadata.get("last_name")) if p) or None
        user = User(
            email=link.email,
            full_name=name,
            user_type=link.auth_type,
            is_active=True,
            is_verified=True,
            organization_name=metadata.get("organization_name") if link.auth_type == "partner" else None,
        )
        self.db.add(user)
        self.db.flush()
        if link.auth_type == "therapist":
            self.db.add(TherapistProfile(user_id=user.id, verification_status="pending"))
        logger.info(f"🆕 Created {link.auth_type} account for {mask_email(link.email)}")
        return user

    def verify_magic_link(
        self,
        token: str,
        auth_type: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> dict:
        now = now or utcnow()
        link = self.db.query(MagicLink).filter(MagicLink.token_hash == hash_token(token)).first()

        if not link or link.used_at is not None or link.auth_type != auth_type:
            logger.warning(f"⚠️ Rejected magic link {mask_token(token)}")
            raise HTTPException(status_code=400, detail=INVALID_LINK)
        if link.expires_at <= now:
            logger.info(f"⌛ Expired magic link {mask_token(token)}")
            raise HTTPException(status_code=400, detail="Magic link has expired")

        # Conditional update so two concurrent verifications cannot both win
        claimed = (
            self.db.query(MagicLink)
            .filter(MagicLink.id == link.id, MagicLink.used_at.is_(None))
            .update({MagicLink.used_at: now}, synchronize_session=False)
        )
        if claimed != 1:
            self.db.rollback()
            raise HTTPException(status_code=400, detail=INVALID_LINK)

        user = self.db.query(User).filter(User.email == link.email).first()
        if not user:
            user = self._create_user(link)
        elif not user.is_verified:
            user.is_verified = True

        if not user.is_active:
            self.db.commit()
            raise HTTPException(status_code=403, detail="Account is deactivated")

        # One live session per user
        self.db.query(AuthSession).filter(
            AuthSession.user_id == user.id, AuthSession.revoked_at.is_(None)
        ).update({AuthSession.revoked_at: now}, synchronize_session=False)

        access_token = self.create_session(user, user_agent, ip_address, now)
        user.last_login_at = now
        self.db.commit()
        self.db.refresh(user)

        logger.info(f"✅ User {user.id} signed in via magic link ({link.type})")
        return {
            "success": True,
            "access_token": access_token,
            "token_type": "bearer",
            "expires_in": SESSION_TOKEN_TTL_DAYS * 24 * 3600,
            "user": user,
        }

    def create_session(
        self,
        user: User,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> str:
        """Persist an auth session and return its signed bearer token (caller commits)"""
        now = now or utcnow()
        ttl = timedelta(days=SESSION_TOKEN_TTL_DAYS)
        jti = generate_secure_token(24)
        self.db.add(
            AuthSession(
                user_id=user.id,
                jti=jti,
                expires_at=now + ttl,
                user_agent=(user_agent or "")[:500] or None,
                ip_address=ip_address,
                last_accessed_at=now,
            )
        )
        return create_jwt_token({"sub": str(user.id), "jti": jti, "user_type": user.user_type}, ttl)

    def logout(self, auth_session: AuthSession) -> None:
        auth_session.revoked_at = utcnow()
        self.db.commit()
        logger.info(f"👋 Session {auth_session.id} revoked for user {auth_session.user_id}")
