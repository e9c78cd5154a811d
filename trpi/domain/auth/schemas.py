"""Auth domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

MAGIC_LINK_TYPES = ("login", "signup", "booking")
AUTH_TYPES = ("individual", "therapist", "partner", "admin")
SIGNUP_AUTH_TYPES = ("individual", "therapist", "partner")


class MagicLinkRequest(BaseModel):
    email: str
    type: str = "login"
    auth_type: str = "individual"
    first_name: Optional[str] = Field(None, max_length=100)
    last_name: Optional[str] = Field(None, max_length=100)
    organization_name: Optional[str] = Field(None, max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        v = v.strip().lower()
        if "@" not in v or "." not in v.split("@")[-1] or len(v) > 255:
            raise ValueError("Invalid email address")
        return v

    @field_validator("type")
    @classmethod
    def validate_type(cls, v):
        if v not in MAGIC_LINK_TYPES:
            raise ValueError(f"type must be one of {', '.join(MAGIC_LINK_TYPES)}")
        return v

    @field_validator("auth_type")
    @classmethod
    def validate_auth_type(cls, v):
        if v not in AUTH_TYPES:
            raise ValueError(f"auth_type must be one of {', '.join(AUTH_TYPES)}")
        return v


class VerifyMagicLinkRequest(BaseModel):
    token: str = Field(..., min_length=10, max_length=200)
    auth_type: str = "individual"


class UserResponse(BaseModel):
    id: int
    email: str
    full_name: Optional[str] = None
    user_type: str
    is_verified: bool
    is_active: bool
    partner_id: Optional[int] = None
    organization_name: Optional[str] = None

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserResponse
