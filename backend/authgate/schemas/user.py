"""User and token schemas"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from datetime import datetime

from authgate.core.security import BCRYPT_MAX_BYTES

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class UserCredentials(BaseModel):
    """Email/password body shared by register and login"""
    email: str = Field(..., max_length=255, pattern=_EMAIL_PATTERN)
    password: str = Field(..., min_length=1, max_length=72)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v):
        """Emails are matched case-insensitively"""
        return v.strip().lower()


class UserLogin(UserCredentials):
    """User login schema"""


class UserRegister(UserCredentials):
    """User registration schema"""
    password: str = Field(..., min_length=8, max_length=72)

    @field_validator("password")
    @classmethod
    def check_password_bytes(cls, v):
        """bcrypt limits the encoded password, not the character count"""
        if len(v.encode("utf-8")) > BCRYPT_MAX_BYTES:
            raise ValueError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")
        return v


class UserResponse(BaseModel):
    """User response schema"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    created_at: Optional[datetime] = None


class ProfileResponse(BaseModel):
    """Protected profile response"""
    message: str = "This is a protected profile route"
    user: UserResponse


class TokenResponse(BaseModel):
    """Access token response; the refresh token travels in a cookie"""
    token: str
    token_type: str = "bearer"
    expires_in: int
