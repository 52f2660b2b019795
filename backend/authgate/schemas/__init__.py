"""Pydantic schemas for API validation"""

from authgate.schemas.user import (
    UserLogin,
    UserRegister,
    UserResponse,
    ProfileResponse,
    TokenResponse,
)
from authgate.schemas.response import MessageResponse, ErrorResponse, HealthResponse

__all__ = [
    "UserLogin", "UserRegister", "UserResponse", "ProfileResponse", "TokenResponse",
    "MessageResponse", "ErrorResponse", "HealthResponse",
]
