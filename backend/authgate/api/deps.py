"""API dependencies - service wiring and bearer authentication"""

from dataclasses import dataclass
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional

from authgate.config import Settings
from authgate.core.database import get_db
from authgate.core.exceptions import AuthenticationError
from authgate.models.user import User
from authgate.services.token_service import TokenService
from authgate.services.user_service import UserService

# HTTP Bearer token scheme; a missing header must be a 401, not FastAPI's default
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Identity proven by a verified access token"""
    subject: str


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_service(request: Request) -> TokenService:
    return request.app.state.token_service


def get_user_service(request: Request) -> UserService:
    return request.app.state.user_service


def get_auth_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    token_service: TokenService = Depends(get_token_service),
) -> AuthContext:
    """
    Verify the bearer access token

    Returns:
        AuthContext for the token's subject

    Raises:
        AuthenticationError: If the header is missing or the token is invalid
    """
    if not credentials or not credentials.credentials:
        raise AuthenticationError()

    subject = token_service.verify_access_token(credentials.credentials)
    return AuthContext(subject=subject)


def get_current_user(
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
    user_service: UserService = Depends(get_user_service),
) -> User:
    """Load the account behind the access token"""
    user = user_service.get_user_by_id(db, auth.subject)
    if not user:
        raise AuthenticationError()
    return user
