"""Authentication routes"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from authgate.api.deps import (
    AuthContext,
    get_auth_context,
    get_settings,
    get_token_service,
    get_user_service,
)
from authgate.config import Settings
from authgate.core.database import get_db
from authgate.core.exceptions import AuthenticationError, StorageError
from authgate.schemas.response import ErrorResponse, MessageResponse
from authgate.schemas.user import TokenResponse, UserLogin, UserRegister
from authgate.services.token_service import TokenPair, TokenService
from authgate.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter()


def _set_refresh_cookie(response: Response, settings: Settings, refresh_token: str) -> None:
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=refresh_token,
        max_age=int(settings.REFRESH_TOKEN_LIFETIME.total_seconds()),
        path=settings.refresh_cookie_path,
        httponly=True,
        secure=settings.refresh_cookie_secure,
        samesite="strict",
    )


def _clear_refresh_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        path=settings.refresh_cookie_path,
        httponly=True,
        secure=settings.refresh_cookie_secure,
        samesite="strict",
    )


def _token_response(response: Response, settings: Settings, pair: TokenPair) -> TokenResponse:
    _set_refresh_cookie(response, settings, pair.refresh_token)
    return TokenResponse(
        token=pair.access_token,
        expires_in=int(settings.ACCESS_TOKEN_LIFETIME.total_seconds()),
    )


def _refresh_cookie(request: Request, settings: Settings) -> Optional[str]:
    return request.cookies.get(settings.REFRESH_COOKIE_NAME) or None


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: UserRegister,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user_service: UserService = Depends(get_user_service),
    token_service: TokenService = Depends(get_token_service),
):
    """
    Register endpoint - create an account and start a session

    Returns:
        Access token; refresh token is set as an HTTP-only cookie
    """
    user = user_service.create_user(db, body.email, body.password)
    pair = token_service.issue_token_pair(user.id)
    return _token_response(response, settings, pair)


@router.post("/login", response_model=TokenResponse, status_code=status.HTTP_200_OK)
def login(
    credentials: UserLogin,
    response: Response,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    user_service: UserService = Depends(get_user_service),
    token_service: TokenService = Depends(get_token_service),
):
    """
    Login endpoint - authenticate user and start a new session

    Every login adds an independent refresh credential, so several devices
    can stay signed in at once.
    """
    user = user_service.authenticate_user(db, credentials.email, credentials.password)
    pair = token_service.issue_token_pair(user.id)
    return _token_response(response, settings, pair)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    responses={401: {"model": ErrorResponse}},
)
def refresh_token(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
    token_service: TokenService = Depends(get_token_service),
):
    """
    Rotate the refresh cookie

    The presented refresh token is consumed; a second use fails and the
    stale cookie is cleared.
    """
    presented = _refresh_cookie(request, settings)
    try:
        if not presented:
            raise AuthenticationError()
        pair = token_service.rotate_refresh_token(presented)
    except AuthenticationError as exc:
        failure = JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.message, path=request.url.path).model_dump(),
        )
        _clear_refresh_cookie(failure, settings)
        return failure

    return _token_response(response, settings, pair)


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
    token_service: TokenService = Depends(get_token_service),
):
    """
    Logout endpoint - revoke this device's refresh token

    Always succeeds; an absent, expired or unknown cookie is simply cleared.
    """
    presented = _refresh_cookie(request, settings)
    if presented:
        try:
            token_service.revoke_refresh_token(presented)
        except StorageError:
            logger.exception("Refresh token revocation failed during logout")

    _clear_refresh_cookie(response, settings)
    return MessageResponse(message="Logged out successfully")


@router.post(
    "/logout-all",
    response_model=MessageResponse,
    responses={401: {"model": ErrorResponse}},
)
def logout_all(
    response: Response,
    auth: AuthContext = Depends(get_auth_context),
    settings: Settings = Depends(get_settings),
    token_service: TokenService = Depends(get_token_service),
):
    """
    Logout from all devices

    The subject comes from the verified access token; no live refresh token
    is needed.
    """
    token_service.revoke_all_for_subject(auth.subject)
    _clear_refresh_cookie(response, settings)
    return MessageResponse(message="Logged out from all devices successfully")
