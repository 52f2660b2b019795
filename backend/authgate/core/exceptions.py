"""Custom exception classes for the application"""

from typing import Optional, Dict, Any


class ConfigurationError(RuntimeError):
    """Required configuration is missing or invalid (fatal, not per-request)"""


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Missing, malformed, expired or revoked credentials"""
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, status_code=401)


class InvalidCredentialsError(AuthenticationError):
    """Invalid email or password"""
    def __init__(self):
        super().__init__("Invalid email or password")


# Business Logic Errors
class BusinessLogicError(BaseAPIException):
    """Business logic error"""
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class DuplicateEmailError(BusinessLogicError):
    """Email already registered"""
    def __init__(self):
        super().__init__("User already exists")


# System Errors
class StorageError(BaseAPIException):
    """Persistence layer unreachable or write failed"""
    def __init__(self, message: str = "A storage error occurred. Please try again later."):
        super().__init__(message, status_code=500)


# Token codec errors. These never reach clients directly; callers translate
# them into AuthenticationError so the failing check is not revealed.
class TokenError(Exception):
    """Base class for token decoding failures"""


class InvalidSignatureError(TokenError):
    """Signature does not verify against the configured secret"""


class TokenExpiredError(TokenError):
    """Token signature is valid but the token has expired"""


class MalformedTokenError(TokenError):
    """Token cannot be decoded or lacks required claims"""
