"""Security utilities - JWT codecs, password hashing"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict
import uuid

from jose import ExpiredSignatureError, JWTError, jwt
import bcrypt

from authgate.core.exceptions import (
    ConfigurationError,
    InvalidSignatureError,
    MalformedTokenError,
    TokenExpiredError,
)

# bcrypt only reads the first 72 bytes of its input
BCRYPT_MAX_BYTES = 72


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        bool: True if password matches
    """
    password_bytes = plain_password.encode('utf-8')
    if len(password_bytes) > BCRYPT_MAX_BYTES:
        return False
    return bcrypt.checkpw(
        password_bytes,
        hashed_password.encode('utf-8')
    )


def get_password_hash(password: str, rounds: int = 12) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password
        rounds: bcrypt work factor

    Returns:
        str: Hashed password

    Raises:
        ValueError: If the password is longer than 72 bytes
    """
    password_bytes = password.encode('utf-8')
    if len(password_bytes) > BCRYPT_MAX_BYTES:
        raise ValueError(f"Password cannot be longer than {BCRYPT_MAX_BYTES} bytes")
    return bcrypt.hashpw(
        password_bytes,
        bcrypt.gensalt(rounds=rounds)
    ).decode('utf-8')


def _aware_utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RefreshClaims:
    """Claims recovered from a refresh token"""
    subject: str
    token_id: str


@dataclass(frozen=True)
class IssuedRefreshToken:
    """A signed refresh token and the identifier the caller must persist"""
    token: str
    token_id: str


class _JWTCodec:
    """Shared HMAC-JWT signing for one token type and one secret."""

    token_type = ""

    def __init__(
        self,
        secret: str,
        lifetime: timedelta,
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = _aware_utcnow,
    ) -> None:
        if not secret:
            raise ConfigurationError(f"Secret for {self.token_type} tokens is not defined")
        self._secret = secret
        self._algorithm = algorithm
        self._clock = clock
        self.lifetime = lifetime

    def _encode(self, subject: str, **extra: Any) -> str:
        now = self._clock()
        claims: Dict[str, Any] = {
            "sub": subject,
            "iat": now,
            "exp": now + self.lifetime,
            "typ": self.token_type,
        }
        claims.update(extra)
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def _decode(self, token: str) -> Dict[str, Any]:
        # Structure first, so garbage input is reported as malformed rather
        # than as a signature failure.
        self._unverified(token)
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except ExpiredSignatureError as exc:
            raise TokenExpiredError(str(exc)) from exc
        except JWTError as exc:
            raise InvalidSignatureError(str(exc)) from exc
        return self._check_claims(payload)

    def _unverified(self, token: str) -> Dict[str, Any]:
        if not token or not isinstance(token, str):
            raise MalformedTokenError("Empty token")
        try:
            payload = jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise MalformedTokenError(str(exc)) from exc
        return self._check_claims(payload)

    def _check_claims(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        if payload.get("typ") != self.token_type:
            raise MalformedTokenError(f"Token is not a {self.token_type} token")
        if not isinstance(payload.get("sub"), str) or not payload["sub"]:
            raise MalformedTokenError("Token has no subject")
        return payload


class AccessTokenCodec(_JWTCodec):
    """Stateless signer/verifier for short-lived bearer tokens."""

    token_type = "access"

    def issue(self, subject: str) -> str:
        return self._encode(subject)

    def verify(self, token: str) -> str:
        """
        Verify an access token.

        Returns:
            str: The subject the token was issued for

        Raises:
            InvalidSignatureError, TokenExpiredError, MalformedTokenError
        """
        return self._decode(token)["sub"]


class RefreshTokenCodec(_JWTCodec):
    """
    Signer/verifier for refresh tokens.

    Every token carries a fresh ``jti``. The codec never touches storage:
    persisting the identifier is the caller's job.
    """

    token_type = "refresh"

    def issue(self, subject: str) -> IssuedRefreshToken:
        token_id = str(uuid.uuid4())
        token = self._encode(subject, jti=token_id)
        return IssuedRefreshToken(token=token, token_id=token_id)

    def verify(self, token: str) -> RefreshClaims:
        """Check signature and expiry only; storage is not consulted."""
        return self._to_claims(self._decode(token))

    def decode_unverified(self, token: str) -> RefreshClaims:
        """
        Extract claims WITHOUT checking signature or expiry.

        Only for best-effort cleanup (e.g. logout with an expired cookie).
        Nothing returned here may be trusted.
        """
        return self._to_claims(self._unverified(token))

    @staticmethod
    def _to_claims(payload: Dict[str, Any]) -> RefreshClaims:
        token_id = payload.get("jti")
        if not isinstance(token_id, str) or not token_id:
            raise MalformedTokenError("Refresh token has no identifier")
        return RefreshClaims(subject=payload["sub"], token_id=token_id)
