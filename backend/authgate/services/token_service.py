"""Refresh token rotation and revocation service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from authgate.core.exceptions import AuthenticationError, MalformedTokenError, TokenError
from authgate.core.metrics import REVOCATIONS, ROTATIONS, TOKENS_ISSUED
from authgate.core.security import AccessTokenCodec, RefreshTokenCodec
from authgate.services.credential_store import CredentialStore, RefreshTokenRecord, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenService:
    """
    Manage the refresh-token lifecycle.

    A refresh credential is live while its record exists in the store.
    Rotation, logout, logout-all and the sweeper all end it the same way:
    by deleting the record.
    """

    def __init__(
        self,
        access_codec: AccessTokenCodec,
        refresh_codec: RefreshTokenCodec,
        store: CredentialStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.access_codec = access_codec
        self.refresh_codec = refresh_codec
        self.store = store
        self._clock = clock

    def issue_token_pair(self, subject: str) -> TokenPair:
        """
        Mint an access/refresh pair and persist the refresh identifier.

        Raises:
            StorageError: If the record cannot be written; no tokens escape.
        """
        issued = self.refresh_codec.issue(subject)
        self.store.create(
            RefreshTokenRecord(id=issued.token_id, subject=subject, created_at=self._clock())
        )
        access_token = self.access_codec.issue(subject)
        TOKENS_ISSUED.inc()
        return TokenPair(access_token=access_token, refresh_token=issued.token)

    def verify_access_token(self, token: str) -> str:
        try:
            return self.access_codec.verify(token)
        except TokenError as exc:
            logger.debug("Access token rejected: %s", exc)
            raise AuthenticationError() from exc

    def verify_refresh_token(self, token: str) -> str:
        """Return the subject of a live refresh token. Read-only."""
        try:
            claims = self.refresh_codec.verify(token)
        except TokenError as exc:
            logger.debug("Refresh token rejected: %s", exc)
            raise AuthenticationError() from exc
        if self.store.find(claims.token_id) is None:
            raise AuthenticationError()
        return claims.subject

    def rotate_refresh_token(self, refresh_token: str) -> TokenPair:
        """
        Exchange a live refresh token for a fresh pair, consuming it.

        The old record is removed by a conditional delete before anything is
        issued, so two concurrent calls with the same token cannot both
        succeed. A failure after the delete leaves the session logged out.

        Raises:
            AuthenticationError: Invalid, expired, reused or revoked token.
            StorageError: Store unavailable.
        """
        try:
            claims = self.refresh_codec.verify(refresh_token)
        except TokenError as exc:
            ROTATIONS.labels("invalid").inc()
            logger.info("Refresh rejected: %s", exc)
            raise AuthenticationError() from exc

        if not self.store.delete(claims.token_id):
            ROTATIONS.labels("reused").inc()
            logger.warning(
                "Refresh token %s for subject %s not recognized (reused, revoked or swept)",
                claims.token_id,
                claims.subject,
            )
            raise AuthenticationError()

        pair = self.issue_token_pair(claims.subject)
        ROTATIONS.labels("rotated").inc()
        return pair

    def revoke_refresh_token(self, refresh_token: str) -> bool:
        """
        Best-effort revocation for logout.

        The token is decoded without verification; an expired cookie can
        still be cleaned up. Returns True if a record was removed.
        """
        try:
            claims = self.refresh_codec.decode_unverified(refresh_token)
        except MalformedTokenError:
            return False

        removed = self.store.delete(claims.token_id)
        if removed:
            REVOCATIONS.labels("single").inc()
            logger.info("Revoked refresh token %s", claims.token_id)
        return removed

    def revoke_all_for_subject(self, subject: str) -> int:
        """Delete every refresh record of ``subject`` (taken from a verified access token)."""
        count = self.store.delete_for_subject(subject)
        REVOCATIONS.labels("all").inc(count)
        logger.info("Revoked %d refresh tokens for subject %s", count, subject)
        return count
