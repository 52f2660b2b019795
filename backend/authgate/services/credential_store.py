"""Refresh credential persistence.

Every mutation is a single atomic operation. ``delete`` reports whether a
record was actually removed, which is what makes refresh rotation one-shot
under concurrency.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from authgate.core.exceptions import StorageError
from authgate.models.security import RefreshToken

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, the format stored in ``refresh_tokens``."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class RefreshTokenRecord:
    id: str
    subject: str
    created_at: datetime


class CredentialStore(ABC):
    """Key-value persistence for refresh credential records."""

    @abstractmethod
    def create(self, record: RefreshTokenRecord) -> None:
        """Persist a record; duplicate ids raise StorageError."""

    @abstractmethod
    def find(self, token_id: str) -> Optional[RefreshTokenRecord]:
        """Return the record or None. Never mutates."""

    @abstractmethod
    def delete(self, token_id: str) -> bool:
        """Remove one record; True only if this call removed it."""

    @abstractmethod
    def delete_for_subject(self, subject: str) -> int:
        """Remove every record owned by subject; returns the count."""

    @abstractmethod
    def delete_created_before(self, cutoff: datetime) -> int:
        """Remove records with created_at < cutoff; returns the count."""

    def ping(self) -> bool:
        return True


class SqlCredentialStore(CredentialStore):
    """SQLAlchemy-backed store; each call runs in its own short transaction."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Credential store %s failed: %s", operation, exc)
            raise StorageError() from exc
        finally:
            db.close()

    def create(self, record: RefreshTokenRecord) -> None:
        with self._session("create") as db:
            db.add(
                RefreshToken(
                    id=record.id,
                    user_id=record.subject,
                    created_at=record.created_at,
                )
            )

    def find(self, token_id: str) -> Optional[RefreshTokenRecord]:
        with self._session("find") as db:
            row = db.query(RefreshToken).filter(RefreshToken.id == token_id).first()
            if row is None:
                return None
            return RefreshTokenRecord(id=row.id, subject=row.user_id, created_at=row.created_at)

    def delete(self, token_id: str) -> bool:
        # Conditional single-statement delete: of two concurrent callers only
        # one sees rowcount == 1.
        with self._session("delete") as db:
            deleted = (
                db.query(RefreshToken)
                .filter(RefreshToken.id == token_id)
                .delete(synchronize_session=False)
            )
        return deleted == 1

    def delete_for_subject(self, subject: str) -> int:
        with self._session("delete_for_subject") as db:
            return (
                db.query(RefreshToken)
                .filter(RefreshToken.user_id == subject)
                .delete(synchronize_session=False)
            )

    def delete_created_before(self, cutoff: datetime) -> int:
        with self._session("delete_created_before") as db:
            return (
                db.query(RefreshToken)
                .filter(RefreshToken.created_at < cutoff)
                .delete(synchronize_session=False)
            )

    def ping(self) -> bool:
        with self._session("ping") as db:
            db.query(RefreshToken.id).limit(1).all()
        return True


class InMemoryCredentialStore(CredentialStore):
    """Lock-guarded dict store for single-process deployments and tests."""

    def __init__(self, lock_timeout: float = 5.0) -> None:
        self._lock = threading.Lock()
        self._lock_timeout = lock_timeout
        self._records: Dict[str, RefreshTokenRecord] = {}

    @contextmanager
    def _locked(self) -> Iterator[None]:
        if not self._lock.acquire(timeout=self._lock_timeout):
            raise StorageError()
        try:
            yield
        finally:
            self._lock.release()

    def create(self, record: RefreshTokenRecord) -> None:
        with self._locked():
            if record.id in self._records:
                logger.error("Duplicate refresh token id %s", record.id)
                raise StorageError()
            self._records[record.id] = record

    def find(self, token_id: str) -> Optional[RefreshTokenRecord]:
        with self._locked():
            return self._records.get(token_id)

    def delete(self, token_id: str) -> bool:
        with self._locked():
            return self._records.pop(token_id, None) is not None

    def delete_for_subject(self, subject: str) -> int:
        with self._locked():
            doomed = [key for key, rec in self._records.items() if rec.subject == subject]
            for key in doomed:
                del self._records[key]
            return len(doomed)

    def delete_created_before(self, cutoff: datetime) -> int:
        with self._locked():
            doomed = [key for key, rec in self._records.items() if rec.created_at < cutoff]
            for key in doomed:
                del self._records[key]
            return len(doomed)

    def __len__(self) -> int:
        with self._locked():
            return len(self._records)
