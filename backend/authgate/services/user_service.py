"""User service - handles registration and password authentication"""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Optional
from authgate.models.user import User
from authgate.core.security import get_password_hash, verify_password
from authgate.core.exceptions import DuplicateEmailError, InvalidCredentialsError
import logging

logger = logging.getLogger(__name__)


class UserService:
    """Service for user accounts"""

    def __init__(self, bcrypt_rounds: int = 12):
        self.bcrypt_rounds = bcrypt_rounds
        # Compared against when the email is unknown so both failure paths
        # cost one bcrypt check.
        self._dummy_hash = get_password_hash("not-a-real-password", rounds=bcrypt_rounds)

    def create_user(self, db: Session, email: str, password: str) -> User:
        """
        Create new user

        Args:
            db: Database session
            email: Normalized email
            password: Plain text password

        Returns:
            Created user

        Raises:
            DuplicateEmailError: If the email is already registered
        """
        if self.get_user_by_email(db, email):
            raise DuplicateEmailError()

        user = User(
            email=email,
            password_hash=get_password_hash(password, rounds=self.bcrypt_rounds),
        )

        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same email.
            db.rollback()
            raise DuplicateEmailError()
        db.refresh(user)

        logger.info(f"Created user: {user.id}")
        return user

    def authenticate_user(self, db: Session, email: str, password: str) -> User:
        """
        Authenticate user by email and password

        Raises:
            InvalidCredentialsError: Unknown email or wrong password
        """
        user = self.get_user_by_email(db, email)

        if not user:
            verify_password(password, self._dummy_hash)
            raise InvalidCredentialsError()

        if not verify_password(password, user.password_hash):
            logger.info(f"Failed login for user: {user.id}")
            raise InvalidCredentialsError()

        logger.info(f"User authenticated: {user.id}")
        return user

    @staticmethod
    def get_user_by_id(db: Session, user_id: str) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email"""
        return db.query(User).filter(User.email == email).first()
