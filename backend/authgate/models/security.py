"""Security-related persistence models."""

from sqlalchemy import Column, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from authgate.core.database import Base


class RefreshToken(Base):
    """One row per live refresh credential; absence means revoked."""

    __tablename__ = "refresh_tokens"

    # The token's jti.
    id = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    # Naive UTC, written by the application so the sweeper compares like with like.
    created_at = Column(DateTime, nullable=False)

    user = relationship("User", back_populates="refresh_tokens")

    __table_args__ = (
        Index("idx_refresh_tokens_user_id", "user_id"),
        Index("idx_refresh_tokens_created_at", "created_at"),
    )
