"""Database models"""

from authgate.models.user import User
from authgate.models.security import RefreshToken

__all__ = ["User", "RefreshToken"]
