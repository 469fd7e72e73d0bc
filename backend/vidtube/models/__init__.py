"""SQLAlchemy models package."""
from vidtube.models.user import User

__all__ = [
    "User",
]
