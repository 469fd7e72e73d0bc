"""User model."""
import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Text

from vidtube.database import Base


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class User(Base):
    """User account.

    ``refresh_token`` holds the only refresh token currently accepted for this
    user. It is overwritten on every login and refresh and cleared on logout.
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    fullname = Column(String(100), nullable=False)
    password_hash = Column(String(255), nullable=False)
    refresh_token = Column(Text)
    created_at = Column(String(32), default=_utcnow)
    updated_at = Column(String(32), default=_utcnow, onupdate=_utcnow)
