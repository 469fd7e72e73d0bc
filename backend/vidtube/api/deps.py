"""Request dependencies: database session and the authenticated user."""
from fastapi import Depends, Request
from sqlalchemy.orm import Session

from vidtube.config import get_settings
from vidtube.database import get_db
from vidtube.errors import ErrorKind, Failure, FailureError, Result
from vidtube.models.user import User
from vidtube.services import credentials
from vidtube.services.tokens import TokenClass, verify_token

settings = get_settings()

__all__ = ["get_current_user", "get_db", "extract_access_token", "resolve_identity"]


def extract_access_token(cookie_token: str | None, authorization: str | None) -> str | None:
    """Pick the access token from the cookie, falling back to a Bearer header."""
    if cookie_token:
        return cookie_token
    if authorization:
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() == "bearer" and token.strip():
            return token.strip()
    return None


def resolve_identity(db: Session, token: str | None) -> Result[User]:
    """Verify an access token and load the user it names. Read-only."""
    if not token:
        return Failure(ErrorKind.UNAUTHORIZED, "Unauthorized request")

    user_id = verify_token(token, TokenClass.ACCESS)
    if isinstance(user_id, Failure):
        return Failure(ErrorKind.UNAUTHORIZED, "Invalid access token", reason=user_id.reason)

    user = credentials.get_by_id(db, user_id)
    if user is None:
        return Failure(ErrorKind.UNAUTHORIZED, "Invalid access token")
    return user


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    """Dependency guarding protected routes."""
    token = extract_access_token(
        request.cookies.get(settings.access_cookie_name),
        request.headers.get("authorization"),
    )
    result = resolve_identity(db, token)
    if isinstance(result, Failure):
        raise FailureError(result)
    return result
