"""Session lifecycle: login, logout, refresh-token rotation and password changes.

A user has at most one valid refresh token, stored on the user row. Logging in
or refreshing overwrites it, so an older refresh token presented afterwards no
longer matches and is rejected as reused.
"""
from dataclasses import dataclass
import hmac
import logging

from jose import JWTError
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from vidtube.errors import ErrorKind, Failure, Result
from vidtube.models.user import User
from vidtube.services import credentials
from vidtube.services.passwords import get_password_hash, password_too_long, verify_password
from vidtube.services.tokens import TokenClass, create_access_token, create_refresh_token, verify_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class LoginResult:
    user: User
    tokens: TokenPair


def _is_blank(value: str | None) -> bool:
    return value is None or not value.strip()


def _issue_tokens(db: Session, user: User) -> Result[TokenPair]:
    """Issue a fresh token pair and make its refresh token the only valid one."""
    try:
        access_token = create_access_token(user)
        refresh_token = create_refresh_token(user.id)
        if not credentials.update_fields(db, user.id, refresh_token=refresh_token):
            return Failure(ErrorKind.UNAUTHORIZED, "User no longer exists")
    except (SQLAlchemyError, JWTError) as exc:
        db.rollback()
        logger.exception(f"Token issue failed for user {user.id}", exc_info=exc)
        return Failure(ErrorKind.INTERNAL, "Something went wrong while generating refresh and access token")
    return TokenPair(access_token=access_token, refresh_token=refresh_token)


def register_user(
    db: Session,
    username: str,
    email: str,
    fullname: str,
    password: str,
) -> Result[User]:
    """Create a new user with a hashed password."""
    if any(_is_blank(field) for field in (username, email, fullname, password)):
        return Failure(ErrorKind.BAD_REQUEST, "All fields are required")
    if password_too_long(password):
        return Failure(ErrorKind.BAD_REQUEST, "Password must be at most 72 bytes")

    if credentials.username_or_email_taken(db, username, email):
        return Failure(ErrorKind.CONFLICT, "Username or email already exists")

    result = credentials.create_user(
        db,
        username=username,
        email=email,
        fullname=fullname,
        password_hash=get_password_hash(password),
    )
    if not isinstance(result, Failure):
        logger.info(f"Registered user {result.id}")
    return result


def login(db: Session, login_key: str | None, password: str | None) -> Result[LoginResult]:
    """Authenticate by username or email and start a new session.

    Any session started elsewhere loses its refresh token.
    """
    if _is_blank(login_key):
        return Failure(ErrorKind.BAD_REQUEST, "Username or email is required")
    if not password:
        return Failure(ErrorKind.BAD_REQUEST, "Password is required")

    user = credentials.find_by_login_key(db, login_key)
    if user is None:
        return Failure(ErrorKind.NOT_FOUND, "User does not exist")

    if not verify_password(password, user.password_hash):
        logger.warning(f"Rejected password for user {user.id}")
        return Failure(ErrorKind.UNAUTHORIZED, "Invalid user credentials")

    tokens = _issue_tokens(db, user)
    if isinstance(tokens, Failure):
        return tokens

    db.refresh(user)
    logger.info(f"User {user.id} logged in")
    return LoginResult(user=user, tokens=tokens)


def logout(db: Session, user_id: str) -> None:
    """Forget the user's refresh token. Safe to repeat."""
    credentials.update_fields(db, user_id, refresh_token=None)
    logger.info(f"User {user_id} logged out")


def refresh_session(db: Session, presented_token: str | None) -> Result[TokenPair]:
    """Exchange the current refresh token for a new pair, rotating it."""
    if not presented_token:
        return Failure(ErrorKind.UNAUTHORIZED, "Unauthorized request")

    user_id = verify_token(presented_token, TokenClass.REFRESH)
    if isinstance(user_id, Failure):
        return Failure(ErrorKind.UNAUTHORIZED, "Invalid refresh token", reason=user_id.reason)

    user = credentials.get_by_id(db, user_id)
    if user is None:
        return Failure(ErrorKind.UNAUTHORIZED, "Invalid refresh token")

    stored = user.refresh_token
    if stored is None or not hmac.compare_digest(presented_token.encode("utf-8"), stored.encode("utf-8")):
        logger.warning(f"Refresh token reuse rejected for user {user.id}")
        return Failure(ErrorKind.UNAUTHORIZED, "Refresh token is expired or used", reason="reused")

    tokens = _issue_tokens(db, user)
    if not isinstance(tokens, Failure):
        logger.info(f"Rotated refresh token for user {user_id}")
    return tokens


def change_password(
    db: Session,
    user: User,
    old_password: str | None,
    new_password: str | None,
) -> Result[None]:
    """Replace the password hash once the old password checks out.

    Existing sessions stay valid.
    """
    if not old_password or not verify_password(old_password, user.password_hash):
        return Failure(ErrorKind.BAD_REQUEST, "Invalid old password")
    if _is_blank(new_password):
        return Failure(ErrorKind.BAD_REQUEST, "New password is required")
    if password_too_long(new_password):
        return Failure(ErrorKind.BAD_REQUEST, "Password must be at most 72 bytes")

    credentials.update_fields(db, user.id, password_hash=get_password_hash(new_password))
    logger.info(f"Password changed for user {user.id}")
    return None


def update_account(
    db: Session,
    user: User,
    fullname: str | None = None,
    email: str | None = None,
) -> Result[User]:
    """Update display name and/or email."""
    fields = {}
    if not _is_blank(fullname):
        fields["fullname"] = fullname
    if not _is_blank(email):
        fields["email"] = email
    if not fields:
        return Failure(ErrorKind.BAD_REQUEST, "Fullname or email is required")

    if "email" in fields and credentials.email_taken_by_other(db, email, user.id):
        return Failure(ErrorKind.CONFLICT, "Email already in use")

    try:
        credentials.update_fields(db, user.id, **fields)
    except IntegrityError:
        db.rollback()
        return Failure(ErrorKind.CONFLICT, "Email already in use")

    db.refresh(user)
    return user
