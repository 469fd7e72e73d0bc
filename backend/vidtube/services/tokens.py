"""Signed access/refresh token issuing and verification."""
from datetime import datetime, timedelta, timezone
from enum import Enum
import uuid

from jose import ExpiredSignatureError, JWTError, jwt

from vidtube.config import get_settings
from vidtube.errors import ErrorKind, Failure, Result
from vidtube.models.user import User

settings = get_settings()


class TokenClass(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenFault(str, Enum):
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    MALFORMED = "malformed"


def _secret_for(token_class: TokenClass) -> str:
    if token_class is TokenClass.ACCESS:
        return settings.access_token_secret
    return settings.refresh_token_secret


def _encode(claims: dict, token_class: TokenClass, expires_delta: timedelta) -> str:
    now = datetime.now(timezone.utc)
    to_encode = claims.copy()
    to_encode.update({"iat": now, "exp": now + expires_delta, "type": token_class.value})
    return jwt.encode(to_encode, _secret_for(token_class), algorithm=settings.algorithm)


def create_access_token(user: User, expires_delta: timedelta | None = None) -> str:
    """Create a short-lived JWT access token."""
    claims = {"sub": user.id, "username": user.username, "email": user.email}
    return _encode(
        claims,
        TokenClass.ACCESS,
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_refresh_token(user_id: str, expires_delta: timedelta | None = None) -> str:
    """Create a long-lived JWT refresh token.

    Each token carries a random ``jti`` so two refresh tokens issued in the
    same second for the same user still differ.
    """
    claims = {"sub": user_id, "jti": str(uuid.uuid4())}
    return _encode(
        claims,
        TokenClass.REFRESH,
        expires_delta or timedelta(days=settings.refresh_token_expire_days),
    )


def _fault(fault: TokenFault, message: str) -> Failure:
    return Failure(ErrorKind.UNAUTHORIZED, message, reason=fault.value)


def verify_token(token: str, expected_class: TokenClass) -> Result[str]:
    """Check signature, expiry and class of a token and return its user id."""
    try:
        jwt.get_unverified_claims(token)
    except JWTError:
        return _fault(TokenFault.MALFORMED, "Malformed token")

    try:
        payload = jwt.decode(
            token,
            _secret_for(expected_class),
            algorithms=[settings.algorithm],
        )
    except ExpiredSignatureError:
        return _fault(TokenFault.EXPIRED, "Token has expired")
    except JWTError:
        return _fault(TokenFault.INVALID_SIGNATURE, "Invalid token signature")

    if payload.get("type") != expected_class.value:
        return _fault(TokenFault.MALFORMED, "Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        return _fault(TokenFault.MALFORMED, "Token has no subject")

    return user_id
