"""Credential store: single-row lookups and updates on the users table."""
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from vidtube.errors import ErrorKind, Failure, Result
from vidtube.models.user import User


def find_by_login_key(db: Session, login_key: str) -> User | None:
    """Find a user whose username or email is exactly ``login_key``."""
    return db.query(User).filter(
        or_(User.username == login_key, User.email == login_key)
    ).first()


def get_by_id(db: Session, user_id: str) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def username_or_email_taken(db: Session, username: str, email: str) -> bool:
    return db.query(User.id).filter(
        or_(User.username == username, User.email == email)
    ).first() is not None


def email_taken_by_other(db: Session, email: str, user_id: str) -> bool:
    return db.query(User.id).filter(User.email == email, User.id != user_id).first() is not None


def create_user(
    db: Session,
    username: str,
    email: str,
    fullname: str,
    password_hash: str,
) -> Result[User]:
    user = User(
        username=username,
        email=email,
        fullname=fullname,
        password_hash=password_hash,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Lost a race with a concurrent registration
        db.rollback()
        return Failure(ErrorKind.CONFLICT, "Username or email already exists")
    db.refresh(user)
    return user


def update_fields(db: Session, user_id: str, **fields) -> bool:
    """Atomically update columns on one user row and commit.

    Returns False if no such user exists.
    """
    updated = db.query(User).filter(User.id == user_id).update(
        fields,
        synchronize_session="fetch",
    )
    db.commit()
    return updated > 0
