"""Session-token authentication and password handling."""

import logging
import os
import re
import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from . import models
from .database import get_db

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", "24"))
SESSION_REMEMBER_DAYS = int(os.getenv("SESSION_REMEMBER_DAYS", "30"))

SPECIAL_CHARACTERS = '!@#$%^&*(),.?":{}|<>'
_COMMON_PATTERNS = re.compile(r"123456|password|qwerty|admin", re.IGNORECASE)
_REPEATED = re.compile(r"(.)\1{2,}")

bearer_scheme = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def generate_token() -> str:
    """Return 32 random bytes as a hex string."""
    return secrets.token_hex(32)


def password_problems(password: str) -> list[str]:
    errors = []
    if len(password) < 8:
        errors.append("Password must be at least 8 characters long")
    if len(password) > 128:
        errors.append("Password must not exceed 128 characters")
    if not re.search(r"[A-Z]", password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        errors.append("Password must contain at least one number")
    if not any(ch in SPECIAL_CHARACTERS for ch in password):
        errors.append(f"Password must contain at least one special character ({SPECIAL_CHARACTERS})")
    if _REPEATED.search(password):
        errors.append("Password must not contain three or more consecutive identical characters")
    if _COMMON_PATTERNS.search(password):
        errors.append("Password must not contain common patterns")
    return errors


def ensure_strong_password(password: str) -> None:
    errors = password_problems(password)
    if errors:
        raise HTTPException(status_code=400, detail="; ".join(errors))


def session_lifetime(remember_me: bool = False) -> timedelta:
    if remember_me:
        return timedelta(days=SESSION_REMEMBER_DAYS)
    return timedelta(hours=SESSION_TTL_HOURS)


def create_session(
    db: Session,
    user: models.User,
    *,
    remember_me: bool = False,
    lifetime: timedelta | None = None,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> models.UserSession:
    """Open a new session for the user and persist it."""
    expires = datetime.now(timezone.utc) + (lifetime or session_lifetime(remember_me))
    session = models.UserSession(
        user_id=user.id,
        session_token=generate_token(),
        expires_at=expires,
        remember_me=remember_me,
        user_agent=user_agent,
        ip_address=ip_address,
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    return session


def resolve_session(db: Session, token: str) -> models.UserSession | None:
    """Return the live session for a token, discarding it when expired."""
    session = (
        db.query(models.UserSession)
        .filter(models.UserSession.session_token == token)
        .first()
    )
    if not session:
        return None
    if models.as_utc(session.expires_at) <= datetime.now(timezone.utc):
        db.delete(session)
        db.commit()
        return None
    return session


def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> models.User:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail="Authentication required")
    session = resolve_session(db, credentials.credentials)
    if session is None:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    user = db.get(models.User, session.user_id)
    if user is None or not user.is_active:
        raise HTTPException(status_code=401, detail="Invalid or expired session")
    request.state.session = session
    return user
