from fastapi import APIRouter, Depends, HTTPException, Request
import logging
import os
from sqlalchemy.orm import Session
from datetime import datetime, timedelta, timezone
from ..database import get_db
from .. import models, schemas, notify, audit
from ..auth import (
    create_session,
    ensure_strong_password,
    generate_token,
    get_current_user,
    get_password_hash,
    session_lifetime,
    verify_password,
)
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)
testing = os.getenv("TESTING") == "1"

def rate_limit(limit: str):
    if testing:
        def wrapper(func):
            return func
        return wrapper
    return limiter.limit(limit)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=schemas.SessionOut)
@rate_limit("10/minute")
async def login(request: Request, data: schemas.LoginRequest, db: Session = Depends(get_db)):
    db_user = db.query(models.User).filter(models.User.email == data.email.lower()).first()
    if not db_user or not verify_password(data.password, db_user.hashed_password):
        logger.info("failed login for %s", data.email)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not db_user.is_active:
        raise HTTPException(status_code=401, detail="Account is disabled")
    session = create_session(
        db,
        db_user,
        remember_me=data.remember_me,
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )
    db_user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    audit.log_action(db, db_user.id, "login", "user", db_user.id, company_id=db_user.company_id)
    return schemas.SessionOut(
        session_token=session.session_token,
        expires_at=session.expires_at,
        user=schemas.UserOut.model_validate(db_user),
    )


@router.post("/logout")
async def logout(
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    session = request.state.session
    db.delete(session)
    db.commit()
    audit.log_action(db, current_user.id, "logout", "user", current_user.id, company_id=current_user.company_id)
    return {"status": "logged out"}


@router.get("/session", response_model=schemas.SessionInfo)
async def current_session(
    request: Request,
    current_user: models.User = Depends(get_current_user),
):
    session = request.state.session
    return schemas.SessionInfo(
        user=schemas.UserOut.model_validate(current_user),
        expires_at=models.as_utc(session.expires_at),
        remember_me=session.remember_me,
    )


@router.post("/refresh", response_model=schemas.SessionInfo)
async def refresh_session(
    request: Request,
    data: schemas.RefreshRequest | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    session = request.state.session
    lifetime = session_lifetime(session.remember_me)
    now = datetime.now(timezone.utc)
    remaining = models.as_utc(session.expires_at) - now
    if (data and data.extend) or remaining < session_lifetime(False) / 4:
        session.expires_at = now + lifetime
        db.commit()
        db.refresh(session)
    return schemas.SessionInfo(
        user=schemas.UserOut.model_validate(current_user),
        expires_at=models.as_utc(session.expires_at),
        remember_me=session.remember_me,
    )


@router.post("/change-password")
async def change_password(
    data: schemas.PasswordChange,
    request: Request,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    if not verify_password(data.current_password, current_user.hashed_password):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    ensure_strong_password(data.new_password)
    current_user.hashed_password = get_password_hash(data.new_password)
    # sign out every other device
    db.query(models.UserSession).filter(
        models.UserSession.user_id == current_user.id,
        models.UserSession.id != request.state.session.id,
    ).delete(synchronize_session=False)
    db.commit()
    audit.log_action(db, current_user.id, "change_password", "user", current_user.id, company_id=current_user.company_id)
    return {"status": "password updated"}


@router.post("/request-password-reset")
@rate_limit("5/minute")
async def request_password_reset(request: Request, data: schemas.PasswordResetRequest, db: Session = Depends(get_db)):
    user = db.query(models.User).filter(models.User.email == data.email.lower()).first()
    if user:
        token = generate_token()
        expires = datetime.now(timezone.utc) + timedelta(hours=1)
        db_token = models.PasswordResetToken(user_id=user.id, token=token, expires_at=expires)
        db.add(db_token)
        db.commit()
        try:
            notify.send_password_reset_email(user.email, token)
        except notify.EmailDeliveryError as exc:
            # same response as an unknown email
            logger.error("password reset email to %s failed: %s", user.email, exc)
            db.delete(db_token)
            db.commit()
    return {"status": "sent"}


@router.post("/reset-password")
async def reset_password(data: schemas.PasswordResetConfirm, db: Session = Depends(get_db)):
    record = (
        db.query(models.PasswordResetToken)
        .filter(models.PasswordResetToken.token == data.token, models.PasswordResetToken.used.is_(False))
        .first()
    )
    if not record or models.as_utc(record.expires_at) < datetime.now(timezone.utc):
        raise HTTPException(status_code=400, detail="Invalid or expired token")
    ensure_strong_password(data.new_password)
    user = db.get(models.User, record.user_id)
    user.hashed_password = get_password_hash(data.new_password)
    record.used = True
    db.query(models.UserSession).filter(models.UserSession.user_id == user.id).delete(synchronize_session=False)
    db.commit()
    audit.log_action(db, user.id, "reset_password", "user", user.id, company_id=user.company_id)
    return {"status": "password updated"}
