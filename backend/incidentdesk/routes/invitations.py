from fastapi import APIRouter, Depends, HTTPException, Request
import logging
import os
from datetime import datetime, timedelta, timezone
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..auth import (
    create_session,
    ensure_strong_password,
    generate_token,
    get_current_user,
    get_password_hash,
)
from .. import models, schemas, notify, audit
from ..rbac import Roles, parse_uuid
from .auth import rate_limit

logger = logging.getLogger(__name__)

INVITATION_TTL_DAYS = int(os.getenv("INVITATION_TTL_DAYS", "7"))
ACCEPT_SESSION_DAYS = 30

router = APIRouter(prefix="/api/invitations", tags=["invitations"])


def _ensure_can_invite(user: models.User, company_id) -> None:
    if user.role == Roles.SYSTEM_ADMIN:
        return
    if user.role == Roles.COMPANY_ADMIN and user.company_id == company_id:
        return
    raise HTTPException(status_code=403, detail="Only system administrators or company administrators can manage invitations")


def _is_expired(invitation: models.UserInvitation) -> bool:
    return models.as_utc(invitation.expires_at) < datetime.now(timezone.utc)


def _invitation_out(invitation: models.UserInvitation) -> schemas.InvitationOut:
    expired = invitation.status == "expired" or (invitation.status == "pending" and _is_expired(invitation))
    inviter = invitation.inviter
    return schemas.InvitationOut(
        id=invitation.id,
        email=invitation.email,
        company_id=invitation.company_id,
        role=invitation.role,
        status="expired" if expired else invitation.status,
        invited_by=invitation.invited_by,
        inviter_name=inviter.name if inviter else None,
        inviter_email=inviter.email if inviter else None,
        is_expired=expired,
        expires_at=invitation.expires_at,
        created_at=invitation.created_at,
        accepted_at=invitation.accepted_at,
    )


@router.post("", response_model=schemas.InvitationOut)
async def send_invitation(
    data: schemas.InvitationCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    _ensure_can_invite(user, data.company_id)
    company = db.get(models.Company, data.company_id)
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    if db.query(models.User).filter(models.User.email == data.email).first():
        raise HTTPException(
            status_code=409,
            detail="A user with this email already exists. Users can only belong to one company.",
        )
    pending = (
        db.query(models.UserInvitation)
        .filter(
            models.UserInvitation.email == data.email,
            models.UserInvitation.company_id == data.company_id,
            models.UserInvitation.status == "pending",
        )
        .first()
    )
    if pending and not _is_expired(pending):
        raise HTTPException(status_code=409, detail="A pending invitation already exists for this email")
    if pending:
        pending.status = "expired"

    invitation = models.UserInvitation(
        email=data.email,
        company_id=company.id,
        role=data.role,
        invited_by=user.id,
        invitation_token=generate_token(),
        status="pending",
        expires_at=datetime.now(timezone.utc) + timedelta(days=INVITATION_TTL_DAYS),
    )
    db.add(invitation)
    db.commit()
    db.refresh(invitation)

    try:
        notify.send_invitation_email(
            invitation.email,
            company_name=company.name,
            inviter_name=user.name,
            role=invitation.role,
            token=invitation.invitation_token,
            expires_at=invitation.expires_at,
        )
    except notify.EmailDeliveryError as exc:
        logger.error("invitation email to %s failed: %s", invitation.email, exc)
        db.delete(invitation)
        db.commit()
        raise HTTPException(status_code=502, detail="Failed to send invitation email")

    logger.info("invitation %s sent to %s for company %s", invitation.id, invitation.email, company.slug)
    audit.log_action(
        db, user.id, "send_invitation", "invitation", invitation.id,
        {"email": invitation.email, "role": invitation.role}, company_id=company.id,
    )
    return _invitation_out(invitation)


@router.get("", response_model=List[schemas.InvitationOut])
async def list_invitations(
    company_id: str | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    target = parse_uuid(company_id, "company") if company_id else user.company_id
    if target is None:
        raise HTTPException(status_code=400, detail="company_id is required")
    _ensure_can_invite(user, target)
    rows = (
        db.query(models.UserInvitation)
        .filter(
            models.UserInvitation.company_id == target,
            models.UserInvitation.status.in_(["pending", "expired"]),
        )
        .order_by(models.UserInvitation.created_at.desc())
        .all()
    )
    return [_invitation_out(r) for r in rows]


@router.post("/{invitation_id}/revoke", response_model=schemas.InvitationOut)
async def revoke_invitation(
    invitation_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    invitation = db.get(models.UserInvitation, parse_uuid(invitation_id, "invitation"))
    if not invitation:
        raise HTTPException(status_code=404, detail="Invitation not found")
    _ensure_can_invite(user, invitation.company_id)
    if invitation.status != "pending":
        raise HTTPException(
            status_code=400,
            detail=f"Cannot revoke invitation with status: {invitation.status}. Only pending invitations can be revoked.",
        )
    invitation.status = "revoked"
    db.commit()
    db.refresh(invitation)
    logger.info("invitation %s revoked by %s", invitation.id, user.id)
    audit.log_action(db, user.id, "revoke_invitation", "invitation", invitation.id, company_id=invitation.company_id)
    return _invitation_out(invitation)


def _by_token(db: Session, token: str) -> models.UserInvitation:
    invitation = (
        db.query(models.UserInvitation)
        .filter(models.UserInvitation.invitation_token == token)
        .first()
    )
    if not invitation:
        raise HTTPException(status_code=400, detail="Invalid invitation token")
    return invitation


@router.get("/lookup", response_model=schemas.InvitationLookup)
async def lookup_invitation(token: str, db: Session = Depends(get_db)):
    invitation = _by_token(db, token)
    expired = invitation.status == "expired" or (invitation.status == "pending" and _is_expired(invitation))
    return schemas.InvitationLookup(
        email=invitation.email,
        company_name=invitation.company.name,
        role=invitation.role,
        status="expired" if expired else invitation.status,
        expires_at=invitation.expires_at,
        is_expired=expired,
    )


@router.post("/accept", response_model=schemas.SessionOut)
@rate_limit("10/minute")
async def accept_invitation(request: Request, data: schemas.InvitationAccept, db: Session = Depends(get_db)):
    ensure_strong_password(data.password)
    invitation = _by_token(db, data.token)
    if invitation.status != "pending":
        raise HTTPException(status_code=400, detail=f"This invitation has already been {invitation.status}")
    if _is_expired(invitation):
        invitation.status = "expired"
        db.commit()
        raise HTTPException(status_code=400, detail="This invitation has expired")
    if db.query(models.User).filter(models.User.email == invitation.email).first():
        raise HTTPException(status_code=409, detail="A user with this email already exists")

    new_user = models.User(
        name=data.name.strip(),
        email=invitation.email,
        hashed_password=get_password_hash(data.password),
        role=invitation.role,
        company_id=invitation.company_id,
    )
    db.add(new_user)
    invitation.status = "accepted"
    invitation.accepted_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(new_user)
    session = create_session(db, new_user, remember_me=True, lifetime=timedelta(days=ACCEPT_SESSION_DAYS))
    audit.log_action(
        db, new_user.id, "accept_invitation", "invitation", invitation.id, company_id=invitation.company_id,
    )
    return schemas.SessionOut(
        session_token=session.session_token,
        expires_at=session.expires_at,
        user=schemas.UserOut.model_validate(new_user),
    )
