from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import or_, select
from sqlalchemy.orm import Session
from typing import List

from ..database import Base, get_db
from ..auth import get_current_user, get_password_hash, ensure_strong_password
from .. import models, schemas, audit
from ..rbac import (
    Permissions,
    ROLE_HIERARCHY,
    Roles,
    ensure_company_access,
    is_platform_admin,
    parse_uuid,
    require_permission,
)

router = APIRouter(prefix="/api/users", tags=["users"])


def _check_role_assignment(actor: models.User, role: str) -> None:
    if role not in ROLE_HIERARCHY:
        raise HTTPException(status_code=400, detail=f"Invalid role: {role}")
    if actor.role == Roles.SYSTEM_ADMIN:
        return
    if role == Roles.SYSTEM_ADMIN:
        raise HTTPException(status_code=403, detail="Only system administrators can assign the system_admin role")
    if ROLE_HIERARCHY.index(role) < ROLE_HIERARCHY.index(actor.role):
        raise HTTPException(status_code=403, detail="Cannot assign a role above your own")


def _managed_user(db: Session, actor: models.User, user_id: str) -> models.User:
    target = db.get(models.User, parse_uuid(user_id, "user"))
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    if not is_platform_admin(actor) and target.company_id != actor.company_id:
        raise HTTPException(status_code=403, detail="Can only manage users in your own company")
    return target


def _has_authored_records(db: Session, user_id) -> bool:
    """True when a row outside the user's own sessions references the user without an ondelete rule."""
    for table in Base.metadata.sorted_tables:
        if table.name == models.UserSession.__tablename__:
            continue
        for fk in table.foreign_keys:
            if fk.column.table.name != models.User.__tablename__ or fk.ondelete:
                continue
            found = db.execute(select(fk.parent).where(fk.parent == user_id).limit(1)).first()
            if found is not None:
                return True
    return False


@router.get("/me", response_model=schemas.UserOut)
async def read_me(current_user: models.User = Depends(get_current_user)):
    return current_user


@router.patch("/me", response_model=schemas.UserOut)
async def update_me(
    data: schemas.UserUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)
    return current_user


@router.get("", response_model=List[schemas.UserOut])
async def list_users(
    company_id: str | None = None,
    search: str | None = None,
    role: str | None = None,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    require_permission(db, current_user, Permissions.VIEW_USER_PROFILES)
    target_company = parse_uuid(company_id, "company") if company_id else current_user.company_id
    if target_company is not None:
        ensure_company_access(current_user, target_company)
    elif not is_platform_admin(current_user):
        return []
    query = db.query(models.User)
    if target_company is not None:
        query = query.filter(models.User.company_id == target_company)
    if role:
        query = query.filter(models.User.role == role)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(or_(models.User.name.ilike(pattern), models.User.email.ilike(pattern)))
    return query.order_by(models.User.name).all()


@router.post("", response_model=schemas.UserOut)
async def create_user(
    data: schemas.UserCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    require_permission(db, current_user, Permissions.MANAGE_USERS)
    _check_role_assignment(current_user, data.role)
    company_id = data.company_id or current_user.company_id
    if not is_platform_admin(current_user) and company_id != current_user.company_id:
        raise HTTPException(status_code=403, detail="Can only create users in your own company")
    if company_id and not db.get(models.Company, company_id):
        raise HTTPException(status_code=404, detail="Company not found")
    email = data.email.lower()
    if db.query(models.User).filter(models.User.email == email).first():
        raise HTTPException(status_code=409, detail="A user with this email already exists")
    ensure_strong_password(data.password)
    user = models.User(
        name=data.name.strip(),
        email=email,
        hashed_password=get_password_hash(data.password),
        role=data.role,
        company_id=company_id,
        has_llm_access=data.has_llm_access,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    audit.log_action(db, current_user.id, "create_user", "user", user.id, {"role": user.role}, company_id=company_id)
    return user


@router.get("/{user_id}", response_model=schemas.UserOut)
async def get_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    require_permission(db, current_user, Permissions.VIEW_USER_PROFILES)
    target = db.get(models.User, parse_uuid(user_id, "user"))
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    ensure_company_access(current_user, target.company_id)
    return target


@router.patch("/{user_id}/role", response_model=schemas.UserOut)
async def update_role(
    user_id: str,
    data: schemas.UserRoleUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    require_permission(db, current_user, Permissions.MANAGE_USERS)
    target = _managed_user(db, current_user, user_id)
    _check_role_assignment(current_user, data.role)
    if target.role == Roles.SYSTEM_ADMIN and current_user.role != Roles.SYSTEM_ADMIN:
        raise HTTPException(status_code=403, detail="Cannot change the role of a system administrator")
    previous = target.role
    target.role = data.role
    db.commit()
    db.refresh(target)
    audit.log_action(
        db,
        current_user.id,
        "role_change",
        "user",
        target.id,
        {"from": previous, "to": data.role},
        company_id=target.company_id,
    )
    return target


@router.delete("/{user_id}")
async def delete_user(
    user_id: str,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    require_permission(db, current_user, Permissions.MANAGE_USERS)
    target = _managed_user(db, current_user, user_id)
    if target.id == current_user.id:
        raise HTTPException(status_code=400, detail="You cannot delete your own account")
    if target.role == Roles.SYSTEM_ADMIN and current_user.role != Roles.SYSTEM_ADMIN:
        raise HTTPException(status_code=403, detail="Cannot delete a system administrator")
    company_id = target.company_id
    if _has_authored_records(db, target.id):
        # incidents, invitations and prompts keep pointing at their author
        target.is_active = False
        db.query(models.UserSession).filter(models.UserSession.user_id == target.id).delete(
            synchronize_session=False
        )
        db.commit()
        audit.log_action(db, current_user.id, "deactivate_user", "user", target.id, company_id=company_id)
        return {"status": "deactivated"}
    db.delete(target)
    db.commit()
    audit.log_action(db, current_user.id, "delete_user", "user", user_id, company_id=company_id)
    return {"status": "deleted"}
