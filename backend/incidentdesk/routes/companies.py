from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, audit
from ..rbac import Permissions, ensure_company_access, is_platform_admin, parse_uuid, require_permission

router = APIRouter(prefix="/api/companies", tags=["companies"])


def _get_company(db: Session, company_id: str) -> models.Company:
    company = db.get(models.Company, parse_uuid(company_id, "company"))
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    return company


def _ensure_slug_free(db: Session, slug: str, exclude=None) -> None:
    query = db.query(models.Company).filter(models.Company.slug == slug)
    if exclude is not None:
        query = query.filter(models.Company.id != exclude)
    if query.first():
        raise HTTPException(status_code=409, detail=f"Company with slug '{slug}' already exists")


@router.post("", response_model=schemas.CompanyOut)
async def create_company(
    data: schemas.CompanyCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.MANAGE_ALL_COMPANIES)
    _ensure_slug_free(db, data.slug)
    company = models.Company(
        name=data.name.strip(),
        slug=data.slug,
        contact_email=data.contact_email.lower(),
        status=data.status,
        created_by=user.id,
    )
    db.add(company)
    db.commit()
    db.refresh(company)
    audit.log_action(db, user.id, "create_company", "company", company.id, {"slug": company.slug}, company_id=company.id)
    return company


@router.get("", response_model=List[schemas.CompanyOut])
async def list_companies(
    status: str | None = None,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    if not is_platform_admin(user):
        if not user.company_id:
            return []
        return db.query(models.Company).filter(models.Company.id == user.company_id).all()
    query = db.query(models.Company)
    if status:
        query = query.filter(models.Company.status == status)
    return query.order_by(models.Company.name).all()


@router.get("/by-slug/{slug}", response_model=schemas.CompanyOut)
async def get_company_by_slug(
    slug: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    company = db.query(models.Company).filter(models.Company.slug == slug).first()
    if not company:
        raise HTTPException(status_code=404, detail="Company not found")
    ensure_company_access(user, company.id)
    return company


@router.get("/{company_id}", response_model=schemas.CompanyOut)
async def get_company(
    company_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    company = _get_company(db, company_id)
    ensure_company_access(user, company.id)
    return company


@router.patch("/{company_id}", response_model=schemas.CompanyOut)
async def update_company(
    company_id: str,
    data: schemas.CompanyUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.MANAGE_COMPANY)
    company = _get_company(db, company_id)
    ensure_company_access(user, company.id)
    changes = data.model_dump(exclude_unset=True, exclude_none=True)
    if "slug" in changes and changes["slug"] != company.slug:
        _ensure_slug_free(db, changes["slug"], exclude=company.id)
    if "contact_email" in changes:
        changes["contact_email"] = changes["contact_email"].lower()
    for field, value in changes.items():
        setattr(company, field, value)
    db.commit()
    db.refresh(company)
    audit.log_action(db, user.id, "update_company", "company", company.id, changes, company_id=company.id)
    return company


@router.patch("/{company_id}/status", response_model=schemas.CompanyOut)
async def update_company_status(
    company_id: str,
    data: schemas.CompanyStatusUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.MANAGE_ALL_COMPANIES)
    company = _get_company(db, company_id)
    previous = company.status
    company.status = data.status
    db.commit()
    db.refresh(company)
    audit.log_action(
        db, user.id, "company_status_change", "company", company.id,
        {"from": previous, "to": data.status}, company_id=company.id,
    )
    return company


@router.get("/{company_id}/stats", response_model=schemas.CompanyStats)
async def company_stats(
    company_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    company = _get_company(db, company_id)
    ensure_company_access(user, company.id)
    incidents = db.query(models.Incident).filter(models.Incident.company_id == company.id)
    return schemas.CompanyStats(
        user_count=db.query(models.User).filter(models.User.company_id == company.id).count(),
        incident_count=incidents.count(),
        active_incidents=incidents.filter(models.Incident.overall_status != "completed").count(),
        participant_count=db.query(models.Participant).filter(models.Participant.company_id == company.id).count(),
    )
