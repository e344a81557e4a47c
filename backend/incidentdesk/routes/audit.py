from datetime import datetime
from sqlalchemy.orm import Session
from fastapi import APIRouter, Depends
from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, audit
from ..rbac import Permissions, is_platform_admin, require_permission

router = APIRouter(prefix="/api/audit", tags=["audit"])


@router.get("", response_model=list[schemas.AuditLogOut])
async def list_logs(
    action: str | None = None,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    require_permission(db, current_user, Permissions.VIEW_AUDIT_LOGS)
    query = db.query(models.AuditLog)
    if not is_platform_admin(current_user):
        query = query.filter(models.AuditLog.company_id == current_user.company_id)
    if action:
        query = query.filter(models.AuditLog.action == action)
    return query.order_by(models.AuditLog.created_at.desc()).limit(max(1, min(limit, 1000))).all()


@router.get("/report", response_model=list[schemas.AuditReportItem])
async def audit_report(
    start: datetime,
    end: datetime,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_user),
):
    require_permission(db, current_user, Permissions.VIEW_AUDIT_LOGS)
    company_id = None if is_platform_admin(current_user) else current_user.company_id
    return audit.generate_report(db, start, end, company_id)
