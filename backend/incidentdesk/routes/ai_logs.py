from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas
from ..rbac import Permissions, is_platform_admin, parse_uuid, require_permission

router = APIRouter(prefix="/api/ai", tags=["ai"])


def _scoped(db: Session, user: models.User):
    query = db.query(models.AIRequestLog)
    if not is_platform_admin(user):
        company_incidents = db.query(models.Incident.id).filter(models.Incident.company_id == user.company_id)
        query = query.filter(models.AIRequestLog.incident_id.in_(company_incidents))
    return query


@router.get("/logs", response_model=list[schemas.AIRequestLogOut])
async def list_ai_logs(
    operation: str | None = None,
    success: bool | None = None,
    incident_id: str | None = None,
    limit: int = 100,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.VIEW_AUDIT_LOGS)
    query = _scoped(db, user)
    if operation:
        query = query.filter(models.AIRequestLog.operation == operation)
    if success is not None:
        query = query.filter(models.AIRequestLog.success.is_(success))
    if incident_id:
        query = query.filter(models.AIRequestLog.incident_id == parse_uuid(incident_id, "incident"))
    return query.order_by(models.AIRequestLog.created_at.desc()).limit(max(1, min(limit, 1000))).all()


@router.get("/usage")
async def ai_usage(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.VIEW_AUDIT_LOGS)
    rows = (
        _scoped(db, user)
        .with_entities(
            models.AIRequestLog.operation,
            func.count(models.AIRequestLog.id),
            func.coalesce(func.sum(models.AIRequestLog.tokens_used), 0),
            func.coalesce(func.sum(models.AIRequestLog.cost_usd), 0.0),
            func.avg(models.AIRequestLog.processing_time_ms),
        )
        .group_by(models.AIRequestLog.operation)
        .all()
    )
    return [
        {
            "operation": op,
            "requests": count,
            "tokens_used": int(tokens),
            "cost_usd": float(cost),
            "average_processing_time_ms": float(avg or 0),
        }
        for op, count, tokens, cost, avg in rows
    ]
