from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import get_current_user
from .. import models, exports, audit
from ..rbac import Roles

router = APIRouter(prefix="/api/exports", tags=["exports"])


@router.get("/database")
async def export_database(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    if user.role != Roles.SYSTEM_ADMIN:
        raise HTTPException(status_code=403, detail="Only system administrators can export the database")
    payload = exports.export_database(db, exported_by=user)
    audit.log_action(
        db, user.id, "export_database", "database",
        details={"total_records": payload["metadata"]["total_records"]},
    )
    return payload
