from dataclasses import asdict

from fastapi import APIRouter, Depends

from ..auth import get_current_user
from .. import models, schemas
from ..rbac import PERMISSION_REGISTRY, has_permission, ALL_PERMISSIONS

router = APIRouter(prefix="/api/permissions", tags=["permissions"])


@router.get("/me", response_model=schemas.MyPermissions)
async def my_permissions(user: models.User = Depends(get_current_user)):
    granted = sorted(p for p in ALL_PERMISSIONS if has_permission(user, p))
    return schemas.MyPermissions(role=user.role, company_id=user.company_id, permissions=granted)


@router.get("/registry", response_model=list[schemas.PermissionInfoOut])
async def permission_registry(user: models.User = Depends(get_current_user)):
    return [schemas.PermissionInfoOut(**asdict(info)) for info in PERMISSION_REGISTRY]
