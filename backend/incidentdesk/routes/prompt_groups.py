from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import func
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas
from ..rbac import Permissions, parse_uuid, require_permission

router = APIRouter(prefix="/api/prompt-groups", tags=["prompt-groups"])


def _get_group(db: Session, group_id: str) -> models.PromptGroup:
    group = db.get(models.PromptGroup, parse_uuid(group_id, "group"))
    if not group:
        raise HTTPException(status_code=404, detail="Prompt group not found")
    return group


def _active_prompt_count(db: Session, group_id) -> int:
    return (
        db.query(models.AIPrompt)
        .filter(models.AIPrompt.group_id == group_id, models.AIPrompt.is_active.is_(True))
        .count()
    )


def _group_out(db: Session, group: models.PromptGroup) -> schemas.PromptGroupOut:
    out = schemas.PromptGroupOut.model_validate(group)
    out.prompt_count = _active_prompt_count(db, group.id)
    return out


@router.get("", response_model=List[schemas.PromptGroupOut])
async def list_groups(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    groups = db.query(models.PromptGroup).order_by(models.PromptGroup.display_order).all()
    return [_group_out(db, g) for g in groups]


@router.post("", response_model=schemas.PromptGroupOut)
async def create_group(
    data: schemas.PromptGroupCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.SYSTEM_CONFIGURATION)
    order = data.display_order
    if order is None:
        highest = db.query(func.max(models.PromptGroup.display_order)).scalar()
        order = (highest or 0) + 1
    group = models.PromptGroup(
        group_name=data.group_name.strip(),
        description=data.description,
        display_order=order,
        is_collapsible=data.is_collapsible,
        default_collapsed=data.default_collapsed,
        created_by=user.id,
    )
    db.add(group)
    db.commit()
    db.refresh(group)
    return _group_out(db, group)


@router.post("/reorder")
async def reorder_prompts(
    data: schemas.PromptReorder,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.SYSTEM_CONFIGURATION)
    if len(data.prompt_ids) != len(data.new_orders):
        raise HTTPException(status_code=400, detail="prompt_ids and new_orders must have the same length")
    for prompt_id, order in zip(data.prompt_ids, data.new_orders):
        prompt = db.get(models.AIPrompt, prompt_id)
        if not prompt:
            raise HTTPException(status_code=404, detail=f"Prompt {prompt_id} not found")
        prompt.display_order = order
    db.commit()
    return {"updated": len(data.prompt_ids)}


@router.post("/move", response_model=schemas.PromptOut)
async def move_prompt(
    data: schemas.PromptMove,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.SYSTEM_CONFIGURATION)
    prompt = db.get(models.AIPrompt, data.prompt_id)
    if not prompt:
        raise HTTPException(status_code=404, detail="Prompt not found")
    if data.group_id is not None and not db.get(models.PromptGroup, data.group_id):
        raise HTTPException(status_code=404, detail="Prompt group not found")
    prompt.group_id = data.group_id
    if data.display_order is not None:
        prompt.display_order = data.display_order
    db.commit()
    db.refresh(prompt)
    return prompt


@router.get("/{group_id}", response_model=schemas.PromptGroupOut)
async def get_group(
    group_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return _group_out(db, _get_group(db, group_id))


@router.patch("/{group_id}", response_model=schemas.PromptGroupOut)
async def update_group(
    group_id: str,
    data: schemas.PromptGroupUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.SYSTEM_CONFIGURATION)
    group = _get_group(db, group_id)
    for field, value in data.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(group, field, value)
    db.commit()
    db.refresh(group)
    return _group_out(db, group)


@router.delete("/{group_id}")
async def delete_group(
    group_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.SYSTEM_CONFIGURATION)
    group = _get_group(db, group_id)
    active = _active_prompt_count(db, group.id)
    if active:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot delete group: {active} active prompts are assigned to this group. "
            "Move or deactivate them first.",
        )
    # detach inactive history rows
    db.query(models.AIPrompt).filter(models.AIPrompt.group_id == group.id).update(
        {models.AIPrompt.group_id: None}, synchronize_session=False
    )
    db.delete(group)
    db.commit()
    return {"status": "deleted"}
