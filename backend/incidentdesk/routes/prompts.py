from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List

from ..database import get_db
from ..auth import get_current_user
from .. import models, schemas, prompts, audit
from ..rbac import Permissions, parse_uuid, require_permission

router = APIRouter(prefix="/api/prompts", tags=["prompts"])


def _get_prompt(db: Session, prompt_id: str) -> models.AIPrompt:
    prompt = db.get(models.AIPrompt, parse_uuid(prompt_id, "prompt"))
    if not prompt:
        raise HTTPException(status_code=404, detail="Prompt not found")
    return prompt


def _check_variables(template: str) -> None:
    bad = prompts.invalid_variables(template)
    if bad:
        raise HTTPException(status_code=400, detail=f"Invalid template variable names: {', '.join(bad)}")


@router.get("", response_model=List[schemas.PromptOut])
async def list_prompts(
    subsystem: str | None = None,
    active_only: bool = True,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.CREATE_INCIDENT)
    query = db.query(models.AIPrompt)
    if active_only:
        query = query.filter(models.AIPrompt.is_active.is_(True))
    if subsystem:
        query = query.filter(models.AIPrompt.subsystem == subsystem)
    return query.order_by(models.AIPrompt.created_at.desc()).all()


@router.get("/defaults")
async def list_default_prompts(user: models.User = Depends(get_current_user)):
    return [
        {
            "prompt_name": entry["prompt_name"],
            "description": entry["description"],
            "workflow_step": entry["workflow_step"],
            "variables": prompts.template_variables(entry["prompt_template"]),
        }
        for entry in prompts.DEFAULT_PROMPTS
    ]


@router.post("/seed")
async def seed_prompts(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.SAMPLE_DATA)
    created = prompts.seed_default_prompts(db, user_id=user.id)
    audit.log_action(db, user.id, "seed_prompts", "prompt", details={"created": created}, company_id=user.company_id)
    return {"created": created, "count": len(created)}


@router.post("/clear")
async def clear_prompts(
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.SAMPLE_DATA)
    count = prompts.clear_prompts(db)
    audit.log_action(db, user.id, "clear_prompts", "prompt", details={"deactivated": count}, company_id=user.company_id)
    return {"deactivated": count}


@router.post("/preview", response_model=schemas.PromptPreviewOut)
async def preview_prompt(
    data: schemas.PromptPreviewIn,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    template = data.template
    if not template:
        prompt = prompts.get_active_prompt(db, data.prompt_name)
        if not prompt:
            raise HTTPException(status_code=404, detail=f"No active prompt named '{data.prompt_name}'")
        template = prompt.prompt_template
    rendered = prompts.render(template, data.variables)
    return schemas.PromptPreviewOut(rendered=rendered.text, substitutions=rendered.substitutions, missing=rendered.missing)


@router.post("", response_model=schemas.PromptOut)
async def create_prompt(
    data: schemas.PromptCreate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.SYSTEM_CONFIGURATION)
    _check_variables(data.prompt_template)
    if prompts.get_active_prompt(db, data.prompt_name):
        raise HTTPException(status_code=409, detail=f"An active prompt named '{data.prompt_name}' already exists")
    if data.group_id and not db.get(models.PromptGroup, data.group_id):
        raise HTTPException(status_code=404, detail="Prompt group not found")
    prompt = models.AIPrompt(**data.model_dump(), prompt_version="v1.0.0", is_active=True, created_by=user.id)
    db.add(prompt)
    db.commit()
    db.refresh(prompt)
    audit.log_action(db, user.id, "create_prompt", "prompt", prompt.id, {"name": prompt.prompt_name}, company_id=user.company_id)
    return prompt


@router.get("/{prompt_id}", response_model=schemas.PromptOut)
async def get_prompt(
    prompt_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    return _get_prompt(db, prompt_id)


@router.patch("/{prompt_id}", response_model=schemas.PromptOut)
async def update_prompt(
    prompt_id: str,
    data: schemas.PromptUpdate,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.SYSTEM_CONFIGURATION)
    prompt = _get_prompt(db, prompt_id)
    if not prompt.is_active:
        raise HTTPException(status_code=400, detail="Only active prompts can be updated")
    changes = data.model_dump(exclude_unset=True)
    if "prompt_template" in changes and changes["prompt_template"] != prompt.prompt_template:
        _check_variables(changes["prompt_template"])
        successor = prompts.create_version(db, prompt, user_id=user.id, changes=changes)
        audit.log_action(
            db, user.id, "version_prompt", "prompt", successor.id,
            {"name": successor.prompt_name, "version": successor.prompt_version},
            company_id=user.company_id,
        )
        return successor
    for field, value in changes.items():
        setattr(prompt, field, value)
    db.commit()
    db.refresh(prompt)
    return prompt


@router.delete("/{prompt_id}")
async def deactivate_prompt(
    prompt_id: str,
    db: Session = Depends(get_db),
    user: models.User = Depends(get_current_user),
):
    require_permission(db, user, Permissions.SYSTEM_CONFIGURATION)
    prompt = _get_prompt(db, prompt_id)
    prompt.is_active = False
    db.commit()
    audit.log_action(db, user.id, "deactivate_prompt", "prompt", prompt.id, {"name": prompt.prompt_name}, company_id=user.company_id)
    return {"status": "deactivated"}
