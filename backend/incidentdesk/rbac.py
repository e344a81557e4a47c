from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from uuid import UUID

from fastapi import HTTPException
from sqlalchemy.orm import Session

from . import audit, models

# purpose: centralize role, permission and tenant isolation checks
# status: active

logger = logging.getLogger(__name__)


class Roles:
    SYSTEM_ADMIN = "system_admin"
    DEMO_ADMIN = "demo_admin"
    COMPANY_ADMIN = "company_admin"
    TEAM_LEAD = "team_lead"
    FRONTLINE_WORKER = "frontline_worker"


class Permissions:
    CREATE_INCIDENT = "create_incident"
    EDIT_OWN_INCIDENT_CAPTURE = "edit_own_incident_capture"
    VIEW_MY_INCIDENTS = "view_my_incidents"
    VIEW_ALL_COMPANY_INCIDENTS = "view_all_company_incidents"
    PERFORM_ANALYSIS = "perform_analysis"
    MANAGE_USERS = "manage_users"
    INVITE_USERS = "invite_users"
    VIEW_USER_PROFILES = "view_user_profiles"
    SYSTEM_CONFIGURATION = "system_configuration"
    COMPANY_CONFIGURATION = "company_configuration"
    MANAGE_COMPANY = "manage_company"
    MANAGE_ALL_COMPANIES = "manage_all_companies"
    VIEW_AUDIT_LOGS = "view_audit_logs"
    VIEW_SECURITY_LOGS = "view_security_logs"
    IMPERSONATE_USERS = "impersonate_users"
    SAMPLE_DATA = "sample_data"


@dataclass(frozen=True)
class PermissionInfo:
    key: str
    label: str
    description: str
    category: str


PERMISSION_REGISTRY: tuple[PermissionInfo, ...] = (
    PermissionInfo(Permissions.CREATE_INCIDENT, "Create incidents", "Report new incidents and capture narratives", "incidents"),
    PermissionInfo(Permissions.EDIT_OWN_INCIDENT_CAPTURE, "Edit own captures", "Edit incidents you reported while capture is open", "incidents"),
    PermissionInfo(Permissions.VIEW_MY_INCIDENTS, "View my incidents", "See incidents you reported", "incidents"),
    PermissionInfo(Permissions.VIEW_ALL_COMPANY_INCIDENTS, "View company incidents", "See every incident in your company", "incidents"),
    PermissionInfo(Permissions.PERFORM_ANALYSIS, "Perform analysis", "Run and edit contributing conditions analysis", "analysis"),
    PermissionInfo(Permissions.MANAGE_USERS, "Manage users", "Create, delete and change roles of users", "users"),
    PermissionInfo(Permissions.INVITE_USERS, "Invite users", "Send company invitations", "users"),
    PermissionInfo(Permissions.VIEW_USER_PROFILES, "View user profiles", "Browse user directory", "users"),
    PermissionInfo(Permissions.SYSTEM_CONFIGURATION, "System configuration", "Manage AI prompts and platform settings", "system"),
    PermissionInfo(Permissions.COMPANY_CONFIGURATION, "Company configuration", "Adjust company level settings", "company"),
    PermissionInfo(Permissions.MANAGE_COMPANY, "Manage company", "Edit your company details", "company"),
    PermissionInfo(Permissions.MANAGE_ALL_COMPANIES, "Manage all companies", "Create and suspend any company", "system"),
    PermissionInfo(Permissions.VIEW_AUDIT_LOGS, "View audit logs", "Read audit and AI request logs", "security"),
    PermissionInfo(Permissions.VIEW_SECURITY_LOGS, "View security logs", "Read platform wide security events", "security"),
    PermissionInfo(Permissions.IMPERSONATE_USERS, "Impersonate users", "Act on behalf of another user", "security"),
    PermissionInfo(Permissions.SAMPLE_DATA, "Sample data", "Seed and clear sample prompts and data", "system"),
)

ALL_PERMISSIONS: frozenset[str] = frozenset(p.key for p in PERMISSION_REGISTRY)

_ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    Roles.SYSTEM_ADMIN: ALL_PERMISSIONS,
    Roles.DEMO_ADMIN: ALL_PERMISSIONS
    - {Permissions.SYSTEM_CONFIGURATION, Permissions.VIEW_SECURITY_LOGS, Permissions.IMPERSONATE_USERS},
    Roles.COMPANY_ADMIN: frozenset(
        {
            Permissions.CREATE_INCIDENT,
            Permissions.EDIT_OWN_INCIDENT_CAPTURE,
            Permissions.VIEW_MY_INCIDENTS,
            Permissions.VIEW_ALL_COMPANY_INCIDENTS,
            Permissions.PERFORM_ANALYSIS,
            Permissions.MANAGE_USERS,
            Permissions.INVITE_USERS,
            Permissions.VIEW_USER_PROFILES,
            Permissions.COMPANY_CONFIGURATION,
            Permissions.MANAGE_COMPANY,
            Permissions.VIEW_AUDIT_LOGS,
        }
    ),
    Roles.TEAM_LEAD: frozenset(
        {
            Permissions.CREATE_INCIDENT,
            Permissions.VIEW_MY_INCIDENTS,
            Permissions.VIEW_ALL_COMPANY_INCIDENTS,
            Permissions.PERFORM_ANALYSIS,
            Permissions.VIEW_USER_PROFILES,
        }
    ),
    Roles.FRONTLINE_WORKER: frozenset(
        {
            Permissions.CREATE_INCIDENT,
            Permissions.EDIT_OWN_INCIDENT_CAPTURE,
            Permissions.VIEW_MY_INCIDENTS,
        }
    ),
}

# highest first; each role inherits everything below it
ROLE_HIERARCHY: tuple[str, ...] = (
    Roles.SYSTEM_ADMIN,
    Roles.DEMO_ADMIN,
    Roles.COMPANY_ADMIN,
    Roles.TEAM_LEAD,
    Roles.FRONTLINE_WORKER,
)

INVITABLE_ROLES = (Roles.COMPANY_ADMIN, Roles.TEAM_LEAD, Roles.FRONTLINE_WORKER)
PLATFORM_ROLES = (Roles.SYSTEM_ADMIN, Roles.DEMO_ADMIN)


def permissions_for(role: str) -> list[str]:
    """Return direct and inherited permissions for a role."""

    if role not in _ROLE_PERMISSIONS:
        return []
    granted: set[str] = set()
    for lower in ROLE_HIERARCHY[ROLE_HIERARCHY.index(role):]:
        granted |= _ROLE_PERMISSIONS[lower]
    return sorted(granted)


def _developer_emails() -> set[str]:
    raw = os.getenv("DEVELOPER_EMAILS", "")
    return {e.strip().lower() for e in raw.split(",") if e.strip()}


def has_permission(user: models.User, permission: str) -> bool:
    if permission in permissions_for(user.role):
        return True
    if permission == Permissions.SAMPLE_DATA and user.email.lower() in _developer_emails():
        return True
    return False


def is_platform_admin(user: models.User) -> bool:
    return user.role in PLATFORM_ROLES


def require_permission(db: Session, user: models.User, permission: str) -> None:
    if has_permission(user, permission):
        return
    logger.warning("permission denied: user=%s role=%s permission=%s", user.id, user.role, permission)
    audit.log_action(
        db,
        user.id,
        "unauthorized_access_attempt",
        "permission",
        details={"permission": permission, "role": user.role},
        company_id=user.company_id,
    )
    raise HTTPException(status_code=403, detail="Insufficient permissions")


def ensure_company_access(user: models.User, company_id: UUID | None) -> None:
    if is_platform_admin(user):
        return
    if company_id is None or user.company_id != company_id:
        raise HTTPException(status_code=403, detail="Access denied: different company")


def parse_uuid(value: str, label: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid {label} id")


def ensure_incident_access(
    db: Session,
    user: models.User,
    incident_id: UUID,
    *,
    write: bool = False,
) -> models.Incident:
    """Return the incident if the user may see (or edit) it, otherwise raise."""
    incident = db.query(models.Incident).filter(models.Incident.id == incident_id).first()
    if not incident:
        raise HTTPException(status_code=404, detail="Incident not found")
    if not is_platform_admin(user) and incident.company_id != user.company_id:
        raise HTTPException(status_code=403, detail="Access denied: incident belongs to different company")
    if is_platform_admin(user):
        return incident
    owns = incident.created_by == user.id
    if not has_permission(user, Permissions.VIEW_ALL_COMPANY_INCIDENTS) and not owns:
        raise HTTPException(status_code=403, detail="Access denied: you can only view your own incidents")
    if write and not owns and user.role != Roles.COMPANY_ADMIN:
        raise HTTPException(status_code=403, detail="Access denied: only the reporter can edit this incident")
    return incident
