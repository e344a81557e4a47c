"""CLI utilities for bootstrapping an incidentdesk deployment."""

# purpose: give operators a way to create tables, seed tenants and prompts, and mint the first admin
# status: active
# depends_on: incidentdesk.database, incidentdesk.models, incidentdesk.prompts

from __future__ import annotations

import json

import typer
from sqlalchemy.orm import Session

from .. import models, prompts
from ..auth import get_password_hash, password_problems
from ..database import Base, SessionLocal, engine
from ..rbac import ROLE_HIERARCHY

app = typer.Typer(help="Deployment bootstrap commands")

SEED_COMPANIES = (
    {"name": "Support Signal", "slug": "support-signal", "contact_email": "admin@supportsignal.com.au", "status": "active"},
    {"name": "NDIS Test Company", "slug": "ndis-test", "contact_email": "admin@ndistest.com.au", "status": "trial"},
)


def seed_companies(session: Session) -> list[str]:
    """Insert the bundled companies that do not exist yet."""

    created = []
    for entry in SEED_COMPANIES:
        if session.query(models.Company).filter(models.Company.slug == entry["slug"]).first():
            continue
        session.add(models.Company(**entry))
        created.append(entry["slug"])
    session.commit()
    return created


def create_admin(
    session: Session,
    *,
    email: str,
    name: str,
    password: str,
    role: str = "system_admin",
    company_slug: str | None = None,
) -> models.User:
    problems = password_problems(password)
    if problems:
        raise typer.BadParameter("; ".join(problems))
    if role not in ROLE_HIERARCHY:
        raise typer.BadParameter(f"unknown role {role}")
    email = email.lower()
    if session.query(models.User).filter(models.User.email == email).first():
        raise typer.BadParameter(f"user {email} already exists")
    company_id = None
    if company_slug:
        company = session.query(models.Company).filter(models.Company.slug == company_slug).first()
        if not company:
            raise typer.BadParameter(f"company {company_slug} not found")
        company_id = company.id
    user = models.User(
        name=name,
        email=email,
        hashed_password=get_password_hash(password),
        role=role,
        company_id=company_id,
        has_llm_access=True,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


@app.command("init-db")
def init_db_command():
    """Create every table directly from the ORM metadata (development only)."""

    Base.metadata.create_all(bind=engine)
    typer.echo(json.dumps({"tables": sorted(Base.metadata.tables)}))


@app.command("seed-companies")
def seed_companies_command():
    with SessionLocal() as session:
        created = seed_companies(session)
    typer.echo(json.dumps({"created": created}))


@app.command("seed-prompts")
def seed_prompts_command():
    with SessionLocal() as session:
        created = prompts.seed_default_prompts(session)
    typer.echo(json.dumps({"created": created}))


@app.command("create-admin")
def create_admin_command(
    email: str = typer.Option(..., help="Login email"),
    name: str = typer.Option(..., help="Display name"),
    password: str = typer.Option(..., prompt=True, hide_input=True, confirmation_prompt=True),
    role: str = typer.Option("system_admin", help="Role to assign"),
    company: str | None = typer.Option(None, help="Company slug for company scoped roles"),
):
    with SessionLocal() as session:
        user = create_admin(session, email=email, name=name, password=password, role=role, company_slug=company)
        typer.echo(json.dumps({"id": str(user.id), "email": user.email, "role": user.role}))


if __name__ == "__main__":
    app()
