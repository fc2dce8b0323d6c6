from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional

from timelink.database import get_db
from timelink.dependencies import get_current_user, require_manager
from timelink.models.user import new_id
from timelink.schemas.tenant import (
    ProjectResponse,
    RoleUpdate,
    TaskResponse,
    TenantResponse,
    UserCreate,
    UserRecord,
)
from timelink.services import storage

router = APIRouter(prefix="/api/v1/tenant", tags=["Tenant"])


# ─── Tenant ──────────────────────────────────────────────────────────

@router.get("/", response_model=TenantResponse)
def get_tenant(
    user: UserRecord = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    tenant = storage.get_tenant(db, user.tenant_id)
    if not tenant:
        raise HTTPException(404, "Tenant not found")
    return tenant


# ─── Users ───────────────────────────────────────────────────────────

@router.get("/users", response_model=list[UserRecord])
def list_users(
    user: UserRecord = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return storage.get_users(db, user.tenant_id)


@router.post("/users", response_model=UserRecord, status_code=201)
def add_user(
    payload: UserCreate,
    user: UserRecord = Depends(get_current_user),
    _role: str = Depends(require_manager),
    db: Session = Depends(get_db),
):
    email = payload.email.strip().lower()
    if "@" not in email:
        raise HTTPException(400, "Invalid email")
    if storage.get_user_by_email(db, email):
        raise HTTPException(409, "A user with this email already exists")

    profile = UserRecord(
        id=new_id(),
        tenant_id=user.tenant_id,
        name=payload.name.strip(),
        email=email,
        role=payload.role,
    )
    return storage.save_user(db, user.tenant_id, profile)


@router.put("/users/{user_id}/role", response_model=UserRecord)
def change_role(
    user_id: str,
    payload: RoleUpdate,
    user: UserRecord = Depends(get_current_user),
    _role: str = Depends(require_manager),
    db: Session = Depends(get_db),
):
    target = storage.get_user(db, user.tenant_id, user_id)
    if not target:
        raise HTTPException(404, "User not found")
    if target.id == user.id and payload.role != user.role:
        raise HTTPException(400, "You cannot change your own role")
    return storage.save_user(db, user.tenant_id, target.model_copy(update={"role": payload.role}))


# ─── Reference data ──────────────────────────────────────────────────

@router.get("/projects", response_model=list[ProjectResponse])
def list_projects(
    user: UserRecord = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return storage.get_projects(db, user.tenant_id)


@router.get("/tasks", response_model=list[TaskResponse])
def list_tasks(
    project_id: Optional[str] = Query(None),
    user: UserRecord = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return storage.get_tasks(db, user.tenant_id, project_id=project_id)
