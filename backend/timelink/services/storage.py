"""
Tenant-scoped persistence gateway.

Every read filters on the calling tenant; every write checks that the entity
belongs to the calling tenant before anything touches the session.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from timelink.models.project import Project, Task
from timelink.models.time_entry import TimeEntry
from timelink.models.user import Tenant, User
from timelink.schemas.tenant import UserRecord
from timelink.schemas.timesheet import TimeEntryRecord

logger = logging.getLogger(__name__)


class TenantMismatchError(Exception):
    """A write targeted an entity owned by another tenant."""

    def __init__(self, kind: str, entity_tenant_id: str, tenant_id: str):
        self.kind = kind
        self.entity_tenant_id = entity_tenant_id
        self.tenant_id = tenant_id
        super().__init__(f"Unauthorized: tenant mismatch on {kind}")


class VersionConflictError(Exception):
    def __init__(self, entry_id: str, expected: int, actual: int):
        self.entry_id = entry_id
        self.expected = expected
        self.actual = actual
        super().__init__(f"Entry {entry_id} is at version {actual}, expected {expected}")


_ENTRY_FIELDS = (
    "contractor_id", "contractor_name", "project_id", "project_name", "task_id", "task_name",
    "date", "hours", "description", "status", "rejection_reason", "manager_comment",
    "reviewed_by", "reviewed_at",
)


def _commit(db: Session):
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Persistence operation failed")
        raise


# ── Entries ──


def get_entries(db: Session, tenant_id: str, contractor_id: Optional[str] = None) -> list[TimeEntryRecord]:
    q = db.query(TimeEntry).filter(TimeEntry.tenant_id == tenant_id)
    if contractor_id:
        q = q.filter(TimeEntry.contractor_id == contractor_id)
    rows = q.order_by(TimeEntry.date, TimeEntry.created_at).all()
    return [TimeEntryRecord.model_validate(r) for r in rows]


def get_entry(db: Session, tenant_id: str, entry_id: str) -> Optional[TimeEntryRecord]:
    row = db.query(TimeEntry).filter(TimeEntry.id == entry_id, TimeEntry.tenant_id == tenant_id).first()
    return TimeEntryRecord.model_validate(row) if row else None


def upsert_entry(
    db: Session,
    tenant_id: str,
    entry: TimeEntryRecord,
    expected_version: Optional[int] = None,
) -> TimeEntryRecord:
    """Create or replace an entry keyed by id.

    ``expected_version`` turns the replace into a conditional write; without
    it the last write wins.
    """
    if entry.tenant_id != tenant_id:
        raise TenantMismatchError("time entry", entry.tenant_id, tenant_id)

    row = db.query(TimeEntry).filter(TimeEntry.id == entry.id).first()
    if row is not None and row.tenant_id != tenant_id:
        raise TenantMismatchError("time entry", row.tenant_id, tenant_id)

    if row is None:
        if expected_version is not None:
            raise VersionConflictError(entry.id, expected_version, 0)
        row = TimeEntry(id=entry.id, tenant_id=tenant_id, version=1)
        db.add(row)
    else:
        if expected_version is not None and row.version != expected_version:
            raise VersionConflictError(entry.id, expected_version, row.version)
        row.version = (row.version or 0) + 1

    for field in _ENTRY_FIELDS:
        value = getattr(entry, field)
        setattr(row, field, value.value if field == "status" else value)

    _commit(db)
    db.refresh(row)
    return TimeEntryRecord.model_validate(row)


def upsert_entries(db: Session, tenant_id: str, entries: list[TimeEntryRecord]) -> list[TimeEntryRecord]:
    """Write a batch in one transaction; a tenant mismatch anywhere writes nothing."""
    for entry in entries:
        if entry.tenant_id != tenant_id:
            raise TenantMismatchError("time entry", entry.tenant_id, tenant_id)

    ids = [e.id for e in entries]
    rows = {r.id: r for r in db.query(TimeEntry).filter(TimeEntry.id.in_(ids)).all()} if ids else {}
    for row in rows.values():
        if row.tenant_id != tenant_id:
            raise TenantMismatchError("time entry", row.tenant_id, tenant_id)

    for entry in entries:
        row = rows.get(entry.id)
        if row is None:
            row = TimeEntry(id=entry.id, tenant_id=tenant_id, version=0)
            db.add(row)
            rows[entry.id] = row
        row.version = (row.version or 0) + 1
        for field in _ENTRY_FIELDS:
            value = getattr(entry, field)
            setattr(row, field, value.value if field == "status" else value)

    _commit(db)
    return [TimeEntryRecord.model_validate(rows[i]) for i in ids]


def delete_entry(db: Session, tenant_id: str, entry_id: str) -> bool:
    row = db.query(TimeEntry).filter(TimeEntry.id == entry_id, TimeEntry.tenant_id == tenant_id).first()
    if not row:
        return False
    db.delete(row)
    _commit(db)
    return True


# ── Users ──


def get_users(db: Session, tenant_id: str) -> list[UserRecord]:
    rows = db.query(User).filter(User.tenant_id == tenant_id).order_by(User.name).all()
    return [UserRecord.model_validate(u) for u in rows]


def get_user(db: Session, tenant_id: str, user_id: str) -> Optional[UserRecord]:
    row = db.query(User).filter(User.id == user_id, User.tenant_id == tenant_id).first()
    return UserRecord.model_validate(row) if row else None


def get_user_by_email(db: Session, email: str) -> Optional[UserRecord]:
    row = db.query(User).filter(User.email == email.strip().lower()).first()
    return UserRecord.model_validate(row) if row else None


def save_user(db: Session, tenant_id: str, user: UserRecord) -> UserRecord:
    if user.tenant_id != tenant_id:
        raise TenantMismatchError("user", user.tenant_id, tenant_id)

    row = db.query(User).filter(User.id == user.id).first()
    if row is not None and row.tenant_id != tenant_id:
        raise TenantMismatchError("user", row.tenant_id, tenant_id)
    if row is None:
        row = User(id=user.id, tenant_id=tenant_id)
        db.add(row)

    row.name = user.name
    row.email = user.email.strip().lower()
    row.role = user.role
    if user.avatar_url:
        row.avatar_url = user.avatar_url

    _commit(db)
    db.refresh(row)
    return UserRecord.model_validate(row)


# ── Tenants & reference data ──


def get_tenant(db: Session, tenant_id: str) -> Optional[Tenant]:
    return db.query(Tenant).filter(Tenant.id == tenant_id).first()


def get_tenant_by_domain(db: Session, domain: str) -> Optional[Tenant]:
    return db.query(Tenant).filter(Tenant.domain == domain.strip().lower()).first()


def get_projects(db: Session, tenant_id: str) -> list[Project]:
    return db.query(Project).filter(Project.tenant_id == tenant_id).order_by(Project.name).all()


def get_tasks(db: Session, tenant_id: str, project_id: Optional[str] = None) -> list[Task]:
    q = db.query(Task).filter(Task.tenant_id == tenant_id)
    if project_id:
        q = q.filter(Task.project_id == project_id)
    return q.order_by(Task.name).all()
