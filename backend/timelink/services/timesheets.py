"""
Timesheet workflows: cell edits, row edits, weekly submit and manager review.

Each workflow loads the tenant's entries through the storage gateway, lets
the grid/approval/policy modules decide, and writes the result back in one
batch.
"""

import logging
from datetime import date
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from timelink.models.user import new_id
from timelink.schemas.tenant import UserRecord
from timelink.schemas.timesheet import (
    DraftRow,
    RecordHoursRequest,
    RowUpdate,
    SubmitResponse,
    Status,
    TimeEntryRecord,
    WeeklyGrid,
)
from timelink.services import approval, storage
from timelink.services.policy import check_policies
from timelink.services.timesheet_grid import UNKNOWN_TASK, aggregate_week, draft_entry_ids
from timelink.services.week import week_start

logger = logging.getLogger(__name__)

NO_DRAFTS_MESSAGE = "No draft entries to submit for this week."


class NotFoundError(LookupError):
    pass


class CellTakenError(Exception):
    """Another entry already occupies the (project, task, day) cell an edit would move into."""

    def __init__(self, project_id: str, task_id: Optional[str], day: date):
        self.project_id = project_id
        self.task_id = task_id
        self.day = day
        super().__init__(
            f"An entry already exists for {project_id} / {task_id or UNKNOWN_TASK} on {day.isoformat()}"
        )


def _reference_data(db: Session, tenant_id: str):
    projects = {p.id: p for p in storage.get_projects(db, tenant_id)}
    tasks = {t.id: t for t in storage.get_tasks(db, tenant_id)}
    return projects, tasks


def _resolve_classification(db: Session, tenant_id: str, project_id: str, task_id: Optional[str]) -> dict:
    projects, tasks = _reference_data(db, tenant_id)
    project = projects.get(project_id)
    if not project:
        raise NotFoundError("Project not found")

    if not task_id or task_id == UNKNOWN_TASK:
        return {"project_id": project.id, "project_name": project.name, "task_id": None, "task_name": None}

    task = tasks.get(task_id)
    if not task or task.project_id != project.id:
        raise NotFoundError("Task not found for project")
    return {"project_id": project.id, "project_name": project.name, "task_id": task.id, "task_name": task.name}


def load_week(
    db: Session,
    tenant_id: str,
    contractor_id: str,
    week_of: date,
    *,
    draft_rows: Iterable[DraftRow] = (),
    read_only: bool = True,
    search: Optional[str] = None,
) -> WeeklyGrid:
    projects, tasks = _reference_data(db, tenant_id)
    return aggregate_week(
        storage.get_entries(db, tenant_id, contractor_id=contractor_id),
        week_of,
        draft_rows=draft_rows,
        read_only=read_only,
        known_task_ids=set(tasks),
        project_names={pid: p.name for pid, p in projects.items()},
        task_names={tid: t.name for tid, t in tasks.items()},
        search=search,
    )


# ── Contractor edits ──


def _cell(e: TimeEntryRecord, known_task_ids) -> tuple:
    # same bucketing as the grid: missing or deleted tasks share the unknown row
    return e.project_id, (e.task_id if e.task_id in known_task_ids else UNKNOWN_TASK), e.date


def _find_cell(entries: list[TimeEntryRecord], key: tuple, known_task_ids):
    return next((e for e in entries if _cell(e, known_task_ids) == key), None)


def _ensure_cells_free(db: Session, user: UserRecord, moved: list[TimeEntryRecord]):
    """Each grid cell holds one entry; refuse moves onto a cell held by an entry outside ``moved``."""
    _, tasks = _reference_data(db, user.tenant_id)
    moving = {e.id for e in moved}
    taken = {
        _cell(e, tasks)
        for e in storage.get_entries(db, user.tenant_id, contractor_id=user.id)
        if e.id not in moving
    }
    for e in moved:
        if _cell(e, tasks) in taken:
            raise CellTakenError(e.project_id, e.task_id, e.date)


def record_hours(db: Session, user: UserRecord, req: RecordHoursRequest) -> Optional[TimeEntryRecord]:
    """Write one grid cell. Zero hours on an empty cell is a no-op and returns None."""
    hours = req.hours
    classification = _resolve_classification(db, user.tenant_id, req.project_id, req.task_id)

    _, tasks = _reference_data(db, user.tenant_id)
    key = (classification["project_id"], classification["task_id"] or UNKNOWN_TASK, req.date)
    existing = _find_cell(storage.get_entries(db, user.tenant_id, contractor_id=user.id), key, tasks)

    if existing is None:
        if hours == 0:
            return None
        entry = TimeEntryRecord(
            id=new_id(),
            tenant_id=user.tenant_id,
            contractor_id=user.id,
            contractor_name=user.name,
            date=req.date,
            hours=hours,
            description=req.description or "",
            **classification,
        )
        return storage.upsert_entry(db, user.tenant_id, entry)

    changes = {"hours": hours}
    if req.description is not None:
        changes["description"] = req.description
    return storage.upsert_entry(db, user.tenant_id, approval.apply_edit(existing, changes))


def update_entry(
    db: Session,
    user: UserRecord,
    entry_id: str,
    changes: dict,
    expected_version: Optional[int] = None,
) -> TimeEntryRecord:
    entry = storage.get_entry(db, user.tenant_id, entry_id)
    if not entry or entry.contractor_id != user.id:
        raise NotFoundError("Entry not found")

    changes = dict(changes)
    if "project_id" in changes or "task_id" in changes:
        changes.update(_resolve_classification(
            db,
            user.tenant_id,
            changes.get("project_id", entry.project_id),
            changes.get("task_id", entry.task_id),
        ))
    updated = approval.apply_edit(entry, changes)
    if (updated.project_id, updated.task_id) != (entry.project_id, entry.task_id):
        _ensure_cells_free(db, user, [updated])
    return storage.upsert_entry(db, user.tenant_id, updated, expected_version)


def update_row(db: Session, user: UserRecord, req: RowUpdate) -> list[TimeEntryRecord]:
    """Re-classify or re-describe every saved entry of one grid row."""
    grid = load_week(db, user.tenant_id, user.id, req.week_of)
    task_id = req.task_id or UNKNOWN_TASK
    row = next((r for r in grid.rows if r.project_id == req.project_id and r.task_id == task_id), None)
    if row is None or not row.entries:
        raise NotFoundError("Row not found")

    changes = {}
    if req.new_project_id is not None or req.new_task_id is not None:
        project_id = req.new_project_id or req.project_id
        new_task_id = req.new_task_id
        if new_task_id is None:
            # project switched without a task: take the project's first task
            first = storage.get_tasks(db, user.tenant_id, project_id=project_id)
            new_task_id = first[0].id if first else None
        changes.update(_resolve_classification(db, user.tenant_id, project_id, new_task_id))
    if req.description is not None:
        changes["description"] = req.description
    if not changes:
        return list(row.entries.values())

    updated = [approval.apply_edit(e, changes) for e in row.entries.values()]
    if "project_id" in changes:
        _ensure_cells_free(db, user, updated)
    return storage.upsert_entries(db, user.tenant_id, updated)


def delete_entry(db: Session, user: UserRecord, entry_id: str):
    entry = storage.get_entry(db, user.tenant_id, entry_id)
    if not entry or entry.contractor_id != user.id:
        raise NotFoundError("Entry not found")
    if entry.status not in (Status.DRAFT, Status.REJECTED):
        raise approval.InvalidTransitionError("delete", {entry.id: entry.status})
    storage.delete_entry(db, user.tenant_id, entry_id)


# ── Submit ──


def submit_week(db: Session, user: UserRecord, week_of: date, confirm: bool = False) -> SubmitResponse:
    grid = load_week(db, user.tenant_id, user.id, week_of)
    ids = draft_entry_ids(grid)
    if not ids:
        raise approval.ReviewValidationError(NO_DRAFTS_MESSAGE)

    warnings = check_policies(grid)
    if warnings and not confirm:
        return SubmitResponse(requires_confirmation=True, warnings=warnings)

    entries = [e for r in grid.rows for e in r.entries.values()]
    submitted = storage.upsert_entries(db, user.tenant_id, approval.submit(entries, ids))
    logger.info("User %s submitted %d entries for week of %s", user.id, len(submitted), grid.week_start)
    return SubmitResponse(submitted=len(submitted), warnings=warnings)


# ── Manager review ──


def reviewable_entries(grid: WeeklyGrid) -> list[TimeEntryRecord]:
    """Entries of the week a manager acts on: everything except Drafts."""
    return [e for r in grid.rows for e in r.entries.values() if e.status != Status.DRAFT]


def review_week(
    db: Session,
    reviewer: UserRecord,
    contractor_id: str,
    week_of: date,
    action: str,
    text: Optional[str] = None,
) -> tuple[list[TimeEntryRecord], WeeklyGrid]:
    """Apply a manager decision to the whole displayed week of one contractor."""
    if not storage.get_user(db, reviewer.tenant_id, contractor_id):
        raise NotFoundError("Contractor not found")

    grid = load_week(db, reviewer.tenant_id, contractor_id, week_of)
    # Drafts added after a submit are still the contractor's; review the rest
    entries = reviewable_entries(grid)
    ids = [e.id for e in entries]

    if action == "approve":
        updated = approval.approve(entries, ids, reviewer.id, comment=text)
    elif action == "reject":
        updated = approval.reject(entries, ids, reviewer.id, reason=text or "")
    elif action == "revert":
        updated = approval.revert(entries, ids)
    elif action == "comment":
        updated = approval.update_review_note(entries, ids, text or "")
    else:
        raise ValueError(f"Unknown review action: {action}")

    saved = storage.upsert_entries(db, reviewer.tenant_id, updated)
    logger.info(
        "Manager %s applied %s to %d entries of %s for week of %s",
        reviewer.id, action, len(saved), contractor_id, week_start(week_of),
    )
    return saved, load_week(db, reviewer.tenant_id, contractor_id, week_of)
