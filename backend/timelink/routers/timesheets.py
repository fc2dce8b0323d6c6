"""Contractor timesheet router.

Static routes (/week, /cells, /rows, /submit, /enhance, /summary) MUST come
before /{entry_id} or FastAPI matches them as an entry id.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from datetime import date
from typing import Optional

from timelink.database import get_db
from timelink.dependencies import get_current_user
from timelink.schemas.tenant import UserRecord
from timelink.schemas.timesheet import (
    DraftRow,
    EnhanceRequest,
    EnhanceResponse,
    EntryUpdate,
    RecordHoursRequest,
    RowUpdate,
    Status,
    SubmitRequest,
    SubmitResponse,
    TimeEntryRecord,
    WeeklyGrid,
)
from timelink.services import storage, timesheets
from timelink.services.enhance import enhance
from timelink.services.export import hours_summary

router = APIRouter(prefix="/api/v1/timesheets", tags=["Timesheets"])


def _parse_draft_rows(raw: list[str]) -> list[DraftRow]:
    rows = []
    for item in raw:
        project_id, sep, task_id = item.partition(":")
        if not sep or not project_id or not task_id:
            raise HTTPException(400, f"Invalid draft row '{item}', expected project_id:task_id")
        rows.append(DraftRow(project_id=project_id, task_id=task_id))
    return rows


# ── LIST ──


@router.get("/", response_model=list[TimeEntryRecord])
def list_entries(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    status: Optional[Status] = Query(None),
    user: UserRecord = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    entries = storage.get_entries(db, user.tenant_id, contractor_id=user.id)
    if start:
        entries = [e for e in entries if e.date >= start]
    if end:
        entries = [e for e in entries if e.date <= end]
    if status:
        entries = [e for e in entries if e.status == status]
    return sorted(entries, key=lambda e: e.date, reverse=True)


# ── WEEK GRID ──


@router.get("/week", response_model=WeeklyGrid)
def my_week(
    week_of: Optional[date] = Query(None),
    draft: list[str] = Query(default=[]),
    q: Optional[str] = Query(None),
    user: UserRecord = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Editable grid for the caller's week; ``draft=project_id:task_id`` adds empty rows."""
    return timesheets.load_week(
        db, user.tenant_id, user.id, week_of or date.today(),
        draft_rows=_parse_draft_rows(draft),
        read_only=False,
        search=q,
    )


@router.post("/cells")
def record_hours(
    body: RecordHoursRequest,
    user: UserRecord = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    entry = timesheets.record_hours(db, user, body)
    return {"ok": True, "entry": entry.model_dump(mode="json") if entry else None}


@router.put("/rows", response_model=list[TimeEntryRecord])
def update_row(
    body: RowUpdate,
    user: UserRecord = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return timesheets.update_row(db, user, body)


# ── SUBMIT ──


@router.post("/submit", response_model=SubmitResponse)
def submit_week(
    body: SubmitRequest,
    user: UserRecord = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Submit the week's Draft entries. Policy warnings need ``confirm=true`` to go through."""
    return timesheets.submit_week(db, user, body.week_of, confirm=body.confirm)


# ── AI ENHANCE ──


@router.post("/enhance", response_model=EnhanceResponse)
def enhance_description(
    body: EnhanceRequest,
    user: UserRecord = Depends(get_current_user),
):
    return EnhanceResponse(text=enhance(body.text))


# ── SUMMARY ──


@router.get("/summary")
def my_summary(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    user: UserRecord = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    entries = storage.get_entries(db, user.tenant_id, contractor_id=user.id)
    entries = [e for e in entries if (not start or e.date >= start) and (not end or e.date <= end)]
    return hours_summary(entries)


# ── Single-entry endpoints (must be AFTER all fixed paths) ──


@router.get("/{entry_id}", response_model=TimeEntryRecord)
def get_entry(
    entry_id: str,
    user: UserRecord = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    entry = storage.get_entry(db, user.tenant_id, entry_id)
    if not entry or entry.contractor_id != user.id:
        raise HTTPException(404, "Entry not found")
    return entry


@router.put("/{entry_id}", response_model=TimeEntryRecord)
def update_entry(
    entry_id: str,
    body: EntryUpdate,
    user: UserRecord = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = {k: v for k, v in body.model_dump(exclude_unset=True).items() if v is not None}
    expected_version = changes.pop("expected_version", None)
    if not changes:
        raise HTTPException(400, "Nothing to update")
    return timesheets.update_entry(db, user, entry_id, changes, expected_version)


@router.delete("/{entry_id}")
def delete_entry(
    entry_id: str,
    user: UserRecord = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    timesheets.delete_entry(db, user, entry_id)
    return {"ok": True}
