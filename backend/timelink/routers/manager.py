"""Manager review router: sheet queue, contractor week view and week-level decisions."""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from datetime import date

from timelink.database import get_db
from timelink.dependencies import get_current_user, require_manager
from timelink.schemas.tenant import UserRecord
from timelink.schemas.timesheet import (
    RejectRequest,
    ReviewRequest,
    ReviewResponse,
    SheetSections,
    WeeklyGrid,
)
from timelink.services import storage, timesheets
from timelink.services.approval import allowed_actions
from timelink.services.timesheet_grid import section_sheets, summarize_sheets

router = APIRouter(prefix="/api/v1/manager", tags=["Manager"])


def _review(db: Session, reviewer: UserRecord, contractor_id: str, week_of: date, action: str, text=None) -> ReviewResponse:
    saved, grid = timesheets.review_week(db, reviewer, contractor_id, week_of, action, text)
    return ReviewResponse(action=action, count=len(saved), status=grid.status)


# ── Queue ──


@router.get("/sheets", response_model=SheetSections)
def list_sheets(
    user: UserRecord = Depends(get_current_user),
    _role: str = Depends(require_manager),
    db: Session = Depends(get_db),
):
    """All non-draft weekly sheets in the tenant, split into pending/approved/rejected."""
    return section_sheets(summarize_sheets(storage.get_entries(db, user.tenant_id)))


@router.get("/sheets/{contractor_id}", response_model=WeeklyGrid)
def contractor_week(
    contractor_id: str,
    week_of: date = Query(...),
    user: UserRecord = Depends(get_current_user),
    _role: str = Depends(require_manager),
    db: Session = Depends(get_db),
):
    if not storage.get_user(db, user.tenant_id, contractor_id):
        raise HTTPException(404, "Contractor not found")
    return timesheets.load_week(db, user.tenant_id, contractor_id, week_of, read_only=True)


@router.get("/sheets/{contractor_id}/actions")
def week_actions(
    contractor_id: str,
    week_of: date = Query(...),
    user: UserRecord = Depends(get_current_user),
    _role: str = Depends(require_manager),
    db: Session = Depends(get_db),
):
    """Actions legal for every reviewable entry of the week, i.e. what the manager can do to the sheet.

    ``draft_entries`` counts the contractor's unsubmitted entries, which no action touches.
    """
    grid = timesheets.load_week(db, user.tenant_id, contractor_id, week_of, read_only=True)
    entries = timesheets.reviewable_entries(grid)
    drafts = len(grid.entry_ids) - len(entries)
    if not entries:
        return {"status": grid.status, "actions": [], "draft_entries": drafts}
    common = set(allowed_actions(entries[0].status))
    for e in entries[1:]:
        common &= set(allowed_actions(e.status))
    return {"status": grid.status, "actions": sorted(common - {"edit", "submit"}), "draft_entries": drafts}


# ── Decisions ──


@router.post("/approve", response_model=ReviewResponse)
def approve_week(
    body: ReviewRequest,
    user: UserRecord = Depends(get_current_user),
    _role: str = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return _review(db, user, body.contractor_id, body.week_of, "approve", body.comment)


@router.post("/reject", response_model=ReviewResponse)
def reject_week(
    body: RejectRequest,
    user: UserRecord = Depends(get_current_user),
    _role: str = Depends(require_manager),
    db: Session = Depends(get_db),
):
    if not body.reason.strip():
        raise HTTPException(400, "A rejection reason is required")
    return _review(db, user, body.contractor_id, body.week_of, "reject", body.reason)


@router.post("/revert", response_model=ReviewResponse)
def revert_week(
    body: ReviewRequest,
    user: UserRecord = Depends(get_current_user),
    _role: str = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return _review(db, user, body.contractor_id, body.week_of, "revert")


@router.put("/comment", response_model=ReviewResponse)
def update_comment(
    body: ReviewRequest,
    user: UserRecord = Depends(get_current_user),
    _role: str = Depends(require_manager),
    db: Session = Depends(get_db),
):
    return _review(db, user, body.contractor_id, body.week_of, "comment", body.comment or "")
