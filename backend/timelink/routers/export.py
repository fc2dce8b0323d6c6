"""Payroll export router (managers only)."""

from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.orm import Session
from datetime import date
from typing import Literal, Optional

from timelink.database import get_db
from timelink.dependencies import get_current_user, require_manager
from timelink.schemas.tenant import UserRecord
from timelink.services import storage
from timelink.services.export import (
    EXPORT_HEADERS,
    MEDIA_TYPES,
    export_filename,
    export_rows,
    filter_approved,
    hours_summary,
    render_csv,
    render_xlsx,
    total_hours,
)
from timelink.services.payroll_sync import PayrollSync

router = APIRouter(prefix="/api/v1/export", tags=["Export"])


class SyncRequest(BaseModel):
    start: date
    end: date


def _default_range(start: Optional[date], end: Optional[date]) -> tuple[date, date]:
    # first day of the current month through today
    end = end or date.today()
    start = start or end.replace(day=1)
    if start > end:
        raise HTTPException(400, "start must not be after end")
    return start, end


def get_payroll_sync() -> PayrollSync:
    return PayrollSync()


@router.get("/preview")
def preview(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    user: UserRecord = Depends(get_current_user),
    _role: str = Depends(require_manager),
    db: Session = Depends(get_db),
):
    start, end = _default_range(start, end)
    entries = filter_approved(storage.get_entries(db, user.tenant_id), start, end)
    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "headers": EXPORT_HEADERS,
        "rows": export_rows(entries),
        "total_hours": total_hours(entries),
        "count": len(entries),
    }


@router.get("/download")
def download(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    fmt: Literal["csv", "xlsx"] = Query("csv"),
    user: UserRecord = Depends(get_current_user),
    _role: str = Depends(require_manager),
    db: Session = Depends(get_db),
):
    start, end = _default_range(start, end)
    entries = filter_approved(storage.get_entries(db, user.tenant_id), start, end)
    content = render_xlsx(entries) if fmt == "xlsx" else render_csv(entries).encode("utf-8")
    return Response(
        content=content,
        media_type=MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f"attachment; filename={export_filename(start, end, fmt)}"},
    )


@router.post("/sync")
def sync_to_payroll(
    body: SyncRequest,
    user: UserRecord = Depends(get_current_user),
    _role: str = Depends(require_manager),
    db: Session = Depends(get_db),
    payroll: PayrollSync = Depends(get_payroll_sync),
):
    """Push approved entries in range to the (simulated) payroll system."""
    start, end = _default_range(body.start, body.end)
    entries = filter_approved(storage.get_entries(db, user.tenant_id), start, end)
    result = payroll.upload_entries(entries)
    return {
        "synced": [asdict(r) for r in result.synced],
        "failed": [asdict(r) for r in result.failed],
        "skipped": result.skipped,
    }


@router.get("/summary")
def tenant_summary(
    start: Optional[date] = Query(None),
    end: Optional[date] = Query(None),
    user: UserRecord = Depends(get_current_user),
    _role: str = Depends(require_manager),
    db: Session = Depends(get_db),
):
    """Dashboard totals across every contractor in the tenant."""
    entries = storage.get_entries(db, user.tenant_id)
    entries = [e for e in entries if (not start or e.date >= start) and (not end or e.date <= end)]
    return hours_summary(entries)
