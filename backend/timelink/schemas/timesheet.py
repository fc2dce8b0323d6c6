import enum
from pydantic import BaseModel, Field, model_validator
from typing import Optional
from datetime import date, datetime

from timelink.services.week import parse_duration

MAX_DAILY_HOURS = 24


class Status(str, enum.Enum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class SheetStatus(str, enum.Enum):
    EMPTY = "EMPTY"
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


REVIEWED_STATUSES = (Status.APPROVED, Status.REJECTED)


# --- Entry record ---

class TimeEntryRecord(BaseModel):
    """A time entry as the domain services see it.

    Review metadata is only allowed in the statuses where it means something:
    ``rejection_reason`` on Rejected entries, ``manager_comment``,
    ``reviewed_by`` and ``reviewed_at`` on Approved or Rejected entries.
    """

    id: str
    tenant_id: str
    contractor_id: str
    contractor_name: str
    project_id: str
    project_name: str
    task_id: Optional[str] = None
    task_name: Optional[str] = None
    date: date
    hours: float = Field(default=0.0, ge=0)
    description: str = ""
    status: Status = Status.DRAFT
    rejection_reason: Optional[str] = None
    manager_comment: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    version: int = 1

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def _review_fields_match_status(self):
        if self.rejection_reason is not None and self.status != Status.REJECTED:
            raise ValueError("rejection_reason is only allowed on Rejected entries")
        if self.status not in REVIEWED_STATUSES:
            for field in ("manager_comment", "reviewed_by", "reviewed_at"):
                if getattr(self, field) is not None:
                    raise ValueError(f"{field} is only allowed on Approved or Rejected entries")
        return self


# --- Requests ---

class RecordHoursRequest(BaseModel):
    """One grid cell edit: hours for a (project, task, date) triple."""
    project_id: str
    task_id: Optional[str] = None
    date: date
    hours: Optional[float] = Field(default=None, ge=0, le=MAX_DAILY_HOURS)
    duration: Optional[str] = None  # "H:MM" or decimal text, used when hours is omitted
    description: Optional[str] = None

    @model_validator(mode="after")
    def _resolve_hours(self):
        # duration text obeys the same 0-24 bound as numeric hours
        if self.hours is None:
            self.hours = parse_duration(self.duration)
        if self.hours > MAX_DAILY_HOURS:
            raise ValueError(f"hours must be between 0 and {MAX_DAILY_HOURS}")
        return self


class EntryUpdate(BaseModel):
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    hours: Optional[float] = Field(default=None, ge=0, le=MAX_DAILY_HOURS)
    description: Optional[str] = None
    expected_version: Optional[int] = None


class RowUpdate(BaseModel):
    """Row-level edit applied to every saved entry of a grid row."""
    week_of: date
    project_id: str
    task_id: Optional[str] = None
    new_project_id: Optional[str] = None
    new_task_id: Optional[str] = None
    description: Optional[str] = None


class SubmitRequest(BaseModel):
    week_of: date
    confirm: bool = False


class EnhanceRequest(BaseModel):
    text: str


class EnhanceResponse(BaseModel):
    text: str


# --- Grid ---

class DraftRow(BaseModel):
    project_id: str
    task_id: str
    description: str = ""


class GridRow(BaseModel):
    key: str
    project_id: str
    task_id: str
    project_name: Optional[str] = None
    task_name: Optional[str] = None
    description: str = ""
    entries: dict[date, TimeEntryRecord] = {}
    total: float = 0.0
    is_draft: bool = False


class WeeklyGrid(BaseModel):
    week_start: date
    days: list[date]
    rows: list[GridRow]
    day_totals: list[float]
    week_total: float
    status: SheetStatus
    entry_ids: list[str] = []
    review_note: str = ""


class SubmitResponse(BaseModel):
    submitted: int = 0
    requires_confirmation: bool = False
    warnings: list[str] = []


# --- Manager views ---

class SheetSummary(BaseModel):
    id: str
    contractor_id: str
    contractor_name: str
    week_start: date
    total_hours: float = 0.0
    status: SheetStatus
    entry_count: int = 0


class SheetSections(BaseModel):
    pending: list[SheetSummary] = []
    approved: list[SheetSummary] = []
    rejected: list[SheetSummary] = []


class ReviewRequest(BaseModel):
    contractor_id: str
    week_of: date
    comment: Optional[str] = None


class RejectRequest(BaseModel):
    contractor_id: str
    week_of: date
    reason: str


class ReviewResponse(BaseModel):
    ok: bool = True
    action: str
    count: int
    status: SheetStatus
