"""
Weekly timesheet grid.

Builds the (project, task) x 7-day grid from raw entries and derives the
sheet status. Nothing here is cached: the grid is recomputed from the full
entry set on every call.
"""

from collections import defaultdict
from datetime import date
from typing import Iterable, Optional

from timelink.schemas.timesheet import (
    DraftRow,
    GridRow,
    SheetSections,
    SheetStatus,
    SheetSummary,
    Status,
    TimeEntryRecord,
    WeeklyGrid,
)
from timelink.services.week import week_days, week_start

UNKNOWN_TASK = "unknown"


def row_key(project_id: str, task_id: str) -> str:
    return f"{project_id}||{task_id}"


def derive_sheet_status(entries: list[TimeEntryRecord]) -> SheetStatus:
    """Rejected beats Submitted beats all-Approved beats anything else."""
    if not entries:
        return SheetStatus.EMPTY
    statuses = {e.status for e in entries}
    if Status.REJECTED in statuses:
        return SheetStatus.REJECTED
    if Status.SUBMITTED in statuses:
        return SheetStatus.PENDING
    if statuses == {Status.APPROVED}:
        return SheetStatus.APPROVED
    return SheetStatus.DRAFT


def _row_matches(row: GridRow, needle: str) -> bool:
    return any(
        needle in (text or "").lower()
        for text in (row.description, row.project_name, row.task_name)
    )


def aggregate_week(
    entries: Iterable[TimeEntryRecord],
    week_of: date,
    *,
    draft_rows: Iterable[DraftRow] = (),
    read_only: bool = True,
    known_task_ids: Optional[set[str]] = None,
    project_names: Optional[dict[str, str]] = None,
    task_names: Optional[dict[str, str]] = None,
    search: Optional[str] = None,
) -> WeeklyGrid:
    start = week_start(week_of)
    days = week_days(start)
    end = days[-1]
    project_names = project_names or {}
    task_names = task_names or {}

    grouped: dict[str, GridRow] = {}
    for entry in entries:
        if entry.date < start or entry.date > end:
            continue

        task_id = entry.task_id or UNKNOWN_TASK
        if known_task_ids is not None and task_id not in known_task_ids:
            task_id = UNKNOWN_TASK

        key = row_key(entry.project_id, task_id)
        row = grouped.get(key)
        if row is None:
            row = grouped[key] = GridRow(
                key=key,
                project_id=entry.project_id,
                task_id=task_id,
                project_name=entry.project_name,
                task_name=entry.task_name if task_id != UNKNOWN_TASK else None,
                description=entry.description or "",
                entries={},
            )
        row.entries[entry.date] = entry
        if not row.description and entry.description:
            row.description = entry.description

    rows = list(grouped.values())
    for row in rows:
        row.total = sum(e.hours for e in row.entries.values())

    day_totals = [sum(r.entries[d].hours for r in rows if d in r.entries) for d in days]
    sheet_entries = [e for r in rows for e in r.entries.values()]

    if not read_only:
        taken = {(r.project_id, r.task_id) for r in rows}
        for draft in draft_rows:
            if (draft.project_id, draft.task_id) in taken:
                continue
            taken.add((draft.project_id, draft.task_id))
            rows.append(GridRow(
                key=f"draft-{row_key(draft.project_id, draft.task_id)}",
                project_id=draft.project_id,
                task_id=draft.task_id,
                project_name=project_names.get(draft.project_id),
                task_name=task_names.get(draft.task_id),
                description=draft.description,
                entries={},
                is_draft=True,
            ))

    if search and search.strip():
        needle = search.strip().lower()
        rows = [r for r in rows if _row_matches(r, needle)]

    return WeeklyGrid(
        week_start=start,
        days=days,
        rows=rows,
        day_totals=day_totals,
        week_total=sum(day_totals),
        status=derive_sheet_status(sheet_entries),
        entry_ids=[e.id for e in sheet_entries],
        review_note=_review_note(sheet_entries),
    )


def _review_note(entries: list[TimeEntryRecord]) -> str:
    for e in entries:
        if e.rejection_reason or e.manager_comment:
            return e.rejection_reason or e.manager_comment or ""
    return ""


def draft_entry_ids(grid: WeeklyGrid) -> list[str]:
    return [
        e.id
        for r in grid.rows
        for e in r.entries.values()
        if e.status == Status.DRAFT
    ]


# ── Manager overview ──


def summarize_sheets(entries: Iterable[TimeEntryRecord]) -> list[SheetSummary]:
    """One summary per (contractor, week), newest week first. Drafts are invisible here.

    A sheet that still has anything Submitted is PENDING, so it stays in the
    manager's queue even when part of it was rejected earlier.
    """
    grouped: dict[tuple[str, date], list[TimeEntryRecord]] = defaultdict(list)
    for entry in entries:
        if entry.status == Status.DRAFT:
            continue
        grouped[(entry.contractor_id, week_start(entry.date))].append(entry)

    summaries = []
    for (contractor_id, start), items in grouped.items():
        statuses = {e.status for e in items}
        if Status.SUBMITTED in statuses:
            status = SheetStatus.PENDING
        elif Status.REJECTED in statuses:
            status = SheetStatus.REJECTED
        else:
            status = SheetStatus.APPROVED

        summaries.append(SheetSummary(
            id=f"{contractor_id}-{start.isoformat()}",
            contractor_id=contractor_id,
            contractor_name=items[0].contractor_name,
            week_start=start,
            total_hours=sum(e.hours for e in items),
            status=status,
            entry_count=len(items),
        ))

    summaries.sort(key=lambda s: (s.week_start, s.contractor_name), reverse=True)
    return summaries


def section_sheets(summaries: list[SheetSummary]) -> SheetSections:
    return SheetSections(
        pending=[s for s in summaries if s.status == SheetStatus.PENDING],
        approved=[s for s in summaries if s.status == SheetStatus.APPROVED],
        rejected=[s for s in summaries if s.status == SheetStatus.REJECTED],
    )
