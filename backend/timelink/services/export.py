"""
Payroll export of approved hours.

Column mapping follows the payroll spreadsheet: projects are billed as the
"Client" and tasks as the "Project".
"""

import csv
import io
from collections import defaultdict
from datetime import date
from typing import Iterable

import openpyxl

from timelink.schemas.timesheet import Status, TimeEntryRecord

EXPORT_HEADERS = ["Client", "Project", "Description", "Date", "Hours", "Employee"]
BOM = "\ufeff"

MEDIA_TYPES = {
    "csv": "text/csv; charset=utf-8",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}
XLSX_SHEET_TITLE = "Approved hours"


def filter_approved(entries: Iterable[TimeEntryRecord], start: date, end: date) -> list[TimeEntryRecord]:
    """Approved entries dated within [start, end], both ends inclusive."""
    return sorted(
        (e for e in entries if e.status == Status.APPROVED and start <= e.date <= end),
        key=lambda e: (e.date, e.contractor_name),
    )


def export_rows(entries: Iterable[TimeEntryRecord]) -> list[list[str]]:
    return [
        [
            e.project_name,
            e.task_name or "",
            e.description,
            e.date.isoformat(),
            f"{e.hours:.2f}",
            e.contractor_name,
        ]
        for e in entries
    ]


def render_csv(entries: Iterable[TimeEntryRecord]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_ALL, lineterminator="\r\n")
    writer.writerow(EXPORT_HEADERS)
    writer.writerows(export_rows(entries))
    return BOM + output.getvalue()


def render_xlsx(entries: Iterable[TimeEntryRecord]) -> bytes:
    """Same columns as the CSV, with real date and number cells."""
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = XLSX_SHEET_TITLE
    ws.append(EXPORT_HEADERS)
    for e in entries:
        ws.append([e.project_name, e.task_name or "", e.description, e.date, round(e.hours, 2), e.contractor_name])
        ws.cell(row=ws.max_row, column=4).number_format = "yyyy-mm-dd"

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def export_filename(start: date, end: date, fmt: str = "csv") -> str:
    return f"timesheet_export_{start.isoformat()}_to_{end.isoformat()}.{fmt}"


def total_hours(entries: Iterable[TimeEntryRecord]) -> float:
    return round(sum(e.hours for e in entries), 2)


def hours_summary(entries: Iterable[TimeEntryRecord]) -> dict:
    """Dashboard numbers: total, pending (Submitted) and per-project hours."""
    entries = list(entries)
    by_project = defaultdict(float)
    for e in entries:
        by_project[e.project_name] += e.hours
    return {
        "total_hours": total_hours(entries),
        "pending_hours": total_hours(e for e in entries if e.status == Status.SUBMITTED),
        "by_project": {name: round(h, 2) for name, h in by_project.items()},
        "entries": len(entries),
    }
