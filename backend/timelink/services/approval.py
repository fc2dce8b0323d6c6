"""
Approval state machine for time entries.

    Draft -> Submitted -> Approved | Rejected
    Approved | Rejected -> Submitted   (manager revert)
    any non-Draft -> Draft             (content edit, see apply_edit)

Batch operations check every entry before changing any of them, so a batch
either moves as a whole or not at all. The functions here are pure: they take
records and return new records; persisting them is the caller's job.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional

from timelink.schemas.timesheet import Status, TimeEntryRecord, REVIEWED_STATUSES

logger = logging.getLogger(__name__)

CONTENT_FIELDS = frozenset({
    "hours", "description", "project_id", "project_name", "task_id", "task_name",
})

_CLEARED_REVIEW = {
    "rejection_reason": None,
    "manager_comment": None,
    "reviewed_by": None,
    "reviewed_at": None,
}


class InvalidTransitionError(Exception):
    """One or more entries cannot take the requested action from their current status."""

    def __init__(self, action: str, offending: dict[str, Status]):
        self.action = action
        self.offending = offending
        detail = ", ".join(f"{eid} ({st.value})" for eid, st in offending.items())
        super().__init__(f"Cannot {action}: {detail}")


class ReviewValidationError(ValueError):
    pass


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _rebuild(entry: TimeEntryRecord, **changes) -> TimeEntryRecord:
    # model_copy skips validation; go through model_validate so invariants hold
    return TimeEntryRecord.model_validate({**entry.model_dump(), **changes})


def _select(entries: Iterable[TimeEntryRecord], ids: Iterable[str]) -> list[TimeEntryRecord]:
    by_id = {e.id: e for e in entries}
    wanted = list(dict.fromkeys(ids))
    missing = [i for i in wanted if i not in by_id]
    if missing:
        raise KeyError(f"Unknown entry ids: {', '.join(missing)}")
    return [by_id[i] for i in wanted]


def _guard(action: str, selected: list[TimeEntryRecord], allowed: tuple[Status, ...]):
    if not selected:
        raise ReviewValidationError(f"Nothing to {action}")
    offending = {e.id: e.status for e in selected if e.status not in allowed}
    if offending:
        raise InvalidTransitionError(action, offending)


# ── Content edits ──


def apply_edit(entry: TimeEntryRecord, changes: dict) -> TimeEntryRecord:
    """Apply field changes; touching any content field sends the entry back to Draft."""
    unknown = set(changes) - CONTENT_FIELDS - {"date"}
    if unknown:
        raise ValueError(f"Not editable: {', '.join(sorted(unknown))}")

    updated = dict(changes)
    if CONTENT_FIELDS & set(changes):
        updated["status"] = Status.DRAFT
        updated.update(_CLEARED_REVIEW)
        if entry.status != Status.DRAFT:
            logger.info("Entry %s edited while %s; reverted to Draft", entry.id, entry.status.value)
    return _rebuild(entry, **updated)


# ── Transitions ──


def submit(entries: Iterable[TimeEntryRecord], ids: Iterable[str]) -> list[TimeEntryRecord]:
    selected = _select(entries, ids)
    _guard("submit", selected, (Status.DRAFT,))
    return [_rebuild(e, status=Status.SUBMITTED) for e in selected]


def approve(
    entries: Iterable[TimeEntryRecord],
    ids: Iterable[str],
    reviewer_id: str,
    comment: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[TimeEntryRecord]:
    selected = _select(entries, ids)
    _guard("approve", selected, (Status.SUBMITTED,))
    stamp = now or _now_utc()
    note = comment.strip() if comment and comment.strip() else None
    return [
        _rebuild(
            e,
            status=Status.APPROVED,
            reviewed_by=reviewer_id,
            reviewed_at=stamp,
            manager_comment=note,
            rejection_reason=None,
        )
        for e in selected
    ]


def reject(
    entries: Iterable[TimeEntryRecord],
    ids: Iterable[str],
    reviewer_id: str,
    reason: str,
    now: Optional[datetime] = None,
) -> list[TimeEntryRecord]:
    if not reason or not reason.strip():
        raise ReviewValidationError("A rejection reason is required")
    selected = _select(entries, ids)
    _guard("reject", selected, (Status.SUBMITTED,))
    stamp = now or _now_utc()
    return [
        _rebuild(
            e,
            status=Status.REJECTED,
            reviewed_by=reviewer_id,
            reviewed_at=stamp,
            rejection_reason=reason.strip(),
            manager_comment=None,
        )
        for e in selected
    ]


def revert(entries: Iterable[TimeEntryRecord], ids: Iterable[str]) -> list[TimeEntryRecord]:
    """Undo a manager decision. Entries already Submitted pass through unchanged."""
    selected = _select(entries, ids)
    _guard("revert", selected, (Status.SUBMITTED,) + REVIEWED_STATUSES)
    return [
        e if e.status == Status.SUBMITTED else _rebuild(e, status=Status.SUBMITTED, **_CLEARED_REVIEW)
        for e in selected
    ]


def update_review_note(entries: Iterable[TimeEntryRecord], ids: Iterable[str], text: str) -> list[TimeEntryRecord]:
    """Edit the comment on an already reviewed sheet."""
    selected = _select(entries, ids)
    _guard("update comment on", selected, REVIEWED_STATUSES)
    note = text.strip() if text else ""
    if not note and any(e.status == Status.REJECTED for e in selected):
        raise ReviewValidationError("A rejection reason is required")

    return [
        _rebuild(e, rejection_reason=note) if e.status == Status.REJECTED
        else _rebuild(e, manager_comment=note or None)
        for e in selected
    ]


def allowed_actions(status: Status) -> list[str]:
    """Manager/contractor actions that are legal from ``status``."""
    return {
        Status.DRAFT: ["edit", "submit"],
        Status.SUBMITTED: ["edit", "approve", "reject"],
        Status.APPROVED: ["edit", "revert", "comment"],
        Status.REJECTED: ["edit", "revert", "comment"],
    }[status]
