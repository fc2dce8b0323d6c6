"""
Simulated payroll system sync.

There is no real payroll backend: calls are logged and answered with canned
remote ids, and a configurable share of uploads fail the way an unreachable
API would.
"""

import os
import random
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from timelink.schemas.tenant import UserRecord
from timelink.schemas.timesheet import Status, TimeEntryRecord

logger = logging.getLogger(__name__)

PAYROLL_SYNC_FAILURE_RATE = float(os.getenv("PAYROLL_SYNC_FAILURE_RATE", "0.1"))

SIMULATED_PARTNER_ID = 5542
SIMULATED_TIMESHEET_ID = 9981


@dataclass
class SyncResult:
    success: bool
    message: str
    remote_id: Optional[int] = None
    entry_id: Optional[str] = None


@dataclass
class BatchSyncResult:
    synced: list[SyncResult] = field(default_factory=list)
    failed: list[SyncResult] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class PayrollSync:
    def __init__(self, failure_rate: float = PAYROLL_SYNC_FAILURE_RATE, rng: Optional[random.Random] = None):
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()

    def sync_user(self, user: UserRecord) -> SyncResult:
        logger.info("[Payroll] Checking existence of user: %s", user.email)
        logger.info("[Payroll] User %s provisioned with remote id %d", user.email, SIMULATED_PARTNER_ID)
        return SyncResult(True, "User provisioned in payroll successfully", SIMULATED_PARTNER_ID)

    def upload_entry(self, entry: TimeEntryRecord) -> SyncResult:
        if entry.status != Status.APPROVED:
            return SyncResult(False, f"Entry is {entry.status.value}, only Approved entries are synced", entry_id=entry.id)

        logger.info("[Payroll] Uploading entry %s for project %s", entry.id, entry.project_name)
        if self.rng.random() < self.failure_rate:
            logger.error("[Payroll] Failed to sync entry %s: API error 500", entry.id)
            return SyncResult(False, "Payroll API connection failed", entry_id=entry.id)

        logger.info("[Payroll] Entry %s synced as timesheet %d", entry.id, SIMULATED_TIMESHEET_ID)
        return SyncResult(True, "Timesheet synced to payroll", SIMULATED_TIMESHEET_ID, entry.id)

    def upload_entries(self, entries: Iterable[TimeEntryRecord]) -> BatchSyncResult:
        result = BatchSyncResult()
        for entry in entries:
            if entry.status != Status.APPROVED:
                result.skipped.append(entry.id)
                continue
            outcome = self.upload_entry(entry)
            (result.synced if outcome.success else result.failed).append(outcome)
        return result
