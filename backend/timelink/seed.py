"""
Seed script for TimeLink: demo tenants, people, projects and a few weeks of entries.

Run: python -m timelink.seed
"""
import logging
import sys
from datetime import date, datetime, timedelta, timezone

from timelink.database import Base, SessionLocal, engine
from timelink.models.project import Project, Task
from timelink.models.time_entry import TimeEntry
from timelink.models.user import ROLE_CONTRACTOR, ROLE_MANAGER, Tenant, User
from timelink.services.week import week_start

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

TENANTS = [
    {"id": "t-acme", "name": "Acme Corp", "domain": "acme.com"},
    {"id": "t-globex", "name": "Globex Corporation", "domain": "globex.com"},
]

USERS = [
    {"id": "u1", "tenant_id": "t-acme", "name": "Alice Contractor", "email": "alice@acme.com", "role": ROLE_CONTRACTOR},
    {"id": "u2", "tenant_id": "t-acme", "name": "Bob Manager", "email": "bob@acme.com", "role": ROLE_MANAGER},
    {"id": "u3", "tenant_id": "t-acme", "name": "Charlie Davis", "email": "charlie@acme.com", "role": ROLE_CONTRACTOR},
    {"id": "u4", "tenant_id": "t-globex", "name": "Dana Scully", "email": "dana@globex.com", "role": ROLE_MANAGER},
]

PROJECTS = [
    {"id": "p1", "tenant_id": "t-acme", "name": "Website Redesign", "code": "WEB-001"},
    {"id": "p2", "tenant_id": "t-acme", "name": "Mobile App", "code": "MOB-002"},
    {"id": "p3", "tenant_id": "t-acme", "name": "Internal Tools", "code": "INT-003"},
    {"id": "p4", "tenant_id": "t-globex", "name": "Globex Rebrand", "code": "GLX-001"},
]

TASKS = [
    {"id": "tk1", "tenant_id": "t-acme", "project_id": "p1", "name": "Frontend Development"},
    {"id": "tk2", "tenant_id": "t-acme", "project_id": "p1", "name": "Design Review"},
    {"id": "tk3", "tenant_id": "t-acme", "project_id": "p2", "name": "API Integration"},
    {"id": "tk4", "tenant_id": "t-globex", "project_id": "p4", "name": "Brand Guidelines"},
]


def _upsert_reference(db, model, rows) -> int:
    created = 0
    for data in rows:
        if db.get(model, data["id"]) is None:
            db.add(model(**data))
            created += 1
    db.flush()
    return created


def sample_entries(today: date) -> list[dict]:
    """A draft current week, a submitted last week and an approved week before that."""
    this_week = week_start(today)
    last_week = this_week - timedelta(days=7)
    two_back = this_week - timedelta(days=14)
    reviewed_at = datetime.now(timezone.utc)

    def entry(eid, user, project, task, day, hours, desc, status="Draft", **review):
        return {
            "id": eid, "tenant_id": "t-acme",
            "contractor_id": user["id"], "contractor_name": user["name"],
            "project_id": project["id"], "project_name": project["name"],
            "task_id": task["id"], "task_name": task["name"],
            "date": day, "hours": hours, "description": desc, "status": status,
            **review,
        }

    alice, _, charlie, _ = USERS
    web, mobile = PROJECTS[0], PROJECTS[1]
    frontend, review, api = TASKS[0], TASKS[1], TASKS[2]
    return [
        entry("e1", alice, web, frontend, this_week, 8, "Hero section layout"),
        entry("e2", alice, web, frontend, this_week + timedelta(days=1), 6.5, "Navigation component"),
        entry("e3", alice, mobile, api, this_week + timedelta(days=1), 1.5, "Auth endpoint wiring"),
        entry("e4", alice, web, review, last_week, 4, "Design sync with stakeholders", "Submitted"),
        entry("e5", alice, web, frontend, last_week + timedelta(days=2), 7.25, "Responsive fixes", "Submitted"),
        entry("e6", charlie, mobile, api, two_back, 8, "Push notifications", "Approved",
              reviewed_by="u2", reviewed_at=reviewed_at, manager_comment="Thanks!"),
        entry("e7", charlie, mobile, api, two_back + timedelta(days=1), 5, "Offline sync", "Approved",
              reviewed_by="u2", reviewed_at=reviewed_at),
    ]


def seed_entries(db, today: date | None = None) -> int:
    created = 0
    for data in sample_entries(today or date.today()):
        if db.get(TimeEntry, data["id"]) is None:
            db.add(TimeEntry(**data))
            created += 1
    return created


def run_seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        for label, model, rows in (
            ("tenants", Tenant, TENANTS),
            ("users", User, USERS),
            ("projects", Project, PROJECTS),
            ("tasks", Task, TASKS),
        ):
            created = _upsert_reference(db, model, rows)
            if created:
                logger.info("Seeded %d %s.", created, label)
            else:
                logger.info("%s already exist, skipping.", label.capitalize())

        created = seed_entries(db)
        db.commit()
        logger.info("Seeded %d sample time entries.", created)
        logger.info("Seed complete.")
    except Exception:
        db.rollback()
        logger.exception("Seed failed")
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
