"""Pytest configuration and fixtures for TimeLink tests."""

import os

# Point the app at sqlite BEFORE importing anything that builds the engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTH_MODE"] = "demo"
os.environ["ENHANCE_API_KEY"] = ""

import pytest
from datetime import date, timedelta
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from timelink.database import Base, get_db
from timelink.models.project import Project, Task
from timelink.models.user import Tenant, User
from timelink.schemas.timesheet import Status, TimeEntryRecord
from timelink.seed import PROJECTS, TASKS, TENANTS, USERS

TEST_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Monday; the Saturday and Sunday of this week are WEEK_OF + 5 and + 6
WEEK_OF = date(2024, 11, 18)


@pytest.fixture(scope="function")
def db_session():
    """Fresh in-memory database with the demo tenants, users, projects and tasks."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    for model, rows in ((Tenant, TENANTS), (User, USERS), (Project, PROJECTS), (Task, TASKS)):
        session.add_all(model(**row) for row in rows)
    session.commit()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


def as_user(user_id: str, tenant_id: str = "t-acme") -> dict:
    """Demo-mode identity headers."""
    return {"X-User-Id": user_id, "X-Tenant-Id": tenant_id}


ALICE = as_user("u1")
BOB = as_user("u2")
CHARLIE = as_user("u3")
DANA = as_user("u4", "t-globex")


def make_entry(
    entry_id: str = "e1",
    day: date = WEEK_OF,
    hours: float = 8.0,
    status: Status = Status.DRAFT,
    **overrides,
) -> TimeEntryRecord:
    data = {
        "id": entry_id,
        "tenant_id": "t-acme",
        "contractor_id": "u1",
        "contractor_name": "Alice Contractor",
        "project_id": "p1",
        "project_name": "Website Redesign",
        "task_id": "tk1",
        "task_name": "Frontend Development",
        "date": day,
        "hours": hours,
        "description": "Work",
        "status": status,
    }
    data.update(overrides)
    return TimeEntryRecord(**data)


def week_day(offset: int) -> date:
    return WEEK_OF + timedelta(days=offset)
