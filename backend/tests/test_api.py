"""End-to-end tests through the HTTP API."""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from timelink.routers.auth import get_idp_client
from timelink.routers.export import get_payroll_sync
from timelink.services.auth import create_access_token
from timelink.services.payroll_sync import PayrollSync
from timelink.services.policy import WEEKEND_WARNING
from main import app

from conftest import ALICE, BOB, CHARLIE, DANA, WEEK_OF, week_day

TIMESHEETS = "/api/v1/timesheets"
MANAGER = "/api/v1/manager"
EXPORT = "/api/v1/export"
TENANT = "/api/v1/tenant"


def _record(client, day, hours, headers=ALICE, project_id="p1", task_id="tk1", **extra):
    body = {"project_id": project_id, "task_id": task_id, "date": day.isoformat(), "hours": hours, **extra}
    return client.post(f"{TIMESHEETS}/cells", json=body, headers=headers)


@pytest.fixture
def submitted_week(client):
    """Alice logs Mon-Fri 8h plus 2h on Saturday and submits with confirmation."""
    for offset in range(5):
        assert _record(client, week_day(offset), 8).status_code == 200
    assert _record(client, week_day(5), 2).status_code == 200
    r = client.post(f"{TIMESHEETS}/submit", json={"week_of": WEEK_OF.isoformat(), "confirm": True}, headers=ALICE)
    assert r.status_code == 200
    assert r.json()["submitted"] == 6
    return WEEK_OF


def _review(client, action, headers=BOB, **body):
    payload = {"contractor_id": "u1", "week_of": WEEK_OF.isoformat(), **body}
    method = client.put if action == "comment" else client.post
    return method(f"{MANAGER}/{action}", json=payload, headers=headers)


class TestContractorGrid:
    def test_record_and_read_week(self, client):
        r = _record(client, week_day(0), 7.5, description="Hero section")
        assert r.status_code == 200
        entry = r.json()["entry"]
        assert entry["status"] == "Draft"
        assert entry["project_name"] == "Website Redesign"

        grid = client.get(f"{TIMESHEETS}/week", params={"week_of": week_day(3).isoformat()}, headers=ALICE).json()
        assert grid["week_start"] == WEEK_OF.isoformat()
        assert grid["status"] == "DRAFT"
        assert grid["week_total"] == 7.5
        assert grid["rows"][0]["description"] == "Hero section"

    def test_duration_text_is_parsed(self, client):
        body = {"project_id": "p1", "task_id": "tk1", "date": WEEK_OF.isoformat(), "duration": "1:45"}
        r = client.post(f"{TIMESHEETS}/cells", json=body, headers=ALICE)
        assert r.json()["entry"]["hours"] == 1.75

    def test_hours_above_a_day_are_rejected(self, client):
        assert _record(client, week_day(0), 99).status_code == 422
        body = {"project_id": "p1", "task_id": "tk1", "date": WEEK_OF.isoformat(), "duration": "99:00"}
        assert client.post(f"{TIMESHEETS}/cells", json=body, headers=ALICE).status_code == 422
        assert client.get(f"{TIMESHEETS}/", headers=ALICE).json() == []

    def test_zero_hours_on_empty_cell_creates_nothing(self, client):
        r = _record(client, week_day(0), 0)
        assert r.json() == {"ok": True, "entry": None}
        assert client.get(f"{TIMESHEETS}/", headers=ALICE).json() == []

    def test_rewriting_a_cell_updates_the_same_entry(self, client):
        first = _record(client, week_day(0), 4).json()["entry"]
        second = _record(client, week_day(0), 6).json()["entry"]
        assert first["id"] == second["id"]
        assert second["hours"] == 6
        assert second["version"] == 2

    def test_unknown_project_and_foreign_task(self, client):
        assert _record(client, week_day(0), 2, project_id="nope").status_code == 404
        assert _record(client, week_day(0), 2, task_id="tk3").status_code == 404
        assert _record(client, week_day(0), 2, project_id="p4", task_id="tk4").status_code == 404

    def test_draft_rows_and_search(self, client):
        _record(client, week_day(0), 3, description="Hero")
        grid = client.get(
            f"{TIMESHEETS}/week",
            params={"week_of": WEEK_OF.isoformat(), "draft": ["p2:tk3", "p1:tk1"]},
            headers=ALICE,
        ).json()
        assert len(grid["rows"]) == 2
        assert grid["rows"][1]["is_draft"]

        bad = client.get(f"{TIMESHEETS}/week", params={"draft": "p2"}, headers=ALICE)
        assert bad.status_code == 400

        found = client.get(f"{TIMESHEETS}/week", params={"week_of": WEEK_OF.isoformat(), "q": "zzz"}, headers=ALICE)
        assert found.json()["rows"] == []

    def test_row_update_reclassifies_every_entry(self, client):
        _record(client, week_day(0), 3)
        _record(client, week_day(1), 4)
        r = client.put(f"{TIMESHEETS}/rows", headers=ALICE, json={
            "week_of": WEEK_OF.isoformat(), "project_id": "p1", "task_id": "tk1",
            "new_project_id": "p2", "description": "Moved",
        })
        assert r.status_code == 200
        assert {(e["project_id"], e["task_id"], e["description"]) for e in r.json()} == {("p2", "tk3", "Moved")}

    def test_moving_an_entry_onto_a_taken_cell_conflicts(self, client):
        _record(client, week_day(0), 3, task_id="tk1")
        design = _record(client, week_day(0), 5, task_id="tk2").json()["entry"]

        r = client.put(f"{TIMESHEETS}/{design['id']}", json={"task_id": "tk1"}, headers=ALICE)
        assert r.status_code == 409

        grid = client.get(f"{TIMESHEETS}/week", params={"week_of": WEEK_OF.isoformat()}, headers=ALICE).json()
        assert len(grid["entry_ids"]) == 2
        assert grid["week_total"] == 8

    def test_moving_an_entry_to_a_free_day_cell_is_allowed(self, client):
        _record(client, week_day(0), 3, task_id="tk1")
        design = _record(client, week_day(1), 5, task_id="tk2").json()["entry"]
        r = client.put(f"{TIMESHEETS}/{design['id']}", json={"task_id": "tk1"}, headers=ALICE)
        assert r.status_code == 200
        assert r.json()["task_name"] == "Frontend Development"

    def test_row_update_onto_a_taken_row_conflicts(self, client):
        _record(client, week_day(0), 3)
        _record(client, week_day(0), 4, project_id="p2", task_id="tk3")
        r = client.put(f"{TIMESHEETS}/rows", headers=ALICE, json={
            "week_of": WEEK_OF.isoformat(), "project_id": "p1", "task_id": "tk1", "new_project_id": "p2",
        })
        assert r.status_code == 409
        entries = client.get(f"{TIMESHEETS}/", headers=ALICE).json()
        assert sorted(e["project_id"] for e in entries) == ["p1", "p2"]

    def test_entries_are_private_to_their_contractor(self, client):
        entry = _record(client, week_day(0), 3).json()["entry"]
        assert client.get(f"{TIMESHEETS}/{entry['id']}", headers=CHARLIE).status_code == 404
        assert client.get(f"{TIMESHEETS}/{entry['id']}", headers=ALICE).status_code == 200

    def test_version_conflict_returns_409(self, client):
        entry = _record(client, week_day(0), 3).json()["entry"]
        ok = client.put(f"{TIMESHEETS}/{entry['id']}", json={"hours": 4, "expected_version": 1}, headers=ALICE)
        assert ok.status_code == 200
        stale = client.put(f"{TIMESHEETS}/{entry['id']}", json={"hours": 5, "expected_version": 1}, headers=ALICE)
        assert stale.status_code == 409

    def test_empty_update_is_rejected(self, client):
        entry = _record(client, week_day(0), 3).json()["entry"]
        assert client.put(f"{TIMESHEETS}/{entry['id']}", json={}, headers=ALICE).status_code == 400

    def test_enhance_without_key_echoes_text(self, client):
        r = client.post(f"{TIMESHEETS}/enhance", json={"text": "fixed stuff"}, headers=ALICE)
        assert r.json() == {"text": "fixed stuff"}


class TestSubmit:
    def test_nothing_to_submit(self, client):
        r = client.post(f"{TIMESHEETS}/submit", json={"week_of": WEEK_OF.isoformat()}, headers=ALICE)
        assert r.status_code == 400
        assert r.json()["detail"] == "No draft entries to submit for this week."

    def test_weekend_hours_need_confirmation(self, client):
        _record(client, week_day(6), 2)
        r = client.post(f"{TIMESHEETS}/submit", json={"week_of": WEEK_OF.isoformat()}, headers=ALICE)
        body = r.json()
        assert body["requires_confirmation"] is True
        assert body["warnings"] == [WEEKEND_WARNING]
        assert body["submitted"] == 0

        entries = client.get(f"{TIMESHEETS}/", headers=ALICE).json()
        assert {e["status"] for e in entries} == {"Draft"}

    def test_clean_week_submits_directly(self, client):
        _record(client, week_day(0), 8)
        r = client.post(f"{TIMESHEETS}/submit", json={"week_of": WEEK_OF.isoformat()}, headers=ALICE)
        assert r.json() == {"submitted": 1, "requires_confirmation": False, "warnings": []}

    def test_submitted_entry_cannot_be_deleted(self, client, submitted_week):
        entry_id = client.get(f"{TIMESHEETS}/", headers=ALICE).json()[0]["id"]
        assert client.delete(f"{TIMESHEETS}/{entry_id}", headers=ALICE).status_code == 409

    def test_draft_entry_can_be_deleted(self, client):
        entry = _record(client, week_day(0), 3).json()["entry"]
        assert client.delete(f"{TIMESHEETS}/{entry['id']}", headers=ALICE).json() == {"ok": True}
        assert client.get(f"{TIMESHEETS}/{entry['id']}", headers=ALICE).status_code == 404


class TestManagerReview:
    def test_contractor_is_locked_out(self, client, submitted_week):
        assert client.get(f"{MANAGER}/sheets", headers=ALICE).status_code == 403
        assert _review(client, "approve", headers=ALICE).status_code == 403

    def test_queue_and_week_view(self, client, submitted_week):
        sections = client.get(f"{MANAGER}/sheets", headers=BOB).json()
        [sheet] = sections["pending"]
        assert sheet["contractor_id"] == "u1"
        assert sheet["total_hours"] == 42
        assert sheet["status"] == "PENDING"

        grid = client.get(f"{MANAGER}/sheets/u1", params={"week_of": WEEK_OF.isoformat()}, headers=BOB).json()
        assert grid["status"] == "PENDING"
        assert len(grid["entry_ids"]) == 6

        actions = client.get(f"{MANAGER}/sheets/u1/actions", params={"week_of": WEEK_OF.isoformat()}, headers=BOB)
        assert actions.json()["actions"] == ["approve", "reject"]

    def test_reject_revert_approve_cycle(self, client, submitted_week):
        assert _review(client, "reject", reason="  ").status_code == 400

        r = _review(client, "reject", reason="Split the Saturday hours")
        assert r.json() == {"ok": True, "action": "reject", "count": 6, "status": "REJECTED"}

        grid = client.get(f"{TIMESHEETS}/week", params={"week_of": WEEK_OF.isoformat()}, headers=ALICE).json()
        assert grid["status"] == "REJECTED"
        assert grid["review_note"] == "Split the Saturday hours"

        assert _review(client, "revert").json()["status"] == "PENDING"

        r = _review(client, "approve", comment="Thanks")
        assert r.json()["status"] == "APPROVED"
        entries = client.get(f"{TIMESHEETS}/", headers=ALICE).json()
        assert {e["reviewed_by"] for e in entries} == {"u2"}
        assert len({e["reviewed_at"] for e in entries}) == 1

        assert _review(client, "comment", comment="Great week").status_code == 200
        grid = client.get(f"{MANAGER}/sheets/u1", params={"week_of": WEEK_OF.isoformat()}, headers=BOB).json()
        assert grid["review_note"] == "Great week"

    def test_drafts_added_after_submit_stay_with_the_contractor(self, client, submitted_week):
        assert _record(client, week_day(6), 1).status_code == 200

        actions = client.get(f"{MANAGER}/sheets/u1/actions", params={"week_of": WEEK_OF.isoformat()}, headers=BOB)
        assert actions.json()["actions"] == ["approve", "reject"]
        assert actions.json()["draft_entries"] == 1

        r = _review(client, "approve")
        assert r.status_code == 200
        assert r.json()["count"] == 6
        statuses = sorted(e["status"] for e in client.get(f"{TIMESHEETS}/", headers=ALICE).json())
        assert statuses == ["Approved"] * 6 + ["Draft"]

    def test_reject_skips_late_drafts(self, client, submitted_week):
        _record(client, week_day(6), 1)
        r = _review(client, "reject", reason="Too many hours")
        assert r.json()["count"] == 6
        statuses = sorted(e["status"] for e in client.get(f"{TIMESHEETS}/", headers=ALICE).json())
        assert statuses == ["Draft"] + ["Rejected"] * 6

    def test_approving_twice_conflicts(self, client, submitted_week):
        assert _review(client, "approve").status_code == 200
        assert _review(client, "approve").status_code == 409

    def test_editing_approved_entry_returns_it_to_draft(self, client, submitted_week):
        _review(client, "approve")
        entry_id = client.get(f"{TIMESHEETS}/", headers=ALICE).json()[0]["id"]
        r = client.put(f"{TIMESHEETS}/{entry_id}", json={"hours": 6}, headers=ALICE)
        assert r.json()["status"] == "Draft"
        assert r.json()["reviewed_by"] is None

    def test_other_tenant_manager_sees_nothing(self, client, submitted_week):
        assert client.get(f"{MANAGER}/sheets", headers=DANA).json()["pending"] == []
        assert client.get(
            f"{MANAGER}/sheets/u1", params={"week_of": WEEK_OF.isoformat()}, headers=DANA
        ).status_code == 404
        assert _review(client, "approve", headers=DANA).status_code == 404


class TestExport:
    @pytest.fixture
    def approved_week(self, client, submitted_week):
        assert _review(client, "approve").status_code == 200
        return submitted_week

    def test_preview(self, client, approved_week):
        r = client.get(
            f"{EXPORT}/preview",
            params={"start": WEEK_OF.isoformat(), "end": week_day(4).isoformat()},
            headers=BOB,
        )
        body = r.json()
        assert body["count"] == 5
        assert body["total_hours"] == 40
        assert body["headers"][0] == "Client"

    def test_download_csv(self, client, approved_week):
        r = client.get(
            f"{EXPORT}/download",
            params={"start": WEEK_OF.isoformat(), "end": week_day(6).isoformat()},
            headers=BOB,
        )
        assert r.status_code == 200
        assert r.headers["content-type"].startswith("text/csv")
        assert "timesheet_export_2024-11-18_to_2024-11-24.csv" in r.headers["content-disposition"]
        assert r.content.decode("utf-8").startswith("\ufeff")

    def test_download_xlsx_is_a_workbook(self, client, approved_week):
        r = client.get(
            f"{EXPORT}/download",
            params={"start": WEEK_OF.isoformat(), "end": week_day(6).isoformat(), "fmt": "xlsx"},
            headers=BOB,
        )
        assert r.status_code == 200
        assert r.headers["content-type"] == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        assert "timesheet_export_2024-11-18_to_2024-11-24.xlsx" in r.headers["content-disposition"]
        assert r.content.startswith(b"PK")

    def test_bad_range(self, client):
        r = client.get(f"{EXPORT}/preview", params={"start": "2024-12-01", "end": "2024-11-01"}, headers=BOB)
        assert r.status_code == 400

    def test_contractor_cannot_export(self, client):
        assert client.get(f"{EXPORT}/preview", headers=ALICE).status_code == 403

    def test_payroll_sync(self, client, approved_week):
        app.dependency_overrides[get_payroll_sync] = lambda: PayrollSync(failure_rate=0)
        try:
            r = client.post(
                f"{EXPORT}/sync",
                json={"start": WEEK_OF.isoformat(), "end": week_day(6).isoformat()},
                headers=BOB,
            )
        finally:
            app.dependency_overrides.pop(get_payroll_sync, None)
        body = r.json()
        assert len(body["synced"]) == 6
        assert body["failed"] == []

    def test_summary(self, client, approved_week):
        body = client.get(f"{EXPORT}/summary", headers=BOB).json()
        assert body["total_hours"] == 42
        assert body["pending_hours"] == 0


class TestTenant:
    def test_tenant_and_reference_data(self, client):
        assert client.get(f"{TENANT}/", headers=ALICE).json()["domain"] == "acme.com"
        assert {p["id"] for p in client.get(f"{TENANT}/projects", headers=ALICE).json()} == {"p1", "p2", "p3"}
        tasks = client.get(f"{TENANT}/tasks", params={"project_id": "p2"}, headers=ALICE).json()
        assert [t["id"] for t in tasks] == ["tk3"]

    def test_users_are_tenant_scoped(self, client):
        ids = {u["id"] for u in client.get(f"{TENANT}/users", headers=DANA).json()}
        assert ids == {"u4"}

    def test_only_managers_add_users(self, client):
        body = {"name": "Eve", "email": "eve@acme.com"}
        assert client.post(f"{TENANT}/users", json=body, headers=ALICE).status_code == 403
        r = client.post(f"{TENANT}/users", json=body, headers=BOB)
        assert r.status_code == 201
        assert r.json()["tenant_id"] == "t-acme"
        assert client.post(f"{TENANT}/users", json=body, headers=BOB).status_code == 409

    def test_role_change(self, client):
        r = client.put(f"{TENANT}/users/u3/role", json={"role": "MANAGER"}, headers=BOB)
        assert r.json()["role"] == "MANAGER"
        assert client.get(f"{MANAGER}/sheets", headers=CHARLIE).status_code == 200
        assert client.put(f"{TENANT}/users/u4/role", json={"role": "CONTRACTOR"}, headers=BOB).status_code == 404


def _start_login(client):
    """Follow /auth/login far enough to get the state the provider will echo back."""
    r = client.get("/auth/login", follow_redirects=False)
    return parse_qs(urlparse(r.headers["location"]).query)["state"][0]


def _idp_returns(email, name=None):
    def handler(request):
        if request.method == "POST":
            return httpx.Response(200, json={"access_token": "idp-token"})
        return httpx.Response(200, json={"email": email, "name": name})

    app.dependency_overrides[get_idp_client] = lambda: httpx.Client(transport=httpx.MockTransport(handler))


class TestAuth:
    def test_unknown_demo_user(self, client):
        assert client.get("/auth/me", headers={"X-User-Id": "ghost"}).status_code == 401

    def test_bearer_token_wins_over_demo_headers(self, client):
        token = create_access_token("u2", "t-acme", "MANAGER")
        r = client.get("/auth/me", headers={"Authorization": f"Bearer {token}", **ALICE})
        assert r.json()["id"] == "u2"

    def test_invalid_token(self, client):
        assert client.get("/auth/me", headers={"Authorization": "Bearer nope"}).status_code == 401

    def test_login_redirects_to_provider(self, client):
        r = client.get("/auth/login", follow_redirects=False)
        assert r.status_code == 307
        assert "response_type=code" in r.headers["location"]

    def test_login_sets_state_cookie(self, client):
        r = client.get("/auth/login", follow_redirects=False)
        assert "timelink_login_state=" in r.headers["set-cookie"]
        assert "HttpOnly" in r.headers["set-cookie"]

    def test_callback_provisions_and_issues_token(self, client):
        state = _start_login(client)
        _idp_returns("grace@acme.com", "Grace")
        try:
            r = client.get("/auth/callback", params={"code": "abc", "state": state})
        finally:
            app.dependency_overrides.pop(get_idp_client, None)

        assert r.status_code == 200
        body = r.json()
        assert body["user"]["role"] == "CONTRACTOR"
        me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.json()["email"] == "grace@acme.com"

    def test_callback_for_unknown_domain(self, client):
        state = _start_login(client)
        _idp_returns("mallory@initech.com")
        try:
            r = client.get("/auth/callback", params={"code": "abc", "state": state})
        finally:
            app.dependency_overrides.pop(get_idp_client, None)
        assert r.status_code == 401

    @pytest.mark.parametrize("state", [None, "forged-state"])
    def test_callback_with_missing_or_wrong_state(self, client, state):
        _start_login(client)
        _idp_returns("grace@acme.com", "Grace")
        params = {"code": "abc"} if state is None else {"code": "abc", "state": state}
        try:
            r = client.get("/auth/callback", params=params)
        finally:
            app.dependency_overrides.pop(get_idp_client, None)
        assert r.status_code == 401
        assert r.json()["detail"] == "Invalid login state"

    def test_callback_without_state_cookie(self, client):
        state = _start_login(client)
        client.cookies.clear()
        _idp_returns("grace@acme.com", "Grace")
        try:
            r = client.get("/auth/callback", params={"code": "abc", "state": state})
        finally:
            app.dependency_overrides.pop(get_idp_client, None)
        assert r.status_code == 401


def test_health(client):
    assert client.get("/health").json() == {"ok": True}

