"""Tests for the Flask JSON API."""

from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from shiftlog.core.errors import DataAccessError
from shiftlog.core.manual_entry import ManualBreak, build_manual_entry
from shiftlog.core.timezone import UTC
from shiftlog.persistence.store import TimeEntryStore
from shiftlog.ui.web import create_flask_app, default_store_factory


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "shiftlog.db")


@pytest.fixture
def app(db_path):
    flask_app = create_flask_app({"database_path": db_path, "version": "test"})
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(db_path):
    s = TimeEntryStore(db_path)
    s.init_db()
    yield s
    s.close()


def _seed_day(store, day="2025-01-10", tz="UTC"):
    entry = build_manual_entry(day, "09:00", "17:00", [ManualBreak("12:00", "13:00")], tz)
    return store.add_manual_session(1, entry)


# ------------------------------------------------------------------
# Health
# ------------------------------------------------------------------

class TestHealth:

    def test_up(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "UP"
        assert body["database"] == "UP"
        assert body["version"] == "test"

    def test_database_down(self):
        broken = MagicMock(spec=TimeEntryStore)
        broken.ping.side_effect = DataAccessError("Failed to check the database connection")
        flask_app = create_flask_app({}, store_factory=lambda: broken)
        resp = flask_app.test_client().get("/api/health")
        assert resp.status_code == 503
        assert resp.get_json()["database"] == "DOWN"
        broken.close.assert_called_once()


# ------------------------------------------------------------------
# Dashboard
# ------------------------------------------------------------------

class TestDashboard:

    def test_summary_shape(self, client):
        resp = client.get("/api/users/1/summary")
        assert resp.status_code == 200
        body = resp.get_json()
        assert set(body) == {"today", "week", "month", "today_breaks"}
        assert body["today"]["percent_change"] == 100

    def test_summary_invalid_timezone(self, client):
        resp = client.get("/api/users/1/summary?tz=Not/AZone")
        assert resp.status_code == 400
        assert "timezone" in resp.get_json()["error"].lower()

    def test_daily_stats(self, client, store):
        _seed_day(store)
        resp = client.get("/api/users/1/stats/daily?date=2025-01-10&tz=UTC")
        assert resp.status_code == 200
        rows = resp.get_json()
        assert len(rows) == 24
        assert rows[9] == {"hour": 9, "label": "9 AM", "work_minutes": 60, "break_minutes": 0}
        assert rows[12]["break_minutes"] == 60

    def test_weekly_stats(self, client, store):
        _seed_day(store)
        rows = client.get("/api/users/1/stats/weekly?date=2025-01-10").get_json()
        friday = rows[5]
        assert friday["label"] == "Fri"
        assert friday["work_hours"] == 7.0

    def test_monthly_stats(self, client, store):
        _seed_day(store)
        rows = client.get("/api/users/1/stats/monthly?date=2025-01-10").get_json()
        assert rows == [{"week": 2, "label": "Week 2", "work_hours": 7.0, "break_hours": 1.0}]

    def test_unknown_stats_period(self, client):
        assert client.get("/api/users/1/stats/yearly").status_code == 404

    def test_bad_date(self, client):
        resp = client.get("/api/users/1/stats/daily?date=10-01-2025")
        assert resp.status_code == 400


# ------------------------------------------------------------------
# Reports
# ------------------------------------------------------------------

class TestReports:

    def test_report_json(self, client, store):
        _seed_day(store, "2025-01-10")
        _seed_day(store, "2025-01-12")
        resp = client.get("/api/users/1/report?start=2025-01-10&end=2025-01-12")
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["start_date"] == "2025-01-10"
        assert body["timezone"] == "UTC"
        assert [e["date"] for e in body["entries"]] == ["2025-01-12", "2025-01-10"]
        assert body["summary"]["days_worked"] == 2
        assert body["summary"]["total_net_work_ms"] == 14 * 3_600_000

    def test_report_uses_user_timezone(self, client, store):
        _seed_day(store, "2025-01-10", tz="Asia/Tokyo")
        client.post("/api/users/1/settings", json={"timezone": "Asia/Tokyo"})
        body = client.get("/api/users/1/report?start=2025-01-10&end=2025-01-10").get_json()
        assert body["timezone"] == "Asia/Tokyo"
        assert body["entries"][0]["start_time"] == "09:00"

    def test_report_requires_dates(self, client):
        resp = client.get("/api/users/1/report?start=2025-01-10")
        assert resp.status_code == 400
        assert "end" in resp.get_json()["error"]

    def test_report_csv(self, client, store):
        _seed_day(store)
        resp = client.get("/api/users/1/report.csv?start=2025-01-10&end=2025-01-10")
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert "shiftlog-report-2025-01-10-2025-01-10.csv" in resp.headers["Content-Disposition"]
        lines = resp.get_data(as_text=True).splitlines()
        assert lines[0] == "Date,Start Time,End Time,Duration,Breaks,Net Work"
        assert lines[1] == "2025-01-10,09:00,17:00,8h 00m,1h 00m,7h 00m"


# ------------------------------------------------------------------
# Settings
# ------------------------------------------------------------------

class TestSettings:

    def test_defaults(self, client):
        body = client.get("/api/users/1/settings").get_json()
        assert body["timezone"] == "UTC"
        assert body["theme"] == "system"
        assert body["working_hours"] == 8

    def test_partial_update(self, client):
        resp = client.post("/api/users/1/settings", json={"theme": "dark", "working_hours": 6})
        assert resp.status_code == 200
        body = client.get("/api/users/1/settings").get_json()
        assert body["theme"] == "dark"
        assert body["working_hours"] == 6
        assert body["share_duration_days"] == 7

    def test_invalid_update(self, client):
        resp = client.post("/api/users/1/settings", json={"timezone": "Nowhere/Land"})
        assert resp.status_code == 400
        assert client.get("/api/users/1/settings").get_json()["timezone"] == "UTC"

    def test_unknown_key(self, client):
        resp = client.post("/api/users/1/settings", json={"font": "serif"})
        assert resp.status_code == 400

    def test_non_object_payload(self, client):
        resp = client.post("/api/users/1/settings", json=["dark"])
        assert resp.status_code == 400


# ------------------------------------------------------------------
# Sessions and breaks
# ------------------------------------------------------------------

class TestEntries:

    def test_lifecycle(self, client):
        assert client.get("/api/users/1/entries/active").get_json() is None

        session = client.post("/api/users/1/entries/start").get_json()
        assert session["status"] == "active"

        active = client.get("/api/users/1/entries/active").get_json()
        assert active["session"]["id"] == session["id"]
        assert active["active_break"] is None

        brk = client.post(f"/api/entries/{session['id']}/breaks/start").get_json()
        assert client.get("/api/users/1/entries/active").get_json()["active_break"]["id"] == brk["id"]

        ended_break = client.post(f"/api/breaks/{brk['id']}/end").get_json()
        assert ended_break["end"] is not None

        ended = client.post(f"/api/entries/{session['id']}/end").get_json()
        assert ended["status"] == "completed"
        assert client.get("/api/users/1/entries/active").get_json() is None

    def test_second_start_conflicts(self, client):
        client.post("/api/users/1/entries/start")
        resp = client.post("/api/users/1/entries/start")
        assert resp.status_code == 409

    def test_end_inactive_session_conflicts(self, client):
        session = client.post("/api/users/1/entries/start").get_json()
        client.post(f"/api/entries/{session['id']}/end")
        assert client.post(f"/api/entries/{session['id']}/end").status_code == 409

    def test_delete_removes_from_report(self, client, store):
        session = _seed_day(store)
        assert client.delete(f"/api/entries/{session.id}").get_json() == {"ok": True}
        body = client.get("/api/users/1/report?start=2025-01-10&end=2025-01-10").get_json()
        assert body["entries"] == []

    def test_delete_unknown_entry(self, client):
        resp = client.delete("/api/entries/999")
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Session 999 not found"

    def test_recent_entries(self, client, store):
        for day in ("2025-01-08", "2025-01-09", "2025-01-10"):
            _seed_day(store, day)
        rows = client.get("/api/users/1/entries/recent?limit=2").get_json()
        assert [r["start"] for r in rows] == ["2025-01-10T09:00:00+00:00", "2025-01-09T09:00:00+00:00"]

    def test_recent_entries_bad_limit(self, client):
        assert client.get("/api/users/1/entries/recent?limit=0").status_code == 400

    def test_manual_entry_null_breaks(self, client):
        resp = client.post(
            "/api/users/1/entries",
            json={"date": "2025-01-10", "start_time": "09:00", "end_time": "10:00", "breaks": None},
        )
        assert resp.status_code == 201

    def test_manual_entry_breaks_not_a_list(self, client):
        resp = client.post(
            "/api/users/1/entries",
            json={"date": "2025-01-10", "start_time": "09:00", "end_time": "10:00", "breaks": "12:00"},
        )
        assert resp.status_code == 400
        assert "breaks" in resp.get_json()["error"]

    def test_edit_entry(self, client, store):
        session = _seed_day(store)
        resp = client.put(
            f"/api/entries/{session.id}",
            json={
                "date": "2025-01-10",
                "start_time": "08:00",
                "end_time": "16:00",
                "breaks": [{"start_time": "11:00", "end_time": "11:30"}],
            },
        )
        assert resp.status_code == 200
        assert resp.get_json()["start"] == "2025-01-10T08:00:00+00:00"
        body = client.get("/api/users/1/report?start=2025-01-10&end=2025-01-10").get_json()
        assert body["summary"]["total_net_work_ms"] == 7 * 3_600_000 + 30 * 60_000

    def test_edit_entry_validation(self, client, store):
        session = _seed_day(store)
        resp = client.put(
            f"/api/entries/{session.id}",
            json={
                "date": "2025-01-10",
                "start_time": "09:00",
                "end_time": "17:00",
                "breaks": [{"start_time": "18:00", "end_time": "18:30"}],
            },
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Breaks must be within the work period."

    def test_edit_unknown_entry(self, client):
        resp = client.put("/api/entries/999", json={"date": "2025-01-10", "start_time": "09:00"})
        assert resp.status_code == 404

    def test_break_editing(self, client, store):
        session = _seed_day(store)
        added = client.post(
            f"/api/entries/{session.id}/breaks",
            json={"date": "2025-01-10", "start_time": "15:00", "end_time": "15:15"},
        )
        assert added.status_code == 201
        brk = added.get_json()

        moved = client.put(
            f"/api/breaks/{brk['id']}",
            json={"date": "2025-01-10", "start_time": "15:30", "end_time": "16:00"},
        )
        assert moved.get_json()["start"] == "2025-01-10T15:30:00+00:00"

        assert client.delete(f"/api/breaks/{brk['id']}").get_json() == {"ok": True}
        assert len(store.fetch_breaks([session.id])) == 1

    def test_break_outside_entry_rejected(self, client, store):
        session = _seed_day(store)
        resp = client.post(
            f"/api/entries/{session.id}/breaks",
            json={"date": "2025-01-10", "start_time": "08:00", "end_time": "08:30"},
        )
        assert resp.status_code == 400

    def test_break_uses_user_timezone(self, client, store):
        client.post("/api/users/1/settings", json={"timezone": "Asia/Tokyo"})
        session = _seed_day(store, tz="Asia/Tokyo")
        brk = client.post(
            f"/api/entries/{session.id}/breaks",
            json={"date": "2025-01-10", "start_time": "15:00", "end_time": "15:15"},
        ).get_json()
        assert brk["start"] == "2025-01-10T06:00:00+00:00"

    def test_delete_unknown_break(self, client):
        assert client.delete("/api/breaks/999").status_code == 404

    def test_manual_entry(self, client, store):
        resp = client.post(
            "/api/users/1/entries",
            json={
                "date": "2025-01-10",
                "start_time": "09:00",
                "end_time": "17:00",
                "timezone": "America/New_York",
                "breaks": [{"start_time": "12:00", "end_time": "12:30"}],
            },
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["status"] == "completed"
        assert body["start"] == "2025-01-10T14:00:00+00:00"
        assert len(store.fetch_breaks([body["id"]])) == 1

    def test_manual_entry_defaults_to_user_timezone(self, client):
        client.post("/api/users/1/settings", json={"timezone": "Europe/Paris"})
        body = client.post(
            "/api/users/1/entries",
            json={"date": "2025-01-10", "start_time": "09:00", "end_time": "10:00"},
        ).get_json()
        assert body["start"] == "2025-01-10T08:00:00+00:00"

    def test_manual_entry_validation(self, client):
        resp = client.post(
            "/api/users/1/entries",
            json={"date": "2025-01-10", "start_time": "17:00", "end_time": "09:00"},
        )
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "End time must be after start time."

    def test_manual_entry_missing_fields(self, client):
        resp = client.post("/api/users/1/entries", json={"start_time": "09:00"})
        assert resp.status_code == 400


# ------------------------------------------------------------------
# Store factory
# ------------------------------------------------------------------

def test_default_store_factory_initialises_schema(db_path):
    store = default_store_factory({"database_path": db_path, "default_timezone": "Europe/Rome"})()
    try:
        assert store.fetch_user_timezone(1) == "Europe/Rome"
    finally:
        store.close()


def test_store_closed_after_request():
    store = MagicMock(spec=TimeEntryStore)
    store.get_user_settings.side_effect = DataAccessError("Failed to fetch user settings")
    flask_app = create_flask_app({}, store_factory=lambda: store)
    resp = flask_app.test_client().get("/api/users/1/settings")
    assert resp.status_code == 500
    store.close.assert_called_once()
