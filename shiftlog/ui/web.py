"""JSON API for ShiftLog.

A lightweight Flask app exposing:
- Health check
- Dashboard summary and daily/weekly/monthly chart data
- Reports as JSON or CSV
- User settings
- Session and break lifecycle, manual entries and edits
- Recent entries
"""

import logging
import os
import threading
from datetime import date, datetime
from typing import Any, Callable, Optional

from flask import Flask, Response, current_app, g, jsonify, request

from shiftlog.core.aggregation import DashboardAggregator
from shiftlog.core.errors import (
    DataAccessError,
    EntryNotFound,
    InconsistentInterval,
    InvalidSettings,
    InvalidTimeSpec,
    InvalidTimezone,
    SessionConflict,
)
from shiftlog.core.manual_entry import ManualBreak, build_manual_entry
from shiftlog.core.models import EntryStatus, WorkSession, to_dict
from shiftlog.core.settings import settings_update_from_dict
from shiftlog.core.timezone import parse_civil_date, resolve_wall_clock
from shiftlog.persistence.store import TimeEntryStore
from shiftlog.reporting.exporter import ReportExporter
from shiftlog.reporting.report import ReportGenerator

logger = logging.getLogger(__name__)

StoreFactory = Callable[[], TimeEntryStore]


def default_store_factory(config: dict[str, Any]) -> StoreFactory:
    """Return a factory opening the configured database."""
    db_path = os.path.expanduser(config.get("database_path", "~/.shiftlog/shiftlog.db"))
    default_tz = config.get("default_timezone", "UTC")

    def factory() -> TimeEntryStore:
        store = TimeEntryStore(db_path, default_tz)
        store.init_db()
        return store

    return factory


def _store() -> TimeEntryStore:
    """The request's store; SQLite connections are not shared across threads."""
    if "store" not in g:
        g.store = current_app.config["STORE_FACTORY"]()
    return g.store


def _optional_date(name: str) -> Optional[date]:
    value = request.args.get(name)
    return parse_civil_date(value) if value else None


def _required_date(name: str) -> date:
    value = request.args.get(name)
    if not value:
        raise InvalidTimeSpec(f"'{name}' is required (YYYY-MM-DD)")
    return parse_civil_date(value)


def _json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _manual_breaks(data: dict[str, Any]) -> list[ManualBreak]:
    raw = data.get("breaks") or []
    if not isinstance(raw, list) or not all(isinstance(b, dict) for b in raw):
        raise InvalidTimeSpec("'breaks' must be a list of objects")
    return [ManualBreak(start_time=b.get("start_time", ""), end_time=b.get("end_time") or None) for b in raw]


def _break_instants(data: dict[str, Any], tz: str) -> tuple[datetime, Optional[datetime]]:
    day = data.get("date")
    if not day or not data.get("start_time"):
        raise InvalidTimeSpec("A date and start time are required")
    start = resolve_wall_clock(day, data["start_time"], tz)
    end = resolve_wall_clock(day, data["end_time"], tz) if data.get("end_time") else None
    return start, end


def _existing_session(store: TimeEntryStore, session_id: int) -> WorkSession:
    session = store.get_session(session_id)
    if session is None or session.status is EntryStatus.DELETED:
        raise EntryNotFound(f"Session {session_id} not found")
    return session


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def create_flask_app(
    config: Optional[dict[str, Any]] = None,
    store_factory: Optional[StoreFactory] = None,
) -> Flask:
    config = config or {}
    app = Flask(__name__)
    app.config["STORE_FACTORY"] = store_factory or default_store_factory(config)
    app.config["SHIFTLOG"] = config

    @app.teardown_appcontext
    def close_store(exc):
        store = g.pop("store", None)
        if store is not None:
            store.close()

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    @app.errorhandler(InvalidTimeSpec)
    @app.errorhandler(InvalidTimezone)
    @app.errorhandler(InvalidSettings)
    @app.errorhandler(InconsistentInterval)
    def bad_request(exc):
        return _error(str(exc), 400)

    @app.errorhandler(EntryNotFound)
    def not_found(exc):
        return _error(str(exc), 404)

    @app.errorhandler(SessionConflict)
    def conflict(exc):
        return _error(str(exc), 409)

    @app.errorhandler(DataAccessError)
    def data_access(exc):
        logger.error("Data access error: %s", exc)
        return _error(str(exc), 500)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @app.route("/api/health")
    def api_health():
        body = {"status": "UP", "database": "UP", "version": config.get("version", "unknown")}
        try:
            _store().ping()
        except DataAccessError as exc:
            logger.error("Health check: database connection failed: %s", exc)
            body.update(database="DOWN", databaseError=str(exc))
            return jsonify(body), 503
        return jsonify(body)

    # ------------------------------------------------------------------
    # Dashboard
    # ------------------------------------------------------------------

    @app.route("/api/users/<int:user_id>/summary")
    def api_summary(user_id):
        summary = DashboardAggregator(_store()).summary(user_id, tz=request.args.get("tz"))
        return jsonify(to_dict(summary))

    @app.route("/api/users/<int:user_id>/stats/<kind>")
    def api_stats(user_id, kind):
        aggregator = DashboardAggregator(_store())
        methods = {
            "daily": aggregator.daily_stats,
            "weekly": aggregator.weekly_stats,
            "monthly": aggregator.monthly_stats,
        }
        if kind not in methods:
            return _error(f"unknown stats period: {kind}", 404)
        rows = methods[kind](user_id, day=_optional_date("date"), tz=request.args.get("tz"))
        return jsonify([to_dict(r) for r in rows])

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def _report(user_id):
        start = _required_date("start")
        end = _required_date("end")
        return ReportGenerator(_store()).generate(user_id, start, end, tz=request.args.get("tz"))

    @app.route("/api/users/<int:user_id>/report")
    def api_report(user_id):
        return jsonify(to_dict(_report(user_id)))

    @app.route("/api/users/<int:user_id>/report.csv")
    def api_report_csv(user_id):
        report = _report(user_id)
        filename = f"shiftlog-report-{report.start_date}-{report.end_date}.csv"
        return Response(
            ReportExporter().to_csv(report),
            mimetype="text/csv",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @app.route("/api/users/<int:user_id>/settings")
    def api_get_settings(user_id):
        return jsonify(to_dict(_store().get_user_settings(user_id)))

    @app.route("/api/users/<int:user_id>/settings", methods=["POST"])
    def api_update_settings(user_id):
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return _error("invalid settings payload", 400)
        settings = _store().update_user_settings(user_id, settings_update_from_dict(data))
        return jsonify(to_dict(settings))

    # ------------------------------------------------------------------
    # Sessions and breaks
    # ------------------------------------------------------------------

    @app.route("/api/users/<int:user_id>/entries/active")
    def api_active_entry(user_id):
        active = _store().get_active_session(user_id)
        if active is None:
            return jsonify(None)
        session, brk = active
        return jsonify({
            "session": to_dict(session),
            "active_break": to_dict(brk) if brk is not None else None,
        })

    @app.route("/api/users/<int:user_id>/entries/start", methods=["POST"])
    def api_start_entry(user_id):
        return jsonify(to_dict(_store().start_session(user_id)))

    @app.route("/api/entries/<int:session_id>/end", methods=["POST"])
    def api_end_entry(session_id):
        return jsonify(to_dict(_store().end_session(session_id)))

    @app.route("/api/entries/<int:session_id>", methods=["DELETE"])
    def api_delete_entry(session_id):
        _store().delete_session(session_id)
        return jsonify({"ok": True})

    @app.route("/api/entries/<int:session_id>/breaks/start", methods=["POST"])
    def api_start_break(session_id):
        return jsonify(to_dict(_store().start_break(session_id)))

    @app.route("/api/breaks/<int:break_id>/end", methods=["POST"])
    def api_end_break(break_id):
        return jsonify(to_dict(_store().end_break(break_id)))

    @app.route("/api/users/<int:user_id>/entries", methods=["POST"])
    def api_manual_entry(user_id):
        data = _json_body()
        store = _store()
        tz = data.get("timezone") or store.fetch_user_timezone(user_id)
        entry = build_manual_entry(
            data.get("date", ""),
            data.get("start_time", ""),
            data.get("end_time") or None,
            _manual_breaks(data),
            tz,
        )
        session = store.add_manual_session(user_id, entry)
        logger.info("Created manual entry %s for user %s", session.id, user_id)
        return jsonify(to_dict(session)), 201

    @app.route("/api/users/<int:user_id>/entries/recent")
    def api_recent_entries(user_id):
        limit = request.args.get("limit", 5, type=int)
        if limit < 1:
            return _error("'limit' must be a positive integer", 400)
        return jsonify([to_dict(s) for s in _store().get_recent_sessions(user_id, limit)])

    @app.route("/api/entries/<int:session_id>", methods=["PUT"])
    def api_update_entry(session_id):
        data = _json_body()
        store = _store()
        session = _existing_session(store, session_id)
        tz = data.get("timezone") or store.fetch_user_timezone(session.user_id)
        entry = build_manual_entry(
            data.get("date", ""),
            data.get("start_time", ""),
            data.get("end_time") or None,
            _manual_breaks(data),
            tz,
        )
        return jsonify(to_dict(store.update_session(session_id, entry)))

    @app.route("/api/entries/<int:session_id>/breaks", methods=["POST"])
    def api_add_break(session_id):
        data = _json_body()
        store = _store()
        session = _existing_session(store, session_id)
        start, end = _break_instants(data, data.get("timezone") or store.fetch_user_timezone(session.user_id))
        return jsonify(to_dict(store.add_break(session_id, start, end))), 201

    @app.route("/api/breaks/<int:break_id>", methods=["PUT"])
    def api_update_break(break_id):
        data = _json_body()
        store = _store()
        brk = store.get_break(break_id)
        if brk is None:
            raise EntryNotFound(f"Break {break_id} not found")
        session = _existing_session(store, brk.session_id)
        start, end = _break_instants(data, data.get("timezone") or store.fetch_user_timezone(session.user_id))
        return jsonify(to_dict(store.update_break(break_id, start, end)))

    @app.route("/api/breaks/<int:break_id>", methods=["DELETE"])
    def api_delete_break(break_id):
        _store().delete_break(break_id)
        return jsonify({"ok": True})

    return app


def start_dashboard(config: dict[str, Any], host: str = "127.0.0.1", port: int = 5555) -> threading.Thread:
    """Start the Flask API in a daemon thread."""
    flask_app = create_flask_app(config)

    def _run():
        flask_app.run(host=host, port=port, debug=False, use_reloader=False)

    t = threading.Thread(target=_run, daemon=True, name="shiftlog-web")
    t.start()
    logger.info("Dashboard started at http://%s:%d", host, port)
    return t
