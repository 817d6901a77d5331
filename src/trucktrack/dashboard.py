"""Flask JSON API for the TruckTrack fleet dashboard."""

from __future__ import annotations

import os
import secrets
import sys
import time
from functools import wraps
from pathlib import Path

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, request, session

load_dotenv()

from trucktrack import api_tracker, auth, i18n, reports
from trucktrack.analytics import TripAnalytics
from trucktrack.auth import AuthError, AuthService, PermissionDenied
from trucktrack.drive_sync import SimulatedDriveSink, SnapshotSink, sync_state
from trucktrack.gps_service import GPSProvider, SimulatedGPSProvider, get_provider, merge_drivers, merge_trucks
from trucktrack.insights import GeminiInsights, InsightGenerator
from trucktrack.store import PRIMARY_ADMIN_ID, TripStore

app = Flask(__name__)
app.secret_key = os.getenv("FLASK_SECRET_KEY") or secrets.token_hex(32)

api_tracker.init_db()

# Shared collaborators (lazy init)
_store: TripStore | None = None
_gps: GPSProvider | None = None
_insights: InsightGenerator | None = None
_drive: SnapshotSink | None = None
_analytics: TripAnalytics | None = None

# ── TTL Cache ────────────────────────────────────────────────────────────
# The GPS feed is slow; keep the last answer for a minute and fall back to
# the persisted copy when the provider fails.

_TTL = {"gps": 60, "insights": 300}
_cache_store: dict[str, tuple[float, object]] = {}  # key -> (expires_at, data)


def _cache_get(key: str) -> object | None:
    entry = _cache_store.get(key)
    if entry and entry[0] > time.monotonic():
        api_tracker.log_call("cache", key, "success", 0, cached=True)
        return entry[1]
    return None


def _cache_set(key: str, data: object, ttl_key: str) -> None:
    """Store data in memory and persist it for stale-serve fallback."""
    ttl = _TTL.get(ttl_key, 60)
    _cache_store[key] = (time.monotonic() + ttl, data)
    api_tracker.cache_response(key, data, ttl)


def _cache_stale(key: str) -> object | None:
    data = api_tracker.get_cached_response(key, max_age=0)
    if data is not None:
        api_tracker.log_call("cache", key, "stale_fallback", 0, cached=True)
    return data


def _cache_force(key: str) -> bool:
    """Check if request has ?refresh=1 to bypass the cache."""
    if request.args.get("refresh") == "1":
        _cache_store.pop(key, None)
        api_tracker.delete_cached_response(key)
        return True
    return False


def _invalidate_insights() -> None:
    _cache_store.pop("insights", None)


def _get_store() -> TripStore:
    global _store
    if _store is None:
        _store = TripStore()
        _store.load()
    return _store


def _get_gps() -> GPSProvider:
    global _gps
    if _gps is None:
        _gps = get_provider()
    return _gps


def _get_insights() -> InsightGenerator:
    global _insights
    if _insights is None:
        _insights = GeminiInsights()
    return _insights


def _get_drive() -> SnapshotSink:
    global _drive
    if _drive is None:
        _drive = SimulatedDriveSink()
    return _drive


def _get_analytics() -> TripAnalytics:
    global _analytics
    if _analytics is None:
        _analytics = TripAnalytics()
    return _analytics


# ── Session helpers ──────────────────────────────────────────────────────

def _language() -> str:
    return i18n.normalize_language(request.args.get("lang") or session.get("lang"))


def _current_user():
    user_id = session.get("user_id")
    if not user_id:
        return None
    return _get_store().get_user(user_id)


def login_required(allow_pending: bool = False):
    """Reject anonymous callers, and callers still on their initial key."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = _current_user()
            if user is None:
                return jsonify({"error": "Login required"}), 401
            if not user.password_changed and not allow_pending:
                return jsonify({"error": "Password reset required"}), 403
            return fn(user, *args, **kwargs)
        return wrapper
    return decorator


@app.errorhandler(PermissionDenied)
def _handle_permission(e):
    return jsonify({"error": str(e)}), 403


@app.errorhandler(AuthError)
def _handle_auth(e):
    return jsonify({"error": str(e)}), 401


# ── Auth Routes ──────────────────────────────────────────────────────────

@app.route("/api/login", methods=["POST"])
def api_login():
    """Body: {"email": ..., "password": ..., "lang": "en"|"ar"}"""
    data = request.get_json(silent=True) or {}
    lang = i18n.normalize_language(data.get("lang"))
    result = AuthService(_get_store()).login(data.get("email", ""), data.get("password", ""), lang)
    session.clear()
    session["user_id"] = result.user.id
    session["lang"] = lang
    return jsonify({
        "user": result.user.to_dict(include_secret=False),
        "mustResetPassword": result.must_reset_password,
    })


@app.route("/api/logout", methods=["POST"])
def api_logout():
    session.clear()
    return jsonify({"status": "logged_out"})


@app.route("/api/password", methods=["POST"])
@login_required(allow_pending=True)
def api_password(user):
    data = request.get_json(silent=True) or {}
    try:
        updated = AuthService(_get_store()).reset_password(
            user.id, data.get("password", ""), _language()
        )
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"user": updated.to_dict(include_secret=False)})


@app.route("/api/language", methods=["POST"])
def api_language():
    data = request.get_json(silent=True) or {}
    lang = i18n.normalize_language(data.get("lang"))
    session["lang"] = lang
    return jsonify({"lang": lang, "dir": i18n.text_direction(lang)})


# ── Trip Routes ──────────────────────────────────────────────────────────

@app.route("/api/trips")
@login_required()
def api_trips(user):
    trips = _get_store().trips
    return jsonify({"count": len(trips), "trips": [t.to_dict() for t in trips]})


@app.route("/api/trips", methods=["POST"])
@login_required()
def api_trips_create(user):
    auth.require(auth.can_create_trip(user.role), "log trips")
    data = request.get_json(silent=True) or {}
    try:
        trip = _get_store().add_trip(data)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    _invalidate_insights()
    return jsonify(trip.to_dict()), 201


@app.route("/api/trips/<trip_id>", methods=["PUT"])
@login_required()
def api_trips_update(user, trip_id: str):
    auth.require(auth.can_modify(user.role), "edit trips")
    store = _get_store()
    existing = store.get_trip(trip_id)
    if existing is None:
        return jsonify({"error": f"Trip {trip_id} not found"}), 404
    merged = existing.to_dict()
    merged.update(request.get_json(silent=True) or {})
    merged["id"] = trip_id
    trip = store.update_trip(merged)
    _invalidate_insights()
    return jsonify(trip.to_dict())


@app.route("/api/trips/<trip_id>", methods=["DELETE"])
@login_required()
def api_trips_delete(user, trip_id: str):
    auth.require(auth.can_delete_trips(user.role), "delete trips")
    if not _get_store().delete_trip(trip_id):
        return jsonify({"error": f"Trip {trip_id} not found"}), 404
    _invalidate_insights()
    return jsonify({"deleted": trip_id})


# ── Report Routes ────────────────────────────────────────────────────────

@app.route("/api/reports")
@login_required()
def api_reports(user):
    """Driver/month cohorts, best performer and records without a usable date."""
    lang = _language()
    trips = _get_store().trips
    cohorts = reports.group_trips(trips, lang)
    best = reports.best_performer(cohorts)
    return jsonify({
        "cohorts": [reports.cohort_to_dict(c, lang) for c in cohorts],
        "bestPerformer": reports.cohort_to_dict(best, lang) if best else None,
        "undated": [t.id for t in reports.undated_trips(trips)],
        "dir": i18n.text_direction(lang),
    })


@app.route("/api/reports/best")
@login_required()
def api_reports_best(user):
    lang = _language()
    best = reports.best_performer(reports.group_trips(_get_store().trips, lang))
    return jsonify({"bestPerformer": reports.cohort_to_dict(best, lang) if best else None})


@app.route("/api/reports/export")
@login_required()
def api_reports_export(user):
    """Download the flat trip log as CSV."""
    trips = _get_store().trips
    if not trips:
        return jsonify({"error": "No trips to export"}), 400
    csv_text = reports.export_to_delimited_text(trips, _language())
    filename = reports.report_filename()
    return Response(
        csv_text,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@app.route("/api/reports/save-to-drive", methods=["POST"])
@login_required()
def api_reports_save_to_drive(user):
    trips = _get_store().trips
    if not trips:
        return jsonify({"error": "No trips to export"}), 400
    filename = reports.report_filename(prefix="TruckTrack_Report")
    csv_text = reports.export_to_delimited_text(trips, _language())
    try:
        saved = _get_drive().save_file(filename, csv_text, "text/csv")
    except Exception as e:
        return jsonify({"error": str(e)}), 502
    return jsonify({"saved": saved, "filename": filename})


# ── Dashboard Routes ─────────────────────────────────────────────────────

@app.route("/api/dashboard")
@login_required()
def api_dashboard(user):
    """Status breakdown, monthly totals and the live activity feed."""
    trips = _get_store().trips
    analytics = _get_analytics()
    analytics.load_trips(trips)
    gps = _get_gps()
    events = gps.live_events() if isinstance(gps, SimulatedGPSProvider) else []
    return jsonify({
        "stats": reports.fleet_stats(trips),
        "monthly": analytics.monthly_totals(),
        "liveEvents": events,
    })


@app.route("/api/insights")
@login_required()
def api_insights(user):
    _cache_force("insights")
    cached = _cache_get("insights")
    if cached is not None:
        return jsonify(cached)
    text = _get_insights().generate(_get_store().trips)
    result = {"insights": text}
    _cache_store["insights"] = (time.monotonic() + _TTL["insights"], result)
    return jsonify(result)


@app.route("/api/gps")
@login_required()
def api_gps(user):
    """Tracked drivers/trucks merged with the manual registry (cached)."""
    cache_key = "gps_fleet"
    _cache_force(cache_key)
    feed = _cache_get(cache_key)
    if feed is None:
        try:
            data = _get_gps().fetch_drivers_and_vehicles()
            feed = {
                "drivers": [d.to_dict() for d in data["drivers"]],
                "trucks": [t.to_dict() for t in data["trucks"]],
            }
            _cache_set(cache_key, feed, "gps")
        except Exception as e:
            feed = _cache_stale(cache_key)
            if feed is None:
                print(f"[gps] Failed to fetch GPS data: {e}", flush=True)
                return jsonify({"error": str(e)}), 502

    store = _get_store()
    manual_drivers = [d.to_dict() for d in store.drivers]
    manual_trucks = [t.to_dict() for t in store.trucks]
    return jsonify({
        "drivers": feed["drivers"],
        "trucks": feed["trucks"],
        "allDrivers": merge_drivers(feed["drivers"], manual_drivers),
        "allTrucks": merge_trucks(feed["trucks"], manual_trucks),
    })


# ── Reference Data Routes ────────────────────────────────────────────────

@app.route("/api/drivers")
@login_required()
def api_drivers(user):
    return jsonify({"drivers": [d.to_dict() for d in _get_store().drivers]})


@app.route("/api/drivers", methods=["POST"])
@login_required()
def api_drivers_add(user):
    auth.require(auth.can_manage_ops(user.role), "register drivers")
    data = request.get_json(silent=True) or {}
    try:
        driver = _get_store().add_driver(data.get("name", ""), data.get("licenseNumber", ""))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(driver.to_dict()), 201


@app.route("/api/drivers/<driver_id>", methods=["DELETE"])
@login_required()
def api_drivers_remove(user, driver_id: str):
    auth.require(auth.can_manage_ops(user.role), "remove drivers")
    if not _get_store().remove_driver(driver_id):
        return jsonify({"error": f"Driver {driver_id} not found"}), 404
    return jsonify({"deleted": driver_id})


@app.route("/api/trucks")
@login_required()
def api_trucks(user):
    return jsonify({"trucks": [t.to_dict() for t in _get_store().trucks]})


@app.route("/api/trucks", methods=["POST"])
@login_required()
def api_trucks_add(user):
    auth.require(auth.can_manage_ops(user.role), "register trucks")
    data = request.get_json(silent=True) or {}
    try:
        truck = _get_store().add_truck(data.get("plateNumber", ""), data.get("model", ""))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(truck.to_dict()), 201


@app.route("/api/trucks/<truck_id>", methods=["DELETE"])
@login_required()
def api_trucks_remove(user, truck_id: str):
    auth.require(auth.can_manage_ops(user.role), "remove trucks")
    if not _get_store().remove_truck(truck_id):
        return jsonify({"error": f"Truck {truck_id} not found"}), 404
    return jsonify({"deleted": truck_id})


@app.route("/api/cities")
@login_required()
def api_cities(user):
    return jsonify({"cities": _get_store().cities})


@app.route("/api/cities", methods=["POST"])
@login_required()
def api_cities_add(user):
    auth.require(auth.can_manage_ops(user.role), "add cities")
    data = request.get_json(silent=True) or {}
    try:
        added = _get_store().add_city(data.get("city", ""))
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"added": added, "cities": _get_store().cities})


@app.route("/api/cities/<path:city>", methods=["DELETE"])
@login_required()
def api_cities_remove(user, city: str):
    auth.require(auth.can_manage_ops(user.role), "remove cities")
    if not _get_store().remove_city(city):
        return jsonify({"error": f"City {city} not found"}), 404
    return jsonify({"deleted": city})


# ── User Routes ──────────────────────────────────────────────────────────

@app.route("/api/users")
@login_required()
def api_users(user):
    auth.require(auth.can_add_users(user.role), "view users")
    return jsonify({"users": [u.to_dict(include_secret=False) for u in _get_store().users]})


@app.route("/api/users", methods=["POST"])
@login_required()
def api_users_add(user):
    auth.require(auth.can_add_users(user.role), "add users")
    data = request.get_json(silent=True) or {}
    role = auth.assignable_role(user.role, data.get("role", "viewer"))
    try:
        created = _get_store().add_user(data.get("email", ""), data.get("password", ""), role)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify(created.to_dict(include_secret=False)), 201


@app.route("/api/users/<user_id>", methods=["DELETE"])
@login_required()
def api_users_remove(user, user_id: str):
    auth.require(auth.can_remove_user(user.role, user_id, PRIMARY_ADMIN_ID), "revoke this user")
    if not _get_store().remove_user(user_id):
        return jsonify({"error": f"User {user_id} not found"}), 404
    return jsonify({"deleted": user_id})


# ── Backup & Analytics ───────────────────────────────────────────────────

@app.route("/api/backup", methods=["POST"])
@login_required()
def api_backup(user):
    """Push a full store snapshot to cloud storage."""
    auth.require(auth.can_backup(user.role), "run backups")
    try:
        stamp = sync_state(_get_drive(), _get_store().snapshot())
    except Exception as e:
        return jsonify({"error": str(e)}), 502
    return jsonify({"lastBackup": stamp})


@app.route("/api/analytics/query", methods=["POST"])
@login_required()
def api_analytics_query(user):
    """Ad-hoc SQL over the trips table. Body: {"sql": "SELECT ..."}"""
    auth.require(auth.can_manage_ops(user.role), "run analytics queries")
    data = request.get_json(silent=True) or {}
    sql = (data.get("sql") or "").strip()
    if not sql:
        return jsonify({"error": "sql is required"}), 400
    analytics = _get_analytics()
    analytics.load_trips(_get_store().trips)
    result = analytics.query(sql)
    if "error" in result:
        return jsonify(result), 400
    return jsonify(result)


@app.route("/api/tracker")
@login_required()
def api_tracker_view(user):
    """External call usage summary and recent calls."""
    hours = int(request.args.get("hours", 24))
    limit = int(request.args.get("limit", 50))
    return jsonify({
        "summary": api_tracker.get_summary(hours=hours),
        "recent": api_tracker.get_recent(limit=limit),
    })


# ── Entry Point ──────────────────────────────────────────────────────────

def main():
    """Run the dashboard server."""
    port = int(os.getenv("DASHBOARD_PORT", "5030"))
    debug = os.getenv("DASHBOARD_DEBUG", "false").lower() == "true"
    print(f"TruckTrack Dashboard starting on http://localhost:{port}")
    app.run(host="0.0.0.0", port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
    main()
