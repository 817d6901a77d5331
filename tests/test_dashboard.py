"""
Test suite for the Flask dashboard API
File: tests/test_dashboard.py
"""

import pytest

from trucktrack import dashboard
from trucktrack.analytics import TripAnalytics
from trucktrack.drive_sync import SimulatedDriveSink
from trucktrack.gps_service import GPSProvider, SimulatedGPSProvider
from trucktrack.insights import CONFIG_REQUIRED_MESSAGE, GeminiInsights
from trucktrack.reports import report_filename
from trucktrack.store import PRIMARY_ADMIN_ID, TripStore

ADMIN_EMAIL = "admin@trucktrack.local"


class _BrokenGPS(GPSProvider):
    def fetch_drivers_and_vehicles(self):
        raise ConnectionError("feed offline")


@pytest.fixture
def api(tmp_path, monkeypatch):
    store = TripStore(db_path=tmp_path / "dashboard.db")
    store.load()
    monkeypatch.setattr(dashboard, "_store", store)
    monkeypatch.setattr(dashboard, "_gps", SimulatedGPSProvider(delay=0))
    monkeypatch.setattr(dashboard, "_drive", SimulatedDriveSink(delay=0))
    monkeypatch.setattr(dashboard, "_insights", GeminiInsights(api_key=""))
    monkeypatch.setattr(dashboard, "_analytics", TripAnalytics(":memory:"))
    dashboard._cache_store.clear()
    dashboard.app.config["TESTING"] = True
    yield store
    dashboard._cache_store.clear()


def _login(client, email, password):
    return client.post("/api/login", json={"email": email, "password": password})


@pytest.fixture
def admin(api):
    client = dashboard.app.test_client()
    _login(client, ADMIN_EMAIL, "Admin007")
    client.post("/api/password", json={"password": "Fleet2024"})
    return client


def _client_for(store, role):
    email = f"{role}@fleet.sa"
    store.add_user(email, "pass123", role)
    client = dashboard.app.test_client()
    assert _login(client, email, "pass123").status_code == 200
    return client


class TestAuthFlow:

    def test_anonymous_is_rejected(self, api):
        client = dashboard.app.test_client()
        assert client.get("/api/trips").status_code == 401

    def test_bad_credentials(self, api):
        client = dashboard.app.test_client()
        resp = _login(client, ADMIN_EMAIL, "wrong")
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Unauthorized: Access Key is incorrect."

    def test_initial_key_must_be_changed(self, api):
        client = dashboard.app.test_client()
        resp = _login(client, ADMIN_EMAIL, "Admin007")
        assert resp.get_json()["mustResetPassword"] is True
        assert "passwordHash" not in resp.get_json()["user"]
        assert client.get("/api/trips").status_code == 403

        short = client.post("/api/password", json={"password": "abc"})
        assert short.status_code == 400

        assert client.post("/api/password", json={"password": "Fleet2024"}).status_code == 200
        assert client.get("/api/trips").status_code == 200

    def test_logout(self, admin):
        admin.post("/api/logout")
        assert admin.get("/api/trips").status_code == 401

    def test_language(self, admin):
        resp = admin.post("/api/language", json={"lang": "ar"})
        assert resp.get_json() == {"lang": "ar", "dir": "rtl"}


class TestTrips:

    def test_list(self, admin):
        body = admin.get("/api/trips").get_json()
        assert body["count"] == 1
        assert body["trips"][0]["id"] == "live-1"

    def test_create_update_delete(self, admin, api):
        resp = admin.post("/api/trips", json={
            "date": "2024-03-01", "driverName": "A", "truckId": "T1",
            "startPoint": "Riyadh", "endPoint": "Abha", "revenue": 900,
        })
        assert resp.status_code == 201
        trip_id = resp.get_json()["id"]
        assert api.trips[0].id == trip_id

        resp = admin.put(f"/api/trips/{trip_id}", json={"status": "completed", "fuelCost": 120})
        assert resp.get_json()["status"] == "completed"
        assert api.get_trip(trip_id).fuel_cost == 120
        assert api.get_trip(trip_id).revenue == 900

        assert admin.delete(f"/api/trips/{trip_id}").status_code == 200
        assert admin.delete(f"/api/trips/{trip_id}").status_code == 404

    def test_create_validation(self, admin):
        resp = admin.post("/api/trips", json={"date": "2024-03-01", "driverName": "A"})
        assert resp.status_code == 400

    def test_update_missing(self, admin):
        assert admin.put("/api/trips/nope", json={}).status_code == 404

    def test_viewer_is_read_only(self, api):
        viewer = _client_for(api, "viewer")
        assert viewer.get("/api/trips").status_code == 200
        assert viewer.post("/api/trips", json={"driverName": "A", "truckId": "T"}).status_code == 403
        assert viewer.put("/api/trips/live-1", json={}).status_code == 403

    def test_accountant_cannot_delete(self, api):
        accountant = _client_for(api, "accountant")
        assert accountant.delete("/api/trips/live-1").status_code == 403
        assert api.get_trip("live-1") is not None


class TestReports:

    def _seed(self, store):
        store.delete_trip("live-1")
        for data in (
            {"date": "2024-03-15", "driverName": "A", "truckId": "T", "revenue": 500, "fuelCost": 100},
            {"date": "2024-03-02", "driverName": "B", "truckId": "T", "revenue": 300, "fuelCost": 50},
            {"date": "2024-03-01", "driverName": "A", "truckId": "T", "revenue": 1000,
             "fuelCost": 200, "trafficFines": 50},
        ):
            store.add_trip(data)

    def test_cohorts(self, admin, api):
        self._seed(api)
        body = admin.get("/api/reports").get_json()
        by_name = {c["name"]: c for c in body["cohorts"]}
        assert by_name["A"]["netProfit"] == 1200
        assert by_name["A"]["tripsCount"] == 2
        assert by_name["B"]["netProfit"] == 250
        assert body["bestPerformer"]["name"] == "A"
        assert body["undated"] == []
        assert body["dir"] == "ltr"

    def test_arabic_labels(self, admin, api):
        self._seed(api)
        body = admin.get("/api/reports?lang=ar").get_json()
        assert body["cohorts"][0]["period"] == "مارس ٢٠٢٤"
        assert body["dir"] == "rtl"

    def test_best_when_empty(self, admin, api):
        api.delete_trip("live-1")
        assert admin.get("/api/reports/best").get_json() == {"bestPerformer": None}

    def test_export(self, admin, api):
        self._seed(api)
        resp = admin.get("/api/reports/export")
        assert resp.status_code == 200
        assert resp.mimetype == "text/csv"
        assert resp.headers["Content-Disposition"] == f"attachment; filename={report_filename()}"
        lines = resp.get_data(as_text=True).split("\n")
        assert lines[0].startswith("Date,Driver,Customer")
        assert len(lines) == 4

    def test_export_empty(self, admin, api):
        api.delete_trip("live-1")
        assert admin.get("/api/reports/export").status_code == 400

    def test_save_to_drive(self, admin):
        body = admin.post("/api/reports/save-to-drive").get_json()
        assert body["saved"] is True
        assert body["filename"].startswith("TruckTrack_Report_")
        assert dashboard._drive.saved[0]["filename"] == body["filename"]


class TestDashboardData:

    def test_overview(self, admin):
        body = admin.get("/api/dashboard").get_json()
        assert body["stats"]["total"] == 1
        assert body["stats"]["moving"] == 1
        assert len(body["monthly"]) == 1
        assert len(body["liveEvents"]) == 4

    def test_live_feed_moves_between_polls(self, admin, monkeypatch):
        monkeypatch.setattr(dashboard, "_gps", SimulatedGPSProvider(delay=0, pulse_interval=0))
        first = admin.get("/api/dashboard").get_json()["liveEvents"]
        second = admin.get("/api/dashboard").get_json()["liveEvents"]
        assert len(first) == 5
        assert first[0]["time"] == "Just now"
        assert len(second) == 6
        assert second[1] == first[0]

    def test_insights_without_key(self, admin):
        assert admin.get("/api/insights").get_json()["insights"] == CONFIG_REQUIRED_MESSAGE

    def test_gps_merges_manual_registry(self, admin, api):
        api.add_truck("ZZZ 0001", "Hino")
        body = admin.get("/api/gps").get_json()
        assert len(body["trucks"]) == 6
        assert len(body["allTrucks"]) == 7
        assert body["allTrucks"][-1]["plateNumber"] == "ZZZ 0001"
        assert len(body["allDrivers"]) == 6

    def test_gps_serves_stale_copy(self, admin, monkeypatch):
        admin.get("/api/gps")
        dashboard._cache_store.clear()
        monkeypatch.setattr(dashboard, "_gps", _BrokenGPS())
        body = admin.get("/api/gps").get_json()
        assert len(body["drivers"]) == 6

    def test_gps_failure_without_cache(self, admin, monkeypatch):
        monkeypatch.setattr(dashboard, "_gps", _BrokenGPS())
        resp = admin.get("/api/gps")
        assert resp.status_code == 502
        assert resp.get_json()["error"] == "feed offline"

    def test_tracker(self, admin):
        admin.get("/api/gps")
        body = admin.get("/api/tracker").get_json()
        assert any(r["service"] == "gps" for r in body["recent"])


class TestReferenceRoutes:

    def test_drivers_and_trucks(self, admin):
        resp = admin.post("/api/drivers", json={"name": "Khalid", "licenseNumber": "SA-1"})
        assert resp.status_code == 201
        driver_id = resp.get_json()["id"]
        assert admin.get("/api/drivers").get_json()["drivers"][0]["name"] == "Khalid"
        assert admin.delete(f"/api/drivers/{driver_id}").status_code == 200

        assert admin.post("/api/trucks", json={"plateNumber": ""}).status_code == 400
        assert admin.post("/api/trucks", json={"plateNumber": "AB 1"}).status_code == 201
        assert admin.delete("/api/trucks/nope").status_code == 404

    def test_cities(self, admin):
        assert admin.post("/api/cities", json={"city": "Riyadh"}).get_json()["added"] is False
        assert admin.post("/api/cities", json={"city": "Tabarjal"}).get_json()["added"] is True
        assert admin.delete("/api/cities/Tabarjal").status_code == 200
        assert "Tabarjal" not in admin.get("/api/cities").get_json()["cities"]

    def test_viewer_cannot_manage_ops(self, api):
        viewer = _client_for(api, "viewer")
        assert viewer.post("/api/drivers", json={"name": "X"}).status_code == 403
        assert viewer.post("/api/cities", json={"city": "X"}).status_code == 403


class TestUsersAndAdmin:

    def test_accountant_only_creates_viewers(self, api):
        accountant = _client_for(api, "accountant")
        resp = accountant.post("/api/users", json={"email": "new@fleet.sa", "password": "x1234", "role": "admin"})
        assert resp.status_code == 201
        assert resp.get_json()["role"] == "viewer"

    def test_primary_admin_cannot_be_removed(self, admin, api):
        assert admin.delete(f"/api/users/{PRIMARY_ADMIN_ID}").status_code == 403
        other = api.add_user("tmp@fleet.sa", "pass1", "viewer")
        assert admin.delete(f"/api/users/{other.id}").status_code == 200

    def test_user_list_hides_hashes(self, admin):
        users = admin.get("/api/users").get_json()["users"]
        assert users and all("passwordHash" not in u for u in users)

    def test_backup_is_admin_only(self, admin, api):
        body = admin.post("/api/backup").get_json()
        assert len(body["lastBackup"]) == 19
        assert dashboard._drive.saved[-1]["filename"].startswith("TruckTrack_State_")

        accountant = _client_for(api, "accountant")
        assert accountant.post("/api/backup").status_code == 403

    def test_analytics_query(self, admin):
        resp = admin.post("/api/analytics/query", json={"sql": "SELECT COUNT(*) AS n FROM trips"})
        assert resp.get_json()["data"] == [{"n": 1}]
        assert admin.post("/api/analytics/query", json={"sql": "SELECT * FROM nope"}).status_code == 400
        assert admin.post("/api/analytics/query", json={}).status_code == 400
