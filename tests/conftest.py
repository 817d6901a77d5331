"""Shared fixtures: isolated SQLite files and quiet, instant collaborators."""

import os
import tempfile

import pytest

_TMP = tempfile.mkdtemp(prefix="trucktrack-tests-")
os.environ["TRUCKTRACK_DB_PATH"] = os.path.join(_TMP, "trucktrack.db")
os.environ["TRUCKTRACK_TRACKER_DB"] = os.path.join(_TMP, "api_tracker.db")
os.environ["TRUCKTRACK_ADMIN_EMAIL"] = "admin@trucktrack.local"
os.environ["TRUCKTRACK_ADMIN_PASSWORD"] = "Admin007"
os.environ["TRUCKTRACK_GPS_DELAY"] = "0"
os.environ["TRUCKTRACK_DRIVE_DELAY"] = "0"
os.environ["TRUCKTRACK_GPS_URL"] = ""
os.environ["GEMINI_API_KEY"] = ""
os.environ["DUCKDB_PATH"] = ":memory:"

from trucktrack import api_tracker  # noqa: E402
from trucktrack.models import Trip  # noqa: E402
from trucktrack.store import TripStore  # noqa: E402


@pytest.fixture(autouse=True)
def tracker_db(tmp_path, monkeypatch):
    """Every test gets its own call-tracker database."""
    monkeypatch.setattr(api_tracker, "_DB_PATH", tmp_path / "api_tracker.db")
    api_tracker.init_db()
    yield tmp_path / "api_tracker.db"


@pytest.fixture
def store(tmp_path):
    s = TripStore(db_path=tmp_path / "store.db")
    s.load()
    return s


def make_trip(driver="A", date="2024-03-01", **money):
    """Trip with zeroed money fields unless overridden."""
    return Trip(
        id=money.pop("id", f"{driver}-{date}"),
        date=date,
        driver_name=driver,
        truck_id=money.pop("truck_id", "T1"),
        start_point=money.pop("start_point", "Riyadh"),
        end_point=money.pop("end_point", "Jeddah"),
        customer_name=money.pop("customer_name", "Aramco"),
        revenue=money.get("revenue", 0),
        fuel_cost=money.get("fuel_cost", 0),
        petty_cash=money.get("petty_cash", 0),
        deductions=money.get("deductions", 0),
        traffic_fines=money.get("traffic_fines", 0),
        status=money.get("status", "in-progress"),
    )
