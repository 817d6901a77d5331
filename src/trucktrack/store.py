"""SQLite-backed record store for trips and fleet reference data.

Each collection is kept as one JSON document in a key-value table, so a
save is a whole-collection overwrite (last write wins). The store owns the
in-memory copies; callers get snapshots, never the live lists.
"""

from __future__ import annotations

import json
import os
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from trucktrack import i18n
from trucktrack.auth import hash_password
from trucktrack.models import Driver, Trip, Truck, User, coerce_trip
from trucktrack.utils import generate_id, now_iso, today_iso

STORAGE_KEY_TRIPS = "truck_track_trips"
STORAGE_KEY_DRIVERS = "truck_track_manual_drivers"
STORAGE_KEY_TRUCKS = "truck_track_manual_trucks"
STORAGE_KEY_CITIES = "truck_track_manual_cities"
STORAGE_KEY_USERS = "truck_track_users"

PRIMARY_ADMIN_ID = "admin-main"

_DEFAULT_DB_PATH = Path(__file__).resolve().parent.parent.parent / "trucktrack.db"


def _initial_trips() -> list[Trip]:
    return [
        Trip(
            id="live-1",
            date=today_iso(),
            driver_name="Ahmad Al-Mansour",
            truck_id="LKH 4421",
            start_point="Riyadh",
            end_point="Jeddah",
            customer_name="Aramco",
            revenue=4800,
            fuel_cost=1100,
            petty_cash=200,
            deductions=0,
            traffic_fines=0,
            status="in-progress",
            created_at=now_iso(),
        )
    ]


def _initial_users() -> list[User]:
    email = os.getenv("TRUCKTRACK_ADMIN_EMAIL", "admin@trucktrack.local")
    password = os.getenv("TRUCKTRACK_ADMIN_PASSWORD", "Admin007")
    return [
        User(
            id=PRIMARY_ADMIN_ID,
            email=email.strip().lower(),
            role="admin",
            password_hash=hash_password(password),
            password_changed=False,
        )
    ]


class TripStore:
    """Repository for trips, drivers, trucks, cities and user accounts."""

    def __init__(self, db_path: str | Path | None = None, autosave: bool = True) -> None:
        self._db_path = Path(db_path or os.getenv("TRUCKTRACK_DB_PATH", str(_DEFAULT_DB_PATH)))
        self.autosave = autosave
        self._loaded = False
        self._trips: list[Trip] = []
        self._drivers: list[Driver] = []
        self._trucks: list[Truck] = []
        self._cities: list[str] = []
        self._users: list[User] = []

    # ── Persistence ──────────────────────────────────────────────────────

    def _get_db(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path))
        conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key        TEXT PRIMARY KEY,
                value      TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        return conn

    def _read(self, conn: sqlite3.Connection, key: str):
        row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        try:
            value = json.loads(row[0])
        except json.JSONDecodeError:
            print(f"[store] Ignoring corrupt value for {key}", flush=True)
            return None
        return value if isinstance(value, list) else None

    def load(self) -> None:
        """Read every collection, falling back to defaults for missing keys."""
        conn = self._get_db()
        try:
            trips = self._read(conn, STORAGE_KEY_TRIPS)
            drivers = self._read(conn, STORAGE_KEY_DRIVERS)
            trucks = self._read(conn, STORAGE_KEY_TRUCKS)
            cities = self._read(conn, STORAGE_KEY_CITIES)
            users = self._read(conn, STORAGE_KEY_USERS)
        finally:
            conn.close()

        self._trips = (
            [Trip.from_dict(t) for t in trips if isinstance(t, dict)]
            if trips is not None else _initial_trips()
        )
        self._drivers = [Driver.from_dict(d) for d in drivers or [] if isinstance(d, dict)]
        self._trucks = [Truck.from_dict(t) for t in trucks or [] if isinstance(t, dict)]
        self._cities = (
            [str(c) for c in cities] if cities is not None
            else list(i18n.t("en", "saudiCities"))
        )
        self._users = (
            [User.from_dict(u) for u in users if isinstance(u, dict)]
            if users is not None else _initial_users()
        )
        self._loaded = True

    def save(self) -> None:
        """Write every collection back in one transaction."""
        self._ensure_loaded()
        stamp = datetime.now(timezone.utc).isoformat()
        payload = {
            STORAGE_KEY_TRIPS: [t.to_dict() for t in self._trips],
            STORAGE_KEY_DRIVERS: [d.to_dict() for d in self._drivers],
            STORAGE_KEY_TRUCKS: [t.to_dict() for t in self._trucks],
            STORAGE_KEY_CITIES: list(self._cities),
            STORAGE_KEY_USERS: [u.to_dict() for u in self._users],
        }
        conn = self._get_db()
        try:
            conn.executemany(
                "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
                [(k, json.dumps(v, ensure_ascii=False, default=float), stamp) for k, v in payload.items()],
            )
            conn.commit()
        finally:
            conn.close()

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def _changed(self) -> None:
        if self.autosave:
            self.save()

    # ── Trips ────────────────────────────────────────────────────────────

    @property
    def trips(self) -> list[Trip]:
        self._ensure_loaded()
        return list(self._trips)

    def get_trip(self, trip_id: str) -> Trip | None:
        self._ensure_loaded()
        return next((t for t in self._trips if t.id == trip_id), None)

    def add_trip(self, data: dict | Trip) -> Trip:
        """Register a new trip at the head of the log (status in-progress)."""
        self._ensure_loaded()
        trip = coerce_trip(data)
        if not trip.driver_name or not trip.truck_id:
            raise ValueError("Please select both a valid driver and operational vehicle.")
        trip.id = generate_id()
        trip.status = "in-progress"
        trip.created_at = now_iso()
        self._trips.insert(0, trip)
        self._changed()
        return trip

    def update_trip(self, data: dict | Trip) -> Trip:
        self._ensure_loaded()
        trip = coerce_trip(data)
        for i, existing in enumerate(self._trips):
            if existing.id == trip.id:
                self._trips[i] = trip
                self._changed()
                return trip
        raise KeyError(trip.id)

    def delete_trip(self, trip_id: str) -> bool:
        self._ensure_loaded()
        before = len(self._trips)
        self._trips = [t for t in self._trips if t.id != trip_id]
        if len(self._trips) == before:
            return False
        self._changed()
        return True

    # ── Reference data ───────────────────────────────────────────────────

    @property
    def drivers(self) -> list[Driver]:
        self._ensure_loaded()
        return list(self._drivers)

    def add_driver(self, name: str, license_number: str = "") -> Driver:
        self._ensure_loaded()
        name = (name or "").strip()
        if not name:
            raise ValueError("Driver name is required")
        driver = Driver(id=generate_id("MAN-D-"), name=name, license_number=license_number.strip())
        self._drivers.append(driver)
        self._changed()
        return driver

    def remove_driver(self, driver_id: str) -> bool:
        self._ensure_loaded()
        before = len(self._drivers)
        self._drivers = [d for d in self._drivers if d.id != driver_id]
        if len(self._drivers) == before:
            return False
        self._changed()
        return True

    @property
    def trucks(self) -> list[Truck]:
        self._ensure_loaded()
        return list(self._trucks)

    def add_truck(self, plate_number: str, model: str = "") -> Truck:
        self._ensure_loaded()
        plate_number = (plate_number or "").strip()
        if not plate_number:
            raise ValueError("Plate number is required")
        truck = Truck(id=generate_id("MAN-T-"), plate_number=plate_number, model=model.strip())
        self._trucks.append(truck)
        self._changed()
        return truck

    def remove_truck(self, truck_id: str) -> bool:
        self._ensure_loaded()
        before = len(self._trucks)
        self._trucks = [t for t in self._trucks if t.id != truck_id]
        if len(self._trucks) == before:
            return False
        self._changed()
        return True

    @property
    def cities(self) -> list[str]:
        self._ensure_loaded()
        return list(self._cities)

    def add_city(self, city: str) -> bool:
        """Add a city to the operational scope. Duplicates are ignored."""
        self._ensure_loaded()
        city = (city or "").strip()
        if not city:
            raise ValueError("City name is required")
        if city in self._cities:
            return False
        self._cities.append(city)
        self._changed()
        return True

    def remove_city(self, city: str) -> bool:
        self._ensure_loaded()
        if city not in self._cities:
            return False
        self._cities = [c for c in self._cities if c != city]
        self._changed()
        return True

    # ── Users ────────────────────────────────────────────────────────────

    @property
    def users(self) -> list[User]:
        self._ensure_loaded()
        return list(self._users)

    def get_user(self, user_id: str) -> User | None:
        self._ensure_loaded()
        return next((u for u in self._users if u.id == user_id), None)

    def find_user_by_email(self, email: str) -> User | None:
        self._ensure_loaded()
        email = (email or "").strip().lower()
        return next((u for u in self._users if u.email == email), None)

    def add_user(self, email: str, password: str, role: str = "viewer") -> User:
        self._ensure_loaded()
        email = (email or "").strip().lower()
        if not email:
            raise ValueError("Email is required")
        if self.find_user_by_email(email) is not None:
            raise ValueError(f"User {email} already exists")
        user = User.from_dict({"email": email, "role": role})
        user.password_hash = hash_password(password or "")
        user.password_changed = True
        self._users.append(user)
        self._changed()
        return user

    def remove_user(self, user_id: str) -> bool:
        self._ensure_loaded()
        before = len(self._users)
        self._users = [u for u in self._users if u.id != user_id]
        if len(self._users) == before:
            return False
        self._changed()
        return True

    def update_user_password(self, user_id: str, new_password: str) -> User:
        self._ensure_loaded()
        user = self.get_user(user_id)
        if user is None:
            raise KeyError(user_id)
        user.password_hash = hash_password(new_password)
        user.password_changed = True
        self._changed()
        return user

    # ── Backup ───────────────────────────────────────────────────────────

    def snapshot(self) -> dict:
        """All collections in wire form (password hashes excluded)."""
        self._ensure_loaded()
        return {
            "manualDrivers": [d.to_dict() for d in self._drivers],
            "manualTrucks": [t.to_dict() for t in self._trucks],
            "manualCities": list(self._cities),
            "trips": [t.to_dict() for t in self._trips],
            "users": [u.to_dict(include_secret=False) for u in self._users],
        }
