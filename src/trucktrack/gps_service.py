"""GPS telemetry feed: drivers and vehicles reported by the tracking provider.

The bundled provider is a fixture that mimics the handshake delay of the
real feed. ``HttpGPSProvider`` talks to an actual endpoint returning the same
shape; ``get_provider`` picks one from the environment.
"""

from __future__ import annotations

import os
import random
import time

import httpx

from trucktrack import api_tracker
from trucktrack.models import Driver, Truck

_FIXTURE_DRIVERS = [
    {"id": "GPS-D1", "name": "Ahmad Al-Mansour", "licenseNumber": "SA-7721"},
    {"id": "GPS-D2", "name": "Fahad Al-Rashid", "licenseNumber": "SA-1029"},
    {"id": "GPS-D3", "name": "Khalid Abdullah", "licenseNumber": "SA-8844"},
    {"id": "GPS-D4", "name": "Sultan Al-Harbi", "licenseNumber": "SA-3356"},
    {"id": "GPS-D5", "name": "Yousef Al-Otaibi", "licenseNumber": "SA-5511"},
    {"id": "GPS-D6", "name": "Omar Bin-Talal", "licenseNumber": "SA-9012"},
]

_FIXTURE_TRUCKS = [
    {"id": "GPS-T1", "plateNumber": "LKH 4421", "model": "Mercedes-Benz Actros 2024"},
    {"id": "GPS-T2", "plateNumber": "RRT 9901", "model": "Volvo FH16 Globetrotter"},
    {"id": "GPS-T3", "plateNumber": "BSA 2210", "model": "Scania R500"},
    {"id": "GPS-T4", "plateNumber": "KSA 2030", "model": "MAN TGX Gold Edition"},
    {"id": "GPS-T5", "plateNumber": "DMM 5588", "model": "Renault T-High Evolution"},
    {"id": "GPS-T6", "plateNumber": "JED 1111", "model": "Iveco S-Way"},
]

_PULSE_EVENTS = [
    {"id": 1, "text": "LKH 4421: Entered Riyadh Zone", "time": "2 mins ago", "type": "success"},
    {"id": 2, "text": "RRT 9901: Loading at Dammam Port", "time": "15 mins ago", "type": "info"},
    {"id": 3, "text": "DMM 5588: Engine Warning - High Temp", "time": "1 hour ago", "type": "warn"},
    {"id": 4, "text": "Fahad Al-Rashid: Session Start", "time": "3 hours ago", "type": "info"},
]
_PULSE_PLATES = ["JED 1111", "KSA 2030", "BSA 2210"]
_PULSE_PLACES = ["Makkah", "Medina", "Jubail", "Abha"]
_MAX_PULSE = 6
PULSE_INTERVAL = 8.0


class GPSProvider:
    """Source of the drivers and trucks currently visible to the tracker."""

    name = "gps"

    def fetch_drivers_and_vehicles(self) -> dict:
        raise NotImplementedError


class SimulatedGPSProvider(GPSProvider):
    """Fixed fleet returned after a short artificial delay."""

    name = "simulated"

    def __init__(
        self,
        delay: float | None = None,
        rng: random.Random | None = None,
        pulse_interval: float = PULSE_INTERVAL,
    ) -> None:
        self._delay = float(os.getenv("TRUCKTRACK_GPS_DELAY", "1.2")) if delay is None else delay
        self._rng = rng or random.Random()
        self._events = [dict(e) for e in _PULSE_EVENTS]
        self._pulse_interval = pulse_interval
        self._last_pulse = time.monotonic()

    def fetch_drivers_and_vehicles(self) -> dict:
        print("[gps] Establishing handshake with simulated tracking feed...", flush=True)
        with api_tracker.track("gps", "fetch_drivers_and_vehicles"):
            if self._delay > 0:
                time.sleep(self._delay)
            drivers = [Driver.from_dict(d) for d in _FIXTURE_DRIVERS]
            trucks = [Truck.from_dict(t) for t in _FIXTURE_TRUCKS]
        return {"drivers": drivers, "trucks": trucks}

    def live_events(self) -> list[dict]:
        """Current activity feed, newest first.

        Adds one simulated position report once the pulse interval has
        elapsed since the previous one.
        """
        now = time.monotonic()
        if now - self._last_pulse >= self._pulse_interval:
            self.next_event()
            self._last_pulse = now
        return [dict(e) for e in self._events]

    def next_event(self) -> dict:
        """Simulate one new position report and push it onto the feed."""
        event = {
            "id": int(time.time() * 1000),
            "text": f"{self._rng.choice(_PULSE_PLATES)}: Approaching {self._rng.choice(_PULSE_PLACES)}",
            "time": "Just now",
            "type": "info",
        }
        self._events = [event] + self._events[: _MAX_PULSE - 1]
        return event


class HttpGPSProvider(GPSProvider):
    """Client for a tracking endpoint returning {"drivers": [...], "trucks": [...]}."""

    name = "http"

    def __init__(self, base_url: str | None = None, token: str | None = None, timeout: float = 15) -> None:
        self._base_url = base_url or os.getenv("TRUCKTRACK_GPS_URL", "")
        if not self._base_url:
            raise ValueError("TRUCKTRACK_GPS_URL environment variable is required")
        self._token = token if token is not None else os.getenv("TRUCKTRACK_GPS_TOKEN", "")
        self._timeout = timeout
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            headers = {"Authorization": f"Bearer {self._token}"} if self._token else {}
            self._client = httpx.Client(base_url=self._base_url, headers=headers, timeout=self._timeout)
        return self._client

    def fetch_drivers_and_vehicles(self) -> dict:
        with api_tracker.track("gps", "fetch_drivers_and_vehicles"):
            resp = self.client.get("/fleet")
            resp.raise_for_status()
            data = resp.json()
        return {
            "drivers": [Driver.from_dict(d) for d in data.get("drivers", []) if isinstance(d, dict)],
            "trucks": [Truck.from_dict(t) for t in data.get("trucks", []) if isinstance(t, dict)],
        }

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            self._client.close()
            self._client = None


def get_provider() -> GPSProvider:
    if os.getenv("TRUCKTRACK_GPS_URL"):
        return HttpGPSProvider()
    return SimulatedGPSProvider()


def merge_trucks(gps_trucks: list, manual_trucks: list) -> list:
    """Trucks offered by the trip form: tracked fleet first, then manual entries."""
    return list(gps_trucks) + list(manual_trucks)


def merge_drivers(gps_drivers: list, manual_drivers: list) -> list:
    return list(gps_drivers) + list(manual_drivers)
