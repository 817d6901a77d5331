"""Record types for trips and fleet reference data.

Wire dicts use the dashboard's camelCase keys; the dataclasses carry
explicit defaults so loosely-shaped stored records load cleanly.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from trucktrack.utils import generate_id, now_iso, to_amount

TRIP_STATUSES = ("completed", "in-progress", "delayed", "loading")
USER_ROLES = ("admin", "accountant", "viewer")
DRIVER_STATUSES = ("moving", "idle", "offline")

MONEY_FIELDS = ("revenue", "fuelCost", "pettyCash", "deductions", "trafficFines")


@dataclass
class Trip:
    id: str
    date: str
    driver_name: str = ""
    truck_id: str = ""
    start_point: str = ""
    end_point: str = ""
    customer_name: str = ""
    revenue: int | float = 0
    fuel_cost: int | float = 0
    petty_cash: int | float = 0
    deductions: int | float = 0
    traffic_fines: int | float = 0
    status: str = "in-progress"
    created_at: str = field(default_factory=now_iso)

    @classmethod
    def from_dict(cls, data: dict) -> Trip:
        status = data.get("status") or "in-progress"
        if status not in TRIP_STATUSES:
            status = "in-progress"
        return cls(
            id=str(data.get("id") or generate_id()),
            date=str(data.get("date") or ""),
            driver_name=str(data.get("driverName") or ""),
            truck_id=str(data.get("truckId") or ""),
            start_point=str(data.get("startPoint") or ""),
            end_point=str(data.get("endPoint") or ""),
            customer_name=str(data.get("customerName") or ""),
            revenue=to_amount(data.get("revenue")),
            fuel_cost=to_amount(data.get("fuelCost")),
            petty_cash=to_amount(data.get("pettyCash")),
            deductions=to_amount(data.get("deductions")),
            traffic_fines=to_amount(data.get("trafficFines")),
            status=status,
            created_at=str(data.get("createdAt") or now_iso()),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "date": self.date,
            "driverName": self.driver_name,
            "truckId": self.truck_id,
            "startPoint": self.start_point,
            "endPoint": self.end_point,
            "customerName": self.customer_name,
            "revenue": self.revenue,
            "fuelCost": self.fuel_cost,
            "pettyCash": self.petty_cash,
            "deductions": self.deductions,
            "trafficFines": self.traffic_fines,
            "status": self.status,
            "createdAt": self.created_at,
        }


@dataclass
class Driver:
    id: str
    name: str
    license_number: str = ""
    current_status: str | None = None
    last_location: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> Driver:
        status = data.get("currentStatus")
        return cls(
            id=str(data.get("id") or generate_id("MAN-D-")),
            name=str(data.get("name") or ""),
            license_number=str(data.get("licenseNumber") or ""),
            current_status=status if status in DRIVER_STATUSES else None,
            last_location=data.get("lastLocation"),
        )

    def to_dict(self) -> dict:
        d = {"id": self.id, "name": self.name, "licenseNumber": self.license_number}
        if self.current_status is not None:
            d["currentStatus"] = self.current_status
        if self.last_location is not None:
            d["lastLocation"] = self.last_location
        return d


@dataclass
class Truck:
    id: str
    plate_number: str
    model: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Truck:
        return cls(
            id=str(data.get("id") or generate_id("MAN-T-")),
            plate_number=str(data.get("plateNumber") or ""),
            model=str(data.get("model") or ""),
        )

    def to_dict(self) -> dict:
        return {"id": self.id, "plateNumber": self.plate_number, "model": self.model}


@dataclass
class User:
    id: str
    email: str
    role: str = "viewer"
    password_hash: str = ""
    password_changed: bool = True

    @classmethod
    def from_dict(cls, data: dict) -> User:
        role = data.get("role")
        return cls(
            id=str(data.get("id") or generate_id()),
            email=str(data.get("email") or "").strip().lower(),
            role=role if role in USER_ROLES else "viewer",
            password_hash=str(data.get("passwordHash") or ""),
            password_changed=data.get("passwordChanged", True) is not False,
        )

    def to_dict(self, include_secret: bool = True) -> dict:
        d = {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "passwordChanged": self.password_changed,
        }
        if include_secret:
            d["passwordHash"] = self.password_hash
        return d


def coerce_trip(record) -> Trip:
    """Accept a Trip or a wire dict."""
    if isinstance(record, Trip):
        return record
    if isinstance(record, dict):
        return Trip.from_dict(record)
    raise TypeError(f"Not a trip record: {type(record).__name__}")
