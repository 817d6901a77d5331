"""Driver/month profitability reports and CSV export.

Trips are grouped into cohorts keyed by driver name and the localized
"Month Year" label of the trip date. Net profit is revenue minus fuel,
petty cash and deductions; traffic fines are tracked but never deducted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from trucktrack import i18n
from trucktrack.models import Trip, coerce_trip
from trucktrack.utils import add_amounts, format_amount, parse_trip_date, to_amount

EXPORT_COLUMNS = (
    "date", "driver", "customer", "truck", "route",
    "revenue", "fuel", "petty", "fines", "deductions",
)

_OPERATIONAL_COLORS = {
    "Moving": "#10b981",
    "Loading": "#f59e0b",
    "Completed": "#3b82f6",
}


@dataclass
class CohortSummary:
    """Trips of one driver in one calendar month, with running totals."""

    name: str
    period: str
    trips: list[Trip] = field(default_factory=list)
    total_revenue: int | float = 0
    total_fuel: int | float = 0
    total_petty: int | float = 0
    total_deductions: int | float = 0
    total_fines: int | float = 0
    trips_count: int = 0

    @property
    def id(self) -> str:
        return f"{self.name}_{self.period}"

    @property
    def net_profit(self) -> int | float:
        costs = add_amounts(add_amounts(self.total_fuel, self.total_petty), self.total_deductions)
        return add_amounts(self.total_revenue, -costs)

    def add(self, trip: Trip) -> None:
        self.trips.append(trip)
        self.trips_count += 1
        self.total_revenue = add_amounts(self.total_revenue, to_amount(trip.revenue))
        self.total_fuel = add_amounts(self.total_fuel, to_amount(trip.fuel_cost))
        self.total_petty = add_amounts(self.total_petty, to_amount(trip.petty_cash))
        self.total_deductions = add_amounts(self.total_deductions, to_amount(trip.deductions))
        self.total_fines = add_amounts(self.total_fines, to_amount(trip.traffic_fines))


def _coerce_all(trips) -> list[Trip]:
    records = []
    for record in trips:
        try:
            records.append(coerce_trip(record))
        except TypeError:
            continue
    return records


def group_trips(trips, language: str = "en") -> list[CohortSummary]:
    """Group trips into driver/month cohorts, most recent first.

    Cohorts are ordered by the date of their *first* member trip in
    iteration order, not by the month itself. Trips with an unparseable
    date are left out; see ``undated_trips``.
    """
    if not isinstance(trips, (list, tuple)):
        return []

    grouped: dict[tuple[str, str], CohortSummary] = {}
    for trip in _coerce_all(trips):
        moment = parse_trip_date(trip.date)
        if moment is None:
            continue
        period = i18n.month_label(moment, language)
        key = (trip.driver_name, period)
        cohort = grouped.get(key)
        if cohort is None:
            cohort = grouped[key] = CohortSummary(name=trip.driver_name, period=period)
        cohort.add(trip)

    return sorted(
        grouped.values(),
        key=lambda c: parse_trip_date(c.trips[0].date),
        reverse=True,
    )


def undated_trips(trips) -> list[Trip]:
    """Trips whose date cannot be parsed and so belong to no cohort."""
    if not isinstance(trips, (list, tuple)):
        return []
    return [t for t in _coerce_all(trips) if parse_trip_date(t.date) is None]


def best_performer(cohorts: list[CohortSummary]) -> CohortSummary | None:
    """Cohort with the highest net profit; the first one wins a tie."""
    best = None
    for cohort in cohorts:
        if best is None or cohort.net_profit > best.net_profit:
            best = cohort
    return best


def export_to_delimited_text(trips, language: str = "en") -> str:
    """Flat comma-separated export, one row per trip in input order.

    Field values are not quoted or escaped.
    """
    header = ",".join(i18n.t(language, col) for col in EXPORT_COLUMNS)
    lines = [header]
    if isinstance(trips, (list, tuple)):
        for trip in _coerce_all(trips):
            row = [
                trip.date,
                trip.driver_name,
                trip.customer_name,
                trip.truck_id,
                f"{trip.start_point} to {trip.end_point}",
                format_amount(trip.revenue),
                format_amount(trip.fuel_cost),
                format_amount(trip.petty_cash),
                format_amount(trip.traffic_fines),
                format_amount(trip.deductions),
            ]
            lines.append(",".join(row))
    return "\n".join(lines)


def report_filename(
    prefix: str = "detailed_driver_report",
    ext: str = "csv",
    today: date | None = None,
) -> str:
    """Download name stamped with the current date."""
    stamp = (today or date.today()).isoformat()
    return f"{prefix}_{stamp}.{ext}"


def fleet_stats(trips) -> dict:
    """Status counts for the operations overview."""
    records = _coerce_all(trips) if isinstance(trips, (list, tuple)) else []
    moving = sum(1 for t in records if t.status == "in-progress")
    loading = sum(1 for t in records if t.status == "loading")
    completed = sum(1 for t in records if t.status == "completed")
    counts = {"Moving": moving, "Loading": loading, "Completed": completed}
    return {
        "total": len(records),
        "moving": moving,
        "loading": loading,
        "completed": completed,
        "operational": [
            {"name": name, "value": counts[name], "color": color}
            for name, color in _OPERATIONAL_COLORS.items()
        ],
    }


def cohort_to_dict(cohort: CohortSummary, language: str = "en") -> dict:
    """Wire form of a cohort, with a layout direction hint for the renderer."""
    return {
        "id": cohort.id,
        "name": cohort.name,
        "period": cohort.period,
        "totalRevenue": cohort.total_revenue,
        "totalFuel": cohort.total_fuel,
        "totalPetty": cohort.total_petty,
        "totalDeductions": cohort.total_deductions,
        "totalFines": cohort.total_fines,
        "tripsCount": cohort.trips_count,
        "netProfit": cohort.net_profit,
        "trips": [t.to_dict() for t in cohort.trips],
        "dir": i18n.text_direction(language),
    }
