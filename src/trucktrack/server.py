"""TruckTrack MCP Server: trip log and profitability reports via Model Context Protocol."""

from __future__ import annotations

from dotenv import load_dotenv

load_dotenv()

from mcp.server.fastmcp import FastMCP

from trucktrack import reports
from trucktrack.analytics import TripAnalytics
from trucktrack.insights import GeminiInsights, InsightGenerator
from trucktrack.store import TripStore

mcp = FastMCP(
    "TruckTrack Fleet Reports",
    instructions=(
        "You are a fleet accounting assistant for a trucking company. "
        "You can list and log truck trips, build monthly driver profitability "
        "reports (net profit = revenue - fuel - petty cash - deductions; traffic "
        "fines are tracked but not deducted), find the best performer, export the "
        "trip log as CSV, and run SQL over the trips table for follow-up questions."
    ),
)

# Shared clients (initialized lazily on first use)
_store: TripStore | None = None
_analytics: TripAnalytics | None = None
_insights: InsightGenerator | None = None


def _get_store() -> TripStore:
    global _store
    if _store is None:
        _store = TripStore()
        _store.load()
    return _store


def _get_analytics() -> TripAnalytics:
    global _analytics
    if _analytics is None:
        _analytics = TripAnalytics()
    return _analytics


def _get_insights() -> InsightGenerator:
    global _insights
    if _insights is None:
        _insights = GeminiInsights()
    return _insights


@mcp.tool()
def list_trips(limit: int = 100) -> dict:
    """List logged trips, newest first.

    Args:
        limit: Maximum number of trips to return (default 100)
    """
    trips = _get_store().trips
    return {"count": len(trips), "trips": [t.to_dict() for t in trips[:limit]]}


@mcp.tool()
def log_trip(
    date: str,
    driver_name: str,
    truck_id: str,
    start_point: str,
    end_point: str,
    customer_name: str = "",
    revenue: float = 0,
    fuel_cost: float = 0,
    petty_cash: float = 0,
    deductions: float = 0,
    traffic_fines: float = 0,
) -> dict:
    """Register a new trip in the log.

    Args:
        date: Trip date (YYYY-MM-DD)
        driver_name: Driver display name
        truck_id: Truck plate number
        start_point: Origin city
        end_point: Destination city
        customer_name: Billed customer
        revenue: Trip revenue
        fuel_cost: Fuel spend
        petty_cash: Petty cash spend
        deductions: Deductions applied to the trip
        traffic_fines: Traffic fines (not deducted from profit)
    """
    try:
        trip = _get_store().add_trip({
            "date": date,
            "driverName": driver_name,
            "truckId": truck_id,
            "startPoint": start_point,
            "endPoint": end_point,
            "customerName": customer_name,
            "revenue": revenue,
            "fuelCost": fuel_cost,
            "pettyCash": petty_cash,
            "deductions": deductions,
            "trafficFines": traffic_fines,
        })
    except ValueError as e:
        return {"error": str(e)}
    return trip.to_dict()


@mcp.tool()
def driver_reports(language: str = "en", include_trips: bool = False) -> dict:
    """Monthly driver profitability cohorts, most recent first.

    Args:
        language: "en" or "ar" month labels
        include_trips: Include member trips for each cohort
    """
    cohorts = reports.group_trips(_get_store().trips, language)
    rows = []
    for c in cohorts:
        row = reports.cohort_to_dict(c, language)
        if not include_trips:
            row.pop("trips")
        rows.append(row)
    return {"count": len(rows), "cohorts": rows}


@mcp.tool()
def best_performer(language: str = "en") -> dict:
    """Driver/month cohort with the highest net profit."""
    best = reports.best_performer(reports.group_trips(_get_store().trips, language))
    if best is None:
        return {"best_performer": None, "message": "No trip data yet"}
    return {"best_performer": reports.cohort_to_dict(best, language)}


@mcp.tool()
def export_trips_csv(language: str = "en") -> dict:
    """Export the flat trip log as CSV text, with the suggested filename."""
    trips = _get_store().trips
    return {
        "filename": reports.report_filename(),
        "rows": len(trips),
        "csv": reports.export_to_delimited_text(trips, language),
    }


@mcp.tool()
def fleet_stats() -> dict:
    """Trip counts by status (moving, loading, completed)."""
    return reports.fleet_stats(_get_store().trips)


@mcp.tool()
def analyze_trips() -> dict:
    """Ask Gemini for 3-4 operational insights on the recent trips."""
    return {"insights": _get_insights().generate(_get_store().trips)}


@mcp.tool()
def query_trips_sql(sql: str) -> dict:
    """Run SQL over the `trips` table.

    Columns: id, date, driver_name, truck_id, start_point, end_point,
    customer_name, revenue, fuel_cost, petty_cash, deductions,
    traffic_fines, status, created_at.

    Args:
        sql: A DuckDB SQL query, e.g. "SELECT driver_name, SUM(revenue) FROM trips GROUP BY 1"
    """
    analytics = _get_analytics()
    analytics.load_trips(_get_store().trips)
    return analytics.query(sql)


def main():
    """Run the MCP server over stdio."""
    mcp.run()


if __name__ == "__main__":
    main()
