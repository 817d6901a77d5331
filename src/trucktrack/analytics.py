"""DuckDB analytics over the current trip snapshot."""

from __future__ import annotations

import os

import duckdb

from trucktrack.models import coerce_trip
from trucktrack.utils import to_amount

_TRIPS_DDL = """
    CREATE TABLE trips (
        id            VARCHAR,
        date          VARCHAR,
        driver_name   VARCHAR,
        truck_id      VARCHAR,
        start_point   VARCHAR,
        end_point     VARCHAR,
        customer_name VARCHAR,
        revenue       DOUBLE,
        fuel_cost     DOUBLE,
        petty_cash    DOUBLE,
        deductions    DOUBLE,
        traffic_fines DOUBLE,
        status        VARCHAR,
        created_at    VARCHAR
    )
"""


class TripAnalytics:
    """Local analytical cache using DuckDB for SQL queries over trips."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = db_path or os.getenv("DUCKDB_PATH", ":memory:")
        self._conn: duckdb.DuckDBPyConnection | None = None

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            self._conn = duckdb.connect(self._db_path)
            # Queries only ever see the trips table, never the filesystem.
            self._conn.execute("SET enable_external_access = false")
        return self._conn

    def load_trips(self, trips: list) -> dict:
        """Replace the trips table with the given snapshot."""
        rows = []
        for record in trips:
            t = coerce_trip(record)
            rows.append((
                t.id, t.date, t.driver_name, t.truck_id, t.start_point, t.end_point,
                t.customer_name,
                float(to_amount(t.revenue)), float(to_amount(t.fuel_cost)),
                float(to_amount(t.petty_cash)), float(to_amount(t.deductions)),
                float(to_amount(t.traffic_fines)),
                t.status, t.created_at,
            ))
        self.conn.execute("DROP TABLE IF EXISTS trips")
        self.conn.execute(_TRIPS_DDL)
        if rows:
            self.conn.executemany(
                "INSERT INTO trips VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                rows,
            )
        return {"dataset": "trips", "rows": len(rows), "status": "cached"}

    def query(self, sql: str) -> dict:
        """Run a SQL query over cached data. Returns results as list of dicts."""
        try:
            result = self.conn.execute(sql)
            columns = [desc[0] for desc in result.description]
            rows = result.fetchall()
        except duckdb.Error as e:
            return {"error": str(e)}
        data = [dict(zip(columns, row)) for row in rows]
        return {
            "columns": columns,
            "row_count": len(data),
            "data": data,
        }

    def monthly_totals(self) -> list[dict]:
        """Revenue, costs and net profit per calendar month, newest first."""
        result = self.query("""
            SELECT
                strftime(TRY_CAST(substr(date, 1, 10) AS DATE), '%Y-%m') AS month,
                COUNT(*)             AS trips,
                SUM(revenue)         AS revenue,
                SUM(fuel_cost)       AS fuel,
                SUM(petty_cash)      AS petty,
                SUM(deductions)      AS deductions,
                SUM(traffic_fines)   AS fines,
                SUM(revenue) - SUM(fuel_cost + petty_cash + deductions) AS net_profit
            FROM trips
            WHERE TRY_CAST(substr(date, 1, 10) AS DATE) IS NOT NULL
            GROUP BY month
            ORDER BY month DESC
        """)
        if "error" in result:
            return []
        return result["data"]

    def export_dataset(self, format: str = "json") -> dict:
        """Export the trips table to JSON rows or a CSV string."""
        result = self.query("SELECT * FROM trips")
        if "error" in result:
            return result
        if format == "csv":
            lines = [",".join(result["columns"])]
            for row in result["data"]:
                lines.append(",".join(str(v) for v in row.values()))
            return {"format": "csv", "data": "\n".join(lines)}
        return {"format": "json", "data": result["data"]}

    def close(self) -> None:
        """Close the DuckDB connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
