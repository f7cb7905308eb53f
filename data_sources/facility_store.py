"""
Curated facility directory storage.

Facilities live in a local SQLite file. Searchable columns (type, active,
coordinates) are real columns; the rest of the record is a JSON blob.
Radius queries use a lat/lon bounding-box prefilter in SQL and an exact
haversine check in Python.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from logging_config import get_logger

from .error_handling import ValidationError
from .models import Coordinate, FacilityType, PaymentOptions, PersistedFacility
from .utils import bounding_box, haversine_distance

logger = get_logger(__name__)

DEFAULT_NEAR_LIMIT = 50


def _init_db(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS facilities (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            facility_type TEXT NOT NULL,
            lat REAL NOT NULL,
            lon REAL NOT NULL,
            zip_code TEXT,
            active INTEGER NOT NULL DEFAULT 1,
            record TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_facilities_type_active ON facilities (facility_type, active);")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_facilities_lat_lon ON facilities (lat, lon);")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_facilities_zip ON facilities (zip_code);")
    conn.commit()


class FacilityStore:
    """
    CRUD and radius queries over persisted facilities.

    One connection is shared between request threads; every statement runs
    under a lock so single-record writes are atomic.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).resolve().parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._lock = threading.Lock()
        with self._lock:
            _init_db(self._conn)
        logger.info(f"Facility store ready at {db_path}")

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @staticmethod
    def _row_to_facility(row: Tuple) -> PersistedFacility:
        facility_id, record = row
        data = json.loads(record)
        data["id"] = facility_id
        return PersistedFacility.from_dict(data)

    @staticmethod
    def _columns(facility: PersistedFacility) -> Tuple:
        record = facility.to_dict()
        record.pop("id", None)
        return (
            facility.name,
            facility.facility_type.value,
            facility.coordinate.latitude,
            facility.coordinate.longitude,
            facility.address.zip_code,
            1 if facility.active else 0,
            json.dumps(record),
            facility.created_at,
            facility.updated_at,
        )

    def create(self, facility: PersistedFacility) -> PersistedFacility:
        now = datetime.now(timezone.utc).isoformat()
        facility.created_at = now
        facility.updated_at = now
        with self._lock:
            cur = self._conn.execute(
                """
                INSERT INTO facilities (name, facility_type, lat, lon, zip_code, active, record, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                self._columns(facility),
            )
            self._conn.commit()
            facility.id = cur.lastrowid
        logger.info(f"Created facility {facility.id} ({facility.name})", extra={"facility_id": facility.id})
        return facility

    def find_by_id(self, facility_id: int) -> Optional[PersistedFacility]:
        """Look up a facility by id, inactive ones included."""
        with self._lock:
            row = self._conn.execute(
                "SELECT id, record FROM facilities WHERE id = ?;", (facility_id,)
            ).fetchone()
        return self._row_to_facility(row) if row else None

    def list_active(self) -> List[PersistedFacility]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT id, record FROM facilities WHERE active = 1 ORDER BY id;"
            ).fetchall()
        return [self._row_to_facility(r) for r in rows]

    def update(self, facility_id: int, facility: PersistedFacility) -> Optional[PersistedFacility]:
        """
        Replace the stored record for `facility_id`.

        Returns:
            The saved facility, or None if the id does not exist
        """
        facility.id = facility_id
        facility.updated_at = datetime.now(timezone.utc).isoformat()
        with self._lock:
            cur = self._conn.execute(
                """
                UPDATE facilities
                SET name = ?, facility_type = ?, lat = ?, lon = ?, zip_code = ?, active = ?,
                    record = ?, created_at = ?, updated_at = ?
                WHERE id = ?;
                """,
                self._columns(facility) + (facility_id,),
            )
            self._conn.commit()
        if cur.rowcount == 0:
            return None
        logger.info(f"Updated facility {facility_id}", extra={"facility_id": facility_id})
        return facility

    def soft_delete(self, facility_id: int) -> bool:
        """Flip `active` off. The row stays so the record remains readable by id."""
        facility = self.find_by_id(facility_id)
        if facility is None:
            return False
        facility.active = False
        self.update(facility_id, facility)
        logger.info(f"Soft-deleted facility {facility_id}", extra={"facility_id": facility_id})
        return True

    def find_near(self, coordinate: Coordinate, radius_km: float,
                  facility_type: Optional[FacilityType] = None,
                  payment_options: Optional[Iterable[str]] = None,
                  limit: Optional[int] = DEFAULT_NEAR_LIMIT) -> List[Tuple[PersistedFacility, float]]:
        """
        Active facilities within `radius_km` of `coordinate`, nearest first.

        Args:
            coordinate: Search origin
            radius_km: Search radius in kilometers
            facility_type: Exact type match, when given
            payment_options: Keep facilities offering at least one of these
                             (keys of PaymentOptions.OPTION_FLAGS)
            limit: Maximum number of results, or None for all of them

        Returns:
            List of (facility, distance_km)
        """
        if radius_km <= 0:
            raise ValidationError("Search radius must be positive")
        options = list(payment_options or [])
        unknown = [o for o in options if o not in PaymentOptions.OPTION_FLAGS]
        if unknown:
            raise ValidationError(f"Unknown payment option(s): {', '.join(unknown)}")

        min_lat, max_lat, min_lon, max_lon = bounding_box(coordinate.latitude, coordinate.longitude, radius_km)
        sql = """
            SELECT id, record FROM facilities
            WHERE active = 1
              AND lat BETWEEN ? AND ?
              AND lon BETWEEN ? AND ?
        """
        params: list = [min_lat, max_lat, min_lon, max_lon]
        if facility_type is not None:
            sql += " AND facility_type = ?"
            params.append(facility_type.value)

        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()

        results: List[Tuple[PersistedFacility, float]] = []
        for row in rows:
            facility = self._row_to_facility(row)
            distance_km = haversine_distance(coordinate.latitude, coordinate.longitude,
                                             facility.coordinate.latitude, facility.coordinate.longitude)
            if distance_km > radius_km:
                continue
            if options and not facility.payment_options.satisfies_any(options):
                continue
            results.append((facility, distance_km))

        results.sort(key=lambda pair: pair[1])
        logger.debug(f"find_near matched {len(results)} of {len(rows)} candidates")
        return results[:limit]
