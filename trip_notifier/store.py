"""
Trip record sources.

The lifecycle pass only needs a snapshot of every post. The sqlite source
mirrors the post service's collection; the in-memory source is used for
tests and for embedding the engine elsewhere.
"""

import json
import logging
import os
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, List

from trip_notifier.models import TripRecord

logger = logging.getLogger("trip_notifier.store")


class TripRecordSource(ABC):
    """Yields the current snapshot of all trip records."""

    @abstractmethod
    def fetch_all(self) -> List[TripRecord]:
        ...


class InMemoryTripSource(TripRecordSource):
    def __init__(self, trips: Iterable[TripRecord] = ()):
        self._lock = threading.Lock()
        self._trips = {t.id: t for t in trips}

    def add(self, trip: TripRecord) -> None:
        with self._lock:
            self._trips[trip.id] = trip

    def fetch_all(self) -> List[TripRecord]:
        with self._lock:
            return list(self._trips.values())


# ─────────────────────────── SQLITE ───────────────────────────

def utc_now_iso() -> str:
    """UTC timestamp with Z suffix and no microseconds."""
    return datetime.utcnow().replace(microsecond=0).isoformat() + "Z"


def _row_to_trip(row: sqlite3.Row) -> TripRecord:
    """Decode a posts row through the post document shape; raises ValueError if undecodable."""
    return TripRecord.from_dict({
        "id": row["id"],
        "title": row["title"],
        "source": row["source"],
        "destination": row["destination"],
        "startDate": row["start_date"],
        "endDate": row["end_date"],
        "status": row["status"],
        "users": json.loads(row["users_json"]) if row["users_json"] else [],
        "events": json.loads(row["events_json"]) if row["events_json"] else [],
        "count": json.loads(row["count_json"]) if row["count_json"] else None,
        "amount": row["amount"],
        "adminName": row["admin_name"],
        "days": row["days"],
        "nights": row["nights"],
    })


class SqliteTripSource(TripRecordSource):
    """Posts table in a local sqlite database, one connection per call."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    def db(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        conn = self.db()
        conn.execute("""
            CREATE TABLE IF NOT EXISTS posts (
                id TEXT PRIMARY KEY,
                title TEXT,
                source TEXT,
                destination TEXT,
                start_date TEXT NOT NULL,
                end_date TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'ACTIVE',
                users_json TEXT,
                events_json TEXT,
                count_json TEXT,
                amount REAL,
                admin_name TEXT,
                days INTEGER DEFAULT 0,
                nights INTEGER DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        conn.commit()
        conn.close()

    def save_trip(self, trip: TripRecord) -> None:
        """Insert or replace a post (seeding and tests)."""
        now = utc_now_iso()
        conn = self.db()
        conn.execute("""
            INSERT INTO posts (
                id, title, source, destination, start_date, end_date, status,
                users_json, events_json, count_json, amount, admin_name,
                days, nights, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                source = excluded.source,
                destination = excluded.destination,
                start_date = excluded.start_date,
                end_date = excluded.end_date,
                status = excluded.status,
                users_json = excluded.users_json,
                events_json = excluded.events_json,
                count_json = excluded.count_json,
                amount = excluded.amount,
                admin_name = excluded.admin_name,
                days = excluded.days,
                nights = excluded.nights,
                updated_at = excluded.updated_at
        """, (
            trip.id, trip.title, trip.source, trip.destination,
            trip.start_date, trip.end_date, trip.status.value,
            json.dumps(trip.users),
            json.dumps([e.to_dict() for e in trip.events]),
            json.dumps(trip.count.to_dict()),
            trip.amount, trip.admin_name, trip.days, trip.nights,
            now, now,
        ))
        conn.commit()
        conn.close()

    def fetch_all(self) -> List[TripRecord]:
        conn = self.db()
        try:
            rows = conn.execute("SELECT * FROM posts").fetchall()
        finally:
            conn.close()

        trips = []
        for row in rows:
            try:
                trips.append(_row_to_trip(row))
            except (ValueError, TypeError) as e:
                logger.error(f"Skipping undecodable post {row['id']}: {e}")
        logger.info(f"Fetched {len(trips)} posts from {self.db_path}")
        return trips
