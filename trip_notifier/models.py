"""
Data models for trip records and notification bookkeeping.

This module defines:
- Trip lifecycle status (ACTIVE -> LOCKED -> INACTIVE)
- Trip records as stored by the post service, with their itinerary payload
- Per-participant notification requests and delivery results
- Per-pass summary counters
"""

from concurrent.futures import Future, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


# ─────────────────────────── ENUMS ───────────────────────────

class TripStatus(str, Enum):
    """Trip lifecycle status (monotonic)"""
    ACTIVE = "ACTIVE"        # Open trip, reminders not yet sent
    LOCKED = "LOCKED"        # Inside the reminder window, reminder dispatched
    INACTIVE = "INACTIVE"    # Trip concluded, nothing more to do


class TripAction(str, Enum):
    """Outcome of evaluating one trip record in a pass"""
    NOOP = "noop"
    LOCK_AND_REMIND = "lock_and_remind"
    COMPLETE = "complete"


# ─────────────────────────── TRIP RECORDS ───────────────────────────

@dataclass
class Count:
    """Demographic counters carried on a post; not used by the lifecycle rules"""
    male: int = 0
    female: int = 0
    others: int = 0
    total: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Count":
        data = data or {}
        return cls(
            male=int(data.get("male") or 0),
            female=int(data.get("female") or 0),
            others=int(data.get("others") or 0),
            total=int(data.get("total") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'male': self.male,
            'female': self.female,
            'others': self.others,
            'total': self.total,
        }


@dataclass
class TimelineEntry:
    """One day/stop of an itinerary with its free-text sub-events"""
    title: str
    date: str  # ISO date (YYYY-MM-DD)
    events: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimelineEntry":
        return cls(
            title=data.get("title") or "",
            date=str(data.get("date") or ""),
            events=[str(e) for e in (data.get("events") or [])],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'date': self.date,
            'events': list(self.events),
        }


@dataclass
class TripRecord:
    """
    A travel post/itinerary as held by the record store.

    Dates are kept as the stored ISO strings; they are parsed by the lifecycle
    evaluator so that a malformed value only fails that one record.
    """
    id: str
    start_date: str  # ISO date (YYYY-MM-DD)
    end_date: str    # ISO date (YYYY-MM-DD)
    status: TripStatus
    users: List[str] = field(default_factory=list)

    # Itinerary payload
    title: str = ""
    source: str = ""
    destination: str = ""
    days: int = 0
    nights: int = 0
    amount: Optional[float] = None
    events: List[TimelineEntry] = field(default_factory=list)
    admin_name: str = ""
    count: Count = field(default_factory=Count)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TripRecord":
        """
        Build a record from the post-service document shape (camelCase keys).

        Raises ValueError for a missing id or an unknown status.
        """
        trip_id = data.get("id") or data.get("_id")
        if not trip_id:
            raise ValueError("Trip record has no id")
        amount = data.get("amount")
        return cls(
            id=str(trip_id),
            start_date=data.get("startDate") or "",
            end_date=data.get("endDate") or "",
            status=TripStatus(data.get("status") or TripStatus.ACTIVE.value),
            users=[str(u) for u in (data.get("users") or [])],
            title=data.get("title") or "",
            source=data.get("source") or "",
            destination=data.get("destination") or "",
            days=int(data.get("days") or 0),
            nights=int(data.get("nights") or 0),
            amount=float(amount) if amount is not None else None,
            events=[TimelineEntry.from_dict(e) for e in (data.get("events") or [])],
            admin_name=data.get("adminName") or "",
            count=Count.from_dict(data.get("count")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'source': self.source,
            'destination': self.destination,
            'startDate': self.start_date,
            'endDate': self.end_date,
            'count': self.count.to_dict(),
            'events': [e.to_dict() for e in self.events],
            'amount': self.amount,
            'users': list(self.users),
            'status': self.status.value if isinstance(self.status, TripStatus) else self.status,
            'adminName': self.admin_name,
            'days': self.days,
            'nights': self.nights,
        }


# ─────────────────────────── NOTIFICATIONS ───────────────────────────

@dataclass
class NotificationRequest:
    """One reminder for one participant of one trip; email is resolved lazily"""
    trip: TripRecord
    username: str
    email: Optional[str] = None


@dataclass
class DeliveryResult:
    """What happened to a single participant's reminder"""
    trip_id: str
    username: str
    email: Optional[str] = None
    delivered: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'trip_id': self.trip_id,
            'username': self.username,
            'email': self.email,
            'delivered': self.delivered,
            'error': self.error,
        }


# ─────────────────────────── PASS SUMMARY ───────────────────────────

@dataclass
class PassSummary:
    """
    Counters for one evaluation pass.

    A finished pass means every evaluation ran and every reminder was handed
    to the delivery pool; deliveries themselves may still be in flight and
    are reachable through `deliveries`.
    """
    started_at: str
    finished_at: Optional[str] = None
    evaluated: int = 0
    locked: int = 0
    lock_failed: int = 0
    reminded: int = 0
    completed: int = 0
    complete_failed: int = 0
    noop: int = 0
    failed: int = 0
    notifications_scheduled: int = 0
    deliveries: List[Future] = field(default_factory=list, repr=False)

    def wait_for_deliveries(self, timeout: Optional[float] = None) -> List[DeliveryResult]:
        """Block until scheduled deliveries finish; returns the ones that did."""
        if not self.deliveries:
            return []
        done, _ = wait(self.deliveries, timeout=timeout)
        return [f.result() for f in self.deliveries if f in done]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'started_at': self.started_at,
            'finished_at': self.finished_at,
            'evaluated': self.evaluated,
            'locked': self.locked,
            'lock_failed': self.lock_failed,
            'reminded': self.reminded,
            'completed': self.completed,
            'complete_failed': self.complete_failed,
            'noop': self.noop,
            'failed': self.failed,
            'notifications_scheduled': self.notifications_scheduled,
        }
