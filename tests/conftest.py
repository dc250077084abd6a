"""
Shared pytest fixtures and test utilities for trip notifier tests.

This module provides:
- Environment configuration applied before the app is imported
- Recording fakes for the post service, user service and mail transport
- A trip factory with sensible defaults
- Wired evaluator/driver fixtures pinned to a fixed clock
"""
import os
import sys
import threading
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

import pytest

# ─────────────────────────── PATH SETUP ───────────────────────────

TEST_ROOT = Path(__file__).resolve().parent
DATA_DIR = TEST_ROOT / "tmp_data"
DATA_DIR.mkdir(parents=True, exist_ok=True)

# ─────────────────────────── ENVIRONMENT ───────────────────────────

def configure_test_environment():
    """Configure environment variables for testing."""
    os.environ["DB_PATH"] = str(DATA_DIR / "trips.db")
    os.environ["LOG_FILE"] = ""
    os.environ.setdefault("LOG_LEVEL", "WARNING")
    os.environ["SCHEDULER_ENABLED"] = "0"
    os.environ["SMTP_HOST"] = ""
    os.environ["SMTP_FROM"] = ""

configure_test_environment()

sys.path.insert(0, str(TEST_ROOT.parent))

from trip_notifier.clients import ParticipantDirectoryClient, RemoteServiceError, StatusMutationClient  # noqa: E402
from trip_notifier.config import Settings  # noqa: E402
from trip_notifier.dispatch import DispatchDriver  # noqa: E402
from trip_notifier.lifecycle import LifecycleEvaluator  # noqa: E402
from trip_notifier.mailer import DeliveryError  # noqa: E402
from trip_notifier.models import TimelineEntry, TripRecord, TripStatus  # noqa: E402
from trip_notifier.notifications import ReminderNotifier  # noqa: E402
from trip_notifier.store import InMemoryTripSource  # noqa: E402

TZ_NAME = "Asia/Kolkata"
TZ = ZoneInfo(TZ_NAME)

# Fixed evaluation clock: midday local time
NOW = datetime(2026, 3, 10, 12, 0, tzinfo=TZ)
TODAY = NOW.date()


def midnight(day: date) -> datetime:
    return datetime(day.year, day.month, day.day, tzinfo=TZ)


# ─────────────────────────── FAKES ───────────────────────────

class RecordingStatusClient(StatusMutationClient):
    """Records every transition request; ids in `fail_ids` raise RemoteServiceError."""

    def __init__(self, fail_ids=()):
        self.calls: List[Tuple[str, str]] = []
        self.fail_ids = set(fail_ids)
        self._lock = threading.Lock()

    def _record(self, op: str, trip_id: str):
        with self._lock:
            self.calls.append((op, trip_id))
        if trip_id in self.fail_ids:
            raise RemoteServiceError(f"PostService unavailable for {trip_id}")

    def set_locked(self, trip_id: str) -> None:
        self._record("locked", trip_id)

    def set_inactive(self, trip_id: str) -> None:
        self._record("inactive", trip_id)

    def ids_for(self, op: str) -> List[str]:
        return [trip_id for o, trip_id in self.calls if o == op]


class FakeDirectory(ParticipantDirectoryClient):
    """Resolves `<username>@example.com` unless the user is listed as unknown."""

    def __init__(self, unknown=()):
        self.unknown = set(unknown)
        self.lookups: List[str] = []
        self._lock = threading.Lock()

    def resolve_email(self, username: str) -> str:
        with self._lock:
            self.lookups.append(username)
        if username in self.unknown:
            raise RemoteServiceError(f"UserService GET /users/email/{username} returned 404: not found")
        return f"{username}@example.com"


class GatedSource(InMemoryTripSource):
    """Holds fetch_all() open until released so a pass stays in flight."""

    def __init__(self, trips=()):
        super().__init__(trips)
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch_all(self):
        self.entered.set()
        assert self.release.wait(10)
        return super().fetch_all()


class RecordingMailer:
    """Captures sent messages; addresses in `fail_for` raise DeliveryError."""

    def __init__(self, fail_for=()):
        self.sent: List[Dict] = []
        self.fail_for = set(fail_for)
        self._lock = threading.Lock()

    def send(self, to_addrs, subject, text_body, html_body=None, attachments=()):
        if any(a in self.fail_for for a in to_addrs):
            raise DeliveryError(f"Failed to send '{subject}' to {to_addrs}: 550 mailbox unavailable")
        with self._lock:
            self.sent.append({
                "to": list(to_addrs),
                "subject": subject,
                "text": text_body,
                "html": html_body,
                "attachments": list(attachments),
            })
        return True

    def recipients(self) -> List[str]:
        return sorted(addr for msg in self.sent for addr in msg["to"])


# ─────────────────────────── TEST DATA FACTORIES ───────────────────────────

def make_trip(
    trip_id: str = "t1",
    status: TripStatus = TripStatus.ACTIVE,
    start: Optional[date] = None,
    end: Optional[date] = None,
    users: Optional[List[str]] = None,
    **overrides,
) -> TripRecord:
    """Create a trip record; dates default to a trip starting tomorrow for three days."""
    start = start or TODAY + timedelta(days=1)
    end = end or start + timedelta(days=2)
    values = dict(
        id=trip_id,
        status=status,
        start_date=start.isoformat(),
        end_date=end.isoformat(),
        users=["alice", "bob"] if users is None else users,
        title="Goa Getaway",
        source="Mumbai",
        destination="Goa",
        days=3,
        nights=2,
        amount=15000.0,
        admin_name="Priya",
        events=[
            TimelineEntry("Day 1", start.isoformat(), ["Check-in", "Beach walk"]),
            TimelineEntry("Day 2", (start + timedelta(days=1)).isoformat(), ["Fort Aguada"]),
        ],
    )
    values.update(overrides)
    return TripRecord(**values)


def make_settings(**overrides) -> Settings:
    values = dict(
        timezone=TZ_NAME,
        scheduler_enabled=False,
        log_file="",
        admin_password="admin-test-password",
        max_trip_workers=4,
        max_delivery_workers=4,
    )
    values.update(overrides)
    return Settings(**values)


# ─────────────────────────── PYTEST FIXTURES ───────────────────────────

@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def status_client():
    return RecordingStatusClient()


@pytest.fixture
def directory():
    return FakeDirectory()


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def notifier(directory, mailer):
    n = ReminderNotifier(directory, mailer, max_workers=4)
    yield n
    n.shutdown(wait=True)


@pytest.fixture
def evaluator(status_client, notifier, settings):
    return LifecycleEvaluator(status_client, notifier, settings)


@pytest.fixture
def source():
    return InMemoryTripSource()


@pytest.fixture
def driver(source, evaluator, settings):
    return DispatchDriver(source, evaluator, max_workers=settings.max_trip_workers)
