"""
Trip lifecycle evaluation.

For each trip record, first match wins:

1. ACTIVE and the start date (at midnight, local) is between now and
   now + reminder window, both bounds inclusive: request LOCKED and send the
   reminder to every participant from the snapshot in hand.
2. End date before today: request INACTIVE, whatever the current status.
3. Otherwise nothing.

The authoritative status lives in the post service; the in-memory record is
never modified. With strict transitions enabled the reminder waits for a
successful lock and already-INACTIVE trips are left alone.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from trip_notifier.clients import RemoteServiceError, StatusMutationClient
from trip_notifier.config import Settings
from trip_notifier.models import TripAction, TripRecord, TripStatus

logger = logging.getLogger("trip_notifier.lifecycle")

# Stored dates are plain YYYY-MM-DD; compact and week forms are malformed
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class DateParseError(ValueError):
    """A stored trip date is not an ISO calendar date."""


def parse_trip_date(value: str, field_name: str, trip_id: str) -> date:
    text = value.strip() if isinstance(value, str) else ""
    try:
        if not ISO_DATE_RE.match(text):
            raise ValueError("expected YYYY-MM-DD")
        return date.fromisoformat(text)
    except ValueError as e:
        raise DateParseError(f"Post ID: {trip_id} has malformed {field_name} {value!r}") from e


def starts_within_window(start: date, now: datetime, window: timedelta) -> bool:
    """True when start-of-day of `start` lies in [now, now + window]."""
    start_at = datetime.combine(start, time.min, tzinfo=now.tzinfo)
    remaining = start_at - now
    return timedelta(0) <= remaining <= window


def is_trip_completed(end: date, today: date) -> bool:
    return end < today


def decide_action(trip: TripRecord, now: datetime, window: timedelta, strict: bool = False) -> TripAction:
    """
    Pure decision for one record. Both dates are parsed before anything is
    decided, so a malformed record raises DateParseError and yields no action.
    """
    start = parse_trip_date(trip.start_date, "startDate", trip.id)
    end = parse_trip_date(trip.end_date, "endDate", trip.id)

    is_active = trip.status == TripStatus.ACTIVE
    within_window = is_active and starts_within_window(start, now, window)
    logger.debug(f"Post ID: {trip.id} is active: {is_active}, within window: {within_window}")
    if within_window:
        return TripAction.LOCK_AND_REMIND

    completed = is_trip_completed(end, now.date())
    logger.debug(f"Post ID: {trip.id} is completed: {completed}")
    if completed:
        if strict and trip.status == TripStatus.INACTIVE:
            return TripAction.NOOP
        return TripAction.COMPLETE

    return TripAction.NOOP


@dataclass
class EvaluationOutcome:
    trip_id: str
    action: TripAction
    transition_ok: Optional[bool] = None  # None when no transition was requested
    reminded: bool = False
    deliveries: List = field(default_factory=list)


class LifecycleEvaluator:
    def __init__(self, status_client: StatusMutationClient, notifier, settings: Settings):
        self.status_client = status_client
        self.notifier = notifier
        self.settings = settings
        self.window = timedelta(hours=settings.reminder_window_hours)

    def local_now(self, now: Optional[datetime] = None) -> datetime:
        tz = self.settings.tzinfo()
        if now is None:
            return datetime.now(tz)
        if now.tzinfo is None:
            return now.replace(tzinfo=tz)
        return now.astimezone(tz)

    def evaluate(self, trip: TripRecord, now: Optional[datetime] = None) -> EvaluationOutcome:
        """
        Decide and execute the action for one trip.

        Raises DateParseError for malformed dates, and RuntimeError when a
        reminder is due but delivery is shut down, both before any side effect.
        Remote failures are logged and reflected in the outcome, never raised.
        """
        now = self.local_now(now)
        action = decide_action(trip, now, self.window, strict=self.settings.strict_transitions)
        outcome = EvaluationOutcome(trip_id=trip.id, action=action)

        if action == TripAction.LOCK_AND_REMIND:
            # A lock without reminders would never be retried: LOCKED trips are not reminded again
            if self.notifier.closed:
                raise RuntimeError(f"Reminder delivery is shut down; leaving post ID: {trip.id} unlocked")
            logger.info(f"Post ID: {trip.id} is within {self.settings.reminder_window_hours} hours. Locking and sending reminders.")
            outcome.transition_ok = self._request_transition(trip.id, TripStatus.LOCKED)
            if outcome.transition_ok or not self.settings.strict_transitions:
                outcome.deliveries = self.notifier.notify_participants(trip)
                outcome.reminded = True
            else:
                logger.warning(f"Post ID: {trip.id} lock not confirmed; reminders held back")
        elif action == TripAction.COMPLETE:
            logger.info(f"Post ID: {trip.id} is completed. Changing status to INACTIVE.")
            outcome.transition_ok = self._request_transition(trip.id, TripStatus.INACTIVE)
        else:
            logger.debug(f"Post ID: {trip.id} needs no action")

        return outcome

    def _request_transition(self, trip_id: str, target: TripStatus) -> bool:
        try:
            if target == TripStatus.LOCKED:
                self.status_client.set_locked(trip_id)
            else:
                self.status_client.set_inactive(trip_id)
        except RemoteServiceError as e:
            logger.error(f"Status update to {target.value} failed for post ID: {trip_id}: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error updating post ID: {trip_id} to {target.value}: {e}", exc_info=True)
            return False
        logger.info(f"Status updated to {target.value} for post ID: {trip_id}")
        return True
