"""
One evaluation pass over every trip record.

Records are evaluated concurrently on a pool created for the pass, so
overlapping passes (timer plus manual trigger) share nothing but the remote
clients and the delivery pool. run_pass() returns once every evaluation has
finished and every reminder has been handed to the delivery pool.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from typing import Optional

from trip_notifier.lifecycle import DateParseError, EvaluationOutcome, LifecycleEvaluator
from trip_notifier.models import PassSummary, TripAction
from trip_notifier.store import TripRecordSource

logger = logging.getLogger("trip_notifier.dispatch")


class DispatchDriver:
    def __init__(self, source: TripRecordSource, evaluator: LifecycleEvaluator, max_workers: int = 8):
        self.source = source
        self.evaluator = evaluator
        self.max_workers = max_workers
        self._last_summary: Optional[PassSummary] = None
        self._summary_lock = threading.Lock()
        self._in_flight = 0
        self._idle = threading.Condition()

    @property
    def last_summary(self) -> Optional[PassSummary]:
        with self._summary_lock:
            return self._last_summary

    @property
    def in_flight(self) -> int:
        with self._idle:
            return self._in_flight

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no pass is running. Returns False if the timeout expired first."""
        with self._idle:
            return self._idle.wait_for(lambda: self._in_flight == 0, timeout=timeout)

    def run_pass(self, now: Optional[datetime] = None) -> PassSummary:
        """Fetch all trips and evaluate each independently."""
        with self._idle:
            self._in_flight += 1
        try:
            return self._run_pass(now)
        finally:
            with self._idle:
                self._in_flight -= 1
                self._idle.notify_all()

    def _run_pass(self, now: Optional[datetime]) -> PassSummary:
        now = self.evaluator.local_now(now)
        summary = PassSummary(started_at=now.isoformat())
        logger.info("Fetching post data for lifecycle pass")

        trips = self.source.fetch_all()
        logger.info(f"Evaluating {len(trips)} post(s) at {now.isoformat()}")

        if trips:
            with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="trip-eval") as pool:
                futures = {pool.submit(self.evaluator.evaluate, trip, now): trip for trip in trips}
                for future in as_completed(futures):
                    trip = futures[future]
                    summary.evaluated += 1
                    try:
                        outcome = future.result()
                    except DateParseError as e:
                        summary.failed += 1
                        logger.error(f"Skipping post: {e}")
                        continue
                    except Exception as e:
                        summary.failed += 1
                        logger.error(f"Evaluation failed for post ID: {trip.id}: {e}", exc_info=True)
                        continue
                    self._record(summary, outcome)

        summary.finished_at = self.evaluator.local_now().isoformat()
        logger.info(
            f"Pass finished: {summary.evaluated} evaluated, {summary.locked} locked, "
            f"{summary.reminded} reminded ({summary.notifications_scheduled} emails scheduled), "
            f"{summary.completed} completed, {summary.noop} unchanged, {summary.failed} failed"
        )
        with self._summary_lock:
            self._last_summary = summary
        return summary

    @staticmethod
    def _record(summary: PassSummary, outcome: EvaluationOutcome) -> None:
        if outcome.action == TripAction.LOCK_AND_REMIND:
            if outcome.transition_ok:
                summary.locked += 1
            else:
                summary.lock_failed += 1
            if outcome.reminded:
                summary.reminded += 1
                summary.notifications_scheduled += len(outcome.deliveries)
                summary.deliveries.extend(outcome.deliveries)
        elif outcome.action == TripAction.COMPLETE:
            if outcome.transition_ok:
                summary.completed += 1
            else:
                summary.complete_failed += 1
        else:
            summary.noop += 1
