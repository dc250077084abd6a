import logging
import threading
from datetime import datetime, time, timedelta, tzinfo
from typing import Callable, Optional

logger = logging.getLogger("trip_notifier.scheduler")


def next_run_at(now: datetime, hour: int, minute: int) -> datetime:
    """Next occurrence of hour:minute strictly after `now`, in now's timezone."""
    candidate = datetime.combine(now.date(), time(hour, minute), tzinfo=now.tzinfo)
    if candidate <= now:
        candidate = datetime.combine(now.date() + timedelta(days=1), time(hour, minute), tzinfo=now.tzinfo)
    return candidate


def seconds_until(target: datetime, now: datetime) -> float:
    # Compare in UTC so a DST change between now and target is accounted for
    return max(0.0, (target.timestamp() - now.timestamp()))


class DailyScheduler:
    """
    Runs `job` once a day at a fixed local time in a background thread.

    The job's exceptions are logged and the loop keeps going.
    """

    def __init__(self, job: Callable[[], object], hour: int, minute: int, tz: tzinfo):
        self.job = job
        self.hour = hour
        self.minute = minute
        self.tz = tz
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.next_run: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return  # Already running
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="daily-trip-pass", daemon=True)
        self._thread.start()
        logger.info(f"Daily trip pass scheduled at {self.hour:02d}:{self.minute:02d} ({self.tz})")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Daily trip pass scheduler stopped")

    def _loop(self) -> None:
        while not self._stop.is_set():
            now = datetime.now(self.tz)
            self.next_run = next_run_at(now, self.hour, self.minute)
            if self._stop.wait(seconds_until(self.next_run, now)):
                break
            logger.info("Starting scheduled task to fetch post data.")
            try:
                self.job()
            except Exception as e:
                logger.error(f"Scheduled trip pass failed: {e}", exc_info=True)
