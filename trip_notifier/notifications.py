"""
Reminder fan-out.

Each participant of a trip gets an independent task on a bounded, long-lived
worker pool: resolve the email, render, send. A failure in one task is
logged and recorded in its DeliveryResult; it never touches the others.
Callers receive the futures and are free to ignore them.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List

from trip_notifier.clients import ParticipantDirectoryClient, RemoteServiceError
from trip_notifier.mailer import Attachment, DeliveryError
from trip_notifier.models import DeliveryResult, NotificationRequest, TripRecord
from trip_notifier.rendering import (
    ATTACHMENT_FILENAME,
    build_itinerary_pdf,
    build_reminder_html,
    build_reminder_text,
    reminder_subject,
)

logger = logging.getLogger("trip_notifier.notifications")


class ReminderNotifier:
    def __init__(self, directory: ParticipantDirectoryClient, mailer, max_workers: int = 8):
        self.directory = directory
        self.mailer = mailer
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="reminder-delivery")
        self._closed = False
        self._submit_lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def notify_participants(self, trip: TripRecord) -> List[Future]:
        """Schedule one delivery per participant and return without waiting."""
        futures = []
        with self._submit_lock:
            if self._closed:
                raise RuntimeError(f"Reminder delivery is shut down; cannot notify post ID: {trip.id}")
            for username in trip.users:
                request = NotificationRequest(trip=trip, username=username)
                futures.append(self._executor.submit(self.deliver, request))
        logger.info(f"Scheduled {len(futures)} reminder(s) for post ID: {trip.id}")
        return futures

    def deliver(self, request: NotificationRequest) -> DeliveryResult:
        trip = request.trip
        result = DeliveryResult(trip_id=trip.id, username=request.username)
        try:
            request.email = self.directory.resolve_email(request.username)
            result.email = request.email
            logger.info(f"Sending email to: {request.email} for post ID: {trip.id}")

            html_body = build_reminder_html(request.username, trip)
            text_body = build_reminder_text(request.username, trip)
            pdf_bytes = build_itinerary_pdf(request.username, trip)

            result.delivered = bool(self.mailer.send(
                [request.email],
                reminder_subject(trip),
                text_body,
                html_body=html_body,
                attachments=[Attachment(ATTACHMENT_FILENAME, pdf_bytes)],
            ))
            if result.delivered:
                logger.info(f"Email sent successfully to {request.email} for post ID: {trip.id}")
        except RemoteServiceError as e:
            result.error = str(e)
            logger.error(f"Could not resolve email for user {request.username} (post ID: {trip.id}): {e}")
        except DeliveryError as e:
            result.error = str(e)
            logger.error(f"Delivery failed for user {request.username} (post ID: {trip.id}): {e}")
        except Exception as e:
            result.error = str(e)
            logger.error(
                f"Unexpected error notifying user {request.username} (post ID: {trip.id}): {e}",
                exc_info=True,
            )
        return result

    def shutdown(self, wait: bool = True) -> None:
        """Refuse new reminders, then drain (or abandon) the queued ones."""
        with self._submit_lock:
            self._closed = True
        self._executor.shutdown(wait=wait)
