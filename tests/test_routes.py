"""
Smoke tests for the HTTP surface.

These tests verify that:
1. The trigger endpoint runs a pass and answers 200 with no body
2. Health reports the last pass
3. Log inspection requires the admin password
4. Shutdown lets a running pass finish its reminders
"""

import logging
import threading
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from tests.conftest import (
    TODAY,
    FakeDirectory,
    GatedSource,
    RecordingMailer,
    RecordingStatusClient,
    make_settings,
    make_trip,
    midnight,
)
from trip_notifier import main
from trip_notifier.dispatch import DispatchDriver
from trip_notifier.lifecycle import LifecycleEvaluator
from trip_notifier.main import Services, app
from trip_notifier.models import TripStatus
from trip_notifier.notifications import ReminderNotifier
from trip_notifier.store import InMemoryTripSource


@pytest.fixture
def services(evaluator, notifier, settings):
    yesterday = TODAY - timedelta(days=1)
    source = InMemoryTripSource([
        make_trip("done", status=TripStatus.LOCKED, start=yesterday, end=yesterday),
    ])
    bundle = Services(
        settings=settings,
        driver=DispatchDriver(source, evaluator, max_workers=2),
        notifier=notifier,
    )
    main.set_services(bundle)
    yield bundle
    main.set_services(None)


@pytest.fixture
def client(services):
    with TestClient(app) as client:
        yield client


class TestTriggerEndpoint:

    def test_fetch_posts_and_update_runs_a_pass(self, client, status_client):
        resp = client.get("/fetchPostsAndUpdate")
        assert resp.status_code == 200
        assert resp.content == b""
        assert ("inactive", "done") in status_client.calls

    def test_trigger_succeeds_even_when_pass_fails(self, client, services, monkeypatch):
        def broken_fetch():
            raise RuntimeError("store offline")

        monkeypatch.setattr(services.driver.source, "fetch_all", broken_fetch)
        resp = client.get("/fetchPostsAndUpdate")
        assert resp.status_code == 200


class TestHealth:

    def test_health_before_any_pass(self, client):
        data = client.get("/health").json()
        assert data["status"] == "ok"
        assert data["timezone"] == "Asia/Kolkata"
        assert data["scheduler"]["enabled"] is False
        assert data["last_pass"] is None

    def test_health_after_pass(self, client):
        client.get("/fetchPostsAndUpdate")
        data = client.get("/health").json()
        assert data["last_pass"]["evaluated"] == 1
        assert data["last_pass"]["completed"] == 1


class TestLogs:

    def test_logs_require_admin(self, client):
        assert client.get("/api/logs").status_code == 401

    def test_logs_with_admin_password(self, client):
        client.get("/fetchPostsAndUpdate")
        resp = client.get("/api/logs", headers={"X-Admin-Password": "admin-test-password"}, params={"limit": 5})
        assert resp.status_code == 200
        data = resp.json()
        assert data["count"] <= 5
        assert "logs" in data

    def test_logs_level_is_a_minimum(self, client):
        from trip_notifier.logging_setup import buffer_handler

        logging.getLogger("trip_notifier.tests").error("post service unreachable")
        resp = client.get("/api/logs", headers={"X-Admin-Password": "admin-test-password"}, params={"level": "WARNING"})
        assert resp.status_code == 200
        logs = resp.json()["logs"]
        assert logs and all(entry["levelno"] >= logging.WARNING for entry in logs)
        assert any(entry["message"] == "post service unreachable" for entry in logs)
        assert resp.json()["total_in_buffer"] == len(buffer_handler)

    def test_logs_reject_unknown_level(self, client):
        resp = client.get("/api/logs", headers={"X-Admin-Password": "admin-test-password"}, params={"level": "LOUD"})
        assert resp.status_code == 400


class GatedStatusClient(RecordingStatusClient):
    """Blocks inside set_locked() until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def set_locked(self, trip_id: str) -> None:
        self.entered.set()
        assert self.release.wait(10)
        super().set_locked(trip_id)


class TestShutdown:

    def test_shutdown_waits_for_running_pass_then_drains_reminders(self, settings):
        status_client = GatedStatusClient()
        mailer = RecordingMailer()
        notifier = ReminderNotifier(FakeDirectory(), mailer, max_workers=2)
        start = TODAY + timedelta(days=1)
        source = InMemoryTripSource([make_trip("t1", start=start, users=["alice", "bob"])])
        driver = DispatchDriver(source, LifecycleEvaluator(status_client, notifier, settings), max_workers=2)
        main.set_services(Services(settings=settings, driver=driver, notifier=notifier))

        pass_thread = threading.Thread(target=driver.run_pass, args=(midnight(start) - timedelta(hours=2),))
        shutdown_thread = threading.Thread(target=main._shutdown)
        pass_thread.start()
        try:
            assert status_client.entered.wait(5)
            shutdown_thread.start()
            shutdown_thread.join(0.2)
            assert shutdown_thread.is_alive()
            assert notifier.closed is False
        finally:
            status_client.release.set()
            pass_thread.join(10)
            if shutdown_thread.is_alive():
                shutdown_thread.join(10)
            main.set_services(None)

        assert notifier.closed is True
        assert status_client.ids_for("locked") == ["t1"]
        assert driver.last_summary.reminded == 1
        assert mailer.recipients() == ["alice@example.com", "bob@example.com"]

    def test_pass_outliving_grace_period_leaves_trip_unlocked(self):
        status_client = RecordingStatusClient()
        mailer = RecordingMailer()
        notifier = ReminderNotifier(FakeDirectory(), mailer, max_workers=2)
        settings = make_settings(shutdown_grace_seconds=0.05)
        start = TODAY + timedelta(days=1)
        source = GatedSource([make_trip("t1", start=start, users=["alice"])])
        driver = DispatchDriver(source, LifecycleEvaluator(status_client, notifier, settings), max_workers=2)
        main.set_services(Services(settings=settings, driver=driver, notifier=notifier))

        pass_thread = threading.Thread(target=driver.run_pass, args=(midnight(start) - timedelta(hours=2),))
        pass_thread.start()
        try:
            assert source.entered.wait(5)
            main._shutdown()
            assert notifier.closed is True
        finally:
            source.release.set()
            pass_thread.join(10)
            main.set_services(None)

        assert driver.last_summary.failed == 1
        assert status_client.calls == []
        assert mailer.sent == []
