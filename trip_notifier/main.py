import logging
import threading
from dataclasses import dataclass
from typing import Optional

from fastapi import BackgroundTasks, Depends, FastAPI, HTTPException, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from trip_notifier import APP_VERSION
from trip_notifier.clients import PostServiceClient, UserServiceClient
from trip_notifier.config import Settings, load_settings
from trip_notifier.dispatch import DispatchDriver
from trip_notifier.lifecycle import LifecycleEvaluator
from trip_notifier.logging_setup import buffer_handler, configure_logging
from trip_notifier.mailer import SmtpMailer
from trip_notifier.notifications import ReminderNotifier
from trip_notifier.scheduler import DailyScheduler
from trip_notifier.store import SqliteTripSource

logger = logging.getLogger("trip_notifier")

APP_TITLE = "Trip Notifier"


# ─────────────────────────── SERVICE WIRING ───────────────────────────

@dataclass
class Services:
    settings: Settings
    driver: DispatchDriver
    notifier: ReminderNotifier
    scheduler: Optional[DailyScheduler] = None


_services: Optional[Services] = None
_services_lock = threading.Lock()


def build_services(settings: Settings) -> Services:
    """Wire the production collaborators from settings."""
    source = SqliteTripSource(settings.db_path)
    source.init_db()

    status_client = PostServiceClient(settings.post_service_url, timeout=settings.http_timeout_seconds)
    directory = UserServiceClient(settings.user_service_url, timeout=settings.http_timeout_seconds)
    mailer = SmtpMailer(
        settings.smtp_host,
        settings.smtp_port,
        settings.smtp_user,
        settings.smtp_pass,
        settings.smtp_from,
        timeout=settings.smtp_timeout_seconds,
    )
    notifier = ReminderNotifier(directory, mailer, max_workers=settings.max_delivery_workers)
    evaluator = LifecycleEvaluator(status_client, notifier, settings)
    driver = DispatchDriver(source, evaluator, max_workers=settings.max_trip_workers)

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = DailyScheduler(
            driver.run_pass, settings.schedule_hour, settings.schedule_minute, settings.tzinfo()
        )
    return Services(settings=settings, driver=driver, notifier=notifier, scheduler=scheduler)


def get_services() -> Services:
    global _services
    with _services_lock:
        if _services is None:
            _services = build_services(load_settings())
        return _services


def set_services(services: Optional[Services]) -> None:
    """Install (or clear) the service bundle; used by tests and embedders."""
    global _services
    with _services_lock:
        _services = services


# ─────────────────────────── APP ───────────────────────────

app = FastAPI(title=APP_TITLE, version=APP_VERSION)


class ExceptionLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(
                f"Unhandled exception on {request.method} {request.url.path}: {e}",
                exc_info=True
            )
            raise


app.add_middleware(ExceptionLoggingMiddleware)


@app.on_event("startup")
def _startup():
    services = get_services()
    configure_logging(services.settings.log_level, services.settings.log_file)
    if services.scheduler is not None:
        services.scheduler.start()
    else:
        logger.info("Daily scheduler disabled (SCHEDULER_ENABLED=0)")


@app.on_event("shutdown")
def _shutdown():
    services = get_services()
    if services.scheduler is not None:
        services.scheduler.stop()
    # Running passes must hand off their reminders before the delivery pool closes
    grace = services.settings.shutdown_grace_seconds
    if not services.driver.wait_idle(timeout=grace):
        logger.warning(f"Lifecycle pass still running after {grace}s; closing reminder delivery anyway")
    services.notifier.shutdown(wait=True)


def require_admin(request: Request, services: Services = Depends(get_services)):
    expected = services.settings.admin_password
    pw = request.headers.get("X-Admin-Password") or ""
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_PASSWORD is not set")
    if pw != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return True


def _run_pass_logged(driver: DispatchDriver) -> None:
    try:
        driver.run_pass()
    except Exception as e:
        logger.error(f"Triggered trip pass failed: {e}", exc_info=True)


# ─────────────────────────── ROUTES ───────────────────────────

@app.get("/fetchPostsAndUpdate")
def fetch_posts_and_update(background_tasks: BackgroundTasks, services: Services = Depends(get_services)):
    """Schedule a lifecycle pass now. Always answers 200 with an empty body."""
    logger.info("Lifecycle pass requested over HTTP")
    background_tasks.add_task(_run_pass_logged, services.driver)
    return Response(status_code=200)


@app.get("/health")
def health(services: Services = Depends(get_services)):
    scheduler = services.scheduler
    last = services.driver.last_summary
    return {
        "status": "ok",
        "version": APP_VERSION,
        "timezone": services.settings.timezone,
        "scheduler": {
            "enabled": scheduler is not None,
            "running": bool(scheduler and scheduler.running),
            "next_run": scheduler.next_run.isoformat() if scheduler and scheduler.next_run else None,
        },
        "last_pass": last.to_dict() if last else None,
    }


@app.get("/api/logs")
def get_logs(
    level: Optional[str] = None,
    limit: int = 100,
    search: Optional[str] = None,
    _=Depends(require_admin)
):
    """
    Buffered log lines, newest first (admin only).

    `level` is a minimum (WARNING also returns ERROR lines); `search` matches
    the message or logger name; `limit` is capped at the buffer capacity.
    """
    try:
        logs = buffer_handler.entries(min_level=level, search=search, limit=min(limit, buffer_handler.capacity))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {
        "count": len(logs),
        "total_in_buffer": len(buffer_handler),
        "logs": logs
    }
