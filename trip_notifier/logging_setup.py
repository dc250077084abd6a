"""
Process-wide logging for the notifier.

Lines go to the console, to an optional size-rotated file, and to a bounded
in-memory ring that the admin logs endpoint reads back. Evaluation and
delivery run on worker pools, so every line carries its thread name.
"""

import logging
import os
import threading
import traceback
from collections import deque
from datetime import datetime
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, List, Optional

DEFAULT_CAPACITY = 1000
FILE_MAX_BYTES = 10 * 1024 * 1024
FILE_BACKUPS = 5

LOG_FORMAT = logging.Formatter(
    "%(asctime)s | %(levelname)-8s | %(threadName)-20s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


class BufferHandler(logging.Handler):
    """Keeps the most recent `capacity` records as plain dicts."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY, level: int = logging.NOTSET):
        super().__init__(level)
        self.capacity = capacity
        self._entries = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry = {
                "time": datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds"),
                "level": record.levelname,
                "levelno": record.levelno,
                "logger": record.name,
                "thread": record.threadName,
                "message": record.getMessage(),
                "exc_info": "".join(traceback.format_exception(*record.exc_info)) if record.exc_info else None,
            }
        except Exception:
            self.handleError(record)
            return
        with self.lock:
            self._entries.append(entry)

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        with self.lock:
            self._entries.clear()

    def entries(
        self,
        min_level: Optional[str] = None,
        search: Optional[str] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """
        Newest first. `min_level` keeps records at or above that level;
        `search` matches the message or the logger name, case-insensitively.
        """
        with self.lock:
            snapshot = list(self._entries)

        threshold = logging.getLevelName(min_level.upper()) if min_level else logging.NOTSET
        if not isinstance(threshold, int):
            raise ValueError(f"Unknown log level {min_level!r}")
        needle = search.lower() if search else None

        matched = []
        for entry in reversed(snapshot):
            if entry["levelno"] < threshold:
                continue
            if needle and needle not in entry["message"].lower() and needle not in entry["logger"].lower():
                continue
            matched.append(entry)
            if len(matched) >= max(0, limit):
                break
        return matched


# Attached to the root logger by configure_logging(); read by the logs endpoint
buffer_handler = BufferHandler()

_setup_lock = threading.Lock()
_installed: List[logging.Handler] = []


def _file_handler(log_file: str) -> Optional[logging.Handler]:
    try:
        os.makedirs(os.path.dirname(log_file) or ".", exist_ok=True)
        return RotatingFileHandler(log_file, maxBytes=FILE_MAX_BYTES, backupCount=FILE_BACKUPS)
    except OSError as e:
        logging.getLogger("trip_notifier").warning(f"Could not enable file logging at {log_file}: {e}")
        return None


def configure_logging(level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Install the console, buffer and (optional) rotating file handlers on the
    root logger. Calling again only changes the level.
    """
    numeric_level = logging.getLevelName((level or "INFO").upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    root_logger = logging.getLogger()
    app_logger = logging.getLogger("trip_notifier")

    with _setup_lock:
        if not _installed:
            handlers = [logging.StreamHandler(), buffer_handler]
            if log_file:
                handler = _file_handler(log_file)
                if handler is not None:
                    handlers.append(handler)
            for handler in handlers:
                handler.setFormatter(LOG_FORMAT)
                root_logger.addHandler(handler)
            _installed.extend(handlers)
            if len(handlers) == 3:
                app_logger.info(f"File logging enabled: {log_file}")

        root_logger.setLevel(numeric_level)
        app_logger.setLevel(numeric_level)
        for handler in _installed:
            handler.setLevel(numeric_level)

    app_logger.info(f"Logging level set to {logging.getLevelName(numeric_level)}")
    return app_logger
