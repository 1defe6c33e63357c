"""
Logging setup for the snakey client.

Two outputs:
- local-{date}.log: the "snakey" logger tree (all modules log via __name__)
- sync-events-{date}.log: one line per push/pull/tick, for field debugging
"""

import logging
from datetime import datetime, timezone
from pathlib import Path

from snakey.utils import get_snakey_home

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def _log_dir() -> Path:
    log_dir = get_snakey_home() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir


def _today() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def setup_snakey_logging(level: str = "INFO") -> logging.Logger:
    """Configure the "snakey" logger with a daily file handler.

    DEBUG also echoes to the console. Safe to call repeatedly: existing
    handlers are reused rather than duplicated.
    """
    logger = logging.getLogger("snakey")
    resolved = _LEVELS.get(level.upper(), logging.INFO)
    logger.setLevel(resolved)

    formatter = logging.Formatter(LOG_FORMAT)

    if not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
        file_handler = logging.FileHandler(_log_dir() / f"local-{_today()}.log")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in logger.handlers
    )
    if resolved == logging.DEBUG and not has_console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        logger.addHandler(console)

    return logger


def log_sync_event(event_type: str, details: str) -> None:
    """Append one line to the sync events log."""
    timestamp = datetime.now(timezone.utc).isoformat()
    path = _log_dir() / f"sync-events-{_today()}.log"
    with open(path, "a", encoding="utf-8") as f:
        f.write(f"{timestamp} | {event_type} | {details}\n")


def log_push(count: int, failed: int = 0, conflicts: int = 0, batches: int = 0) -> None:
    log_sync_event(
        "push", f"count={count}, failed={failed}, conflicts={conflicts}, batches={batches}"
    )


def log_pull(count: int, cursor: int) -> None:
    log_sync_event("pull", f"count={count}, cursor={cursor}")


def log_tick_error(stage: str, error: str) -> None:
    log_sync_event("error", f"stage={stage}, error={error[:200]}")
