"""Logging setup for the Snakey sync backend.

Every module logs under the "snakey" namespace. Sync operations get one
structured line each so a user's push history can be grepped by user id.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_configured = False


def configure_logging(debug: bool = False) -> None:
    """Attach a stdout handler to the "snakey" logger once."""
    global _configured
    root = logging.getLogger("snakey")
    root.setLevel(logging.DEBUG if debug else logging.INFO)
    if _configured:
        return
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the snakey namespace."""
    if not name.startswith("snakey"):
        name = f"snakey.{name}"
    return logging.getLogger(name)


_sync_logger = get_logger("snakey.sync.ops")


def log_sync_operation(
    user: str,
    operation: str,
    table: str,
    record_id: str,
    success: bool,
    error: str | None = None,
) -> None:
    """One line per processed sync operation."""
    status = "OK" if success else "FAIL"
    message = f"{status} | {user} | {operation} {table}/{record_id}"
    if error:
        message += f" | {error[:200]}"
    if success:
        _sync_logger.info(message)
    else:
        _sync_logger.warning(message)
