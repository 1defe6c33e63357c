"""Shared helpers: data directory resolution and timestamp conversion."""

import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


def get_snakey_home() -> Path:
    """Return the snakey data directory.

    Honors SNAKEY_DATA_DIR, falling back to ~/.snakey.
    """
    override = os.environ.get("SNAKEY_DATA_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".snakey"


def now_ms() -> int:
    """Current UTC time as epoch milliseconds."""
    return int(time.time() * 1000)


def to_epoch_ms(value: Any) -> Optional[int]:
    """Convert an entity timestamp (ISO string, datetime or epoch ms) to epoch ms.

    Naive datetimes are treated as UTC. Returns None for missing or
    unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return int(value.timestamp() * 1000)
    return None
