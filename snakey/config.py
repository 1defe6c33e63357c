"""Client configuration for snakey.

Handles credential loading and sync tuning knobs. Zero DB coupling.

Priority (later wins):
1. $SNAKEY_DATA_DIR/config.json
2. $SNAKEY_DATA_DIR/credentials.json
3. Environment variables (SNAKEY_BACKEND_URL, SNAKEY_AUTH_TOKEN, ...)
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from snakey.errors import ConfigError
from snakey.utils import get_snakey_home

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 5
DEFAULT_SYNC_INTERVAL = 5.0  # seconds
DEFAULT_MAX_RETRIES = 5
DEFAULT_REQUEST_TIMEOUT = 15.0  # seconds


def validate_backend_url(url: str, *, allow_localhost_http: bool = True) -> Optional[str]:
    """Validate a backend URL for safe bearer-token transmission.

    Rejects non-http/https schemes, URLs with no host, and remote plaintext
    HTTP endpoints. Returns the URL unchanged if valid, otherwise None.
    """
    if not url:
        return None

    parsed = urlparse(url)
    if parsed.scheme not in {"https", "http"}:
        logger.warning("Invalid backend_url scheme; only http/https allowed.")
        return None
    if not parsed.netloc:
        logger.warning("Invalid backend_url; missing host.")
        return None
    if parsed.scheme == "http":
        if not allow_localhost_http:
            logger.warning("HTTP not allowed in this context.")
            return None
        host = parsed.hostname or ""
        if host not in {"localhost", "127.0.0.1"}:
            logger.warning("Refusing non-local http backend_url for security.")
            return None
    return url


@dataclass
class ClientConfig:
    """Resolved client settings."""

    backend_url: Optional[str] = None
    auth_token: Optional[str] = None
    db_path: Optional[Path] = None
    batch_size: int = DEFAULT_BATCH_SIZE
    sync_interval: float = DEFAULT_SYNC_INTERVAL
    max_retries: int = DEFAULT_MAX_RETRIES
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    log_level: str = "INFO"

    @property
    def has_credentials(self) -> bool:
        return bool(self.backend_url and self.auth_token)

    def require_credentials(self) -> None:
        if not self.has_credentials:
            raise ConfigError(
                "Sync is not configured: set SNAKEY_BACKEND_URL and SNAKEY_AUTH_TOKEN "
                f"or write {get_snakey_home() / 'credentials.json'}"
            )

    def resolved_db_path(self) -> Path:
        return self.db_path or get_snakey_home() / "offline.db"


def _read_json(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.debug(f"Failed to read {path}: {e}")
        return {}
    return data if isinstance(data, dict) else {}


def _env_number(name: str, cast, default):
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = cast(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}")
        return default
    if value <= 0:
        logger.warning(f"Ignoring non-positive {name}={raw!r}")
        return default
    return value


def load_config() -> ClientConfig:
    """Load client configuration from files and the environment."""
    home = get_snakey_home()
    merged: Dict[str, Any] = {}
    merged.update(_read_json(home / "config.json"))

    creds = _read_json(home / "credentials.json")
    # Accept both "auth_token" (preferred) and "token" (legacy)
    if creds.get("token") and not creds.get("auth_token"):
        creds["auth_token"] = creds["token"]
    merged.update({k: v for k, v in creds.items() if v})

    backend_url = os.environ.get("SNAKEY_BACKEND_URL") or merged.get("backend_url")
    auth_token = os.environ.get("SNAKEY_AUTH_TOKEN") or merged.get("auth_token")

    if backend_url:
        backend_url = validate_backend_url(backend_url)
        if backend_url:
            backend_url = backend_url.rstrip("/")

    db_path = os.environ.get("SNAKEY_DB_PATH") or merged.get("db_path")

    return ClientConfig(
        backend_url=backend_url,
        auth_token=auth_token,
        db_path=Path(db_path).expanduser() if db_path else None,
        batch_size=_env_number(
            "SNAKEY_BATCH_SIZE", int, int(merged.get("batch_size", DEFAULT_BATCH_SIZE))
        ),
        sync_interval=_env_number(
            "SNAKEY_SYNC_INTERVAL",
            float,
            float(merged.get("sync_interval", DEFAULT_SYNC_INTERVAL)),
        ),
        max_retries=_env_number(
            "SNAKEY_MAX_RETRIES", int, int(merged.get("max_retries", DEFAULT_MAX_RETRIES))
        ),
        request_timeout=_env_number(
            "SNAKEY_REQUEST_TIMEOUT",
            float,
            float(merged.get("request_timeout", DEFAULT_REQUEST_TIMEOUT)),
        ),
        log_level=os.environ.get("SNAKEY_LOG_LEVEL") or merged.get("log_level", "INFO"),
    )
