"""Error types for the snakey client."""


class SnakeyError(Exception):
    """Base for all snakey client errors."""

    pass


class ConfigError(SnakeyError):
    """Raised when client configuration is missing or unsafe."""

    pass


class TransportError(SnakeyError):
    """Raised when the sync server cannot be reached or answers without a result.

    A transport error is never attributed to a single record: the orchestrator
    treats it as a failure of the whole batch (or pull) and retries next tick.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class QueueStateError(SnakeyError):
    """Raised when a queue transition would violate the entry state machine."""

    pass


class UnsupportedTableError(SnakeyError, ValueError):
    """Raised for a table name outside the six synced tables."""

    pass


class RecordNotFoundError(SnakeyError, KeyError):
    """Raised when an edit targets a record the mirror does not hold."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else ""
