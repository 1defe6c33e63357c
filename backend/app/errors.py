"""Domain errors raised by entity services.

Each error carries a `kind` tag from the shared error taxonomy; the sync
coordinator maps failures by tag, never by message text.
"""

from typing import Any

from .models import ErrorType


class DomainError(Exception):
    """Base for failures a domain service reports about one operation."""

    kind: ErrorType = ErrorType.INTERNAL_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(DomainError):
    """Payload failed schema validation or a business rule."""

    kind = ErrorType.VALIDATION_ERROR

    def __init__(self, message: str, field_errors: dict[str, Any] | None = None):
        super().__init__(message)
        self.field_errors = field_errors or {}


class NotFoundError(DomainError):
    kind = ErrorType.NOT_FOUND


class ForbiddenError(DomainError):
    """The record (or its parent reptile) belongs to another user."""

    kind = ErrorType.FORBIDDEN


class UnsupportedTableError(ValueError):
    """Raised for a table name outside the six synced tables."""

    def __init__(self, table: str):
        super().__init__(f"Unsupported table: {table}")
        self.table = table
