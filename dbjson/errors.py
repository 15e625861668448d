"""
Error types for dbjson.

This module defines the domain errors raised by the versioned store:
- DbJsonError: Base exception
- NoUsernameError: Mutation attempted before identity is established
- UnknownIdError: Record id not present in a table's id history
- InsufficientHistoryError: Requested history window exceeds what exists
- AlreadyExistsError: Target of a create/duplicate already holds data
- NotFoundError: Source of a duplicate/strict delete does not exist
- InvalidRequestError: Malformed path, window or request arguments

Invariants:
    - All domain errors inherit from DbJsonError
    - Domain errors are recoverable; the dispatcher reports them as
      status=false results instead of letting them escape
    - Persistence failures are NOT DbJsonErrors and always propagate
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class DbJsonError(Exception):
    """Base exception for all dbjson domain errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "DBJSON_ERROR"
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Structured failure shape returned to hosts."""
        return {
            "status": False,
            "errorMessage": self.message,
            "errorCode": self.code,
            "details": self.details,
        }


class NoUsernameError(DbJsonError):
    """Mutation attempted before the acting username was set.

    Recoverable: the caller sets identity and re-issues the request.
    """

    def __init__(self, operation: Optional[str] = None) -> None:
        super().__init__(
            "Username is not set!",
            code="NO_USERNAME",
            details={"operation": operation},
        )
        self.operation = operation


class UnknownIdError(DbJsonError):
    """Record id does not exist in the table's id history."""

    def __init__(self, table: str, record_id: Any) -> None:
        super().__init__(
            f"Unknown id {record_id!r} in table '{table}'",
            code="UNKNOWN_ID",
            details={"table": table, "id": record_id},
        )
        self.table = table
        self.record_id = record_id


class InsufficientHistoryError(DbJsonError):
    """Requested history window is larger than the available history.

    Attributes:
        requested: Number of entries asked for
        available: Number of matching entries that exist
    """

    def __init__(self, requested: int, available: int, column: Optional[str] = None) -> None:
        msg = f"Requested {requested} entries but only {available} exist"
        if column:
            msg += f" for column '{column}'"
        super().__init__(
            msg,
            code="INSUFFICIENT_HISTORY",
            details={"requested": requested, "available": available, "column": column},
        )
        self.requested = requested
        self.available = available
        self.column = column


class AlreadyExistsError(DbJsonError):
    """Target path already holds a non-empty record."""

    def __init__(self, path: str) -> None:
        super().__init__(
            f"'{path}' already exists",
            code="ALREADY_EXISTS",
            details={"path": path},
        )
        self.path = path


class NotFoundError(DbJsonError):
    """Record or path does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(
            f"'{path}' does not exist",
            code="NOT_FOUND",
            details={"path": path},
        )
        self.path = path


class InvalidRequestError(DbJsonError):
    """Request is malformed.

    Raised when:
    - A path is empty or contains empty segments
    - A history window value is not 'all' or a non-negative integer
    - Request arguments fail validation
    - The requested operation is not registered
    """

    def __init__(self, message: str, errors: Optional[list] = None) -> None:
        super().__init__(
            message,
            code="INVALID_ARGUMENT",
            details={"errors": errors or []},
        )
        self.errors = errors or []
