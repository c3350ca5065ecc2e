"""
Service-layer exceptions shared by every app.

Services raise these; views translate them into the JSON envelope
``{"success": false, "error": ..., "error_code": ..., "details": ...}``.
Serializer and request parsing errors stay with DRF.

Hierarchy:
    BaseApplicationError
    ├── ValidationError  (400) bad input, raised before any write
    ├── NotFoundError    (404) unknown reference, customer or payment
    ├── ConflictError    (409) replayed submission, already active
    └── StorageError     (500) database failure at a service boundary

Usage:
    from core.exceptions import ConflictError

    raise ConflictError(
        "Payment already recorded",
        error_code="DUPLICATE_PAYMENT",
        details={"reference": reference},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Root of the application error hierarchy.

    Attributes:
        message: Text safe to show to the caller
        error_code: Stable upper-case code clients can branch on
        details: Extra context such as per-field errors
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Render the error body; ``details`` is omitted when empty."""
        body: dict[str, Any] = {"error": self.message, "error_code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}({self.message!r}, "
            f"error_code={self.error_code!r}, details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Input failed validation.

    ``details`` maps field names to lists of messages, mirroring DRF's
    serializer errors so both render the same way.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """A looked-up record does not exist."""

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    The request clashes with stored state.

    Raised for replayed direct payments (DUPLICATE_PAYMENT) and for trial
    requests from customers who already hold an active plan (ALREADY_ACTIVE).
    """

    default_error_code: str = "CONFLICT"


class StorageError(BaseApplicationError):
    """
    A database write or read failed.

    Wraps ``django.db.DatabaseError`` so callers can tell infrastructure
    failures apart from domain ones. Clients only ever see a generic 500.
    """

    default_error_code: str = "STORAGE_ERROR"
