"""
Centralized exception hierarchy for domain-specific errors.

Validation errors are raised before any write happens. Persistence errors
wrap storage failures and may leave earlier writes of a multi-write
operation applied. Geometry errors are raised by spatial helpers and are
expected to be caught by the renderer, which falls back to a simpler
strategy.
"""


class TractageError(Exception):
    """Base exception for all application-specific errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(TractageError):
    """Exception raised when an operator action fails its preconditions."""


class ResourceNotFoundError(TractageError):
    """Exception raised when a requested record or session is not found."""


class PersistenceError(TractageError):
    """Exception raised when a read or write against storage fails."""


class GeometryError(TractageError):
    """Exception raised when a geometry computation cannot be performed."""
