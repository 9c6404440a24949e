"""Error translation for the FastAPI routes."""

import functools
import logging
from collections.abc import Callable

from fastapi import HTTPException, status

from core.exceptions import (
    GeometryError,
    PersistenceError,
    ResourceNotFoundError,
    TractageError,
    ValidationError,
)

# Most specific first; the first matching class wins.
ERROR_STATUS: tuple[tuple[type[TractageError], int, int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST, logging.WARNING),
    (ResourceNotFoundError, status.HTTP_404_NOT_FOUND, logging.INFO),
    (GeometryError, status.HTTP_422_UNPROCESSABLE_ENTITY, logging.WARNING),
    (PersistenceError, status.HTTP_502_BAD_GATEWAY, logging.ERROR),
    (TractageError, status.HTTP_500_INTERNAL_SERVER_ERROR, logging.ERROR),
)


def http_error(exc: TractageError) -> tuple[int, int, object]:
    """Status code, log level and response detail for an application error."""
    for error_class, status_code, level in ERROR_STATUS:
        if isinstance(exc, error_class):
            break
    detail: object = exc.message
    if isinstance(exc, PersistenceError):
        # Partial writes: the client needs to know what was already applied.
        detail = {"message": exc.message, **exc.details}
    return status_code, level, detail


def api_route(logger: logging.Logger):
    """
    Wrap an async endpoint so application errors become HTTP errors.

    ``HTTPException`` passes through untouched. ``TractageError`` subclasses
    map through ``ERROR_STATUS``. Anything else is logged with its traceback
    and answered with a generic 500.

    Usage:
        @router.post("/api/zones/sessions")
        @api_route(logger)
        async def create_session():
            ...
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except TractageError as e:
                status_code, level, detail = http_error(e)
                logger.log(
                    level,
                    "%s failed with %s: %s",
                    func.__name__,
                    type(e).__name__,
                    e.message,
                    exc_info=level >= logging.ERROR,
                )
                raise HTTPException(status_code=status_code, detail=detail) from e
            except Exception as e:
                logger.exception("Unexpected error in %s", func.__name__)
                raise HTTPException(
                    status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                    detail="Internal server error",
                ) from e

        return wrapper

    return decorator
