"""Exceptions raised by the admin services and mapped to HTTP responses in main."""

import logging
from contextlib import contextmanager

logger = logging.getLogger(__name__)


class AdminError(Exception):
    """Base exception for all admin API errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(AdminError):
    """Raised when a user or vendor id doesn't exist."""

    def __init__(self, entity: str):
        self.entity = entity
        super().__init__(f"{entity} not found")


class ValidationError(AdminError):
    """Raised for bad input or a violated unique constraint."""


class AuthError(AdminError):
    """Raised when the bearer token is missing, unknown or expired."""


class StoreError(AdminError):
    """Raised when an underlying store call fails."""


@contextmanager
def store_errors(fallback: str):
    """Turn unexpected failures inside the block into a StoreError.

    AdminError subclasses pass through unchanged. Anything else is logged and
    re-raised as StoreError with its own message, or ``fallback`` when it has none.
    """
    try:
        yield
    except AdminError:
        raise
    except Exception as exc:
        logger.exception(fallback)
        raise StoreError(str(exc) or fallback) from exc
