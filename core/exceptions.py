"""Application-wide exception classes."""

from __future__ import annotations


class ApplicationError(Exception):
    """Base exception for all application errors."""
    pass


class ConfigurationError(ApplicationError):
    """Raised when configuration is invalid."""
    pass


class DatabaseError(ApplicationError):
    """Base exception for storage-related errors."""
    pass


class StoreError(DatabaseError):
    """Raised when the contest store fails to persist a new state.

    The previously persisted state is still readable when this is raised.
    """
    pass
