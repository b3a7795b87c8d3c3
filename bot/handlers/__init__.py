"""Aggregate bot handlers for dispatch registration."""

from .contests import ContestHandlers, setup_contest_handlers

__all__ = [
    "ContestHandlers",
    "setup_contest_handlers",
]
