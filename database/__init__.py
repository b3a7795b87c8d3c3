"""Database package public API."""

from .models import AuditEntry, Contest, Participant
from .repository import ContestMutator, ContestRepository
from .storage import JsonContestStorage, SqliteContestStorage, create_storage

__all__ = [
    "AuditEntry",
    "Contest",
    "Participant",
    "ContestMutator",
    "ContestRepository",
    "JsonContestStorage",
    "SqliteContestStorage",
    "create_storage",
]
