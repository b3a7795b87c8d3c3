"""Contest repository: the single owner of persisted contest state."""

from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable, List, Optional

from core.exceptions import StoreError
from core.logger import get_logger
from database.models import Contest, Participant
from database.storage import ContestStorage, create_storage

logger = get_logger(__name__)

ContestMutator = Callable[[Contest], Contest]


class ContestRepository:
    """Contest collection with an atomic read-modify-write ``update``.

    Every mutation reads the freshest persisted collection, applies a pure
    mutator and writes the whole collection back. The cycle runs under an
    in-process lock, so the bot loop and Flask worker threads never
    interleave their writes.
    """

    def __init__(self, storage_path: str | Path, storage: Optional[ContestStorage] = None) -> None:
        self.storage_path = Path(storage_path)
        self._storage = storage or create_storage(self.storage_path)
        self._lock = threading.RLock()

    @property
    def backend(self) -> str:
        return type(self._storage).__name__

    @property
    def corrupt_detected(self) -> bool:
        return self._storage.corrupt_detected

    def list(self) -> List[Contest]:
        with self._lock:
            return self._storage.read_all()

    def get(self, contest_id: str) -> Optional[Contest]:
        for contest in self.list():
            if contest.id == contest_id:
                return contest
        return None

    def create(self, contest: Contest) -> Contest:
        with self._lock:
            contests = self._storage.read_all()
            if any(existing.id == contest.id for existing in contests):
                raise StoreError(f"Contest {contest.id} already exists")
            contests.append(contest)
            self._storage.write_all(contests)
        logger.info("contest_stored contest_id=%s backend=%s", contest.id, self.backend)
        return contest

    def update(self, contest_id: str, mutator: ContestMutator) -> Optional[Contest]:
        """Apply ``mutator`` to the stored contest and persist the result.

        Returns None without writing when the id is unknown. Raises
        StoreError when the new state could not be persisted; the previous
        state stays intact in that case.
        """
        with self._lock:
            contests = self._storage.read_all()
            for index, current in enumerate(contests):
                if current.id == contest_id:
                    break
            else:
                return None

            updated = mutator(current)
            if updated is current:
                return current
            if updated.id != current.id:
                raise StoreError(f"Mutator changed contest id {current.id} -> {updated.id}")

            contests[index] = updated
            self._storage.write_all(contests)
            return updated

    def add_participant(self, contest_id: str, participant: Participant) -> Optional[Contest]:
        """Append a participant unless the user already joined."""
        def mutator(contest: Contest) -> Contest:
            if contest.has_participant(participant.user_id):
                return contest
            return replace(contest, participants=contest.participants + (participant,))

        return self.update(contest_id, mutator)

    def close(self) -> None:
        with self._lock:
            self._storage.close()
