"""Deterministic, ticket-weighted winner selection.

The draw is reproducible by anyone holding the contest state:

1. ``seed = sha256("{contest_id}|{ends_at}|{participant_count}")``
2. every participant expands into ``max(1, floor(tickets))`` ticket entries
   keyed ``"{user_id}:{joined_at}:{ticket_index}"``
3. entries are ranked by ``sha256("{seed}:{ticket_key}")`` as lowercase hex,
   ascending (string order equals byte order for lowercase hex)
4. the first ``max_winners`` distinct user ids in that ranking win

A reroll runs the same algorithm with ``ends_at`` replaced by the time of
the reroll, so it is deterministic for a given timestamp.
"""

from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, List, Optional, Tuple

from core.constants import DrawDefaults
from database.models import Contest, Participant
from utils.validators import to_iso

SEED_FORMULA = DrawDefaults.SEED_FORMULA


@dataclass(frozen=True, slots=True)
class DrawResult:
    seed: str
    winners: Tuple[str, ...]


@dataclass(frozen=True, slots=True)
class DrawVerification:
    seed_matches: bool
    winners_match: bool
    expected: DrawResult

    @property
    def ok(self) -> bool:
        return self.seed_matches and self.winners_match


def _sha256_hex(payload: str) -> str:
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def derive_seed(contest_id: str, ends_at: str, participant_count: int) -> str:
    return _sha256_hex(f"{contest_id}|{ends_at}|{participant_count}")


def ticket_count(participant: Participant) -> int:
    try:
        return max(1, math.floor(participant.tickets))
    except (TypeError, ValueError, OverflowError):
        return 1


def iter_ticket_keys(participants: Tuple[Participant, ...]) -> Iterator[Tuple[str, str]]:
    """Yield ``(user_id, ticket_key)`` for every ticket entry."""
    for participant in participants:
        for index in range(ticket_count(participant)):
            yield participant.user_id, f"{participant.user_id}:{participant.joined_at}:{index}"


def rank_tickets(seed: str, participants: Tuple[Participant, ...]) -> List[Tuple[str, str]]:
    """Return ``(digest, user_id)`` pairs in ascending digest order."""
    ranked = [
        (_sha256_hex(f"{seed}:{ticket_key}"), user_id)
        for user_id, ticket_key in iter_ticket_keys(participants)
    ]
    ranked.sort(key=lambda item: item[0])
    return ranked


def run_deterministic_draw(contest: Contest, ends_at: Optional[str] = None) -> DrawResult:
    """Select winners for ``contest``.

    Args:
        contest: Contest whose participants are drawn from
        ends_at: Override for the time component of the seed (used by reroll)

    Returns:
        DrawResult with an empty seed and no winners when nobody joined
    """
    if not contest.participants:
        return DrawResult(seed="", winners=())

    seed = derive_seed(
        contest.id,
        contest.ends_at if ends_at is None else ends_at,
        len(contest.participants),
    )

    winners: List[str] = []
    seen = set()
    for _, user_id in rank_tickets(seed, contest.participants):
        if user_id in seen:
            continue
        seen.add(user_id)
        winners.append(user_id)
        if len(winners) >= contest.max_winners:
            break

    return DrawResult(seed=seed, winners=tuple(winners))


def reroll_draw(contest: Contest, at: datetime) -> DrawResult:
    """Re-select winners using ``at`` in place of the contest end time."""
    return run_deterministic_draw(contest, ends_at=to_iso(at))


def verify_draw(contest: Contest, ends_at: Optional[str] = None) -> DrawVerification:
    """Recompute a draw and compare it with the stored seed and winners.

    Rerolls are verified by passing the timestamp they used as ``ends_at``.
    """
    expected = run_deterministic_draw(contest, ends_at=ends_at)
    return DrawVerification(
        seed_matches=(contest.draw_seed or "") == expected.seed,
        winners_match=tuple(contest.winners) == expected.winners,
        expected=expected,
    )
