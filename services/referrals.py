"""Referral ticket accrual applied while a user joins a contest.

The mutator built here runs inside ``ContestRepository.update`` and always
sees the freshest persisted contest, so two simultaneous joins naming the
same referrer cannot credit past the configured cap.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Optional

from core.constants import AuditAction
from database.models import AuditEntry, Contest, Participant


@dataclass(frozen=True, slots=True)
class JoiningUser:
    """Normalized identity of a user joining a contest."""
    id: str
    username: Optional[str] = None


def referral_bonus_for(referrer: Participant, bonus_tickets: int, max_bonus_tickets: int) -> int:
    """Tickets to credit ``referrer`` for one more referral under the cap."""
    current_bonus = max(0, referrer.tickets - 1)
    bonus_left = max(0, max_bonus_tickets - current_bonus)
    return max(0, min(bonus_tickets, bonus_left))


def build_join_mutator(
    user: JoiningUser,
    referrer_id: Optional[str],
    *,
    bonus_tickets: int,
    max_bonus_tickets: int,
    now: str,
) -> Callable[[Contest], Contest]:
    """Return a pure ``Contest -> Contest`` function that adds ``user``."""
    referrer_id = (referrer_id or "").strip() or None

    def mutator(contest: Contest) -> Contest:
        if contest.has_participant(user.id):
            return contest

        participant = Participant(user_id=user.id, joined_at=now, tickets=1, username=user.username)
        participants = list(contest.participants)

        def finish(new_participant: Participant, details: str) -> Contest:
            entry = AuditEntry(at=now, action=AuditAction.JOIN, actor_id=user.id, details=details)
            return contest.with_audit(entry, participants=tuple(participants) + (new_participant,))

        if referrer_id is None or referrer_id == user.id:
            return finish(participant, "join")

        referrer_index = next(
            (index for index, existing in enumerate(participants) if existing.user_id == referrer_id),
            None,
        )
        if referrer_index is None:
            return finish(participant, f"join (referrer not found={referrer_id})")

        referrer = participants[referrer_index]
        referred = replace(participant, referred_by=referrer_id)
        bonus = referral_bonus_for(referrer, bonus_tickets, max_bonus_tickets)
        if bonus <= 0:
            return finish(referred, f"join с реферером={referrer_id} (лимит бонуса достигнут)")

        participants[referrer_index] = replace(
            referrer,
            tickets=referrer.tickets + bonus,
            referrals_count=referrer.referrals_count + 1,
        )
        return finish(referred, f"join с реферером={referrer_id}, бонус={bonus}")

    return mutator


@dataclass(frozen=True, slots=True)
class JoinOutcome:
    """What a join mutator did, recovered by comparing contest states."""
    joined: bool
    referred_by: Optional[str] = None
    bonus: int = 0


def inspect_join(before: Contest, after: Contest, user_id: str) -> JoinOutcome:
    if before.has_participant(user_id) or not after.has_participant(user_id):
        return JoinOutcome(joined=False)
    participant = after.find_participant(user_id)
    referred_by = participant.referred_by if participant else None
    bonus = 0
    if referred_by:
        previous = before.find_participant(referred_by)
        current = after.find_participant(referred_by)
        if previous is not None and current is not None:
            bonus = max(0, current.tickets - previous.tickets)
    return JoinOutcome(joined=True, referred_by=referred_by, bonus=bonus)
