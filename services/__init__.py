"""Services package."""

from .actions import ActionResult, ContestActionDispatcher, JoinResult, proof_seed_time
from .auto_finish import AlertDigest, AutoFinishScheduler
from .cooldown import CooldownTracker, SuspiciousActivityTracker
from .draw import DrawResult, run_deterministic_draw, reroll_draw, verify_draw
from .referrals import JoiningUser, JoinOutcome, build_join_mutator
from .roles import RoleResolver

__all__ = [
    "ActionResult",
    "ContestActionDispatcher",
    "JoinResult",
    "proof_seed_time",
    "AlertDigest",
    "AutoFinishScheduler",
    "CooldownTracker",
    "SuspiciousActivityTracker",
    "DrawResult",
    "run_deterministic_draw",
    "reroll_draw",
    "verify_draw",
    "JoiningUser",
    "JoinOutcome",
    "build_join_mutator",
    "RoleResolver",
]
