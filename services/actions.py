"""Contest action dispatcher.

Every trigger that changes a contest (chat command, admin panel form,
background sweep) ends up here as ``(action, contest_id, actor_id, fields)``.
Preconditions are checked on a snapshot for a fast answer and checked again
inside the repository mutator against the freshest state, so a draw racing
a close can never complete a contest twice.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List, Mapping, Optional

from core.constants import AuditAction, ContestStatus, DrawDefaults
from core.logger import get_logger
from database.models import AuditEntry, Contest
from database.repository import ContestRepository
from services.cooldown import CooldownTracker
from services.draw import DrawResult, reroll_draw, run_deterministic_draw
from services.referrals import JoinOutcome, JoiningUser, build_join_mutator, inspect_join
from utils.validators import parse_iso_datetime, parse_max_winners, to_iso, utc_now, validate_contest_id

logger = get_logger(__name__)

SINGLE_ACTIONS = ("create", "edit", "draw", "reroll", "close", "reopen")
BULK_ACTIONS = {
    "bulk_close": "close",
    "bulk_draw": "draw",
    "bulk_reroll": "reroll",
}
SEED_TIME_RE = re.compile(r"seedTime=(\S+)")
EDIT_ACTIVE_ONLY = "Редактирование доступно только для active конкурса."


@dataclass(frozen=True, slots=True)
class ActionResult:
    ok: bool
    message: str
    contest: Optional[Contest] = None
    locked: bool = False


@dataclass(frozen=True, slots=True)
class JoinResult:
    ok: bool
    message: str
    contest: Optional[Contest] = None
    already: bool = False
    outcome: Optional[JoinOutcome] = None


class _Rejected(Exception):
    """Aborts a repository update from inside a mutator without writing."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


def format_winners(winners: Iterable[str], empty: str = "-") -> str:
    return ", ".join(winners) or empty


def proof_seed_time(contest: Contest) -> str:
    """Time component used for the contest's current seed.

    Rerolls record the timestamp they used in their audit entry; every other
    draw path seeds from ``ends_at``.
    """
    for entry in reversed(contest.audit_log):
        if entry.action == AuditAction.REROLL:
            match = SEED_TIME_RE.search(entry.details or "")
            if match:
                return match.group(1)
            break
        if entry.action in (AuditAction.DRAW, AuditAction.CLOSED, AuditAction.AUTOFINISH):
            break
    return contest.ends_at


class ContestActionDispatcher:
    """Closed set of contest mutations over a ``ContestRepository``."""

    def __init__(
        self,
        repository: ContestRepository,
        *,
        referral_bonus_tickets: int = 1,
        referral_max_bonus_tickets: int = 5,
        draw_locks: Optional[CooldownTracker] = None,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = lambda: secrets.token_hex(4),
    ) -> None:
        self.repository = repository
        self.referral_bonus_tickets = referral_bonus_tickets
        self.referral_max_bonus_tickets = referral_max_bonus_tickets
        self.draw_locks = draw_locks or CooldownTracker(DrawDefaults.LOCK_TTL_SECONDS)
        self._clock = clock
        self._id_factory = id_factory

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    def perform(
        self,
        action: str,
        contest_id: Optional[str],
        actor_id: str,
        fields: Optional[Mapping[str, object]] = None,
    ) -> ActionResult:
        """Run one action and describe the outcome.

        Validation, not-found and precondition failures come back as
        ``ok=False``; only persistence failures raise (``StoreError``).
        """
        fields = fields or {}
        action = (action or "").strip()

        if action in BULK_ACTIONS:
            contest_ids = fields.get("contest_ids") or []
            return self.perform_bulk(action, list(contest_ids), actor_id)
        if action == "create":
            return self._create(actor_id, fields)
        if action not in SINGLE_ACTIONS:
            return ActionResult(False, "Неизвестное действие.")

        contest_id = (contest_id or "").strip()
        if not contest_id:
            return ActionResult(False, "contestId обязателен.")
        if not validate_contest_id(contest_id):
            return ActionResult(False, "Некорректный contestId.")
        contest = self.repository.get(contest_id)
        if contest is None:
            return ActionResult(False, "Конкурс не найден.")

        handler = getattr(self, f"_{action}")
        result = handler(contest, actor_id, fields)
        logger.info(
            "contest_action action=%s contest_id=%s actor_id=%s ok=%s",
            action, contest_id, actor_id, result.ok,
        )
        return result

    def perform_bulk(self, action: str, contest_ids: List[str], actor_id: str) -> ActionResult:
        single = BULK_ACTIONS.get(action)
        if single is None:
            return ActionResult(False, "Неизвестное действие.")
        contest_ids = [value.strip() for value in contest_ids if value and value.strip()]
        if not contest_ids:
            return ActionResult(False, "Выберите хотя бы один конкурс.")

        applied = sum(1 for contest_id in contest_ids if self.perform(single, contest_id, actor_id).ok)
        return ActionResult(
            applied > 0,
            f"Bulk {action}: {applied} из {len(contest_ids)} успешно.",
        )

    def auto_finish_expired(self, now: Optional[datetime] = None) -> List[Contest]:
        """Complete every active contest whose deadline has passed."""
        now = now or self._clock()
        finished: List[Contest] = []
        for contest in self.repository.list():
            if not self._is_expired(contest, now):
                continue

            def mutator(current: Contest) -> Contest:
                if not self._is_expired(current, now):
                    raise _Rejected("not expired")
                if not current.participants:
                    return self._complete(
                        current, AuditAction.AUTOFINISH, DrawDefaults.SYSTEM_ACTOR,
                        "Автозавершение без участников", now,
                    )
                result = run_deterministic_draw(current)
                return self._complete(
                    current, AuditAction.AUTOFINISH, DrawDefaults.SYSTEM_ACTOR,
                    f"Автозавершение, winners={','.join(result.winners) or 'none'}", now, result,
                )

            updated = self._update(contest.id, mutator)
            if isinstance(updated, Contest):
                logger.info(
                    "contest_autofinished contest_id=%s winners=%s", updated.id, ",".join(updated.winners),
                )
                finished.append(updated)
        return finished

    # ------------------------------------------------------------------ #
    # Participation and publishing helpers
    # ------------------------------------------------------------------ #

    def check_join(self, contest_id: str, user_id: str) -> JoinResult:
        """Answer whether ``user_id`` could join right now, without writing."""
        contest = self.repository.get(contest_id)
        if contest is None:
            return JoinResult(False, "Конкурс не найден.")
        if contest.status != ContestStatus.ACTIVE:
            return JoinResult(False, "Этот конкурс уже завершен.", contest)
        ends_at = parse_iso_datetime(contest.ends_at)
        if ends_at is not None and ends_at < self._clock():
            return JoinResult(False, "Срок участия в этом конкурсе уже вышел.", contest)
        if contest.has_participant(user_id):
            return JoinResult(True, "Вы уже участвуете.", contest, already=True)
        return JoinResult(True, "", contest)

    def join(self, contest_id: str, user: JoiningUser, referrer_id: Optional[str] = None) -> JoinResult:
        check = self.check_join(contest_id, user.id)
        if not check.ok or check.already:
            return check

        now = self._clock()
        join_mutator = build_join_mutator(
            user,
            referrer_id,
            bonus_tickets=self.referral_bonus_tickets,
            max_bonus_tickets=self.referral_max_bonus_tickets,
            now=to_iso(now),
        )
        seen: List[Contest] = []

        def mutator(current: Contest) -> Contest:
            if current.status != ContestStatus.ACTIVE:
                raise _Rejected("Этот конкурс уже завершен.")
            seen.append(current)
            return join_mutator(current)

        updated = self._update(contest_id, mutator)
        if isinstance(updated, str):
            return JoinResult(False, updated)
        if updated is None:
            return JoinResult(False, "Не удалось зарегистрировать участие.")

        outcome = inspect_join(seen[-1], updated, user.id)
        if not outcome.joined:
            return JoinResult(True, "Вы уже участвуете.", updated, already=True)
        logger.info(
            "contest_join contest_id=%s user_id=%s referred_by=%s bonus=%s",
            contest_id, user.id, outcome.referred_by, outcome.bonus,
        )
        return JoinResult(True, "Участие принято.", updated, outcome=outcome)

    def set_required_chats(self, contest_id: str, chat_ids: Iterable[int], actor_id: str) -> ActionResult:
        unique: List[int] = []
        for chat_id in chat_ids:
            if chat_id not in unique:
                unique.append(chat_id)
        if not unique:
            return ActionResult(False, "Нужно передать хотя бы один валидный числовой chat_id.")

        at = to_iso(self._clock())
        updated = self.repository.update(
            contest_id,
            lambda current: current.with_audit(
                AuditEntry(at, AuditAction.EDITED, actor_id, f"requiredChats={','.join(map(str, unique))}"),
                required_chats=tuple(unique),
            ),
        )
        if updated is None:
            return ActionResult(False, "Конкурс не найден.")
        return ActionResult(
            True,
            f'Обязательные чаты для конкурса "{updated.title}" обновлены: '
            f"{', '.join(map(str, updated.required_chats))}",
            updated,
        )

    def set_publish_target(
        self, contest_id: str, chat_id: int, message_id: Optional[str], actor_id: str,
    ) -> Optional[Contest]:
        at = to_iso(self._clock())
        return self.repository.update(
            contest_id,
            lambda current: current.with_audit(
                AuditEntry(at, AuditAction.EDITED, actor_id, f"published chat_id={chat_id}"),
                publish_chat_id=chat_id,
                publish_message_id=message_id,
            ),
        )

    # ------------------------------------------------------------------ #
    # Single actions
    # ------------------------------------------------------------------ #

    def _create(self, actor_id: str, fields: Mapping[str, object]) -> ActionResult:
        title = str(fields.get("title") or "").strip()
        ends_at = parse_iso_datetime(_as_str(fields.get("ends_at")))
        max_winners = parse_max_winners(_as_str(fields.get("max_winners")), 1)
        now = self._clock()

        if not title:
            return ActionResult(False, "Укажите название конкурса.")
        if ends_at is None or ends_at <= now:
            return ActionResult(False, "Укажите корректную будущую дату окончания.")
        if max_winners is None:
            return ActionResult(False, "maxWinners должен быть числом >= 1.")

        created_at = to_iso(now)
        contest = Contest(
            id=self._id_factory(),
            title=title,
            created_by=actor_id,
            created_at=created_at,
            ends_at=to_iso(ends_at),
            max_winners=max_winners,
            status=ContestStatus.ACTIVE,
            audit_log=(AuditEntry(created_at, AuditAction.CREATED, actor_id, f'Создан конкурс "{title}"'),),
        )
        self.repository.create(contest)
        logger.info("contest_created contest_id=%s actor_id=%s", contest.id, actor_id)
        return ActionResult(True, f"Конкурс создан: {contest.id}.", contest)

    def _edit(self, contest: Contest, actor_id: str, fields: Mapping[str, object]) -> ActionResult:
        if contest.status != ContestStatus.ACTIVE:
            return ActionResult(False, EDIT_ACTIVE_ONLY, contest)
        title = str(fields.get("title") or "").strip()
        ends_at = parse_iso_datetime(_as_str(fields.get("ends_at")))
        max_winners = parse_max_winners(_as_str(fields.get("max_winners")), contest.max_winners)

        if not title:
            return ActionResult(False, "Укажите название конкурса.")
        if ends_at is None:
            return ActionResult(False, "Укажите корректную дату окончания.")
        if max_winners is None:
            return ActionResult(False, "maxWinners должен быть числом >= 1.")

        at = to_iso(self._clock())
        ends_at_iso = to_iso(ends_at)
        details = f"title={title}, endsAt={ends_at_iso}, maxWinners={max_winners}"

        def mutator(current: Contest) -> Contest:
            # Completed contests keep the ends_at their proof was seeded from
            if current.status != ContestStatus.ACTIVE:
                raise _Rejected(EDIT_ACTIVE_ONLY)
            return current.with_audit(
                AuditEntry(at, AuditAction.EDITED, actor_id, details),
                title=title,
                ends_at=ends_at_iso,
                max_winners=max_winners,
            )

        updated = self._update(contest.id, mutator)
        return self._result(updated, "Конкурс обновлен.")

    def _close(self, contest: Contest, actor_id: str, fields: Mapping[str, object]) -> ActionResult:
        if contest.status == ContestStatus.COMPLETED:
            return ActionResult(False, "Конкурс уже завершен.", contest)

        now = self._clock()

        def mutator(current: Contest) -> Contest:
            if current.status == ContestStatus.COMPLETED:
                raise _Rejected("Конкурс уже завершен.")
            if not current.participants:
                return self._complete(current, AuditAction.CLOSED, actor_id, "Закрыт без участников", now)
            result = run_deterministic_draw(current)
            return self._complete(
                current, AuditAction.CLOSED, actor_id,
                f"Принудительное закрытие, winners={','.join(result.winners) or 'none'}", now, result,
            )

        updated = self._update(contest.id, mutator)
        if isinstance(updated, Contest) and not updated.winners:
            return ActionResult(True, "Конкурс закрыт без участников.", updated)
        winners = format_winners(updated.winners) if isinstance(updated, Contest) else ""
        return self._result(updated, f"Конкурс закрыт. Победители: {winners}.")

    def _draw(self, contest: Contest, actor_id: str, fields: Mapping[str, object]) -> ActionResult:
        if contest.status != ContestStatus.ACTIVE:
            return ActionResult(False, "Draw доступен только для active конкурса.", contest)
        if not contest.participants:
            return ActionResult(False, "В конкурсе нет участников.", contest)
        lock = self.draw_locks.hit(f"draw:{contest.id}")
        if not lock.ok:
            return ActionResult(
                False, f"Жеребьевка уже выполняется. Повторите через {lock.wait_seconds} сек.", locked=True,
            )

        now = self._clock()

        def mutator(current: Contest) -> Contest:
            if current.status != ContestStatus.ACTIVE:
                raise _Rejected("Draw доступен только для active конкурса.")
            if not current.participants:
                raise _Rejected("В конкурсе нет участников.")
            result = run_deterministic_draw(current)
            return self._complete(
                current, AuditAction.DRAW, actor_id, f"winners={','.join(result.winners)}", now, result,
            )

        updated = self._update(contest.id, mutator)
        winners = format_winners(updated.winners) if isinstance(updated, Contest) else ""
        return self._result(updated, f"Draw выполнен. Победители: {winners}.")

    def _reroll(self, contest: Contest, actor_id: str, fields: Mapping[str, object]) -> ActionResult:
        if contest.status != ContestStatus.COMPLETED:
            return ActionResult(False, "Reroll доступен только для completed конкурса.", contest)
        if not contest.participants:
            return ActionResult(False, "В конкурсе нет участников.", contest)
        lock = self.draw_locks.hit(f"reroll:{contest.id}")
        if not lock.ok:
            return ActionResult(
                False, f"Reroll уже выполняется. Повторите через {lock.wait_seconds} сек.", locked=True,
            )

        now = self._clock()

        def mutator(current: Contest) -> Contest:
            if current.status != ContestStatus.COMPLETED:
                raise _Rejected("Reroll доступен только для completed конкурса.")
            if not current.participants:
                raise _Rejected("В конкурсе нет участников.")
            result = reroll_draw(current, now)
            return self._complete(
                current, AuditAction.REROLL, actor_id,
                f"winners={','.join(result.winners)}; seedTime={to_iso(now)}", now, result,
            )

        updated = self._update(contest.id, mutator)
        winners = format_winners(updated.winners) if isinstance(updated, Contest) else ""
        return self._result(updated, f"Reroll выполнен. Победители: {winners}.")

    def _reopen(self, contest: Contest, actor_id: str, fields: Mapping[str, object]) -> ActionResult:
        ends_at = parse_iso_datetime(_as_str(fields.get("ends_at")))
        now = self._clock()
        if ends_at is None or ends_at <= now:
            return ActionResult(False, "Укажите корректную будущую дату для reopen.")
        if contest.status != ContestStatus.COMPLETED:
            return ActionResult(False, "Reopen доступен только для completed конкурса.", contest)

        ends_at_iso = to_iso(ends_at)

        def mutator(current: Contest) -> Contest:
            if current.status != ContestStatus.COMPLETED:
                raise _Rejected("Reopen доступен только для completed конкурса.")
            return current.with_audit(
                AuditEntry(to_iso(now), AuditAction.REOPENED, actor_id, f"Новая дата окончания={ends_at_iso}"),
                status=ContestStatus.ACTIVE,
                ends_at=ends_at_iso,
                winners=(),
                draw_seed=None,
            )

        updated = self._update(contest.id, mutator)
        return self._result(updated, "Конкурс переоткрыт.")

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _update(self, contest_id: str, mutator: Callable[[Contest], Contest]):
        """Run ``repository.update``; a rejection inside the mutator comes back as its message."""
        try:
            return self.repository.update(contest_id, mutator)
        except _Rejected as rejected:
            return rejected.message

    @staticmethod
    def _result(updated, success_message: str) -> ActionResult:
        if updated is None:
            return ActionResult(False, "Конкурс не найден.")
        if isinstance(updated, str):
            return ActionResult(False, updated)
        return ActionResult(True, success_message, updated)

    @staticmethod
    def _complete(
        contest: Contest,
        action: AuditAction,
        actor_id: str,
        details: str,
        now: datetime,
        result: Optional[DrawResult] = None,
    ) -> Contest:
        entry = AuditEntry(to_iso(now), action, actor_id, details)
        if result is None:
            return contest.with_audit(entry, status=ContestStatus.COMPLETED)
        return contest.with_audit(
            entry,
            status=ContestStatus.COMPLETED,
            winners=result.winners,
            draw_seed=result.seed,
        )

    @staticmethod
    def _is_expired(contest: Contest, now: datetime) -> bool:
        if contest.status != ContestStatus.ACTIVE:
            return False
        ends_at = parse_iso_datetime(contest.ends_at)
        return ends_at is not None and ends_at <= now


def _as_str(value: object) -> Optional[str]:
    if value is None:
        return None
    return str(value)


__all__ = [
    "ActionResult",
    "BULK_ACTIONS",
    "ContestActionDispatcher",
    "JoinResult",
    "SINGLE_ACTIONS",
    "format_winners",
    "proof_seed_time",
]
