"""Outgoing notifications: result posts and admin alerts."""

from __future__ import annotations

from typing import Optional

from bot.contest_bot import ContestBot
from core.logger import get_logger
from database.models import Contest
from services.actions import format_winners
from services.cooldown import SuspiciousActivityTracker
from services.roles import RoleResolver

logger = get_logger(__name__)


def build_results_message(contest: Contest) -> str:
    return "\n".join([
        f"Итоги конкурса: {contest.title}",
        f"Победители: {format_winners(contest.winners, empty='нет победителей')}",
        f"Proof seed: {contest.draw_seed or '-'}",
    ])


class BotNotifier:
    """Result posts for published contests and direct messages to admins."""

    def __init__(
        self,
        contest_bot: ContestBot,
        roles: RoleResolver,
        suspicious: Optional[SuspiciousActivityTracker] = None,
    ) -> None:
        self.contest_bot = contest_bot
        self.roles = roles
        self.suspicious = suspicious or SuspiciousActivityTracker()

    async def notify_admins(self, text: str) -> int:
        """Send ``text`` to the owner and every admin; return deliveries."""
        delivered = 0
        for chat_id in self.roles.notification_targets():
            if await self.contest_bot.send_throttled(chat_id, text) is not None:
                delivered += 1
        logger.info("admin_notification delivered=%s", delivered)
        return delivered

    async def publish_results(self, contest: Contest) -> Optional[object]:
        if contest.publish_chat_id is None:
            return None
        return await self.contest_bot.send_throttled(contest.publish_chat_id, build_results_message(contest))

    async def report_suspicious(self, reason: str, user_id: str) -> bool:
        """Count a cooldown or lock hit and alert admins once it repeats."""
        signal = self.suspicious.hit(f"{reason}:{user_id}")
        if not signal.should_alert:
            return False
        logger.warning("suspicious_activity reason=%s user_id=%s count=%s", reason, user_id, signal.count)
        await self.notify_admins(
            f"Антифрод сигнал: {reason}\nuser_id={user_id}\nповторов за окно={signal.count}"
        )
        return True
