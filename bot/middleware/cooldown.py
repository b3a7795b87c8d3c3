"""Per-user command cooldowns with repeat-offender alerts."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, Optional

from aiogram import BaseMiddleware
from aiogram.types import CallbackQuery, Message, TelegramObject

from bot.notifier import BotNotifier
from core.constants import RateLimitDefaults
from core.logger import get_logger
from services.cooldown import CooldownTracker
from services.roles import RoleResolver

logger = get_logger(__name__)

MANAGE = "manage"
MODERATE = "moderate"

# command -> permission needed before the cooldown counts; None means anyone
COOLDOWN_COMMANDS: Dict[str, Optional[str]] = {
    "newcontest": MANAGE,
    "setrequired": MANAGE,
    "editcontest": MANAGE,
    "reopencontest": MANAGE,
    "publish": MANAGE,
    "closecontest": MODERATE,
    "draw": MODERATE,
    "reroll": MODERATE,
    "join": None,
}
JOIN_CALLBACK = "join_callback"


def command_name(text: Optional[str]) -> Optional[str]:
    """``/Draw@my_bot abc`` -> ``draw``."""
    if not text or not text.startswith("/"):
        return None
    head = text.split(maxsplit=1)[0][1:]
    return head.split("@", 1)[0].lower() or None


class CommandCooldownMiddleware(BaseMiddleware):
    """Throttle mutating commands and the join button per user.

    Users without the permission a command needs pass straight through so
    the handler can answer with the usual refusal.
    """

    def __init__(
        self,
        roles: RoleResolver,
        notifier: Optional[BotNotifier] = None,
        cooldowns: Optional[CooldownTracker] = None,
    ) -> None:
        super().__init__()
        self.roles = roles
        self.notifier = notifier
        self.cooldowns = cooldowns or CooldownTracker(RateLimitDefaults.COMMAND_COOLDOWN_SECONDS)

    def _permitted(self, permission: Optional[str], user_id: str) -> bool:
        if permission == MANAGE:
            return self.roles.can_manage(user_id)
        if permission == MODERATE:
            return self.roles.can_moderate(user_id)
        return True

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any],
    ) -> Any:
        user = getattr(event, "from_user", None)
        if user is None:
            return await handler(event, data)
        user_id = str(user.id)

        key = None
        if isinstance(event, Message):
            command = command_name(event.text)
            if command in COOLDOWN_COMMANDS and self._permitted(COOLDOWN_COMMANDS[command], user_id):
                key = command
        elif isinstance(event, CallbackQuery):
            if (event.data or "").startswith("join:"):
                key = JOIN_CALLBACK

        if key is None:
            return await handler(event, data)

        result = self.cooldowns.hit(f"{key}:{user_id}")
        if result.ok:
            return await handler(event, data)

        logger.info("command_cooldown command=%s user_id=%s wait=%s", key, user_id, result.wait_seconds)
        if self.notifier is not None:
            await self.notifier.report_suspicious(f"{key}_cooldown", user_id)

        # Message.answer replies in chat, CallbackQuery.answer shows a toast
        await event.answer(f"Слишком часто. Повторите через {result.wait_seconds} сек.")
        return None


def setup_cooldown_middleware(
    dispatcher,
    roles: RoleResolver,
    notifier: Optional[BotNotifier] = None,
    *,
    cooldown_seconds: float = RateLimitDefaults.COMMAND_COOLDOWN_SECONDS,
) -> CommandCooldownMiddleware:
    middleware = CommandCooldownMiddleware(roles, notifier, CooldownTracker(cooldown_seconds))
    dispatcher.message.middleware(middleware)
    dispatcher.callback_query.middleware(middleware)
    return middleware
