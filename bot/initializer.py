"""Bot initialization module."""

from __future__ import annotations

from typing import TYPE_CHECKING

from aiogram.exceptions import TelegramAPIError
from aiogram.types import BotCommand

from core.logger import get_logger

if TYPE_CHECKING:
    from config import Config
    from services.actions import ContestActionDispatcher
    from services.roles import RoleResolver

logger = get_logger(__name__)


class BotInitializer:
    """Handles bot initialization, handler and middleware registration."""

    def __init__(self, config: Config, dispatcher: ContestActionDispatcher, roles: RoleResolver):
        self.config = config
        self.dispatcher = dispatcher
        self.roles = roles

    async def initialize(self):
        """Build the bot; returns ``(ContestBot, BotNotifier)``."""
        from bot.commands import BOT_COMMANDS
        from bot.contest_bot import ContestBot
        from bot.handlers import setup_contest_handlers
        from bot.middleware import setup_cooldown_middleware
        from bot.notifier import BotNotifier

        bot = ContestBot(token=self.config.bot_token)
        notifier = BotNotifier(bot, self.roles)

        setup_contest_handlers(bot.dispatcher, self.config, self.dispatcher, self.roles, notifier)
        logger.info("Contest handlers registered")

        setup_cooldown_middleware(bot.dispatcher, self.roles, notifier)
        logger.info("Middleware configured")

        try:
            await bot.bot.set_my_commands(
                [BotCommand(command=name, description=description) for name, description in BOT_COMMANDS]
            )
        except TelegramAPIError as e:
            # The menu is cosmetic; commands still work without it
            logger.warning("set_my_commands_failed error=%s", e)

        return bot, notifier
