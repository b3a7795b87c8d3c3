"""Telegram bot wrapper around aiogram with throttled outgoing sends."""

from __future__ import annotations

from typing import Any, Optional

from aiogram import Bot, Dispatcher
from aiogram.exceptions import TelegramAPIError
from asyncio_throttle import Throttler

from core.logger import get_logger

logger = get_logger(__name__)


class ContestBot:
    """Owns the aiogram ``Bot`` and ``Dispatcher`` for the giveaway bot.

    Broadcast style sends (admin alerts, result posts) go through
    ``send_throttled`` so a burst of finished contests stays under
    Telegram's per-second limits.
    """

    def __init__(self, token: str, rate_limit: int = 20) -> None:
        self.bot = Bot(token=token)
        self.dispatcher = Dispatcher()
        self.throttler = Throttler(rate_limit=rate_limit, period=1.0)

    async def send_throttled(self, chat_id: int | str, text: str, **kwargs: Any) -> Optional[Any]:
        async with self.throttler:
            try:
                return await self.bot.send_message(chat_id, text, **kwargs)
            except TelegramAPIError as e:
                logger.warning("send_failed chat_id=%s error=%s", chat_id, e)
                return None

    async def start(self) -> None:
        await self.dispatcher.start_polling(self.bot, handle_signals=False)

    async def stop(self) -> None:
        # Polling task is cancelled by the caller before this runs
        await self.bot.session.close()
