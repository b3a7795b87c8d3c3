"""Centralized error handling for bot handlers."""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable

from aiogram import types
from aiogram.exceptions import TelegramAPIError

from core.exceptions import StoreError
from core.logger import get_logger

logger = get_logger(__name__)

STORE_ERROR_MESSAGE = "Не удалось сохранить изменения. Попробуйте позже."


def handle_bot_errors(error_message: str = "Произошла ошибка. Попробуйте еще раз."):
    """Decorator for handler methods: log the failure and apologise to the user.

    A failed store write gets its own reply; the contest keeps its last
    persisted state in that case.

    Usage:
        @handle_bot_errors("Не удалось выполнить draw")
        async def draw(self, message, command):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(self, message_or_callback: Any, *args, **kwargs):
            try:
                return await func(self, message_or_callback, *args, **kwargs)
            except StoreError as e:
                logger.error("store_error handler=%s error=%s", func.__name__, e)
                reply = STORE_ERROR_MESSAGE
            except Exception as e:
                logger.error("handler_error handler=%s error=%s", func.__name__, e, exc_info=True)
                reply = error_message

            try:
                if isinstance(message_or_callback, types.CallbackQuery):
                    await message_or_callback.answer(reply, show_alert=True)
                elif isinstance(message_or_callback, types.Message):
                    await message_or_callback.answer(reply)
            except TelegramAPIError as send_error:
                logger.error("error_reply_failed error=%s", send_error)
            return None

        return wrapper
    return decorator
