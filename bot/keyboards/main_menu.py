"""Inline keyboard layouts for the contest bot"""

from aiogram.types import InlineKeyboardButton, InlineKeyboardMarkup


# Help menu keyboard
def get_help_keyboard(can_manage: bool = False) -> InlineKeyboardMarkup:
    """Onboarding shortcuts; admin rows only for users who can manage contests"""
    keyboard = [
        [
            InlineKeyboardButton(text="Что дальше", callback_data="help:nextsteps"),
            InlineKeyboardButton(text="Шаблоны", callback_data="help:templates"),
        ],
        [
            InlineKeyboardButton(text="Кто я", callback_data="help:whoami"),
            InlineKeyboardButton(text="Моя роль", callback_data="help:myrole"),
        ],
        [InlineKeyboardButton(text="Конкурсы", callback_data="help:contests")],
    ]

    if can_manage:
        keyboard.extend([
            [InlineKeyboardButton(text="Открыть админку", callback_data="help:adminpanel")],
            [
                InlineKeyboardButton(text="Подсказка draw", callback_data="help:draw_hint"),
                InlineKeyboardButton(text="Подсказка reroll", callback_data="help:reroll_hint"),
            ],
        ])

    return InlineKeyboardMarkup(inline_keyboard=keyboard)


def get_join_keyboard(contest_id: str) -> InlineKeyboardMarkup:
    """Button attached to a published contest post"""
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="Участвовать", callback_data=f"join:{contest_id}")]
    ])


def get_admin_panel_keyboard(url: str) -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(inline_keyboard=[
        [InlineKeyboardButton(text="Открыть панель", url=url)]
    ])
