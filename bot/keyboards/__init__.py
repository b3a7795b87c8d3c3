"""Keyboard builders."""

from .main_menu import get_admin_panel_keyboard, get_help_keyboard, get_join_keyboard

__all__ = [
    "get_admin_panel_keyboard",
    "get_help_keyboard",
    "get_join_keyboard",
]
