"""Parsing and formatting helpers for chat commands.

Pure functions only, so the command grammar can be tested without a bot.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlsplit

from core.constants import TelegramLimits
from database.models import Contest
from utils.validators import parse_chat_ids, parse_max_winners

START_PAYLOAD_RE = re.compile(r"^join_([A-Za-z0-9-]+)(?:_([A-Za-z0-9-]+))?$")
KEEP_VALUE = "-"


@dataclass(frozen=True, slots=True)
class JoinArgs:
    contest_id: str
    referrer_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class NewContestArgs:
    title: str
    ends_at: str
    max_winners: str


@dataclass(frozen=True, slots=True)
class EditContestArgs:
    contest_id: str
    title: Optional[str] = None
    ends_at: Optional[str] = None
    max_winners: Optional[int] = None


@dataclass(frozen=True, slots=True)
class PublishArgs:
    contest_id: str
    chat_id: int
    text: str = ""


def split_args(raw: Optional[str]) -> List[str]:
    return (raw or "").split()


def parse_join_args(raw: Optional[str]) -> JoinArgs:
    parts = split_args(raw)
    contest_id = parts[0] if parts else ""
    referrer_id = parts[1].strip() if len(parts) > 1 else None
    return JoinArgs(contest_id=contest_id, referrer_id=referrer_id or None)


def build_start_payload(contest_id: str, referrer_id: Optional[str] = None) -> str:
    """Deep-link payload understood by ``parse_start_payload``."""
    payload = f"join_{contest_id}"
    if referrer_id:
        payload += f"_{referrer_id}"
    return payload[:TelegramLimits.START_PAYLOAD_MAX_LENGTH]


def parse_start_payload(raw: Optional[str]) -> Optional[JoinArgs]:
    """Parse ``join_<id>[_<ref>]``, ``join:<id>[:<ref>]`` or ``<id> [ref]``."""
    value = (raw or "").strip()
    if not value:
        return None

    match = START_PAYLOAD_RE.match(value)
    if match:
        return JoinArgs(contest_id=match.group(1), referrer_id=match.group(2))

    if value.startswith("join:"):
        parts = value.split(":")
        contest_id = parts[1].strip() if len(parts) > 1 else ""
        referrer_id = parts[2].strip() if len(parts) > 2 else ""
        if not contest_id:
            return None
        return JoinArgs(contest_id=contest_id, referrer_id=referrer_id or None)

    args = parse_join_args(value)
    return args if args.contest_id else None


def parse_new_contest_args(raw: Optional[str]) -> Optional[NewContestArgs]:
    parts = [part.strip() for part in (raw or "").split("|")]
    title = parts[0] if parts else ""
    ends_at = parts[1] if len(parts) > 1 else ""
    winners = parts[2] if len(parts) > 2 and parts[2] else "1"
    if not title or not ends_at or parse_max_winners(winners, 1) is None:
        return None
    return NewContestArgs(title=title, ends_at=ends_at, max_winners=winners)


def parse_edit_contest_args(raw: Optional[str]) -> Optional[EditContestArgs]:
    """Parse ``id | title|- | endsAt|- | winners|-``; ``-`` keeps a field."""
    parts = [part.strip() for part in (raw or "").split("|")]
    contest_id = parts[0] if parts else ""
    if not contest_id:
        return None

    def keep_or(index: int) -> Optional[str]:
        if len(parts) <= index or not parts[index] or parts[index] == KEEP_VALUE:
            return None
        return parts[index]

    winners_raw = keep_or(3)
    max_winners = None
    if winners_raw is not None:
        max_winners = parse_max_winners(winners_raw, 1)
        if max_winners is None:
            return None

    return EditContestArgs(
        contest_id=contest_id,
        title=keep_or(1),
        ends_at=keep_or(2),
        max_winners=max_winners,
    )


def parse_publish_args(raw: Optional[str]) -> Optional[PublishArgs]:
    parts = split_args(raw)
    if len(parts) < 2:
        return None
    try:
        chat_id = int(parts[1])
    except ValueError:
        return None
    return PublishArgs(contest_id=parts[0], chat_id=chat_id, text=" ".join(parts[2:]).strip())


def parse_set_required_args(raw: Optional[str]) -> Optional[tuple]:
    parts = split_args(raw)
    if len(parts) < 2:
        return None
    return parts[0], parse_chat_ids(" ".join(parts[1:]))


def format_contest_line(contest: Contest) -> str:
    return (
        f"#{contest.id} | {contest.title} | status={contest.status.value} | "
        f"participants={len(contest.participants)} | winners={contest.max_winners} | "
        f"requiredChats={len(contest.required_chats)}"
    )


def truncate_message(text: str, limit: int = TelegramLimits.MESSAGE_MAX_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - 1] + "…"


def can_use_link_button(raw_url: Optional[str]) -> bool:
    """Telegram refuses URL buttons pointing at local or private hosts."""
    try:
        parts = urlsplit(raw_url or "")
    except ValueError:
        return False
    if parts.scheme not in ("http", "https"):
        return False
    host = (parts.hostname or "").lower()
    if not host or host == "localhost" or host.endswith(".local"):
        return False
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return True
    return not (address.is_private or address.is_loopback or address.is_link_local)


HELP_LINES = (
    "Команды конкурсного бота",
    "",
    "Быстрый старт:",
    "1) /newcontest Название | 2026-12-31T20:00:00Z | 1",
    "2) /publish contest_id chat_id [текст]",
    "3) /join contest_id",
    "4) /draw contest_id",
    "",
    "Для всех:",
    "/start",
    "/help",
    "/whoami",
    "/myrole",
    "/contests",
    "/join contest_id [referrer_user_id]",
    "/myref contest_id",
    "/proof contest_id",
    "",
    "Для администраторов:",
    "/adminpanel",
    "/newcontest",
    "/setrequired contest_id chat_id[,chat_id2,...]",
    "/editcontest contest_id | title|- | endsAt|- | winners|-",
    "/closecontest contest_id",
    "/reopencontest contest_id ISO-дата",
    "/publish contest_id chat_id [текст_поста]",
    "/draw contest_id",
    "/reroll contest_id",
    "/contestaudit contest_id",
)

TEMPLATE_LINES = (
    "Шаблоны команд:",
    "/newcontest Название конкурса | 2026-12-31T20:00:00Z | 1",
    "/setrequired contest_id chat_id[,chat_id2,...]",
    "/publish contest_id chat_id [текст поста]",
    "/join contest_id [referrer_user_id]",
    "/draw contest_id",
    "/reroll contest_id",
)

NEXT_STEPS_LINES = (
    "Что делать дальше:",
    "1) Нажмите 'Шаблоны' и скопируйте пример /newcontest.",
    "2) Создайте конкурс: /newcontest ...",
    "3) Посмотрите contest_id через /contests.",
    "4) Опубликуйте: /publish contest_id chat_id [текст].",
    "5) Проведите розыгрыш: /draw contest_id.",
)

BOT_COMMANDS = (
    ("start", "Помощь и команды"),
    ("help", "Онбординг и полный список команд"),
    ("whoami", "Показать ваш user ID"),
    ("myrole", "Показать роль"),
    ("adminpanel", "Открыть админ-панель"),
    ("newcontest", "Создать конкурс: Название | дата | победителей"),
    ("contests", "Показать конкурсы"),
    ("setrequired", "Обязательные чаты: contest_id chat1,chat2"),
    ("join", "Участвовать: contest_id [ref]"),
    ("myref", "Рефкод: contest_id"),
    ("proof", "Пруф жеребьевки: contest_id"),
    ("contestaudit", "Аудит конкурса: contest_id"),
    ("editcontest", "Изменить: id | title|- | endsAt|- | winners|-"),
    ("closecontest", "Закрыть конкурс: contest_id"),
    ("reopencontest", "Переоткрыть: contest_id ISO_endsAt"),
    ("publish", "Опубликовать: contest_id chat_id [текст]"),
    ("draw", "Выбрать победителей: contest_id"),
    ("reroll", "Перевыбрать победителей: contest_id"),
)


def build_help_message() -> str:
    return "\n".join(HELP_LINES)
