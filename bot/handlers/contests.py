"""Contest commands, the join button and the help menu callbacks."""

from __future__ import annotations

import asyncio
from typing import Iterable, List, Optional

from aiogram import Bot, F, Router, types
from aiogram.enums import ChatMemberStatus
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command, CommandObject

from bot.commands import (
    NEXT_STEPS_LINES,
    TEMPLATE_LINES,
    build_help_message,
    build_start_payload,
    can_use_link_button,
    format_contest_line,
    parse_edit_contest_args,
    parse_join_args,
    parse_new_contest_args,
    parse_publish_args,
    parse_set_required_args,
    parse_start_payload,
    split_args,
    truncate_message,
)
from bot.error_handler import handle_bot_errors
from bot.keyboards import get_admin_panel_keyboard, get_help_keyboard, get_join_keyboard
from bot.notifier import BotNotifier
from config import Config
from core.constants import DrawDefaults
from core.logger import get_logger
from database.models import Contest
from services.actions import ContestActionDispatcher, JoinResult, format_winners, proof_seed_time
from services.draw import verify_draw
from services.referrals import JoiningUser
from services.roles import RoleResolver
from web.signing import build_admin_panel_url

logger = get_logger(__name__)

USER_NOT_DETECTED = "Не удалось определить пользователя."
ADMIN_ONLY = "Эта команда доступна только администраторам."
NOT_FOUND = "Конкурс не найден."
MEMBER_STATUSES = (ChatMemberStatus.CREATOR, ChatMemberStatus.ADMINISTRATOR, ChatMemberStatus.MEMBER)


async def find_missing_required_chats(bot: Bot, chat_ids: Iterable[int], user_id: int) -> List[int]:
    """Chats from ``chat_ids`` the user is not a member of.

    A chat the bot cannot query counts as missing.
    """
    missing = []
    for chat_id in chat_ids:
        try:
            member = await bot.get_chat_member(chat_id, user_id)
        except TelegramAPIError as e:
            logger.warning("required_chat_check_failed chat_id=%s user_id=%s error=%s", chat_id, user_id, e)
            missing.append(chat_id)
            continue
        if member.status in MEMBER_STATUSES:
            continue
        if member.status == ChatMemberStatus.RESTRICTED and getattr(member, "is_member", False):
            continue
        missing.append(chat_id)
    return missing


def contests_overview(contests: List[Contest]) -> str:
    if not contests:
        return "Пока нет созданных конкурсов."
    return truncate_message("\n".join(["Текущие конкурсы:", *map(format_contest_line, contests)]))


class ContestHandlers:
    def __init__(
        self,
        config: Config,
        dispatcher: ContestActionDispatcher,
        roles: RoleResolver,
        notifier: Optional[BotNotifier] = None,
    ) -> None:
        self.config = config
        self.dispatcher = dispatcher
        self.repository = dispatcher.repository
        self.roles = roles
        self.notifier = notifier
        self.router = Router()
        self._register()

    def setup(self, dispatcher) -> None:
        dispatcher.include_router(self.router)

    def _register(self) -> None:
        self.router.message.register(self.start, Command("start"))
        self.router.message.register(self.help, Command("help"))
        self.router.message.register(self.whoami, Command("whoami"))
        self.router.message.register(self.myrole, Command("myrole"))
        self.router.message.register(self.adminpanel, Command("adminpanel"))
        self.router.message.register(self.new_contest, Command("newcontest"))
        self.router.message.register(self.list_contests, Command("contests"))
        self.router.message.register(self.set_required, Command("setrequired"))
        self.router.message.register(self.join, Command("join"))
        self.router.message.register(self.myref, Command("myref"))
        self.router.message.register(self.proof, Command("proof"))
        self.router.message.register(self.contest_audit, Command("contestaudit"))
        self.router.message.register(self.edit_contest, Command("editcontest"))
        self.router.message.register(self.close_contest, Command("closecontest"))
        self.router.message.register(self.reopen_contest, Command("reopencontest"))
        self.router.message.register(self.publish, Command("publish"))
        self.router.message.register(self.draw, Command("draw"))
        self.router.message.register(self.reroll, Command("reroll"))
        self.router.callback_query.register(self.join_callback, F.data.startswith("join:"))
        self.router.callback_query.register(self.help_callback, F.data.startswith("help:"))

    # ------------------------------------------------------------------ #
    # Shared flows
    # ------------------------------------------------------------------ #

    async def _try_join(
        self, bot: Bot, contest_id: str, user: types.User, referrer_id: Optional[str] = None,
    ) -> JoinResult:
        user_id = str(user.id)
        check = await asyncio.to_thread(self.dispatcher.check_join, contest_id, user_id)
        if not check.ok or check.already:
            return check

        if check.contest.required_chats:
            missing = await find_missing_required_chats(bot, check.contest.required_chats, user.id)
            if missing:
                return JoinResult(
                    False,
                    f"Для участия подпишитесь на обязательные чаты: {', '.join(map(str, missing))}",
                    check.contest,
                )

        joining = JoiningUser(id=user_id, username=user.username)
        return await asyncio.to_thread(self.dispatcher.join, contest_id, joining, referrer_id)

    async def _send_admin_panel_entry(self, message: types.Message, user_id: str) -> None:
        panel_url = self.config.admin_panel_url
        if not panel_url:
            await message.answer("Админ-панель не настроена: задайте ADMIN_PANEL_URL в .env.")
            return

        url = build_admin_panel_url(panel_url, user_id, self.config.signing_secret)
        if not can_use_link_button(panel_url):
            await message.answer("\n".join([
                "Открыть админку кнопкой не получится: сейчас указан локальный/private URL.",
                f"Текущее значение ADMIN_PANEL_URL: {panel_url}",
                "Нужен публичный URL (https) через tunnel/домен.",
                "",
                f"Временная ссылка (для проверки): {url}",
            ]))
            return

        try:
            await message.answer("Открыть админ-панель:", reply_markup=get_admin_panel_keyboard(url))
        except TelegramAPIError as e:
            logger.warning("admin_panel_link_button_failed error=%s", e)
            await message.answer(f"Не удалось отправить кнопку-ссылку админки.\nПрямая ссылка:\n{url}")

    async def _publish_results(self, contest: Optional[Contest]) -> None:
        if self.notifier is not None and contest is not None:
            await self.notifier.publish_results(contest)

    async def _report_lock(self, reason: str, user_id: str) -> None:
        if self.notifier is not None:
            await self.notifier.report_suspicious(reason, user_id)

    # ------------------------------------------------------------------ #
    # Everyone
    # ------------------------------------------------------------------ #

    @handle_bot_errors()
    async def start(self, message: types.Message, command: CommandObject, bot: Bot) -> None:
        user = message.from_user
        if user is None:
            await message.answer(USER_NOT_DETECTED)
            return

        payload = parse_start_payload(command.args)
        if payload is not None:
            result = await self._try_join(bot, payload.contest_id, user, payload.referrer_id)
            if not result.ok:
                await message.answer(result.message)
            elif result.already:
                await message.answer(
                    f'Вы уже участвуете в конкурсе "{result.contest.title}". '
                    f"Участников: {len(result.contest.participants)}"
                )
            else:
                await message.answer(
                    f'Участие подтверждено через /start для "{result.contest.title}". '
                    f"Всего участников: {len(result.contest.participants)}"
                )
            return

        await message.answer(
            "Конкурсный бот запущен.\n\n" + build_help_message(),
            reply_markup=get_help_keyboard(self.roles.can_manage(str(user.id))),
        )

    async def help(self, message: types.Message) -> None:
        user = message.from_user
        can_manage = user is not None and self.roles.can_manage(str(user.id))
        await message.answer(build_help_message(), reply_markup=get_help_keyboard(can_manage))

    async def whoami(self, message: types.Message) -> None:
        if message.from_user is None:
            await message.answer(USER_NOT_DETECTED)
            return
        await message.answer(f"Ваш user ID: {message.from_user.id}")

    async def myrole(self, message: types.Message) -> None:
        if message.from_user is None:
            await message.answer(USER_NOT_DETECTED)
            return
        await message.answer(f"Ваша роль: {self.roles.role_of(str(message.from_user.id)).value}")

    async def list_contests(self, message: types.Message) -> None:
        contests = await asyncio.to_thread(self.repository.list)
        await message.answer(contests_overview(contests))

    @handle_bot_errors("Не удалось зарегистрировать участие.")
    async def join(self, message: types.Message, command: CommandObject, bot: Bot) -> None:
        user = message.from_user
        if user is None:
            await message.answer(USER_NOT_DETECTED)
            return

        args = parse_join_args(command.args)
        if not args.contest_id:
            await message.answer("Укажите ID конкурса: /join contest_id [referrer_user_id]")
            return

        result = await self._try_join(bot, args.contest_id, user, args.referrer_id)
        if not result.ok:
            await message.answer(result.message)
        elif result.already:
            logger.info("contest_join_duplicate contest_id=%s user_id=%s", args.contest_id, user.id)
            await message.answer(
                f'Вы уже участвуете в конкурсе "{result.contest.title}". '
                f"Участников: {len(result.contest.participants)}"
            )
        else:
            await message.answer(
                f'Вы участвуете в конкурсе "{result.contest.title}". '
                f"Всего участников: {len(result.contest.participants)}"
            )

    async def myref(self, message: types.Message, command: CommandObject, bot: Bot) -> None:
        user = message.from_user
        if user is None:
            await message.answer(USER_NOT_DETECTED)
            return

        contest_id = (command.args or "").strip()
        if not contest_id:
            await message.answer("Формат: /myref contest_id")
            return
        if await asyncio.to_thread(self.repository.get, contest_id) is None:
            await message.answer(NOT_FOUND)
            return

        payload = build_start_payload(contest_id, str(user.id))
        lines = [
            f"Ваш ref ID: {user.id}",
            f"Приглашайте так: /join {contest_id} {user.id}",
            f"Быстрый формат через start: /start {payload}",
        ]
        me = await bot.me()
        if me.username:
            lines.append(f"Ссылка: https://t.me/{me.username}?start={payload}")
        lines.extend([
            f"Бонус за реферала: +{self.dispatcher.referral_bonus_tickets} бил.",
            f"Макс бонус на пользователя: +{self.dispatcher.referral_max_bonus_tickets} бил.",
        ])
        await message.answer("\n".join(lines))

    async def proof(self, message: types.Message, command: CommandObject) -> None:
        contest_id = (command.args or "").strip()
        if not contest_id:
            await message.answer("Формат: /proof contest_id")
            return

        contest = await asyncio.to_thread(self.repository.get, contest_id)
        if contest is None:
            await message.answer(NOT_FOUND)
            return
        if not contest.draw_seed:
            await message.answer("Для этого конкурса пока нет proof seed (жеребьевка еще не выполнена).")
            return

        seed_time = proof_seed_time(contest)
        verification = verify_draw(contest, ends_at=seed_time)
        await message.answer("\n".join([
            f"Proof конкурса #{contest.id}",
            f"Название: {contest.title}",
            f"Статус: {contest.status.value}",
            f"Participants: {len(contest.participants)}",
            f"Winners: {format_winners(contest.winners)}",
            f"Seed: {contest.draw_seed}",
            f"Формула seed: {DrawDefaults.SEED_FORMULA}",
            f"Время в seed: {seed_time}",
            f"Проверка: {'совпадает' if verification.ok else 'НЕ совпадает'}",
        ]))

    # ------------------------------------------------------------------ #
    # Managers (owner, admins)
    # ------------------------------------------------------------------ #

    async def adminpanel(self, message: types.Message) -> None:
        user = message.from_user
        if user is None:
            await message.answer(USER_NOT_DETECTED)
            return
        if not self.roles.can_manage(str(user.id)):
            await message.answer(ADMIN_ONLY)
            return
        await self._send_admin_panel_entry(message, str(user.id))

    @handle_bot_errors("Не удалось создать конкурс.")
    async def new_contest(self, message: types.Message, command: CommandObject) -> None:
        user = message.from_user
        if user is None or not self.roles.can_manage(str(user.id)):
            await message.answer(USER_NOT_DETECTED if user is None else ADMIN_ONLY)
            return

        args = parse_new_contest_args(command.args)
        if args is None:
            await message.answer("Неверный формат.\nПример:\n/newcontest iPhone giveaway | 2026-12-31T20:00:00Z | 3")
            return

        result = await asyncio.to_thread(
            self.dispatcher.perform, "create", None, str(user.id),
            {"title": args.title, "ends_at": args.ends_at, "max_winners": args.max_winners},
        )
        if not result.ok:
            await message.answer(result.message)
            return
        contest = result.contest
        await message.answer(
            f"Конкурс создан.\nID: {contest.id}\nНазвание: {contest.title}\n"
            f"Завершение: {contest.ends_at}\nПобедителей: {contest.max_winners}"
        )

    @handle_bot_errors("Не удалось обновить обязательные чаты.")
    async def set_required(self, message: types.Message, command: CommandObject) -> None:
        user = message.from_user
        if user is None or not self.roles.can_manage(str(user.id)):
            await message.answer(USER_NOT_DETECTED if user is None else ADMIN_ONLY)
            return

        parsed = parse_set_required_args(command.args)
        if parsed is None:
            await message.answer("Формат: /setrequired contest_id chat_id[,chat_id2,...]")
            return

        contest_id, chat_ids = parsed
        result = await asyncio.to_thread(self.dispatcher.set_required_chats, contest_id, chat_ids, str(user.id))
        await message.answer(result.message)

    async def contest_audit(self, message: types.Message, command: CommandObject) -> None:
        user = message.from_user
        if user is None or not self.roles.can_manage(str(user.id)):
            await message.answer(USER_NOT_DETECTED if user is None else ADMIN_ONLY)
            return

        contest_id = (command.args or "").strip()
        if not contest_id:
            await message.answer("Формат: /contestaudit contest_id")
            return
        contest = await asyncio.to_thread(self.repository.get, contest_id)
        if contest is None:
            await message.answer(NOT_FOUND)
            return
        if not contest.audit_log:
            await message.answer("Аудит пуст.")
            return

        tail = contest.audit_log[-10:]
        lines = [f"Аудит конкурса {contest.id} (последние {len(tail)}):"]
        for entry in tail:
            line = f"{entry.at} | {entry.action.value} | actor={entry.actor_id}"
            if entry.details:
                line += f" | {entry.details}"
            lines.append(line)
        await message.answer(truncate_message("\n".join(lines)))

    @handle_bot_errors("Не удалось обновить конкурс.")
    async def edit_contest(self, message: types.Message, command: CommandObject) -> None:
        user = message.from_user
        if user is None or not self.roles.can_manage(str(user.id)):
            await message.answer(USER_NOT_DETECTED if user is None else ADMIN_ONLY)
            return

        args = parse_edit_contest_args(command.args)
        if args is None:
            await message.answer("Формат: /editcontest contest_id | title|- | endsAt|- | winners|-")
            return
        contest = await asyncio.to_thread(self.repository.get, args.contest_id)
        if contest is None:
            await message.answer(NOT_FOUND)
            return

        fields = {
            "title": args.title or contest.title,
            "ends_at": args.ends_at or contest.ends_at,
            "max_winners": args.max_winners or contest.max_winners,
        }
        result = await asyncio.to_thread(self.dispatcher.perform, "edit", contest.id, str(user.id), fields)
        if not result.ok:
            await message.answer(result.message)
            return
        updated = result.contest
        await message.answer(
            f"Конкурс обновлен: {updated.title}\nID: {updated.id}\n"
            f"endsAt: {updated.ends_at}\nmaxWinners: {updated.max_winners}"
        )

    @handle_bot_errors("Не удалось переоткрыть конкурс.")
    async def reopen_contest(self, message: types.Message, command: CommandObject) -> None:
        user = message.from_user
        if user is None or not self.roles.can_manage(str(user.id)):
            await message.answer(USER_NOT_DETECTED if user is None else ADMIN_ONLY)
            return

        args = split_args(command.args)
        if len(args) < 2:
            await message.answer("Формат: /reopencontest contest_id ISO_endsAt")
            return

        result = await asyncio.to_thread(
            self.dispatcher.perform, "reopen", args[0], str(user.id), {"ends_at": args[1]},
        )
        if not result.ok:
            await message.answer(result.message)
            return
        await message.answer(f"Конкурс переоткрыт: {result.contest.title}\nНовая дата: {result.contest.ends_at}")

    @handle_bot_errors("Не удалось опубликовать конкурс.")
    async def publish(self, message: types.Message, command: CommandObject, bot: Bot) -> None:
        user = message.from_user
        if user is None or not self.roles.can_manage(str(user.id)):
            await message.answer(USER_NOT_DETECTED if user is None else ADMIN_ONLY)
            return

        args = parse_publish_args(command.args)
        if args is None:
            await message.answer("Формат: /publish contest_id chat_id [текст_поста]\nchat_id должен быть числом.")
            return
        contest = await asyncio.to_thread(self.repository.get, args.contest_id)
        if contest is None:
            await message.answer(NOT_FOUND)
            return

        bonus = self.dispatcher.referral_bonus_tickets
        max_bonus = self.dispatcher.referral_max_bonus_tickets
        post_text = args.text or "\n".join([
            f"Конкурс: {contest.title}",
            'Условия: нажать кнопку "Участвовать"',
            f"Окончание: {contest.ends_at}",
            f"Рефералка: /myref {contest.id} (бонус +{bonus}, лимит +{max_bonus})",
            (
                f"Обязательные чаты: {', '.join(map(str, contest.required_chats))}"
                if contest.required_chats else "Обязательных чатов нет"
            ),
        ])

        try:
            sent = await bot.send_message(args.chat_id, post_text, reply_markup=get_join_keyboard(contest.id))
        except TelegramAPIError as e:
            logger.warning("contest_publish_failed contest_id=%s chat_id=%s error=%s", contest.id, args.chat_id, e)
            await message.answer(f"Не удалось опубликовать конкурс в chat_id={args.chat_id}.")
            return

        await asyncio.to_thread(
            self.dispatcher.set_publish_target, contest.id, args.chat_id, str(sent.message_id), str(user.id),
        )
        logger.info("contest_published contest_id=%s chat_id=%s actor_id=%s", contest.id, args.chat_id, user.id)
        await message.answer(f"Конкурс опубликован в chat_id={args.chat_id}.")

    # ------------------------------------------------------------------ #
    # Moderators and above
    # ------------------------------------------------------------------ #

    @handle_bot_errors("Не удалось закрыть конкурс.")
    async def close_contest(self, message: types.Message, command: CommandObject) -> None:
        user = message.from_user
        if user is None or not self.roles.can_moderate(str(user.id)):
            await message.answer(USER_NOT_DETECTED if user is None else ADMIN_ONLY)
            return

        contest_id = (command.args or "").strip()
        if not contest_id:
            await message.answer("Формат: /closecontest contest_id")
            return

        result = await asyncio.to_thread(self.dispatcher.perform, "close", contest_id, str(user.id))
        if not result.ok:
            await message.answer(result.message)
            return
        await self._publish_results(result.contest)
        await message.answer(
            f"Конкурс принудительно закрыт: {result.contest.title}\n"
            f"Победители: {format_winners(result.contest.winners, empty='нет')}"
        )

    @handle_bot_errors("Не удалось выполнить жеребьевку.")
    async def draw(self, message: types.Message, command: CommandObject) -> None:
        user = message.from_user
        if user is None or not self.roles.can_moderate(str(user.id)):
            await message.answer(USER_NOT_DETECTED if user is None else ADMIN_ONLY)
            return

        contest_id = (command.args or "").strip()
        if not contest_id:
            await message.answer("Укажите ID конкурса: /draw contest_id")
            return

        result = await asyncio.to_thread(self.dispatcher.perform, "draw", contest_id, str(user.id))
        if result.locked:
            await self._report_lock("draw_lock", str(user.id))
        if not result.ok:
            await message.answer(result.message)
            return

        await self._publish_results(result.contest)
        await message.answer("\n".join([
            f"Конкурс завершен: {result.contest.title}",
            f"Winners: {format_winners(result.contest.winners)}",
            f"Proof seed: {result.contest.draw_seed}",
        ]))

    @handle_bot_errors("Не удалось выполнить reroll.")
    async def reroll(self, message: types.Message, command: CommandObject) -> None:
        user = message.from_user
        if user is None or not self.roles.can_moderate(str(user.id)):
            await message.answer(USER_NOT_DETECTED if user is None else ADMIN_ONLY)
            return

        contest_id = (command.args or "").strip()
        if not contest_id:
            await message.answer("Укажите ID конкурса: /reroll contest_id")
            return

        result = await asyncio.to_thread(self.dispatcher.perform, "reroll", contest_id, str(user.id))
        if result.locked:
            await self._report_lock("reroll_lock", str(user.id))
        if not result.ok:
            await message.answer(result.message)
            return

        await self._publish_results(result.contest)
        await message.answer("\n".join([
            f"Reroll выполнен: {result.contest.title}",
            f"Новые победители: {format_winners(result.contest.winners)}",
            f"Proof seed: {result.contest.draw_seed}",
        ]))

    # ------------------------------------------------------------------ #
    # Callbacks
    # ------------------------------------------------------------------ #

    @handle_bot_errors("Не удалось зарегистрировать участие.")
    async def join_callback(self, callback: types.CallbackQuery, bot: Bot) -> None:
        contest_id = (callback.data or "").split(":", 1)[1].strip()
        if not contest_id:
            await callback.answer("Некорректный payload.")
            return

        result = await self._try_join(bot, contest_id, callback.from_user)
        if not result.ok:
            await callback.answer(result.message, show_alert=True)
            return
        if not result.already:
            logger.info("contest_join_callback contest_id=%s user_id=%s", contest_id, callback.from_user.id)
        prefix = "Вы уже участвуете." if result.already else "Участие принято."
        await callback.answer(f"{prefix} Участников: {len(result.contest.participants)}")

    async def help_callback(self, callback: types.CallbackQuery) -> None:
        action = (callback.data or "").split(":", 1)[1]
        user_id = str(callback.from_user.id)
        message = callback.message

        if action == "adminpanel":
            if not self.roles.can_manage(user_id):
                await callback.answer(ADMIN_ONLY)
                return
            await callback.answer("Открываю админку...")
            if message is not None:
                await self._send_admin_panel_entry(message, user_id)
            return

        replies = {
            "whoami": lambda: f"Ваш user ID: {user_id}",
            "myrole": lambda: f"Ваша роль: {self.roles.role_of(user_id).value}",
            "contests": lambda: contests_overview(self.repository.list()),
            "templates": lambda: "\n".join(TEMPLATE_LINES),
            "nextsteps": lambda: "\n".join(NEXT_STEPS_LINES),
            "draw_hint": lambda: "Подсказка: сначала /contests, затем /draw contest_id.",
            "reroll_hint": lambda: "Подсказка: reroll доступен после завершения конкурса: /reroll contest_id.",
        }
        reply = replies.get(action)
        if reply is None:
            await callback.answer("Неизвестное действие.")
            return
        await callback.answer("OK")
        if message is not None:
            await message.answer(await asyncio.to_thread(reply))


def setup_contest_handlers(
    dispatcher,
    config: Config,
    contest_dispatcher: ContestActionDispatcher,
    roles: RoleResolver,
    notifier: Optional[BotNotifier] = None,
) -> ContestHandlers:
    handlers = ContestHandlers(config, contest_dispatcher, roles, notifier)
    handlers.setup(dispatcher)
    return handlers
