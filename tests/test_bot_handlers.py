"""Tests for contest bot handlers, notifier and cooldown middleware."""

import threading
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiogram import types
from aiogram.enums import ChatMemberStatus
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import CommandObject

from bot.contest_bot import ContestBot
from bot.error_handler import STORE_ERROR_MESSAGE
from bot.handlers.contests import ADMIN_ONLY, ContestHandlers, find_missing_required_chats
from bot.middleware.cooldown import CommandCooldownMiddleware
from bot.notifier import BotNotifier, build_results_message
from conftest import make_contest, make_participant
from core.constants import ContestStatus
from core.exceptions import StoreError
from services.actions import EDIT_ACTIVE_ONLY
from services.cooldown import CooldownTracker, SuspiciousActivityTracker
from services.roles import RoleResolver

OWNER, ADMIN, MODERATOR, USER = 1, 2, 3, 500


def make_message(user_id=USER, text="", username="tester"):
    message = MagicMock(spec=types.Message)
    message.from_user = SimpleNamespace(id=user_id, username=username)
    message.text = text
    message.answer = AsyncMock()
    return message


def make_callback(data, user_id=USER):
    callback = MagicMock(spec=types.CallbackQuery)
    callback.data = data
    callback.from_user = SimpleNamespace(id=user_id, username=None)
    callback.message = make_message(user_id)
    callback.answer = AsyncMock()
    return callback


def make_bot(status=ChatMemberStatus.MEMBER, username="contest_bot"):
    bot = AsyncMock()
    bot.get_chat_member.return_value = SimpleNamespace(status=status)
    bot.me.return_value = SimpleNamespace(username=username)
    bot.send_message.return_value = SimpleNamespace(message_id=321)
    return bot


def command(args=None):
    return CommandObject(prefix="/", command="cmd", args=args)


def last_answer(message):
    return message.answer.await_args.args[0]


@pytest.fixture
def notifier():
    notifier = MagicMock()
    notifier.publish_results = AsyncMock()
    notifier.report_suspicious = AsyncMock(return_value=False)
    return notifier


@pytest.fixture
def handlers(test_config, dispatcher, notifier):
    return ContestHandlers(test_config, dispatcher, RoleResolver.from_config(test_config), notifier)


@pytest.fixture
def contest(dispatcher):
    return dispatcher.repository.create(make_contest(participants=[make_participant("10"), make_participant("11")]))


@pytest.mark.asyncio
async def test_join_command(handlers, contest):
    message = make_message()

    await handlers.join(message, command("c1"), make_bot())

    assert last_answer(message) == 'Вы участвуете в конкурсе "Contest c1". Всего участников: 3'
    assert handlers.repository.get("c1").has_participant(str(USER))


@pytest.mark.asyncio
async def test_join_twice_reports_duplicate(handlers, contest):
    message = make_message()
    await handlers.join(message, command("c1"), make_bot())

    await handlers.join(message, command("c1"), make_bot())

    assert last_answer(message).startswith('Вы уже участвуете в конкурсе "Contest c1"')


@pytest.mark.asyncio
async def test_join_requires_membership(handlers, dispatcher, contest):
    dispatcher.set_required_chats("c1", [-100], "1")
    message = make_message()

    await handlers.join(message, command("c1"), make_bot(status=ChatMemberStatus.LEFT))

    assert last_answer(message) == "Для участия подпишитесь на обязательные чаты: -100"
    assert not handlers.repository.get("c1").has_participant(str(USER))


@pytest.mark.asyncio
async def test_unreachable_required_chat_counts_as_missing():
    bot = AsyncMock()
    bot.get_chat_member.side_effect = TelegramAPIError(method=MagicMock(), message="chat not found")

    assert await find_missing_required_chats(bot, [-1, -2], USER) == [-1, -2]


@pytest.mark.asyncio
async def test_start_with_referral_payload(handlers, contest):
    message = make_message()

    await handlers.start(message, command("join_c1_10"), make_bot())

    assert "Участие подтверждено через /start" in last_answer(message)
    contest = handlers.repository.get("c1")
    assert contest.find_participant(str(USER)).referred_by == "10"
    assert contest.find_participant("10").tickets == 2


@pytest.mark.asyncio
async def test_start_without_payload_shows_help(handlers):
    message = make_message(user_id=ADMIN)

    await handlers.start(message, command(None), make_bot())

    text = message.answer.await_args.args[0]
    assert text.startswith("Конкурсный бот запущен.")
    assert message.answer.await_args.kwargs["reply_markup"] is not None


@pytest.mark.asyncio
async def test_draw_requires_moderator(handlers, contest):
    message = make_message(user_id=USER)

    await handlers.draw(message, command("c1"))

    assert last_answer(message) == ADMIN_ONLY
    assert handlers.repository.get("c1").status == ContestStatus.ACTIVE


@pytest.mark.asyncio
async def test_draw_publishes_results(handlers, notifier, contest):
    message = make_message(user_id=MODERATOR)

    await handlers.draw(message, command("c1"))

    drawn = handlers.repository.get("c1")
    assert drawn.status == ContestStatus.COMPLETED
    notifier.publish_results.assert_awaited_once_with(drawn)
    assert f"Proof seed: {drawn.draw_seed}" in last_answer(message)


@pytest.mark.asyncio
async def test_draw_lock_is_reported(handlers, notifier, contest):
    handlers.dispatcher.draw_locks = CooldownTracker(10)
    handlers.dispatcher.draw_locks.hit("draw:c1")
    message = make_message(user_id=MODERATOR)

    await handlers.draw(message, command("c1"))

    notifier.report_suspicious.assert_awaited_once_with("draw_lock", str(MODERATOR))
    assert last_answer(message).startswith("Жеребьевка уже выполняется")


@pytest.mark.asyncio
async def test_store_error_reply(handlers, contest, monkeypatch):
    def broken(*args, **kwargs):
        raise StoreError("disk full")

    monkeypatch.setattr(handlers.dispatcher, "perform", broken)
    message = make_message(user_id=OWNER)

    await handlers.close_contest(message, command("c1"))

    assert last_answer(message) == STORE_ERROR_MESSAGE


@pytest.mark.asyncio
async def test_new_contest_and_edit(handlers):
    message = make_message(user_id=ADMIN)

    await handlers.new_contest(message, command("Giveaway | 2026-12-31T20:00:00Z | 2"))

    assert last_answer(message).startswith("Конкурс создан.\nID: k1")
    await handlers.edit_contest(message, command("k1 | Renamed | - | -"))
    edited = handlers.repository.get("k1")
    assert edited.title == "Renamed"
    assert edited.max_winners == 2
    assert edited.ends_at == "2026-12-31T20:00:00.000Z"


@pytest.mark.asyncio
async def test_new_contest_bad_format(handlers):
    message = make_message(user_id=ADMIN)

    await handlers.new_contest(message, command("only title"))

    assert last_answer(message).startswith("Неверный формат.")
    assert handlers.repository.list() == []


@pytest.mark.asyncio
async def test_moderator_cannot_create(handlers):
    message = make_message(user_id=MODERATOR)

    await handlers.new_contest(message, command("Giveaway | 2026-12-31T20:00:00Z"))

    assert last_answer(message) == ADMIN_ONLY


@pytest.mark.asyncio
async def test_proof_after_reroll_matches(handlers, contest):
    message = make_message(user_id=OWNER)
    await handlers.draw(message, command("c1"))
    await handlers.reroll(message, command("c1"))

    await handlers.proof(message, command("c1"))

    assert "Проверка: совпадает" in last_answer(message)


@pytest.mark.asyncio
async def test_proof_before_draw(handlers, contest):
    message = make_message()

    await handlers.proof(message, command("c1"))

    assert "пока нет proof seed" in last_answer(message)


@pytest.mark.asyncio
async def test_publish_sets_target(handlers, contest):
    message = make_message(user_id=ADMIN)
    bot = make_bot()

    await handlers.publish(message, command("c1 -100200"), bot)

    assert bot.send_message.await_args.args[0] == -100200
    published = handlers.repository.get("c1")
    assert published.publish_chat_id == -100200
    assert published.publish_message_id == "321"


@pytest.mark.asyncio
async def test_myref_includes_deep_link(handlers, contest):
    message = make_message()

    await handlers.myref(message, command("c1"), make_bot())

    assert f"https://t.me/contest_bot?start=join_c1_{USER}" in last_answer(message)


@pytest.mark.asyncio
async def test_join_callback(handlers, contest):
    callback = make_callback("join:c1")

    await handlers.join_callback(callback, make_bot())

    callback.answer.assert_awaited_once_with("Участие принято. Участников: 3")


@pytest.mark.asyncio
async def test_help_callback_templates(handlers):
    callback = make_callback("help:templates")

    await handlers.help_callback(callback)

    assert callback.message.answer.await_args.args[0].startswith("Шаблоны команд:")


@pytest.mark.asyncio
async def test_adminpanel_private_url_falls_back_to_text(config_factory, dispatcher):
    config = config_factory(admin_panel_url="http://127.0.0.1:8787/adminpanel")
    handlers = ContestHandlers(config, dispatcher, RoleResolver.from_config(config))
    message = make_message(user_id=OWNER)

    await handlers.adminpanel(message)

    assert "Временная ссылка (для проверки): http://127.0.0.1:8787/adminpanel?uid=1" in last_answer(message)


@pytest.mark.asyncio
async def test_cooldown_middleware_blocks_repeat_and_reports():
    roles = RoleResolver(owner_user_id="1", moderator_user_ids={"3"})
    notifier = MagicMock()
    notifier.report_suspicious = AsyncMock()
    middleware = CommandCooldownMiddleware(roles, notifier, CooldownTracker(60))
    handler = AsyncMock()

    first = make_message(user_id=MODERATOR, text="/draw c1")
    second = make_message(user_id=MODERATOR, text="/draw c1")
    await middleware(handler, first, {})
    await middleware(handler, second, {})

    assert handler.await_count == 1
    notifier.report_suspicious.assert_awaited_once_with("draw_cooldown", str(MODERATOR))
    assert second.answer.await_args.args[0].startswith("Слишком часто.")


@pytest.mark.asyncio
async def test_cooldown_middleware_skips_unpermitted_and_plain_commands():
    middleware = CommandCooldownMiddleware(RoleResolver(owner_user_id="1"), cooldowns=CooldownTracker(60))
    handler = AsyncMock()

    for _ in range(3):
        await middleware(handler, make_message(user_id=USER, text="/draw c1"), {})
        await middleware(handler, make_message(user_id=OWNER, text="/contests"), {})

    assert handler.await_count == 6


@pytest.mark.asyncio
async def test_notifier_alerts_admins_after_repeats():
    contest_bot = MagicMock()
    contest_bot.send_throttled = AsyncMock(return_value=object())
    roles = RoleResolver(owner_user_id="1", admin_user_ids={"2", "x"})
    notifier = BotNotifier(contest_bot, roles, SuspiciousActivityTracker(threshold=2))

    assert not await notifier.report_suspicious("draw_cooldown", "9")
    assert await notifier.report_suspicious("draw_cooldown", "9")

    chats = [call.args[0] for call in contest_bot.send_throttled.await_args_list]
    assert chats == [1, 2]


@pytest.mark.asyncio
async def test_publish_results_only_for_published_contests():
    contest_bot = MagicMock()
    contest_bot.send_throttled = AsyncMock()
    notifier = BotNotifier(contest_bot, RoleResolver())

    assert await notifier.publish_results(make_contest()) is None
    await notifier.publish_results(make_contest(publish_chat_id=-5, winners=("u1",), draw_seed="abc"))

    contest_bot.send_throttled.assert_awaited_once_with(
        -5, "Итоги конкурса: Contest c1\nПобедители: u1\nProof seed: abc",
    )


def test_results_message_without_winners():
    assert "Победители: нет победителей" in build_results_message(make_contest())


@pytest.mark.asyncio
async def test_store_reads_run_off_the_event_loop_thread(handlers, contest, monkeypatch):
    repository = handlers.repository
    read_threads = []
    real_get, real_list = repository.get, repository.list

    def tracked_get(contest_id):
        read_threads.append(threading.get_ident())
        return real_get(contest_id)

    def tracked_list():
        read_threads.append(threading.get_ident())
        return real_list()

    monkeypatch.setattr(repository, "get", tracked_get)
    monkeypatch.setattr(repository, "list", tracked_list)

    await handlers.list_contests(make_message())
    await handlers.proof(make_message(), command("c1"))
    await handlers.contest_audit(make_message(user_id=ADMIN), command("c1"))
    await handlers.join(make_message(), command("c1"), make_bot())
    await handlers.help_callback(make_callback("help:contests"))

    assert read_threads
    assert threading.get_ident() not in read_threads


@pytest.mark.asyncio
async def test_edit_completed_contest_is_refused(handlers, contest):
    message = make_message(user_id=OWNER)
    await handlers.draw(message, command("c1"))
    drawn = handlers.repository.get("c1")

    await handlers.edit_contest(message, command("c1 | - | 2027-01-01T00:00:00Z | 1"))

    assert last_answer(message) == EDIT_ACTIVE_ONLY
    assert handlers.repository.get("c1") == drawn


@pytest.mark.asyncio
async def test_contest_bot_stop_closes_session():
    contest_bot = ContestBot("123456:TEST-TOKEN-VALUE")
    contest_bot.bot.session.close = AsyncMock()

    await contest_bot.stop()

    contest_bot.bot.session.close.assert_awaited_once()
