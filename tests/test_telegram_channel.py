from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import telegram

import channels.telegram_polling as telegram_polling
import storage.user as user_storage
from channels.base import ActionType, DeliveryError, ReminderAction, decode_action
from channels.telegram_polling import TelegramDeliveryGateway, format_reminder_message, reply_action_result
from core.reminder_manager import ReminderManager
from datamodel import Daily, Reminder, Specific, UserInfo
from world.ledger import ExecutionLedger

USER = UserInfo(user_id=1, telegram_user_id=777)


async def _lookup(user_id):
    return USER if user_id == USER.user_id else None


def _reminder(**kwargs):
    kwargs.setdefault("recurrence", Daily())
    return Reminder(reminder_id=5, user_id=1, title="降压药 <10mg>", **kwargs)


async def test_send_message_with_action_buttons():
    bot = AsyncMock()
    gateway = TelegramDeliveryGateway(bot, user_lookup=_lookup)

    await gateway.send(_reminder(comment="饭后"), "EXEC1")

    bot.send_photo.assert_not_called()
    kwargs = bot.send_message.await_args.kwargs
    assert kwargs["chat_id"] == 777
    assert "&lt;10mg&gt;" in kwargs["text"]
    assert "饭后" in kwargs["text"]
    buttons = kwargs["reply_markup"].inline_keyboard[0]
    actions = [decode_action(b.callback_data) for b in buttons]
    assert [a.action for a in actions] == [ActionType.CONFIRM, ActionType.SKIP]
    assert {(a.reminder_id, a.execution_id) for a in actions} == {(5, "EXEC1")}


async def test_image_reminder_sent_as_photo():
    bot = AsyncMock()
    gateway = TelegramDeliveryGateway(bot, user_lookup=_lookup)

    await gateway.send(_reminder(image_url="https://example.com/pill.png"), "EXEC1")

    bot.send_message.assert_not_called()
    kwargs = bot.send_photo.await_args.kwargs
    assert kwargs["photo"] == "https://example.com/pill.png"
    assert kwargs["caption"] == format_reminder_message(_reminder())


async def test_blocked_bot_deactivates_user():
    bot = AsyncMock()
    bot.send_message.side_effect = telegram.error.Forbidden("Forbidden: bot was blocked by the user")
    deactivate = AsyncMock()
    gateway = TelegramDeliveryGateway(bot, user_lookup=_lookup, deactivate_user=deactivate)

    with pytest.raises(DeliveryError):
        await gateway.send(_reminder(), "EXEC1")

    deactivate.assert_awaited_once_with(USER.user_id, False)


async def test_network_error_keeps_user_active():
    bot = AsyncMock()
    bot.send_message.side_effect = telegram.error.NetworkError("boom")
    deactivate = AsyncMock()
    gateway = TelegramDeliveryGateway(bot, user_lookup=_lookup, deactivate_user=deactivate)

    with pytest.raises(DeliveryError):
        await gateway.send(_reminder(), "EXEC1")

    deactivate.assert_not_awaited()


async def test_missing_user_is_delivery_error():
    gateway = TelegramDeliveryGateway(AsyncMock(), user_lookup=_lookup)
    with pytest.raises(DeliveryError):
        await gateway.send(Reminder(reminder_id=1, user_id=99, title="x", recurrence=Daily()), "E")


def _update(text=None, telegram_user_id=777):
    message = SimpleNamespace(text=text, reply_text=AsyncMock())
    tg_user = SimpleNamespace(id=telegram_user_id, username="alice", first_name="Alice", last_name=None, language_code="zh")
    return SimpleNamespace(effective_user=tg_user, message=message, effective_message=message, callback_query=None)


def _context(clock):
    return SimpleNamespace(bot_data={
        "reminder_manager": ReminderManager(clock=clock),
        "execution_ledger": ExecutionLedger(clock=clock),
    })


async def test_text_message_creates_reminder(db, clock, monkeypatch):
    monkeypatch.setattr(telegram_polling, "ALLOWED_TELEGRAM_USER_IDS", [])
    context = _context(clock)
    update = _update("降压药|specific|饭后|9:30")

    await telegram_polling.process_message(update, context)

    reply = update.message.reply_text.await_args.args[0]
    assert reply.startswith("✅")
    user = await user_storage.get_user_by_telegram_id(777)
    [reminder] = await context.bot_data["reminder_manager"].list_by_user(user.user_id)
    assert reminder.recurrence == Specific("09:30")
    assert reminder.comment == "饭后"


async def test_bad_text_replies_with_format_help(db, clock, monkeypatch):
    monkeypatch.setattr(telegram_polling, "ALLOWED_TELEGRAM_USER_IDS", [])
    update = _update("降压药|custom||0")

    await telegram_polling.process_message(update, _context(clock))

    reply = update.message.reply_text.await_args.args[0]
    assert reply.startswith("❌")
    assert "标题|类型" in reply


async def test_unlisted_user_is_rejected(db, clock, monkeypatch):
    monkeypatch.setattr(telegram_polling, "ALLOWED_TELEGRAM_USER_IDS", [1])
    update = _update("降压药|daily")

    await telegram_polling.process_message(update, _context(clock))

    assert "无权" in update.message.reply_text.await_args.args[0]
    assert await user_storage.get_user_by_telegram_id(777) is None


async def test_action_result_answers_callback_query():
    query = AsyncMock(spec=telegram.CallbackQuery)
    query.message = AsyncMock()
    action = ReminderAction(ActionType.CONFIRM, 5, "EXEC1", channel_context=query)

    await reply_action_result(action, True)

    query.answer.assert_awaited_once()
    query.edit_message_reply_markup.assert_awaited_once_with(reply_markup=None)
    query.message.reply_text.assert_awaited_once()


async def test_failed_action_only_answers():
    query = AsyncMock(spec=telegram.CallbackQuery)
    action = ReminderAction(ActionType.SKIP, 5, "EXEC1", channel_context=query)

    await reply_action_result(action, False)

    query.answer.assert_awaited_once()
    query.edit_message_reply_markup.assert_not_called()


async def test_action_without_telegram_context_is_ignored():
    await reply_action_result(ReminderAction(ActionType.SKIP, 5, "EXEC1", channel_context=MagicMock()), True)
