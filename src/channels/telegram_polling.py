from logger import logger
from events import bus, E
from channels.base import ActionType, DeliveryError, DeliveryGateway, ReminderAction, decode_action, encode_action
from channels.command_parser import FORMAT_HELP, CommandParseError, parse_reminder_text
from core.reminder_manager import ReminderManager, ReminderValidationError
from datamodel import Custom, Reminder, Specific, UnknownRecurrence, UserInfo
from utils import now_local, to_display_str
from world.ledger import ExecutionLedger
import datetime
import html
import asyncio

from config.settings import ALLOWED_TELEGRAM_USER_IDS, STATS_WINDOW_DAYS
import storage.user
import telegram
from telegram.constants import ParseMode
from telegram.ext import Application, ApplicationBuilder, CallbackQueryHandler, CommandHandler, MessageHandler, ContextTypes, filters

from functools import wraps

__all__ = [
    "TelegramDeliveryGateway",
    "format_reminder_message",
    "build_action_keyboard",
    "build_application",
    "run_polling",
    "get_status",
]

_polling = False


def requires_auth(func):
    @wraps(func)
    async def decorated(update: telegram.Update, *args, **kwargs):
        user = update.effective_user
        if ALLOWED_TELEGRAM_USER_IDS and (user is None or user.id not in ALLOWED_TELEGRAM_USER_IDS):
            logger.warning(f"用户 {user.id if user else None} 未经允许访问 Bot")
            if update.callback_query is not None:
                await update.callback_query.answer("您无权使用此 Bot")
            elif update.effective_message is not None:
                await update.effective_message.reply_text("您无权使用此 Bot。如有需要, 请联系管理员。")
            return None
        return await func(update, *args, **kwargs)
    return decorated


# ----------------- 投递 ----------------
def format_reminder_message(reminder: Reminder) -> str:
    text = f"🔔 <b>{html.escape(reminder.title)}</b>"
    if reminder.comment:
        text += f"\n\n{html.escape(reminder.comment)}"
    return text


def build_action_keyboard(reminder_id: int, execution_id: str) -> telegram.InlineKeyboardMarkup:
    return telegram.InlineKeyboardMarkup([[
        telegram.InlineKeyboardButton("✅ 已完成", callback_data=encode_action(ActionType.CONFIRM, reminder_id, execution_id)),
        telegram.InlineKeyboardButton("⏭ 跳过", callback_data=encode_action(ActionType.SKIP, reminder_id, execution_id)),
    ]])


class TelegramDeliveryGateway(DeliveryGateway):
    def __init__(
        self,
        bot: telegram.Bot,
        user_lookup=storage.user.get_user_by_id,
        deactivate_user=storage.user.set_user_active,
    ) -> None:
        self.bot = bot
        self.user_lookup = user_lookup
        self.deactivate_user = deactivate_user

    async def send(self, reminder: Reminder, execution_id: str) -> None:
        user: UserInfo | None = await self.user_lookup(reminder.user_id)
        if user is None:
            raise DeliveryError(f"找不到提醒所属用户: user_id={reminder.user_id}")

        text = format_reminder_message(reminder)
        keyboard = build_action_keyboard(reminder.reminder_id, execution_id)
        try:
            if reminder.image_url:
                await self.bot.send_photo(
                    chat_id=user.telegram_user_id,
                    photo=reminder.image_url,
                    caption=text,
                    parse_mode=ParseMode.HTML,
                    reply_markup=keyboard,
                )
            else:
                await self.bot.send_message(
                    chat_id=user.telegram_user_id,
                    text=text,
                    parse_mode=ParseMode.HTML,
                    reply_markup=keyboard,
                )
        except telegram.error.Forbidden as e:
            # 用户屏蔽了 Bot；停用后不再进入到期查询，用户再次发消息时恢复
            logger.warning(f"Telegram 用户 {user.telegram_user_id} 已屏蔽 Bot, 停用 user_id={user.user_id}")
            await self.deactivate_user(user.user_id, False)
            raise DeliveryError(f"Telegram 用户 {user.telegram_user_id} 已屏蔽 Bot: {e}") from e
        except telegram.error.TelegramError as e:
            raise DeliveryError(f"向 Telegram 用户 {user.telegram_user_id} 发送提醒失败: {e}") from e


# ----------------- 入站命令 ----------------
def _manager(context: ContextTypes.DEFAULT_TYPE) -> ReminderManager:
    return context.bot_data["reminder_manager"]


def _ledger(context: ContextTypes.DEFAULT_TYPE) -> ExecutionLedger:
    return context.bot_data["execution_ledger"]


async def _register_user(update: telegram.Update) -> UserInfo:
    tg_user = update.effective_user
    return await storage.user.register_or_update_user(
        telegram_user_id=tg_user.id,
        username=tg_user.username,
        first_name=tg_user.first_name,
        last_name=tg_user.last_name,
        language_code=tg_user.language_code,
    )


def _describe_reminder(reminder: Reminder) -> str:
    recurrence = reminder.recurrence
    kind = recurrence.raw_kind if isinstance(recurrence, UnknownRecurrence) else recurrence.kind.value
    lines = [f"📝 {html.escape(reminder.title)}", f"🔄 类型: {html.escape(kind)}"]
    if reminder.comment:
        lines.append(f"💬 备注: {html.escape(reminder.comment)}")
    if isinstance(reminder.recurrence, Specific):
        lines.append(f"⏰ 时间: {reminder.recurrence.time_of_day}")
    if isinstance(reminder.recurrence, Custom):
        lines.append(f"⏱ 间隔: {reminder.recurrence.interval_hours} 小时")
    if reminder.next_send_at is not None:
        lines.append(f"📅 下次提醒: {to_display_str(reminder.next_send_at)}")
    lines.append("状态: " + ("✅ 启用" if reminder.is_active else "❌ 停用"))
    return "\n".join(lines)


@requires_auth
async def cmd_start(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.info(f"收到 /start 命令来自 Telegram ID: {update.effective_user.id}")
    user = await _register_user(update)
    await update.message.reply_text(
        f"你好, {user.first_name or user.username or '朋友'}! 👋\n\n"
        "我会按你设定的时间提醒你吃药。\n\n"
        "/new - 新建提醒\n"
        "/list - 我的提醒\n"
        "/stats - 最近完成情况\n"
        "/help - 帮助"
    )


@requires_auth
async def cmd_help(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(
        "📚 命令列表:\n\n"
        "/new - 新建提醒\n"
        "/list - 查看全部提醒\n"
        f"/stats - 最近 {STATS_WINDOW_DAYS} 天的完成情况\n"
        "/help - 显示本帮助"
    )


@requires_auth
async def cmd_new(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await _register_user(update)
    await update.message.reply_text(f"新建提醒 📝\n\n{FORMAT_HELP}")


@requires_auth
async def cmd_cancel(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text("已取消创建提醒。")


@requires_auth
async def cmd_list(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = await _register_user(update)
    reminders = await _manager(context).list_by_user(user.user_id)
    if not reminders:
        await update.message.reply_text("你还没有任何提醒，发送 /new 创建第一个吧。")
        return

    blocks = [f"{i}. {_describe_reminder(r)}" for i, r in enumerate(reminders, start=1)]
    await update.message.reply_text("📋 你的提醒:\n\n" + "\n\n".join(blocks), parse_mode=ParseMode.HTML)


@requires_auth
async def cmd_stats(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    user = await _register_user(update)
    to_date = now_local()
    from_date = to_date - datetime.timedelta(days=STATS_WINDOW_DAYS)
    stats = await _ledger(context).statistics_by_user(user.user_id, from_date, to_date)
    await update.message.reply_text(
        f"📊 最近 {STATS_WINDOW_DAYS} 天:\n\n"
        f"待回复: {stats.total_sent}\n"
        f"已完成: {stats.total_confirmed}\n"
        f"已跳过: {stats.total_skipped}\n"
        f"完成率: {stats.confirmation_rate:.1f}%"
    )


@requires_auth
async def process_message(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.message is None or not update.message.text:
        return
    user = await _register_user(update)
    logger.info(f"User ID: {user.user_id} 消息内容: {update.message.text}")

    try:
        parsed = parse_reminder_text(update.message.text)
        reminder = await _manager(context).create(
            user_id=user.user_id,
            title=parsed.title,
            recurrence=parsed.recurrence,
            comment=parsed.comment,
        )
    except (CommandParseError, ReminderValidationError) as e:
        await update.message.reply_text(f"❌ {e}\n\n{FORMAT_HELP}")
        return

    await update.message.reply_text(
        "✅ 提醒已创建!\n\n" + _describe_reminder(reminder),
        parse_mode=ParseMode.HTML,
    )


# ----------------- 用户回执 ----------------
@requires_auth
async def on_callback_query(update: telegram.Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    action = decode_action(query.data, channel_context=query)
    if action is None:
        logger.warning(f"无法解析的回调数据: {query.data!r}")
        await query.answer("无法处理该操作")
        return
    logger.info(f"收到提醒回执: action={action.action.value}, reminder_id={action.reminder_id}, execution_id={action.execution_id}")
    bus.emit(E.REMINDER_ACTION_RECEIVED, action)


@bus.on(E.REMINDER_ACTION_APPLIED)
async def reply_action_result(action: ReminderAction, ok: bool) -> None:
    """回执写入执行记录后回复用户"""
    query = action.channel_context
    if not isinstance(query, telegram.CallbackQuery):
        return
    try:
        if not ok:
            await query.answer("操作失败，请稍后重试")
            return
        if action.action == ActionType.CONFIRM:
            await query.answer("✅ 已确认")
            reply = "谢谢! 已记录为完成。"
        else:
            await query.answer("⏭ 已跳过")
            reply = "已记录为跳过。"
        await query.edit_message_reply_markup(reply_markup=None)
        if query.message is not None:
            await query.message.reply_text(reply)
    except telegram.error.TelegramError as e:
        logger.error(f"回复提醒回执失败: execution_id={action.execution_id}: {e}", exc_info=e)


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """处理 telegram 库中发生的错误"""
    logger.error(f"Telegram 错误: {context.error}", exc_info=context.error)


def bot_error_callback(error: telegram.error.TelegramError) -> None:
    if isinstance(error, telegram.error.NetworkError):
        logger.warning(f"Telegram Bot 网络错误: {error}")
    else:
        logger.error(f"Telegram Bot 发生预期外的错误: {error}", exc_info=error)


def get_status() -> dict[str, object]:
    return {"polling": _polling}


def build_application(token: str, manager: ReminderManager, ledger: ExecutionLedger) -> Application:
    app = ApplicationBuilder().token(token).build()
    app.bot_data["reminder_manager"] = manager
    app.bot_data["execution_ledger"] = ledger

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("new", cmd_new))
    app.add_handler(CommandHandler("cancel", cmd_cancel))
    app.add_handler(CommandHandler("list", cmd_list))
    app.add_handler(CommandHandler("stats", cmd_stats))
    app.add_handler(CallbackQueryHandler(on_callback_query))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, process_message))
    app.add_error_handler(error_handler)
    return app


async def run_polling(app: Application, shutdown_event: asyncio.Event) -> None:
    """app 需已 initialize()；收到 shutdown_event 后停止轮询并关闭"""
    global _polling
    try:
        await app.updater.start_polling(
            poll_interval=0.5,
            timeout=datetime.timedelta(seconds=15),
            bootstrap_retries=-1,
            drop_pending_updates=False,  # 保留下线期间的回执
            error_callback=bot_error_callback,
        )
        await app.start()
        _polling = True
        logger.info("Telegram Bot Polling 已启动")

        await shutdown_event.wait()
    finally:
        _polling = False
        logger.info("关闭 Telegram Bot Polling...")
        if app.updater.running:
            await app.updater.stop()
        if app.running:
            await app.stop()
        await app.shutdown()
