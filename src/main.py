from logger import setup_logging, logger
from config.settings import *
setup_logging(
    log_level=LOG_LEVEL,
    log_file=LOG_FILE,
    console_level=CONSOLE_LOG_LEVEL,
)

import asyncio
import signal
import sys

from events import bus, E
from channels.telegram_polling import TelegramDeliveryGateway, build_application, run_polling
from admin.http_server import main_loop as admin_http_main
from core.reminder_manager import ReminderManager
from world.ledger import ExecutionLedger
from world.reminder import ReminderScheduler
import storage.db_config as db_config

shutdown_event = asyncio.Event()


def signal_handler(sig, frame):
    """处理 SIGINT (Ctrl+C) / SIGTERM 信号"""
    logger.info("收到中断信号,正在依次关闭组件...")
    shutdown_event.set()


async def main():
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if not TELEGRAM_BOT_TOKEN:
        logger.critical("未配置 TELEGRAM_BOT_TOKEN，无法投递提醒")
        sys.exit(1)

    await db_config.init_db(DB_PATH)

    try:
        ledger = ExecutionLedger()
        manager = ReminderManager()
        bus.on(E.REMINDER_ACTION_RECEIVED)(ledger.handle_action)

        app = build_application(TELEGRAM_BOT_TOKEN, manager, ledger)
        await app.initialize()

        scheduler = ReminderScheduler(
            ledger,
            TelegramDeliveryGateway(app.bot),
            tick_seconds=SCHEDULER_TICK_SECONDS,
            delivery_timeout_seconds=DELIVERY_TIMEOUT_SECONDS,
        )

        tasks = [
            run_polling(app, shutdown_event),
            scheduler.start(shutdown_event),
        ]
        if ENABLE_ADMIN_HTTP:
            tasks.append(admin_http_main(shutdown_event, ledger, scheduler))
        else:
            logger.warning("Admin HTTP 服务已禁用")

        await asyncio.gather(*tasks)
    finally:
        logger.info("关闭数据库连接...")
        await db_config.close_db()
        logger.info("Pill Reminder 已关闭")


if __name__ == "__main__":
    logger.info("启动 Pill Reminder...")
    asyncio.run(main())
