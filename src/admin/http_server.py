from __future__ import annotations

import asyncio
import time

import uvicorn

from config.settings import ADMIN_HTTP_HOST, ADMIN_HTTP_PORT
from logger import logger
from world.ledger import ExecutionLedger
from world.reminder import ReminderScheduler

from .app import create_app
from .schemas import RuntimeControl


def build_server(control: RuntimeControl) -> uvicorn.Server:
    server = uvicorn.Server(
        uvicorn.Config(
            create_app(control),
            host=ADMIN_HTTP_HOST,
            port=ADMIN_HTTP_PORT,
            log_config=None,  # 交给 logger.setup_logging 的拦截器
            access_log=False,
        )
    )
    # 系统信号统一由 main.py 处理
    server.install_signal_handlers = lambda: None
    return server


async def main_loop(
    shutdown_event: asyncio.Event,
    ledger: ExecutionLedger,
    scheduler: ReminderScheduler | None = None,
) -> None:
    """运行 Admin HTTP 服务直到 shutdown_event 被设置（或 /api/v1/admin/shutdown 被调用）"""
    control = RuntimeControl(shutdown_event=shutdown_event, started_at=time.time(), ledger=ledger, scheduler=scheduler)
    server = build_server(control)

    logger.info(f"Admin HTTP 服务准备启动: http://{ADMIN_HTTP_HOST}:{ADMIN_HTTP_PORT}")
    serve_task = asyncio.create_task(server.serve(), name="admin-http")
    stop_task = asyncio.create_task(shutdown_event.wait(), name="admin-http-stop")
    try:
        await asyncio.wait({serve_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        server.should_exit = True
        await serve_task
    finally:
        stop_task.cancel()
        logger.info("Admin HTTP 服务已关闭")
