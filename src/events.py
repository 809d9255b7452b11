"""事件总线模块，定义了事件总线类 Bus 及事件名集合 E

用户对提醒的确认/跳过通过总线回流到执行记录：每个入站事件由 AsyncIOEventEmitter 单独调度为一个任务，
与调度循环的 tick 互不阻塞。
"""

from __future__ import annotations
from pyee.asyncio import AsyncIOEventEmitter
from typing import Awaitable, Callable

from logger import logger

AsyncHandler = Callable[..., Awaitable[None]]


# 事件名集中定义
class E:
    REMINDER_ACTION_RECEIVED = "reminder.action_received"  # 用户点击了 确认/跳过
    REMINDER_ACTION_APPLIED = "reminder.action_applied"  # 确认/跳过已写入执行记录（或失败）


class Bus(AsyncIOEventEmitter):
    def __init__(self) -> None:
        super().__init__()
        super().on("error", self._log_handler_error)

    @staticmethod
    def _log_handler_error(error: Exception) -> None:
        logger.error(f"事件处理器异常: {error}", exc_info=error)

    def on(self, event: str) -> Callable[[AsyncHandler], AsyncHandler]:
        """注册事件处理器装饰器"""
        def decorator(handler: AsyncHandler) -> AsyncHandler:
            logger.debug(f"注册事件处理器: {event} -> {getattr(handler, '__qualname__', handler)}")
            super(Bus, self).on(event, handler)
            return handler

        return decorator


bus = Bus()

__all__ = ["bus", "Bus", "E"]
