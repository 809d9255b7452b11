"""提醒执行记录（Ledger）

- record_sent: 调度循环每触发一次提醒就写一行 sent 记录，不校验提醒/用户是否存在；
- record_confirmed / record_skipped: 用户回执，直接覆盖状态（不做幂等保护，允许用户改主意）；
- statistics_*: 统计时间窗内各状态的次数与完成率。

存储层异常一律向调用方抛出。
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from channels.base import ActionType, ReminderAction
from datamodel import ExecutionStatistics, ExecutionStatus, ReminderExecution
from events import E, bus
from logger import logger
from metrics import runtime_metrics
import storage.execution as execution_storage
from storage.base import ExecutionStore

__all__ = ["ExecutionLedger", "ExecutionNotFoundError", "DEFAULT_HISTORY_LIMIT"]

DEFAULT_HISTORY_LIMIT = 50


class ExecutionNotFoundError(LookupError):
    pass


class ExecutionLedger:
    def __init__(
        self,
        store: ExecutionStore = execution_storage,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.clock = clock

    async def record_sent(self, reminder_id: int, user_id: int) -> ReminderExecution:
        return await self.store.create_execution(reminder_id, user_id, self.clock())

    async def record_confirmed(self, execution_id: str) -> None:
        await self._set_status(execution_id, ExecutionStatus.CONFIRMED)

    async def record_skipped(self, execution_id: str) -> None:
        await self._set_status(execution_id, ExecutionStatus.SKIPPED)

    async def _set_status(self, execution_id: str, status: ExecutionStatus) -> None:
        found = await self.store.update_execution_status(execution_id, status, self.clock())
        if not found:
            raise ExecutionNotFoundError(f"执行记录不存在: {execution_id}")
        logger.info(f"执行记录状态已更新: execution_id={execution_id}, status={status.value}")

    async def history_by_reminder(self, reminder_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> list[ReminderExecution]:
        if limit <= 0:
            limit = DEFAULT_HISTORY_LIMIT
        return await self.store.get_executions_by_reminder_id(reminder_id, limit)

    async def history_by_user(self, user_id: int, limit: int = DEFAULT_HISTORY_LIMIT) -> list[ReminderExecution]:
        if limit <= 0:
            limit = DEFAULT_HISTORY_LIMIT
        return await self.store.get_executions_by_user_id(user_id, limit)

    async def statistics_by_user(self, user_id: int, from_date: datetime, to_date: datetime) -> ExecutionStatistics:
        return await self.store.get_statistics_by_user_id(user_id, from_date, to_date)

    async def statistics_by_reminder(self, reminder_id: int, from_date: datetime, to_date: datetime) -> ExecutionStatistics:
        return await self.store.get_statistics_by_reminder_id(reminder_id, from_date, to_date)

    async def handle_action(self, action: ReminderAction) -> bool:
        """处理来自投递通道的 确认/跳过 回执，结果通过 E.REMINDER_ACTION_APPLIED 通知通道"""
        ok = True
        try:
            if action.action == ActionType.CONFIRM:
                await self.record_confirmed(action.execution_id)
            else:
                await self.record_skipped(action.execution_id)
        except Exception as e:
            ok = False
            logger.error(
                f"处理提醒回执失败: action={action.action.value}, reminder_id={action.reminder_id}, "
                f"execution_id={action.execution_id}: {e}",
                exc_info=e,
            )
        runtime_metrics.record_action(action.action.value, ok)
        bus.emit(E.REMINDER_ACTION_APPLIED, action, ok)
        return ok
