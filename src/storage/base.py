"""存储层契约

调度循环、执行记录与提醒管理只依赖这里的协议，默认实现是 storage.reminder / storage.execution
两个模块本身（模块级异步函数即满足协议），测试中可以换成内存实现。
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from datamodel import ExecutionStatistics, ExecutionStatus, Recurrence, Reminder, ReminderExecution

__all__ = ["DueReminderSource", "ReminderStore", "ExecutionStore"]


class DueReminderSource(Protocol):
    async def get_due_reminders(self, now: datetime) -> list[Reminder]: ...


class ReminderStore(DueReminderSource, Protocol):
    async def create_reminder(
        self,
        user_id: int,
        title: str,
        recurrence: Recurrence,
        next_send_at: datetime,
        comment: str | None = None,
        image_url: str | None = None,
    ) -> Reminder: ...

    async def update_reminder(self, reminder: Reminder) -> None: ...

    async def get_reminder_by_id(self, reminder_id: int) -> Reminder | None: ...

    async def get_reminders_by_user_id(self, user_id: int) -> list[Reminder]: ...

    async def get_active_reminders_by_user_id(self, user_id: int) -> list[Reminder]: ...

    async def delete_reminder(self, reminder_id: int) -> bool: ...

    async def update_next_send_at(self, reminder_id: int, next_send_at: datetime) -> None: ...

    async def update_last_sent_at(self, reminder_id: int, last_sent_at: datetime) -> None: ...


class ExecutionStore(Protocol):
    async def create_execution(self, reminder_id: int, user_id: int, sent_at: datetime) -> ReminderExecution: ...

    async def update_execution_status(self, execution_id: str, status: ExecutionStatus, changed_at: datetime) -> bool: ...

    async def get_executions_by_reminder_id(self, reminder_id: int, limit: int) -> list[ReminderExecution]: ...

    async def get_executions_by_user_id(self, user_id: int, limit: int) -> list[ReminderExecution]: ...

    async def get_statistics_by_user_id(self, user_id: int, from_date: datetime, to_date: datetime) -> ExecutionStatistics: ...

    async def get_statistics_by_reminder_id(self, reminder_id: int, from_date: datetime, to_date: datetime) -> ExecutionStatistics: ...
