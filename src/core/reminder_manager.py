"""提醒的创建/修改/查询

校验在这里同步完成，非法参数永远不会进入调度循环。创建时立即计算 next_send_at，
下一个 tick 即可找到它；修改了重复规则（换类型或改当前类型的参数）时也立即重算。
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable

from datamodel import Custom, Daily, Recurrence, Reminder, Specific, UnknownRecurrence, Weekly
from logger import logger
import storage.reminder as reminder_storage
from storage.base import ReminderStore
from world.recurrence import compute_next, parse_time_of_day

__all__ = ["ReminderManager", "ReminderValidationError", "ReminderNotFoundError", "validate_recurrence"]

_UNSET = object()


class ReminderValidationError(ValueError):
    pass


class ReminderNotFoundError(LookupError):
    pass


def _validate_title(title: str | None) -> str:
    cleaned = (title or "").strip()
    if cleaned == "":
        raise ReminderValidationError("标题不能为空")
    return cleaned


def validate_recurrence(recurrence: Recurrence) -> Recurrence:
    """校验重复规则，返回规范化后的规则（time_of_day 补零为 HH:MM）"""
    if isinstance(recurrence, (Daily, Weekly)):
        return recurrence
    if isinstance(recurrence, Custom):
        if isinstance(recurrence.interval_hours, bool) or not isinstance(recurrence.interval_hours, int):
            raise ReminderValidationError("custom 类型的 interval_hours 必须为整数")
        if recurrence.interval_hours <= 0:
            raise ReminderValidationError("custom 类型的 interval_hours 必须大于 0")
        return recurrence
    if isinstance(recurrence, Specific):
        parsed = parse_time_of_day(recurrence.time_of_day)
        if parsed is None:
            raise ReminderValidationError("specific 类型的 time_of_day 格式错误，应为 HH:MM")
        return Specific(time_of_day=f"{parsed[0]:02d}:{parsed[1]:02d}")
    if isinstance(recurrence, UnknownRecurrence):
        raise ReminderValidationError(f"未知的提醒类型: {recurrence.raw_kind}")
    raise ReminderValidationError(f"未知的提醒类型: {type(recurrence).__name__}")


class ReminderManager:
    def __init__(
        self,
        store: ReminderStore = reminder_storage,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.clock = clock

    async def create(
        self,
        user_id: int,
        title: str,
        recurrence: Recurrence,
        comment: str | None = None,
        image_url: str | None = None,
    ) -> Reminder:
        title = _validate_title(title)
        recurrence = validate_recurrence(recurrence)
        next_send_at = compute_next(recurrence, self.clock())

        reminder = await self.store.create_reminder(
            user_id=user_id,
            title=title,
            recurrence=recurrence,
            next_send_at=next_send_at,
            comment=comment or None,
            image_url=image_url or None,
        )
        logger.info(f"创建提醒: reminder_id={reminder.reminder_id}, user_id={user_id}, recurrence={recurrence}, next_send_at={next_send_at}")
        return reminder

    async def get(self, reminder_id: int) -> Reminder:
        reminder = await self.store.get_reminder_by_id(reminder_id)
        if reminder is None:
            raise ReminderNotFoundError(f"提醒不存在: {reminder_id}")
        return reminder

    async def list_by_user(self, user_id: int) -> list[Reminder]:
        return await self.store.get_reminders_by_user_id(user_id)

    async def list_active_by_user(self, user_id: int) -> list[Reminder]:
        return await self.store.get_active_reminders_by_user_id(user_id)

    async def update(
        self,
        reminder_id: int,
        *,
        title: str | None = None,
        comment=_UNSET,
        image_url=_UNSET,
        recurrence: Recurrence | None = None,
        is_active: bool | None = None,
    ) -> Reminder:
        """只修改传入的字段；comment / image_url 传 None 表示清空"""
        reminder = await self.get(reminder_id)

        if title is not None:
            reminder.title = _validate_title(title)
        if comment is not _UNSET:
            reminder.comment = comment or None
        if image_url is not _UNSET:
            reminder.image_url = image_url or None
        if recurrence is not None:
            recurrence = validate_recurrence(recurrence)
            if recurrence != reminder.recurrence:
                reminder.recurrence = recurrence
                reminder.next_send_at = compute_next(recurrence, self.clock())
                logger.info(f"提醒重复规则已变更, 重新计算: reminder_id={reminder_id}, recurrence={recurrence}, next_send_at={reminder.next_send_at}")
        if is_active is not None:
            reminder.is_active = is_active

        await self.store.update_reminder(reminder)
        return reminder

    async def delete(self, reminder_id: int) -> None:
        if not await self.store.delete_reminder(reminder_id):
            raise ReminderNotFoundError(f"提醒不存在: {reminder_id}")
        logger.info(f"删除提醒: reminder_id={reminder_id}")
