import storage.db_config as db_config
from datamodel import Recurrence, Reminder, recurrence_from_columns, recurrence_to_columns
from logger import logger
from utils import from_db_str, now_local, to_db_str
from datetime import datetime

__all__ = [
    "create_reminder",
    "update_reminder",
    "get_reminder_by_id",
    "get_reminders_by_user_id",
    "get_active_reminders_by_user_id",
    "delete_reminder",
    "get_due_reminders",
    "update_next_send_at",
    "update_last_sent_at",
]

_REMINDER_COLUMNS = (
    "r.reminder_id, r.user_id, r.title, r.comment, r.image_url, r.kind, r.interval_hours, r.time_of_day, "
    "r.is_active, r.last_sent_at, r.next_send_at, r.created_at, r.updated_at"
)


def _row_to_reminder(row) -> Reminder:
    return Reminder(
        reminder_id=row[0],
        user_id=row[1],
        title=row[2],
        comment=row[3],
        image_url=row[4],
        recurrence=recurrence_from_columns(row[5], row[6], row[7]),
        is_active=bool(row[8]),
        last_sent_at=from_db_str(row[9]),
        next_send_at=from_db_str(row[10]),
        created_at=from_db_str(row[11]),
        updated_at=from_db_str(row[12]),
    )


async def _fetch_reminders(sql: str, params: tuple = ()) -> list[Reminder]:
    conn = db_config.ensure_conn()
    async with conn.execute(sql, params) as cursor:
        rows = await cursor.fetchall()
        return [_row_to_reminder(row) for row in rows]


async def create_reminder(
    user_id: int,
    title: str,
    recurrence: Recurrence,
    next_send_at: datetime,
    comment: str | None = None,
    image_url: str | None = None,
) -> Reminder:
    """创建提醒，next_send_at 由调用方预先计算好"""
    conn = db_config.ensure_conn()
    kind, interval_hours, time_of_day = recurrence_to_columns(recurrence)
    now_str = to_db_str(now_local())
    async with conn.execute(
        "INSERT INTO reminders (user_id, title, comment, image_url, kind, interval_hours, time_of_day, "
        "is_active, last_sent_at, next_send_at, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, 1, NULL, ?, ?, ?)",
        (user_id, title, comment, image_url, kind, interval_hours, time_of_day,
         to_db_str(next_send_at), now_str, now_str),
    ) as cursor:
        reminder_id = cursor.lastrowid
    await conn.commit()
    logger.trace(f"创建提醒: user_id={user_id}, title={title}, kind={kind}, reminder_id={reminder_id}, next_send_at={next_send_at}")
    reminder = await get_reminder_by_id(reminder_id)
    if reminder is None:
        raise RuntimeError(f"提醒写入后读取失败: reminder_id={reminder_id}")
    return reminder


async def update_reminder(reminder: Reminder) -> None:
    """整行覆盖写入提醒的可变字段，并发写入时以最后一次为准"""
    conn = db_config.ensure_conn()
    kind, interval_hours, time_of_day = recurrence_to_columns(reminder.recurrence)
    reminder.updated_at = now_local()
    await conn.execute(
        "UPDATE reminders SET title = ?, comment = ?, image_url = ?, kind = ?, interval_hours = ?, time_of_day = ?, "
        "is_active = ?, last_sent_at = ?, next_send_at = ?, updated_at = ? WHERE reminder_id = ?",
        (reminder.title, reminder.comment, reminder.image_url, kind, interval_hours, time_of_day,
         1 if reminder.is_active else 0, to_db_str(reminder.last_sent_at), to_db_str(reminder.next_send_at),
         to_db_str(reminder.updated_at), reminder.reminder_id),
    )
    await conn.commit()
    logger.trace(f"更新提醒: reminder_id={reminder.reminder_id}, kind={kind}, next_send_at={reminder.next_send_at}, is_active={reminder.is_active}")


async def get_reminder_by_id(reminder_id: int) -> Reminder | None:
    reminders = await _fetch_reminders(
        f"SELECT {_REMINDER_COLUMNS} FROM reminders r WHERE r.reminder_id = ?",
        (reminder_id,),
    )
    return reminders[0] if reminders else None


async def get_reminders_by_user_id(user_id: int) -> list[Reminder]:
    return await _fetch_reminders(
        f"SELECT {_REMINDER_COLUMNS} FROM reminders r WHERE r.user_id = ? ORDER BY r.created_at DESC, r.reminder_id DESC",
        (user_id,),
    )


async def get_active_reminders_by_user_id(user_id: int) -> list[Reminder]:
    return await _fetch_reminders(
        f"SELECT {_REMINDER_COLUMNS} FROM reminders r WHERE r.user_id = ? AND r.is_active = 1 "
        "ORDER BY r.created_at DESC, r.reminder_id DESC",
        (user_id,),
    )


async def delete_reminder(reminder_id: int) -> bool:
    """删除提醒（执行记录保留），返回是否确实删除了一行"""
    conn = db_config.ensure_conn()
    async with conn.execute("DELETE FROM reminders WHERE reminder_id = ?", (reminder_id,)) as cursor:
        deleted = cursor.rowcount > 0
    await conn.commit()
    logger.trace(f"删除提醒: reminder_id={reminder_id}, deleted={deleted}")
    return deleted


async def get_due_reminders(now: datetime) -> list[Reminder]:
    """获取到期的提醒

    条件：提醒启用、所属用户启用、next_send_at 为空或不晚于 now。
    按 next_send_at 升序，空值排在最后。
    """
    return await _fetch_reminders(
        f"SELECT {_REMINDER_COLUMNS} FROM reminders r "
        "INNER JOIN users u ON r.user_id = u.user_id "
        "WHERE r.is_active = 1 AND u.is_active = 1 "
        "AND (r.next_send_at IS NULL OR r.next_send_at <= ?) "
        "ORDER BY r.next_send_at IS NULL, r.next_send_at ASC, r.reminder_id ASC",
        (to_db_str(now),),
    )


async def update_next_send_at(reminder_id: int, next_send_at: datetime) -> None:
    conn = db_config.ensure_conn()
    await conn.execute(
        "UPDATE reminders SET next_send_at = ?, updated_at = ? WHERE reminder_id = ?",
        (to_db_str(next_send_at), to_db_str(now_local()), reminder_id),
    )
    await conn.commit()
    logger.trace(f"更新下次发送时间: reminder_id={reminder_id}, next_send_at={next_send_at}")


async def update_last_sent_at(reminder_id: int, last_sent_at: datetime) -> None:
    conn = db_config.ensure_conn()
    await conn.execute(
        "UPDATE reminders SET last_sent_at = ?, updated_at = ? WHERE reminder_id = ?",
        (to_db_str(last_sent_at), to_db_str(now_local()), reminder_id),
    )
    await conn.commit()
    logger.trace(f"更新上次发送时间: reminder_id={reminder_id}, last_sent_at={last_sent_at}")
