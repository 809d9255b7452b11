"""提醒执行记录存储

每次触发一行，状态 sent -> confirmed/skipped。execution_id 使用 ULID，按字典序即按创建先后排序。
"""

import storage.db_config as db_config
from datamodel import ExecutionStatistics, ExecutionStatus, ReminderExecution
from logger import logger
from ulid import ULID
from utils import from_db_str, now_local, to_db_str
from datetime import datetime

__all__ = [
    "create_execution",
    "update_execution_status",
    "get_execution_by_id",
    "get_executions_by_reminder_id",
    "get_executions_by_user_id",
    "get_statistics_by_user_id",
    "get_statistics_by_reminder_id",
]

_EXECUTION_COLUMNS = "execution_id, reminder_id, user_id, status, sent_at, confirmed_at, created_at"

_STATISTICS_SELECT = (
    "SELECT "
    "COALESCE(SUM(CASE WHEN status = 'sent' THEN 1 ELSE 0 END), 0), "
    "COALESCE(SUM(CASE WHEN status = 'confirmed' THEN 1 ELSE 0 END), 0), "
    "COALESCE(SUM(CASE WHEN status = 'skipped' THEN 1 ELSE 0 END), 0) "
    "FROM reminder_executions "
)


def _row_to_execution(row) -> ReminderExecution:
    return ReminderExecution(
        execution_id=row[0],
        reminder_id=row[1],
        user_id=row[2],
        status=ExecutionStatus(row[3]),
        sent_at=from_db_str(row[4]),
        confirmed_at=from_db_str(row[5]),
        created_at=from_db_str(row[6]),
    )


async def create_execution(reminder_id: int, user_id: int, sent_at: datetime) -> ReminderExecution:
    """新建一条 sent 状态的执行记录，每次调用都分配新的 ID"""
    conn = db_config.ensure_conn()
    execution = ReminderExecution(
        execution_id=str(ULID()),
        reminder_id=reminder_id,
        user_id=user_id,
        status=ExecutionStatus.SENT,
        sent_at=sent_at,
        confirmed_at=None,
        created_at=now_local(),
    )
    await conn.execute(
        f"INSERT INTO reminder_executions ({_EXECUTION_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
        (execution.execution_id, reminder_id, user_id, execution.status.value,
         to_db_str(sent_at), None, to_db_str(execution.created_at)),
    )
    await conn.commit()
    logger.trace(f"创建执行记录: execution_id={execution.execution_id}, reminder_id={reminder_id}, user_id={user_id}")
    return execution


async def update_execution_status(execution_id: str, status: ExecutionStatus, changed_at: datetime) -> bool:
    """覆盖执行记录状态；confirmed_at 仅在 confirmed 时有值。返回是否找到该记录"""
    conn = db_config.ensure_conn()
    confirmed_at = to_db_str(changed_at) if status == ExecutionStatus.CONFIRMED else None
    async with conn.execute(
        "UPDATE reminder_executions SET status = ?, confirmed_at = ? WHERE execution_id = ?",
        (status.value, confirmed_at, execution_id),
    ) as cursor:
        found = cursor.rowcount > 0
    await conn.commit()
    logger.trace(f"更新执行记录状态: execution_id={execution_id}, status={status.value}, found={found}")
    return found


async def get_execution_by_id(execution_id: str) -> ReminderExecution | None:
    conn = db_config.ensure_conn()
    async with conn.execute(
        f"SELECT {_EXECUTION_COLUMNS} FROM reminder_executions WHERE execution_id = ?",
        (execution_id,),
    ) as cursor:
        row = await cursor.fetchone()
        return _row_to_execution(row) if row else None


async def get_executions_by_reminder_id(reminder_id: int, limit: int) -> list[ReminderExecution]:
    conn = db_config.ensure_conn()
    async with conn.execute(
        f"SELECT {_EXECUTION_COLUMNS} FROM reminder_executions WHERE reminder_id = ? "
        "ORDER BY sent_at DESC, execution_id DESC LIMIT ?",
        (reminder_id, limit),
    ) as cursor:
        return [_row_to_execution(row) async for row in cursor]


async def get_executions_by_user_id(user_id: int, limit: int) -> list[ReminderExecution]:
    conn = db_config.ensure_conn()
    async with conn.execute(
        f"SELECT {_EXECUTION_COLUMNS} FROM reminder_executions WHERE user_id = ? "
        "ORDER BY sent_at DESC, execution_id DESC LIMIT ?",
        (user_id, limit),
    ) as cursor:
        return [_row_to_execution(row) async for row in cursor]


async def _statistics(column: str, value: int, from_date: datetime, to_date: datetime) -> ExecutionStatistics:
    conn = db_config.ensure_conn()
    async with conn.execute(
        _STATISTICS_SELECT + f"WHERE {column} = ? AND sent_at >= ? AND sent_at <= ?",
        (value, to_db_str(from_date), to_db_str(to_date)),
    ) as cursor:
        row = await cursor.fetchone()
    return ExecutionStatistics.from_counts(sent=row[0], confirmed=row[1], skipped=row[2])


async def get_statistics_by_user_id(user_id: int, from_date: datetime, to_date: datetime) -> ExecutionStatistics:
    """统计 [from_date, to_date] 内（按 sent_at，闭区间）各状态的执行次数"""
    return await _statistics("user_id", user_id, from_date, to_date)


async def get_statistics_by_reminder_id(reminder_id: int, from_date: datetime, to_date: datetime) -> ExecutionStatistics:
    return await _statistics("reminder_id", reminder_id, from_date, to_date)
