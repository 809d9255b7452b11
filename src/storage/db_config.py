import aiosqlite
import os
from pathlib import Path

from logger import logger


conn: aiosqlite.Connection | None = None

_SQL_DIR = Path(__file__).with_name("sql")
_SCHEMA_VERSION = 1


async def init_db(db_path: str) -> None:
    """打开数据库连接并执行建表/升级，db_path 为 ":memory:" 时使用内存库"""
    global conn
    if db_path != ":memory:":
        db_dir = os.path.dirname(db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir, exist_ok=True)
    conn = await aiosqlite.connect(db_path)

    async with conn.execute("PRAGMA user_version") as cursor:
        row = await cursor.fetchone()
        user_version = row[0]

    if user_version == 0:
        init_sql = (_SQL_DIR / "db_init_v1.sql").read_text(encoding="utf-8")
        await conn.executescript(init_sql)
        await conn.execute(f"PRAGMA user_version = {_SCHEMA_VERSION}")
        logger.info(f"数据库已初始化: {db_path}, schema v{_SCHEMA_VERSION}")

    # 数据库升级逻辑可以在这里继续添加
    await conn.commit()


async def close_db() -> None:
    global conn
    if conn is not None:
        await conn.close()
        conn = None


def ensure_conn() -> aiosqlite.Connection:
    if conn is None:
        raise RuntimeError("数据库未初始化，请先调用 init_db()")
    return conn


async def table_counts() -> dict[str, int]:
    """各业务表的行数，供 Admin API 概览使用"""
    db = ensure_conn()
    async with db.execute(
        "SELECT "
        "(SELECT COUNT(*) FROM users), "
        "(SELECT COUNT(*) FROM reminders), "
        "(SELECT COUNT(*) FROM reminders WHERE is_active = 1), "
        "(SELECT COUNT(*) FROM reminder_executions)"
    ) as cursor:
        row = await cursor.fetchone()
    return {"users": row[0], "reminders": row[1], "active_reminders": row[2], "executions": row[3]}


__all__ = ["conn", "init_db", "close_db", "ensure_conn", "table_counts"]
