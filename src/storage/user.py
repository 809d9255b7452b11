import storage.db_config as db_config
from datamodel import UserInfo
from logger import logger
from utils import from_db_str, now_local, to_db_str

__all__ = [
    "register_or_update_user",
    "get_user_by_telegram_id",
    "get_user_by_id",
    "set_user_active",
]

_USER_COLUMNS = (
    "user_id, telegram_user_id, username, first_name, last_name, language_code, "
    "is_active, created_at, updated_at"
)


def _row_to_user(row) -> UserInfo:
    return UserInfo(
        user_id=row[0],
        telegram_user_id=row[1],
        username=row[2],
        first_name=row[3],
        last_name=row[4],
        language_code=row[5],
        is_active=bool(row[6]),
        created_at=from_db_str(row[7]),
        updated_at=from_db_str(row[8]),
    )


async def register_or_update_user(
    telegram_user_id: int,
    username: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    language_code: str | None = None,
) -> UserInfo:
    """用户首次发消息时注册，之后每次刷新资料并重新启用（停用的用户发消息即恢复提醒）"""
    conn = db_config.ensure_conn()
    now_str = to_db_str(now_local())
    existing = await get_user_by_telegram_id(telegram_user_id)
    if existing is None:
        logger.info(f"创建新用户, Telegram ID: {telegram_user_id}")
        await conn.execute(
            "INSERT INTO users (telegram_user_id, username, first_name, last_name, language_code, is_active, created_at, updated_at) "
            "VALUES (?, ?, ?, ?, ?, 1, ?, ?)",
            (telegram_user_id, username, first_name, last_name, language_code, now_str, now_str),
        )
    else:
        await conn.execute(
            "UPDATE users SET username = ?, first_name = ?, last_name = ?, language_code = ?, is_active = 1, updated_at = ? "
            "WHERE telegram_user_id = ?",
            (username, first_name, last_name, language_code, now_str, telegram_user_id),
        )
    await conn.commit()
    user = await get_user_by_telegram_id(telegram_user_id)
    if user is None:
        raise RuntimeError(f"用户写入后读取失败: telegram_user_id={telegram_user_id}")
    return user


async def get_user_by_telegram_id(telegram_user_id: int) -> UserInfo | None:
    """通过 Telegram 用户 ID 获取用户信息"""
    conn = db_config.ensure_conn()
    async with conn.execute(
        f"SELECT {_USER_COLUMNS} FROM users WHERE telegram_user_id = ?",
        (telegram_user_id,),
    ) as cursor:
        row = await cursor.fetchone()
        return _row_to_user(row) if row else None


async def get_user_by_id(user_id: int) -> UserInfo | None:
    """通过用户 ID 获取用户信息"""
    conn = db_config.ensure_conn()
    async with conn.execute(
        f"SELECT {_USER_COLUMNS} FROM users WHERE user_id = ?",
        (user_id,),
    ) as cursor:
        row = await cursor.fetchone()
        return _row_to_user(row) if row else None


async def set_user_active(user_id: int, is_active: bool) -> None:
    """停用的用户不会再收到任何提醒"""
    conn = db_config.ensure_conn()
    await conn.execute(
        "UPDATE users SET is_active = ?, updated_at = ? WHERE user_id = ?",
        (1 if is_active else 0, to_db_str(now_local()), user_id),
    )
    await conn.commit()
    logger.info(f"用户状态变更: user_id={user_id}, is_active={is_active}")
