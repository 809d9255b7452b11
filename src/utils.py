"""时间工具

所有时间均为服务器本地时间的 naive datetime，不做时区换算。
数据库中统一存为定宽字符串 "YYYY-MM-DD HH:MM:SS.ffffff"，因此 SQL 中的字符串比较即时间先后比较。
"""

from datetime import datetime

__all__ = ["now_local", "to_db_str", "from_db_str", "to_display_str"]

DB_TIME_FORMAT = "%Y-%m-%d %H:%M:%S.%f"
DISPLAY_TIME_FORMAT = "%Y-%m-%d %H:%M"


def now_local() -> datetime:
    """获取当前服务器本地时间"""
    return datetime.now()


def to_db_str(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.strftime(DB_TIME_FORMAT)


def from_db_str(raw: str | None) -> datetime | None:
    if raw is None or raw == "":
        return None
    try:
        return datetime.strptime(raw, DB_TIME_FORMAT)
    except ValueError:
        # 兼容手工写入的 "YYYY-MM-DD HH:MM[:SS]" 等格式
        return datetime.fromisoformat(raw)


def to_display_str(dt: datetime | None) -> str:
    """给用户看的时间, 格式: 'YYYY-MM-DD HH:MM'"""
    if dt is None:
        return "-"
    return dt.strftime(DISPLAY_TIME_FORMAT)
