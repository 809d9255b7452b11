"""下次提醒时间计算

纯函数，不做任何 I/O。任何无法解读的输入都回退为 now + 24 小时，绝不抛异常，
以免单条脏数据拖垮整个调度 tick。
"""

import re
from datetime import datetime, timedelta

from datamodel import Custom, Daily, Recurrence, Reminder, Specific, UnknownRecurrence, Weekly
from logger import logger

__all__ = ["compute_next", "parse_time_of_day", "FALLBACK_DELAY"]

FALLBACK_DELAY = timedelta(hours=24)

# 小时 1~2 位，分钟固定 2 位
_TIME_OF_DAY_RE = re.compile(r"^\d{1,2}:\d{2}$")


def parse_time_of_day(value: str | None) -> tuple[int, int] | None:
    """解析 "HH:MM"，失败返回 None"""
    if not value:
        return None
    value = value.strip()
    if not _TIME_OF_DAY_RE.match(value):
        return None
    try:
        parsed = datetime.strptime(value, "%H:%M")
    except ValueError:
        return None
    return parsed.hour, parsed.minute


def _next_specific(time_of_day: str, now: datetime) -> datetime:
    parsed = parse_time_of_day(time_of_day)
    if parsed is None:
        logger.warning(f"无法解析 time_of_day={time_of_day!r}, 回退为 24 小时后")
        return now + FALLBACK_DELAY
    hour, minute = parsed
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:  # 恰好等于 now 也排到明天，同一时刻不会触发两次
        candidate += timedelta(hours=24)
    return candidate


def compute_next(target: Reminder | Recurrence, now: datetime) -> datetime:
    """根据重复规则计算 now 之后的下次提醒时间"""
    recurrence = target.recurrence if isinstance(target, Reminder) else target

    if isinstance(recurrence, Daily):
        return (now + timedelta(hours=24)).replace(second=0, microsecond=0)

    if isinstance(recurrence, Weekly):
        return now + timedelta(days=7)

    if isinstance(recurrence, Custom):
        if recurrence.interval_hours is None or recurrence.interval_hours <= 0:
            logger.warning(f"custom 提醒的 interval_hours 非法: {recurrence.interval_hours}, 回退为 24 小时后")
            return now + FALLBACK_DELAY
        return now + timedelta(hours=recurrence.interval_hours)

    if isinstance(recurrence, Specific):
        return _next_specific(recurrence.time_of_day, now)

    if isinstance(recurrence, UnknownRecurrence):
        logger.warning(f"无法识别的重复规则: {recurrence}, 回退为 24 小时后")
        return now + FALLBACK_DELAY

    logger.warning(f"未知的重复规则类型: {type(recurrence).__name__}, 回退为 24 小时后")
    return now + FALLBACK_DELAY
