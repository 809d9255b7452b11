import os
from dotenv import load_dotenv
from logger import logger
load_dotenv()

__all__ = [
    "TELEGRAM_BOT_TOKEN", "ALLOWED_TELEGRAM_USER_IDS",
    "DB_PATH",
    "SCHEDULER_TICK_SECONDS", "DELIVERY_TIMEOUT_SECONDS",
    "STATS_WINDOW_DAYS", "HISTORY_DEFAULT_LIMIT",
    "LOG_LEVEL", "CONSOLE_LOG_LEVEL", "LOG_FILE",
    "ENABLE_ADMIN_HTTP", "ADMIN_HTTP_HOST", "ADMIN_HTTP_PORT", "ADMIN_AUTH_TOKEN",
]


def _parse_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on", "y")


def _parse_float(name: str, default: float, minimum: float = 0.0) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"{name} 非法: {raw}, 已回退到 {default}")
        return default
    if value <= minimum:
        logger.warning(f"{name} 必须大于 {minimum}: {raw}, 已回退到 {default}")
        return default
    return value


def _parse_int(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"{name} 非法: {raw}, 已回退到 {default}")
        return default
    if value <= minimum:
        logger.warning(f"{name} 必须大于 {minimum}: {raw}, 已回退到 {default}")
        return default
    return value


def _parse_id_list(name: str) -> list[int]:
    ids: list[int] = []
    for part in os.getenv(name, "").split(","):
        part = part.strip()
        if part == "":
            continue
        try:
            ids.append(int(part))
        except ValueError:
            logger.warning(f"{name} 中存在非法 ID: {part}, 已忽略")
    return ids


# Telegram Bot
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "")
ALLOWED_TELEGRAM_USER_IDS = _parse_id_list("ALLOWED_TELEGRAM_USER_IDS")  # 为空表示不限制

# 数据库
DB_PATH = os.getenv("DB_PATH", "data/pill_reminder.db")

# 调度
SCHEDULER_TICK_SECONDS = _parse_float("SCHEDULER_TICK_SECONDS", 60.0)
DELIVERY_TIMEOUT_SECONDS = _parse_float("DELIVERY_TIMEOUT_SECONDS", 30.0)

# 统计与历史
STATS_WINDOW_DAYS = _parse_int("STATS_WINDOW_DAYS", 30)
HISTORY_DEFAULT_LIMIT = _parse_int("HISTORY_DEFAULT_LIMIT", 50)

# 日志
LOG_LEVEL = os.getenv("LOG_LEVEL", "DEBUG")
CONSOLE_LOG_LEVEL = os.getenv("CONSOLE_LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", "logs/pill_reminder.log")

# Admin API
ENABLE_ADMIN_HTTP = _parse_bool("ENABLE_ADMIN_HTTP", True)
ADMIN_HTTP_HOST = os.getenv("ADMIN_HTTP_HOST", "127.0.0.1")
ADMIN_HTTP_PORT = _parse_int("ADMIN_HTTP_PORT", 18080)
ADMIN_AUTH_TOKEN = os.getenv("ADMIN_AUTH_TOKEN", "")
