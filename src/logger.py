"""日志模块

级别支持: TRACE/DEBUG/INFO/WARNING/ERROR/CRITICAL (兼容别名 FATAL -> CRITICAL)

使用：进程启动时调用一次 setup_logging，之后各模块 `from logger import logger` 直接写日志。
python-telegram-bot / httpx / uvicorn 使用标准库 logging，setup_logging 会把它们统一转到 loguru。
未调用 setup_logging 时 loguru 保持默认的 stderr 输出（测试环境即是如此）。
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Literal, Union

from loguru import logger

LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "FATAL"]

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level:<8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)

# admin/logs.py 按此格式解析日志文件
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | "
    "{name}:{function}:{line} - {message}"
)

_LEVEL_ALIAS = {"FATAL": "CRITICAL"}
VALID_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")

# 每次 getUpdates 长轮询 httpx 都会打一条 INFO
_NOISY_LOGGERS = {"httpx": "WARNING", "httpcore": "WARNING", "apscheduler": "WARNING"}


def normalize_level(level: Union[str, LogLevel], default: str = "INFO") -> str:
    lv = str(level).upper().strip()
    lv = _LEVEL_ALIAS.get(lv, lv)
    return lv if lv in VALID_LEVELS else default


class _InterceptHandler(logging.Handler):
    """把标准库 logging 的记录转交给 loguru"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _file_handler(path: Path, *, level: str, retention: str) -> dict:
    return {
        "sink": path,
        "level": level,
        "format": FILE_FORMAT,
        "rotation": "10 MB",
        "retention": retention,
        "compression": "zip",
        "encoding": "utf-8",
        "enqueue": True,
    }


def setup_logging(
    log_level: Union[str, LogLevel],
    log_file: Union[str, Path],
    console_level: Union[str, LogLevel] = "INFO",
) -> None:
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    error_log_file = log_file.with_name(f"{log_file.stem}_error{log_file.suffix}")

    logger.configure(
        handlers=[
            {
                "sink": sys.stderr,
                "level": normalize_level(console_level),
                "format": CONSOLE_FORMAT,
                "colorize": True,
            },
            _file_handler(log_file, level=normalize_level(log_level, default="DEBUG"), retention="30 days"),
            _file_handler(error_log_file, level="ERROR", retention="90 days"),
        ]
    )

    logging.basicConfig(handlers=[_InterceptHandler()], level=0, force=True)
    for name, level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)


__all__ = ["setup_logging", "normalize_level", "logger", "VALID_LEVELS", "FILE_FORMAT"]
