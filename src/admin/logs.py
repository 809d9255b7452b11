"""读取 loguru 文件日志，供 /api/v1/logs 使用

行格式见 logger.FILE_FORMAT: `时间 | 级别 | 模块:函数:行号 - 消息`。
多行的异常堆栈归入上一条日志。
"""

from __future__ import annotations

import re
from collections import deque
from pathlib import Path

from pydantic import BaseModel

from logger import VALID_LEVELS

_LINE_RE = re.compile(
    r"^(?P<time>\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}\.\d{3}) \| (?P<level>[A-Z]+)\s*\| "
    r"(?P<location>\S+) - (?P<message>.*)$"
)


class LogEntry(BaseModel):
    time: str
    level: str
    location: str
    message: str
    extra: list[str] = []


def error_log_path(log_file: str | Path) -> Path:
    path = Path(log_file)
    return path.with_name(f"{path.stem}_error{path.suffix}")


def parse_levels(raw: str | None) -> set[str]:
    """"error,warning" -> {"ERROR", "WARNING"}，忽略不认识的级别"""
    if not raw:
        return set()
    return {part.strip().upper() for part in raw.split(",")} & set(VALID_LEVELS)


def parse_lines(lines: list[str]) -> list[LogEntry]:
    entries: list[LogEntry] = []
    for line in lines:
        match = _LINE_RE.match(line)
        if match:
            entries.append(LogEntry(**match.groupdict()))
        elif entries:
            entries[-1].extra.append(line)
        # 截断处开头的续行没有归属，丢弃
    return entries


def read_tail(path: Path, max_lines: int) -> list[str]:
    if not path.exists():
        return []
    with path.open("r", encoding="utf-8", errors="replace") as f:
        return [line.rstrip("\n") for line in deque(f, maxlen=max_lines)]


def query_logs(path: Path, max_lines: int, levels: set[str], keyword: str | None = None) -> list[LogEntry]:
    entries = parse_lines(read_tail(path, max_lines))
    keyword = (keyword or "").strip().lower()
    if levels:
        entries = [e for e in entries if e.level in levels]
    if keyword:
        entries = [e for e in entries if keyword in e.message.lower() or keyword in e.location.lower()]
    return entries
