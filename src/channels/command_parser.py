"""解析用户发来的提醒创建文本

格式: 标题|类型|备注|时间或间隔
- 至少需要 标题|类型；
- 类型: daily / weekly / custom / specific（不区分大小写）；
- 第 4 段对 custom 是小时数（正整数），对 specific 是 HH:MM，对其他类型忽略。
"""

from dataclasses import dataclass
from typing import Optional

from datamodel import Custom, Daily, Recurrence, RecurrenceKind, Specific, Weekly
from world.recurrence import parse_time_of_day

__all__ = ["ParsedReminder", "CommandParseError", "parse_reminder_text", "FORMAT_HELP"]

FORMAT_HELP = (
    "请按以下格式发送:\n"
    "标题|类型|备注|时间\n\n"
    "类型:\n"
    "- daily 每天（以创建时刻为准）\n"
    "- weekly 每周\n"
    "- custom 自定义间隔（填写小时数）\n"
    "- specific 每天固定时间（HH:MM）\n\n"
    "示例:\n"
    "降压药|specific|饭后服用|08:30\n"
    "维生素|custom|早上|6\n"
    "复查血压|weekly\n\n"
    "发送 /cancel 取消"
)


class CommandParseError(ValueError):
    pass


@dataclass
class ParsedReminder:
    title: str
    recurrence: Recurrence
    comment: Optional[str] = None


def parse_reminder_text(text: str) -> ParsedReminder:
    text = (text or "").strip()
    if "|" not in text:
        raise CommandParseError("格式错误，至少需要: 标题|类型")

    parts = [part.strip() for part in text.split("|")]
    title = parts[0]
    if title == "":
        raise CommandParseError("标题不能为空")

    raw_kind = parts[1].lower()
    try:
        kind = RecurrenceKind(raw_kind)
    except ValueError:
        raise CommandParseError(f"未知的提醒类型: {parts[1]}\n可选类型: daily, weekly, custom, specific")

    comment = parts[2] if len(parts) >= 3 and parts[2] != "" else None
    value = parts[3] if len(parts) >= 4 and parts[3] != "" else None

    if kind == RecurrenceKind.DAILY:
        recurrence: Recurrence = Daily()
    elif kind == RecurrenceKind.WEEKLY:
        recurrence = Weekly()
    elif kind == RecurrenceKind.CUSTOM:
        if value is None:
            raise CommandParseError("custom 类型需要在第 4 段填写间隔小时数")
        try:
            interval_hours = int(value)
        except ValueError:
            interval_hours = 0
        if interval_hours <= 0:
            raise CommandParseError("custom 类型需要填写正整数小时数")
        recurrence = Custom(interval_hours=interval_hours)
    else:
        if value is None:
            raise CommandParseError("specific 类型需要在第 4 段填写时间 HH:MM")
        if parse_time_of_day(value) is None:
            raise CommandParseError("时间格式错误，请使用 HH:MM（例如 09:00）")
        recurrence = Specific(time_of_day=value)

    return ParsedReminder(title=title, recurrence=recurrence, comment=comment)
