from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import ClassVar, Optional, Union

__all__ = [
    "RecurrenceKind", "Daily", "Weekly", "Custom", "Specific", "UnknownRecurrence", "Recurrence",
    "recurrence_from_columns", "recurrence_to_columns",
    "Reminder",
    "ExecutionStatus", "ReminderExecution", "ExecutionStatistics",
    "UserInfo",
]


# ----------------- Recurrence 数据模型 ----------------
class RecurrenceKind(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"
    SPECIFIC = "specific"


@dataclass(frozen=True)
class Daily:
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.DAILY


@dataclass(frozen=True)
class Weekly:
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.WEEKLY


@dataclass(frozen=True)
class Custom:
    interval_hours: int
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.CUSTOM


@dataclass(frozen=True)
class Specific:
    time_of_day: str  # 格式: "HH:MM"
    kind: ClassVar[RecurrenceKind] = RecurrenceKind.SPECIFIC


@dataclass(frozen=True)
class UnknownRecurrence:
    """数据库中无法解读的重复规则，原样保留各列，调度时按 24 小时兜底"""
    raw_kind: str
    interval_hours: Optional[int] = None
    time_of_day: Optional[str] = None


Recurrence = Union[Daily, Weekly, Custom, Specific, UnknownRecurrence]


def recurrence_from_columns(kind: str, interval_hours: Optional[int], time_of_day: Optional[str]) -> Recurrence:
    """将数据库中扁平的 (kind, interval_hours, time_of_day) 三列还原为重复规则"""
    if kind == RecurrenceKind.DAILY.value:
        return Daily()
    if kind == RecurrenceKind.WEEKLY.value:
        return Weekly()
    if kind == RecurrenceKind.CUSTOM.value and interval_hours is not None and interval_hours > 0:
        return Custom(interval_hours=int(interval_hours))
    if kind == RecurrenceKind.SPECIFIC.value and time_of_day:
        return Specific(time_of_day=time_of_day)
    return UnknownRecurrence(raw_kind=kind, interval_hours=interval_hours, time_of_day=time_of_day)


def recurrence_to_columns(recurrence: Recurrence) -> tuple[str, Optional[int], Optional[str]]:
    if isinstance(recurrence, Custom):
        return recurrence.kind.value, recurrence.interval_hours, None
    if isinstance(recurrence, Specific):
        return recurrence.kind.value, None, recurrence.time_of_day
    if isinstance(recurrence, UnknownRecurrence):
        return recurrence.raw_kind, recurrence.interval_hours, recurrence.time_of_day
    return recurrence.kind.value, None, None


# ----------------- Reminder 数据模型 ----------------
@dataclass
class Reminder:
    reminder_id: int
    user_id: int
    title: str
    recurrence: Recurrence
    comment: Optional[str] = None
    image_url: Optional[str] = None
    is_active: bool = True
    last_sent_at: Optional[datetime] = None
    next_send_at: Optional[datetime] = None  # 仅在首次计算前为 None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ----------------- ReminderExecution 数据模型 ----------------
class ExecutionStatus(str, Enum):
    SENT = "sent"
    CONFIRMED = "confirmed"
    SKIPPED = "skipped"


@dataclass
class ReminderExecution:
    execution_id: str  # ULID
    reminder_id: int
    user_id: int
    status: ExecutionStatus
    sent_at: datetime
    confirmed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


@dataclass
class ExecutionStatistics:
    total_sent: int = 0
    total_confirmed: int = 0
    total_skipped: int = 0
    confirmation_rate: float = 0.0

    @classmethod
    def from_counts(cls, sent: int, confirmed: int, skipped: int) -> "ExecutionStatistics":
        rate = confirmed / sent * 100 if sent > 0 else 0.0
        return cls(
            total_sent=sent,
            total_confirmed=confirmed,
            total_skipped=skipped,
            confirmation_rate=rate,
        )

    def to_dict(self) -> dict:
        return {
            "total_sent": self.total_sent,
            "total_confirmed": self.total_confirmed,
            "total_skipped": self.total_skipped,
            "confirmation_rate": round(self.confirmation_rate, 2),
        }


# ----------------- User 数据模型 ----------------
@dataclass
class UserInfo:
    user_id: int
    telegram_user_id: int
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    language_code: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
