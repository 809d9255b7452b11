from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from datamodel import Reminder

__all__ = [
    "DeliveryGateway", "DeliveryError",
    "ActionType", "ReminderAction", "encode_action", "decode_action",
]


class DeliveryError(Exception):
    """提醒投递失败，调度循环会在下一个 tick 重试"""


class DeliveryGateway(ABC):
    @abstractmethod
    async def send(self, reminder: Reminder, execution_id: str) -> None:
        """向提醒所属用户发送通知，并附带 确认/跳过 两个动作；失败时抛出 DeliveryError"""
        pass


# ----------------- 用户回执 ----------------
class ActionType(str, Enum):
    CONFIRM = "confirm"
    SKIP = "skip"


@dataclass
class ReminderAction:
    action: ActionType
    reminder_id: int
    execution_id: str
    channel_context: Any = None  # 平台上下文对象, 用于回复用户


def encode_action(action: ActionType, reminder_id: int, execution_id: str) -> str:
    """回调数据格式: "<action>:<reminder_id>:<execution_id>" (Telegram 限制 64 字节以内)"""
    return f"{action.value}:{reminder_id}:{execution_id}"


def decode_action(data: str, channel_context: Any = None) -> Optional[ReminderAction]:
    """解析回调数据，格式不对返回 None"""
    parts = (data or "").split(":")
    if len(parts) != 3:
        return None
    raw_action, raw_reminder_id, execution_id = parts
    try:
        action = ActionType(raw_action)
        reminder_id = int(raw_reminder_id)
    except ValueError:
        return None
    if execution_id == "":
        return None
    return ReminderAction(
        action=action,
        reminder_id=reminder_id,
        execution_id=execution_id,
        channel_context=channel_context,
    )
