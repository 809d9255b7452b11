"""
运行时指标，统计调度 tick、提醒投递、用户确认/跳过等计数，供 Admin API 展示。
仅存在于内存中，进程重启即清零。
"""

from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass
class RuntimeMetrics:
    tick_count: int = 0
    tick_error_count: int = 0
    reminders_due_count: int = 0
    delivered_count: int = 0
    delivery_failed_count: int = 0
    ledger_failed_count: int = 0
    persist_failed_count: int = 0
    confirmed_count: int = 0
    skipped_count: int = 0
    action_failed_count: int = 0
    last_tick_at: float | None = None
    last_tick_duration_ms: float = 0.0

    def record_tick(self, due: int, duration_ms: float, error: bool = False) -> None:
        self.tick_count += 1
        self.reminders_due_count += due
        self.last_tick_at = time.time()
        self.last_tick_duration_ms = max(0.0, duration_ms)
        if error:
            self.tick_error_count += 1

    def record_delivered(self) -> None:
        self.delivered_count += 1

    def record_delivery_failed(self) -> None:
        self.delivery_failed_count += 1

    def record_ledger_failed(self) -> None:
        self.ledger_failed_count += 1

    def record_persist_failed(self) -> None:
        self.persist_failed_count += 1

    def record_action(self, action: str, ok: bool) -> None:
        if not ok:
            self.action_failed_count += 1
        elif action == "confirm":
            self.confirmed_count += 1
        elif action == "skip":
            self.skipped_count += 1

    def snapshot(self) -> dict:
        return {
            "tick_count": self.tick_count,
            "tick_error_count": self.tick_error_count,
            "reminders_due_count": self.reminders_due_count,
            "delivered_count": self.delivered_count,
            "delivery_failed_count": self.delivery_failed_count,
            "ledger_failed_count": self.ledger_failed_count,
            "persist_failed_count": self.persist_failed_count,
            "confirmed_count": self.confirmed_count,
            "skipped_count": self.skipped_count,
            "action_failed_count": self.action_failed_count,
            "last_tick_duration_ms": round(self.last_tick_duration_ms, 2),
            "last_tick_at_epoch": self.last_tick_at,
            "last_tick_at_utc": (
                time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.last_tick_at))
                if self.last_tick_at is not None
                else None
            ),
        }


runtime_metrics = RuntimeMetrics()


__all__ = ["RuntimeMetrics", "runtime_metrics"]
