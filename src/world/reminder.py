"""提醒调度循环

每个 tick：
1. 查询到期提醒（启用的提醒 + 启用的用户，next_send_at 为空或已到，按 next_send_at 升序、空值最后）；
2. 逐条串行处理：写 sent 执行记录 -> 投递 -> 成功后计算并写入 next_send_at，再写入 last_sent_at；
3. 单条提醒的任何失败只记日志，不影响同一 tick 中的其余提醒。

投递失败时提醒的时间不变，下一个 tick 会再次触发（至少一次语义，可能重复发送，每次都有独立的执行记录）。
next_send_at / last_sent_at 写入失败同样只记日志：宁可下个 tick 多发一次，也不丢失“已发送”的事实。

调度器自己持有后台任务与停止信号，不使用模块级全局状态。收到停止信号后不再开始新的 tick，
正在进行的 tick 会自然完成。
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from channels.base import DeliveryGateway
from datamodel import Reminder
from logger import logger
from metrics import runtime_metrics
import storage.reminder as reminder_storage
from storage.base import ReminderStore
from world.ledger import ExecutionLedger
from world.recurrence import compute_next

__all__ = ["ReminderScheduler", "SchedulerState", "TickReport"]


class SchedulerState(str, Enum):
    IDLE = "idle"
    PROCESSING = "processing"


@dataclass
class TickReport:
    due: int = 0
    delivered: int = 0
    ledger_failed: int = 0
    delivery_failed: int = 0
    persist_failed: int = 0
    query_failed: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class ReminderScheduler:
    def __init__(
        self,
        ledger: ExecutionLedger,
        gateway: DeliveryGateway,
        *,
        store: ReminderStore = reminder_storage,
        tick_seconds: float = 60.0,
        delivery_timeout_seconds: float | None = 30.0,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.ledger = ledger
        self.gateway = gateway
        self.store = store
        self.tick_seconds = tick_seconds
        self.delivery_timeout_seconds = delivery_timeout_seconds
        self.clock = clock

        self.state = SchedulerState.IDLE
        self.last_tick_at: datetime | None = None
        self.last_report: TickReport | None = None
        self._task: asyncio.Task[None] | None = None
        self._stop_event: asyncio.Event | None = None

    # ----------------- 生命周期 ----------------
    def start(self, shutdown_event: asyncio.Event | None = None) -> asyncio.Task[None]:
        """在当前事件循环中启动后台调度任务

        shutdown_event 为进程级停止信号，调度器只监听不设置；stop() 只停调度器自己。
        """
        if self._task is not None and not self._task.done():
            raise RuntimeError("调度器已在运行")
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run_until_stopped(shutdown_event), name="reminder-scheduler")
        return self._task

    async def stop(self) -> None:
        """发出停止信号并等待后台任务退出（进行中的 tick 会先完成）"""
        if self._task is None:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        await self._task
        self._task = None

    async def _run_until_stopped(self, shutdown_event: asyncio.Event | None) -> None:
        if shutdown_event is None:
            await self.run(self._stop_event)
            return

        async def relay() -> None:
            await shutdown_event.wait()
            self._stop_event.set()

        relay_task = asyncio.create_task(relay(), name="reminder-scheduler-shutdown")
        try:
            await self.run(self._stop_event)
        finally:
            relay_task.cancel()
            try:
                await relay_task
            except asyncio.CancelledError:
                pass

    def get_status(self) -> dict[str, object]:
        return {
            "running": self._task is not None and not self._task.done(),
            "state": self.state.value,
            "tick_seconds": self.tick_seconds,
            "last_tick_at": self.last_tick_at.isoformat(sep=" ") if self.last_tick_at else None,
            "last_report": self.last_report.to_dict() if self.last_report else None,
        }

    async def run(self, stop_event: asyncio.Event) -> None:
        """主循环：立即执行一次 tick，之后按固定周期执行，直到 stop_event 被设置"""
        logger.info(f"Reminder 调度循环已启动, 周期 {self.tick_seconds} 秒")
        loop = asyncio.get_running_loop()
        while not stop_event.is_set():
            started = loop.time()
            await self.tick()

            remaining = self.tick_seconds - (loop.time() - started)
            if remaining <= 0:
                continue
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass
        logger.info("Reminder 调度循环已关闭")

    # ----------------- 单次 tick ----------------
    async def tick(self) -> TickReport:
        self.state = SchedulerState.PROCESSING
        report = TickReport()
        started = time.perf_counter()
        now = self.clock()
        self.last_tick_at = now
        try:
            try:
                reminders = await self.store.get_due_reminders(now)
            except Exception as e:
                report.query_failed = True
                logger.error(f"查询到期提醒失败: {e}", exc_info=e)
                return report

            report.due = len(reminders)
            if reminders:
                logger.info(f"开始处理到期提醒: now={now}, count={len(reminders)}")

            for reminder in reminders:
                await self._process_reminder(reminder, report)
            return report
        finally:
            self.state = SchedulerState.IDLE
            self.last_report = report
            runtime_metrics.record_tick(
                due=report.due,
                duration_ms=(time.perf_counter() - started) * 1000,
                error=report.query_failed,
            )

    async def _process_reminder(self, reminder: Reminder, report: TickReport) -> None:
        logger.debug(
            f"到期提醒: reminder_id={reminder.reminder_id}, title={reminder.title}, "
            f"recurrence={reminder.recurrence}, next_send_at={reminder.next_send_at}"
        )

        # 没有执行记录就不发送
        try:
            execution = await self.ledger.record_sent(reminder.reminder_id, reminder.user_id)
        except Exception as e:
            report.ledger_failed += 1
            runtime_metrics.record_ledger_failed()
            logger.error(f"写入执行记录失败, 本次不发送: reminder_id={reminder.reminder_id}: {e}", exc_info=e)
            return

        try:
            await self._deliver(reminder, execution.execution_id)
        except Exception as e:
            report.delivery_failed += 1
            runtime_metrics.record_delivery_failed()
            logger.error(
                f"提醒投递失败, 下个 tick 重试: reminder_id={reminder.reminder_id}, "
                f"execution_id={execution.execution_id}: {e!r}",
                exc_info=e,
            )
            return

        report.delivered += 1
        runtime_metrics.record_delivered()
        logger.info(f"提醒已发送: reminder_id={reminder.reminder_id}, execution_id={execution.execution_id}")

        try:
            next_send_at = compute_next(reminder, self.clock())
            await self.store.update_next_send_at(reminder.reminder_id, next_send_at)
        except Exception as e:
            report.persist_failed += 1
            runtime_metrics.record_persist_failed()
            logger.error(f"更新下次发送时间失败: reminder_id={reminder.reminder_id}: {e}", exc_info=e)

        try:
            await self.store.update_last_sent_at(reminder.reminder_id, self.clock())
        except Exception as e:
            report.persist_failed += 1
            runtime_metrics.record_persist_failed()
            logger.error(f"更新上次发送时间失败: reminder_id={reminder.reminder_id}: {e}", exc_info=e)

    async def _deliver(self, reminder: Reminder, execution_id: str) -> None:
        if self.delivery_timeout_seconds is None:
            await self.gateway.send(reminder, execution_id)
            return
        await asyncio.wait_for(
            self.gateway.send(reminder, execution_id),
            timeout=self.delivery_timeout_seconds,
        )
