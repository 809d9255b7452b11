from __future__ import annotations

import asyncio
from dataclasses import dataclass

from pydantic import BaseModel, Field

from world.ledger import ExecutionLedger
from world.reminder import ReminderScheduler


@dataclass
class RuntimeControl:
    shutdown_event: asyncio.Event
    started_at: float
    ledger: ExecutionLedger
    scheduler: ReminderScheduler | None = None


class ShutdownRequest(BaseModel):
    reason: str = Field(default="manual")
