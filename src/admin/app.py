"""Admin HTTP API

健康检查公开；其余接口挂在 /api/v1 路由下，统一经过 token 鉴权。
统计与历史直接走 ExecutionLedger，与 Telegram /stats 看到的口径一致。
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Query
from fastapi.responses import PlainTextResponse

from config.settings import HISTORY_DEFAULT_LIMIT, LOG_FILE, STATS_WINDOW_DAYS
from datamodel import ExecutionStatistics, ReminderExecution
from logger import logger
from metrics import runtime_metrics
import storage.db_config as db_config

from .auth import require_admin_auth
from .logs import LogEntry, error_log_path, parse_levels, query_logs
from .schemas import RuntimeControl, ShutdownRequest


def _execution_payload(execution: ReminderExecution) -> dict[str, Any]:
    return {
        "execution_id": execution.execution_id,
        "reminder_id": execution.reminder_id,
        "user_id": execution.user_id,
        "status": execution.status.value,
        "sent_at": execution.sent_at.isoformat(sep=" "),
        "confirmed_at": execution.confirmed_at.isoformat(sep=" ") if execution.confirmed_at else None,
    }


def _statistics_payload(stats: ExecutionStatistics, from_date: datetime, to_date: datetime) -> dict[str, Any]:
    return {
        "from": from_date.isoformat(sep=" "),
        "to": to_date.isoformat(sep=" "),
        "statistics": stats.to_dict(),
    }


def _build_api_router(control: RuntimeControl) -> APIRouter:
    router = APIRouter(prefix="/api/v1", dependencies=[Depends(require_admin_auth)])
    ledger = control.ledger

    def stats_window(days: int) -> tuple[datetime, datetime]:
        to_date = ledger.clock()
        return to_date - timedelta(days=days), to_date

    @router.get("/overview")
    async def get_overview() -> dict[str, Any]:
        return {"counts": await db_config.table_counts()}

    @router.get("/metrics")
    async def get_metrics() -> dict[str, Any]:
        from channels.telegram_polling import get_status as get_telegram_status

        return {
            "runtime": runtime_metrics.snapshot(),
            "components": {
                "db": {"connected": db_config.conn is not None},
                "telegram": get_telegram_status(),
                "scheduler": control.scheduler.get_status() if control.scheduler else {"running": False},
            },
            "active_tasks": len(asyncio.all_tasks()),
        }

    @router.get("/users/{user_id}/statistics")
    async def get_user_statistics(user_id: int, days: int = Query(STATS_WINDOW_DAYS, gt=0)) -> dict[str, Any]:
        from_date, to_date = stats_window(days)
        stats = await ledger.statistics_by_user(user_id, from_date, to_date)
        return {"user_id": user_id, **_statistics_payload(stats, from_date, to_date)}

    @router.get("/reminders/{reminder_id}/statistics")
    async def get_reminder_statistics(reminder_id: int, days: int = Query(STATS_WINDOW_DAYS, gt=0)) -> dict[str, Any]:
        from_date, to_date = stats_window(days)
        stats = await ledger.statistics_by_reminder(reminder_id, from_date, to_date)
        return {"reminder_id": reminder_id, **_statistics_payload(stats, from_date, to_date)}

    @router.get("/users/{user_id}/executions")
    async def get_user_executions(user_id: int, limit: int = Query(HISTORY_DEFAULT_LIMIT, le=500)) -> dict[str, Any]:
        items = await ledger.history_by_user(user_id, limit)
        return {"user_id": user_id, "items": [_execution_payload(e) for e in items]}

    @router.get("/reminders/{reminder_id}/executions")
    async def get_reminder_executions(reminder_id: int, limit: int = Query(HISTORY_DEFAULT_LIMIT, le=500)) -> dict[str, Any]:
        items = await ledger.history_by_reminder(reminder_id, limit)
        return {"reminder_id": reminder_id, "items": [_execution_payload(e) for e in items]}

    @router.get("/logs")
    async def get_logs(
        lines: int = Query(200, ge=1, le=5000),
        levels: str | None = None,
        q: str | None = None,
        stream: str = Query("main", pattern="^(main|error)$"),
    ) -> dict[str, Any]:
        target = error_log_path(LOG_FILE) if stream == "error" else Path(LOG_FILE)
        entries: list[LogEntry] = await asyncio.to_thread(query_logs, target, lines, parse_levels(levels), q)
        return {"stream": stream, "file": str(target), "entries": [e.model_dump() for e in entries]}

    @router.post("/admin/shutdown")
    async def admin_shutdown(payload: ShutdownRequest, caller: str = Depends(require_admin_auth)) -> dict[str, Any]:
        logger.warning(f"收到远程关闭请求: by={caller}, reason={payload.reason}")
        control.shutdown_event.set()
        return {"ok": True, "action": "shutdown", "reason": payload.reason}

    return router


def create_app(control: RuntimeControl) -> FastAPI:
    app = FastAPI(title="Pill Reminder Admin API", version="1.0.0")

    @app.get("/healthz", include_in_schema=False)
    async def healthz() -> PlainTextResponse:
        return PlainTextResponse("ok")

    @app.get("/api/v1/health")
    async def api_health() -> dict[str, Any]:
        return {
            "status": "ok",
            "now_utc": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "uptime_seconds": max(0.0, time.time() - control.started_at),
            "db_connected": db_config.conn is not None,
            "shutdown_requested": control.shutdown_event.is_set(),
        }

    app.include_router(_build_api_router(control))
    return app
