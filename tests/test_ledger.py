import asyncio
from datetime import datetime, timedelta

import pytest

import storage.execution as execution_storage
from channels.base import ActionType, ReminderAction
from datamodel import ExecutionStatistics, ExecutionStatus
from events import E, bus
from metrics import runtime_metrics
from world.ledger import DEFAULT_HISTORY_LIMIT, ExecutionLedger, ExecutionNotFoundError


@pytest.fixture
def ledger(db, clock):
    return ExecutionLedger(clock=clock)


async def test_record_sent_creates_distinct_executions(ledger, user, clock):
    first = await ledger.record_sent(1, user.user_id)
    second = await ledger.record_sent(1, user.user_id)

    assert first.execution_id != second.execution_id
    assert first.status == ExecutionStatus.SENT
    assert first.sent_at == clock.now
    assert first.confirmed_at is None


async def test_record_sent_does_not_check_reminder_exists(ledger):
    execution = await ledger.record_sent(999, 888)
    assert (await execution_storage.get_execution_by_id(execution.execution_id)).reminder_id == 999


async def test_confirm_sets_confirmed_at(ledger, user, clock):
    execution = await ledger.record_sent(1, user.user_id)
    clock.advance(minutes=5)
    await ledger.record_confirmed(execution.execution_id)

    loaded = await execution_storage.get_execution_by_id(execution.execution_id)
    assert loaded.status == ExecutionStatus.CONFIRMED
    assert loaded.confirmed_at == clock.now


async def test_later_action_overwrites_earlier_one(ledger, user):
    execution = await ledger.record_sent(1, user.user_id)
    await ledger.record_confirmed(execution.execution_id)
    await ledger.record_skipped(execution.execution_id)

    loaded = await execution_storage.get_execution_by_id(execution.execution_id)
    assert loaded.status == ExecutionStatus.SKIPPED
    assert loaded.confirmed_at is None


async def test_unknown_execution_raises(ledger):
    with pytest.raises(ExecutionNotFoundError):
        await ledger.record_confirmed("01HZZZZZZZZZZZZZZZZZZZZZZZ")


async def test_statistics_confirmation_rate(ledger, user, clock):
    # 10 条仍为 sent，8 条 confirmed，2 条 skipped
    for _ in range(10):
        await ledger.record_sent(1, user.user_id)
    for i in range(10):
        execution = await ledger.record_sent(1, user.user_id)
        if i < 8:
            await ledger.record_confirmed(execution.execution_id)
        else:
            await ledger.record_skipped(execution.execution_id)

    stats = await ledger.statistics_by_user(user.user_id, clock.now - timedelta(days=1), clock.now)
    assert stats == ExecutionStatistics(total_sent=10, total_confirmed=8, total_skipped=2, confirmation_rate=80.0)
    assert stats.to_dict()["confirmation_rate"] == 80.0

    by_reminder = await ledger.statistics_by_reminder(1, clock.now, clock.now)
    assert by_reminder == stats


def test_from_counts_rate():
    assert ExecutionStatistics.from_counts(sent=10, confirmed=8, skipped=2).confirmation_rate == 80.0
    assert ExecutionStatistics.from_counts(sent=0, confirmed=3, skipped=1).confirmation_rate == 0.0


async def test_statistics_window_is_inclusive(ledger, user, clock):
    start = clock.now
    await ledger.record_sent(1, user.user_id)
    clock.advance(hours=1)
    await ledger.record_sent(1, user.user_id)
    clock.advance(hours=1)
    await ledger.record_sent(1, user.user_id)

    stats = await ledger.statistics_by_user(user.user_id, start, start + timedelta(hours=1))
    assert stats.total_sent == 2


async def test_statistics_empty_window(ledger, user):
    stats = await ledger.statistics_by_user(user.user_id, datetime(2000, 1, 1), datetime(2000, 1, 2))
    assert stats == ExecutionStatistics()


async def test_history_newest_first_with_default_limit(ledger, user, clock):
    ids = []
    for _ in range(DEFAULT_HISTORY_LIMIT + 3):
        ids.append((await ledger.record_sent(5, user.user_id)).execution_id)
        clock.advance(minutes=1)

    history = await ledger.history_by_reminder(5, limit=0)
    assert len(history) == DEFAULT_HISTORY_LIMIT
    assert history[0].execution_id == ids[-1]

    assert len(await ledger.history_by_user(user.user_id, limit=3)) == 3


async def test_handle_action_updates_status_and_notifies(ledger, user):
    execution = await ledger.record_sent(1, user.user_id)
    applied = []

    def on_applied(action, ok):
        applied.append((action.execution_id, ok))

    bus.add_listener(E.REMINDER_ACTION_APPLIED, on_applied)
    confirmed_before = runtime_metrics.confirmed_count
    try:
        ok = await ledger.handle_action(ReminderAction(ActionType.CONFIRM, 1, execution.execution_id))
        failed = await ledger.handle_action(ReminderAction(ActionType.SKIP, 1, "missing"))
    finally:
        bus.remove_listener(E.REMINDER_ACTION_APPLIED, on_applied)

    assert ok is True
    assert failed is False
    assert applied == [(execution.execution_id, True), ("missing", False)]
    assert runtime_metrics.confirmed_count == confirmed_before + 1
    assert (await execution_storage.get_execution_by_id(execution.execution_id)).status == ExecutionStatus.CONFIRMED


async def test_inbound_action_event_reaches_ledger(ledger, user):
    execution = await ledger.record_sent(1, user.user_id)
    done = asyncio.Event()

    def on_applied(action, ok):
        done.set()

    bus.add_listener(E.REMINDER_ACTION_RECEIVED, ledger.handle_action)
    bus.add_listener(E.REMINDER_ACTION_APPLIED, on_applied)
    try:
        bus.emit(E.REMINDER_ACTION_RECEIVED, ReminderAction(ActionType.SKIP, 1, execution.execution_id))
        await asyncio.wait_for(done.wait(), timeout=2)
    finally:
        bus.remove_listener(E.REMINDER_ACTION_RECEIVED, ledger.handle_action)
        bus.remove_listener(E.REMINDER_ACTION_APPLIED, on_applied)

    assert (await execution_storage.get_execution_by_id(execution.execution_id)).status == ExecutionStatus.SKIPPED
