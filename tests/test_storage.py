from datetime import datetime, timedelta

import pytest

import storage.db_config as db_config
import storage.execution as execution_storage
import storage.reminder as reminder_storage
import storage.user as user_storage
from datamodel import Custom, Daily, ExecutionStatus, Specific, UnknownRecurrence, Weekly

NOW = datetime(2024, 3, 1, 12, 0, 0)


async def test_storage_requires_init():
    assert db_config.conn is None
    with pytest.raises(RuntimeError):
        await reminder_storage.get_due_reminders(NOW)


async def test_register_user_twice_updates_profile(db):
    first = await user_storage.register_or_update_user(telegram_user_id=42, username="old")
    second = await user_storage.register_or_update_user(telegram_user_id=42, username="new", first_name="Bob")
    assert first.user_id == second.user_id
    assert second.username == "new"
    assert second.first_name == "Bob"
    assert (await user_storage.get_user_by_id(first.user_id)).telegram_user_id == 42


async def test_missing_row_after_write_raises(user, monkeypatch):
    async def vanished(*args):
        return None

    monkeypatch.setattr(reminder_storage, "get_reminder_by_id", vanished)
    with pytest.raises(RuntimeError):
        await reminder_storage.create_reminder(user.user_id, "药", Daily(), NOW)

    monkeypatch.setattr(user_storage, "get_user_by_telegram_id", vanished)
    with pytest.raises(RuntimeError):
        await user_storage.register_or_update_user(telegram_user_id=30003)


async def test_recurrence_round_trips_through_columns(user):
    for recurrence in (Daily(), Weekly(), Custom(interval_hours=6), Specific(time_of_day="08:30")):
        created = await reminder_storage.create_reminder(user.user_id, "药", recurrence, NOW)
        loaded = await reminder_storage.get_reminder_by_id(created.reminder_id)
        assert loaded.recurrence == recurrence
        assert loaded.next_send_at == NOW


async def test_invalid_columns_decode_to_unknown(user, db):
    await db.execute(
        "INSERT INTO reminders (user_id, title, kind, interval_hours, is_active, created_at, updated_at) "
        "VALUES (?, 'x', 'custom', 0, 1, '2024-01-01 00:00:00.000000', '2024-01-01 00:00:00.000000')",
        (user.user_id,),
    )
    await db.commit()
    [reminder] = await reminder_storage.get_reminders_by_user_id(user.user_id)
    assert reminder.recurrence == UnknownRecurrence(raw_kind="custom", interval_hours=0, time_of_day=None)
    assert reminder.next_send_at is None


async def test_due_query_filters_and_orders(user, db):
    other = await user_storage.register_or_update_user(telegram_user_id=20002)

    late = await reminder_storage.create_reminder(user.user_id, "late", Daily(), NOW - timedelta(minutes=1))
    early = await reminder_storage.create_reminder(user.user_id, "early", Daily(), NOW - timedelta(hours=2))
    exact = await reminder_storage.create_reminder(user.user_id, "exact", Daily(), NOW)
    await reminder_storage.create_reminder(user.user_id, "future", Daily(), NOW + timedelta(seconds=1))

    never = await reminder_storage.create_reminder(user.user_id, "never", Daily(), NOW)
    await db.execute("UPDATE reminders SET next_send_at = NULL WHERE reminder_id = ?", (never.reminder_id,))
    await db.commit()

    paused = await reminder_storage.create_reminder(user.user_id, "paused", Daily(), NOW - timedelta(hours=5))
    paused.is_active = False
    await reminder_storage.update_reminder(paused)

    await reminder_storage.create_reminder(other.user_id, "other", Daily(), NOW - timedelta(hours=9))
    await user_storage.set_user_active(other.user_id, False)

    due = await reminder_storage.get_due_reminders(NOW)
    assert [r.reminder_id for r in due] == [early.reminder_id, late.reminder_id, exact.reminder_id, never.reminder_id]


async def test_reregistering_reactivates_user(user):
    reminder = await reminder_storage.create_reminder(user.user_id, "药", Daily(), NOW)
    await user_storage.set_user_active(user.user_id, False)
    assert await reminder_storage.get_due_reminders(NOW) == []

    again = await user_storage.register_or_update_user(telegram_user_id=user.telegram_user_id, username="alice")

    assert again.user_id == user.user_id
    assert again.is_active is True
    assert [r.reminder_id for r in await reminder_storage.get_due_reminders(NOW)] == [reminder.reminder_id]


async def test_delete_reminder_keeps_executions(user):
    reminder = await reminder_storage.create_reminder(user.user_id, "药", Daily(), NOW)
    await execution_storage.create_execution(reminder.reminder_id, user.user_id, NOW)

    assert await reminder_storage.delete_reminder(reminder.reminder_id) is True
    assert await reminder_storage.delete_reminder(reminder.reminder_id) is False
    assert len(await execution_storage.get_executions_by_reminder_id(reminder.reminder_id, 10)) == 1


async def test_update_next_and_last_sent(user):
    reminder = await reminder_storage.create_reminder(user.user_id, "药", Daily(), NOW)
    await reminder_storage.update_next_send_at(reminder.reminder_id, NOW + timedelta(days=1))
    await reminder_storage.update_last_sent_at(reminder.reminder_id, NOW)
    loaded = await reminder_storage.get_reminder_by_id(reminder.reminder_id)
    assert loaded.next_send_at == NOW + timedelta(days=1)
    assert loaded.last_sent_at == NOW


async def test_execution_status_and_history_order(user):
    first = await execution_storage.create_execution(1, user.user_id, NOW)
    second = await execution_storage.create_execution(1, user.user_id, NOW + timedelta(hours=1))

    assert await execution_storage.update_execution_status(first.execution_id, ExecutionStatus.CONFIRMED, NOW) is True
    assert await execution_storage.update_execution_status("missing", ExecutionStatus.SKIPPED, NOW) is False

    loaded = await execution_storage.get_execution_by_id(first.execution_id)
    assert loaded.status == ExecutionStatus.CONFIRMED
    assert loaded.confirmed_at == NOW

    history = await execution_storage.get_executions_by_user_id(user.user_id, 10)
    assert [e.execution_id for e in history] == [second.execution_id, first.execution_id]
    assert len(await execution_storage.get_executions_by_reminder_id(1, 1)) == 1
