from __future__ import annotations

import logging
import sqlite3
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from conftest import T
from recall.jobs import (
    create_suggested_reminders,
    register_jobs,
    send_weekly_summaries,
    sweep_due_reminders,
)
from recall.models import Pattern


@pytest.mark.asyncio
async def test_sweep_fires_due_reminders(service, reminders, user, notifier):
    overdue = reminders.create(user.id, title="Overdue", trigger_time=T - timedelta(hours=2))
    reminders.create(user.id, title="Later", trigger_time=T + timedelta(hours=2))
    reminders.create(
        user.id, title="Paused", trigger_time=T - timedelta(hours=2), is_active=False
    )

    assert await sweep_due_reminders(service) == 1

    assert [p.title for _, p in notifier.sent] == ["Overdue"]
    assert not reminders.get(overdue.id).is_active


@pytest.mark.asyncio
async def test_sweep_advances_recurring_reminders(service, reminders, user):
    standup = reminders.create(
        user.id,
        title="Standup",
        trigger_time=T - timedelta(days=2),
        pattern=Pattern(frequency="daily"),
    )

    assert await sweep_due_reminders(service) == 1

    assert reminders.get(standup.id).trigger_time == T + timedelta(days=1)
    assert service.scheduler.is_scheduled(standup.id)


@pytest.mark.asyncio
async def test_sweep_without_reschedule(service, reminders, user):
    standup = reminders.create(
        user.id,
        title="Standup",
        trigger_time=T - timedelta(hours=1),
        pattern=Pattern(frequency="daily"),
    )

    assert await sweep_due_reminders(service, reschedule=False) == 1
    assert not service.scheduler.is_scheduled(standup.id)


@pytest.mark.asyncio
async def test_sweep_skips_reminders_a_job_owns(service, user, notifier):
    service.scheduler.immediate_delay = 60
    owned = service.create(user.id, title="Owned", trigger_time=T - timedelta(minutes=1))
    assert service.scheduler.is_scheduled(owned.id)

    assert await sweep_due_reminders(service) == 0
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_sweep_nothing_due(service):
    assert await sweep_due_reminders(service) == 0


@pytest.mark.asyncio
@patch("recall.jobs.ai.suggest_reminders", new_callable=AsyncMock)
async def test_suggested_reminders(mock_suggest, service, entries, user, notifier):
    service.reminders.create(user.id, title="Drink water", trigger_time=T)
    mock_suggest.return_value = [
        {"title": "Exercise", "category": "health", "frequency": "daily", "time": "08:00"},
        {"title": "Drink water", "frequency": "daily", "time": "10:00"},
        {"title": "Review budget", "category": "finance", "frequency": "weekly", "time": "bad"},
        {"title": "Fourth", "frequency": "daily", "time": "12:00"},
    ]

    assert await create_suggested_reminders(service, entries) == 2

    exercise = service.reminders.find_by_title(user.id, "Exercise")
    assert exercise.type == "pattern"
    assert exercise.source_type == "text-analysis"
    assert exercise.pattern == Pattern(frequency="daily", time="08:00")
    assert exercise.trigger_time == T + timedelta(days=1) - timedelta(hours=1)
    assert service.scheduler.is_scheduled(exercise.id)

    budget = service.reminders.find_by_title(user.id, "Review budget")
    assert budget.trigger_time == T + timedelta(days=1)
    assert service.reminders.find_by_title(user.id, "Fourth") is None

    assert len(notifier.sent) == 1
    assert notifier.sent[0][1].title == "New Reminder Suggestions"
    assert "2 patterns" in notifier.sent[0][1].body


@pytest.mark.asyncio
@patch("recall.jobs.ai.suggest_reminders", new_callable=AsyncMock)
async def test_no_suggestions_no_notification(mock_suggest, service, entries, user, notifier):
    mock_suggest.return_value = []

    assert await create_suggested_reminders(service, entries) == 0
    assert notifier.sent == []


@pytest.mark.asyncio
@patch("recall.jobs.ai.suggest_reminders", new_callable=AsyncMock)
async def test_suggestion_failure_is_contained(mock_suggest, service, entries, users, user):
    users.create("bob@example.com", "Bob")
    mock_suggest.side_effect = [RuntimeError("model down"), [{"title": "Exercise"}]]

    assert await create_suggested_reminders(service, entries) == 1
    assert mock_suggest.await_count == 2


def test_register_jobs(service, entries):
    scheduler = AsyncIOScheduler()
    register_jobs(scheduler, service, entries)

    sweep = scheduler.get_job("reminder_sweep")
    suggestions = scheduler.get_job("reminder_suggestions")
    summary = scheduler.get_job("weekly_summary")
    assert sweep is not None
    assert suggestions is not None
    assert summary.args == (service, entries)
    assert sweep.args == (service,)
    assert "minute='0'" in str(sweep.trigger)
    assert "day_of_week='mon'" in str(suggestions.trigger)
    assert "day_of_week='sun'" in str(summary.trigger)
    assert "hour='9'" in str(summary.trigger)


@pytest.mark.asyncio
@patch("recall.jobs.ai.suggest_reminders", new_callable=AsyncMock)
async def test_out_of_range_suggestion_fields_are_normalised(
    mock_suggest, service, entries, user, notifier
):
    mock_suggest.return_value = [
        {"title": "Pay rent", "priority": "urgent", "category": "bills", "time": "09:00"},
        {"title": "Stretch", "priority": "High", "frequency": "hourly", "time": "07:30"},
        {"title": "Read", "category": "personal", "frequency": "weekly", "time": "21:00"},
    ]

    assert await create_suggested_reminders(service, entries) == 3

    rent = service.reminders.find_by_title(user.id, "Pay rent")
    assert rent.priority == "medium"
    assert rent.category == "general"

    stretch = service.reminders.find_by_title(user.id, "Stretch")
    assert stretch.priority == "high"
    assert stretch.pattern.frequency == "daily"

    read = service.reminders.find_by_title(user.id, "Read")
    assert read.category == "personal"
    assert read.pattern.frequency == "weekly"

    assert len(notifier.sent) == 1
    assert "3 patterns" in notifier.sent[0][1].body


@pytest.mark.asyncio
@patch("recall.jobs.ai.suggest_reminders", new_callable=AsyncMock)
async def test_bad_suggestion_does_not_drop_the_rest(
    mock_suggest, service, entries, user, notifier, monkeypatch, caplog
):
    mock_suggest.return_value = [{"title": "Broken"}, {"title": "Exercise", "time": "08:00"}]
    create = service.create

    def flaky_create(user_id, **fields):
        if fields["title"] == "Broken":
            raise sqlite3.IntegrityError("CHECK constraint failed: priority")
        return create(user_id, **fields)

    monkeypatch.setattr(service, "create", flaky_create)

    with caplog.at_level(logging.ERROR):
        assert await create_suggested_reminders(service, entries) == 1

    assert "Skipping suggestion" in caplog.text
    assert service.reminders.find_by_title(user.id, "Exercise") is not None
    assert "1 patterns" in notifier.sent[0][1].body


@pytest.mark.asyncio
@patch("recall.jobs.ai.summarize_week", new_callable=AsyncMock)
async def test_weekly_summaries(mock_summary, service, entries, users, user, notifier):
    entries.create(user.id, "Monday", "Went for a run")
    users.create("bob@example.com", "Bob")
    mock_summary.return_value = "A steady week. " * 20

    assert await send_weekly_summaries(service, entries) == 1
    assert mock_summary.await_count == 2
    assert [e.title for e in mock_summary.await_args_list[0].args[0]] == ["Monday"]

    subscription, payload = notifier.sent[0]
    assert subscription == user.push_subscription
    assert payload.title == "Weekly Summary Ready"
    assert payload.body == "Your weekly journal summary is ready to view"
    assert payload.tag == "weekly-summary"
    assert payload.data["url"] == "/summaries"
    assert payload.data["summary"].endswith("...")
    assert len(payload.data["summary"]) == 203


@pytest.mark.asyncio
@patch("recall.jobs.ai.summarize_week", new_callable=AsyncMock)
async def test_weekly_summaries_respect_preferences(
    mock_summary, service, entries, users, user, notifier
):
    mock_summary.return_value = "Short week."

    users.set_preferences(user.id, weekly_summaries=False)
    assert await send_weekly_summaries(service, entries) == 0
    mock_summary.assert_not_awaited()

    users.set_preferences(user.id, weekly_summaries=True, push_notifications=False)
    assert await send_weekly_summaries(service, entries) == 0
    mock_summary.assert_awaited_once()
    assert notifier.sent == []


@pytest.mark.asyncio
@patch("recall.jobs.ai.summarize_week", new_callable=AsyncMock)
async def test_weekly_summary_failure_is_contained(
    mock_summary, service, entries, users, user, notifier
):
    bob = users.set_push_subscription(users.create("bob@example.com").id, {"endpoint": "b"})
    mock_summary.side_effect = [RuntimeError("model down"), "Bob's week."]

    assert await send_weekly_summaries(service, entries) == 1
    assert notifier.sent[0][0] == bob.push_subscription
    assert notifier.sent[0][1].data["summary"] == "Bob's week."
