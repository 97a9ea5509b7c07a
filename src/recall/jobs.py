"""Periodic jobs: the hourly overdue sweep, weekly suggestions and summaries."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from recall.models import CATEGORIES, FREQUENCIES, PRIORITIES, Pattern, User
from recall.services import ai
from recall.services.notifier import NotificationPayload
from recall.services.reminders import ReminderService
from recall.store import EntryStore

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 3
SUMMARY_PREVIEW = 200


async def sweep_due_reminders(service: ReminderService, *, reschedule: bool = True) -> int:
    """Fire every due, active reminder that no pending job is about to handle."""
    scheduler = service.scheduler
    due = service.reminders.find_due(service.now())
    fired = 0
    for reminder in due:
        if scheduler.is_scheduled(reminder.id) or scheduler.is_firing(reminder.id):
            logger.debug("Sweep skipping reminder %s, a job owns it", reminder.id)
            continue
        try:
            if await service.trigger.fire(reminder.id, reschedule=reschedule) is not None:
                fired += 1
        except Exception:
            logger.exception("Sweep failed for reminder %s", reminder.id)
    logger.info("Reminder sweep fired %d of %d due reminders", fired, len(due))
    return fired


def _first_occurrence(time_str: str, now: datetime) -> datetime:
    try:
        hour, minute = (int(p) for p in time_str.split(":", 1))
        candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    except (AttributeError, ValueError):
        candidate = now.replace(hour=9, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def _pick(value: Any, allowed: tuple[str, ...], default: str) -> str:
    value = str(value or "").strip().lower()
    return value if value in allowed else default


def _create_suggestion(service: ReminderService, user: User, suggestion: dict) -> bool:
    title = str(suggestion.get("title") or "").strip()
    if not title or service.reminders.find_by_title(user.id, title) is not None:
        return False
    frequency = _pick(suggestion.get("frequency"), FREQUENCIES, "daily")
    time_str = str(suggestion.get("time") or "")
    service.create(
        user.id,
        title=title,
        description=suggestion.get("description") or "",
        type="pattern",
        category=_pick(suggestion.get("category"), CATEGORIES, "general"),
        priority=_pick(suggestion.get("priority"), PRIORITIES, "medium"),
        pattern=Pattern(frequency=frequency, time=time_str),
        trigger_time=_first_occurrence(time_str, service.now()),
        source_type="text-analysis",
        metadata={"original_analysis": suggestion, "analysis_type": "suggestion"},
    )
    return True


async def create_suggested_reminders(service: ReminderService, entries: EntryStore) -> int:
    """Turn AI suggestions from last week's entries into reminders, per user."""
    total = 0
    for user in service.users.list_with_push_enabled():
        try:
            suggestions = await ai.suggest_reminders(entries.list_recent(user.id, days=7))
        except Exception:
            logger.exception("Reminder suggestions failed for user %s", user.id)
            continue

        created = 0
        for suggestion in suggestions[:MAX_SUGGESTIONS]:
            try:
                if _create_suggestion(service, user, suggestion):
                    created += 1
            except Exception:
                logger.exception("Skipping suggestion %r for user %s", suggestion, user.id)

        if created:
            await service.trigger.notifier.send(
                user.push_subscription,
                NotificationPayload(
                    title="New Reminder Suggestions",
                    body=f"We found {created} patterns in your journal that might benefit from reminders",
                    tag="reminder-suggestions",
                    data={"url": "/reminders"},
                ),
            )
        total += created
        logger.info("Created %d suggested reminders for user %s", created, user.id)
    return total


async def send_weekly_summaries(service: ReminderService, entries: EntryStore) -> int:
    """Summarise each opted-in user's week and push a notice when it's ready."""
    notifier = service.trigger.notifier
    sent = 0
    for user in service.users.list_with_weekly_summaries():
        try:
            summary = await ai.summarize_week(entries.list_recent(user.id, days=7))
            logger.info("Weekly summary generated for user %s", user.id)
            if not (user.push_subscription and user.push_notifications):
                continue
            preview = summary[:SUMMARY_PREVIEW]
            if len(summary) > SUMMARY_PREVIEW:
                preview += "..."
            delivered = await notifier.send(
                user.push_subscription,
                NotificationPayload(
                    title="Weekly Summary Ready",
                    body="Your weekly journal summary is ready to view",
                    tag="weekly-summary",
                    data={"url": "/summaries", "summary": preview},
                ),
            )
            if delivered:
                sent += 1
        except Exception:
            logger.exception("Weekly summary failed for user %s", user.id)
    return sent


def register_jobs(
    scheduler: AsyncIOScheduler, service: ReminderService, entries: EntryStore
) -> None:
    scheduler.add_job(
        sweep_due_reminders,
        trigger=CronTrigger(minute=0),
        args=[service],
        id="reminder_sweep",
        name="Fire overdue reminders",
        replace_existing=True,
    )
    scheduler.add_job(
        create_suggested_reminders,
        trigger=CronTrigger(day_of_week="mon", hour=10, minute=0),
        args=[service, entries],
        id="reminder_suggestions",
        name="Suggest reminders from journal entries",
        replace_existing=True,
    )
    scheduler.add_job(
        send_weekly_summaries,
        trigger=CronTrigger(day_of_week="sun", hour=9, minute=0),
        args=[service, entries],
        id="weekly_summary",
        name="Weekly journal summaries",
        replace_existing=True,
    )
    logger.info("Registered reminder sweep, suggestion and summary jobs")
