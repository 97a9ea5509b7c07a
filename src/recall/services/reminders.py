from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable

from recall.models import Reminder, User
from recall.services.notifier import Notifier, create_notifier
from recall.services.scheduler import TriggerScheduler
from recall.services.trigger import ReminderTrigger
from recall.store import ReminderStore, UserStore
from recall.timeutil import now_utc, parse_datetime

logger = logging.getLogger(__name__)

# Keys an analysis item may carry its suggested time under, in priority order
_TIME_KEYS = ("datetime", "due_time", "reminder_time", "suggestedDateTime")
_ANALYSIS_GROUPS = {
    "events": "event",
    "tasks": "task",
    "deadlines": "deadline",
    "reminders": "reminder",
}


class ReminderService:
    """Keeps stored reminders and their scheduled jobs in step."""

    def __init__(
        self,
        reminders: ReminderStore,
        users: UserStore,
        scheduler: TriggerScheduler,
        trigger: ReminderTrigger,
        *,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.reminders = reminders
        self.users = users
        self.scheduler = scheduler
        self.trigger = trigger
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    def create(self, user_id: int, **fields: Any) -> Reminder:
        reminder = self.reminders.create(user_id, **fields)
        if reminder.is_active:
            self.scheduler.schedule(reminder)
        logger.info("Created reminder %s (%r) for user %s", reminder.id, reminder.title, user_id)
        return reminder

    def update(self, reminder_id: int, user_id: int, **fields: Any) -> Reminder | None:
        before = self.reminders.get_for_user(reminder_id, user_id)
        if before is None:
            return None
        after = self.reminders.update(reminder_id, **fields)
        if after is None:
            return None

        if not after.is_active:
            self.scheduler.cancel(reminder_id)
        elif not before.is_active or before.trigger_time != after.trigger_time:
            self.scheduler.schedule(after)
        return after

    def delete(self, reminder_id: int, user_id: int) -> bool:
        if self.reminders.get_for_user(reminder_id, user_id) is None:
            return False
        self.scheduler.cancel(reminder_id)
        return self.reminders.delete(reminder_id)

    def reschedule(self, reminder_id: int, new_trigger_time: datetime) -> Reminder | None:
        # The store write does not yield to the event loop, so the old job
        # stays armed until schedule() swaps it for the new one.
        reminder = self.reminders.update(reminder_id, trigger_time=new_trigger_time)
        if reminder is None:
            self.scheduler.cancel(reminder_id)
            return None
        if reminder.is_active:
            self.scheduler.schedule(reminder)
        else:
            self.scheduler.cancel(reminder_id)
        logger.info("Rescheduled reminder %s to %s", reminder_id, new_trigger_time)
        return reminder

    async def trigger_now(self, reminder_id: int) -> Reminder | None:
        logger.info("Manually triggering reminder %s", reminder_id)
        return await self.trigger.fire(reminder_id)

    def status(self, user: User | None = None) -> dict[str, Any]:
        status = {
            "active_reminders": self.scheduler.pending_count,
            "notifier": self.trigger.notifier.name,
            "notifier_configured": self.trigger.notifier.configured,
        }
        if user is not None:
            status["user_has_push_subscription"] = bool(user.push_subscription)
        return status

    def load_upcoming(self) -> int:
        """Schedule every active reminder still ahead of now.

        Overdue reminders are left to the hourly sweep so a restart does not
        produce a burst of late notifications.
        """
        upcoming = self.reminders.find_upcoming(self._clock())
        for reminder in upcoming:
            self.scheduler.schedule(reminder)
        logger.info("Loaded %d upcoming reminders", len(upcoming))
        return len(upcoming)

    def create_from_analysis(
        self,
        user_id: int,
        analysis: dict[str, Any],
        entry_id: int | None = None,
        source_type: str = "voice-analysis",
    ) -> list[Reminder]:
        """Create reminders from the events, tasks and deadlines an AI analysis found."""
        created: list[Reminder] = []
        for group, analysis_type in _ANALYSIS_GROUPS.items():
            for item in analysis.get(group) or []:
                reminder = self._create_from_item(user_id, item, analysis_type, entry_id, source_type)
                if reminder is not None:
                    created.append(reminder)
        logger.info("Created %d reminders from %s", len(created), source_type)
        return created

    def _create_from_item(
        self,
        user_id: int,
        item: dict[str, Any],
        analysis_type: str,
        entry_id: int | None,
        source_type: str,
    ) -> Reminder | None:
        try:
            now = self._clock()
            trigger_time = _suggested_time(item, now)
            if trigger_time < now:
                trigger_time += timedelta(days=1)

            metadata = {
                "original_analysis": item,
                "analysis_type": analysis_type,
                "created_from_voice": source_type == "voice-analysis",
            }
            if item.get("confidence") is not None:
                metadata["confidence"] = float(item["confidence"])

            return self.create(
                user_id,
                title=item["title"],
                description=item.get("description") or "",
                type="ai-suggested",
                priority=item.get("priority") or "medium",
                category=item.get("category") or "general",
                trigger_time=trigger_time,
                source_type=source_type,
                source_entry_id=entry_id,
                metadata=metadata,
            )
        except Exception:
            logger.exception("Skipping malformed %s item: %r", analysis_type, item)
            return None


def build_reminder_service(
    db_path: Path | None = None,
    notifier: Notifier | None = None,
    *,
    clock: Callable[[], datetime] = now_utc,
    immediate_delay: float = 1.0,
) -> ReminderService:
    """Wire stores, scheduler, trigger handler and notifier together."""
    reminders = ReminderStore(db_path)
    users = UserStore(db_path)
    scheduler = TriggerScheduler(clock=clock, immediate_delay=immediate_delay)
    trigger = ReminderTrigger(
        reminders, users, notifier or create_notifier(), scheduler, clock=clock
    )
    scheduler.bind(trigger.fire)
    return ReminderService(reminders, users, scheduler, trigger, clock=clock)


def _suggested_time(item: dict[str, Any], now: datetime) -> datetime:
    for key in _TIME_KEYS:
        if item.get(key):
            return parse_datetime(item[key])
    return now + timedelta(hours=1)
