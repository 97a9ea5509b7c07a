from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Callable

from recall.models import Reminder
from recall.services.notifier import Notifier, reminder_payload
from recall.services.recurrence import next_trigger_after
from recall.services.scheduler import TriggerScheduler
from recall.store import ReminderStore, UserStore
from recall.timeutil import now_utc

logger = logging.getLogger(__name__)


class ReminderTrigger:
    """Runs one reminder firing: reload, notify, advance, persist, reschedule."""

    def __init__(
        self,
        reminders: ReminderStore,
        users: UserStore,
        notifier: Notifier,
        scheduler: TriggerScheduler,
        *,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self.reminders = reminders
        self.users = users
        self.notifier = notifier
        self.scheduler = scheduler
        self._clock = clock

    async def fire(self, reminder_id: int, *, reschedule: bool = True) -> Reminder | None:
        """Fire ``reminder_id`` and return its persisted state.

        Returns None when the reminder is gone, inactive, or could not be
        persisted. Notification failures never stop the reminder advancing.
        """
        # Always reload: the reminder may have been edited since it was scheduled
        reminder = self.reminders.get(reminder_id)
        if reminder is None or not reminder.is_active:
            logger.debug("Reminder %s missing or inactive, skipping fire", reminder_id)
            return None

        now = self._clock()
        logger.info("Firing reminder %s (%r)", reminder.id, reminder.title)
        await self._notify(reminder)

        changes: dict = {}
        if reminder.is_recurring:
            changes["trigger_time"] = next_trigger_after(
                reminder.trigger_time, reminder.pattern, now
            )
        else:
            changes["is_active"] = False
            changes["completed_at"] = now

        try:
            updated, applied = self.reminders.record_fire(
                reminder.id, now, reminder.trigger_time, **changes
            )
        except sqlite3.Error:
            # The job is already gone; the hourly sweep picks this one up again
            logger.exception("Failed to persist fired reminder %s", reminder.id)
            return None

        if updated is None:
            logger.info("Reminder %s was deleted while firing", reminder.id)
            return None
        if not applied:
            # Edited during the notification; the edit already scheduled it
            logger.info("Reminder %s changed while firing, keeping its new schedule", reminder.id)
            return updated

        if reschedule and updated.is_recurring and updated.is_active:
            self.scheduler.schedule(updated)
        return updated

    async def _notify(self, reminder: Reminder) -> bool:
        try:
            user = self.users.get(reminder.user_id)
            if user is None:
                logger.warning("Reminder %s has no owner %s", reminder.id, reminder.user_id)
                return False
            if not user.push_notifications:
                logger.info("User %s has notifications turned off", user.id)
                return False
            return await self.notifier.send(user.push_subscription, reminder_payload(reminder))
        except Exception:
            logger.exception("Notification for reminder %s failed", reminder.id)
            return False
