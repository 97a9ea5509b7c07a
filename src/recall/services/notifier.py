"""Notification delivery strategies."""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from pywebpush import WebPushException, webpush
from rich.console import Console
from rich.panel import Panel

from recall import config
from recall.models import Reminder

logger = logging.getLogger(__name__)

DEFAULT_ICON = "/icons/icon-192x192.png"
DEFAULT_BADGE = "/icons/badge-72x72.png"

_PRIORITY_STYLES = {
    "high": ("bold red", "URGENT REMINDER"),
    "medium": ("yellow", "Reminder"),
    "low": ("cyan", "Gentle reminder"),
}


@dataclass
class NotificationPayload:
    title: str
    body: str
    icon: str = DEFAULT_ICON
    badge: str = DEFAULT_BADGE
    tag: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    sound: str | None = None

    def to_json(self) -> str:
        return json.dumps({k: v for k, v in asdict(self).items() if v is not None}, default=str)


def reminder_payload(reminder: Reminder) -> NotificationPayload:
    return NotificationPayload(
        title=reminder.title,
        body=reminder.description or "Time for your reminder!",
        tag=f"reminder-{reminder.id}",
        data={
            "reminderId": reminder.id,
            "type": "reminder",
            "priority": reminder.priority,
            "url": "/reminders",
        },
        sound=reminder.custom_sound if reminder.sound_enabled else None,
    )


class Notifier:
    """Base strategy. ``send`` returns True on delivery and False otherwise, without raising."""

    name = "base"
    configured = False

    async def send(self, subscription: dict | None, payload: NotificationPayload) -> bool:
        raise NotImplementedError


class NullNotifier(Notifier):
    name = "none"

    async def send(self, subscription: dict | None, payload: NotificationPayload) -> bool:
        logger.debug("Notifications disabled, dropping %r", payload.title)
        return False


class WebPushNotifier(Notifier):
    name = "webpush"

    def __init__(
        self,
        private_key: str | None = None,
        public_key: str | None = None,
        claim_email: str | None = None,
    ) -> None:
        self.private_key = private_key
        self.public_key = public_key
        self.claim_email = claim_email or "admin@example.com"
        self.configured = bool(private_key and public_key)
        if not self.configured:
            logger.warning("VAPID keys not configured, push notifications disabled")

    async def send(self, subscription: dict | None, payload: NotificationPayload) -> bool:
        if not self.configured:
            logger.info("Skipping push for %r: VAPID keys not configured", payload.title)
            return False
        if not subscription:
            logger.info("Skipping push for %r: no push subscription", payload.title)
            return False

        try:
            await asyncio.to_thread(
                webpush,
                subscription_info=subscription,
                data=payload.to_json(),
                vapid_private_key=self.private_key,
                # pywebpush mutates the claims dict, so hand it a fresh one
                vapid_claims={"sub": f"mailto:{self.claim_email}"},
            )
        except WebPushException as exc:
            status = getattr(exc.response, "status_code", None)
            if status in (404, 410):
                logger.warning("Push subscription expired (%s) for %r", status, payload.title)
            else:
                logger.error("Push delivery failed for %r: %s", payload.title, exc)
            return False
        except Exception:
            logger.exception("Push delivery failed for %r", payload.title)
            return False

        logger.info("Push notification sent: %r", payload.title)
        return True


class ConsoleNotifier(Notifier):
    """Local desktop-style alert rendered in the terminal."""

    name = "console"
    configured = True

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console(stderr=True)

    async def send(self, subscription: dict | None, payload: NotificationPayload) -> bool:
        priority = payload.data.get("priority", "medium")
        style, heading = _PRIORITY_STYLES.get(priority, _PRIORITY_STYLES["medium"])
        try:
            self.console.print(
                Panel(payload.body, title=f"{heading}: {payload.title}", border_style=style)
            )
            if payload.sound:
                self.console.bell()
        except Exception:
            logger.exception("Console alert failed for %r", payload.title)
            return False
        return True


def create_notifier(kind: str | None = None) -> Notifier:
    kind = (kind or config.notifier_kind()).strip().lower()
    if kind == "webpush":
        return WebPushNotifier(
            private_key=config.vapid_private_key(),
            public_key=config.vapid_public_key(),
            claim_email=config.vapid_claim_email(),
        )
    if kind == "console":
        return ConsoleNotifier()
    if kind != "none":
        logger.warning("Unknown notifier %r, notifications disabled", kind)
    return NullNotifier()
