from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from recall.timeutil import from_db

FREQUENCIES = ("daily", "weekly", "monthly", "yearly", "once", "custom")
CATEGORIES = ("work", "personal", "health", "family", "finance", "education", "general")
PRIORITIES = ("low", "medium", "high")
REMINDER_TYPES = ("manual", "pattern", "ai-suggested")
SOURCE_TYPES = ("manual", "voice-analysis", "text-analysis", "calendar-import")


@dataclass
class Pattern:
    frequency: str | None = None
    days_of_week: list[int] = field(default_factory=list)  # 0 = Sunday
    time: str = ""  # "HH:MM"
    custom_pattern: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Pattern | None:
        if not data:
            return None
        return cls(
            frequency=data.get("frequency"),
            days_of_week=list(data.get("days_of_week") or []),
            time=data.get("time") or "",
            custom_pattern=data.get("custom_pattern") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class User:
    id: int = 0
    email: str = ""
    name: str = ""
    push_subscription: dict[str, Any] | None = None
    push_notifications: bool = True
    weekly_summaries: bool = True
    created_at: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> User:
        sub = row["push_subscription"]
        return cls(
            id=row["id"],
            email=row["email"],
            name=row["name"],
            push_subscription=json.loads(sub) if sub else None,
            push_notifications=bool(row["push_notifications"]),
            weekly_summaries=bool(row["weekly_summaries"]),
            created_at=row["created_at"],
        )


@dataclass
class Entry:
    id: int = 0
    user_id: int = 0
    title: str = ""
    content: str = ""
    created_at: str = ""
    updated_at: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Entry:
        return cls(**{k: row[k] for k in row.keys()})


@dataclass
class Reminder:
    id: int = 0
    user_id: int = 0
    title: str = ""
    description: str = ""
    type: str = "manual"
    category: str = "general"
    priority: str = "medium"
    trigger_time: datetime | None = None
    pattern: Pattern | None = None
    is_active: bool = True
    sound_enabled: bool = True
    custom_sound: str = "remind.mp3"
    last_triggered: datetime | None = None
    trigger_count: int = 0
    completed_at: datetime | None = None
    source_type: str = "manual"
    source_entry_id: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_recurring(self) -> bool:
        return self.pattern is not None and self.pattern.frequency not in (None, "", "once")

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Reminder:
        pattern = row["pattern"]
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"],
            type=row["type"],
            category=row["category"],
            priority=row["priority"],
            trigger_time=from_db(row["trigger_time"]),
            pattern=Pattern.from_dict(json.loads(pattern)) if pattern else None,
            is_active=bool(row["is_active"]),
            sound_enabled=bool(row["sound_enabled"]),
            custom_sound=row["custom_sound"],
            last_triggered=from_db(row["last_triggered"]),
            trigger_count=row["trigger_count"],
            completed_at=from_db(row["completed_at"]),
            source_type=row["source_type"],
            source_entry_id=row["source_entry_id"],
            metadata=json.loads(row["metadata"] or "{}"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
