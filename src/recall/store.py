"""SQLite-backed stores for reminders, users and journal entries."""
from __future__ import annotations

import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from recall.db import get_db
from recall.models import Entry, Pattern, Reminder, User
from recall.timeutil import now_utc, to_db

_REMINDER_COLUMNS = {
    "title",
    "description",
    "type",
    "category",
    "priority",
    "trigger_time",
    "pattern",
    "is_active",
    "sound_enabled",
    "custom_sound",
    "last_triggered",
    "trigger_count",
    "completed_at",
    "source_type",
    "source_entry_id",
    "metadata",
}


def _encode(column: str, value: Any) -> Any:
    if isinstance(value, datetime):
        return to_db(value)
    if column == "pattern":
        if isinstance(value, Pattern):
            value = value.to_dict()
        return json.dumps(value) if value else None
    if column == "metadata":
        return json.dumps(value or {}, default=str)
    if isinstance(value, bool):
        return int(value)
    return value


def _encode_fields(fields: dict[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - _REMINDER_COLUMNS
    if unknown:
        raise ValueError(f"Unknown reminder field(s): {', '.join(sorted(unknown))}")
    return {k: _encode(k, v) for k, v in fields.items()}


class ReminderStore:
    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path

    def create(self, user_id: int, **fields: Any) -> Reminder:
        if not str(fields.get("title", "")).strip():
            raise ValueError("Reminder title is required")
        if fields.get("trigger_time") is None:
            raise ValueError("Reminder trigger_time is required")
        values = _encode_fields(fields)
        columns = ["user_id", *values]
        placeholders = ", ".join("?" for _ in columns)
        with get_db(self.db_path) as db:
            cur = db.execute(
                f"INSERT INTO reminders ({', '.join(columns)}) VALUES ({placeholders})",
                (user_id, *values.values()),
            )
            row = db.execute("SELECT * FROM reminders WHERE id = ?", (cur.lastrowid,)).fetchone()
        return Reminder.from_row(row)

    def get(self, reminder_id: int) -> Reminder | None:
        with get_db(self.db_path) as db:
            row = db.execute("SELECT * FROM reminders WHERE id = ?", (reminder_id,)).fetchone()
        return Reminder.from_row(row) if row else None

    def get_for_user(self, reminder_id: int, user_id: int) -> Reminder | None:
        with get_db(self.db_path) as db:
            row = db.execute(
                "SELECT * FROM reminders WHERE id = ? AND user_id = ?", (reminder_id, user_id)
            ).fetchone()
        return Reminder.from_row(row) if row else None

    def list_for_user(self, user_id: int) -> list[Reminder]:
        with get_db(self.db_path) as db:
            rows = db.execute(
                """SELECT * FROM reminders WHERE user_id = ?
                   ORDER BY is_active DESC, trigger_time, id""",
                (user_id,),
            ).fetchall()
        return [Reminder.from_row(r) for r in rows]

    def list_active(self) -> list[Reminder]:
        with get_db(self.db_path) as db:
            rows = db.execute(
                "SELECT * FROM reminders WHERE is_active = 1 ORDER BY trigger_time, id"
            ).fetchall()
        return [Reminder.from_row(r) for r in rows]

    def find_by_title(self, user_id: int, title: str) -> Reminder | None:
        with get_db(self.db_path) as db:
            row = db.execute(
                "SELECT * FROM reminders WHERE user_id = ? AND title = ?", (user_id, title)
            ).fetchone()
        return Reminder.from_row(row) if row else None

    def find_upcoming(self, now: datetime | None = None) -> list[Reminder]:
        """Active reminders whose trigger time is still ahead of ``now``."""
        with get_db(self.db_path) as db:
            rows = db.execute(
                """SELECT * FROM reminders
                   WHERE is_active = 1 AND trigger_time > ?
                   ORDER BY trigger_time, id""",
                (to_db(now or now_utc()),),
            ).fetchall()
        return [Reminder.from_row(r) for r in rows]

    def find_due(self, now: datetime | None = None) -> list[Reminder]:
        """Active reminders whose trigger time has been reached."""
        with get_db(self.db_path) as db:
            rows = db.execute(
                """SELECT * FROM reminders
                   WHERE is_active = 1 AND trigger_time <= ?
                   ORDER BY trigger_time, id""",
                (to_db(now or now_utc()),),
            ).fetchall()
        return [Reminder.from_row(r) for r in rows]

    def update(self, reminder_id: int, **fields: Any) -> Reminder | None:
        if "title" in fields and not str(fields["title"] or "").strip():
            raise ValueError("Reminder title cannot be empty")
        values = _encode_fields(fields)
        with get_db(self.db_path) as db:
            if values:
                assignments = ", ".join(f"{k} = ?" for k in values)
                db.execute(
                    f"UPDATE reminders SET {assignments}, updated_at = ? WHERE id = ?",
                    (*values.values(), to_db(now_utc()), reminder_id),
                )
            row = db.execute("SELECT * FROM reminders WHERE id = ?", (reminder_id,)).fetchone()
        return Reminder.from_row(row) if row else None

    def record_fire(
        self,
        reminder_id: int,
        fired_at: datetime,
        expected_trigger_time: datetime,
        **changes: Any,
    ) -> tuple[Reminder | None, bool]:
        """Count a fire, then apply ``changes`` only if the schedule is still the one that fired.

        Returns the stored reminder and whether ``changes`` were applied. An
        edit to ``trigger_time`` or ``is_active`` made while the fire was in
        progress wins over ``changes``.
        """
        values = _encode_fields(changes)
        stamp = to_db(now_utc())
        with get_db(self.db_path) as db:
            db.execute(
                """UPDATE reminders
                   SET last_triggered = ?, trigger_count = trigger_count + 1, updated_at = ?
                   WHERE id = ?""",
                (to_db(fired_at), stamp, reminder_id),
            )
            applied = False
            if values:
                assignments = ", ".join(f"{k} = ?" for k in values)
                cur = db.execute(
                    f"""UPDATE reminders SET {assignments}, updated_at = ?
                        WHERE id = ? AND is_active = 1 AND trigger_time = ?""",
                    (*values.values(), stamp, reminder_id, to_db(expected_trigger_time)),
                )
                applied = cur.rowcount > 0
            row = db.execute("SELECT * FROM reminders WHERE id = ?", (reminder_id,)).fetchone()
        return (Reminder.from_row(row) if row else None), applied

    def delete(self, reminder_id: int) -> bool:
        with get_db(self.db_path) as db:
            cur = db.execute("DELETE FROM reminders WHERE id = ?", (reminder_id,))
            deleted = cur.rowcount
        return deleted > 0


class UserStore:
    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path

    def create(self, email: str, name: str = "") -> User:
        with get_db(self.db_path) as db:
            cur = db.execute("INSERT INTO users (email, name) VALUES (?, ?)", (email, name))
            row = db.execute("SELECT * FROM users WHERE id = ?", (cur.lastrowid,)).fetchone()
        return User.from_row(row)

    def get(self, user_id: int) -> User | None:
        with get_db(self.db_path) as db:
            row = db.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return User.from_row(row) if row else None

    def get_by_email(self, email: str) -> User | None:
        with get_db(self.db_path) as db:
            row = db.execute("SELECT * FROM users WHERE email = ?", (email,)).fetchone()
        return User.from_row(row) if row else None

    def list_with_push_enabled(self) -> list[User]:
        with get_db(self.db_path) as db:
            rows = db.execute(
                "SELECT * FROM users WHERE push_notifications = 1 ORDER BY id"
            ).fetchall()
        return [User.from_row(r) for r in rows]

    def set_push_subscription(self, user_id: int, subscription: dict | None) -> User | None:
        with get_db(self.db_path) as db:
            db.execute(
                "UPDATE users SET push_subscription = ? WHERE id = ?",
                (json.dumps(subscription) if subscription else None, user_id),
            )
            row = db.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return User.from_row(row) if row else None

    def list_with_weekly_summaries(self) -> list[User]:
        with get_db(self.db_path) as db:
            rows = db.execute(
                "SELECT * FROM users WHERE weekly_summaries = 1 ORDER BY id"
            ).fetchall()
        return [User.from_row(r) for r in rows]

    def set_preferences(
        self,
        user_id: int,
        *,
        push_notifications: bool | None = None,
        weekly_summaries: bool | None = None,
    ) -> User | None:
        changes = {
            k: int(v)
            for k, v in (
                ("push_notifications", push_notifications),
                ("weekly_summaries", weekly_summaries),
            )
            if v is not None
        }
        with get_db(self.db_path) as db:
            if changes:
                assignments = ", ".join(f"{k} = ?" for k in changes)
                db.execute(
                    f"UPDATE users SET {assignments} WHERE id = ?", (*changes.values(), user_id)
                )
            row = db.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return User.from_row(row) if row else None


class EntryStore:
    def __init__(self, db_path: Path | None = None) -> None:
        self.db_path = db_path

    def create(self, user_id: int, title: str, content: str = "") -> Entry:
        with get_db(self.db_path) as db:
            cur = db.execute(
                "INSERT INTO entries (user_id, title, content) VALUES (?, ?, ?)",
                (user_id, title, content),
            )
            row = db.execute("SELECT * FROM entries WHERE id = ?", (cur.lastrowid,)).fetchone()
        return Entry.from_row(row)

    def get_for_user(self, entry_id: int, user_id: int) -> Entry | None:
        with get_db(self.db_path) as db:
            row = db.execute(
                "SELECT * FROM entries WHERE id = ? AND user_id = ?", (entry_id, user_id)
            ).fetchone()
        return Entry.from_row(row) if row else None

    def list_for_user(self, user_id: int) -> list[Entry]:
        with get_db(self.db_path) as db:
            rows = db.execute(
                "SELECT * FROM entries WHERE user_id = ? ORDER BY created_at DESC, id DESC",
                (user_id,),
            ).fetchall()
        return [Entry.from_row(r) for r in rows]

    def list_recent(self, user_id: int, days: int = 7) -> list[Entry]:
        since = to_db(now_utc() - timedelta(days=days))
        with get_db(self.db_path) as db:
            rows = db.execute(
                """SELECT * FROM entries WHERE user_id = ? AND created_at >= ?
                   ORDER BY created_at, id""",
                (user_id, since),
            ).fetchall()
        return [Entry.from_row(r) for r in rows]

    def update(
        self, entry_id: int, user_id: int, title: str | None = None, content: str | None = None
    ) -> Entry | None:
        changes = {k: v for k, v in (("title", title), ("content", content)) if v is not None}
        with get_db(self.db_path) as db:
            if changes:
                assignments = ", ".join(f"{k} = ?" for k in changes)
                db.execute(
                    f"UPDATE entries SET {assignments}, updated_at = ? WHERE id = ? AND user_id = ?",
                    (*changes.values(), to_db(now_utc()), entry_id, user_id),
                )
            row = db.execute(
                "SELECT * FROM entries WHERE id = ? AND user_id = ?", (entry_id, user_id)
            ).fetchone()
        return Entry.from_row(row) if row else None

    def delete(self, entry_id: int, user_id: int) -> bool:
        with get_db(self.db_path) as db:
            cur = db.execute(
                "DELETE FROM entries WHERE id = ? AND user_id = ?", (entry_id, user_id)
            )
            deleted = cur.rowcount
        return deleted > 0
