from __future__ import annotations

import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

DB_DIR = Path.home() / ".recall"
DB_PATH = Path(os.environ.get("RECALL_DB_PATH", DB_DIR / "recall.db"))

SCHEMA = """\
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL DEFAULT '',
    push_subscription TEXT,
    push_notifications INTEGER NOT NULL DEFAULT 1,
    weekly_summaries INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now'))
);

CREATE TABLE IF NOT EXISTS entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    content TEXT NOT NULL DEFAULT '',
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now')),
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now'))
);

CREATE TABLE IF NOT EXISTS reminders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    title TEXT NOT NULL CHECK(length(trim(title)) > 0),
    description TEXT NOT NULL DEFAULT '',
    type TEXT NOT NULL DEFAULT 'manual'
        CHECK(type IN ('manual', 'pattern', 'ai-suggested')),
    category TEXT NOT NULL DEFAULT 'general'
        CHECK(category IN ('work', 'personal', 'health', 'family', 'finance', 'education', 'general')),
    priority TEXT NOT NULL DEFAULT 'medium'
        CHECK(priority IN ('low', 'medium', 'high')),
    trigger_time TEXT NOT NULL,
    pattern TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    sound_enabled INTEGER NOT NULL DEFAULT 1,
    custom_sound TEXT NOT NULL DEFAULT 'remind.mp3',
    last_triggered TEXT,
    trigger_count INTEGER NOT NULL DEFAULT 0,
    completed_at TEXT,
    source_type TEXT NOT NULL DEFAULT 'manual'
        CHECK(source_type IN ('manual', 'voice-analysis', 'text-analysis', 'calendar-import')),
    source_entry_id INTEGER REFERENCES entries(id) ON DELETE SET NULL,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now')),
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%S+00:00', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_reminders_user_active ON reminders (user_id, is_active);
CREATE INDEX IF NOT EXISTS idx_reminders_active_trigger ON reminders (is_active, trigger_time);
"""


def _connect(db_path: Path | None = None) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path or DB_PATH))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Path | None = None) -> None:
    target = Path(db_path or DB_PATH)
    target.parent.mkdir(parents=True, exist_ok=True)
    conn = _connect(target)
    conn.executescript(SCHEMA)
    conn.close()


@contextmanager
def get_db(db_path: Path | None = None) -> Generator[sqlite3.Connection, None, None]:
    conn = _connect(db_path)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
