from __future__ import annotations

import asyncio
import json
import logging
import re
from collections import Counter
from datetime import datetime, timedelta

import anthropic

from recall import config
from recall.models import Entry
from recall.timeutil import now_utc

logger = logging.getLogger(__name__)

MODEL = "claude-sonnet-4-20250514"

ANALYSIS_PROMPT = """\
Analyze the following journal entry and extract anything the writer may want to be reminded about.

Return a JSON object with these keys:
- "events": list of objects with "title", "description", "datetime" (ISO 8601 or empty), "category", "priority"
- "tasks": list of objects with "title", "description", "due_time" (ISO 8601 or empty), "category", "priority"
- "deadlines": list of objects with "title", "description", "due_time" (ISO 8601 or empty), "category", "priority"

Rules:
- "category" is one of: work, personal, health, family, finance, education, general
- "priority" is one of: low, medium, high
- Interpret relative dates like "Monday" or "tomorrow" relative to {today}
- Add a "confidence" number between 0 and 1 to each item
- If nothing is found for a key, return an empty list
- Return ONLY valid JSON, no markdown fences or extra text

Entry title: {title}
Entry content:
{content}
"""

SUGGESTION_PROMPT = """\
Here are a user's journal entries from the past week. Suggest up to three recurring
reminders that would help with habits or obligations that keep coming up.

Return a JSON list of objects with "title", "description", "category", "priority",
"frequency" (daily, weekly or monthly) and "time" ("HH:MM", 24h).
Return ONLY valid JSON, no markdown fences or extra text.

Entries:
{entries}
"""

SUMMARY_PROMPT = """\
Write a short weekly summary of these journal entries: the overall mood, the main
themes, anything notable, and one or two suggestions for the coming week.
Plain text, no more than 150 words.

Entries:
{entries}
"""

_TASK_PATTERNS = [
    r"(?i)\b(?:i\s+)?need\s+to\b\s+(.+?)(?:\.|$)",
    r"(?i)\b(?:i\s+)?have\s+to\b\s+(.+?)(?:\.|$)",
    r"(?i)\b(?:i\s+)?must\b\s+(.+?)(?:\.|$)",
    r"(?i)\bdon'?t\s+forget\s+to\b\s+(.+?)(?:\.|$)",
    r"(?i)\btodo\b[:\s]+(.+?)(?:\.|$)",
    r"(?i)\bremind\s+me\s+to\b\s+(.+?)(?:\.|$)",
]

_EVENT_PATTERNS = [
    r"(?i)\b((?:meeting|appointment|call|dinner|lunch|interview)\s+with\s+.+?)(?:\.|$)",
    r"(?i)\b((?:doctor|dentist)(?:'s)?\s+appointment.*?)(?:\.|$)",
]

_DEADLINE_PATTERNS = [
    r"(?i)\b(.+?)\s+(?:is\s+)?due\s+(?:on|by)\s+.+?(?:\.|$)",
    r"(?i)\bdeadline\s+(?:for\s+)?(.+?)(?:\.|$)",
]

_WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]

_CATEGORY_KEYWORDS = {
    "work": ("meeting", "report", "client", "project", "boss", "office", "deadline"),
    "health": ("doctor", "dentist", "gym", "exercise", "run", "medication", "meds", "workout"),
    "family": ("mom", "dad", "sister", "brother", "kids", "family", "grandma"),
    "finance": ("pay", "bill", "rent", "tax", "invoice", "bank"),
    "education": ("study", "exam", "class", "homework", "course"),
}

# Habit keyword -> (title, category, frequency)
_HABITS = {
    "exercise": ("Exercise", "health", "daily"),
    "workout": ("Exercise", "health", "daily"),
    "gym": ("Go to the gym", "health", "daily"),
    "meditat": ("Meditate", "health", "daily"),
    "water": ("Drink water", "health", "daily"),
    "medication": ("Take medication", "health", "daily"),
    "sleep": ("Wind down for bed", "health", "daily"),
    "call mom": ("Call mom", "family", "weekly"),
    "budget": ("Review budget", "finance", "weekly"),
    "rent": ("Pay rent", "finance", "monthly"),
}


def _strip_fences(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("```"):
        raw = raw.split("\n", 1)[1]
        raw = raw.rsplit("```", 1)[0]
    return raw


def _complete(prompt: str, max_tokens: int = 1024) -> str:
    client = anthropic.Anthropic(api_key=config.anthropic_api_key())
    message = client.messages.create(
        model=MODEL,
        max_tokens=max_tokens,
        messages=[{"role": "user", "content": prompt}],
    )
    return message.content[0].text


def _ask_claude(prompt: str, max_tokens: int = 1024):
    return json.loads(_strip_fences(_complete(prompt, max_tokens)))


def _guess_category(text: str) -> str:
    lower = text.lower()
    for category, words in _CATEGORY_KEYWORDS.items():
        if any(w in lower for w in words):
            return category
    return "general"


def _guess_time(text: str, now: datetime) -> str:
    """Best-effort absolute time from phrases like 'tomorrow at 3pm' or 'on Friday'."""
    lower = text.lower()
    day = None
    if "tomorrow" in lower:
        day = now + timedelta(days=1)
    elif "today" in lower or "tonight" in lower:
        day = now
    else:
        for i, name in enumerate(_WEEKDAYS):
            if re.search(rf"\b{name}\b", lower):
                ahead = (i - now.weekday()) % 7 or 7
                day = now + timedelta(days=ahead)
                break

    m = re.search(r"\bat\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)?\b", lower)
    if day is None and m is None:
        return ""

    hour, minute = 9, 0
    if m:
        hour = int(m.group(1)) % 24
        minute = int(m.group(2) or 0) % 60
        if m.group(3) == "pm" and hour < 12:
            hour += 12
        elif m.group(3) == "am" and hour == 12:
            hour = 0
    target = (day or now).replace(hour=hour, minute=minute, second=0, microsecond=0)
    return target.isoformat()


def _rule_based_analyze(title: str, content: str, now: datetime) -> dict:
    """Fallback extraction using regex patterns."""
    text = f"{title}\n{content}"
    data: dict = {"events": [], "tasks": [], "deadlines": []}
    seen: set[str] = set()

    groups = (
        ("events", _EVENT_PATTERNS, "datetime"),
        ("deadlines", _DEADLINE_PATTERNS, "due_time"),
        ("tasks", _TASK_PATTERNS, "due_time"),
    )
    for key, patterns, time_key in groups:
        for pattern in patterns:
            for m in re.finditer(pattern, text, re.MULTILINE):
                phrase = m.group(1).strip().rstrip(".,;!").strip()
                if len(phrase) <= 3:
                    continue
                lower = phrase.lower()
                if any(lower in s or s in lower for s in seen):
                    continue
                seen.add(lower)
                line = m.group(0).strip()
                data[key].append(
                    {
                        "title": phrase[:1].upper() + phrase[1:],
                        "description": line,
                        time_key: _guess_time(line, now),
                        "category": _guess_category(line),
                        "priority": "high" if key == "deadlines" else "medium",
                        "confidence": 0.4,
                    }
                )
    return data


async def analyze_entry(title: str, content: str) -> dict:
    """Find events, tasks and deadlines in a journal entry. Uses Claude if available, else regex fallback."""
    now = now_utc()
    data = None
    if config.anthropic_api_key():
        try:
            data = await asyncio.to_thread(
                _ask_claude,
                ANALYSIS_PROMPT.format(title=title, content=content, today=now.date().isoformat()),
            )
            if not isinstance(data, dict):
                raise ValueError("analysis response is not a JSON object")
        except Exception:
            logger.exception("AI analysis failed, falling back to rule-based extraction")
            data = None

    if data is None:
        logger.info("Using rule-based analysis")
        data = _rule_based_analyze(title, content, now)
    return data


def _rule_based_suggestions(entries: list[Entry]) -> list[dict]:
    counts: Counter[str] = Counter()
    for entry in entries:
        text = f"{entry.title}\n{entry.content}".lower()
        for keyword in _HABITS:
            if keyword in text:
                counts[keyword] += 1

    suggestions = []
    titles: set[str] = set()
    for keyword, n in counts.most_common():
        if n < 2:
            break
        title, category, frequency = _HABITS[keyword]
        if title in titles:
            continue
        titles.add(title)
        suggestions.append(
            {
                "title": title,
                "description": f"You mentioned this in {n} entries this week.",
                "category": category,
                "priority": "medium",
                "frequency": frequency,
                "time": "09:00",
            }
        )
    return suggestions


async def suggest_reminders(entries: list[Entry]) -> list[dict]:
    """Suggest recurring reminders from recent journal entries."""
    if not entries:
        return []

    if config.anthropic_api_key():
        try:
            data = await asyncio.to_thread(
                _ask_claude, SUGGESTION_PROMPT.format(entries=_joined(entries))
            )
            if isinstance(data, list):
                return [s for s in data if isinstance(s, dict) and s.get("title")]
            logger.warning("Suggestion response was not a list, using rule-based suggestions")
        except Exception:
            logger.exception("AI suggestions failed, falling back to rule-based suggestions")

    return _rule_based_suggestions(entries)


def _joined(entries: list[Entry]) -> str:
    return "\n\n".join(f"# {e.title}\n{e.content}" for e in entries)


def _rule_based_summary(entries: list[Entry]) -> str:
    themes: Counter[str] = Counter()
    for entry in entries:
        category = _guess_category(f"{entry.title}\n{entry.content}")
        if category != "general":
            themes[category] += 1

    summary = f"You wrote {len(entries)} {'entry' if len(entries) == 1 else 'entries'} this week."
    if themes:
        top = ", ".join(name for name, _ in themes.most_common(3))
        summary += f" Recurring themes: {top}."
    return summary


async def summarize_week(entries: list[Entry]) -> str:
    """Weekly journal summary. Uses Claude if available, else a plain count of themes."""
    if not entries:
        return "No entries found for this week."

    if config.anthropic_api_key():
        try:
            text = await asyncio.to_thread(
                _complete, SUMMARY_PROMPT.format(entries=_joined(entries))
            )
            if text.strip():
                return text.strip()
        except Exception:
            logger.exception("AI summary failed, falling back to rule-based summary")

    return _rule_based_summary(entries)
