"""Next-occurrence arithmetic for recurring reminders."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta

from croniter import croniter
from dateutil.relativedelta import relativedelta

from recall.models import Pattern

logger = logging.getLogger(__name__)

_STEPS = {
    "daily": relativedelta(days=1),
    "weekly": relativedelta(weeks=1),
    "monthly": relativedelta(months=1),
    "yearly": relativedelta(years=1),
}

# Caps the catch-up loop in next_trigger_after
_MAX_STEPS = 100_000


def _next_listed_weekday(current: datetime, days_of_week: list[int]) -> datetime:
    # days_of_week uses 0 = Sunday; datetime.weekday() uses 0 = Monday
    wanted = {d % 7 for d in days_of_week}
    for offset in range(1, 8):
        candidate = current + timedelta(days=offset)
        if (candidate.weekday() + 1) % 7 in wanted:
            return candidate
    return current + timedelta(days=7)


def _next_cron(current: datetime, expression: str) -> datetime | None:
    try:
        return croniter(expression, current).get_next(datetime)
    except (ValueError, KeyError) as exc:
        logger.warning("Invalid custom pattern %r, falling back to daily: %s", expression, exc)
        return None


def next_trigger(current: datetime, pattern: Pattern | None) -> datetime:
    """Return the occurrence after ``current`` for ``pattern``.

    Unknown, missing or unusable patterns fall back to daily.
    """
    frequency = pattern.frequency if pattern else None

    if frequency == "weekly" and pattern.days_of_week:
        return _next_listed_weekday(current, pattern.days_of_week)

    if frequency == "custom" and pattern.custom_pattern:
        nxt = _next_cron(current, pattern.custom_pattern)
        if nxt is not None:
            return nxt

    return current + _STEPS.get(frequency, _STEPS["daily"])


def next_trigger_after(current: datetime, pattern: Pattern | None, after: datetime) -> datetime:
    """Step ``current`` forward by ``pattern`` until it is strictly later than ``after``.

    Always advances at least once. Missed occurrences are skipped, but the
    cadence stays anchored to ``current`` rather than to ``after``.
    """
    nxt = next_trigger(current, pattern)
    steps = 1
    while nxt <= after and steps < _MAX_STEPS:
        nxt = next_trigger(nxt, pattern)
        steps += 1
    return nxt
