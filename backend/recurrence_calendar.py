from __future__ import annotations

import logging
from calendar import monthrange
from datetime import date, datetime, timedelta

logger = logging.getLogger(__name__)

WEEKLY_DAYS = 7
BIWEEKLY_DAYS = 14
BIWEEKLY_WINDOW_DAYS = 14
SUPPORTED_FREQUENCIES = {"weekly", "biweekly", "monthly"}
MAX_RECURRENCE_STEPS = 10_000


class RecurrenceLoopError(RuntimeError):
    """Raised when an anchor is too far from now to reach within the step limit."""


def next_occurrence(anchor: date, frequency: str, now: date) -> date:
    """Return the first date after ``now`` on the lattice started at ``anchor``.

    Monthly dates are always derived from the anchor, so a 31st anchor lands on
    the last day of shorter months without drifting afterwards.
    """
    normalized_frequency = validate_frequency(frequency)
    candidate = anchor
    steps = 0
    while candidate <= now:
        steps += 1
        if steps > MAX_RECURRENCE_STEPS:
            raise RecurrenceLoopError(
                f"No {normalized_frequency} occurrence after {now.isoformat()} within "
                f"{MAX_RECURRENCE_STEPS} steps of anchor {anchor.isoformat()}."
            )
        if normalized_frequency == "monthly":
            candidate = _add_months(anchor, steps, anchor.day)
        else:
            interval = WEEKLY_DAYS if normalized_frequency == "weekly" else BIWEEKLY_DAYS
            candidate = anchor + timedelta(days=interval * steps)
    return candidate


def current_period_start(frequency: str, now: date) -> date:
    normalized_frequency = validate_frequency(frequency)
    if normalized_frequency == "weekly":
        # weekday() is Monday=0, weeks here start on Sunday.
        return now - timedelta(days=(now.weekday() + 1) % 7)
    if normalized_frequency == "biweekly":
        return now - timedelta(days=BIWEEKLY_WINDOW_DAYS)
    return now.replace(day=1)


def add_interval(value: date, frequency: str) -> date:
    normalized_frequency = validate_frequency(frequency)
    if normalized_frequency == "monthly":
        return add_months(value, 1)
    interval = WEEKLY_DAYS if normalized_frequency == "weekly" else BIWEEKLY_DAYS
    return value + timedelta(days=interval)


def add_months(value: date, months: int) -> date:
    return _add_months(value, months, value.day)


def validate_frequency(frequency: str) -> str:
    normalized = _normalize_frequency(frequency)
    if normalized == "byweekly":
        normalized = "biweekly"
    if normalized not in SUPPORTED_FREQUENCIES:
        raise ValueError("Only weekly, biweekly, or monthly frequencies are supported.")
    return normalized


def coerce_day(value: date | datetime | str | None, fallback: date) -> date:
    """Parse a calendar day, falling back to ``fallback`` instead of raising."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            # Stored values may be full ISO timestamps; only the day matters.
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    logger.warning("Unparsable date %r, using %s instead.", value, fallback.isoformat())
    return fallback


def _normalize_frequency(value: str) -> str:
    return "".join(ch for ch in value.strip().lower() if ch.isalnum())


def _add_months(start_date: date, months: int, anchor_day: int) -> date:
    total_month = start_date.month - 1 + months
    year = start_date.year + total_month // 12
    month = total_month % 12 + 1
    last_day = monthrange(year, month)[1]
    day = min(anchor_day, last_day)
    return date(year, month, day)
