from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from backend.contribution_scheduler import Goal, has_positive_contribution
from backend.recurrence_calendar import coerce_day, validate_frequency

ZERO = Decimal("0")
WEEKS_PER_MONTH = Decimal("4.33")
DAYS_PER_MONTH = 30
MONTHS_PER_YEAR = 12

PERIODS_PER_MONTH = {
    "weekly": WEEKS_PER_MONTH,
    "biweekly": Decimal("2"),
    "monthly": Decimal("1"),
}


@dataclass(frozen=True)
class TimeRemaining:
    kind: str
    years: int = 0
    months: int = 0
    weeks: int = 0
    days: int = 0


def estimate_time_remaining(goal: Goal, now: date) -> TimeRemaining:
    """Project how long until ``goal`` is reached.

    A contribution plan wins over a target date; a goal with neither has no
    estimate.
    """
    target = _coerce_amount(goal.target_amount)
    current = _coerce_amount(goal.current_amount)
    if current >= target:
        return TimeRemaining(kind="reached")

    if has_positive_contribution(goal):
        periods_needed = (target - current) / _coerce_amount(goal.contribution_amount)
        return _from_periods(periods_needed, _periods_per_month(goal.contribution_frequency))

    if goal.target_date is not None:
        days = (coerce_day(goal.target_date, now) - now).days
        if days <= 0:
            return TimeRemaining(kind="deadline_passed")
        if days < DAYS_PER_MONTH:
            return TimeRemaining(kind="days", days=days)
        return TimeRemaining(kind="months", months=math.ceil(days / DAYS_PER_MONTH))

    return TimeRemaining(kind="no_plan")


def _from_periods(periods: Decimal, per_month: Decimal) -> TimeRemaining:
    months = periods / per_month
    if months < 1:
        # Weekly periods are already weeks.
        if per_month == WEEKS_PER_MONTH:
            return TimeRemaining(kind="weeks", weeks=math.ceil(periods))
        return TimeRemaining(kind="weeks", weeks=math.ceil(periods * WEEKS_PER_MONTH / per_month))
    if months < MONTHS_PER_YEAR:
        return TimeRemaining(kind="months", months=math.ceil(months))
    years = math.floor(months / MONTHS_PER_YEAR)
    leftover = math.ceil(months - years * MONTHS_PER_YEAR)
    if leftover == MONTHS_PER_YEAR:
        years += 1
        leftover = 0
    return TimeRemaining(kind="years", years=years, months=leftover)


def _periods_per_month(frequency: str | None) -> Decimal:
    if not frequency:
        return PERIODS_PER_MONTH["monthly"]
    return PERIODS_PER_MONTH[validate_frequency(frequency)]


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
