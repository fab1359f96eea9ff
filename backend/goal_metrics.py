from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from backend.contribution_scheduler import Goal
from backend.recurrence_calendar import validate_frequency
from backend.time_remaining import PERIODS_PER_MONTH

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")


@dataclass(frozen=True)
class GoalSummary:
    total_saved: Decimal
    total_target: Decimal
    completed: int
    active: int
    average_progress: int


def remaining_amount(goal: Goal) -> Decimal:
    return max(ZERO, _coerce_amount(goal.target_amount) - _coerce_amount(goal.current_amount))


def progress_percent(goal: Goal) -> int:
    target = _coerce_amount(goal.target_amount)
    if target <= ZERO:
        return 0
    percent = _coerce_amount(goal.current_amount) / target * HUNDRED
    return int(min(HUNDRED, percent).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def recommended_contribution(goal: Goal, frequency: str, months: int) -> Decimal:
    """Per-period amount that closes the gap in ``months`` months."""
    if months <= 0:
        raise ValueError("months must be greater than zero.")
    monthly_needed = remaining_amount(goal) / Decimal(months)
    per_period = monthly_needed / PERIODS_PER_MONTH[validate_frequency(frequency)]
    return per_period.quantize(CENTS, rounding=ROUND_HALF_UP)


def summarize_goals(goals: Iterable[Goal]) -> GoalSummary:
    total_saved = ZERO
    total_target = ZERO
    completed = 0
    count = 0
    for goal in goals:
        current = _coerce_amount(goal.current_amount)
        target = _coerce_amount(goal.target_amount)
        total_saved += current
        total_target += target
        count += 1
        if current >= target:
            completed += 1

    average_progress = 0
    if total_target > ZERO:
        average_progress = int(
            (total_saved / total_target * HUNDRED).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        )
    return GoalSummary(
        total_saved=total_saved,
        total_target=total_target,
        completed=completed,
        active=count - completed,
        average_progress=average_progress,
    )


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
