from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from backend.recurrence_calendar import (
    add_interval,
    coerce_day,
    current_period_start,
    next_occurrence,
    validate_frequency,
)

ZERO = Decimal("0")
DUE_WINDOW_DAYS = 3


@dataclass(frozen=True)
class ContributionPlan:
    amount: Decimal
    frequency: str
    last_contribution_date: Optional[date] = None
    next_contribution_date: Optional[date] = None

    def __post_init__(self) -> None:
        if _coerce_amount(self.amount) <= ZERO:
            raise ValueError("Contribution amount must be greater than zero.")
        object.__setattr__(self, "frequency", validate_frequency(self.frequency))


@dataclass(frozen=True)
class ContributionEntry:
    date: date
    amount: Decimal


@dataclass(frozen=True)
class Goal:
    id: str
    name: str
    target_amount: Decimal
    current_amount: Decimal
    contribution_amount: Optional[Decimal] = None
    contribution_frequency: Optional[str] = None
    last_contribution_date: Optional[date] = None
    next_contribution_date: Optional[date] = None
    target_date: Optional[date] = None
    contribution_history: Tuple[ContributionEntry, ...] = ()

    @property
    def plan(self) -> Optional[ContributionPlan]:
        if not has_positive_contribution(self) or not self.contribution_frequency:
            return None
        return ContributionPlan(
            amount=_coerce_amount(self.contribution_amount),
            frequency=self.contribution_frequency,
            last_contribution_date=self.last_contribution_date,
            next_contribution_date=self.next_contribution_date,
        )


@dataclass(frozen=True)
class ContributionReminder:
    goal_id: str
    due_date: date
    days_until: int
    amount: Decimal
    can_afford: bool
    priority: str


def plan_next_date(plan: ContributionPlan, now: date) -> date:
    """Next due date for a plan as seen on ``now``.

    A stored next date that has not passed yet is authoritative. Otherwise the
    lattice is anchored on the stored next date, then the last contribution.
    A plan that was never contributed to is due immediately.
    """
    stored_next = _optional_day(plan.next_contribution_date, now)
    if stored_next is not None and stored_next >= now:
        return stored_next
    anchor = _plan_anchor(plan, now)
    if anchor is None:
        return now
    return next_occurrence(anchor, plan.frequency, now)


def is_contribution_due(plan: ContributionPlan, now: date) -> bool:
    return (plan_next_date(plan, now) - now).days <= DUE_WINDOW_DAYS


def has_contribution_in_current_period(
    plan: Optional[ContributionPlan],
    history: Sequence[ContributionEntry],
    now: date,
) -> bool:
    if not history or plan is None or not plan.frequency:
        return False
    latest = coerce_day(history[-1].date, now)
    return current_period_start(plan.frequency, now) <= latest <= now


def contributions_needed(goal: Goal) -> Optional[int]:
    if not has_positive_contribution(goal):
        return None
    remaining = max(ZERO, _coerce_amount(goal.target_amount) - _coerce_amount(goal.current_amount))
    return math.ceil(remaining / _coerce_amount(goal.contribution_amount))


def upcoming_occurrences(plan: ContributionPlan, now: date, count: int) -> List[date]:
    if count <= 0:
        return []
    first = plan_next_date(plan, now)
    anchor = _plan_anchor(plan, now) or first
    occurrences = [first]
    while len(occurrences) < count:
        occurrences.append(next_occurrence(anchor, plan.frequency, occurrences[-1]))
    return occurrences


def contribution_reminders(
    goals: Iterable[Goal],
    balance: Decimal,
    now: date,
) -> List[ContributionReminder]:
    available = _coerce_amount(balance)
    reminders: List[ContributionReminder] = []
    for goal in goals:
        plan = goal.plan
        if plan is None:
            continue
        if _coerce_amount(goal.current_amount) >= _coerce_amount(goal.target_amount):
            continue
        due_date = plan_next_date(plan, now)
        days_until = (due_date - now).days
        if not 0 <= days_until <= DUE_WINDOW_DAYS:
            continue
        amount = _coerce_amount(plan.amount)
        reminders.append(
            ContributionReminder(
                goal_id=goal.id,
                due_date=due_date,
                days_until=days_until,
                amount=amount,
                can_afford=available >= amount,
                priority="high" if days_until == 0 else "medium",
            )
        )
    return reminders


def has_positive_contribution(goal: Goal) -> bool:
    if goal.contribution_amount is None:
        return False
    return _coerce_amount(goal.contribution_amount) > ZERO


def _plan_anchor(plan: ContributionPlan, now: date) -> Optional[date]:
    stored_next = _optional_day(plan.next_contribution_date, now)
    last = _optional_day(plan.last_contribution_date, now)
    if last is None:
        return stored_next
    # A next date one interval after the last contribution lies on the last
    # contribution's lattice, and only the last date keeps a clamped month day.
    if stored_next is None or add_interval(last, plan.frequency) == stored_next:
        return last
    return stored_next


def _optional_day(value: Optional[date], now: date) -> Optional[date]:
    if value is None or value == "":
        return None
    return coerce_day(value, now)


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
