from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from backend.recurrence_calendar import coerce_day

ZERO = Decimal("0")

CHALLENGE_TYPES = {"no_spend", "reduce_category", "save_amount", "streak", "custom"}
TERMINAL_STATUSES = {"completed", "failed"}


@dataclass(frozen=True)
class Transaction:
    amount: Decimal
    type: str
    date: date
    category: Optional[str] = None


@dataclass(frozen=True)
class SavingsChallenge:
    id: str
    type: str
    title: str
    start_date: date
    end_date: date
    duration: int
    target_progress: Decimal
    current_progress: Decimal = ZERO
    status: str = "not_started"
    target_category: Optional[str] = None
    target_amount: Optional[Decimal] = None
    streak_days: Optional[int] = None


def evaluate_challenge(
    challenge: SavingsChallenge,
    transactions: Iterable[Transaction],
    now: date,
) -> SavingsChallenge:
    """Recompute progress and status of ``challenge`` as of ``now``."""
    challenge_type = challenge.type.strip().lower()
    if challenge_type not in CHALLENGE_TYPES:
        raise ValueError(f"Unsupported challenge type: {challenge.type}")
    if challenge.status in TERMINAL_STATUSES or challenge.status == "not_started":
        return challenge

    start_date = coerce_day(challenge.start_date, now)
    end_date = coerce_day(challenge.end_date, now)
    if now > end_date:
        # The last computed progress is the final value.
        completed = _coerce_amount(challenge.current_progress) >= _coerce_amount(
            challenge.target_progress
        )
        return replace(challenge, status="completed" if completed else "failed")

    window = [
        txn
        for txn in transactions
        if start_date <= coerce_day(txn.date, now) <= now
    ]
    evaluator = PROGRESS_EVALUATORS[challenge_type]
    progress = evaluator(challenge, window, start_date, now)
    updated = replace(challenge, current_progress=progress, status="active")
    if challenge_type == "streak":
        updated = replace(updated, streak_days=int(progress))
    return updated


def evaluate_challenges(
    challenges: Iterable[SavingsChallenge],
    transactions: Iterable[Transaction],
    now: date,
) -> List[SavingsChallenge]:
    ledger = list(transactions)
    return [evaluate_challenge(challenge, ledger, now) for challenge in challenges]


def _no_spend_progress(
    challenge: SavingsChallenge,
    window: Sequence[Transaction],
    start_date: date,
    now: date,
) -> Decimal:
    if any(_is_type(txn, "expense") for txn in window):
        return ZERO
    return Decimal(max(0, (now - start_date).days))


def _reduce_category_progress(
    challenge: SavingsChallenge,
    window: Sequence[Transaction],
    start_date: date,
    now: date,
) -> Decimal:
    if not challenge.target_category:
        return ZERO
    category_spend = _sum_expenses(window, category=challenge.target_category)
    return max(ZERO, _coerce_amount(challenge.target_progress) - category_spend)


def _save_amount_progress(
    challenge: SavingsChallenge,
    window: Sequence[Transaction],
    start_date: date,
    now: date,
) -> Decimal:
    return max(ZERO, _sum_income(window) - _sum_expenses(window))


def _streak_progress(
    challenge: SavingsChallenge,
    window: Sequence[Transaction],
    start_date: date,
    now: date,
) -> Decimal:
    active_days = {coerce_day(txn.date, now) for txn in window}
    streak = 0
    day = start_date
    while day <= now:
        if day in active_days:
            streak += 1
        elif day < now:
            streak = 0
        day += timedelta(days=1)
    return Decimal(streak)


def _custom_progress(
    challenge: SavingsChallenge,
    window: Sequence[Transaction],
    start_date: date,
    now: date,
) -> Decimal:
    return _coerce_amount(challenge.current_progress)


ProgressEvaluator = Callable[[SavingsChallenge, Sequence[Transaction], date, date], Decimal]

PROGRESS_EVALUATORS: Dict[str, ProgressEvaluator] = {
    "no_spend": _no_spend_progress,
    "reduce_category": _reduce_category_progress,
    "save_amount": _save_amount_progress,
    "streak": _streak_progress,
    "custom": _custom_progress,
}


def _is_type(txn: Transaction, txn_type: str) -> bool:
    return txn.type.strip().lower() == txn_type


def _sum_expenses(
    transactions: Iterable[Transaction],
    *,
    category: Optional[str] = None,
) -> Decimal:
    total = ZERO
    for txn in transactions:
        if not _is_type(txn, "expense"):
            continue
        if category is not None and txn.category != category:
            continue
        total += _coerce_amount(txn.amount)
    return total


def _sum_income(transactions: Iterable[Transaction]) -> Decimal:
    total = ZERO
    for txn in transactions:
        if not _is_type(txn, "income"):
            continue
        total += _coerce_amount(txn.amount)
    return total


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
