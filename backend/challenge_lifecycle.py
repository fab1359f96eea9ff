from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from backend.challenge_progress import CHALLENGE_TYPES, SavingsChallenge

ZERO = Decimal("0")
HUNDRED = Decimal("100")
DEFAULT_TARGET_PROGRESS = HUNDRED


@dataclass(frozen=True)
class ChallengeTemplate:
    id: str
    type: str
    title: str
    description: str
    difficulty: str
    duration: int
    reward: str
    target_amount: Optional[Decimal] = None
    target_category: Optional[str] = None


@dataclass(frozen=True)
class ChallengeSummary:
    active: int
    completed: int
    failed: int
    max_streak: int


CHALLENGE_TEMPLATES = (
    ChallengeTemplate(
        id="no_spend_weekend",
        type="no_spend",
        title="No-spend weekend",
        description="Spend nothing for a whole weekend. Use what you already have at home.",
        difficulty="medium",
        duration=2,
        reward="Self-control medal",
    ),
    ChallengeTemplate(
        id="save_100",
        type="save_amount",
        title="Save 100",
        description="Put aside 100 extra this month on top of your regular savings.",
        difficulty="easy",
        duration=30,
        target_amount=Decimal("100"),
        reward="First step",
    ),
    ChallengeTemplate(
        id="streak_7",
        type="streak",
        title="7-day streak",
        description="Log every transaction for 7 days in a row.",
        difficulty="easy",
        duration=7,
        reward="Consistency starter",
    ),
    ChallengeTemplate(
        id="dining_cap",
        type="reduce_category",
        title="Cook at home",
        description="Keep dining and takeout spending under 150 for two weeks.",
        difficulty="hard",
        duration=14,
        target_amount=Decimal("150"),
        target_category="Dining",
        reward="Home chef",
    ),
)


def find_template(template_id: str) -> ChallengeTemplate:
    for template in CHALLENGE_TEMPLATES:
        if template.id == template_id:
            return template
    raise KeyError(template_id)


def start_challenge(
    template: ChallengeTemplate,
    now: date,
    challenge_id: Optional[str] = None,
) -> SavingsChallenge:
    challenge_type = template.type.strip().lower()
    if challenge_type not in CHALLENGE_TYPES:
        raise ValueError(f"Unsupported challenge type: {template.type}")
    if template.duration <= 0:
        raise ValueError("Challenge duration must be greater than zero.")

    if challenge_type == "streak":
        target_progress = Decimal(template.duration)
    elif template.target_amount:
        target_progress = _coerce_amount(template.target_amount)
    else:
        target_progress = DEFAULT_TARGET_PROGRESS

    return SavingsChallenge(
        id=challenge_id or f"{template.id}_{uuid.uuid4().hex[:12]}",
        type=challenge_type,
        title=template.title,
        start_date=now,
        end_date=now + timedelta(days=template.duration),
        duration=template.duration,
        target_progress=target_progress,
        current_progress=ZERO,
        status="active",
        target_category=template.target_category,
        target_amount=template.target_amount,
    )


def days_left(challenge: SavingsChallenge, now: date) -> int:
    return max(0, (challenge.end_date - now).days)


def challenge_progress_percent(challenge: SavingsChallenge) -> int:
    target = _coerce_amount(challenge.target_progress)
    if target <= ZERO:
        return 0
    percent = _coerce_amount(challenge.current_progress) / target * HUNDRED
    return int(min(HUNDRED, percent).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def summarize_challenges(challenges: Iterable[SavingsChallenge]) -> ChallengeSummary:
    active = completed = failed = max_streak = 0
    for challenge in challenges:
        if challenge.status == "active":
            active += 1
        elif challenge.status == "completed":
            completed += 1
        elif challenge.status == "failed":
            failed += 1
        max_streak = max(max_streak, challenge.streak_days or 0)
    return ChallengeSummary(
        active=active,
        completed=completed,
        failed=failed,
        max_streak=max_streak,
    )


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
