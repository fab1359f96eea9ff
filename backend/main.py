import logging
import os
from datetime import date, datetime
from decimal import Decimal

from fastapi import FastAPI, HTTPException, Header, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
    func,
    insert,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError

from backend.challenge_lifecycle import (
    CHALLENGE_TEMPLATES,
    challenge_progress_percent,
    days_left,
    find_template,
    start_challenge,
    summarize_challenges,
)
from backend.challenge_progress import SavingsChallenge, Transaction, evaluate_challenges
from backend.contribution_scheduler import (
    ContributionEntry,
    Goal,
    contribution_reminders,
    contributions_needed,
    has_contribution_in_current_period,
    is_contribution_due,
    plan_next_date,
    upcoming_occurrences,
)
from backend.goal_metrics import (
    progress_percent,
    recommended_contribution,
    remaining_amount,
    summarize_goals,
)
from backend.recurrence_calendar import (
    RecurrenceLoopError,
    add_interval,
    add_months,
    validate_frequency,
)
from backend.time_remaining import estimate_time_remaining

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logging.getLogger("backend").setLevel(LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI()

frontend_origin = os.getenv("FRONTEND_ORIGIN", "http://localhost:3000")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

database_url = os.getenv("DATABASE_URL", "sqlite:///./savings.db")
connect_args = {}
if database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(database_url, connect_args=connect_args)
metadata = MetaData()

UPCOMING_CONTRIBUTIONS = 3

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), unique=True, nullable=False),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

transactions = Table(
    "transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("type", String(20), nullable=False),
    Column("category", String(255)),
    Column("date", Date, nullable=False),
    Column("notes", String(500)),
)

goals = Table(
    "goals",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("name", String(255), nullable=False),
    Column("target_amount", Numeric(12, 2), nullable=False),
    Column("current_amount", Numeric(12, 2), nullable=False, server_default="0"),
    Column("contribution_amount", Numeric(12, 2)),
    Column("contribution_frequency", String(20)),
    Column("last_contribution_date", Date),
    Column("next_contribution_date", Date),
    Column("target_date", Date),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)

goal_contributions = Table(
    "goal_contributions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("goal_id", Integer, ForeignKey("goals.id"), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("date", Date, nullable=False),
)

challenges = Table(
    "challenges",
    metadata,
    Column("id", String(80), primary_key=True),
    Column("user_id", Integer, ForeignKey("users.id"), nullable=False),
    Column("template_id", String(80), nullable=False),
    Column("type", String(30), nullable=False),
    Column("title", String(255), nullable=False),
    Column("start_date", Date, nullable=False),
    Column("end_date", Date, nullable=False),
    Column("duration", Integer, nullable=False),
    Column("target_progress", Numeric(12, 2), nullable=False),
    Column("current_progress", Numeric(12, 2), nullable=False, server_default="0"),
    Column("status", String(20), nullable=False),
    Column("target_category", String(255)),
    Column("target_amount", Numeric(12, 2)),
    Column("streak_days", Integer),
    Column("created_at", DateTime, nullable=False, server_default=func.now()),
)


@app.on_event("startup")
def init_db() -> None:
    metadata.create_all(engine)


class UserPayload(BaseModel):
    email: str


class UserResponse(BaseModel):
    id: int
    email: str
    created_at: datetime | None = None


class TransactionType:
    values = {"income", "expense"}

    @classmethod
    def validate(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in cls.values:
            raise ValueError("Invalid transaction type.")
        return normalized


class TransactionPayload(BaseModel):
    amount: Decimal
    type: str
    category: str | None = None
    date: date
    notes: str | None = None

    @classmethod
    def validate_payload(cls, payload: "TransactionPayload") -> "TransactionPayload":
        payload.type = TransactionType.validate(payload.type)
        payload.category = payload.category.strip() if payload.category else None
        payload.notes = payload.notes.strip() if payload.notes else None
        if payload.amount < 0:
            raise ValueError("Amount must not be negative.")
        return payload


class TransactionResponse(TransactionPayload):
    id: int
    user_id: int


class GoalPayload(BaseModel):
    name: str
    target_amount: Decimal
    current_amount: Decimal = Decimal("0")
    contribution_amount: Decimal | None = None
    contribution_frequency: str | None = None
    next_contribution_date: date | None = None
    target_date: date | None = None
    target_months: int | None = None

    @classmethod
    def validate_payload(cls, payload: "GoalPayload") -> "GoalPayload":
        payload.name = payload.name.strip()
        if not payload.name:
            raise ValueError("Goal name required.")
        if payload.target_amount <= 0:
            raise ValueError("Target amount must be greater than zero.")
        if payload.current_amount < 0:
            raise ValueError("Current amount must not be negative.")
        if payload.contribution_amount is not None and payload.contribution_amount <= 0:
            raise ValueError("Contribution amount must be greater than zero.")
        if payload.contribution_frequency:
            payload.contribution_frequency = validate_frequency(payload.contribution_frequency)
        else:
            payload.contribution_frequency = None
        if payload.target_months is not None:
            if payload.target_months <= 0:
                raise ValueError("Target months must be greater than zero.")
            payload.contribution_frequency = payload.contribution_frequency or "monthly"
        return payload


class GoalResponse(BaseModel):
    id: int
    user_id: int
    name: str
    target_amount: Decimal
    current_amount: Decimal
    contribution_amount: Decimal | None = None
    contribution_frequency: str | None = None
    last_contribution_date: date | None = None
    next_contribution_date: date | None = None
    target_date: date | None = None
    created_at: datetime | None = None


class ContributionPayload(BaseModel):
    amount: Decimal
    contributed_on: date | None = None

    @classmethod
    def validate_payload(cls, payload: "ContributionPayload") -> "ContributionPayload":
        if payload.amount <= 0:
            raise ValueError("Contribution amount must be greater than zero.")
        return payload


class ContributionResponse(BaseModel):
    id: int
    goal_id: int
    amount: Decimal
    date: date
    goal: GoalResponse


class TimeRemainingResponse(BaseModel):
    kind: str
    years: int = 0
    months: int = 0
    weeks: int = 0
    days: int = 0


class GoalEvaluationResponse(BaseModel):
    goal_id: int
    name: str
    as_of: date
    target_amount: Decimal
    current_amount: Decimal
    remaining_amount: Decimal
    progress_percent: int
    contributions_needed: int | None = None
    is_contribution_due: bool = False
    has_contribution_in_current_period: bool = False
    next_contribution_date: date | None = None
    upcoming_contributions: list[date] = []
    time_remaining: TimeRemainingResponse


class ContributionReminderResponse(BaseModel):
    goal_id: int
    due_date: date
    days_until: int
    amount: Decimal
    can_afford: bool
    priority: str


class GoalSummaryResponse(BaseModel):
    total_saved: Decimal
    total_target: Decimal
    completed: int
    active: int
    average_progress: int


class ChallengeTemplateResponse(BaseModel):
    id: str
    type: str
    title: str
    description: str
    difficulty: str
    duration: int
    reward: str
    target_amount: Decimal | None = None
    target_category: str | None = None


class ChallengePayload(BaseModel):
    template_id: str

    @classmethod
    def validate_payload(cls, payload: "ChallengePayload") -> "ChallengePayload":
        payload.template_id = payload.template_id.strip()
        if not payload.template_id:
            raise ValueError("Challenge template required.")
        return payload


class ChallengeResponse(BaseModel):
    id: str
    template_id: str
    type: str
    title: str
    start_date: date
    end_date: date
    duration: int
    target_progress: Decimal
    current_progress: Decimal
    status: str
    target_category: str | None = None
    target_amount: Decimal | None = None
    streak_days: int | None = None
    days_left: int
    progress_percent: int


class ChallengeSummaryResponse(BaseModel):
    active: int
    completed: int
    failed: int
    max_streak: int


def get_user_id(x_user_id: str | None = Header(None)) -> int:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user identity.")
    try:
        user_id = int(x_user_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid user identity.") from exc
    with engine.begin() as conn:
        result = conn.execute(select(users.c.id).where(users.c.id == user_id))
        if not result.first():
            raise HTTPException(status_code=404, detail="User not found.")
    return user_id


def coerce_decimal(value: Decimal | float | int | str) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def goal_response(row) -> GoalResponse:
    return GoalResponse(
        id=row["id"],
        user_id=row["user_id"],
        name=row["name"],
        target_amount=row["target_amount"],
        current_amount=row["current_amount"],
        contribution_amount=row["contribution_amount"],
        contribution_frequency=row["contribution_frequency"],
        last_contribution_date=row["last_contribution_date"],
        next_contribution_date=row["next_contribution_date"],
        target_date=row["target_date"],
        created_at=row["created_at"],
    )


def build_goal(row, history_rows) -> Goal:
    return Goal(
        id=str(row["id"]),
        name=row["name"],
        target_amount=coerce_decimal(row["target_amount"]),
        current_amount=coerce_decimal(row["current_amount"]),
        contribution_amount=(
            coerce_decimal(row["contribution_amount"])
            if row["contribution_amount"] is not None
            else None
        ),
        contribution_frequency=row["contribution_frequency"],
        last_contribution_date=row["last_contribution_date"],
        next_contribution_date=row["next_contribution_date"],
        target_date=row["target_date"],
        contribution_history=tuple(
            ContributionEntry(date=entry["date"], amount=coerce_decimal(entry["amount"]))
            for entry in history_rows
        ),
    )


def load_goals(conn, user_id: int) -> list[tuple[dict, Goal]]:
    goal_rows = conn.execute(
        select(goals).where(goals.c.user_id == user_id).order_by(goals.c.id.asc())
    ).mappings().all()
    history_rows = conn.execute(
        select(goal_contributions)
        .where(goal_contributions.c.user_id == user_id)
        .order_by(goal_contributions.c.date.asc(), goal_contributions.c.id.asc())
    ).mappings().all()
    history_by_goal: dict[int, list] = {}
    for entry in history_rows:
        history_by_goal.setdefault(entry["goal_id"], []).append(entry)
    return [
        (row, build_goal(row, history_by_goal.get(row["id"], [])))
        for row in goal_rows
    ]


def build_challenge(row) -> SavingsChallenge:
    return SavingsChallenge(
        id=row["id"],
        type=row["type"],
        title=row["title"],
        start_date=row["start_date"],
        end_date=row["end_date"],
        duration=row["duration"],
        target_progress=coerce_decimal(row["target_progress"]),
        current_progress=coerce_decimal(row["current_progress"]),
        status=row["status"],
        target_category=row["target_category"],
        target_amount=(
            coerce_decimal(row["target_amount"]) if row["target_amount"] is not None else None
        ),
        streak_days=row["streak_days"],
    )


def challenge_response(
    challenge: SavingsChallenge, template_id: str, today: date
) -> ChallengeResponse:
    return ChallengeResponse(
        id=challenge.id,
        template_id=template_id,
        type=challenge.type,
        title=challenge.title,
        start_date=challenge.start_date,
        end_date=challenge.end_date,
        duration=challenge.duration,
        target_progress=challenge.target_progress,
        current_progress=challenge.current_progress,
        status=challenge.status,
        target_category=challenge.target_category,
        target_amount=challenge.target_amount,
        streak_days=challenge.streak_days,
        days_left=days_left(challenge, today),
        progress_percent=challenge_progress_percent(challenge),
    )


def fetch_ledger(conn, user_id: int, end_date: date) -> list[Transaction]:
    rows = conn.execute(
        select(transactions).where(
            transactions.c.user_id == user_id,
            transactions.c.date <= end_date,
        )
    ).mappings().all()
    return [
        Transaction(
            amount=coerce_decimal(row["amount"]),
            type=row["type"],
            date=row["date"],
            category=row["category"],
        )
        for row in rows
    ]


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/users", response_model=UserResponse)
def create_user(payload: UserPayload) -> UserResponse:
    email = payload.email.strip().lower()
    if not email:
        raise HTTPException(status_code=400, detail="Email required.")
    stmt = (
        insert(users)
        .values(email=email)
        .returning(users.c.id, users.c.email, users.c.created_at)
    )
    try:
        with engine.begin() as conn:
            row = conn.execute(stmt).mappings().first()
    except IntegrityError as exc:
        raise HTTPException(status_code=409, detail="Email already exists.") from exc

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create user.")
    return UserResponse(id=row["id"], email=row["email"], created_at=row["created_at"])


@app.get("/transactions", response_model=list[TransactionResponse])
def list_transactions(
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[TransactionResponse]:
    user_id = get_user_id(x_user_id)
    stmt = select(transactions).where(transactions.c.user_id == user_id)
    if start_date is not None:
        stmt = stmt.where(transactions.c.date >= start_date)
    if end_date is not None:
        stmt = stmt.where(transactions.c.date <= end_date)
    with engine.begin() as conn:
        rows = conn.execute(
            stmt.order_by(transactions.c.date.desc(), transactions.c.id.desc())
        ).mappings().all()
    return [
        TransactionResponse(
            id=row["id"],
            user_id=row["user_id"],
            amount=row["amount"],
            type=row["type"],
            category=row["category"],
            date=row["date"],
            notes=row["notes"],
        )
        for row in rows
    ]


@app.post("/transactions", response_model=TransactionResponse)
def create_transaction(
    payload: TransactionPayload, x_user_id: str | None = Header(None, alias="x-user-id")
) -> TransactionResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = TransactionPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    stmt = (
        insert(transactions)
        .values(
            user_id=user_id,
            amount=payload.amount,
            type=payload.type,
            category=payload.category,
            date=payload.date,
            notes=payload.notes,
        )
        .returning(transactions.c.id)
    )
    with engine.begin() as conn:
        transaction_id = conn.execute(stmt).scalar_one_or_none()

    if transaction_id is None:
        raise HTTPException(status_code=500, detail="Failed to create transaction.")
    return TransactionResponse(id=transaction_id, user_id=user_id, **payload.model_dump())


@app.get("/goals", response_model=list[GoalResponse])
def list_goals(
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[GoalResponse]:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        rows = conn.execute(
            select(goals).where(goals.c.user_id == user_id).order_by(goals.c.id.asc())
        ).mappings().all()
    return [goal_response(row) for row in rows]


@app.post("/goals", response_model=GoalResponse)
def create_goal(
    payload: GoalPayload,
    as_of: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> GoalResponse:
    user_id = get_user_id(x_user_id)
    today = as_of or date.today()
    try:
        payload = GoalPayload.validate_payload(payload)
        contribution_amount = payload.contribution_amount
        target_date = payload.target_date
        if payload.target_months is not None:
            draft = Goal(
                id="draft",
                name=payload.name,
                target_amount=payload.target_amount,
                current_amount=payload.current_amount,
            )
            contribution_amount = recommended_contribution(
                draft, payload.contribution_frequency, payload.target_months
            )
            target_date = add_months(today, payload.target_months)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    stmt = (
        insert(goals)
        .values(
            user_id=user_id,
            name=payload.name,
            target_amount=payload.target_amount,
            current_amount=payload.current_amount,
            contribution_amount=contribution_amount if contribution_amount else None,
            contribution_frequency=payload.contribution_frequency,
            next_contribution_date=payload.next_contribution_date,
            target_date=target_date,
        )
        .returning(*goals.c)
    )
    with engine.begin() as conn:
        row = conn.execute(stmt).mappings().first()

    if not row:
        raise HTTPException(status_code=500, detail="Failed to create goal.")
    return goal_response(row)


@app.delete("/goals/{goal_id}")
def delete_goal(goal_id: int, x_user_id: str | None = Header(None, alias="x-user-id")) -> dict:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        conn.execute(
            goal_contributions.delete().where(
                goal_contributions.c.goal_id == goal_id,
                goal_contributions.c.user_id == user_id,
            )
        )
        result = conn.execute(
            goals.delete().where(goals.c.id == goal_id, goals.c.user_id == user_id)
        )
        if result.rowcount == 0:
            raise HTTPException(status_code=404, detail="Goal not found.")
    return {"status": "deleted"}


@app.post("/goals/{goal_id}/contributions", response_model=ContributionResponse)
def record_contribution(
    goal_id: int,
    payload: ContributionPayload,
    as_of: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> ContributionResponse:
    user_id = get_user_id(x_user_id)
    try:
        payload = ContributionPayload.validate_payload(payload)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    contribution_date = payload.contributed_on or as_of or date.today()

    with engine.begin() as conn:
        goal_row = conn.execute(
            select(goals).where(goals.c.id == goal_id, goals.c.user_id == user_id)
        ).mappings().first()
        if not goal_row:
            raise HTTPException(status_code=404, detail="Goal not found.")

        frequency = goal_row["contribution_frequency"]
        new_amount = coerce_decimal(goal_row["current_amount"]) + payload.amount
        entry_id = conn.execute(
            insert(goal_contributions)
            .values(
                user_id=user_id,
                goal_id=goal_id,
                amount=payload.amount,
                date=contribution_date,
            )
            .returning(goal_contributions.c.id)
        ).scalar_one()
        updated_row = conn.execute(
            update(goals)
            .where(goals.c.id == goal_id, goals.c.user_id == user_id)
            .values(
                current_amount=new_amount,
                last_contribution_date=contribution_date,
                next_contribution_date=(
                    add_interval(contribution_date, frequency) if frequency else None
                ),
            )
            .returning(*goals.c)
        ).mappings().first()

    return ContributionResponse(
        id=entry_id,
        goal_id=goal_id,
        amount=payload.amount,
        date=contribution_date,
        goal=goal_response(updated_row),
    )


@app.delete("/goals/{goal_id}/contributions/{entry_id}", response_model=GoalResponse)
def delete_contribution(
    goal_id: int,
    entry_id: int,
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> GoalResponse:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        goal_row = conn.execute(
            select(goals).where(goals.c.id == goal_id, goals.c.user_id == user_id)
        ).mappings().first()
        if not goal_row:
            raise HTTPException(status_code=404, detail="Goal not found.")
        entry = conn.execute(
            select(goal_contributions).where(
                goal_contributions.c.id == entry_id,
                goal_contributions.c.goal_id == goal_id,
                goal_contributions.c.user_id == user_id,
            )
        ).mappings().first()
        if not entry:
            raise HTTPException(status_code=404, detail="Contribution not found.")

        conn.execute(goal_contributions.delete().where(goal_contributions.c.id == entry_id))
        latest_date = conn.execute(
            select(func.max(goal_contributions.c.date)).where(
                goal_contributions.c.goal_id == goal_id
            )
        ).scalar_one_or_none()
        new_amount = max(
            Decimal("0"),
            coerce_decimal(goal_row["current_amount"]) - coerce_decimal(entry["amount"]),
        )
        updated_row = conn.execute(
            update(goals)
            .where(goals.c.id == goal_id, goals.c.user_id == user_id)
            .values(current_amount=new_amount, last_contribution_date=latest_date)
            .returning(*goals.c)
        ).mappings().first()

    return goal_response(updated_row)


@app.get("/goals/evaluate", response_model=list[GoalEvaluationResponse])
def evaluate_goals(
    as_of: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[GoalEvaluationResponse]:
    user_id = get_user_id(x_user_id)
    today = as_of or date.today()
    with engine.begin() as conn:
        loaded = load_goals(conn, user_id)

    evaluations: list[GoalEvaluationResponse] = []
    for row, goal in loaded:
        plan = goal.plan
        try:
            next_date = plan_next_date(plan, today) if plan else None
            upcoming = (
                upcoming_occurrences(plan, today, UPCOMING_CONTRIBUTIONS) if plan else []
            )
            due = is_contribution_due(plan, today) if plan else False
            time_remaining = estimate_time_remaining(goal, today)
        except RecurrenceLoopError as exc:
            raise HTTPException(
                status_code=422,
                detail=f"Invalid contribution schedule for goal {row['id']}: {exc}",
            ) from exc
        evaluations.append(
            GoalEvaluationResponse(
                goal_id=row["id"],
                name=goal.name,
                as_of=today,
                target_amount=goal.target_amount,
                current_amount=goal.current_amount,
                remaining_amount=remaining_amount(goal),
                progress_percent=progress_percent(goal),
                contributions_needed=contributions_needed(goal),
                is_contribution_due=due,
                has_contribution_in_current_period=has_contribution_in_current_period(
                    plan, goal.contribution_history, today
                ),
                next_contribution_date=next_date,
                upcoming_contributions=upcoming,
                time_remaining=TimeRemainingResponse(
                    kind=time_remaining.kind,
                    years=time_remaining.years,
                    months=time_remaining.months,
                    weeks=time_remaining.weeks,
                    days=time_remaining.days,
                ),
            )
        )
    return evaluations


@app.get("/goals/reminders", response_model=list[ContributionReminderResponse])
def goal_reminders(
    balance: Decimal = Query(...),
    as_of: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[ContributionReminderResponse]:
    user_id = get_user_id(x_user_id)
    today = as_of or date.today()
    with engine.begin() as conn:
        loaded = load_goals(conn, user_id)

    try:
        reminders = contribution_reminders([goal for _, goal in loaded], balance, today)
    except RecurrenceLoopError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return [
        ContributionReminderResponse(
            goal_id=int(reminder.goal_id),
            due_date=reminder.due_date,
            days_until=reminder.days_until,
            amount=reminder.amount,
            can_afford=reminder.can_afford,
            priority=reminder.priority,
        )
        for reminder in reminders
    ]


@app.get("/goals/summary", response_model=GoalSummaryResponse)
def goal_summary(
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> GoalSummaryResponse:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        loaded = load_goals(conn, user_id)
    summary = summarize_goals(goal for _, goal in loaded)
    return GoalSummaryResponse(
        total_saved=summary.total_saved,
        total_target=summary.total_target,
        completed=summary.completed,
        active=summary.active,
        average_progress=summary.average_progress,
    )


@app.get("/challenges/templates", response_model=list[ChallengeTemplateResponse])
def list_challenge_templates() -> list[ChallengeTemplateResponse]:
    return [
        ChallengeTemplateResponse(
            id=template.id,
            type=template.type,
            title=template.title,
            description=template.description,
            difficulty=template.difficulty,
            duration=template.duration,
            reward=template.reward,
            target_amount=template.target_amount,
            target_category=template.target_category,
        )
        for template in CHALLENGE_TEMPLATES
    ]


@app.post("/challenges", response_model=ChallengeResponse)
def create_challenge(
    payload: ChallengePayload,
    as_of: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> ChallengeResponse:
    user_id = get_user_id(x_user_id)
    today = as_of or date.today()
    try:
        payload = ChallengePayload.validate_payload(payload)
        template = find_template(payload.template_id)
        challenge = start_challenge(template, today)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail="Challenge template not found.") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    with engine.begin() as conn:
        already_active = conn.execute(
            select(challenges.c.id).where(
                challenges.c.user_id == user_id,
                challenges.c.template_id == template.id,
                challenges.c.status == "active",
            )
        ).first()
        if already_active:
            raise HTTPException(
                status_code=409, detail="This challenge is already in progress."
            )
        conn.execute(
            insert(challenges).values(
                id=challenge.id,
                user_id=user_id,
                template_id=template.id,
                type=challenge.type,
                title=challenge.title,
                start_date=challenge.start_date,
                end_date=challenge.end_date,
                duration=challenge.duration,
                target_progress=challenge.target_progress,
                current_progress=challenge.current_progress,
                status=challenge.status,
                target_category=challenge.target_category,
                target_amount=challenge.target_amount,
            )
        )
    logger.info("Started challenge %s for user %s", challenge.id, user_id)
    return challenge_response(challenge, template.id, today)


@app.get("/challenges", response_model=list[ChallengeResponse])
def list_challenges(
    as_of: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[ChallengeResponse]:
    user_id = get_user_id(x_user_id)
    today = as_of or date.today()
    with engine.begin() as conn:
        rows = conn.execute(
            select(challenges)
            .where(challenges.c.user_id == user_id)
            .order_by(challenges.c.created_at.asc(), challenges.c.id.asc())
        ).mappings().all()
    return [challenge_response(build_challenge(row), row["template_id"], today) for row in rows]


@app.post("/challenges/evaluate", response_model=list[ChallengeResponse])
def evaluate_user_challenges(
    as_of: date | None = Query(None),
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> list[ChallengeResponse]:
    user_id = get_user_id(x_user_id)
    today = as_of or date.today()
    with engine.begin() as conn:
        rows = conn.execute(
            select(challenges)
            .where(challenges.c.user_id == user_id)
            .order_by(challenges.c.created_at.asc(), challenges.c.id.asc())
        ).mappings().all()
        ledger = fetch_ledger(conn, user_id, today)

        previous = [build_challenge(row) for row in rows]
        try:
            evaluated = evaluate_challenges(previous, ledger, today)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        for before, after in zip(previous, evaluated):
            if before == after:
                continue
            if before.status != after.status:
                logger.info(
                    "Challenge %s moved from %s to %s", after.id, before.status, after.status
                )
            conn.execute(
                update(challenges)
                .where(challenges.c.id == after.id, challenges.c.user_id == user_id)
                .values(
                    current_progress=after.current_progress,
                    status=after.status,
                    streak_days=after.streak_days,
                )
            )

    return [
        challenge_response(challenge, row["template_id"], today)
        for row, challenge in zip(rows, evaluated)
    ]


@app.get("/challenges/summary", response_model=ChallengeSummaryResponse)
def challenge_summary(
    x_user_id: str | None = Header(None, alias="x-user-id"),
) -> ChallengeSummaryResponse:
    user_id = get_user_id(x_user_id)
    with engine.begin() as conn:
        rows = conn.execute(
            select(challenges).where(challenges.c.user_id == user_id)
        ).mappings().all()
    summary = summarize_challenges(build_challenge(row) for row in rows)
    return ChallengeSummaryResponse(
        active=summary.active,
        completed=summary.completed,
        failed=summary.failed,
        max_streak=summary.max_streak,
    )
