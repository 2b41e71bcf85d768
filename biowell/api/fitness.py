import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from biowell.api.auth import get_current_user
from biowell.core.fitness import fallback_workout_plan, summarize_workouts, window_start
from biowell.db.models import ExerciseSet, Profile, User, WorkoutSession
from biowell.db.session import get_db
from biowell.services.llm import LLMClient, LLMRequestError, get_llm_client

router = APIRouter(prefix="/fitness", tags=["fitness"])
logger = logging.getLogger("uvicorn.error")

WORKOUT_PLAN_SYSTEM_PROMPT = (
    "You are a certified strength and conditioning coach. Return strict JSON with keys: "
    "title (string), sessions (list of objects with day, workout_type, duration_min, focus), "
    "notes (list of strings)."
)


class WorkoutCreateRequest(BaseModel):
    workout_type: str = Field(min_length=1, max_length=64)
    duration_min: float = Field(gt=0, le=1440)
    calories_burned: float = Field(default=0, ge=0, le=20000)
    timestamp: Optional[datetime] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class WorkoutItem(BaseModel):
    id: int
    workout_type: str
    duration_min: float
    calories_burned: float
    timestamp: datetime
    notes: Optional[str] = None


class WorkoutListResponse(BaseModel):
    items: list[WorkoutItem]


class ExerciseSetInput(BaseModel):
    exercise_name: str = Field(min_length=1, max_length=120)
    sets: int = Field(ge=1, le=100)
    reps: int = Field(ge=0, le=1000)
    weight: Optional[float] = Field(default=None, ge=0, le=1000)
    duration_sec: Optional[int] = Field(default=None, ge=0, le=86400)


class ExerciseSetsRequest(BaseModel):
    exercises: list[ExerciseSetInput] = Field(min_length=1, max_length=100)


class ExerciseSetItem(ExerciseSetInput):
    id: int
    workout_id: int


class ExerciseSetListResponse(BaseModel):
    workout_id: int
    items: list[ExerciseSetItem]


class DailyMetricItem(BaseModel):
    date: str
    calories_burned: float
    active_minutes: float
    workouts: int


class FitnessSummaryResponse(BaseModel):
    total_workouts: int
    total_calories_burned: float
    total_active_minutes: float
    average_workout_duration: float
    favorite_workout_type: str
    daily_metrics: list[DailyMetricItem]


class WorkoutPlanRequest(BaseModel):
    goal: str = Field(default="general", min_length=1, max_length=64)
    days_per_week: int = Field(default=3, ge=1, le=7)
    minutes_per_session: int = Field(default=45, ge=10, le=180)
    equipment: list[str] = Field(default_factory=list, max_length=20)


class PlanSession(BaseModel):
    day: int
    workout_type: str
    duration_min: int
    focus: str


class WorkoutPlanResponse(BaseModel):
    title: str
    sessions: list[PlanSession]
    notes: list[str]
    source: str


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _workout_item(row: WorkoutSession) -> WorkoutItem:
    return WorkoutItem(
        id=row.id,
        workout_type=row.workout_type,
        duration_min=row.duration_min,
        calories_burned=row.calories_burned,
        timestamp=_to_utc(row.timestamp),
        notes=row.notes,
    )


def _set_item(row: ExerciseSet) -> ExerciseSetItem:
    return ExerciseSetItem(
        id=row.id,
        workout_id=row.workout_id,
        exercise_name=row.exercise_name,
        sets=row.sets,
        reps=row.reps,
        weight=row.weight,
        duration_sec=row.duration_sec,
    )


def workout_history(db: Session, user_id: int, days: int) -> list[WorkoutSession]:
    since = window_start(days, datetime.now(timezone.utc).date())
    return (
        db.query(WorkoutSession)
        .filter(WorkoutSession.user_id == user_id, WorkoutSession.timestamp >= since)
        .order_by(WorkoutSession.timestamp.desc(), WorkoutSession.id.desc())
        .all()
    )


@router.post("/workouts", response_model=WorkoutItem, status_code=status.HTTP_201_CREATED)
def log_workout(
    payload: WorkoutCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> WorkoutItem:
    row = WorkoutSession(
        user_id=user.id,
        workout_type=payload.workout_type.strip(),
        duration_min=payload.duration_min,
        calories_burned=payload.calories_burned,
        timestamp=_to_utc(payload.timestamp or datetime.now(timezone.utc)),
        notes=(payload.notes or "").strip() or None,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return _workout_item(row)


@router.post(
    "/workouts/{workout_id}/sets", response_model=ExerciseSetListResponse, status_code=status.HTTP_201_CREATED
)
def log_exercise_sets(
    workout_id: int,
    payload: ExerciseSetsRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ExerciseSetListResponse:
    workout = (
        db.query(WorkoutSession)
        .filter(WorkoutSession.id == workout_id, WorkoutSession.user_id == user.id)
        .first()
    )
    if not workout:
        raise HTTPException(status_code=404, detail="Workout not found")

    rows = [
        ExerciseSet(
            workout_id=workout.id,
            exercise_name=item.exercise_name.strip(),
            sets=item.sets,
            reps=item.reps,
            weight=item.weight,
            duration_sec=item.duration_sec,
        )
        for item in payload.exercises
    ]
    db.add_all(rows)
    db.commit()
    for row in rows:
        db.refresh(row)
    return ExerciseSetListResponse(workout_id=workout.id, items=[_set_item(row) for row in rows])


@router.get("/workouts", response_model=WorkoutListResponse)
def get_workout_history(
    days: int = Query(default=30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> WorkoutListResponse:
    return WorkoutListResponse(items=[_workout_item(row) for row in workout_history(db, user.id, days)])


@router.get("/workouts/{workout_id}/sets", response_model=ExerciseSetListResponse)
def get_exercise_details(
    workout_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ExerciseSetListResponse:
    rows = (
        db.query(ExerciseSet)
        .join(WorkoutSession, ExerciseSet.workout_id == WorkoutSession.id)
        .filter(ExerciseSet.workout_id == workout_id, WorkoutSession.user_id == user.id)
        .order_by(ExerciseSet.id.asc())
        .all()
    )
    return ExerciseSetListResponse(workout_id=workout_id, items=[_set_item(row) for row in rows])


@router.get("/summary", response_model=FitnessSummaryResponse)
def get_fitness_summary(
    days: int = Query(default=30, ge=1, le=365),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> FitnessSummaryResponse:
    rows = workout_history(db, user.id, days)
    return FitnessSummaryResponse(**summarize_workouts(rows, days=days))


def _plan_prompt(payload: WorkoutPlanRequest, profile: Optional[Profile]) -> str:
    athlete: dict[str, Any] = {}
    if profile:
        athlete = {
            "age": profile.age,
            "gender": profile.gender,
            "activity_level": profile.activity_level,
            "exercise_frequency": profile.exercise_frequency,
            "medical_conditions": profile.medical_conditions_json,
        }
    return json.dumps(
        {
            "task": "Design a weekly workout plan.",
            "goal": payload.goal,
            "days_per_week": payload.days_per_week,
            "minutes_per_session": payload.minutes_per_session,
            "equipment": payload.equipment or ["bodyweight"],
            "athlete": athlete,
        }
    )


def _coerce_plan(raw: dict[str, Any], payload: WorkoutPlanRequest) -> WorkoutPlanResponse:
    sessions: list[PlanSession] = []
    for idx, item in enumerate(raw.get("sessions") or []):
        if not isinstance(item, dict) or not str(item.get("workout_type") or "").strip():
            continue
        try:
            duration = int(float(item.get("duration_min") or payload.minutes_per_session))
        except (TypeError, ValueError):
            duration = payload.minutes_per_session
        sessions.append(
            PlanSession(
                day=int(item.get("day") or idx + 1),
                workout_type=str(item["workout_type"]).strip(),
                duration_min=duration,
                focus=str(item.get("focus") or "").strip(),
            )
        )
    if not sessions:
        raise ValueError("Workout plan had no usable sessions")
    notes = [str(note).strip() for note in raw.get("notes") or [] if str(note).strip()]
    title = str(raw.get("title") or "").strip() or f"{payload.days_per_week}-day {payload.goal} plan"
    return WorkoutPlanResponse(title=title, sessions=sessions[: payload.days_per_week], notes=notes, source="ai")


@router.post("/plan", response_model=WorkoutPlanResponse)
def generate_workout_plan(
    payload: WorkoutPlanRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    llm_client: LLMClient = Depends(get_llm_client),
) -> WorkoutPlanResponse:
    profile = db.query(Profile).filter(Profile.user_id == user.id).first()
    try:
        raw = llm_client.generate_json(
            db=db,
            user_id=user.id,
            prompt=_plan_prompt(payload, profile),
            system_instruction=WORKOUT_PLAN_SYSTEM_PROMPT,
        )
        return _coerce_plan(raw, payload)
    except LLMRequestError as exc:
        logger.exception("workout_plan_llm_error user_id=%s detail=%s", user.id, str(exc))
    except Exception as exc:
        logger.exception("workout_plan_unhandled_error user_id=%s detail=%s", user.id, str(exc))
    plan = fallback_workout_plan(payload.goal, payload.days_per_week, payload.minutes_per_session)
    return WorkoutPlanResponse(**plan, source="fallback")
