from collections import Counter
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, Optional, Protocol


class WorkoutLike(Protocol):
    workout_type: str
    duration_min: float
    calories_burned: float
    timestamp: datetime


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _number(value: float) -> float:
    # Whole numbers are reported as ints so summaries read like the logged values.
    return int(value) if float(value).is_integer() else round(float(value), 2)


def window_start(days: int, today: date) -> datetime:
    """UTC midnight opening a window of ``days`` calendar days that ends with ``today``."""
    return datetime.combine(today - timedelta(days=days - 1), time.min, tzinfo=timezone.utc)


def empty_daily_metrics(days: int, today: date) -> dict[str, dict[str, Any]]:
    buckets: dict[str, dict[str, Any]] = {}
    for offset in range(days):
        day = (today - timedelta(days=offset)).isoformat()
        buckets[day] = {"date": day, "calories_burned": 0, "active_minutes": 0, "workouts": 0}
    return buckets


def summarize_workouts(
    workouts: Iterable[WorkoutLike], days: int = 30, today: Optional[date] = None
) -> dict[str, Any]:
    """Aggregate workouts into totals, a favourite type and per-day buckets.

    ``workouts`` is expected newest first, which decides ties for the favourite
    type. Workouts dated outside the ``days`` window count toward the totals
    but land in no daily bucket.
    """
    current_day = today or datetime.now(timezone.utc).date()
    rows = list(workouts)

    total_workouts = len(rows)
    total_calories = sum(float(w.calories_burned or 0) for w in rows)
    total_minutes = sum(float(w.duration_min or 0) for w in rows)
    average_duration = (total_minutes / total_workouts) if total_workouts else 0

    type_counts = Counter(w.workout_type for w in rows)
    favorite = type_counts.most_common(1)[0][0] if type_counts else "None"

    buckets = empty_daily_metrics(days, current_day)
    for workout in rows:
        day = _as_utc(workout.timestamp).date().isoformat()
        bucket = buckets.get(day)
        if bucket is None:
            continue
        bucket["calories_burned"] += float(workout.calories_burned or 0)
        bucket["active_minutes"] += float(workout.duration_min or 0)
        bucket["workouts"] += 1

    daily = sorted(buckets.values(), key=lambda item: item["date"])
    for bucket in daily:
        bucket["calories_burned"] = _number(bucket["calories_burned"])
        bucket["active_minutes"] = _number(bucket["active_minutes"])

    return {
        "total_workouts": total_workouts,
        "total_calories_burned": _number(total_calories),
        "total_active_minutes": _number(total_minutes),
        "average_workout_duration": round(float(average_duration), 2),
        "favorite_workout_type": favorite,
        "daily_metrics": daily,
    }


GOAL_FOCUS: dict[str, list[str]] = {
    "strength": ["Strength Training", "Mobility"],
    "muscle": ["Strength Training", "HIIT"],
    "endurance": ["Running", "Cardio"],
    "weight_loss": ["HIIT", "Cardio", "Strength Training"],
    "mobility": ["Yoga", "Mobility"],
    "general": ["Strength Training", "Cardio", "Yoga"],
}


def fallback_workout_plan(goal: str, days_per_week: int, minutes_per_session: int) -> dict[str, Any]:
    normalized = (goal or "general").strip().lower().replace(" ", "_")
    rotation = GOAL_FOCUS.get(normalized, GOAL_FOCUS["general"])
    sessions = []
    for idx in range(days_per_week):
        workout_type = rotation[idx % len(rotation)]
        sessions.append(
            {
                "day": idx + 1,
                "workout_type": workout_type,
                "duration_min": minutes_per_session,
                "focus": f"{workout_type} at a conversational effort; finish with 5 minutes of stretching.",
            }
        )
    return {
        "title": f"{days_per_week}-day {normalized.replace('_', ' ')} starter plan",
        "sessions": sessions,
        "notes": [
            "Keep one rest day between the hardest sessions.",
            "Increase volume by no more than 10% per week.",
        ],
    }
