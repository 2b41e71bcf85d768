from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from biowell.api.auth import get_current_user
from biowell.db.models import MealEntry, User
from biowell.db.session import get_db

router = APIRouter(prefix="/nutrition", tags=["nutrition"])

DEFAULT_GOALS = {"calories": 2000.0, "protein_g": 150.0, "carbs_g": 200.0, "fat_g": 65.0}


class MealType(str, Enum):
    breakfast = "breakfast"
    lunch = "lunch"
    dinner = "dinner"
    snack = "snack"


class MealCreateRequest(BaseModel):
    meal_type: MealType
    description: str = Field(min_length=1, max_length=500)
    calories: float = Field(default=0, ge=0, le=10000)
    protein_g: float = Field(default=0, ge=0, le=1000)
    carbs_g: float = Field(default=0, ge=0, le=1000)
    fat_g: float = Field(default=0, ge=0, le=1000)
    eaten_at: Optional[datetime] = None


class MealItem(BaseModel):
    id: int
    meal_type: MealType
    description: str
    calories: float
    protein_g: float
    carbs_g: float
    fat_g: float
    eaten_at: datetime


class MealListResponse(BaseModel):
    day: date
    items: list[MealItem]


class MacroProgress(BaseModel):
    consumed: float
    goal: float
    percent: int


class DailyNutritionResponse(BaseModel):
    day: date
    meal_count: int
    calories: MacroProgress
    protein_g: MacroProgress
    carbs_g: MacroProgress
    fat_g: MacroProgress


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _meal_item(row: MealEntry) -> MealItem:
    return MealItem(
        id=row.id,
        meal_type=MealType(row.meal_type),
        description=row.description,
        calories=row.calories,
        protein_g=row.protein_g,
        carbs_g=row.carbs_g,
        fat_g=row.fat_g,
        eaten_at=_to_utc(row.eaten_at),
    )


def _meals_for_day(db: Session, user_id: int, day: date) -> list[MealEntry]:
    start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    end = start + timedelta(days=1)
    return (
        db.query(MealEntry)
        .filter(MealEntry.user_id == user_id, MealEntry.eaten_at >= start, MealEntry.eaten_at < end)
        .order_by(MealEntry.eaten_at.asc(), MealEntry.id.asc())
        .all()
    )


def macro_progress(consumed: float, goal: float) -> MacroProgress:
    percent = round(consumed / goal * 100) if goal > 0 else 0
    return MacroProgress(consumed=round(consumed, 2), goal=goal, percent=percent)


@router.post("/meals", response_model=MealItem, status_code=status.HTTP_201_CREATED)
def log_meal(
    payload: MealCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MealItem:
    row = MealEntry(
        user_id=user.id,
        meal_type=payload.meal_type.value,
        description=payload.description.strip(),
        calories=payload.calories,
        protein_g=payload.protein_g,
        carbs_g=payload.carbs_g,
        fat_g=payload.fat_g,
        eaten_at=_to_utc(payload.eaten_at or datetime.now(timezone.utc)),
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return _meal_item(row)


@router.get("/meals", response_model=MealListResponse)
def list_meals(
    day: Optional[date] = None,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MealListResponse:
    target = day or datetime.now(timezone.utc).date()
    return MealListResponse(day=target, items=[_meal_item(row) for row in _meals_for_day(db, user.id, target)])


@router.delete("/meals/{meal_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_meal(
    meal_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> None:
    row = db.query(MealEntry).filter(MealEntry.id == meal_id, MealEntry.user_id == user.id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Meal not found")
    db.delete(row)
    db.commit()


@router.get("/daily", response_model=DailyNutritionResponse)
def daily_nutrition(
    day: Optional[date] = None,
    calorie_goal: float = Query(default=DEFAULT_GOALS["calories"], ge=0),
    protein_goal: float = Query(default=DEFAULT_GOALS["protein_g"], ge=0),
    carbs_goal: float = Query(default=DEFAULT_GOALS["carbs_g"], ge=0),
    fat_goal: float = Query(default=DEFAULT_GOALS["fat_g"], ge=0),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> DailyNutritionResponse:
    target = day or datetime.now(timezone.utc).date()
    rows = _meals_for_day(db, user.id, target)
    return DailyNutritionResponse(
        day=target,
        meal_count=len(rows),
        calories=macro_progress(sum(r.calories for r in rows), calorie_goal),
        protein_g=macro_progress(sum(r.protein_g for r in rows), protein_goal),
        carbs_g=macro_progress(sum(r.carbs_g for r in rows), carbs_goal),
        fat_g=macro_progress(sum(r.fat_g for r in rows), fat_goal),
    )
