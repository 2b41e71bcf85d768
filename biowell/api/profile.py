import json
from datetime import date, datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from biowell.api.auth import get_current_user, get_or_create_profile
from biowell.core.onboarding import (
    LIST_FIELDS,
    MAX_AGE,
    MIN_AGE,
    ONBOARDING_STEPS,
    TOTAL_STEPS,
    TRANSIENT_FIELDS,
    age_from_birth_date,
    get_step,
    progress_percent,
    validate_step,
)
from biowell.db.models import Profile, User
from biowell.db.session import get_db

router = APIRouter(tags=["profile"])


class ProfileFields(BaseModel):
    first_name: Optional[str] = Field(default=None, max_length=80)
    last_name: Optional[str] = Field(default=None, max_length=80)
    mobile: Optional[str] = Field(default=None, max_length=32)
    date_of_birth: Optional[date] = None
    age: Optional[int] = None
    gender: Optional[str] = Field(default=None, max_length=32)
    height_cm: Optional[float] = Field(default=None, gt=0, le=300)
    weight_kg: Optional[float] = Field(default=None, gt=0, le=500)
    activity_level: Optional[str] = Field(default=None, max_length=32)
    exercise_frequency: Optional[str] = Field(default=None, max_length=64)
    exercise_types: Optional[list[str]] = None
    health_goals: Optional[list[str]] = None
    health_concerns: Optional[list[str]] = None
    fitness_goals: Optional[list[str]] = None
    sleep_hours: Optional[float] = Field(default=None, ge=0, le=24)
    sleep_quality: Optional[str] = Field(default=None, max_length=32)
    stress_level: Optional[int] = Field(default=None, ge=1, le=10)
    work_schedule: Optional[str] = Field(default=None, max_length=64)
    diet_preference: Optional[str] = Field(default=None, max_length=64)
    allergies: Optional[list[str]] = None
    dietary_restrictions: Optional[list[str]] = None
    meal_preferences: Optional[list[str]] = None
    medical_conditions: Optional[list[str]] = None
    current_medications: Optional[list[str]] = None
    doctor_clearance: Optional[bool] = None
    preferences: Optional[dict[str, Any]] = None


class OnboardingStepRequest(ProfileFields):
    email: Optional[str] = Field(default=None, max_length=255)


class ProfileResponse(ProfileFields):
    email: str
    onboarding_step: int
    onboarding_completed: bool
    updated_at: Optional[datetime] = None


class OnboardingStepItem(BaseModel):
    id: int
    title: str
    description: str
    fields: list[str]
    required: list[str]


class OnboardingStepsResponse(BaseModel):
    total_steps: int
    current_step: int
    onboarding_completed: bool
    steps: list[OnboardingStepItem]


class OnboardingProgressResponse(BaseModel):
    step: int
    onboarding_step: int
    onboarding_completed: bool
    progress_percent: int
    profile: ProfileResponse


def _json_list(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return [str(item) for item in parsed] if isinstance(parsed, list) else []


def _clean_list(values: list[str]) -> list[str]:
    seen: list[str] = []
    for value in values:
        item = str(value).strip()
        if item and item not in seen:
            seen.append(item)
    return seen


def apply_profile_values(profile: Profile, values: dict[str, Any]) -> None:
    for key, value in values.items():
        if key in TRANSIENT_FIELDS:
            continue
        if key in LIST_FIELDS:
            setattr(profile, f"{key}_json", json.dumps(_clean_list(value or [])))
        elif key == "preferences":
            merged: dict[str, Any] = {}
            if profile.preferences_json:
                try:
                    merged = json.loads(profile.preferences_json)
                except json.JSONDecodeError:
                    merged = {}
            merged.update(value or {})
            profile.preferences_json = json.dumps(merged)
        elif isinstance(value, str):
            setattr(profile, key, value.strip() or None)
        else:
            setattr(profile, key, value)
    if values.get("date_of_birth") and values.get("age") is None:
        profile.age = age_from_birth_date(values["date_of_birth"])
    profile.updated_at = datetime.now(timezone.utc)


def _profile_response(profile: Profile, user: User) -> ProfileResponse:
    preferences: dict[str, Any] = {}
    if profile.preferences_json:
        try:
            preferences = json.loads(profile.preferences_json)
        except json.JSONDecodeError:
            preferences = {}
    lists = {field: _json_list(getattr(profile, f"{field}_json")) for field in LIST_FIELDS}
    return ProfileResponse(
        email=user.email,
        first_name=profile.first_name,
        last_name=profile.last_name,
        mobile=profile.mobile,
        date_of_birth=profile.date_of_birth,
        age=profile.age,
        gender=profile.gender,
        height_cm=profile.height_cm,
        weight_kg=profile.weight_kg,
        activity_level=profile.activity_level,
        exercise_frequency=profile.exercise_frequency,
        sleep_hours=profile.sleep_hours,
        sleep_quality=profile.sleep_quality,
        stress_level=profile.stress_level,
        work_schedule=profile.work_schedule,
        diet_preference=profile.diet_preference,
        doctor_clearance=profile.doctor_clearance,
        preferences=preferences,
        onboarding_step=profile.onboarding_step,
        onboarding_completed=profile.onboarding_completed,
        updated_at=profile.updated_at,
        **lists,
    )


@router.get("/profile", response_model=ProfileResponse)
def get_profile(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> ProfileResponse:
    profile = get_or_create_profile(db, user.id)
    db.commit()
    return _profile_response(profile, user)


@router.patch("/profile", response_model=ProfileResponse)
def update_profile(
    payload: ProfileFields,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ProfileResponse:
    values = payload.model_dump(exclude_unset=True)
    age = values.get("age")
    if age is not None and (age < MIN_AGE or age > MAX_AGE):
        raise HTTPException(
            status_code=422, detail={"errors": {"age": f"Please enter a valid age between {MIN_AGE} and {MAX_AGE}"}}
        )
    profile = get_or_create_profile(db, user.id)
    apply_profile_values(profile, values)
    db.commit()
    db.refresh(profile)
    return _profile_response(profile, user)


@router.get("/onboarding/steps", response_model=OnboardingStepsResponse)
def list_onboarding_steps(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> OnboardingStepsResponse:
    profile = get_or_create_profile(db, user.id)
    db.commit()
    return OnboardingStepsResponse(
        total_steps=TOTAL_STEPS,
        current_step=profile.onboarding_step,
        onboarding_completed=profile.onboarding_completed,
        steps=[OnboardingStepItem(**step) for step in ONBOARDING_STEPS],
    )


@router.post("/onboarding/steps/{step}", response_model=OnboardingProgressResponse)
def submit_onboarding_step(
    step: int,
    payload: OnboardingStepRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> OnboardingProgressResponse:
    config = get_step(step)
    if not config:
        raise HTTPException(status_code=404, detail="Onboarding step not found")

    submitted = payload.model_dump(exclude_unset=True)
    values = {key: value for key, value in submitted.items() if key in config["fields"]}
    errors = validate_step(step, values)
    if errors:
        raise HTTPException(status_code=422, detail={"step": step, "errors": errors})

    profile = get_or_create_profile(db, user.id)
    apply_profile_values(profile, values)
    profile.onboarding_step = max(profile.onboarding_step, min(step + 1, TOTAL_STEPS))
    db.commit()
    db.refresh(profile)
    return OnboardingProgressResponse(
        step=step,
        onboarding_step=profile.onboarding_step,
        onboarding_completed=profile.onboarding_completed,
        progress_percent=progress_percent(step),
        profile=_profile_response(profile, user),
    )


@router.post("/onboarding/complete", response_model=OnboardingProgressResponse, status_code=status.HTTP_200_OK)
def complete_onboarding(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> OnboardingProgressResponse:
    profile = get_or_create_profile(db, user.id)
    if not profile.onboarding_completed:
        profile.onboarding_completed = True
        profile.onboarding_step = TOTAL_STEPS
        profile.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(profile)
    return OnboardingProgressResponse(
        step=TOTAL_STEPS,
        onboarding_step=profile.onboarding_step,
        onboarding_completed=True,
        progress_percent=progress_percent(TOTAL_STEPS),
        profile=_profile_response(profile, user),
    )
