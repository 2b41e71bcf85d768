import re
from datetime import date
from typing import Any, Optional

TOTAL_STEPS = 7
EMAIL_PATTERN = re.compile(r"\S+@\S+\.\S+")
MIN_AGE = 13
MAX_AGE = 120

ONBOARDING_STEPS: list[dict[str, Any]] = [
    {
        "id": 1,
        "title": "Personal Information",
        "description": "Tell us about yourself",
        "fields": ["first_name", "last_name", "email", "mobile", "date_of_birth", "age", "gender"],
        "required": ["first_name", "last_name", "email"],
    },
    {
        "id": 2,
        "title": "Health Goals",
        "description": "What are your primary health objectives?",
        "fields": ["health_goals", "health_concerns", "fitness_goals"],
        "required": ["health_goals"],
    },
    {
        "id": 3,
        "title": "Physical Profile",
        "description": "Help us understand your physical characteristics",
        "fields": ["height_cm", "weight_kg", "activity_level", "exercise_frequency", "exercise_types"],
        "required": ["height_cm", "weight_kg", "activity_level"],
    },
    {
        "id": 4,
        "title": "Lifestyle & Sleep",
        "description": "Your daily habits and sleep patterns",
        "fields": ["sleep_hours", "sleep_quality", "stress_level", "work_schedule"],
        "required": ["sleep_hours", "stress_level"],
    },
    {
        "id": 5,
        "title": "Nutrition & Diet",
        "description": "Your dietary preferences and restrictions",
        "fields": ["diet_preference", "allergies", "dietary_restrictions", "meal_preferences"],
        "required": ["diet_preference"],
    },
    {
        "id": 6,
        "title": "Health History",
        "description": "Medical history and current medications",
        "fields": ["medical_conditions", "current_medications", "doctor_clearance"],
        "required": [],
    },
    {
        "id": 7,
        "title": "Preferences",
        "description": "Customize your experience",
        "fields": ["preferences"],
        "required": [],
    },
]

# Profile columns stored as JSON text lists.
LIST_FIELDS = {
    "health_goals",
    "health_concerns",
    "fitness_goals",
    "exercise_types",
    "allergies",
    "dietary_restrictions",
    "meal_preferences",
    "medical_conditions",
    "current_medications",
}

# Accepted for validation only; the account email is the stored one.
TRANSIENT_FIELDS = {"email"}


def get_step(step: int) -> Optional[dict[str, Any]]:
    for item in ONBOARDING_STEPS:
        if item["id"] == step:
            return item
    return None


def field_label(field: str) -> str:
    return field.replace("_", " ").lower()


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return len(value) == 0
    return False


def validate_step(step: int, values: dict[str, Any]) -> dict[str, str]:
    """Return a field -> message map for ``values`` submitted on ``step``; empty when valid."""
    config = get_step(step)
    if not config:
        return {}

    errors: dict[str, str] = {}
    for field in config["required"]:
        if _is_blank(values.get(field)):
            errors[field] = f"{field_label(field)} is required"

    email = values.get("email")
    if "email" in config["fields"] and not _is_blank(email) and not EMAIL_PATTERN.search(str(email)):
        errors["email"] = "Please enter a valid email address"

    age = values.get("age")
    if "age" in config["fields"] and age is not None:
        if not isinstance(age, (int, float)) or age < MIN_AGE or age > MAX_AGE:
            errors["age"] = f"Please enter a valid age between {MIN_AGE} and {MAX_AGE}"
    return errors


def age_from_birth_date(born: date, today: Optional[date] = None) -> int:
    current = today or date.today()
    years = current.year - born.year
    if (current.month, current.day) < (born.month, born.day):
        years -= 1
    return years


def progress_percent(step: int) -> int:
    clamped = max(0, min(step, TOTAL_STEPS))
    return round(clamped / TOTAL_STEPS * 100)
