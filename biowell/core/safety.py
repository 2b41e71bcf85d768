import re

URGENT_FLAG = "urgent_symptom_language"
SUPPLEMENT_FLAG = "supplement_caution"

# Symptom groups that bypass the coach and return emergency guidance.
_URGENT_GROUPS = {
    "cardiac": r"chest (pain|pressure|tightness)|pressure in (my |the )?chest|heart attack",
    "breathing": r"short(ness)? of breath|can'?t breathe|cannot breathe|struggling to breathe",
    "syncope": r"faint(ing|ed)?|passed out|blacked out|los(t|ing) consciousness",
    "stroke": r"stroke|face droop(ing)?|slurred speech|(one|left|right) side (is )?(weak|numb)",
}
URGENT_PATTERN = re.compile(
    r"\b(" + "|".join(f"(?:{group})" for group in _URGENT_GROUPS.values()) + r")\b",
    re.IGNORECASE,
)

SUPPLEMENT_PATTERN = re.compile(
    r"\b(supplements?|stacks?|creatine|berberine|ashwagandha|omega-?3s?|fish oil|"
    r"melatonin|magnesium|zinc|vitamins?|probiotics?|collagen)\b",
    re.IGNORECASE,
)

EMERGENCY_REPLY = (
    "Some of what you describe can be a sign of a medical emergency. "
    "Call your local emergency services or get to an emergency room right away. "
    "If you feel faint or unsteady, do not drive yourself."
)
SUPPLEMENT_CAUTION = (
    "A note on supplements: start low, add one at a time, and run new ones past your "
    "clinician or pharmacist if you take medication or manage a health condition."
)


def detect_urgent_flags(message: str) -> list[str]:
    return [URGENT_FLAG] if URGENT_PATTERN.search(message) else []


def has_supplement_topic(message: str) -> bool:
    return SUPPLEMENT_PATTERN.search(message) is not None


def emergency_reply() -> str:
    return EMERGENCY_REPLY


def supplement_caution_text() -> str:
    return SUPPLEMENT_CAUTION
