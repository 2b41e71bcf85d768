import json
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from biowell.core.supplements import get_supplement
from biowell.db.models import ChatHistory, HealthMetric, Profile, UserSupplement

METRIC_LOOKBACK_DAYS = 7
METRIC_LIMIT = 50
RECENT_CHAT_LIMIT = 10
TOPIC_SAMPLE = 3

TOPIC_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("sleep",), "sleep"),
    (("supplement",), "supplements"),
    (("nutrition", "diet"), "nutrition"),
    (("exercise", "workout"), "fitness"),
    (("stress",), "stress management"),
    (("weight",), "weight management"),
]


def _json_list(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(parsed, list):
        return []
    return [str(item).strip() for item in parsed if str(item).strip()]


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def extract_topic(message: str) -> str:
    lowered = (message or "").lower()
    for keywords, topic in TOPIC_KEYWORDS:
        if any(word in lowered for word in keywords):
            return topic
    return ""


def summarize_metrics(rows: list[HealthMetric]) -> list[dict[str, Any]]:
    """Group readings by type; ``rows`` must be newest first so the first reading is the latest."""
    grouped: dict[str, list[HealthMetric]] = {}
    for row in rows:
        grouped.setdefault(row.metric_type, []).append(row)

    summaries = []
    for metric_type, values in grouped.items():
        latest = values[0]
        average = sum(v.value_num for v in values) / len(values)
        summaries.append(
            {
                "type": metric_type,
                "latest_value": latest.value_num,
                "average_7_days": round(average, 2),
                "data_points": len(values),
                "last_recorded": _to_utc(latest.taken_at).isoformat(),
                "source": latest.source,
            }
        )
    return summaries


def recent_metric_rows(db: Session, user_id: int, days: int = METRIC_LOOKBACK_DAYS) -> list[HealthMetric]:
    since = datetime.now(timezone.utc) - timedelta(days=days)
    return (
        db.query(HealthMetric)
        .filter(HealthMetric.user_id == user_id, HealthMetric.taken_at >= since)
        .order_by(HealthMetric.taken_at.desc(), HealthMetric.id.desc())
        .limit(METRIC_LIMIT)
        .all()
    )


def _profile_summary(profile: Optional[Profile]) -> Optional[dict[str, Any]]:
    if not profile:
        return None
    return {
        "first_name": profile.first_name,
        "age": profile.age,
        "gender": profile.gender,
        "activity_level": profile.activity_level,
        "health_goals": _json_list(profile.health_goals_json),
        "diet_preference": profile.diet_preference,
        "sleep_hours": profile.sleep_hours,
        "stress_level": profile.stress_level,
        "medical_conditions": _json_list(profile.medical_conditions_json),
        "allergies": _json_list(profile.allergies_json),
    }


def _active_supplements(db: Session, user_id: int) -> list[dict[str, Any]]:
    rows = (
        db.query(UserSupplement)
        .filter(UserSupplement.user_id == user_id, UserSupplement.subscription_active.is_(True))
        .order_by(UserSupplement.id.asc())
        .all()
    )
    items = []
    for row in rows:
        catalog = get_supplement(row.supplement_id)
        items.append(
            {
                "name": catalog["name"] if catalog else row.supplement_id,
                "dosage": row.dosage,
                "timing": _json_list(row.timing_json),
                "purpose": row.purpose,
                "tier": catalog["tier"] if catalog else None,
            }
        )
    return items


def build_user_context(db: Session, user_id: int) -> dict[str, Any]:
    profile = db.query(Profile).filter(Profile.user_id == user_id).first()
    history = (
        db.query(ChatHistory)
        .filter(ChatHistory.user_id == user_id)
        .order_by(ChatHistory.created_at.desc(), ChatHistory.id.desc())
        .limit(RECENT_CHAT_LIMIT)
        .all()
    )
    return {
        "profile": _profile_summary(profile),
        "health_metrics": summarize_metrics(recent_metric_rows(db, user_id)),
        "supplements": _active_supplements(db, user_id),
        "recent_messages": [row.message for row in history],
    }


def render_context_prompt(context: Optional[dict[str, Any]]) -> str:
    if not context:
        return ""

    lines = ["", "", "## USER CONTEXT:"]
    profile = context.get("profile")
    if profile:
        head = f"**Profile**: {profile.get('first_name') or 'User'}"
        if profile.get("age"):
            head += f", {profile['age']} years old"
        if profile.get("gender"):
            head += f", {profile['gender']}"
        lines.append(head)
        if profile.get("health_goals"):
            lines.append(f"**Health Goals**: {', '.join(profile['health_goals'])}")
        if profile.get("activity_level"):
            lines.append(f"**Activity Level**: {profile['activity_level']}")
        if profile.get("diet_preference"):
            lines.append(f"**Diet Preference**: {profile['diet_preference']}")
        if profile.get("sleep_hours"):
            lines.append(f"**Average Sleep**: {profile['sleep_hours']} hours")
        if profile.get("stress_level"):
            lines.append(f"**Stress Level**: {profile['stress_level']}/10")
        if profile.get("medical_conditions"):
            lines.append(f"**Medical Conditions**: {', '.join(profile['medical_conditions'])}")
        if profile.get("allergies"):
            lines.append(f"**Allergies**: {', '.join(profile['allergies'])}")

    metrics = context.get("health_metrics") or []
    if metrics:
        lines.append("")
        lines.append("**Recent Health Metrics (7 days)**:")
        for metric in metrics:
            lines.append(
                f"- {metric['type']}: {metric['latest_value']} "
                f"(avg: {metric['average_7_days']}, {metric['data_points']} readings)"
            )

    supplements = context.get("supplements") or []
    if supplements:
        lines.append("")
        lines.append("**Current Supplements**:")
        for item in supplements:
            line = f"- {item['name']}"
            if item.get("dosage"):
                line += f" ({item['dosage']})"
            if item.get("timing"):
                line += f" - {', '.join(item['timing'])}"
            if item.get("purpose"):
                line += f" for {item['purpose']}"
            lines.append(line)

    messages = context.get("recent_messages") or []
    topics = [topic for topic in (extract_topic(m) for m in messages[:TOPIC_SAMPLE]) if topic]
    if topics:
        lines.append("")
        lines.append(f"**Recent Discussion Topics**: {', '.join(topics)}")

    lines.append("")
    lines.append(
        "**Instructions**: Use this context to provide personalized, relevant advice. "
        "Reference specific data when appropriate and build upon previous conversations. "
        "Always prioritize safety and evidence-based recommendations."
    )
    return "\n".join(lines) + "\n"
