from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from biowell.api.auth import get_current_user
from biowell.core.context_builder import recent_metric_rows, summarize_metrics
from biowell.db.models import HealthMetric, User
from biowell.db.session import get_db

router = APIRouter(prefix="/metrics", tags=["metrics"])


class MetricType(str, Enum):
    weight_kg = "weight_kg"
    body_fat_pct = "body_fat_pct"
    resting_hr_bpm = "resting_hr_bpm"
    hrv_ms = "hrv_ms"
    sleep_hours = "sleep_hours"
    steps = "steps"
    active_minutes = "active_minutes"
    bp_systolic = "bp_systolic"
    bp_diastolic = "bp_diastolic"
    glucose_mg_dl = "glucose_mg_dl"
    stress_1_10 = "stress_1_10"
    energy_1_10 = "energy_1_10"


# (lower, upper, must_be_int, unit)
METRIC_RULES: dict[MetricType, tuple[float, float, bool, str]] = {
    MetricType.weight_kg: (30, 350, False, "kg"),
    MetricType.body_fat_pct: (2, 70, False, "%"),
    MetricType.resting_hr_bpm: (30, 220, True, "bpm"),
    MetricType.hrv_ms: (5, 300, False, "ms"),
    MetricType.sleep_hours: (0, 16, False, "h"),
    MetricType.steps: (0, 100000, True, "steps"),
    MetricType.active_minutes: (0, 600, True, "min"),
    MetricType.bp_systolic: (70, 240, True, "mmHg"),
    MetricType.bp_diastolic: (40, 150, True, "mmHg"),
    MetricType.glucose_mg_dl: (20, 600, False, "mg/dL"),
    MetricType.stress_1_10: (1, 10, True, "score"),
    MetricType.energy_1_10: (1, 10, True, "score"),
}


class MetricWriteRequest(BaseModel):
    metric_type: MetricType
    value: float = Field(allow_inf_nan=False)
    source: str = Field(default="manual", min_length=1, max_length=32)
    taken_at: Optional[datetime] = None


class MetricItem(BaseModel):
    id: int
    metric_type: MetricType
    value: float
    unit: str
    source: str
    taken_at: datetime


class MetricListResponse(BaseModel):
    items: list[MetricItem]


class MetricSummaryItem(BaseModel):
    type: str
    latest_value: float
    average_7_days: float
    data_points: int
    last_recorded: str
    source: str


class MetricSummaryResponse(BaseModel):
    items: list[MetricSummaryItem]


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _validate_metric(metric_type: MetricType, value: float) -> None:
    lower, upper, must_be_int, _ = METRIC_RULES[metric_type]
    if value < lower or value > upper:
        raise HTTPException(status_code=422, detail=f"value out of range for {metric_type.value}")
    if must_be_int and int(value) != value:
        raise HTTPException(status_code=422, detail=f"value for {metric_type.value} must be an integer")


def _metric_item(row: HealthMetric) -> MetricItem:
    return MetricItem(
        id=row.id,
        metric_type=MetricType(row.metric_type),
        value=row.value_num,
        unit=row.unit,
        source=row.source,
        taken_at=_to_utc(row.taken_at),
    )


@router.post("", response_model=MetricItem, status_code=status.HTTP_201_CREATED)
def create_metric(
    payload: MetricWriteRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MetricItem:
    _validate_metric(payload.metric_type, payload.value)
    record = HealthMetric(
        user_id=user.id,
        metric_type=payload.metric_type.value,
        value_num=float(payload.value),
        unit=METRIC_RULES[payload.metric_type][3],
        source=payload.source.strip(),
        taken_at=_to_utc(payload.taken_at or datetime.now(timezone.utc)),
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return _metric_item(record)


@router.get("", response_model=MetricListResponse)
def list_metrics(
    metric_type: Optional[MetricType] = None,
    from_ts: Optional[datetime] = Query(default=None, alias="from"),
    to_ts: Optional[datetime] = Query(default=None, alias="to"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> MetricListResponse:
    query = db.query(HealthMetric).filter(HealthMetric.user_id == user.id)
    if metric_type:
        query = query.filter(HealthMetric.metric_type == metric_type.value)
    if from_ts:
        query = query.filter(HealthMetric.taken_at >= _to_utc(from_ts))
    if to_ts:
        query = query.filter(HealthMetric.taken_at <= _to_utc(to_ts))

    rows = query.order_by(HealthMetric.taken_at.asc(), HealthMetric.id.asc()).all()
    return MetricListResponse(items=[_metric_item(row) for row in rows])


@router.get("/summary", response_model=MetricSummaryResponse)
def metric_summary(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> MetricSummaryResponse:
    rows = recent_metric_rows(db, user.id)
    return MetricSummaryResponse(items=[MetricSummaryItem(**item) for item in summarize_metrics(rows)])
