import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from biowell.api.auth import get_current_user
from biowell.core.pagination import paginate
from biowell.core.supplements import (
    SUPPLEMENT_CATEGORIES,
    featured_supplements,
    get_supplement,
    list_supplements,
    recommend_supplements,
    stack_cost,
)
from biowell.db.models import Profile, SupplementStack, User, UserSupplement
from biowell.db.session import get_db

router = APIRouter(prefix="/supplements", tags=["supplements"])


class EvidenceTier(str, Enum):
    green = "Green"
    orange = "Orange"


class SupplementItem(BaseModel):
    id: str
    name: str
    category: str
    use_case: str
    tier: str
    dose_typical: str
    evidence_quality: str
    price_aed: float
    subscription_discount_percent: float
    discounted_price_aed: float
    image_url: str
    form_image_url: str
    description: str
    benefits: list[str]
    warnings: list[str]
    interactions: list[str]


class SupplementPageResponse(BaseModel):
    items: list[SupplementItem]
    total: int
    offset: int
    limit: int
    has_more: bool


class StarterStack(BaseModel):
    id: str
    name: str
    description: str
    goal: str
    supplement_ids: list[str]


class RecommendationResponse(BaseModel):
    goals: list[str]
    matched_categories: list[str]
    personalized_message: str
    supplements: list[SupplementItem]
    stacks: list[StarterStack]


class StackCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=1000)
    goal: Optional[str] = Field(default=None, max_length=64)
    supplement_ids: list[str] = Field(min_length=1, max_length=30)
    is_active: bool = True
    is_favorite: bool = False


class StackUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, max_length=1000)
    goal: Optional[str] = Field(default=None, max_length=64)
    supplement_ids: Optional[list[str]] = Field(default=None, min_length=1, max_length=30)
    is_active: Optional[bool] = None
    is_favorite: Optional[bool] = None


class StackItem(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    goal: Optional[str] = None
    supplement_ids: list[str]
    is_active: bool
    is_favorite: bool
    total_cost_aed: float
    subscription_cost_aed: float
    created_at: datetime


class StackListResponse(BaseModel):
    items: list[StackItem]


class UserSupplementRequest(BaseModel):
    supplement_id: str = Field(min_length=1, max_length=80)
    dosage: Optional[str] = Field(default=None, max_length=80)
    timing: list[str] = Field(default_factory=list, max_length=6)
    purpose: Optional[str] = Field(default=None, max_length=160)
    start_date: Optional[date] = None
    active: bool = True


class UserSupplementItem(BaseModel):
    id: int
    supplement_id: str
    name: str
    tier: str
    dosage: Optional[str] = None
    timing: list[str]
    purpose: Optional[str] = None
    start_date: Optional[date] = None
    active: bool


class UserSupplementListResponse(BaseModel):
    items: list[UserSupplementItem]


def _json_list(raw: Optional[str]) -> list[str]:
    if not raw:
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return [str(item) for item in parsed] if isinstance(parsed, list) else []


def _require_known_ids(supplement_ids: list[str]) -> list[str]:
    cleaned: list[str] = []
    unknown: list[str] = []
    for sid in supplement_ids:
        value = sid.strip()
        if not get_supplement(value):
            unknown.append(value)
        elif value not in cleaned:
            cleaned.append(value)
    if unknown:
        raise HTTPException(status_code=422, detail=f"Unknown supplement ids: {', '.join(unknown)}")
    return cleaned


def _stack_item(row: SupplementStack) -> StackItem:
    ids = _json_list(row.supplement_ids_json)
    return StackItem(
        id=row.id,
        name=row.name,
        description=row.description,
        goal=row.goal,
        supplement_ids=ids,
        is_active=row.is_active,
        is_favorite=row.is_favorite,
        total_cost_aed=stack_cost(ids),
        subscription_cost_aed=stack_cost(ids, subscription=True),
        created_at=row.created_at,
    )


def _user_supplement_item(row: UserSupplement) -> UserSupplementItem:
    catalog = get_supplement(row.supplement_id) or {}
    return UserSupplementItem(
        id=row.id,
        supplement_id=row.supplement_id,
        name=catalog.get("name", row.supplement_id),
        tier=catalog.get("tier", "Unknown"),
        dosage=row.dosage,
        timing=_json_list(row.timing_json),
        purpose=row.purpose,
        start_date=row.start_date,
        active=row.subscription_active,
    )


def _owned_stack(db: Session, user_id: int, stack_id: int) -> SupplementStack:
    row = db.query(SupplementStack).filter(SupplementStack.id == stack_id, SupplementStack.user_id == user_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Stack not found")
    return row


@router.get("", response_model=SupplementPageResponse)
def browse_supplements(
    category: Optional[str] = None,
    tier: Optional[EvidenceTier] = None,
    q: Optional[str] = Query(default=None, max_length=120),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
) -> SupplementPageResponse:
    rows = list_supplements(category=category, tier=tier.value if tier else None, query=q)
    return SupplementPageResponse(**paginate(rows, offset, limit))


@router.get("/categories", response_model=list[str])
def supplement_categories() -> list[str]:
    return list(SUPPLEMENT_CATEGORIES)


@router.get("/featured", response_model=list[SupplementItem])
def supplement_featured() -> list[SupplementItem]:
    return [SupplementItem(**item) for item in featured_supplements()]


@router.get("/recommendations", response_model=RecommendationResponse)
def supplement_recommendations(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> RecommendationResponse:
    profile = db.query(Profile).filter(Profile.user_id == user.id).first()
    goals = _json_list(profile.health_goals_json) if profile else []
    taking = {
        row.supplement_id
        for row in db.query(UserSupplement)
        .filter(UserSupplement.user_id == user.id, UserSupplement.subscription_active.is_(True))
        .all()
    }
    result: dict[str, Any] = recommend_supplements(goals, exclude_ids=taking)
    return RecommendationResponse(goals=goals, **result)


@router.post("/stacks", response_model=StackItem, status_code=status.HTTP_201_CREATED)
def create_stack(
    payload: StackCreateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StackItem:
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=422, detail="Stack name is required")
    ids = _require_known_ids(payload.supplement_ids)
    row = SupplementStack(
        user_id=user.id,
        name=name,
        description=(payload.description or "").strip() or None,
        goal=(payload.goal or "").strip() or None,
        supplement_ids_json=json.dumps(ids),
        is_active=payload.is_active,
        is_favorite=payload.is_favorite,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return _stack_item(row)


@router.get("/stacks", response_model=StackListResponse)
def list_stacks(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> StackListResponse:
    rows = (
        db.query(SupplementStack)
        .filter(SupplementStack.user_id == user.id)
        .order_by(SupplementStack.is_favorite.desc(), SupplementStack.created_at.desc(), SupplementStack.id.desc())
        .all()
    )
    return StackListResponse(items=[_stack_item(row) for row in rows])


@router.patch("/stacks/{stack_id}", response_model=StackItem)
def update_stack(
    stack_id: int,
    payload: StackUpdateRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> StackItem:
    row = _owned_stack(db, user.id, stack_id)
    values = payload.model_dump(exclude_unset=True)
    if "name" in values:
        name = (values["name"] or "").strip()
        if not name:
            raise HTTPException(status_code=422, detail="Stack name is required")
        row.name = name
    if "description" in values:
        row.description = (values["description"] or "").strip() or None
    if "goal" in values:
        row.goal = (values["goal"] or "").strip() or None
    if values.get("supplement_ids") is not None:
        row.supplement_ids_json = json.dumps(_require_known_ids(values["supplement_ids"]))
    if values.get("is_active") is not None:
        row.is_active = values["is_active"]
    if values.get("is_favorite") is not None:
        row.is_favorite = values["is_favorite"]
    db.commit()
    db.refresh(row)
    return _stack_item(row)


@router.delete("/stacks/{stack_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_stack(
    stack_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> None:
    db.delete(_owned_stack(db, user.id, stack_id))
    db.commit()


@router.post("/mine", response_model=UserSupplementItem, status_code=status.HTTP_201_CREATED)
def add_user_supplement(
    payload: UserSupplementRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserSupplementItem:
    supplement_id = payload.supplement_id.strip()
    if not get_supplement(supplement_id):
        raise HTTPException(status_code=404, detail="Supplement not found")
    row = UserSupplement(
        user_id=user.id,
        supplement_id=supplement_id,
        dosage=(payload.dosage or "").strip() or None,
        timing_json=json.dumps([t.strip() for t in payload.timing if t.strip()]),
        purpose=(payload.purpose or "").strip() or None,
        start_date=payload.start_date,
        subscription_active=payload.active,
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=409, detail="Supplement already in your regimen")
    db.refresh(row)
    return _user_supplement_item(row)


@router.get("/mine", response_model=UserSupplementListResponse)
def list_user_supplements(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> UserSupplementListResponse:
    rows = db.query(UserSupplement).filter(UserSupplement.user_id == user.id).order_by(UserSupplement.id.asc()).all()
    return UserSupplementListResponse(items=[_user_supplement_item(row) for row in rows])


@router.delete("/mine/{entry_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_user_supplement(
    entry_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> None:
    row = db.query(UserSupplement).filter(UserSupplement.id == entry_id, UserSupplement.user_id == user.id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Supplement entry not found")
    db.delete(row)
    db.commit()


@router.get("/{supplement_id}", response_model=SupplementItem)
def supplement_detail(supplement_id: str) -> SupplementItem:
    item = get_supplement(supplement_id)
    if not item:
        raise HTTPException(status_code=404, detail="Supplement not found")
    return SupplementItem(**item)
