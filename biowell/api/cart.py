from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import func
from sqlalchemy.orm import Session

from biowell.api.auth import current_plan_tier, get_current_user
from biowell.core.plans import member_discount
from biowell.core.supplements import get_supplement, unit_price
from biowell.db.models import CartItem, User
from biowell.db.session import get_db

router = APIRouter(prefix="/cart", tags=["cart"])


class CartAddRequest(BaseModel):
    supplement_id: str = Field(min_length=1, max_length=80)
    quantity: int = Field(default=1, ge=1, le=99)
    # Omitted on a re-add keeps the line's current mode.
    subscription: Optional[bool] = None


class CartQuantityRequest(BaseModel):
    quantity: int = Field(le=99)


class CartLine(BaseModel):
    id: int
    supplement_id: str
    name: str
    image_url: str
    price_aed: float
    subscription_discount_percent: float
    unit_price_aed: float
    quantity: int
    subscription: bool
    line_total_aed: float


class CartResponse(BaseModel):
    items: list[CartLine]
    item_count: int
    subtotal_aed: float
    plan_tier: str


class CartCountResponse(BaseModel):
    count: int


def _owned_item(db: Session, user_id: int, item_id: int) -> CartItem:
    row = db.query(CartItem).filter(CartItem.id == item_id, CartItem.user_id == user_id).first()
    if not row:
        raise HTTPException(status_code=404, detail="Cart item not found")
    return row


def cart_lines(db: Session, user_id: int) -> tuple[list[dict[str, Any]], str]:
    """Cart rows joined with the catalog; rows whose supplement left the catalog are skipped."""
    tier = current_plan_tier(db, user_id)
    cap: Optional[float] = member_discount(tier)
    rows = db.query(CartItem).filter(CartItem.user_id == user_id).order_by(CartItem.id.asc()).all()
    lines: list[dict[str, Any]] = []
    for row in rows:
        supplement = get_supplement(row.supplement_id)
        if not supplement:
            continue
        price = unit_price(supplement, row.subscription, cap)
        lines.append(
            {
                "id": row.id,
                "supplement_id": row.supplement_id,
                "name": supplement["name"],
                "image_url": supplement["image_url"],
                "price_aed": float(supplement["price_aed"]),
                "subscription_discount_percent": float(supplement["subscription_discount_percent"]),
                "unit_price_aed": price,
                "quantity": row.quantity,
                "subscription": row.subscription,
                "line_total_aed": round(price * row.quantity, 2),
            }
        )
    return lines, tier


def _cart_response(db: Session, user_id: int) -> CartResponse:
    lines, tier = cart_lines(db, user_id)
    return CartResponse(
        items=[CartLine(**line) for line in lines],
        item_count=sum(line["quantity"] for line in lines),
        subtotal_aed=round(sum(line["line_total_aed"] for line in lines), 2),
        plan_tier=tier,
    )


@router.get("", response_model=CartResponse)
def get_cart(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> CartResponse:
    return _cart_response(db, user.id)


@router.post("/items", response_model=CartResponse, status_code=status.HTTP_201_CREATED)
def add_to_cart(
    payload: CartAddRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CartResponse:
    supplement_id = payload.supplement_id.strip()
    if not get_supplement(supplement_id):
        raise HTTPException(status_code=404, detail="Supplement not found")

    row = (
        db.query(CartItem)
        .filter(CartItem.user_id == user.id, CartItem.supplement_id == supplement_id)
        .first()
    )
    if row:
        row.quantity += payload.quantity
        if payload.subscription is not None:
            row.subscription = payload.subscription
    else:
        db.add(
            CartItem(
                user_id=user.id,
                supplement_id=supplement_id,
                quantity=payload.quantity,
                subscription=bool(payload.subscription),
            )
        )
    db.commit()
    return _cart_response(db, user.id)


@router.patch("/items/{item_id}", response_model=CartResponse)
def update_quantity(
    item_id: int,
    payload: CartQuantityRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CartResponse:
    row = _owned_item(db, user.id, item_id)
    if payload.quantity < 1:
        db.delete(row)
    else:
        row.quantity = payload.quantity
    db.commit()
    return _cart_response(db, user.id)


@router.post("/items/{item_id}/subscription", response_model=CartResponse)
def toggle_subscription(
    item_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CartResponse:
    row = _owned_item(db, user.id, item_id)
    row.subscription = not row.subscription
    db.commit()
    return _cart_response(db, user.id)


@router.delete("/items/{item_id}", response_model=CartResponse)
def remove_item(
    item_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> CartResponse:
    db.delete(_owned_item(db, user.id, item_id))
    db.commit()
    return _cart_response(db, user.id)


@router.delete("", response_model=CartResponse)
def clear_cart(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> CartResponse:
    db.query(CartItem).filter(CartItem.user_id == user.id).delete(synchronize_session=False)
    db.commit()
    return _cart_response(db, user.id)


@router.get("/count", response_model=CartCountResponse)
def cart_count(user: User = Depends(get_current_user), db: Session = Depends(get_db)) -> CartCountResponse:
    total = db.query(func.coalesce(func.sum(CartItem.quantity), 0)).filter(CartItem.user_id == user.id).scalar()
    return CartCountResponse(count=int(total or 0))
