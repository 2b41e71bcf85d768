import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from biowell.api.auth import ACTIVE_SUBSCRIPTION_STATUSES, get_current_user
from biowell.api.cart import cart_lines
from biowell.core.plans import BillingCycle, PlanTier, plan_catalog, price_id
from biowell.core.security import verify_webhook_signature
from biowell.db.models import CartItem, Subscription, User
from biowell.db.session import get_db
from biowell.services.billing import BillingClient, BillingRequestError, get_billing_client

router = APIRouter(prefix="/billing", tags=["billing"])
logger = logging.getLogger("uvicorn.error")
APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:5173").rstrip("/")


class PlanItem(BaseModel):
    tier: str
    name: str
    price_aed: Optional[float] = None
    monthly_price_aed: Optional[float] = None
    annual_price_aed: Optional[float] = None
    features: list[str]
    cgm_access: bool
    personalized_advice: bool
    discount_eligible: bool
    max_discount: Optional[float] = None
    team_sharing: Optional[dict[str, Any]] = None
    is_enterprise: bool
    contact_cta: Optional[str] = None
    price_ids: dict[str, str]


class SubscriptionCheckoutRequest(BaseModel):
    plan: PlanTier
    billing_cycle: BillingCycle = BillingCycle.monthly


class CheckoutResponse(BaseModel):
    session_id: str
    url: Optional[str] = None
    mode: str


class PortalResponse(BaseModel):
    url: str


class SubscriptionResponse(BaseModel):
    plan_tier: str
    status: str
    billing_cycle: Optional[str] = None
    current_period_end: Optional[datetime] = None
    has_customer: bool


class WebhookAck(BaseModel):
    received: bool = True


def _success_url() -> str:
    return f"{APP_BASE_URL}/payment-success?session_id={{CHECKOUT_SESSION_ID}}"


def _cancel_url() -> str:
    return f"{APP_BASE_URL}/payment-cancel"


def _subscription_row(db: Session, user_id: int) -> Optional[Subscription]:
    return db.query(Subscription).filter(Subscription.user_id == user_id).first()


def _get_or_create_subscription(db: Session, user_id: int) -> Subscription:
    row = _subscription_row(db, user_id)
    if row:
        return row
    row = Subscription(user_id=user_id, plan_tier=PlanTier.free.value, status="inactive")
    db.add(row)
    db.flush()
    return row


def _customer_params(db: Session, user: User) -> dict[str, Any]:
    row = _subscription_row(db, user.id)
    if row and row.stripe_customer_id:
        return {"customer": row.stripe_customer_id}
    return {"customer_email": user.email}


def _start_checkout(
    billing_client: BillingClient, params: dict[str, Any], user_id: int, event: str
) -> CheckoutResponse:
    try:
        session = billing_client.create_checkout_session(params)
    except BillingRequestError as exc:
        logger.exception("%s user_id=%s status=%s detail=%s", event, user_id, exc.status_code, str(exc))
        raise HTTPException(status_code=502, detail=str(exc))
    return CheckoutResponse(session_id=str(session.get("id") or ""), url=session.get("url"), mode=params["mode"])


@router.get("/plans", response_model=list[PlanItem])
def list_plans() -> list[PlanItem]:
    return [PlanItem(**plan) for plan in plan_catalog()]


@router.post("/checkout/subscription", response_model=CheckoutResponse)
def create_subscription_checkout(
    payload: SubscriptionCheckoutRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    billing_client: BillingClient = Depends(get_billing_client),
) -> CheckoutResponse:
    stripe_price = price_id(payload.plan, payload.billing_cycle)
    if not stripe_price:
        raise HTTPException(status_code=422, detail=f"Plan '{payload.plan.value}' cannot be purchased online")
    metadata = {
        "user_id": str(user.id),
        "checkout_type": "subscription",
        "plan_tier": payload.plan.value,
        "billing_cycle": payload.billing_cycle.value,
    }
    params = {
        "mode": "subscription",
        "line_items": [{"price": stripe_price, "quantity": 1}],
        "success_url": _success_url(),
        "cancel_url": _cancel_url(),
        "client_reference_id": str(user.id),
        "metadata": metadata,
        "subscription_data": {"metadata": metadata},
        **_customer_params(db, user),
    }
    return _start_checkout(billing_client, params, user.id, "billing_subscription_checkout_error")


@router.post("/checkout/cart", response_model=CheckoutResponse)
def create_cart_checkout(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    billing_client: BillingClient = Depends(get_billing_client),
) -> CheckoutResponse:
    lines, _ = cart_lines(db, user.id)
    if not lines:
        raise HTTPException(status_code=422, detail="Cart is empty")

    line_items = []
    for line in lines:
        price_data: dict[str, Any] = {
            "currency": "aed",
            "unit_amount": int(round(line["unit_price_aed"] * 100)),
            "product_data": {"name": line["name"]},
        }
        if line["subscription"]:
            price_data["recurring"] = {"interval": "month"}
        line_items.append({"price_data": price_data, "quantity": line["quantity"]})

    mode = "subscription" if any(line["subscription"] for line in lines) else "payment"
    metadata = {"user_id": str(user.id), "checkout_type": "cart"}
    params: dict[str, Any] = {
        "mode": mode,
        "line_items": line_items,
        "success_url": _success_url(),
        "cancel_url": _cancel_url(),
        "client_reference_id": str(user.id),
        "metadata": metadata,
        **_customer_params(db, user),
    }
    if mode == "subscription":
        params["subscription_data"] = {"metadata": metadata}
    return _start_checkout(billing_client, params, user.id, "billing_cart_checkout_error")


@router.post("/portal", response_model=PortalResponse)
def create_portal_session(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    billing_client: BillingClient = Depends(get_billing_client),
) -> PortalResponse:
    row = _subscription_row(db, user.id)
    if not row or not row.stripe_customer_id:
        raise HTTPException(status_code=404, detail="No billing account found")
    try:
        session = billing_client.create_portal_session(row.stripe_customer_id, f"{APP_BASE_URL}/account")
    except BillingRequestError as exc:
        logger.exception("billing_portal_error user_id=%s status=%s detail=%s", user.id, exc.status_code, str(exc))
        raise HTTPException(status_code=502, detail=str(exc))
    return PortalResponse(url=str(session.get("url") or ""))


@router.get("/subscription", response_model=SubscriptionResponse)
def get_subscription(
    user: User = Depends(get_current_user), db: Session = Depends(get_db)
) -> SubscriptionResponse:
    row = _subscription_row(db, user.id)
    if not row:
        return SubscriptionResponse(plan_tier=PlanTier.free.value, status="inactive", has_customer=False)
    return SubscriptionResponse(
        plan_tier=row.plan_tier if row.status in ACTIVE_SUBSCRIPTION_STATUSES else PlanTier.free.value,
        status=row.status,
        billing_cycle=row.billing_cycle,
        current_period_end=row.current_period_end,
        has_customer=bool(row.stripe_customer_id),
    )


def _user_id_from(obj: dict[str, Any]) -> Optional[int]:
    raw = (obj.get("metadata") or {}).get("user_id") or obj.get("client_reference_id")
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def _find_subscription(db: Session, obj: dict[str, Any]) -> Optional[Subscription]:
    user_id = _user_id_from(obj)
    if user_id is not None:
        row = _subscription_row(db, user_id)
        if row:
            return row
    if obj.get("id"):
        row = db.query(Subscription).filter(Subscription.stripe_subscription_id == obj["id"]).first()
        if row:
            return row
    if obj.get("customer"):
        return db.query(Subscription).filter(Subscription.stripe_customer_id == obj["customer"]).first()
    return None


def _handle_checkout_completed(db: Session, obj: dict[str, Any]) -> None:
    user_id = _user_id_from(obj)
    if user_id is None or not db.query(User).filter(User.id == user_id).first():
        logger.info("stripe_webhook_unknown_user session_id=%s", obj.get("id"))
        return
    metadata = obj.get("metadata") or {}
    row = _get_or_create_subscription(db, user_id)
    if obj.get("customer"):
        row.stripe_customer_id = obj["customer"]
    if metadata.get("checkout_type") == "cart":
        db.query(CartItem).filter(CartItem.user_id == user_id).delete(synchronize_session=False)
    elif obj.get("mode") == "subscription":
        row.stripe_subscription_id = obj.get("subscription") or row.stripe_subscription_id
        row.plan_tier = metadata.get("plan_tier") or row.plan_tier
        row.billing_cycle = metadata.get("billing_cycle") or row.billing_cycle
        row.status = "active"


def _handle_subscription_changed(db: Session, obj: dict[str, Any], deleted: bool) -> None:
    metadata = obj.get("metadata") or {}
    if metadata.get("checkout_type") == "cart":
        logger.info("stripe_webhook_cart_subscription subscription_id=%s", obj.get("id"))
        return
    row = _find_subscription(db, obj)
    if not row:
        logger.info("stripe_webhook_unknown_subscription subscription_id=%s", obj.get("id"))
        return
    # A customer may hold several Stripe subscriptions. Another one may only take over
    # the membership row when it names a plan tier, and never by being deleted.
    if obj.get("id") != row.stripe_subscription_id and (deleted or not metadata.get("plan_tier")):
        logger.info(
            "stripe_webhook_foreign_subscription user_id=%s subscription_id=%s",
            row.user_id,
            obj.get("id"),
        )
        return
    row.stripe_subscription_id = obj.get("id") or row.stripe_subscription_id
    if obj.get("customer"):
        row.stripe_customer_id = obj["customer"]
    if deleted:
        row.status = "canceled"
        row.plan_tier = PlanTier.free.value
        return
    row.status = str(obj.get("status") or row.status)
    plan_tier = metadata.get("plan_tier")
    if plan_tier:
        row.plan_tier = plan_tier
        row.billing_cycle = metadata.get("billing_cycle") or row.billing_cycle
    period_end = obj.get("current_period_end")
    if period_end:
        row.current_period_end = datetime.fromtimestamp(int(period_end), tz=timezone.utc)


@router.post("/webhook", response_model=WebhookAck, status_code=status.HTTP_200_OK)
async def stripe_webhook(request: Request, db: Session = Depends(get_db)) -> WebhookAck:
    payload = await request.body()
    secret = os.getenv("STRIPE_WEBHOOK_SECRET", "").strip()
    if secret:
        try:
            verify_webhook_signature(payload, request.headers.get("stripe-signature", ""), secret)
        except ValueError as exc:
            logger.info("stripe_webhook_bad_signature detail=%s", str(exc))
            raise HTTPException(status_code=400, detail="Invalid signature")
    try:
        event = json.loads(payload)
        event_type = str(event["type"])
        obj = event.get("data", {}).get("object") or {}
    except (ValueError, KeyError, TypeError, AttributeError):
        raise HTTPException(status_code=400, detail="Invalid payload")

    if event_type == "checkout.session.completed":
        _handle_checkout_completed(db, obj)
    elif event_type in {"customer.subscription.created", "customer.subscription.updated"}:
        _handle_subscription_changed(db, obj, deleted=False)
    elif event_type == "customer.subscription.deleted":
        _handle_subscription_changed(db, obj, deleted=True)
    else:
        logger.info("stripe_webhook_unhandled type=%s", event_type)
    db.commit()
    logger.info("stripe_webhook_processed type=%s", event_type)
    return WebhookAck()
