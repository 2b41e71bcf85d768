import json
import time

from biowell.core.security import sign_webhook_payload
from biowell.services.billing import BillingRequestError

WEBHOOK_SECRET = "whsec_test_secret"


def _post_event(client, event: dict, secret: str = WEBHOOK_SECRET, signature: str = ""):
    payload = json.dumps(event).encode("utf-8")
    if not signature:
        timestamp = int(time.time())
        signature = f"t={timestamp},v1={sign_webhook_payload(payload, secret, timestamp)}"
    return client.post(
        "/billing/webhook",
        content=payload,
        headers={"stripe-signature": signature, "content-type": "application/json"},
    )


def test_plans_catalog(client) -> None:
    plans = client.get("/billing/plans").json()
    by_tier = {plan["tier"]: plan for plan in plans}
    assert by_tier["essential"]["annual_price_aed"] == 2029.8
    assert by_tier["premium"]["max_discount"] == 0.2
    assert by_tier["enterprise"]["contact_cta"] == "Speak to our Team"
    assert by_tier["free"]["price_ids"] == {}


def test_subscription_checkout(client, auth_headers, override_billing) -> None:
    fake = override_billing()
    response = client.post(
        "/billing/checkout/subscription", headers=auth_headers, json={"plan": "premium", "billing_cycle": "annual"}
    )
    assert response.status_code == 200
    assert response.json() == {
        "session_id": "cs_test_1",
        "url": "https://checkout.stripe.test/session",
        "mode": "subscription",
    }
    params = fake.checkout_calls[0]
    assert params["line_items"] == [{"price": "price_premium_annual_aed", "quantity": 1}]
    assert params["metadata"]["plan_tier"] == "premium"
    assert params["subscription_data"]["metadata"] == params["metadata"]
    assert params["success_url"].endswith("/payment-success?session_id={CHECKOUT_SESSION_ID}")
    assert "customer_email" in params


def test_non_purchasable_plans_rejected(client, auth_headers, override_billing) -> None:
    override_billing()
    for plan in ("free", "enterprise"):
        response = client.post("/billing/checkout/subscription", headers=auth_headers, json={"plan": plan})
        assert response.status_code == 422


def test_cart_checkout_builds_line_items(client, auth_headers, override_billing) -> None:
    fake = override_billing()
    assert client.post("/billing/checkout/cart", headers=auth_headers).status_code == 422

    client.post("/cart/items", headers=auth_headers, json={"supplement_id": "vitamin-d3", "quantity": 2})
    response = client.post("/billing/checkout/cart", headers=auth_headers)
    assert response.json()["mode"] == "payment"
    assert "subscription_data" not in fake.checkout_calls[-1]
    item = fake.checkout_calls[-1]["line_items"][0]
    assert item == {
        "price_data": {"currency": "aed", "unit_amount": 13100, "product_data": {"name": "Vitamin D3"}},
        "quantity": 2,
    }

    client.post(
        "/cart/items", headers=auth_headers, json={"supplement_id": "magnesium-glycinate", "subscription": True}
    )
    response = client.post("/billing/checkout/cart", headers=auth_headers)
    assert response.json()["mode"] == "subscription"
    recurring = fake.checkout_calls[-1]["line_items"][1]["price_data"]
    assert recurring["unit_amount"] == 12798
    assert recurring["recurring"] == {"interval": "month"}
    assert fake.checkout_calls[-1]["subscription_data"]["metadata"]["checkout_type"] == "cart"


def test_stripe_failure_is_bad_gateway(client, auth_headers, override_billing) -> None:
    override_billing(error=BillingRequestError("Stripe request failed (status=500): boom", 500))
    response = client.post("/billing/checkout/subscription", headers=auth_headers, json={"plan": "essential"})
    assert response.status_code == 502


def test_portal_requires_customer(client, auth_headers, override_billing) -> None:
    override_billing()
    response = client.post("/billing/portal", headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["detail"] == "No billing account found"


def test_subscription_defaults_to_free(client, auth_headers) -> None:
    body = client.get("/billing/subscription", headers=auth_headers).json()
    assert body == {
        "plan_tier": "free",
        "status": "inactive",
        "billing_cycle": None,
        "current_period_end": None,
        "has_customer": False,
    }


def test_webhook_rejects_bad_signature(client, monkeypatch) -> None:
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    response = _post_event(client, {"type": "ping"}, secret="wrong")
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid signature"

    missing = _post_event(client, {"type": "ping"}, signature="garbage")
    assert missing.status_code == 400


def test_webhook_rejects_malformed_payload(client, monkeypatch) -> None:
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)
    response = client.post("/billing/webhook", content=b"not json")
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid payload"
    assert client.post("/billing/webhook", json={"data": {}}).status_code == 400


def test_webhook_subscription_lifecycle(client, auth_headers, current_user_id, override_billing, monkeypatch) -> None:
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    fake = override_billing()
    completed = {
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_1",
                "mode": "subscription",
                "customer": f"cus_{current_user_id}",
                "subscription": f"sub_{current_user_id}",
                "metadata": {
                    "user_id": str(current_user_id),
                    "checkout_type": "subscription",
                    "plan_tier": "premium",
                    "billing_cycle": "annual",
                },
            }
        },
    }
    assert _post_event(client, completed).json() == {"received": True}

    sub = client.get("/billing/subscription", headers=auth_headers).json()
    assert sub["plan_tier"] == "premium"
    assert sub["status"] == "active"
    assert sub["billing_cycle"] == "annual"
    assert sub["has_customer"] is True
    assert client.get("/auth/me", headers=auth_headers).json()["plan_tier"] == "premium"

    portal = client.post("/billing/portal", headers=auth_headers).json()
    assert portal["url"] == f"https://billing.stripe.test/cus_{current_user_id}"
    assert fake.portal_calls[0][1].endswith("/account")

    checkout = client.post("/billing/checkout/subscription", headers=auth_headers, json={"plan": "essential"})
    assert checkout.status_code == 200
    assert fake.checkout_calls[-1]["customer"] == f"cus_{current_user_id}"

    updated = {
        "type": "customer.subscription.updated",
        "data": {
            "object": {
                "id": f"sub_{current_user_id}",
                "customer": f"cus_{current_user_id}",
                "status": "past_due",
                "current_period_end": 1893456000,
            }
        },
    }
    _post_event(client, updated)
    sub = client.get("/billing/subscription", headers=auth_headers).json()
    assert sub["status"] == "past_due"
    assert sub["plan_tier"] == "free"
    assert sub["current_period_end"].startswith("2030-01-01")

    deleted = {"type": "customer.subscription.deleted", "data": {"object": {"id": f"sub_{current_user_id}"}}}
    _post_event(client, deleted)
    sub = client.get("/billing/subscription", headers=auth_headers).json()
    assert sub["status"] == "canceled"
    assert sub["plan_tier"] == "free"


def _complete_premium_checkout(client, user_id: int) -> None:
    metadata = {"user_id": str(user_id), "checkout_type": "subscription", "plan_tier": "premium"}
    event = {
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_plan",
                "mode": "subscription",
                "customer": f"cus_{user_id}",
                "subscription": "sub_plan",
                "metadata": metadata,
            }
        },
    }
    assert client.post("/billing/webhook", json=event).status_code == 200


def test_webhook_other_subscriptions_leave_plan_alone(client, auth_headers, current_user_id, monkeypatch) -> None:
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)
    _complete_premium_checkout(client, current_user_id)

    cart_cancelled = {
        "type": "customer.subscription.deleted",
        "data": {"object": {"id": "sub_cart_supplements", "customer": f"cus_{current_user_id}"}},
    }
    tagged_cart_update = {
        "type": "customer.subscription.updated",
        "data": {
            "object": {
                "id": "sub_cart_supplements",
                "customer": f"cus_{current_user_id}",
                "status": "past_due",
                "metadata": {"user_id": str(current_user_id), "checkout_type": "cart"},
            }
        },
    }
    for event in (cart_cancelled, tagged_cart_update):
        assert client.post("/billing/webhook", json=event).json() == {"received": True}
        sub = client.get("/billing/subscription", headers=auth_headers).json()
        assert sub["plan_tier"] == "premium"
        assert sub["status"] == "active"


def test_webhook_plan_switch_survives_old_plan_deletion(client, auth_headers, current_user_id, monkeypatch) -> None:
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)
    _complete_premium_checkout(client, current_user_id)

    switched = {
        "type": "customer.subscription.created",
        "data": {
            "object": {
                "id": "sub_essential",
                "customer": f"cus_{current_user_id}",
                "status": "active",
                "metadata": {
                    "user_id": str(current_user_id),
                    "checkout_type": "subscription",
                    "plan_tier": "essential",
                    "billing_cycle": "annual",
                },
            }
        },
    }
    client.post("/billing/webhook", json=switched)
    old_plan_deleted = {
        "type": "customer.subscription.deleted",
        "data": {
            "object": {
                "id": "sub_plan",
                "customer": f"cus_{current_user_id}",
                "metadata": {"user_id": str(current_user_id), "plan_tier": "premium"},
            }
        },
    }
    client.post("/billing/webhook", json=old_plan_deleted)

    sub = client.get("/billing/subscription", headers=auth_headers).json()
    assert sub["plan_tier"] == "essential"
    assert sub["billing_cycle"] == "annual"
    assert sub["status"] == "active"


def test_webhook_cart_checkout_clears_cart(client, auth_headers, current_user_id, monkeypatch) -> None:
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)
    client.post("/cart/items", headers=auth_headers, json={"supplement_id": "probiotics"})
    event = {
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_cart",
                "mode": "payment",
                "customer": f"cus_cart_{current_user_id}",
                "metadata": {"user_id": str(current_user_id), "checkout_type": "cart"},
            }
        },
    }
    assert client.post("/billing/webhook", json=event).status_code == 200
    assert client.get("/cart/count", headers=auth_headers).json() == {"count": 0}
    assert client.get("/billing/subscription", headers=auth_headers).json()["plan_tier"] == "free"


def test_webhook_ignores_unknown_events(client, monkeypatch) -> None:
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET", raising=False)
    response = client.post("/billing/webhook", json={"type": "invoice.paid", "data": {"object": {}}})
    assert response.json() == {"received": True}
