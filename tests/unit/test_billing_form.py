import httpx
import pytest

from biowell.services.billing import BillingRequestError, StripeClient, encode_form


def test_encode_form_flattens_nested_params() -> None:
    pairs = encode_form(
        {
            "mode": "payment",
            "line_items": [
                {"price_data": {"currency": "aed", "unit_amount": 16200}, "quantity": 2},
            ],
            "metadata": {"user_id": "7"},
            "customer": None,
            "allow_promotion_codes": True,
        }
    )
    assert pairs == [
        ("mode", "payment"),
        ("line_items[0][price_data][currency]", "aed"),
        ("line_items[0][price_data][unit_amount]", "16200"),
        ("line_items[0][quantity]", "2"),
        ("metadata[user_id]", "7"),
        ("allow_promotion_codes", "true"),
    ]


def test_stripe_client_requires_secret_key(monkeypatch) -> None:
    monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)
    with pytest.raises(BillingRequestError) as exc_info:
        StripeClient().create_portal_session("cus_1", "http://localhost/account")
    assert "STRIPE_SECRET_KEY" in str(exc_info.value)


def test_stripe_client_surfaces_error_message(monkeypatch) -> None:
    monkeypatch.setenv("STRIPE_SECRET_KEY", "sk_test_123")
    captured = {}

    def fake_post(url, **kwargs):
        captured["url"] = url
        captured["data"] = kwargs["data"]
        return httpx.Response(
            400, json={"error": {"message": "No such price"}}, request=httpx.Request("POST", url)
        )

    monkeypatch.setattr("biowell.services.billing.httpx.post", fake_post)
    with pytest.raises(BillingRequestError) as exc_info:
        StripeClient().create_checkout_session({"mode": "subscription", "line_items": [{"price": "x"}]})
    assert exc_info.value.status_code == 400
    assert "No such price" in str(exc_info.value)
    assert captured["url"].endswith("/checkout/sessions")
    assert captured["data"]["line_items[0][price]"] == "x"
