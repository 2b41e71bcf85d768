import os
from typing import Any, Optional, Protocol

import httpx

STRIPE_API_BASE = "https://api.stripe.com/v1"
STRIPE_TIMEOUT_SECONDS = float(os.getenv("STRIPE_TIMEOUT_SECONDS", "20"))


class BillingRequestError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = "stripe"
        self.status_code = status_code


def encode_form(params: dict[str, Any], prefix: str = "") -> list[tuple[str, str]]:
    """Flatten nested dicts/lists into Stripe's bracketed form keys (``line_items[0][price]``)."""
    pairs: list[tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, dict):
            pairs.extend(encode_form(value, name))
        elif isinstance(value, (list, tuple)):
            for idx, item in enumerate(value):
                item_name = f"{name}[{idx}]"
                if isinstance(item, dict):
                    pairs.extend(encode_form(item, item_name))
                else:
                    pairs.append((item_name, str(item)))
        elif isinstance(value, bool):
            pairs.append((name, "true" if value else "false"))
        else:
            pairs.append((name, str(value)))
    return pairs


class BillingClient(Protocol):
    def create_checkout_session(self, params: dict[str, Any]) -> dict[str, Any]:
        ...

    def create_portal_session(self, customer_id: str, return_url: str) -> dict[str, Any]:
        ...


class StripeClient:
    def _post(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        secret_key = os.getenv("STRIPE_SECRET_KEY", "").strip()
        if not secret_key:
            raise BillingRequestError("Stripe secret key not configured. Set STRIPE_SECRET_KEY.")
        try:
            response = httpx.post(
                f"{STRIPE_API_BASE}{path}",
                headers={"Authorization": f"Bearer {secret_key}"},
                data=dict(encode_form(params)),
                timeout=STRIPE_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            message = ""
            try:
                message = str(exc.response.json().get("error", {}).get("message") or "")
            except ValueError:
                message = (exc.response.text or "").strip()[:220]
            raise BillingRequestError(
                f"Stripe request failed (status={status}): {message or 'no response body'}", status
            ) from exc
        except httpx.HTTPError as exc:
            raise BillingRequestError(f"Stripe request failed: {str(exc)[:220]}") from exc
        return response.json()

    def create_checkout_session(self, params: dict[str, Any]) -> dict[str, Any]:
        return self._post("/checkout/sessions", params)

    def create_portal_session(self, customer_id: str, return_url: str) -> dict[str, Any]:
        return self._post("/billing_portal/sessions", {"customer": customer_id, "return_url": return_url})


def get_billing_client() -> BillingClient:
    return StripeClient()
