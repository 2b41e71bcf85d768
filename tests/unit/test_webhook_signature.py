import pytest

from biowell.core.security import sign_webhook_payload, verify_webhook_signature

SECRET = "whsec_test"
PAYLOAD = b'{"type":"customer.subscription.updated"}'


def _header(timestamp: int, secret: str = SECRET) -> str:
    return f"t={timestamp},v1={sign_webhook_payload(PAYLOAD, secret, timestamp)}"


def test_valid_signature_passes() -> None:
    verify_webhook_signature(PAYLOAD, _header(1_700_000_000), SECRET, now=1_700_000_100)


def test_any_matching_v1_signature_is_accepted() -> None:
    header = f"t=1700000000,v1=deadbeef,v1={sign_webhook_payload(PAYLOAD, SECRET, 1_700_000_000)}"
    verify_webhook_signature(PAYLOAD, header, SECRET, now=1_700_000_000)


def test_wrong_secret_fails() -> None:
    with pytest.raises(ValueError):
        verify_webhook_signature(PAYLOAD, _header(1_700_000_000, "other"), SECRET, now=1_700_000_000)


def test_stale_timestamp_fails() -> None:
    with pytest.raises(ValueError):
        verify_webhook_signature(PAYLOAD, _header(1_700_000_000), SECRET, now=1_700_000_301)


def test_malformed_header_fails() -> None:
    with pytest.raises(ValueError):
        verify_webhook_signature(PAYLOAD, "v1=abc", SECRET)
    with pytest.raises(ValueError):
        verify_webhook_signature(PAYLOAD, "t=notanumber,v1=abc", SECRET)
