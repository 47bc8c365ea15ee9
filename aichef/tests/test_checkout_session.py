"""Tests for checkout session initiation and the pending checkout record."""

import pytest

from aichef.core.errors import NotFoundError, ValidationError
from aichef.core.metrics import checkout_sessions_total
from aichef.features.billing.checkout import open_pending_checkout, start_checkout_session
from aichef.tests.mocks import FakeBillingProvider


VALID_BODY = {
    "userId": "u1",
    "email": "a@b.com",
    "checkoutSessionId": "c1",
    "successUrl": "https://x/success",
    "cancelUrl": "https://x/",
}


def test_create_checkout_session_returns_session_id(client, provider):
    provider.session_id = "sess_abc"
    resp = client.post("/api/billing/create-checkout-session", json=VALID_BODY)

    assert resp.status_code == 200
    assert resp.json() == {"sessionId": "sess_abc"}
    assert provider.checkout_calls == [
        dict(
            user_id="u1",
            email="a@b.com",
            checkout_session_id="c1",
            success_url="https://x/success",
            cancel_url="https://x/",
        )
    ]


def test_missing_email_is_rejected(client, provider):
    body = {k: v for k, v in VALID_BODY.items() if k != "email"}
    resp = client.post("/api/billing/create-checkout-session", json=body)

    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing required parameters"
    assert provider.checkout_calls == []


def test_empty_body_is_rejected(client):
    resp = client.post("/api/billing/create-checkout-session")
    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing required parameters"


def test_provider_failure_returns_500_with_message(client, provider):
    provider.error = "Your card was declined."
    resp = client.post("/api/billing/create-checkout-session", json=VALID_BODY)

    assert resp.status_code == 500
    assert resp.json()["error"] == "Your card was declined."
    assert checkout_sessions_total.value({"outcome": "provider_error"}) == 1


def test_non_post_is_method_not_allowed(client):
    resp = client.get("/api/billing/create-checkout-session")
    assert resp.status_code == 405
    assert resp.json()["code"] == "method_not_allowed"


def test_initiator_never_touches_store(client, store):
    client.post("/api/billing/create-checkout-session", json=VALID_BODY)
    assert store.write_count == 0
    assert store.get("users", "user_1").data["isPremium"] is False


def test_blank_field_counts_as_missing():
    provider = FakeBillingProvider()
    with pytest.raises(ValidationError):
        start_checkout_session(
            provider,
            user_id="u1",
            email="   ",
            checkout_session_id="c1",
            success_url="https://x/success",
            cancel_url="https://x/",
        )
    assert checkout_sessions_total.value({"outcome": "invalid"}) == 1


def test_open_pending_checkout_writes_record_and_flags_user(store, now, test_settings):
    checkout_id = open_pending_checkout(store, user_id="user_1", email="ada@example.com", now=now, cfg=test_settings)

    record = store.get("stripeCheckoutSessions", checkout_id).data
    assert record == {
        "userId": "user_1",
        "email": "ada@example.com",
        "createdAt": "2024-05-01T12:00:00.000Z",
        "status": "pending",
        "webhookReceived": False,
    }
    user = store.get("users", "user_1").data
    assert user["premiumPending"] is True
    assert user["premiumCheckoutSessionId"] == checkout_id
    assert user["isPremium"] is False


def test_open_pending_checkout_requires_existing_user(store, now, test_settings):
    with pytest.raises(NotFoundError):
        open_pending_checkout(store, user_id="ghost", email="g@example.com", now=now, cfg=test_settings)
    assert store.write_count == 0


def test_open_pending_checkout_requires_signed_in_user(store, test_settings):
    with pytest.raises(ValidationError) as exc:
        open_pending_checkout(store, user_id="", email="a@b.com", cfg=test_settings)
    assert exc.value.message == "Must be signed in to upgrade to premium"


def test_premium_checkout_route_links_pending_record(client, store, provider):
    resp = client.post(
        "/api/premium/checkout",
        headers={"X-User-Id": "user_1"},
        json={"email": "ada@example.com", "successUrl": "https://x/success", "cancelUrl": "https://x/"},
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["sessionId"] == "cs_test_abc"
    assert provider.checkout_calls[0]["checkout_session_id"] == body["checkoutSessionId"]
    assert store.get("stripeCheckoutSessions", body["checkoutSessionId"]).data["status"] == "pending"


def test_premium_checkout_requires_identity(client):
    resp = client.post(
        "/api/premium/checkout",
        json={"email": "ada@example.com", "successUrl": "https://x/success", "cancelUrl": "https://x/"},
    )
    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthorized"
